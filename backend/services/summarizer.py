"""Fallback summarizers used when the generation backend fails."""
import asyncio
import logging
import re
from typing import Any

from config import SUMMARIZER_BACKEND, SUMMARIZER_MODEL
from services.single_flight import SingleFlight

logger = logging.getLogger(__name__)

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")
_WHITESPACE = re.compile(r"\s+")


class ExtractiveSummarizer:
    """Summarize by keeping the leading sentences of the input, no model involved."""

    def __init__(self, max_chars: int = 600, max_input_chars: int = 3000):
        self.max_chars = max_chars
        self.max_input_chars = max_input_chars

    async def summarize(self, text: str) -> str:
        return self.extract(text)

    def extract(self, text: str) -> str:
        """
        Return at most max_chars characters built from whole leading sentences.

        A first sentence longer than the budget is cut at a word boundary
        and marked with an ellipsis.
        """
        cleaned = _WHITESPACE.sub(" ", (text or "")[:self.max_input_chars]).strip()
        if not cleaned:
            return ""

        summary = ""
        for sentence in _SENTENCE_END.split(cleaned):
            candidate = f"{summary} {sentence}".strip()
            if len(candidate) > self.max_chars:
                break
            summary = candidate

        if summary:
            return summary

        cut = cleaned[:self.max_chars - 1]
        if " " in cut:
            cut = cut.rsplit(" ", 1)[0]
        return cut.rstrip() + "…"


class ModelSummarizer:
    """Abstractive summarization with a local transformers pipeline."""

    def __init__(
        self,
        model_name: str = SUMMARIZER_MODEL,
        max_input_chars: int = 3000,
        max_length: int = 200,
        min_length: int = 60
    ):
        self.model_name = model_name
        self.max_input_chars = max_input_chars
        self.max_length = max_length
        self.min_length = min_length
        self._loader: SingleFlight[Any] = SingleFlight(
            self._initialize, name=f"summarization model {model_name}"
        )
        self._fallback = ExtractiveSummarizer(max_input_chars=max_input_chars)

    async def _initialize(self) -> Any:
        # Deferred: pulls in torch
        from transformers import pipeline

        return await asyncio.to_thread(pipeline, "summarization", model=self.model_name)

    async def summarize(self, text: str) -> str:
        text = (text or "")[:self.max_input_chars]
        if not text.strip():
            return ""

        try:
            summarizer = await self._loader.get()
            result = summarizer(text, max_length=self.max_length, min_length=self.min_length)
            summary = str(result[0].get("summary_text") or "").strip()
        except Exception as e:
            logger.warning(f"Summarization model failed, using extractive summary: {e}")
            return self._fallback.extract(text)

        return summary or self._fallback.extract(text)


def create_summarizer(backend: str = SUMMARIZER_BACKEND):
    """
    Build the configured fallback summarizer.

    Args:
        backend: "extractive" or "model"
    """
    if backend == "extractive":
        return ExtractiveSummarizer()
    if backend == "model":
        return ModelSummarizer()
    raise ValueError(f"Unknown summarizer backend: {backend}")
