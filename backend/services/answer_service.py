"""Turn retrieved evidence into a grounded answer with a sources listing."""
import logging
from dataclasses import dataclass, field
from typing import List

from config import LLM_MAX_TOKENS, LLM_TEMPERATURE, LLM_TIMEOUT
from models.chunk import RetrievalResult, ScoredChunk
from services.llm_client import LLMClient, LLMClientError
from services.retrieval_engine import RetrievalEngine

logger = logging.getLogger(__name__)

NOT_FOUND_TEXT = "No answer found in the indexed content."
NOT_COVERED_REPLY = "Not found in the indexed content."

SYSTEM_PROMPT = f"""You are the Tuppu Agent. Answer in clear, concise English using ONLY the provided context.
If the answer cannot be found in the context, reply exactly: "{NOT_COVERED_REPLY}"
Do not use outside knowledge and do not invent sources."""

FALLBACK_EXCERPT_CHARS = 600


@dataclass
class SourceRef:
    title: str
    document_key: str


@dataclass
class Answer:
    """Final answer text plus the evidence it cites."""
    text: str
    sources: List[SourceRef] = field(default_factory=list)
    found: bool = True
    used_fallback: bool = False


def build_user_prompt(question: str, context_blocks: List[str]) -> str:
    context = "\n\n".join(context_blocks)
    return f"""Question: {question}

Context (only use this information):
{context}

Write a 3-6 sentence answer. If the context does not cover the question, say so directly."""


def format_sources(sources: List[SourceRef]) -> str:
    if not sources:
        return "Sources:\n(none)"
    lines = "\n".join(f"- {s.title}: {s.document_key}" for s in sources)
    return f"Sources:\n{lines}"


class AnswerService:
    """Retrieve evidence, generate prose from it, fall back to summarization on failure."""

    def __init__(
        self,
        retrieval_engine: RetrievalEngine,
        llm_client: LLMClient,
        summarizer,
        max_tokens: int = LLM_MAX_TOKENS,
        temperature: float = LLM_TEMPERATURE,
        timeout: float = LLM_TIMEOUT
    ):
        """
        Args:
            retrieval_engine: Evidence selection
            llm_client: Generation backend
            summarizer: Anything with `async summarize(text) -> str`
            max_tokens: Generation token budget
            temperature: Sampling temperature
            timeout: Generation wall-clock budget in seconds
        """
        self.retrieval_engine = retrieval_engine
        self.llm_client = llm_client
        self.summarizer = summarizer
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout

    async def answer(self, question: str) -> Answer:
        """
        Answer a question from the indexed corpus.

        Returns an explicit "not found" answer with no sources when nothing
        grounds the question. Generation failures are never raised; the
        summarizer output is used instead.

        Raises:
            EmbeddingError: If the question cannot be embedded
            VectorStoreError: If the store cannot be read
        """
        retrieval = await self.retrieval_engine.retrieve(question)

        if not retrieval.found:
            logger.info("No grounded evidence found, answering with not-found response")
            return Answer(text=f"{NOT_FOUND_TEXT}\n\n{format_sources([])}", found=False)

        sources = [
            SourceRef(title=e.chunk.title, document_key=e.chunk.document_key)
            for e in retrieval.evidence
        ]
        prose, used_fallback = await self._compose(question, retrieval)

        return Answer(
            text=f"{prose}\n\n{format_sources(sources)}",
            sources=sources,
            found=True,
            used_fallback=used_fallback
        )

    async def _compose(self, question: str, retrieval: RetrievalResult):
        user_prompt = build_user_prompt(question, retrieval.context_blocks)
        try:
            response = await self.llm_client.generate(
                SYSTEM_PROMPT,
                user_prompt,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                timeout=self.timeout
            )
            return response.text, False
        except LLMClientError as e:
            logger.warning(f"Generation failed ({e.error.code}), falling back to summarizer")

        summary = await self.summarizer.summarize(self._merge_evidence(retrieval.evidence))
        if not summary.strip():
            # Evidence always has text, but never hand back an empty answer
            summary = retrieval.evidence[0].chunk.text[:FALLBACK_EXCERPT_CHARS].strip()
        return summary, True

    @staticmethod
    def _merge_evidence(evidence: List[ScoredChunk]) -> str:
        return "\n\n".join(e.chunk.text[:FALLBACK_EXCERPT_CHARS] for e in evidence)
