"""Unit tests for the fallback summarizers."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from services.summarizer import ExtractiveSummarizer, ModelSummarizer, create_summarizer


class BrokenModelSummarizer(ModelSummarizer):
    """Model that never loads."""

    def __init__(self, **kwargs):
        super().__init__(model_name="broken", **kwargs)
        self.init_calls = 0

    async def _initialize(self):
        self.init_calls += 1
        raise OSError("model files not found")


class FakePipelineSummarizer(ModelSummarizer):
    """Replaces the transformers pipeline with a canned callable."""

    def __init__(self, output, **kwargs):
        super().__init__(model_name="fake", **kwargs)
        self.output = output
        self.calls = []

    async def _initialize(self):
        def pipeline(text, max_length, min_length):
            self.calls.append((text, max_length, min_length))
            return [{"summary_text": self.output}]
        return pipeline


class TestExtractiveSummarizer:

    def test_keeps_whole_leading_sentences(self):
        summarizer = ExtractiveSummarizer(max_chars=40)
        text = "Wind power grew. Solar followed. Hydro stayed flat this year overall."

        assert summarizer.extract(text) == "Wind power grew. Solar followed."

    def test_short_input_is_returned_whole(self):
        summarizer = ExtractiveSummarizer()
        assert summarizer.extract("  Wind   power\ngrew.  ") == "Wind power grew."

    def test_long_first_sentence_is_cut_with_ellipsis(self):
        summarizer = ExtractiveSummarizer(max_chars=20)
        summary = summarizer.extract("Investment in offshore wind capacity kept growing")

        assert summary.endswith("…")
        assert len(summary) <= 20
        assert summary == "Investment in…"

    def test_blank_input(self):
        assert ExtractiveSummarizer().extract("   ") == ""
        assert ExtractiveSummarizer().extract(None) == ""

    def test_input_budget(self):
        summarizer = ExtractiveSummarizer(max_chars=1000, max_input_chars=10)
        assert summarizer.extract("abcdefghijklmnop") == "abcdefghij"

    @pytest.mark.asyncio
    async def test_summarize_is_async_extract(self):
        summarizer = ExtractiveSummarizer(max_chars=40)
        assert await summarizer.summarize("One. Two.") == "One. Two."


class TestModelSummarizer:

    @pytest.mark.asyncio
    async def test_uses_pipeline_output(self):
        summarizer = FakePipelineSummarizer("  A model summary.  ", max_length=50, min_length=10)

        assert await summarizer.summarize("Some long evidence text.") == "A model summary."
        assert summarizer.calls == [("Some long evidence text.", 50, 10)]

    @pytest.mark.asyncio
    async def test_input_is_truncated(self):
        summarizer = FakePipelineSummarizer("ok", max_input_chars=5)
        await summarizer.summarize("abcdefghij")
        assert summarizer.calls[0][0] == "abcde"

    @pytest.mark.asyncio
    async def test_empty_model_output_falls_back(self):
        summarizer = FakePipelineSummarizer("")
        assert await summarizer.summarize("Wind power grew.") == "Wind power grew."

    @pytest.mark.asyncio
    async def test_load_failure_falls_back_and_is_not_retried(self):
        summarizer = BrokenModelSummarizer()

        assert await summarizer.summarize("Wind power grew. Solar followed.") == (
            "Wind power grew. Solar followed."
        )
        assert await summarizer.summarize("Second call.") == "Second call."
        assert summarizer.init_calls == 1

    @pytest.mark.asyncio
    async def test_blank_input_skips_model(self):
        summarizer = BrokenModelSummarizer()
        assert await summarizer.summarize("  ") == ""
        assert summarizer.init_calls == 0


class TestCreateSummarizer:

    def test_backends(self):
        assert isinstance(create_summarizer("extractive"), ExtractiveSummarizer)
        assert isinstance(create_summarizer("model"), ModelSummarizer)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_summarizer("gpt")
