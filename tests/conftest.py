"""Shared fixtures for the Tuppu Agent test suite."""
import asyncio
import re
import sys
import zlib
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import numpy as np
import pytest

from services.embedding_model import EmbeddingError, EmbeddingModel
from services.vector_store import VectorStore


class HashingEmbeddingModel(EmbeddingModel):
    """Deterministic bag-of-words embeddings over a hashed vocabulary."""

    def __init__(self, dim: int = 64, fail_on: str = None, delay: float = 0.0):
        super().__init__(model_name="hashing-test")
        self.dim = dim
        self.fail_on = fail_on
        self.delay = delay
        self.init_calls = 0
        self.embedded = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _initialize(self):
        self.init_calls += 1
        await asyncio.sleep(0)
        return "hashing-backend"

    async def _encode(self, backend, text):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_on and self.fail_on in text:
                raise EmbeddingError(f"rejected input containing {self.fail_on!r}")
            self.embedded.append(text)
            vector = np.zeros(self.dim, dtype=np.float32)
            for word in re.findall(r"\w+", text.lower()):
                vector[zlib.crc32(word.encode("utf-8")) % self.dim] += 1.0
            return vector
        finally:
            self.in_flight -= 1


@pytest.fixture
def embedding_model():
    return HashingEmbeddingModel()


@pytest.fixture
def vector_store():
    store = VectorStore(":memory:")
    store.initialize()
    yield store
    store.close()
