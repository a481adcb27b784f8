"""Chunk data models."""
from dataclasses import dataclass, field
from typing import List

import numpy as np


@dataclass
class ChunkRecord:
    """Represents one stored window of a document."""
    document_key: str
    title: str
    ordinal: int  # Zero-based position within the parent document
    text: str
    vector: np.ndarray  # float32 embedding of title + text


@dataclass
class ScoredChunk:
    """Chunk with hybrid relevance score from retrieval."""
    chunk: ChunkRecord
    score: float


@dataclass
class RetrievalResult:
    """Outcome of a single retrieval pass for a question."""
    question: str
    keywords: List[str]
    candidates: List[ScoredChunk] = field(default_factory=list)
    evidence: List[ScoredChunk] = field(default_factory=list)
    context_blocks: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        """True when at least one chunk survived both evidence filters."""
        return bool(self.evidence)
