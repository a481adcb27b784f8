"""Hybrid (vector + keyword) retrieval over the stored chunks."""
import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

import numpy as np

from config import (
    CANDIDATE_K,
    CONFIDENCE_THRESHOLD,
    EVIDENCE_K,
    MIN_KEYWORD_LENGTH,
    RELEVANCE_THRESHOLD,
    TEXT_BOOST,
    TITLE_BOOST,
)
from models.chunk import ChunkRecord, RetrievalResult, ScoredChunk
from services.embedding_model import EmbeddingModel
from services.vector_store import VectorStore

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"\W+")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class RetrievalSettings:
    """Tunable scoring constants. The defaults were picked empirically."""
    relevance_threshold: float = RELEVANCE_THRESHOLD
    confidence_threshold: float = CONFIDENCE_THRESHOLD
    title_boost: float = TITLE_BOOST
    text_boost: float = TEXT_BOOST
    candidate_k: int = CANDIDATE_K
    evidence_k: int = EVIDENCE_K
    min_keyword_length: int = MIN_KEYWORD_LENGTH
    excerpt_before: int = 220
    excerpt_after: int = 400


def extract_keywords(question: str, min_length: int = MIN_KEYWORD_LENGTH) -> List[str]:
    """Lower-cased tokens of at least min_length characters, first occurrence order."""
    tokens = _NON_WORD.split(question.lower())
    return list(dict.fromkeys(t for t in tokens if len(t) >= min_length))


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine over the common prefix of both vectors; 0.0 if either has zero norm."""
    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    a = np.asarray(a[:n], dtype=np.float64)
    b = np.asarray(b[:n], dtype=np.float64)
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if not denom:
        return 0.0
    return float(np.dot(a, b) / denom)


def first_keyword(text: str, keywords: Iterable[str]) -> Optional[str]:
    """First keyword (in keyword order) contained in text, case-insensitive."""
    lowered = text.lower()
    for keyword in keywords:
        if keyword in lowered:
            return keyword
    return None


class RetrievalEngine:
    """Score every stored chunk against a question and pick grounded evidence."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_model: EmbeddingModel,
        settings: Optional[RetrievalSettings] = None
    ):
        """
        Initialize the retrieval engine.

        Args:
            vector_store: Store to scan
            embedding_model: Provider used to embed the question
            settings: Thresholds and boosts, defaults from config
        """
        self.vector_store = vector_store
        self.embedding_model = embedding_model
        self.settings = settings or RetrievalSettings()
        logger.info("Initialized RetrievalEngine")

    def score_chunk(self, query_vector: np.ndarray, chunk: ChunkRecord, keywords: List[str]) -> float:
        """Cosine similarity plus fixed boosts for keyword hits in title and text."""
        score = cosine_similarity(query_vector, chunk.vector)
        if first_keyword(chunk.title or "", keywords) is not None:
            score += self.settings.title_boost
        if first_keyword(chunk.text or "", keywords) is not None:
            score += self.settings.text_boost
        return score

    def rank(
        self,
        query_vector: np.ndarray,
        keywords: List[str],
        chunks: Iterable[ChunkRecord]
    ) -> List[ScoredChunk]:
        """Candidate set: chunks over the relevance floor, best first, at most candidate_k."""
        scored = [
            ScoredChunk(chunk=chunk, score=self.score_chunk(query_vector, chunk, keywords))
            for chunk in chunks
        ]
        scored = [s for s in scored if s.score >= self.settings.relevance_threshold]
        # Stable sort keeps store order among equal scores
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[:self.settings.candidate_k]

    def select_evidence(self, candidates: List[ScoredChunk], keywords: List[str]) -> List[ScoredChunk]:
        """
        Apply the confidence floor and then require a literal keyword in the text.

        Embedding similarity alone happily matches topically unrelated
        chunks, so a chunk only counts as evidence if it actually contains
        one of the question's keywords.
        """
        good = [c for c in candidates if c.score >= self.settings.confidence_threshold]
        strict = [c for c in good if first_keyword(c.chunk.text, keywords) is not None]
        return strict[:self.settings.evidence_k]

    def build_context_block(self, index: int, scored: ScoredChunk, keywords: List[str]) -> str:
        """
        Excerpt around the first keyword hit, labelled for citation.

        Args:
            index: 1-based citation number
            scored: Evidence chunk
            keywords: Question keywords
        """
        text = scored.chunk.text
        keyword = first_keyword(text, keywords)
        position = text.lower().find(keyword) if keyword else -1

        if position >= 0:
            start = max(0, position - self.settings.excerpt_before)
            end = min(len(text), position + self.settings.excerpt_after)
        else:
            start, end = 0, self.settings.excerpt_after

        excerpt = _WHITESPACE.sub(" ", text[start:end]).strip()
        return f"[{index}] {scored.chunk.title}\n{scored.chunk.document_key}\n---\n{excerpt}"

    async def retrieve(self, question: str) -> RetrievalResult:
        """
        Retrieve grounded evidence for a question.

        1. Embed the question
        2. Extract keywords (tokens of min_keyword_length+ chars)
        3. Score every stored chunk: cosine + title/text keyword boosts
        4. Keep scores >= relevance floor, best candidate_k
        5. Keep scores >= confidence floor
        6. Keep chunks whose text contains a keyword
        7. Top evidence_k become evidence with context blocks

        An empty evidence list means nothing in the corpus grounds an answer.

        Raises:
            EmbeddingError: If the question cannot be embedded
            VectorStoreError: If the store cannot be scanned
        """
        keywords = extract_keywords(question, self.settings.min_keyword_length)
        result = RetrievalResult(question=question, keywords=keywords)

        if not question or not question.strip():
            logger.warning("Empty query string provided, returning empty results")
            return result

        logger.debug(f"Embedding query: {question[:100]}...")
        query_vector = await self.embedding_model.embed(question)

        result.candidates = self.rank(query_vector, keywords, self.vector_store.scan_all())
        result.evidence = self.select_evidence(result.candidates, keywords)
        result.context_blocks = [
            self.build_context_block(i, scored, keywords)
            for i, scored in enumerate(result.evidence, start=1)
        ]

        top_score = result.candidates[0].score if result.candidates else 0.0
        logger.info(
            f"Retrieved {len(result.evidence)} evidence chunks from {len(result.candidates)} candidates "
            f"(top score: {top_score:.3f}, keywords: {keywords})"
        )
        return result
