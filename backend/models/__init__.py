"""Data models for Tuppu Agent."""
from .document import SourceDocument
from .chunk import ChunkRecord, ScoredChunk, RetrievalResult
from .api import AskRequest, AskResponse, ReindexResponse, ErrorResponse, Source

__all__ = [
    "SourceDocument",
    "ChunkRecord",
    "ScoredChunk",
    "RetrievalResult",
    "AskRequest",
    "AskResponse",
    "ReindexResponse",
    "ErrorResponse",
    "Source",
]
