"""Request and response models for the HTTP API."""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel


class AskRequest(BaseModel):
    """Body of POST /ask. Numbers are accepted and read as text."""
    q: Optional[Union[str, int, float]] = None


class Source(BaseModel):
    """A document cited by an answer."""
    title: str
    document_key: str


class AskResponse(BaseModel):
    """Successful answer, including the explicit "not found" answer."""
    answer: str
    sources: List[Source] = []


class ReindexResponse(BaseModel):
    """Result of POST /reindex."""
    ok: bool
    report: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    """Structured error payload."""
    error: str
