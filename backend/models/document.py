"""Document data models."""
from dataclasses import dataclass


@dataclass
class SourceDocument:
    """A plain-text document produced by a document source.

    This is the whole contract between fetching/parsing and the indexing
    pipeline, so any source can be swapped in as long as it yields these.
    """
    document_key: str  # Stable identifier, e.g. the canonical post URL
    title: str
    text: str
