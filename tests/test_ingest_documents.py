"""Tests for the ingestion script."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest

import ingest_documents
from conftest import HashingEmbeddingModel
from models.document import SourceDocument
from services.document_loader import DocumentSource, SourceFetchError
from services.vector_store import VectorStore, VectorStoreError


class TrackingStore(VectorStore):
    """In-memory store that remembers whether it was closed."""

    instances = []

    def __init__(self, db_path, fail_initialize=False):
        super().__init__(":memory:")
        self.fail_initialize = fail_initialize
        self.closed = False
        TrackingStore.instances.append(self)

    def initialize(self):
        if self.fail_initialize:
            raise VectorStoreError("database is locked")
        super().initialize()

    def close(self):
        self.closed = True
        super().close()


class StaticSource(DocumentSource):

    def __init__(self, documents=None, error=None):
        self.documents = documents or []
        self.error = error

    async def fetch_documents(self):
        if self.error:
            raise self.error
        return list(self.documents)


@pytest.fixture
def patched(monkeypatch):
    TrackingStore.instances = []
    embedding_model = HashingEmbeddingModel()
    source = StaticSource([SourceDocument("doc1", "Renewable Energy", "wind power investment grew")])

    monkeypatch.setattr(ingest_documents, "VectorStore", lambda path: TrackingStore(path))
    monkeypatch.setattr(ingest_documents, "create_embedding_model", lambda: embedding_model)
    monkeypatch.setattr(ingest_documents, "create_document_source", lambda: source)
    return source


class TestIngestion:

    @pytest.mark.asyncio
    async def test_successful_run(self, patched):
        assert await ingest_documents.run() == 0

        store = TrackingStore.instances[0]
        assert store.closed

    @pytest.mark.asyncio
    async def test_source_failure_exit_code(self, patched):
        patched.error = SourceFetchError("blog unreachable")

        assert await ingest_documents.run() == 1
        assert TrackingStore.instances[0].closed

    @pytest.mark.asyncio
    async def test_store_closed_when_initialization_fails(self, monkeypatch, patched):
        monkeypatch.setattr(
            ingest_documents, "VectorStore", lambda path: TrackingStore(path, fail_initialize=True)
        )

        with pytest.raises(VectorStoreError):
            await ingest_documents.run()
        assert TrackingStore.instances[0].closed
