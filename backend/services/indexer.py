"""Indexing orchestrator: fetch, chunk, embed new chunks, store."""
import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, Optional

from config import INDEX_CONCURRENCY, PRUNE_STALE_CHUNKS
from models.chunk import ChunkRecord
from models.document import SourceDocument
from services.chunking_engine import ChunkingEngine
from services.document_loader import DocumentSource, deduplicate
from services.embedding_model import EmbeddingError, EmbeddingModel
from services.vector_store import VectorStore, VectorStoreError

logger = logging.getLogger(__name__)


@dataclass
class IndexReport:
    """Counters for one indexing run."""
    documents_seen: int = 0
    documents_indexed: int = 0
    documents_skipped: int = 0  # produced no chunks
    documents_failed: int = 0
    chunks_added: int = 0
    chunks_existing: int = 0
    chunks_failed: int = 0
    chunks_pruned: int = 0
    elapsed_ms: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class Indexer:
    """Keeps the vector store in step with the document source."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_model: EmbeddingModel,
        document_source: Optional[DocumentSource] = None,
        chunking_engine: Optional[ChunkingEngine] = None,
        concurrency: int = INDEX_CONCURRENCY,
        prune_stale: bool = PRUNE_STALE_CHUNKS
    ):
        """
        Args:
            vector_store: Destination store
            embedding_model: Provider used for chunk embeddings
            document_source: Where index_all() fetches documents from
            chunking_engine: Window policy, defaults from config
            concurrency: Documents processed at the same time
            prune_stale: Delete ordinals a shrunken document no longer produces
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.vector_store = vector_store
        self.embedding_model = embedding_model
        self.document_source = document_source
        self.chunking_engine = chunking_engine or ChunkingEngine()
        self.concurrency = concurrency
        self.prune_stale = prune_stale
        self._current_run: Optional["asyncio.Task[IndexReport]"] = None

    async def index_all(self) -> IndexReport:
        """
        Fetch the corpus and index it.

        A call made while a run is in progress waits for that run instead
        of starting a second one.

        Raises:
            SourceFetchError: If the source cannot be read; the store is untouched
            ValueError: If no document source was configured
        """
        if self.document_source is None:
            raise ValueError("No document source configured")

        if self._current_run is None or self._current_run.done():
            self._current_run = asyncio.ensure_future(self._run())
        else:
            logger.info("Indexing already in progress, joining the running job")
        return await asyncio.shield(self._current_run)

    async def _run(self) -> IndexReport:
        logger.info("Fetching documents for indexing...")
        documents = await self.document_source.fetch_documents()
        return await self.index_documents(documents)

    async def index_documents(self, documents: Iterable[SourceDocument]) -> IndexReport:
        """
        Index documents that are not yet (fully) stored.

        Existing (document_key, ordinal) pairs are skipped without
        re-embedding. A failing document or chunk is logged and counted;
        the rest of the batch continues.
        """
        start_time = time.time()
        unique = deduplicate(documents)
        report = IndexReport(documents_seen=len(unique))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(document: SourceDocument) -> None:
            async with semaphore:
                await self._index_document(document, report)

        await asyncio.gather(*(bounded(d) for d in unique))

        report.elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Indexing finished: {report.documents_indexed}/{report.documents_seen} documents, "
            f"{report.chunks_added} new chunks, {report.chunks_existing} existing, "
            f"{report.chunks_failed} failed, {report.documents_failed} documents failed "
            f"in {report.elapsed_ms}ms",
            extra={"index_report": report.to_dict()}
        )
        return report

    async def _index_document(self, document: SourceDocument, report: IndexReport) -> None:
        windows = self.chunking_engine.windows(document.text)
        total = len(windows)
        if total == 0:
            report.documents_skipped += 1
            logger.debug(f"Skipping {document.document_key}: no text")
            return

        try:
            for ordinal, chunk_text in enumerate(windows):
                if self.vector_store.exists(document.document_key, ordinal):
                    report.chunks_existing += 1
                    continue

                try:
                    vector = await self.embedding_model.embed(f"{document.title}\n\n{chunk_text}")
                except EmbeddingError as e:
                    report.chunks_failed += 1
                    logger.error(f"Embedding failed for {document.document_key}#{ordinal}: {e}")
                    continue

                inserted = self.vector_store.upsert_if_absent(ChunkRecord(
                    document_key=document.document_key,
                    title=document.title,
                    ordinal=ordinal,
                    text=chunk_text,
                    vector=vector
                ))
                if inserted:
                    report.chunks_added += 1
                else:
                    # Another writer stored it while we were embedding
                    report.chunks_existing += 1

            if self.prune_stale:
                pruned = self.vector_store.delete_stale(document.document_key, total)
                if pruned:
                    report.chunks_pruned += pruned
                    logger.info(f"Pruned {pruned} stale chunks of {document.document_key}")

        except VectorStoreError as e:
            report.documents_failed += 1
            logger.error(f"Failed to index {document.document_key}: {e}", exc_info=True)
            return

        report.documents_indexed += 1
        logger.info(f"Indexed: {document.title} ({total} chunk(s))")
