"""
Document Ingestion Script for Tuppu Agent.

This script:
1. Opens (and if needed migrates) the SQLite vector store
2. Loads the embedding model
3. Fetches all documents from the configured source
4. Chunks them and embeds chunks that are not stored yet
5. Reports what changed

Existing chunks are kept, so running it twice is safe.

Usage:
    python ingest_documents.py
"""
import asyncio
import sys
import logging
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from config import DATABASE_PATH, LOG_FORMAT, LOG_LEVEL, SOURCE_BACKEND
from logger import setup_logging
from services.document_loader import SourceFetchError, create_document_source
from services.embedding_model import create_embedding_model
from services.indexer import Indexer
from services.vector_store import VectorStore

logger = logging.getLogger(__name__)


async def run() -> int:
    """Run one indexing pass. Returns the process exit code."""
    logger.info("=" * 60)
    logger.info("Starting Tuppu Agent Document Ingestion")
    logger.info("=" * 60)

    vector_store = None
    embedding_model = None
    try:
        # Step 1: Initialize services
        logger.info("[1/3] Initializing services...")
        vector_store = VectorStore(DATABASE_PATH)
        vector_store.initialize()
        count_before = vector_store.count()
        logger.info(f"✓ Vector store ready at {DATABASE_PATH} ({count_before} chunks)")

        embedding_model = create_embedding_model()
        document_source = create_document_source()
        indexer = Indexer(vector_store, embedding_model, document_source)

        # Step 2: Warm up embedding model
        logger.info("[2/3] Warming up embedding model...")
        if not await embedding_model.warmup():
            logger.error("Embedding model could not be loaded")
            return 1
        logger.info("✓ Model warmed up and ready")

        # Step 3: Fetch, chunk, embed, store
        logger.info(f"[3/3] Indexing documents from the {SOURCE_BACKEND} source...")
        try:
            report = await indexer.index_all()
        except SourceFetchError as e:
            logger.error(f"Could not fetch documents: {e}")
            return 1

        final_count = vector_store.count()

        # Summary
        logger.info("=" * 60)
        logger.info("INGESTION COMPLETE!")
        logger.info("=" * 60)
        logger.info(f"Documents fetched: {report.documents_seen}")
        logger.info(f"Documents indexed: {report.documents_indexed}")
        logger.info(f"Documents failed: {report.documents_failed}")
        logger.info(f"New chunks: {report.chunks_added}")
        logger.info(f"Chunks already stored: {report.chunks_existing}")
        logger.info(f"Chunks failed: {report.chunks_failed}")
        logger.info(f"Chunks in database: {final_count}")
        logger.info("=" * 60)
        return 0
    finally:
        if embedding_model is not None:
            await embedding_model.aclose()
        if vector_store is not None:
            vector_store.close()


def main():
    """Main ingestion process."""
    setup_logging(LOG_LEVEL, LOG_FORMAT)
    try:
        sys.exit(asyncio.run(run()))
    except KeyboardInterrupt:
        logger.warning("Ingestion interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Ingestion failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
