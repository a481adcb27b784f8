"""Main entry point for the Tuppu Agent API."""
import asyncio
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import (
    CORS_ORIGINS,
    DATABASE_PATH,
    INDEX_ON_STARTUP,
    LOG_FORMAT,
    LOG_LEVEL,
    PORT,
)
from logger import setup_logging
from models.api import AskRequest, AskResponse, ErrorResponse, ReindexResponse, Source
from services.answer_service import AnswerService
from services.document_loader import SourceFetchError, create_document_source
from services.embedding_model import EmbeddingModel, create_embedding_model
from services.indexer import Indexer
from services.llm_client import LLMClient
from services.retrieval_engine import RetrievalEngine
from services.summarizer import create_summarizer
from services.vector_store import VectorStore

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Tuppu Agent",
    description="Answers questions grounded in the indexed blog content",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (will be done on startup)
vector_store: VectorStore = None
embedding_model: EmbeddingModel = None
llm_client: LLMClient = None
answer_service: AnswerService = None
indexer: Indexer = None
startup_index_task: Optional[asyncio.Task] = None


async def _index_in_background() -> None:
    try:
        await indexer.index_all()
    except Exception as e:
        logger.error(f"Startup indexing failed: {e}", exc_info=True)


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global vector_store, embedding_model, llm_client, answer_service, indexer, startup_index_task

    setup_logging(LOG_LEVEL, LOG_FORMAT)
    logger.info("Initializing Tuppu Agent services...")

    try:
        vector_store = VectorStore(DATABASE_PATH)
        vector_store.initialize()
        logger.info(f"Initialized VectorStore ({vector_store.count()} chunks)")

        # Load the model now so a broken setup fails here, not on the first question
        embedding_model = create_embedding_model()
        await embedding_model.load()
        logger.info("Initialized EmbeddingModel")

        llm_client = LLMClient()

        retrieval_engine = RetrievalEngine(vector_store, embedding_model)
        answer_service = AnswerService(retrieval_engine, llm_client, create_summarizer())
        logger.info("Initialized AnswerService")

        indexer = Indexer(vector_store, embedding_model, create_document_source())
        logger.info("Initialized Indexer")

        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise

    if INDEX_ON_STARTUP:
        startup_index_task = asyncio.create_task(_index_in_background())


@app.on_event("shutdown")
async def shutdown_event():
    """Release clients and the database."""
    if startup_index_task and not startup_index_task.done():
        startup_index_task.cancel()
    if llm_client:
        await llm_client.aclose()
    if embedding_model:
        await embedding_model.aclose()
    if vector_store:
        vector_store.close()
    logger.info("Tuppu Agent stopped")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed /ask bodies get the same 400 as a missing question."""
    if request.url.path == "/ask":
        logger.warning(f"Rejected malformed /ask body: {exc.errors()}")
        return JSONResponse(status_code=400, content=ErrorResponse(error="Missing q").model_dump())
    return await request_validation_exception_handler(request, exc)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Tuppu Agent API"}


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"ok": True}


@app.post("/reindex", response_model=ReindexResponse, responses={500: {"model": ReindexResponse}})
async def reindex_endpoint():
    """
    Fetch the document source and index anything new.

    Returns:
        ReindexResponse with the run's counters, or a 500 with the error message
    """
    try:
        report = await indexer.index_all()
    except SourceFetchError as e:
        logger.error(f"Reindex aborted, source unavailable: {e}")
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
    except Exception as e:
        logger.error(f"Unexpected error during reindex: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})

    return ReindexResponse(ok=True, report=report.to_dict())


@app.post("/ask", response_model=AskResponse, responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
async def ask_endpoint(request: Optional[AskRequest] = None):
    """
    Answer a question from the indexed content.

    A question nothing in the corpus grounds still gets a 200, with the
    "not found" answer and an empty source list.

    Args:
        request: AskRequest with the question in `q`

    Returns:
        AskResponse with answer text and cited sources
    """
    q = request.q if request else None
    question = "" if q is None else str(q).strip()
    if not question:
        return JSONResponse(status_code=400, content=ErrorResponse(error="Missing q").model_dump())

    logger.info(f"Processing question: {question[:100]}...")

    try:
        answer = await answer_service.answer(question)
    except Exception as e:
        logger.error(f"Unexpected error processing question: {e}", exc_info=True)
        return JSONResponse(status_code=500, content=ErrorResponse(error=str(e)).model_dump())

    return AskResponse(
        answer=answer.text,
        sources=[Source(title=s.title, document_key=s.document_key) for s in answer.sources]
    )


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Tuppu Agent API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
