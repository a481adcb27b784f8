"""Configuration management for Tuppu Agent."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _get_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Server Configuration
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Storage
DATABASE_PATH = os.getenv("DATABASE_PATH", "tuppu.db")

# Document sources
SOURCE_BACKEND = os.getenv("SOURCE_BACKEND", "wordpress")  # "wordpress" or "directory"
BLOG_URL = os.getenv("BLOG_URL", "https://tuppu.fi").rstrip("/")
WP_MAX_PAGES = int(os.getenv("WP_MAX_PAGES", "20"))
DOCS_DIRECTORY = os.getenv("DOCS_DIRECTORY", "docs")
FETCH_TIMEOUT = float(os.getenv("FETCH_TIMEOUT", "30"))

# Embedding Configuration
EMBEDDING_BACKEND = os.getenv("EMBEDDING_BACKEND", "local")  # "local" or "api"
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
EMBEDDING_MAX_CHARS = int(os.getenv("EMBEDDING_MAX_CHARS", "8000"))
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")

# Generation Configuration (OpenAI-compatible chat completions, e.g. llama.cpp)
LLM_BASE = os.getenv("LLM_BASE", "http://127.0.0.1:8080/v1").rstrip("/")
LLM_MODEL = os.getenv("LLM_MODEL", "local-llm")
LLM_API_KEY = os.getenv("LLM_API_KEY", "sk-local")
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "500"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.2"))
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "25"))  # seconds

# Fallback summarizer
SUMMARIZER_BACKEND = os.getenv("SUMMARIZER_BACKEND", "extractive")  # "extractive" or "model"
SUMMARIZER_MODEL = os.getenv("SUMMARIZER_MODEL", "sshleifer/distilbart-cnn-12-6")

# Chunking Configuration
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "900"))  # characters
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "180"))  # characters

# Indexing Configuration
INDEX_CONCURRENCY = int(os.getenv("INDEX_CONCURRENCY", "3"))
INDEX_ON_STARTUP = _get_bool("INDEX_ON_STARTUP", "true")
PRUNE_STALE_CHUNKS = _get_bool("PRUNE_STALE_CHUNKS", "false")

# Retrieval Configuration
RELEVANCE_THRESHOLD = float(os.getenv("RELEVANCE_THRESHOLD", "0.28"))
CONFIDENCE_THRESHOLD = float(os.getenv("CONFIDENCE_THRESHOLD", "0.35"))
TITLE_BOOST = float(os.getenv("TITLE_BOOST", "0.06"))
TEXT_BOOST = float(os.getenv("TEXT_BOOST", "0.03"))
CANDIDATE_K = int(os.getenv("CANDIDATE_K", "10"))
EVIDENCE_K = int(os.getenv("EVIDENCE_K", "3"))
MIN_KEYWORD_LENGTH = int(os.getenv("MIN_KEYWORD_LENGTH", "4"))
