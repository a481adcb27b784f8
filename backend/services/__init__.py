"""Services for Tuppu Agent."""
from .chunking_engine import ChunkingEngine, TextWindows
from .embedding_model import (
    EmbeddingModel,
    EmbeddingError,
    LocalEmbeddingModel,
    InferenceAPIEmbeddingModel,
    create_embedding_model,
)
from .llm_client import LLMClient, LLMResponse, LLMError, LLMClientError
from .summarizer import ExtractiveSummarizer, ModelSummarizer, create_summarizer
from .vector_store import VectorStore, VectorStoreError
from .retrieval_engine import RetrievalEngine, RetrievalSettings
from .answer_service import AnswerService, Answer
from .document_loader import (
    DocumentSource,
    WordPressSource,
    DirectorySource,
    SourceFetchError,
    create_document_source,
)
from .indexer import Indexer, IndexReport

__all__ = [
    'ChunkingEngine', 'TextWindows',
    'EmbeddingModel', 'EmbeddingError', 'LocalEmbeddingModel', 'InferenceAPIEmbeddingModel',
    'create_embedding_model',
    'LLMClient', 'LLMResponse', 'LLMError', 'LLMClientError',
    'ExtractiveSummarizer', 'ModelSummarizer', 'create_summarizer',
    'VectorStore', 'VectorStoreError',
    'RetrievalEngine', 'RetrievalSettings',
    'AnswerService', 'Answer',
    'DocumentSource', 'WordPressSource', 'DirectorySource', 'SourceFetchError',
    'create_document_source',
    'Indexer', 'IndexReport',
]
