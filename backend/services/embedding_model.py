"""Embedding providers: local sentence-transformers or Hugging Face Inference API."""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

import httpx
import numpy as np

from config import (
    EMBEDDING_BACKEND,
    EMBEDDING_MAX_CHARS,
    EMBEDDING_MODEL,
    HUGGINGFACE_API_KEY,
)
from services.single_flight import SingleFlight

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Embedding backend unavailable or input rejected."""


class EmbeddingModel(ABC):
    """
    Maps text to a dense float32 vector.

    The backend (model weights, HTTP client) is created lazily on first use
    and shared by every caller; concurrent first callers wait for the same
    initialization. Construct one instance per process and pass it around.
    """

    def __init__(self, model_name: str = EMBEDDING_MODEL, max_chars: int = EMBEDDING_MAX_CHARS):
        """
        Args:
            model_name: Model identifier
            max_chars: Input is truncated to this many characters before embedding
        """
        self.model_name = model_name
        self.max_chars = max_chars
        self._loader: SingleFlight[Any] = SingleFlight(
            self._initialize, name=f"embedding model {model_name}"
        )

    async def load(self) -> Any:
        """
        Initialize the backend once and return it.

        Raises:
            EmbeddingError: If initialization failed (now or on an earlier call)
        """
        try:
            return await self._loader.get()
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(
                f"Failed to initialize embedding model {self.model_name}: {e}"
            ) from e

    async def embed(self, text: str) -> np.ndarray:
        """
        Generate embedding for a single text string.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as a 1-D float32 array

        Raises:
            EmbeddingError: If text is empty or the backend fails
        """
        if not text or not text.strip():
            raise EmbeddingError("Text cannot be empty")

        backend = await self.load()
        start_time = time.time()
        try:
            raw = await self._encode(backend, text[:self.max_chars])
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding failed: {e}") from e

        vector = np.asarray(raw, dtype=np.float32).reshape(-1)
        if vector.size == 0:
            raise EmbeddingError("Embedding backend returned an empty vector")

        logger.debug(f"Embedded {min(len(text), self.max_chars)} chars in {time.time() - start_time:.3f}s")
        return vector

    async def warmup(self) -> bool:
        """
        Load the model and embed a dummy query so the first real request is fast.

        Returns:
            True if warmup successful, False otherwise
        """
        try:
            logger.info("Warming up embedding model...")
            start_time = time.time()
            await self.embed("warmup query")
            logger.info(f"Model warmup completed in {time.time() - start_time:.1f}s")
            return True
        except EmbeddingError as e:
            logger.error(f"Model warmup failed: {e}")
            return False

    async def aclose(self) -> None:
        """Release backend resources, if any."""

    @abstractmethod
    async def _initialize(self) -> Any:
        """Create the backend object returned by load()."""

    @abstractmethod
    async def _encode(self, backend: Any, text: str) -> Sequence[float]:
        """Embed already-truncated text."""


class LocalEmbeddingModel(EmbeddingModel):
    """In-process sentence-transformers model."""

    def __init__(
        self,
        model_name: str = EMBEDDING_MODEL,
        max_chars: int = EMBEDDING_MAX_CHARS,
        device: str = "cpu",
        normalize: bool = True
    ):
        super().__init__(model_name=model_name, max_chars=max_chars)
        self.device = device
        self.normalize = normalize

    async def _initialize(self) -> Any:
        # Deferred: pulls in torch, only the local backend needs it
        from sentence_transformers import SentenceTransformer

        logger.info(f"Loading sentence-transformers model {self.model_name} on {self.device}")
        model = await asyncio.to_thread(SentenceTransformer, self.model_name, device=self.device)
        logger.info(f"Loaded embedding model {self.model_name}")
        return model

    async def _encode(self, backend: Any, text: str) -> Sequence[float]:
        # CPU-bound; runs to completion on the event loop
        return backend.encode(
            text,
            normalize_embeddings=self.normalize,
            convert_to_numpy=True,
            show_progress_bar=False
        )


class InferenceAPIEmbeddingModel(EmbeddingModel):
    """Hugging Face Inference API feature-extraction endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = HUGGINGFACE_API_KEY,
        model_name: str = EMBEDDING_MODEL,
        max_chars: int = EMBEDDING_MAX_CHARS,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            api_key: Hugging Face API key
            model_name: Model identifier
            max_chars: Input truncation budget
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)

        Raises:
            ValueError: If no API key is available
        """
        if not api_key:
            raise ValueError("HUGGINGFACE_API_KEY environment variable is required")

        super().__init__(model_name=model_name, max_chars=max_chars)
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport
        self.api_url = (
            f"https://router.huggingface.co/hf-inference/models/{model_name}"
            f"/pipeline/feature-extraction"
        )

    async def _initialize(self) -> httpx.AsyncClient:
        logger.info(f"Using Hugging Face Inference API for {self.model_name}")
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json"
            }
        )

    async def _encode(self, backend: httpx.AsyncClient, text: str) -> Sequence[float]:
        payload = {
            "inputs": text,
            "options": {"wait_for_model": True}
        }

        try:
            response = await backend.post(self.api_url, json=payload)
        except httpx.TimeoutException as e:
            raise EmbeddingError(f"Request timeout after {self.timeout}s") from e
        except httpx.RequestError as e:
            raise EmbeddingError(f"Network error: {e}") from e

        if response.status_code == 401:
            logger.error("Authentication failed for Hugging Face API")
            raise EmbeddingError("Invalid API key")

        if response.status_code == 429:
            logger.error("Rate limit exceeded for Hugging Face API")
            raise EmbeddingError("Rate limit exceeded. Please try again later.")

        if response.status_code == 503:
            raise EmbeddingError(f"Model {self.model_name} is loading, try again later")

        if response.status_code != 200:
            raise EmbeddingError(
                f"API request failed with status {response.status_code}: {response.text}"
            )

        try:
            data = np.asarray(response.json(), dtype=np.float32)
        except ValueError as e:
            raise EmbeddingError(f"Unexpected embedding payload: {e}") from e

        # Models without a pooling head return one vector per token
        while data.ndim > 1:
            data = data.mean(axis=0)

        norm = float(np.linalg.norm(data))
        return data / norm if norm else data

    async def aclose(self) -> None:
        if self._loader.ready:
            client = await self._loader.get()
            await client.aclose()


def create_embedding_model(backend: str = EMBEDDING_BACKEND) -> EmbeddingModel:
    """
    Build the configured embedding provider.

    Args:
        backend: "local" (sentence-transformers) or "api" (Hugging Face Inference API)

    Raises:
        ValueError: For an unknown backend name
    """
    if backend == "local":
        return LocalEmbeddingModel()
    if backend == "api":
        return InferenceAPIEmbeddingModel()
    raise ValueError(f"Unknown embedding backend: {backend}")
