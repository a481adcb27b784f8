"""LLM Client for OpenAI-compatible chat completion servers (llama.cpp, Groq, ...)."""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from config import LLM_API_KEY, LLM_BASE, LLM_MODEL

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM generation."""
    text: str
    latency_ms: int
    model_used: str
    tokens_input: Optional[int] = None
    tokens_output: Optional[int] = None


@dataclass
class LLMError:
    """Structured error response from LLM operations."""
    code: str
    message: str
    details: Dict[str, Any]


class LLMClientError(Exception):
    """Custom exception for LLM client errors with structured error information."""

    def __init__(self, error: LLMError):
        self.error = error
        super().__init__(error.message)


class LLMClient:
    """Client for a chat completions endpoint, one request per call, no retries."""

    def __init__(
        self,
        base_url: str = LLM_BASE,
        api_key: Optional[str] = LLM_API_KEY,
        model: str = LLM_MODEL,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize LLM client.

        Args:
            base_url: API root, e.g. http://127.0.0.1:8080/v1
            api_key: Bearer token sent with every request
            model: Model name put in the request body
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.url = f"{self.base_url}/chat/completions"

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        # Per-call deadline is enforced in generate(); no client-level timeout
        self.client = httpx.AsyncClient(headers=headers, timeout=None, transport=transport)
        logger.info(f"LLMClient initialized: url={self.url}, model={model}")

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 600,
        temperature: float = 0.2,
        timeout: float = 25.0
    ) -> LLMResponse:
        """
        Generate a completion for a system + user message pair.

        Args:
            system_prompt: Instruction for the system role
            user_prompt: Content of the user turn
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            timeout: Wall-clock budget in seconds; the request is aborted when exceeded

        Returns:
            LLMResponse with text and latency

        Raises:
            LLMClientError: Structured error with code, message, and details
        """
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt}
            ],
            "max_tokens": max_tokens,
            "temperature": temperature
        }

        start_time = time.time()
        logger.debug(f"Generating response with model: {self.model}")

        try:
            response = await asyncio.wait_for(self.client.post(self.url, json=body), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise self._error(
                "TIMEOUT_ERROR", f"Request timed out after {timeout}s", start_time, e
            ) from e
        except httpx.TimeoutException as e:
            raise self._error("TIMEOUT_ERROR", "Request timed out", start_time, e) from e
        except httpx.RequestError as e:
            raise self._error(
                "NETWORK_ERROR", f"Could not reach LLM server: {e}", start_time, e
            ) from e

        if not response.is_success:
            raise self._error(
                "HTTP_ERROR",
                f"LLM HTTP {response.status_code}: {response.text}",
                start_time,
                status_code=response.status_code,
                body=response.text
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise self._error("INVALID_RESPONSE", "LLM returned invalid JSON", start_time, e) from e

        text = self.extract_text(payload)
        if not text:
            raise self._error("EMPTY_RESPONSE", "LLM returned empty text", start_time)

        latency_ms = int((time.time() - start_time) * 1000)
        usage = payload.get("usage") or {}

        logger.info(
            f"Generated response: model={self.model}, "
            f"input_tokens={usage.get('prompt_tokens')}, output_tokens={usage.get('completion_tokens')}, "
            f"latency={latency_ms}ms"
        )

        return LLMResponse(
            text=text,
            latency_ms=latency_ms,
            model_used=payload.get("model") or self.model,
            tokens_input=usage.get("prompt_tokens"),
            tokens_output=usage.get("completion_tokens")
        )

    @staticmethod
    def extract_text(payload: Any) -> str:
        """
        Pull the generated text out of a completion payload.

        Accepts both `choices[0].message.content` and the flat
        `choices[0].text` shape some llama.cpp builds return.
        """
        if not isinstance(payload, dict):
            return ""
        choices = payload.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return ""

        choice = choices[0]
        message = choice.get("message") or {}
        from_message = message.get("content") if isinstance(message, dict) else None
        from_text = choice.get("text")

        for candidate in (from_message, from_text):
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()
        return ""

    def _error(
        self,
        code: str,
        message: str,
        start_time: float,
        original: Optional[BaseException] = None,
        **details: Any
    ) -> LLMClientError:
        latency_ms = int((time.time() - start_time) * 1000)
        error = LLMError(
            code=code,
            message=message,
            details={
                "model": self.model,
                "latency_ms": latency_ms,
                **details,
                **({"original_error": str(original)} if original else {})
            }
        )
        logger.error(
            f"LLM error {code}: model={self.model}, latency={latency_ms}ms, error={message}",
            extra={"error_code": error.code, "error_details": error.details}
        )
        return LLMClientError(error)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()
