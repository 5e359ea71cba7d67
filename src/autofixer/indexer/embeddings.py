"""Embedding generation using Ollama's batch embedding endpoint."""

import asyncio
import logging
from typing import List, Optional

import httpx

from ..exceptions import EmbeddingServiceError

logger = logging.getLogger(__name__)


class OllamaEmbeddings:
    """Generate embeddings using Ollama's local embedding models."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        timeout: Optional[float] = 120.0,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama embeddings client.

        Args:
            host: Ollama API host URL
            model: Name of the embedding model to use
            timeout: Request timeout in seconds (None waits indefinitely)
            max_retries: Attempts for a request answered with a 5xx status
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.host = host.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_loop_id: Optional[int] = None

        logger.debug(f"Initialized Ollama embeddings with model: {model}")

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create an httpx client bound to the running event loop."""
        loop_id = id(asyncio.get_running_loop())
        if self._client is None or self._client_loop_id != loop_id:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
            self._client_loop_id = loop_id
            logger.debug(f"Created new httpx client for event loop {loop_id}")
        return self._client

    async def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed an ordered list of texts in a single request.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text, in input order

        Raises:
            EmbeddingServiceError: If the request fails or the response is out of contract
        """
        if not texts:
            return []

        client = self._get_client()
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                response = await client.post(
                    f"{self.host}/api/embed",
                    json={"model": self.model, "input": texts},
                )
                response.raise_for_status()
                vectors = response.json()["embeddings"]
                break
            except httpx.HTTPStatusError as e:
                last_error = e
                # Retry on 500 errors (server overload) with exponential backoff
                if e.response.status_code >= 500 and attempt < self.max_retries - 1:
                    wait_time = 2**attempt  # 1s, 2s, 4s
                    logger.warning(
                        f"Ollama {e.response.status_code} error "
                        f"(attempt {attempt + 1}/{self.max_retries}), retrying in {wait_time}s..."
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise EmbeddingServiceError(
                    f"Ollama API error {e.response.status_code} embedding {len(texts)} texts"
                ) from e
            except httpx.HTTPError as e:
                raise EmbeddingServiceError(f"Ollama API error: {e}") from e
            except (KeyError, TypeError, ValueError) as e:
                raise EmbeddingServiceError(f"Unexpected embedding response format: {e}") from e
        else:
            raise EmbeddingServiceError(
                f"Embedding failed after {self.max_retries} attempts: {last_error}"
            )

        if not isinstance(vectors, list) or len(vectors) != len(texts):
            raise EmbeddingServiceError(
                f"Expected {len(texts)} embeddings, got "
                f"{len(vectors) if isinstance(vectors, list) else type(vectors).__name__}"
            )

        logger.info(f"Generated {len(vectors)} embeddings with {self.model}")
        return [[float(x) for x in vector] for vector in vectors]

    async def embed_query(self, text: str) -> List[float]:
        """Embed a single query text."""
        return (await self.embed([text]))[0]

    async def health_check(self) -> bool:
        """Check if Ollama is reachable and the model is available.

        Returns:
            True if healthy, False otherwise
        """
        try:
            client = self._get_client()
            response = await client.get(f"{self.host}/api/tags")
            response.raise_for_status()

            model_names = [m["name"] for m in response.json().get("models", [])]
            if self.model not in model_names and f"{self.model}:latest" not in model_names:
                logger.warning(
                    f"Model '{self.model}' not found in Ollama. Available models: {model_names}"
                )
                logger.info(f"Run: ollama pull {self.model}")
                return False

            return True

        except Exception as e:
            logger.error(f"Ollama health check failed: {e}")
            return False

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            try:
                await self._client.aclose()
            except Exception as e:
                logger.warning(f"Error closing httpx client: {e}")
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
