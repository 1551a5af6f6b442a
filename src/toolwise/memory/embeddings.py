"""Embedding providers backing semantic search over experiences.

Experiences are embedded once when recorded and queries once per lookup,
so providers favour low latency for single texts over batch throughput.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

import httpx

from toolwise.logging import get_logger

logger = get_logger("toolwise.memory.embeddings")

DEFAULT_OLLAMA_HOST = "http://localhost:11434"


class EmbeddingError(Exception):
    """Raised when a provider cannot produce an embedding."""

    pass


class EmbeddingProvider(ABC):
    """Turns text into vectors for the vector store."""

    @abstractmethod
    async def embed_text(self, text: str) -> list[float]:
        """Embed one text.

        Raises:
            EmbeddingError: If embedding generation fails
        """
        pass

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts, one vector per text in input order.

        Raises:
            EmbeddingError: If embedding generation fails
        """
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        pass


class OllamaEmbeddings(EmbeddingProvider):
    """Embeddings from a running Ollama server via ``/api/embed``.

    The endpoint takes a list of inputs, so a batch costs a single request.
    """

    KNOWN_DIMENSIONS = {
        "nomic-embed-text": 768,
        "mxbai-embed-large": 1024,
        "snowflake-arctic-embed": 1024,
        "all-minilm": 384,
    }

    def __init__(
        self,
        model: str = "nomic-embed-text",
        host: str = DEFAULT_OLLAMA_HOST,
        timeout: float = 30.0,
    ):
        self._model = model
        self._host = host.rstrip("/")
        self._timeout = timeout
        self._dimension: int | None = None
        logger.info("Using Ollama embeddings", model=model, host=self._host)

    async def _embed(self, inputs: str | list[str]) -> list[list[float]]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{self._host}/api/embed",
                    json={"model": self._model, "input": inputs},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error("Ollama embedding request failed", model=self._model, error=str(e))
            raise EmbeddingError(f"Failed to generate embedding: {e}") from e

        embeddings = data.get("embeddings")
        if not embeddings:
            raise EmbeddingError("No embedding in Ollama response")

        if self._dimension is None:
            self._dimension = len(embeddings[0])
        return embeddings

    async def embed_text(self, text: str) -> list[float]:
        """Embed one text.

        Raises:
            EmbeddingError: On HTTP failure or an empty response
        """
        return (await self._embed(text))[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts in one request.

        Raises:
            EmbeddingError: On HTTP failure, or if the server returns a
                different number of vectors than texts sent
        """
        if not texts:
            return []

        embeddings = await self._embed(texts)
        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Ollama returned {len(embeddings)} embeddings for {len(texts)} inputs"
            )
        return embeddings

    @property
    def dimension(self) -> int:
        """Vector size, from the first response or the known model table.

        Raises:
            EmbeddingError: For an unknown model before any embedding was made
        """
        if self._dimension is None:
            model = self._model.lower()
            self._dimension = next(
                (dim for key, dim in self.KNOWN_DIMENSIONS.items() if key in model), None
            )
            if self._dimension is None:
                raise EmbeddingError(
                    f"Unknown dimension for model '{self._model}'. "
                    "Generate at least one embedding to determine dimension."
                )
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model


class SentenceTransformerEmbeddings(EmbeddingProvider):
    """Local embeddings with sentence-transformers, for offline use.

    The library is imported and the model loaded on first use; encoding
    runs in a worker thread.
    """

    def __init__(self, model: str = "all-MiniLM-L6-v2"):
        self._model_name = model
        self._model: Any = None
        self._dimension: int | None = None

    def _load_model(self) -> None:
        if self._model is not None:
            return

        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise EmbeddingError(
                "sentence-transformers not installed. "
                "Install with: pip install 'toolwise[local]'"
            ) from e

        logger.info("Loading local embedding model", model=self._model_name)
        try:
            self._model = SentenceTransformer(self._model_name)
        except Exception as e:
            raise EmbeddingError(f"Failed to load model '{self._model_name}': {e}") from e
        self._dimension = self._model.get_sentence_embedding_dimension()

    async def _encode(self, inputs: str | list[str], **options: Any) -> Any:
        self._load_model()
        try:
            return await asyncio.to_thread(self._model.encode, inputs, **options)
        except Exception as e:
            logger.error("Local embedding failed", model=self._model_name, error=str(e))
            raise EmbeddingError(f"Embedding failed: {e}") from e

    async def embed_text(self, text: str) -> list[float]:
        return (await self._encode(text)).tolist()

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        vectors = await self._encode(texts, batch_size=32, show_progress_bar=False)
        return [vector.tolist() for vector in vectors]

    @property
    def dimension(self) -> int:
        self._load_model()
        return self._dimension  # type: ignore

    @property
    def model_name(self) -> str:
        return self._model_name


def get_embedding_provider(
    provider: str = "ollama",
    model: str | None = None,
    host: str = DEFAULT_OLLAMA_HOST,
) -> EmbeddingProvider:
    """Build the provider named in settings.

    Args:
        provider: "ollama" or "sentence-transformers"
        model: Model name, or None for the provider's default
        host: Ollama host, ignored by the local provider

    Raises:
        ValueError: If provider is unknown
    """
    if provider == "ollama":
        return OllamaEmbeddings(model=model or "nomic-embed-text", host=host)
    if provider == "sentence-transformers":
        return SentenceTransformerEmbeddings(model=model or "all-MiniLM-L6-v2")
    raise ValueError(
        f"Unknown embedding provider: {provider}. Choose 'ollama' or 'sentence-transformers'."
    )
