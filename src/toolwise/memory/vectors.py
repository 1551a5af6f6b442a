"""ChromaDB-based vector storage for semantic search over experiences."""

import asyncio
import uuid
from pathlib import Path
from typing import Any

import chromadb
from chromadb.config import Settings as ChromaSettings
from pydantic import BaseModel, Field

from toolwise.logging import get_logger
from toolwise.memory.embeddings import EmbeddingProvider

logger = get_logger("toolwise.memory.vectors")


class VectorStoreError(Exception):
    """Exception raised when vector store operations fail."""

    pass


class Document(BaseModel):
    """Document stored in the vector store."""

    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    doc_id: str | None = None


class SearchResult(BaseModel):
    """Result from semantic search."""

    doc_id: str
    content: str
    metadata: dict[str, Any]
    score: float  # Similarity score (0-1, higher is better)
    distance: float  # Raw distance from ChromaDB


class VectorStore:
    """ChromaDB-based vector storage for semantic search.

    Stores serialized records together with flat metadata tags so callers
    can combine similarity search with cheap exact-match filtering.
    """

    def __init__(
        self,
        persist_directory: Path,
        embedding_provider: EmbeddingProvider,
        collection_name: str = "toolwise_experiences",
    ):
        """Initialize the vector store.

        Args:
            persist_directory: Directory to persist ChromaDB data
            embedding_provider: Provider for generating embeddings
            collection_name: Name of the ChromaDB collection
        """
        self._persist_dir = Path(persist_directory).expanduser()
        self._embedding_provider = embedding_provider
        self._collection_name = collection_name
        self._client: chromadb.ClientAPI | None = None
        self._collection: chromadb.Collection | None = None

        logger.info(
            f"Initialized VectorStore: collection='{collection_name}', "
            f"persist_dir={self._persist_dir}"
        )

    async def initialize(self) -> None:
        """Initialize ChromaDB and create/get collection.

        This must be called before using the vector store.

        Raises:
            VectorStoreError: If initialization fails
        """
        try:
            self._persist_dir.mkdir(parents=True, exist_ok=True)

            # ChromaDB is synchronous, keep it off the event loop
            self._client = await asyncio.to_thread(
                chromadb.PersistentClient,
                path=str(self._persist_dir),
                settings=ChromaSettings(
                    anonymized_telemetry=False,
                ),
            )

            self._collection = await asyncio.to_thread(
                self._client.get_or_create_collection,
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
            )

            logger.info(
                f"ChromaDB collection '{self._collection_name}' ready "
                f"(count: {await self._get_count()})"
            )

        except Exception as e:
            logger.error(f"Failed to initialize ChromaDB: {e}")
            raise VectorStoreError(f"Initialization failed: {e}") from e

    def _ensure_initialized(self) -> None:
        """Raise if initialize() has not been called.

        Raises:
            VectorStoreError: If not initialized
        """
        if self._client is None or self._collection is None:
            raise VectorStoreError("VectorStore not initialized. Call initialize() first.")

    async def _get_count(self) -> int:
        if self._collection is None:
            return 0
        return await asyncio.to_thread(self._collection.count)

    async def add_document(
        self,
        content: str,
        metadata: dict[str, Any] | None = None,
        doc_id: str | None = None,
    ) -> str:
        """Add a document to the vector store.

        Args:
            content: Document content (text)
            metadata: Optional flat metadata dictionary
            doc_id: Optional document ID (generated if None)

        Returns:
            str: Document ID

        Raises:
            VectorStoreError: If operation fails
        """
        self._ensure_initialized()

        try:
            if doc_id is None:
                doc_id = str(uuid.uuid4())

            # ChromaDB requires a non-empty metadata dict
            meta = metadata or {"_empty": True}

            logger.debug(f"Generating embedding for document '{doc_id}'")
            embedding = await self._embedding_provider.embed_text(content)

            await asyncio.to_thread(
                self._collection.add,  # type: ignore
                ids=[doc_id],
                embeddings=[embedding],
                documents=[content],
                metadatas=[meta],
            )

            logger.debug(f"Added document '{doc_id}' to collection")
            return doc_id

        except Exception as e:
            logger.error(f"Failed to add document: {e}")
            raise VectorStoreError(f"Failed to add document: {e}") from e

    async def search(
        self,
        query: str,
        limit: int = 10,
        filter: dict[str, Any] | None = None,
    ) -> list[SearchResult]:
        """Semantic search over documents.

        Args:
            query: Search query text
            limit: Maximum number of results
            filter: Optional metadata filter (ChromaDB where clause)

        Returns:
            list[SearchResult]: Search results ordered by relevance

        Raises:
            VectorStoreError: If search fails
        """
        self._ensure_initialized()

        try:
            logger.debug(f"Searching for: '{query[:100]}'")
            query_embedding = await self._embedding_provider.embed_text(query)

            query_params: dict[str, Any] = {
                "query_embeddings": [query_embedding],
                "n_results": limit,
                "include": ["documents", "metadatas", "distances"],
            }
            if filter:
                query_params["where"] = filter

            results = await asyncio.to_thread(
                self._collection.query,  # type: ignore
                **query_params,
            )

        except Exception as e:
            logger.error(f"Search failed: {e}")
            raise VectorStoreError(f"Search failed: {e}") from e

        search_results: list[SearchResult] = []

        if results["ids"] and results["ids"][0]:
            for idx, doc_id in enumerate(results["ids"][0]):
                distance = results["distances"][0][idx]
                search_results.append(
                    SearchResult(
                        doc_id=doc_id,
                        content=results["documents"][0][idx],
                        metadata=results["metadatas"][0][idx] or {},
                        # Cosine distance is 1 - cosine similarity
                        score=max(0.0, 1.0 - distance),
                        distance=distance,
                    )
                )

        logger.debug(f"Found {len(search_results)} results")
        return search_results

    async def get_by_metadata(
        self,
        where: dict[str, Any],
        limit: int = 100,
        order_by: str | None = None,
    ) -> list[Document]:
        """Fetch documents by exact metadata match, without similarity ranking.

        ChromaDB returns ``get`` results in storage order, so a plain
        ``limit`` keeps the oldest records. With ``order_by`` the tags of
        every match are read first and only the ``limit`` records with the
        highest value of that tag are loaded, highest first.

        Args:
            where: ChromaDB where clause
            limit: Maximum number of documents
            order_by: Numeric metadata key to rank matches by, descending

        Returns:
            list[Document]: Matching documents

        Raises:
            VectorStoreError: If the lookup fails
        """
        self._ensure_initialized()

        try:
            if order_by is None:
                result = await asyncio.to_thread(
                    self._collection.get,  # type: ignore
                    where=where,
                    limit=limit,
                    include=["documents", "metadatas"],
                )
            else:
                result = await self._get_top_by_tag(where, limit, order_by)
        except Exception as e:
            logger.error(f"Metadata lookup failed: {e}")
            raise VectorStoreError(f"Metadata lookup failed: {e}") from e

        return [
            Document(
                doc_id=doc_id,
                content=result["documents"][idx],
                metadata=result["metadatas"][idx] or {},
            )
            for idx, doc_id in enumerate(result["ids"])
        ]

    async def _get_top_by_tag(
        self,
        where: dict[str, Any],
        limit: int,
        order_by: str,
    ) -> dict[str, Any]:
        tags = await asyncio.to_thread(
            self._collection.get,  # type: ignore
            where=where,
            include=["metadatas"],
        )

        ranked = sorted(
            zip(tags["ids"], tags["metadatas"]),
            key=lambda item: (item[1] or {}).get(order_by, 0),
            reverse=True,
        )
        top_ids = [doc_id for doc_id, _ in ranked[:limit]]
        if not top_ids:
            return {"ids": [], "documents": [], "metadatas": []}

        loaded = await asyncio.to_thread(
            self._collection.get,  # type: ignore
            ids=top_ids,
            include=["documents", "metadatas"],
        )

        # get(ids=...) does not keep the requested order
        position = {doc_id: idx for idx, doc_id in enumerate(loaded["ids"])}
        order = [position[doc_id] for doc_id in top_ids if doc_id in position]
        return {
            "ids": [loaded["ids"][idx] for idx in order],
            "documents": [loaded["documents"][idx] for idx in order],
            "metadatas": [loaded["metadatas"][idx] for idx in order],
        }

    async def close(self) -> None:
        """Close the ChromaDB client and release resources."""
        if self._client:
            logger.info("Closing ChromaDB client")
            self._client = None
            self._collection = None
