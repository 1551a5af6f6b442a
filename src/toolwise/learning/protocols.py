"""Collaborator contracts consumed by the learning engine.

``VectorStore`` satisfies ``SemanticStore`` and ``ToolRegistry`` satisfies
``ToolCatalog``; tests substitute in-memory implementations.
"""

from typing import Any, Protocol, runtime_checkable

from toolwise.memory.vectors import Document, SearchResult
from toolwise.tools.base import BaseTool


@runtime_checkable
class SemanticStore(Protocol):
    """Persistence plus similarity search for serialized records."""

    async def add_document(
        self,
        content: str,
        metadata: dict[str, Any] | None = None,
        doc_id: str | None = None,
    ) -> str:
        """Store a record with flat metadata tags and return its id."""
        ...

    async def search(
        self,
        query: str,
        limit: int = 10,
        filter: dict[str, Any] | None = None,
    ) -> list[SearchResult]:
        """Return up to ``limit`` records ranked by similarity to ``query``."""
        ...

    async def get_by_metadata(
        self,
        where: dict[str, Any],
        limit: int = 100,
        order_by: str | None = None,
    ) -> list[Document]:
        """Return up to ``limit`` records whose tags match ``where`` exactly.

        With ``order_by`` the records with the highest value of that tag win.
        """
        ...


@runtime_checkable
class ToolCatalog(Protocol):
    """Read-only tool lookup."""

    def list_all(self) -> list[BaseTool]:
        ...

    def get(self, name: str) -> BaseTool | None:
        ...
