"""Pytest configuration and fixtures for Toolwise tests."""

import shutil
import tempfile
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from pydantic import BaseModel

from toolwise.config import Settings
from toolwise.learning import Experience, ExperienceStore
from toolwise.memory.vectors import Document, SearchResult, VectorStoreError
from toolwise.tools import BaseTool, RiskLevel, ToolRegistry, ToolResult
from toolwise.tools.builtin import EchoTool, MathCalculateTool


@pytest.fixture
def temp_data_dir():
    """Create a temporary data directory for testing."""
    temp_dir = Path(tempfile.mkdtemp())
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def test_settings(temp_data_dir):
    """Create test settings with isolated data directory."""
    return Settings(
        toolwise_data_dir=temp_data_dir,
        toolwise_log_level="DEBUG",
        selector_seed=42,
    )


def _matches_where(metadata: dict[str, Any], where: dict[str, Any] | None) -> bool:
    """Evaluate the subset of ChromaDB where clauses the engine uses."""
    if not where:
        return True
    if "$and" in where:
        return all(_matches_where(metadata, clause) for clause in where["$and"])
    return all(metadata.get(key) == value for key, value in where.items())


class FakeSemanticStore:
    """In-memory semantic store.

    Every stored record is a search hit with ``default_score`` unless a
    per-document score is set in ``scores``. Setting ``fail`` makes every
    call raise, like an unreachable vector store.
    """

    def __init__(self, default_score: float = 1.0):
        self.documents: dict[str, Document] = {}
        self.scores: dict[str, float] = {}
        self.default_score = default_score
        self.fail = False
        self.search_calls: list[dict[str, Any]] = []

    def _check(self) -> None:
        if self.fail:
            raise VectorStoreError("store unavailable")

    async def add_document(
        self,
        content: str,
        metadata: dict[str, Any] | None = None,
        doc_id: str | None = None,
    ) -> str:
        self._check()
        doc_id = doc_id or str(uuid.uuid4())
        self.documents[doc_id] = Document(
            content=content,
            metadata=dict(metadata or {}),
            doc_id=doc_id,
        )
        return doc_id

    async def search(
        self,
        query: str,
        limit: int = 10,
        filter: dict[str, Any] | None = None,
    ) -> list[SearchResult]:
        self._check()
        self.search_calls.append({"query": query, "limit": limit, "filter": filter})

        hits = [
            SearchResult(
                doc_id=doc_id,
                content=doc.content,
                metadata=doc.metadata,
                score=self.scores.get(doc_id, self.default_score),
                distance=1.0 - self.scores.get(doc_id, self.default_score),
            )
            for doc_id, doc in self.documents.items()
            if _matches_where(doc.metadata, filter)
        ]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    async def get_by_metadata(
        self,
        where: dict[str, Any],
        limit: int = 100,
        order_by: str | None = None,
    ) -> list[Document]:
        self._check()
        # Insertion order, like ChromaDB storage order
        matching = [doc for doc in self.documents.values() if _matches_where(doc.metadata, where)]
        if order_by is not None:
            matching.sort(key=lambda doc: doc.metadata.get(order_by, 0), reverse=True)
        return matching[:limit]


@pytest.fixture
def fake_store():
    """Empty in-memory semantic store."""
    return FakeSemanticStore()


@pytest.fixture
def experience_store(fake_store):
    """ExperienceStore over the in-memory semantic store."""
    return ExperienceStore(fake_store)


class GuessCalcParams(BaseModel):
    """Parameters for the flaky calculator."""

    expression: str


class GuessCalcTool(BaseTool[GuessCalcParams]):
    """A calculator that never gets it right."""

    name = "guess_calc"
    description = "Guess the result of an expression"
    risk_level = RiskLevel.LOW
    parameters_schema = GuessCalcParams

    async def execute(self, params: GuessCalcParams) -> ToolResult:
        raise RuntimeError("guess was wrong")


@pytest.fixture
def catalog():
    """Registry with the built-in tools plus a failing calculator."""
    registry = ToolRegistry()
    registry.register(MathCalculateTool())
    registry.register(EchoTool())
    registry.register(GuessCalcTool())
    return registry


@pytest.fixture
def make_experience():
    """Factory for experiences with sensible defaults.

    ``age_s`` moves the timestamp into the past, so ordering is controllable.
    """

    def _make(age_s: float = 0.0, **fields: Any) -> Experience:
        defaults: dict[str, Any] = {
            "query": "compute 2+2",
            "intent": "calculation",
            "reasoning_mode": "react",
            "tool_called": "math_calculate",
            "success": True,
            "confidence": 0.9,
            "latency_ms": 50,
            "timestamp": datetime.now(UTC) - timedelta(seconds=age_s),
        }
        defaults.update(fields)
        return Experience.new(**defaults)

    return _make
