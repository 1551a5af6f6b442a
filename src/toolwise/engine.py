"""Wiring of the learning engine from settings.

``LearningEngine.create()`` builds the ChromaDB-backed experience log, the
tool selector, the error analyzer and the recorder that ties them to the
tool catalog, all configured from ``Settings``.
"""

from dataclasses import dataclass

from toolwise.config import Settings, get_settings
from toolwise.learning import (
    ErrorAnalyzer,
    ExperienceRecorder,
    ExperienceStore,
    SemanticStore,
    ToolCatalog,
    ToolSelector,
)
from toolwise.logging import get_logger
from toolwise.memory import VectorStore, get_embedding_provider
from toolwise.tools import ToolRegistry, register_builtin_tools

logger = get_logger("toolwise.engine")


@dataclass
class LearningEngine:
    """All learning components sharing one experience log and tool catalog."""

    settings: Settings
    store: SemanticStore
    catalog: ToolCatalog
    experiences: ExperienceStore
    selector: ToolSelector
    analyzer: ErrorAnalyzer
    recorder: ExperienceRecorder

    @classmethod
    async def create(
        cls,
        settings: Settings | None = None,
        catalog: ToolCatalog | None = None,
        store: SemanticStore | None = None,
    ) -> "LearningEngine":
        """Build and initialize the engine.

        Args:
            settings: Configuration (global settings if None)
            catalog: Tool catalog (a registry with the built-in tools if None)
            store: Semantic store (an initialized ChromaDB store if None)

        Returns:
            LearningEngine: Ready-to-use engine
        """
        settings = settings or get_settings()

        if catalog is None:
            catalog = register_builtin_tools(ToolRegistry())

        if store is None:
            vector_store = VectorStore(
                persist_directory=settings.chroma_path,
                embedding_provider=get_embedding_provider(
                    provider=settings.embedding_provider,
                    model=settings.embedding_model,
                    host=settings.ollama_host,
                ),
                collection_name=settings.chroma_collection,
            )
            await vector_store.initialize()
            store = vector_store

        experiences = ExperienceStore(store)
        selector = ToolSelector(
            experiences,
            catalog,
            exploration_rate=settings.selector_exploration_rate,
            min_confidence=settings.selector_min_confidence,
            min_sample_size=settings.selector_min_sample_size,
            seed=settings.selector_seed,
        )
        analyzer = ErrorAnalyzer(
            experiences,
            min_cluster_size=settings.analyzer_min_cluster_size,
            similarity_threshold=settings.analyzer_similarity_threshold,
            min_confidence=settings.analyzer_min_confidence,
            max_patterns=settings.analyzer_max_patterns,
            query_weight=settings.analyzer_query_weight,
            rescan_interval=settings.analyzer_rescan_interval,
        )
        recorder = ExperienceRecorder(experiences, catalog, analyzer=analyzer)

        logger.info(
            "Learning engine ready",
            tools=len(catalog.list_all()),
            exploration_rate=selector.exploration_rate,
        )

        return cls(
            settings=settings,
            store=store,
            catalog=catalog,
            experiences=experiences,
            selector=selector,
            analyzer=analyzer,
            recorder=recorder,
        )

    async def close(self) -> None:
        """Release the store if it holds resources."""
        close = getattr(self.store, "close", None)
        if close is not None:
            await close()
