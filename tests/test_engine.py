"""Tests for wiring the learning engine from settings."""

import pytest

from toolwise.config import Settings
from toolwise.engine import LearningEngine
from toolwise.learning import DecisionStrategy
from toolwise.memory import VectorStore


class TestLearningEngine:
    """Tests for LearningEngine.create."""

    @pytest.mark.asyncio
    async def test_components_follow_settings(self, temp_data_dir, fake_store):
        settings = Settings(
            toolwise_data_dir=temp_data_dir,
            selector_exploration_rate=0.0,
            selector_min_sample_size=5,
            analyzer_min_cluster_size=4,
            analyzer_max_patterns=12,
        )

        engine = await LearningEngine.create(settings=settings, store=fake_store)

        assert engine.store is fake_store
        assert engine.selector.exploration_rate == 0.0
        assert engine.selector.min_sample_size == 5
        assert engine.analyzer.min_cluster_size == 4
        assert engine.analyzer.max_patterns == 12
        assert engine.catalog.get_tool_names() == ["math_calculate", "echo"]

    @pytest.mark.asyncio
    async def test_end_to_end_learning(self, test_settings, fake_store):
        settings = test_settings.model_copy(update={"selector_exploration_rate": 0.0})
        engine = await LearningEngine.create(settings=settings, store=fake_store)

        for expression in ("1+1", "2*3", "10-4"):
            await engine.recorder.run_tool(
                "echo", {"message": expression}, query=f"compute {expression}", intent="calculation"
            )

        rec = await engine.selector.recommend_tool("compute 5+5", "calculation")

        assert rec.decision_strategy == DecisionStrategy.LEARNED
        assert rec.tool_name == "echo"
        assert rec.sample_size == 3

    @pytest.mark.asyncio
    async def test_uses_custom_catalog(self, test_settings, fake_store, catalog):
        engine = await LearningEngine.create(
            settings=test_settings, catalog=catalog, store=fake_store
        )

        assert engine.catalog is catalog
        assert "guess_calc" in engine.catalog

    @pytest.mark.asyncio
    async def test_default_store_is_chroma(self, test_settings):
        engine = await LearningEngine.create(settings=test_settings)

        try:
            assert isinstance(engine.store, VectorStore)
            assert test_settings.chroma_path.exists()
        finally:
            await engine.close()
