"""Unit tests for LogAggregator."""

from fakes import make_project
import pytest

from project_hub.log_aggregator import LogAggregator
from project_hub.store import ProjectStore


class TestLogAggregator:
    """Tests for the combined log view."""

    def test_prefix_and_order(self):
        """Lines keep per-project order and store order, prefixed by name."""
        store = ProjectStore(
            [
                make_project("alpha", logs=["a1", "a2"]),
                make_project("beta", logs=[]),
                make_project("gamma", logs=["g1"]),
            ]
        )

        assert LogAggregator(store).combined_logs() == [
            "[Alpha] a1",
            "[Alpha] a2",
            "[Gamma] g1",
        ]

    def test_empty_store(self):
        """No projects means no lines."""
        assert LogAggregator(ProjectStore()).combined_logs() == []

    def test_recent(self):
        """recent returns the tail of the combined view."""
        store = ProjectStore(
            [make_project("alpha", logs=["a1", "a2"]), make_project("beta", logs=["b1"])]
        )
        logs = LogAggregator(store)

        assert logs.recent(2) == ["[Alpha] a2", "[Beta] b1"]
        assert logs.recent(10) == ["[Alpha] a1", "[Alpha] a2", "[Beta] b1"]
        assert logs.recent(0) == []

    @pytest.mark.asyncio
    async def test_run_then_stop_logs(self, controller, store):
        """Run output and the stop confirmation appear in order, prefixed."""
        await controller.run("alpha")
        await controller.stop("alpha")

        assert LogAggregator(store).combined_logs() == [
            "[Alpha] Executing: python alpha.py",
            "[Alpha] alpha ready",
            "[Alpha] Process alpha-1 stopped.",
        ]

    @pytest.mark.asyncio
    async def test_new_run_resets_project_logs(self, controller, store):
        """A second run replaces the previous session's lines."""
        await controller.run("alpha")
        await controller.stop("alpha")
        await controller.run("alpha")

        lines = LogAggregator(store).combined_logs()
        assert lines == ["[Alpha] Executing: python alpha.py", "[Alpha] alpha ready"]
