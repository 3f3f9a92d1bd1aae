"""Public API Tests for Autovariant."""
from __future__ import annotations

import autovariant as av


class TestPublicAPI:
    """Tests for the top-level package exports."""

    def test_version(self) -> None:
        assert av.__version__ == "0.1.0"

    def test_all_exports_resolve(self) -> None:
        for name in av.__all__:
            assert hasattr(av, name), name

    def test_end_to_end(self) -> None:
        """Registry lookup, execution and tuning through the package API."""
        from fixtures.backend import FakeQueue
        from fixtures.expressions import dot_batch

        queue = FakeQueue()
        model = av.get_model(queue, av.OperationType.REDUCTION, av.NumericType.FLOAT)
        batch = dot_batch(queue.context, size=4096)

        assert model.execute(batch) == av.Choice(0, "default")
        result = model.tune(batch)
        assert isinstance(result, av.TuneResult)
        assert result.best_index == 0
        assert model.overrides == {(4096,): 0}
