"""
PyTest Configuration for Autovariant Tests

Provides fixtures, markers, and test setup.
"""
import sys
from pathlib import Path

import pytest

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests directory to path for fixtures
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from fixtures.backend import FakeClock, FakeContext, FakeDevice, FakeQueue  # noqa: E402


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "stress: mark test as stress test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep AUTOVARIANT_* settings of the host out of tests."""
    for name in (
        "AUTOVARIANT_MODEL_FILE",
        "AUTOVARIANT_CACHE_DIR",
        "AUTOVARIANT_STRICT_IMPORT",
        "AUTOVARIANT_MAX_FINGERPRINT",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def context() -> FakeContext:
    return FakeContext()


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def queue(context: FakeContext, device: FakeDevice) -> FakeQueue:
    """Queue on the shared test context."""
    return FakeQueue(context=context, device=device)


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    """Fake clock patched in as the tuning timer."""
    fake = FakeClock()
    monkeypatch.setattr("autovariant.model.perf_counter", fake)
    return fake
