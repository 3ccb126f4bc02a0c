import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import tradeup`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


@pytest.fixture(autouse=True)
def _fresh_config():
    from tradeup.config import get_config_manager
    from tradeup.observability import configure_logging

    get_config_manager().reset()
    yield
    get_config_manager().reset()
    configure_logging()


@pytest.fixture
def clock():
    from tradeup.status import ManualClock

    return ManualClock(start=0)


@pytest.fixture
def class_a():
    from tradeup.custody import InMemoryAssetCollection

    collection = InMemoryAssetCollection("ClassA")
    collection.mint("X", 1)
    collection.mint("Z", 7)
    return collection


@pytest.fixture
def class_b():
    from tradeup.custody import InMemoryAssetCollection

    collection = InMemoryAssetCollection("ClassB")
    collection.mint("Y", 42)
    collection.mint("W", 43)
    return collection


@pytest.fixture
def escrow(class_a, class_b, clock):
    """Start with ClassA #1, finish with any ClassB, expire at t=100."""
    from tradeup.assets import AssetSpec
    from tradeup.escrow import TradeUpEscrow

    return TradeUpEscrow.create(
        starting=AssetSpec(class_a, 1),
        final=AssetSpec.any_of(class_b),
        ttl_seconds=100,
        clock=clock,
        address="escrow-under-test",
    )
