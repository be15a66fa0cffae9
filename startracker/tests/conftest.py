import pytest

from startracker.config import Settings
from startracker.container import build_services
from startracker.store import Store
from startracker.tables import RedemptionRow


@pytest.fixture
def services():
    """Fresh in-memory store with no seeded data."""
    store = Store("sqlite://")
    yield build_services(Settings(database_url="sqlite://", seed_defaults=False), store)
    store.dispose()


@pytest.fixture
def family(services):
    """One admin parent and two children."""
    return {
        "dad": services.users.add_user("dad", "secret", is_admin=True),
        "theo": services.users.add_user("theo", "secret"),
        "ray": services.users.add_user("ray", "secret"),
    }


@pytest.fixture
def floating_redemption(services):
    """Insert a redemption without a cost snapshot, as older stores hold them."""

    def insert(user_id: int, reward_id: int) -> int:
        with services.store.session() as s:
            row = RedemptionRow(user_id=user_id, reward_id=reward_id, cost=None)
            s.add(row)
            s.flush()
            return row.id

    return insert
