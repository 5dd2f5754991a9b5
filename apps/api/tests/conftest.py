import sys
from dataclasses import dataclass
from pathlib import Path

import pytest
import pytest_asyncio


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from casero_api import models  # noqa: E402,F401
from casero_api.db.base import Base  # noqa: E402
from casero_api.db.session import build_engine, build_session_factory  # noqa: E402
from casero_api.db.store import DocumentStore  # noqa: E402
from casero_api.models import Business, LoyaltyCard, User  # noqa: E402
from casero_api.observability.memberships import get_membership_store  # noqa: E402
from casero_api.services.notifications import InMemoryPushBackend, PushNotifier  # noqa: E402
from casero_api.services.refresh_flags import RefreshFlags  # noqa: E402


@dataclass
class SeedData:
    business: Business
    program: LoyaltyCard
    customer: User
    owner: User


@pytest.fixture(autouse=True)
def reset_membership_metrics():
    get_membership_store().reset()
    yield
    get_membership_store().reset()


@pytest_asyncio.fixture
async def engine(tmp_path):
    # File-backed so concurrent tasks get their own connections.
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'casero.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def store(engine):
    return DocumentStore(build_session_factory(engine))


@pytest.fixture
def push_backend():
    return InMemoryPushBackend()


@pytest_asyncio.fixture
async def notifier(store, push_backend):
    notifier = PushNotifier(store, backend=push_backend)
    yield notifier
    await notifier.drain()


@pytest.fixture
def refresh_flags():
    return RefreshFlags()


@pytest_asyncio.fixture
async def seed(store) -> SeedData:
    owner = await store.add(User, email="owner@example.com", display_name="Lucía", user_type="business")
    customer = await store.add(
        User,
        email="customer@example.com",
        display_name="Mateo",
        push_token="ExponentPushToken[customer-device]",
    )
    business = await store.add(
        Business,
        name="Café Aurora",
        description="Neighbourhood coffee",
        owner_id=owner.id,
        logo_url="https://cdn.example.com/aurora.png",
        categories=["coffee"],
    )
    program = await store.add(
        LoyaltyCard,
        business_id=business.id,
        total_slots=3,
        reward_description="Free flat white",
    )
    return SeedData(business=business, program=program, customer=customer, owner=owner)
