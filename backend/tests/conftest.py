"""
Pytest fixtures for test database, client, and authentication.

Each test gets its own SQLite file so concurrent sessions really are
separate connections. The lock strategy singleton is rebuilt per test
because asyncio locks belong to the event loop that created them.
"""

import os

# Must be set before settlement.* reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./settlement_test.db")
os.environ.setdefault("LOCK_STRATEGY", "local")

from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from settlement.main import app
from settlement.db.base import Base
from settlement.db.session import get_db
from settlement.core.security import Caller, create_access_token
from settlement.models.enums import PaymentModel
from settlement.models.event import Event
from settlement.models.ticket_tier import TicketTier
from settlement.models.user import User
from settlement.schemas.order import OrderCreate
from settlement.schemas.seating import SeatingChartCreate
from settlement.services import order_service, seat_service
from settlement.services.strategy_factory import reset_lock_strategy


@pytest_asyncio.fixture
async def engine(tmp_path):
    await reset_lock_strategy()
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'settlement.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()
    await reset_lock_strategy()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get a fresh session on the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _add_user(db: AsyncSession, email: str, name: str, role: str) -> User:
    user = User(email=email, name=name, role=role)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def organizer(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "organizer@example.com", "Olivia Organizer", "organizer")


@pytest_asyncio.fixture
async def other_organizer(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "rival@example.com", "Rita Rival", "organizer")


@pytest_asyncio.fixture
async def buyer(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "buyer@example.com", "Ben Buyer", "user")


@pytest.fixture
def organizer_caller(organizer: User) -> Caller:
    return Caller(user_id=organizer.id, role="organizer")


@pytest.fixture
def buyer_caller(buyer: User) -> Caller:
    return Caller(user_id=buyer.id, role="user")


@pytest.fixture
def system_caller() -> Caller:
    return Caller.system()


def _headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def organizer_headers(organizer: User) -> dict:
    return _headers(create_access_token(data={"sub": str(organizer.id), "role": "organizer"}))


@pytest.fixture
def buyer_headers(buyer: User) -> dict:
    return _headers(create_access_token(data={"sub": str(buyer.id)}))


@pytest.fixture
def system_headers() -> dict:
    return _headers(create_access_token(data={"role": "system"}))


@pytest_asyncio.fixture
async def event(db_session: AsyncSession, organizer: User) -> Event:
    """A pay-as-you-sell event, so tier capacity costs no credits."""
    event = Event(
        title="Spring Gala",
        organizer_id=organizer.id,
        payment_model=PaymentModel.PAY_AS_SELL.value,
    )
    db_session.add(event)
    await db_session.commit()
    await db_session.refresh(event)
    return event


@pytest_asyncio.fixture
async def tier(db_session: AsyncSession, event: Event) -> TicketTier:
    """General admission: 10 tickets at $50.00."""
    tier = TicketTier(event_id=event.id, name="General", price_cents=5000, quantity=10, sold=0, version=1)
    db_session.add(tier)
    await db_session.commit()
    await db_session.refresh(tier)
    return tier


@pytest_asyncio.fixture
async def chart(db_session: AsyncSession, organizer_caller: Caller, event: Event):
    """One section, row A with four seats (A4 blocked) and table T1 with two."""
    chart_data = SeatingChartCreate.model_validate({
        "name": "Main Hall",
        "seating_style": "MIXED",
        "sections": [
            {
                "id": "main",
                "name": "Main Floor",
                "rows": [
                    {
                        "id": "A",
                        "label": "A",
                        "seats": [
                            {"id": "A1", "number": "1"},
                            {"id": "A2", "number": "2"},
                            {"id": "A3", "number": "3", "type": "WHEELCHAIR"},
                            {"id": "A4", "number": "4", "type": "BLOCKED"},
                        ],
                    }
                ],
                "tables": [
                    {
                        "id": "T1",
                        "number": "1",
                        "seats": [{"id": "T1-1", "number": "1"}, {"id": "T1-2", "number": "2"}],
                    }
                ],
            }
        ],
    })
    return await seat_service.create_seating_chart(db_session, organizer_caller, event.id, chart_data)


@pytest.fixture
def checkout(db_session: AsyncSession, buyer_caller: Caller, system_caller: Caller):
    """Create an order for one tier and complete it; returns the CompletionResult."""

    async def _checkout(
        event: Event,
        tier: TicketTier,
        quantity: int = 1,
        seats: Optional[list[dict]] = None,
        referral_code: Optional[str] = None,
        caller: Optional[Caller] = None,
    ):
        order = await order_service.create_order(
            db_session,
            caller or buyer_caller,
            OrderCreate(
                event_id=event.id,
                ticket_tier_id=tier.id,
                quantity=quantity,
                selected_seats=seats,
                referral_code=referral_code,
            ),
        )
        return await order_service.complete_order(
            db_session, system_caller, order.id, f"pi_{order.id}", "card"
        )

    return _checkout
