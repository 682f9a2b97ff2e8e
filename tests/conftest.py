import uuid
from datetime import UTC, datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app import database
from app.config import settings
from app.core.background_tasks import background_tasks
from app.core.middleware import transition_limiter
from app.database import Base, get_db
from app.domain.booking_state import BookingStatus, normalize_status
from app.main import app
from app.models import Booking, ServicePro, User
from tests.helpers import INTERNAL_KEY, history_through

# --- Test Database Setup ---
# One shared in-memory connection, so every session (including the ones
# notification tasks open) sees the same database.
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    # Notification tasks must finish before the database goes away.
    await background_tasks.drain(timeout=5)
    await engine.dispose()


@pytest.fixture
def session_maker(engine, monkeypatch):
    """Session factory bound to the test database, also used by background work."""
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    monkeypatch.setattr(database, "async_session_maker", maker)
    return maker


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    monkeypatch.setattr(settings, "internal_api_key", INTERNAL_KEY)
    monkeypatch.setattr(settings, "payment_capture_timeout_seconds", 0.5)


# --- Mocking External Services ---
@pytest.fixture
def gateway(mocker):
    """Payment gateway whose capture succeeds unless a test says otherwise."""
    from app.gateways.base import PaymentResult
    from app.services.gateway_service import gateway_service

    capture = mocker.patch.object(gateway_service, "capture_payment", new_callable=mocker.AsyncMock)
    capture.return_value = PaymentResult(success=True, transaction_id="pi_test_123", status="succeeded")
    verify = mocker.patch.object(gateway_service, "verify_payment", new_callable=mocker.AsyncMock)
    verify.return_value = PaymentResult(
        success=False, transaction_id="pi_test_123", status="requires_capture"
    )
    return gateway_service


# --- API Test Client Fixture ---
@pytest.fixture
async def client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def no_rate_limit():
        return None

    async def drain_notifications(response):
        # Sessions share one connection, so detached notification writes must
        # not overlap the next request.
        await background_tasks.drain(timeout=5)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[transition_limiter] = no_rate_limit

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        event_hooks={"response": [drain_notifications]},
    ) as c:
        yield c

    app.dependency_overrides.clear()


# --- Factories ---
@pytest.fixture
def make_user(db_session):
    async def _make_user(role: str = "customer", is_active: bool = True) -> User:
        user = User(email=f"{uuid.uuid4().hex[:12]}@example.com", role=role, is_active=is_active)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_pro(db_session, make_user):
    async def _make_pro() -> tuple[User, ServicePro]:
        user = await make_user(role="pro")
        pro = ServicePro(user_id=user.id, display_name="Test Pro")
        db_session.add(pro)
        await db_session.commit()
        return user, pro

    return _make_pro


@pytest.fixture
def make_booking(db_session):
    async def _make_booking(
        customer: User,
        pro: ServicePro,
        status: BookingStatus | str = BookingStatus.REQUESTED,
        payment_intent_id: str | None = "pi_test_123",
        payment_status: str = "UNPAID",
        **overrides,
    ) -> Booking:
        raw = status.value if isinstance(status, BookingStatus) else status
        canonical = normalize_status(raw)
        if canonical is None:
            history = [{"status": raw, "at": datetime.now(UTC).isoformat()}]
        else:
            history = history_through(canonical)
            history[-1]["status"] = raw

        booking = Booking(
            customer_id=customer.id,
            pro_id=pro.id,
            status=raw,
            status_history=history,
            payment_intent_id=payment_intent_id,
            payment_status=payment_status,
            **overrides,
        )
        db_session.add(booking)
        await db_session.commit()
        return booking

    return _make_booking


@pytest.fixture
async def parties(make_user, make_pro):
    """A customer and the pro assigned to their bookings."""
    customer = await make_user()
    pro_user, pro = await make_pro()
    return customer, pro_user, pro

