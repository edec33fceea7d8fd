"""
Centralized Test Configuration.

Each test gets its own file-backed SQLite database so separate sessions
use separate connections, the way concurrent requests would.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.jwt import create_actor_token
from backend.app.domain.handoff.actor import Actor
from backend.app.models.enums import ActorRole
from backend.app.models.parcel_enums import ParcelStatus
from backend.app.services import event_log, parcel_registry
from backend.app.domain.handoff.authority import TransitionAuthority


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'handoff.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    """Async client for testing, bound to the per-test database."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
def clear_event_subscribers():
    yield
    event_log._subscribers.clear()


# Actors

@pytest.fixture
def admin():
    return Actor(ref="admin-1", role=ActorRole.ADMIN)


@pytest.fixture
def partner():
    return Actor(ref="partner-1", role=ActorRole.PARTNER)


@pytest.fixture
def driver():
    return Actor(ref="driver-1", role=ActorRole.DRIVER)


@pytest.fixture
def system():
    return Actor(ref="dispatcher", role=ActorRole.SYSTEM)


def _auth_headers(actor_ref: str, role: ActorRole) -> dict:
    token = create_actor_token(actor_ref, role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    """Bearer headers for an identity-provider token carrying `sub` and `role`."""
    return _auth_headers


# Parcels

# Shortest legal walk from CREATED to each status, with a role allowed on each edge
PATH_TO_STATUS = [
    (ParcelStatus.FACILITY_RECEIVED, ActorRole.PARTNER),
    (ParcelStatus.IN_TRANSIT_TO_FACILITY_HUB, ActorRole.PARTNER),
    (ParcelStatus.PICKUP_READY, ActorRole.PARTNER),
    (ParcelStatus.ASSIGNED_TO_DRIVER, ActorRole.SYSTEM),
    (ParcelStatus.IN_TRANSIT_TO_PICKUP_POINT, ActorRole.DRIVER),
    (ParcelStatus.OUT_FOR_DELIVERY, ActorRole.DRIVER),
    (ParcelStatus.DELIVERED, ActorRole.DRIVER),
]


async def make_parcel(db, tracking_code=None, **kwargs):
    return await parcel_registry.create_parcel(
        db,
        sender_ref=kwargs.pop("sender_ref", "sender-1"),
        recipient_name=kwargs.pop("recipient_name", "Abebe Kebede"),
        recipient_phone=kwargs.pop("recipient_phone", "+251911000000"),
        tracking_code=tracking_code,
        **kwargs,
    )


async def advance_to(db, parcel, status: ParcelStatus, driver_ref: str = "driver-1"):
    """Walk a parcel forward along the legal path until it reaches `status`."""
    if status == ParcelStatus.CANCELLED:
        await TransitionAuthority.apply(db, parcel.id, status, Actor("admin-1", ActorRole.ADMIN))
        return await parcel_registry.get_by_id(db, parcel.id)

    for target, role in PATH_TO_STATUS:
        if parcel.status == status:
            break
        ref = driver_ref if role == ActorRole.DRIVER else f"{role.value.lower()}-1"
        await TransitionAuthority.apply(
            db,
            parcel.id,
            target,
            Actor(ref, role),
            assigned_driver_ref=driver_ref if target == ParcelStatus.ASSIGNED_TO_DRIVER else None,
        )
        parcel = await parcel_registry.get_by_id(db, parcel.id)
    return parcel


@pytest.fixture
def parcel_factory(db_session):
    async def _make(status: ParcelStatus = ParcelStatus.CREATED, tracking_code=None, **kwargs):
        parcel = await make_parcel(db_session, tracking_code=tracking_code, **kwargs)
        if status != ParcelStatus.CREATED:
            parcel = await advance_to(db_session, parcel, status)
        return parcel
    return _make


@pytest.fixture
def advance(db_session):
    async def _advance(parcel, status: ParcelStatus, driver_ref: str = "driver-1"):
        return await advance_to(db_session, parcel, status, driver_ref=driver_ref)
    return _advance
