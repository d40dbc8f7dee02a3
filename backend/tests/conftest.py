"""
Pytest configuration and fixtures per i test del Billing Ledger.

Gli archivi in memoria sono ricreati per ogni test; i test SQL usano
SQLite in memoria tramite aiosqlite.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.locks import InvoiceLockRegistry
from app.models import Base
from app.schemas.stay import IncidentalChargeSnapshot, RoomSnapshot, StaySnapshot
from app.services.billing_service import BillingService
from app.services.stay_gateway import InMemoryStayGateway
from app.services.storage import InMemoryLedgerStorage, SqlAlchemyLedgerStorage


# ============================================================
# Helper per soggiorni
# ============================================================


def build_stay(
    stay_id: int = 1,
    nightly_rate: Optional[Decimal] = Decimal("150.00"),
    extras: Optional[List[Decimal]] = None,
    check_in: Optional[datetime] = None,
    check_out: Optional[datetime] = None,
    guest_id: Optional[int] = 10,
    reservation_id: Optional[int] = 100,
    with_room: bool = True,
) -> StaySnapshot:
    """Soggiorno di una notte (1 → 2 marzo 2024) con camera da 150 e 50 di extra."""
    if extras is None:
        extras = [Decimal("50.00")]
    if check_in is None:
        check_in = datetime(2024, 3, 1, 15, 0, tzinfo=timezone.utc)
    if check_out is None:
        check_out = datetime(2024, 3, 2, 11, 0, tzinfo=timezone.utc)

    room = None
    if with_room:
        room = RoomSnapshot(room_id=7, room_number="101", nightly_rate=nightly_rate)

    return StaySnapshot(
        stay_id=stay_id,
        reservation_id=reservation_id,
        guest_id=guest_id,
        room=room,
        check_in_time=check_in,
        check_out_time=check_out,
        incidental_charges=[
            IncidentalChargeSnapshot(
                charge_id=i + 1,
                service_type="Minibar",
                description="Consumazioni",
                amount=amount,
            )
            for i, amount in enumerate(extras)
        ],
    )


# ============================================================
# Fixtures per impostazioni e collaboratori
# ============================================================


@pytest.fixture
def settings() -> Settings:
    """Impostazioni di test: aliquota 10%, tariffa di default 100."""
    return Settings(
        _env_file=None,
        app_env="testing",
        storage_backend="memory",
        billing_tax_rate=Decimal("0.10"),
        billing_default_nightly_rate=Decimal("100.00"),
    )


@pytest.fixture
def stay_gateway() -> InMemoryStayGateway:
    """Gateway con il soggiorno 1 già registrato."""
    gateway = InMemoryStayGateway(default_nightly_rate=Decimal("100.00"))
    gateway.register(build_stay())
    return gateway


@pytest.fixture
def locks() -> InvoiceLockRegistry:
    return InvoiceLockRegistry()


@pytest.fixture
def memory_storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage()


@pytest.fixture
def billing_service(memory_storage, stay_gateway, locks, settings) -> BillingService:
    """BillingService su archivi in memoria."""
    return BillingService(memory_storage, stay_gateway, locks, settings)


# ============================================================
# Fixtures per database SQLite (aiosqlite)
# ============================================================


@pytest.fixture
async def sql_session() -> AsyncGenerator[AsyncSession, None]:
    """Sessione su SQLite in memoria con le tabelle del ledger create."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def sql_billing_service(sql_session, stay_gateway, locks, settings) -> BillingService:
    """BillingService su archivi SQLAlchemy."""
    return BillingService(SqlAlchemyLedgerStorage(sql_session), stay_gateway, locks, settings)


@pytest.fixture
def stay_factory():
    """Costruttore di soggiorni di test (vedi build_stay)."""
    return build_stay
