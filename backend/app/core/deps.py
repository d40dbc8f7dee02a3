"""
Dependency Injection per la fatturazione
Progetto: Hotel SmartTrack (Billing Ledger)

Costruisce il BillingService per ogni richiesta. Registro dei lock,
soggiorni e archivio in memoria sono unici per processo; con
storage_backend="database" l'archivio usa la sessione della richiesta.
"""

from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends

from app.core.config import Settings, get_settings
from app.core.database import AsyncSessionLocal
from app.core.locks import InvoiceLockRegistry
from app.services.billing_service import BillingService
from app.services.stay_gateway import InMemoryStayGateway
from app.services.storage import (
    InMemoryLedgerStorage,
    LedgerStorage,
    SqlAlchemyLedgerStorage,
)


@lru_cache()
def get_lock_registry() -> InvoiceLockRegistry:
    """Registro dei lock condiviso dal processo."""
    return InvoiceLockRegistry()


@lru_cache()
def get_stay_gateway() -> InMemoryStayGateway:
    """Soggiorni registrati dal checkout, condivisi dal processo."""
    return InMemoryStayGateway(
        default_nightly_rate=get_settings().billing_default_nightly_rate,
    )


@lru_cache()
def get_memory_storage() -> InMemoryLedgerStorage:
    """Archivio in memoria condiviso dal processo."""
    return InMemoryLedgerStorage()


async def get_ledger_storage(
    settings: Settings = Depends(get_settings),
) -> AsyncGenerator[LedgerStorage, None]:
    """
    Unità di lavoro della richiesta.

    Yields:
        LedgerStorage: In memoria, oppure su una sessione database
        aperta per la richiesta e chiusa al termine
    """
    if not settings.uses_database:
        yield get_memory_storage()
        return

    async with AsyncSessionLocal() as session:
        try:
            yield SqlAlchemyLedgerStorage(session)
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_billing_service(
    storage: LedgerStorage = Depends(get_ledger_storage),
    stays: InMemoryStayGateway = Depends(get_stay_gateway),
    locks: InvoiceLockRegistry = Depends(get_lock_registry),
    settings: Settings = Depends(get_settings),
) -> BillingService:
    return BillingService(storage, stays, locks, settings)
