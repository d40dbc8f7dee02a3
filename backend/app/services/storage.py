"""
Unità di lavoro del ledger
Progetto: Hotel SmartTrack (Billing Ledger)

Raggruppa archivio fatture e archivio pagamenti con commit/rollback,
così il facade tratta allo stesso modo memoria e database.
"""

import logging
from abc import ABC, abstractmethod

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.invoice_store import (
    InMemoryInvoiceStore,
    InvoiceStore,
    SqlAlchemyInvoiceStore,
)
from app.services.payment_ledger import (
    InMemoryPaymentStore,
    PaymentStore,
    SqlAlchemyPaymentStore,
)

logger = logging.getLogger(__name__)


class LedgerStorage(ABC):
    """Archivi del ledger e confini della transazione."""

    invoices: InvoiceStore
    payments: PaymentStore

    @abstractmethod
    async def commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        pass


class InMemoryLedgerStorage(LedgerStorage):
    """
    Archivi in processo, condivisi da tutte le richieste.

    Le scritture sono immediate: ogni operazione valida tutto prima di
    scrivere, quindi commit e rollback non hanno nulla da fare.
    """

    def __init__(self) -> None:
        self.invoices = InMemoryInvoiceStore()
        self.payments = InMemoryPaymentStore()

    async def commit(self) -> None:
        return None

    async def rollback(self) -> None:
        return None


class SqlAlchemyLedgerStorage(LedgerStorage):
    """Archivi sulla sessione della richiesta; commit/rollback sulla sessione."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.invoices = SqlAlchemyInvoiceStore(db)
        self.payments = SqlAlchemyPaymentStore(db)

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()
        logger.debug("Transazione del ledger annullata")
