"""
Archivio delle fatture
Progetto: Hotel SmartTrack (Billing Ledger)

InvoiceStore è il contratto; le implementazioni sono:
- InMemoryInvoiceStore: arena in processo con indice id → posizione
- SqlAlchemyInvoiceStore: tabella invoices tramite AsyncSession

Entrambe restituiscono istanze del modello Invoice. L'archivio in memoria
restituisce copie: una modifica diventa visibile solo dopo update().
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError
from app.models.invoice import Invoice
from app.models.mixins import copy_row, utc_now

logger = logging.getLogger(__name__)


def prepare_new_invoice(invoice: Invoice) -> Invoice:
    """Valori di default alla creazione: stato UNPAID, importi a zero, emissione adesso."""
    zero = Decimal("0.00")
    for field in (
        "room_charges",
        "incidental_charges",
        "taxes",
        "discounts",
        "total_amount",
        "amount_paid",
    ):
        if getattr(invoice, field) is None:
            setattr(invoice, field, zero)
    if invoice.outstanding_balance is None:
        invoice.outstanding_balance = max(invoice.total_amount - invoice.amount_paid, zero)
    if invoice.status is None:
        invoice.status = "UNPAID"
    now = utc_now()
    if invoice.issued_time is None:
        invoice.issued_time = now
    invoice.created_at = invoice.created_at or now
    invoice.updated_at = now
    return invoice


class InvoiceStore(ABC):
    """
    Contratto dell'archivio fatture.
    """

    @abstractmethod
    async def create(self, invoice: Invoice) -> Invoice:
        """Assegna un nuovo id e salva la fattura. Restituisce la fattura salvata."""
        pass

    @abstractmethod
    async def update(self, invoice: Invoice) -> Invoice:
        """Sovrascrive una fattura esistente. NotFoundError se l'id è sconosciuto."""
        pass

    @abstractmethod
    async def find_by_id(
        self,
        invoice_id: int,
        for_update: bool = False,
    ) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def find_by_stay_id(self, stay_id: int) -> Optional[Invoice]:
        """Prima fattura (per id) del soggiorno."""
        pass

    @abstractmethod
    async def find_by_reservation_id(self, reservation_id: int) -> List[Invoice]:
        pass

    @abstractmethod
    async def find_by_guest_id(self, guest_id: int) -> List[Invoice]:
        pass

    @abstractmethod
    async def find_by_status(self, status: str) -> List[Invoice]:
        """Fatture nello stato indicato (confronto case-insensitive)."""
        pass

    @abstractmethod
    async def find_all(self) -> List[Invoice]:
        """Tutte le fatture ordinate per id."""
        pass


# ------------------------------------------------------------
# Implementazione in memoria
# ------------------------------------------------------------

class InMemoryInvoiceStore(InvoiceStore):
    """
    Fatture tenute in una lista (arena) con indice id → posizione.

    Gli id crescono in modo monotono e non vengono mai riutilizzati.
    L'asyncio.Lock protegge arena, indice e contatore.
    """

    def __init__(self) -> None:
        self._arena: List[Invoice] = []
        self._index: Dict[int, int] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def create(self, invoice: Invoice) -> Invoice:
        async with self._lock:
            stored = prepare_new_invoice(copy_row(invoice))
            stored.id = self._next_id
            self._next_id += 1
            self._index[stored.id] = len(self._arena)
            self._arena.append(stored)
            return copy_row(stored)

    async def update(self, invoice: Invoice) -> Invoice:
        async with self._lock:
            position = self._index.get(invoice.id) if invoice.id is not None else None
            if position is None:
                raise NotFoundError(f"Fattura {invoice.id} non trovata")
            stored = copy_row(invoice)
            # Campi immutabili
            stored.issued_time = self._arena[position].issued_time
            stored.created_at = self._arena[position].created_at
            stored.updated_at = utc_now()
            self._arena[position] = stored
            return copy_row(stored)

    async def find_by_id(
        self,
        invoice_id: int,
        for_update: bool = False,
    ) -> Optional[Invoice]:
        position = self._index.get(invoice_id)
        if position is None:
            return None
        return copy_row(self._arena[position])

    async def find_by_stay_id(self, stay_id: int) -> Optional[Invoice]:
        for invoice in self._arena:
            if invoice.stay_id == stay_id:
                return copy_row(invoice)
        return None

    async def find_by_reservation_id(self, reservation_id: int) -> List[Invoice]:
        return [copy_row(i) for i in self._arena if i.reservation_id == reservation_id]

    async def find_by_guest_id(self, guest_id: int) -> List[Invoice]:
        return [copy_row(i) for i in self._arena if i.guest_id == guest_id]

    async def find_by_status(self, status: str) -> List[Invoice]:
        wanted = status.upper()
        return [copy_row(i) for i in self._arena if i.status.upper() == wanted]

    async def find_all(self) -> List[Invoice]:
        return [copy_row(i) for i in self._arena]


# ------------------------------------------------------------
# Implementazione SQLAlchemy
# ------------------------------------------------------------

class SqlAlchemyInvoiceStore(InvoiceStore):
    """
    Fatture sulla tabella invoices.

    Non esegue commit: la transazione è gestita da SqlAlchemyLedgerStorage.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create(self, invoice: Invoice) -> Invoice:
        invoice.id = None
        prepare_new_invoice(invoice)
        self.db.add(invoice)
        try:
            await self.db.flush()
        except IntegrityError as e:
            logger.error(f"Errore di integrità creando la fattura: {e}")
            raise ConflictError("Impossibile salvare la fattura: vincoli violati")
        return invoice

    async def update(self, invoice: Invoice) -> Invoice:
        if invoice.id is None:
            raise NotFoundError("Fattura senza id: impossibile aggiornarla")

        if invoice not in self.db:
            existing = await self.db.get(Invoice, invoice.id)
            if existing is None:
                raise NotFoundError(f"Fattura {invoice.id} non trovata")
            invoice = await self.db.merge(invoice)

        try:
            await self.db.flush()
        except IntegrityError as e:
            logger.error(f"Errore di integrità aggiornando la fattura {invoice.id}: {e}")
            raise ConflictError(f"Impossibile aggiornare la fattura {invoice.id}")
        return invoice

    async def find_by_id(
        self,
        invoice_id: int,
        for_update: bool = False,
    ) -> Optional[Invoice]:
        query = select(Invoice).where(Invoice.id == invoice_id)
        if for_update:
            # Lock di riga per tutta la transazione
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_by_stay_id(self, stay_id: int) -> Optional[Invoice]:
        query = (
            select(Invoice)
            .where(Invoice.stay_id == stay_id)
            .order_by(Invoice.id)
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_by_reservation_id(self, reservation_id: int) -> List[Invoice]:
        query = (
            select(Invoice)
            .where(Invoice.reservation_id == reservation_id)
            .order_by(Invoice.id)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_by_guest_id(self, guest_id: int) -> List[Invoice]:
        query = select(Invoice).where(Invoice.guest_id == guest_id).order_by(Invoice.id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_by_status(self, status: str) -> List[Invoice]:
        query = (
            select(Invoice)
            .where(func.upper(Invoice.status) == status.upper())
            .order_by(Invoice.id)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_all(self) -> List[Invoice]:
        result = await self.db.execute(select(Invoice).order_by(Invoice.id))
        return list(result.scalars().all())
