"""
Registro dei pagamenti
Progetto: Hotel SmartTrack (Billing Ledger)

Contiene:
- PaymentStore: contratto dell'archivio pagamenti (in memoria e SQLAlchemy)
- PaymentLedger: registrazione e rimborso, sempre seguiti dalla
  riconciliazione della fattura

Il chiamante è responsabile del lock per fattura e della transazione
(vedi BillingService).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ConflictError,
    ExceedsBalanceError,
    InvalidAmountError,
    InvalidStateError,
    NotFoundError,
)
from app.models.invoice import Payment
from app.models.mixins import copy_row, utc_now
from app.schemas.invoice import PaymentStatus
from app.services.balance_reconciler import BalanceReconciler
from app.services.charge_calculator import is_whole_cents, to_money
from app.services.invoice_store import InvoiceStore

logger = logging.getLogger(__name__)


class PaymentStore(ABC):
    """
    Contratto dell'archivio pagamenti.
    """

    @abstractmethod
    async def add(self, payment: Payment) -> Payment:
        """Assegna un nuovo id e salva il pagamento."""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """Sovrascrive un pagamento esistente. NotFoundError se sconosciuto."""
        pass

    @abstractmethod
    async def find_by_id(self, payment_id: int) -> Optional[Payment]:
        pass

    @abstractmethod
    async def list_by_invoice(self, invoice_id: int) -> List[Payment]:
        """Pagamenti della fattura in ordine di registrazione (id)."""
        pass

    @abstractmethod
    async def find_by_idempotency_key(
        self,
        invoice_id: int,
        idempotency_key: str,
    ) -> Optional[Payment]:
        pass

    @abstractmethod
    async def find_all(self) -> List[Payment]:
        pass


# ------------------------------------------------------------
# Implementazione in memoria
# ------------------------------------------------------------

class InMemoryPaymentStore(PaymentStore):
    """Pagamenti in una lista con indice id → posizione, come InMemoryInvoiceStore."""

    def __init__(self) -> None:
        self._arena: List[Payment] = []
        self._index: Dict[int, int] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def add(self, payment: Payment) -> Payment:
        async with self._lock:
            stored = copy_row(payment)
            stored.id = self._next_id
            self._next_id += 1
            now = utc_now()
            stored.created_at = now
            stored.updated_at = now
            self._index[stored.id] = len(self._arena)
            self._arena.append(stored)
            return copy_row(stored)

    async def update(self, payment: Payment) -> Payment:
        async with self._lock:
            position = self._index.get(payment.id) if payment.id is not None else None
            if position is None:
                raise NotFoundError(f"Pagamento {payment.id} non trovato")
            stored = copy_row(payment)
            stored.created_at = self._arena[position].created_at
            stored.updated_at = utc_now()
            self._arena[position] = stored
            return copy_row(stored)

    async def find_by_id(self, payment_id: int) -> Optional[Payment]:
        position = self._index.get(payment_id)
        if position is None:
            return None
        return copy_row(self._arena[position])

    async def list_by_invoice(self, invoice_id: int) -> List[Payment]:
        return [copy_row(p) for p in self._arena if p.invoice_id == invoice_id]

    async def find_by_idempotency_key(
        self,
        invoice_id: int,
        idempotency_key: str,
    ) -> Optional[Payment]:
        for payment in self._arena:
            if payment.invoice_id == invoice_id and payment.idempotency_key == idempotency_key:
                return copy_row(payment)
        return None

    async def find_all(self) -> List[Payment]:
        return [copy_row(p) for p in self._arena]


# ------------------------------------------------------------
# Implementazione SQLAlchemy
# ------------------------------------------------------------

class SqlAlchemyPaymentStore(PaymentStore):
    """Pagamenti sulla tabella payments. Nessun commit qui."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def add(self, payment: Payment) -> Payment:
        payment.id = None
        self.db.add(payment)
        try:
            await self.db.flush()
        except IntegrityError as e:
            logger.error(f"Errore di integrità registrando il pagamento: {e}")
            raise ConflictError("Impossibile registrare il pagamento: vincoli violati")
        return payment

    async def update(self, payment: Payment) -> Payment:
        if payment.id is None:
            raise NotFoundError("Pagamento senza id: impossibile aggiornarlo")

        if payment not in self.db:
            existing = await self.db.get(Payment, payment.id)
            if existing is None:
                raise NotFoundError(f"Pagamento {payment.id} non trovato")
            payment = await self.db.merge(payment)

        await self.db.flush()
        return payment

    async def find_by_id(self, payment_id: int) -> Optional[Payment]:
        result = await self.db.execute(select(Payment).where(Payment.id == payment_id))
        return result.scalar_one_or_none()

    async def list_by_invoice(self, invoice_id: int) -> List[Payment]:
        query = select(Payment).where(Payment.invoice_id == invoice_id).order_by(Payment.id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_by_idempotency_key(
        self,
        invoice_id: int,
        idempotency_key: str,
    ) -> Optional[Payment]:
        query = (
            select(Payment)
            .where(
                Payment.invoice_id == invoice_id,
                Payment.idempotency_key == idempotency_key,
            )
            .order_by(Payment.id)
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_all(self) -> List[Payment]:
        result = await self.db.execute(select(Payment).order_by(Payment.id))
        return list(result.scalars().all())


# ------------------------------------------------------------
# Operazioni del ledger
# ------------------------------------------------------------

class PaymentLedger:
    """
    Registrazione e rimborso dei pagamenti.

    Ogni operazione che modifica un pagamento riconcilia e salva la
    fattura di appartenenza: non esiste un percorso che la salti.
    """

    def __init__(
        self,
        invoices: InvoiceStore,
        payments: PaymentStore,
        default_method: str = "Unknown",
    ) -> None:
        self.invoices = invoices
        self.payments = payments
        self.default_method = default_method
        self.reconciler = BalanceReconciler

    async def record_payment(
        self,
        invoice_id: int,
        amount: Optional[Decimal],
        method: Optional[str] = None,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Payment:
        """
        Registra un pagamento su una fattura.

        Steps:
        1. Carica la fattura (NotFoundError se assente)
        2. Con idempotency_key già usata sulla fattura restituisce il pagamento esistente
        3. Valida l'importo (> 0, al massimo due decimali, mai arrotondato)
        4. Verifica che non superi il saldo residuo
        5. Inserisce il pagamento COMPLETED
        6. Riconcilia e salva la fattura

        Args:
            invoice_id: Id della fattura
            amount: Importo pagato
            method: Metodo di pagamento (vuoto → default_method)
            reference: Riferimento transazione
            idempotency_key: Chiave del chiamante per i retry

        Returns:
            Payment: Pagamento registrato

        Raises:
            NotFoundError: Se la fattura non esiste
            InvalidAmountError: Se l'importo è nullo, non positivo o sotto il centesimo
            ExceedsBalanceError: Se l'importo supera il saldo residuo
        """
        # Step 1: Carica fattura con lock
        invoice = await self.invoices.find_by_id(invoice_id, for_update=True)
        if not invoice:
            raise NotFoundError(f"Fattura {invoice_id} non trovata")

        # Step 2: Retry dello stesso pagamento
        if idempotency_key:
            existing = await self.payments.find_by_idempotency_key(invoice_id, idempotency_key)
            if existing is not None:
                logger.info(
                    f"Pagamento {existing.id} già registrato con chiave '{idempotency_key}'"
                )
                return existing

        # Step 3: Validazione importo
        if amount is None:
            raise InvalidAmountError("L'importo del pagamento è obbligatorio")
        # Importo così come ricevuto: nessun arrotondamento prima dei controlli
        amount = Decimal(str(amount))
        if amount <= 0:
            logger.warning(f"Pagamento rifiutato su fattura {invoice_id}: importo {amount}")
            raise InvalidAmountError(
                f"L'importo del pagamento deve essere positivo (ricevuto {amount})"
            )

        # Step 4: Confronto con il saldo residuo
        payments = await self.payments.list_by_invoice(invoice_id)
        paid = self.reconciler.amount_paid(payments)
        outstanding = self.reconciler.outstanding_balance(to_money(invoice.total_amount), paid)
        if amount > outstanding:
            logger.warning(
                f"Pagamento rifiutato su fattura {invoice_id}: "
                f"{amount} supera il saldo di {outstanding}"
            )
            raise ExceedsBalanceError(
                f"L'importo {amount} supera il saldo residuo di {outstanding}",
                extra={"outstanding_balance": str(outstanding)},
            )
        if not is_whole_cents(amount):
            logger.warning(f"Pagamento rifiutato su fattura {invoice_id}: importo {amount}")
            raise InvalidAmountError(
                f"L'importo {amount} ha più di due cifre decimali"
            )
        amount = to_money(amount)

        # Step 5: Inserimento pagamento
        payment = Payment(
            invoice_id=invoice_id,
            amount=amount,
            payment_method=(method or "").strip() or self.default_method,
            transaction_reference=reference,
            idempotency_key=idempotency_key,
            status=PaymentStatus.COMPLETED.value,
            payment_time=utc_now(),
        )
        payment = await self.payments.add(payment)

        # Step 6: Riconciliazione
        self.reconciler.reconcile(invoice, payments + [payment])
        await self.invoices.update(invoice)

        logger.info(
            f"Pagamento {payment.id} di {amount} ({payment.payment_method}) "
            f"registrato su fattura {invoice_id}: stato {invoice.status}"
        )
        return payment

    async def refund(self, payment_id: int) -> Payment:
        """
        Rimborsa un pagamento e riconcilia la fattura.

        Raises:
            NotFoundError: Se il pagamento (o la sua fattura) non esiste
            InvalidStateError: Se il pagamento è già stato rimborsato
        """
        payment = await self.payments.find_by_id(payment_id)
        if not payment:
            raise NotFoundError(f"Pagamento {payment_id} non trovato")

        if payment.status == PaymentStatus.REFUNDED.value:
            raise InvalidStateError(f"Il pagamento {payment_id} è già stato rimborsato")

        invoice = await self.invoices.find_by_id(payment.invoice_id, for_update=True)
        if not invoice:
            raise NotFoundError(f"Fattura {payment.invoice_id} non trovata")

        payment.status = PaymentStatus.REFUNDED.value
        payment.refunded_time = utc_now()
        payment = await self.payments.update(payment)

        payments = await self.payments.list_by_invoice(payment.invoice_id)
        self.reconciler.reconcile(invoice, payments)
        await self.invoices.update(invoice)

        logger.info(
            f"Pagamento {payment_id} rimborsato: fattura {invoice.id} "
            f"saldo {invoice.outstanding_balance}, stato {invoice.status}"
        )
        return payment

    async def list_by_invoice(self, invoice_id: int) -> List[Payment]:
        return await self.payments.list_by_invoice(invoice_id)

    async def find_by_id(self, payment_id: int) -> Optional[Payment]:
        return await self.payments.find_by_id(payment_id)
