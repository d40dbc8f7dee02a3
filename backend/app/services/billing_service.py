"""
Service Layer per la Fatturazione
Progetto: Hotel SmartTrack (Billing Ledger)

Punto di accesso unico al ledger: generazione fatture dai soggiorni,
pagamenti, rimborsi, sconti, stati e report incassi.

Ogni operazione che modifica una fattura:
1. acquisisce il lock della fattura (o del soggiorno in generazione)
2. esegue load → validate → write → reconcile → persist
3. fa commit dell'unità di lavoro, oppure rollback e rilancia l'errore
"""

import logging
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import AsyncIterator, Hashable, List, Optional

from app.core.config import Settings
from app.core.exceptions import (
    BusinessValidationError,
    InvalidAmountError,
    NotFoundError,
)
from app.core.locks import InvoiceLockRegistry
from app.models.invoice import Invoice, Payment
from app.schemas.invoice import (
    ChargeBreakdown,
    InvoiceStatus,
    InvoiceSummary,
    PaymentStatus,
    RevenueReport,
)
from app.services.balance_reconciler import BalanceReconciler
from app.services.charge_calculator import ZERO, ChargeCalculator, is_whole_cents, to_money
from app.services.invoice_store import InvoiceStore
from app.services.payment_ledger import PaymentLedger
from app.services.stay_gateway import StayGateway
from app.services.storage import LedgerStorage

logger = logging.getLogger(__name__)


class BillingService:
    """
    Facade della fatturazione.

    Tutte le dipendenze sono passate al costruttore: archivi, soggiorni,
    registro dei lock e impostazioni.
    """

    def __init__(
        self,
        storage: LedgerStorage,
        stays: StayGateway,
        locks: InvoiceLockRegistry,
        settings: Settings,
    ) -> None:
        self.storage = storage
        self.stays = stays
        self.locks = locks
        self.settings = settings
        self.ledger = PaymentLedger(
            storage.invoices,
            storage.payments,
            default_method=settings.billing_default_payment_method,
        )
        self.reconciler = BalanceReconciler

    @property
    def invoices(self) -> InvoiceStore:
        return self.storage.invoices

    @asynccontextmanager
    async def _transaction(self, key: Hashable) -> AsyncIterator[None]:
        """Lock + commit, oppure rollback e rilancio dell'errore."""
        async with self.locks.hold(key):
            try:
                yield
                await self.storage.commit()
            except Exception:
                await self.storage.rollback()
                raise

    async def _load_invoice(self, invoice_id: int, for_update: bool = False) -> Invoice:
        invoice = await self.invoices.find_by_id(invoice_id, for_update=for_update)
        if not invoice:
            raise NotFoundError(f"Fattura {invoice_id} non trovata")
        return invoice

    async def _reconcile_and_save(self, invoice: Invoice) -> Invoice:
        payments = await self.storage.payments.list_by_invoice(invoice.id)
        self.reconciler.reconcile(invoice, payments)
        return await self.invoices.update(invoice)

    # ------------------------------------------------------------
    # Generazione fatture
    # ------------------------------------------------------------

    async def generate_invoice(self, stay_id: int) -> Invoice:
        """
        Genera la fattura di un soggiorno.

        Steps:
        1. Verifica che il soggiorno esista
        2. Con billing_single_invoice_per_stay restituisce la fattura già emessa
        3. Calcola addebito camera, extra e imposte
        4. Crea la fattura UNPAID e la riconcilia

        Args:
            stay_id: Id del soggiorno

        Returns:
            Invoice: Fattura creata (o quella esistente)

        Raises:
            NotFoundError: Se il soggiorno non esiste
        """
        async with self._transaction(("stay", stay_id)):
            # Step 1: Soggiorno
            stay = await self.stays.get_stay_by_id(stay_id)
            if not stay:
                raise NotFoundError(f"Soggiorno {stay_id} non trovato")

            # Step 2: Fattura già emessa
            if self.settings.billing_single_invoice_per_stay:
                existing = await self.invoices.find_by_stay_id(stay_id)
                if existing is not None:
                    logger.info(
                        f"Soggiorno {stay_id} già fatturato: restituita fattura {existing.id}"
                    )
                    return existing

            # Step 3: Addebiti
            room = await self.stays.calculate_room_charges(stay_id)
            incidental = await self.stays.get_total_incidental_charges(stay_id)
            breakdown = ChargeCalculator.build_breakdown(
                room, incidental, self.settings.billing_tax_rate
            )

            # Step 4: Creazione
            invoice = Invoice(
                stay_id=stay_id,
                reservation_id=stay.reservation_id,
                guest_id=stay.guest_id,
                room_charges=breakdown.room_charges,
                incidental_charges=breakdown.incidental_charges,
                taxes=breakdown.taxes,
                discounts=ZERO,
                total_amount=breakdown.total,
                amount_paid=ZERO,
                outstanding_balance=breakdown.total,
                status=InvoiceStatus.UNPAID.value,
            )
            invoice = await self.invoices.create(invoice)
            invoice = await self._reconcile_and_save(invoice)

            logger.info(
                f"Fattura {invoice.id} generata per soggiorno {stay_id}: "
                f"totale {invoice.total_amount}"
            )
            return invoice

    async def regenerate_invoice(self, invoice_id: int) -> Invoice:
        """
        Ricalcola una fattura dal soggiorno di origine.

        Rilegge camera ed extra, ricalcola imposte e totale mantenendo
        lo sconto, poi riconcilia. Se il soggiorno non è disponibile
        ricalcola il totale dalle voci esistenti.

        Raises:
            NotFoundError: Se la fattura non esiste
        """
        async with self._transaction(invoice_id):
            invoice = await self._load_invoice(invoice_id, for_update=True)

            stay = None
            if invoice.stay_id is not None:
                stay = await self.stays.get_stay_by_id(invoice.stay_id)

            if stay is not None:
                room = await self.stays.calculate_room_charges(invoice.stay_id)
                incidental = await self.stays.get_total_incidental_charges(invoice.stay_id)
                breakdown = ChargeCalculator.build_breakdown(
                    room,
                    incidental,
                    self.settings.billing_tax_rate,
                    invoice.discounts,
                )
                invoice.room_charges = breakdown.room_charges
                invoice.incidental_charges = breakdown.incidental_charges
                invoice.taxes = breakdown.taxes
                invoice.total_amount = breakdown.total
            else:
                logger.warning(
                    f"Fattura {invoice_id}: soggiorno non disponibile, ricalcolo dalle voci esistenti"
                )
                invoice.total_amount = self.reconciler.recompute_total(invoice)

            invoice = await self._reconcile_and_save(invoice)
            logger.info(f"Fattura {invoice_id} rigenerata: totale {invoice.total_amount}")
            return invoice

    # ------------------------------------------------------------
    # Consultazione fatture
    # ------------------------------------------------------------

    async def get_invoice_by_id(self, invoice_id: int) -> Optional[Invoice]:
        return await self.invoices.find_by_id(invoice_id)

    async def get_invoice_by_stay(self, stay_id: int) -> Optional[Invoice]:
        return await self.invoices.find_by_stay_id(stay_id)

    async def get_invoices_by_guest(self, guest_id: int) -> List[Invoice]:
        return await self.invoices.find_by_guest_id(guest_id)

    async def get_invoices_by_reservation(self, reservation_id: int) -> List[Invoice]:
        return await self.invoices.find_by_reservation_id(reservation_id)

    async def get_all_invoices(self) -> List[Invoice]:
        return await self.invoices.find_all()

    async def get_invoices_by_status(self, status: str) -> List[Invoice]:
        """
        Fatture nello stato indicato.

        L'etichetta è confrontata senza distinzione di maiuscole;
        uno stato sconosciuto restituisce una lista vuota.
        """
        parsed = InvoiceStatus.from_label(status)
        if parsed is None:
            return []
        return await self.invoices.find_by_status(parsed.value)

    async def get_unpaid_invoices(self) -> List[Invoice]:
        return await self.invoices.find_by_status(InvoiceStatus.UNPAID.value)

    async def get_partially_paid_invoices(self) -> List[Invoice]:
        return await self.invoices.find_by_status(InvoiceStatus.PARTIALLY_PAID.value)

    async def get_overdue_invoices(self) -> List[Invoice]:
        """Fatture marcate manualmente come OVERDUE."""
        return await self.invoices.find_by_status(InvoiceStatus.OVERDUE.value)

    async def get_invoice_summary(self, invoice_id: int) -> InvoiceSummary:
        invoice = await self._load_invoice(invoice_id)
        return InvoiceSummary(
            invoice_id=invoice.id,
            status=invoice.status,
            total_amount=invoice.total_amount,
            amount_paid=invoice.amount_paid,
            outstanding_balance=invoice.outstanding_balance,
        )

    async def get_outstanding_balance(self, invoice_id: int) -> Decimal:
        invoice = await self._load_invoice(invoice_id)
        return invoice.outstanding_balance

    # ------------------------------------------------------------
    # Calcoli sul soggiorno
    # ------------------------------------------------------------

    async def get_charge_breakdown(self, stay_id: int) -> ChargeBreakdown:
        """Anteprima degli addebiti di un soggiorno, senza creare fatture."""
        stay = await self.stays.get_stay_by_id(stay_id)
        if not stay:
            raise NotFoundError(f"Soggiorno {stay_id} non trovato")
        room = await self.stays.calculate_room_charges(stay_id)
        incidental = await self.stays.get_total_incidental_charges(stay_id)
        return ChargeCalculator.build_breakdown(
            room, incidental, self.settings.billing_tax_rate
        )

    async def compute_total_charges(self, stay_id: int) -> Decimal:
        breakdown = await self.get_charge_breakdown(stay_id)
        return breakdown.total

    async def compute_room_charges(self, stay_id: int) -> Decimal:
        breakdown = await self.get_charge_breakdown(stay_id)
        return breakdown.room_charges

    def compute_tax(
        self,
        subtotal: Optional[Decimal],
        rate: Optional[Decimal] = None,
    ) -> Decimal:
        """Imposta sul subtotale; senza rate usa l'aliquota configurata."""
        if rate is None:
            rate = self.settings.billing_tax_rate
        return ChargeCalculator.compute_tax(subtotal, rate)

    # ------------------------------------------------------------
    # Pagamenti
    # ------------------------------------------------------------

    async def process_payment(
        self,
        invoice_id: int,
        amount: Optional[Decimal],
        method: Optional[str] = None,
    ) -> Payment:
        return await self.process_payment_with_reference(invoice_id, amount, method, None)

    async def process_payment_with_reference(
        self,
        invoice_id: int,
        amount: Optional[Decimal],
        method: Optional[str],
        reference: Optional[str],
        idempotency_key: Optional[str] = None,
    ) -> Payment:
        """
        Registra un pagamento con riferimento transazione.

        Raises:
            NotFoundError: Se la fattura non esiste
            InvalidAmountError: Se l'importo non è positivo
            ExceedsBalanceError: Se l'importo supera il saldo residuo
        """
        async with self._transaction(invoice_id):
            return await self.ledger.record_payment(
                invoice_id,
                amount,
                method,
                reference=reference,
                idempotency_key=idempotency_key,
            )

    async def get_payments_for_invoice(self, invoice_id: int) -> List[Payment]:
        await self._load_invoice(invoice_id)
        return await self.ledger.list_by_invoice(invoice_id)

    async def get_payment_by_id(self, payment_id: int) -> Optional[Payment]:
        return await self.ledger.find_by_id(payment_id)

    async def refund_payment(self, payment_id: int) -> Payment:
        """
        Rimborsa un pagamento.

        Raises:
            NotFoundError: Se il pagamento non esiste
            InvalidStateError: Se il pagamento è già rimborsato
        """
        payment = await self.ledger.find_by_id(payment_id)
        if not payment:
            raise NotFoundError(f"Pagamento {payment_id} non trovato")

        async with self._transaction(payment.invoice_id):
            return await self.ledger.refund(payment_id)

    # ------------------------------------------------------------
    # Stato e sconti
    # ------------------------------------------------------------

    async def update_invoice_status(self, invoice_id: int, status: str) -> Invoice:
        """
        Imposta manualmente lo stato (tipicamente OVERDUE).

        Il prossimo pagamento, rimborso o sconto ricalcola lo stato
        dai pagamenti.

        Raises:
            BusinessValidationError: Se lo stato non è valido
            NotFoundError: Se la fattura non esiste
        """
        parsed = InvoiceStatus.from_label(status)
        if parsed is None:
            raise BusinessValidationError(f"Stato fattura '{status}' non valido")

        async with self._transaction(invoice_id):
            invoice = await self._load_invoice(invoice_id, for_update=True)
            previous = invoice.status
            invoice.status = parsed.value
            invoice = await self.invoices.update(invoice)

            logger.warning(
                f"Stato fattura {invoice_id} modificato manualmente: {previous} → {parsed.value}"
            )
            return invoice

    async def apply_discount(
        self,
        invoice_id: int,
        amount: Optional[Decimal],
        reason: Optional[str] = None,
    ) -> Invoice:
        """
        Applica (o sostituisce) lo sconto della fattura.

        Lo sconto deve essere tra zero e il totale lordo
        (camera + extra + imposte). Totale, saldo e stato vengono ricalcolati.

        Raises:
            NotFoundError: Se la fattura non esiste
            InvalidAmountError: Se lo sconto è negativo, supera il lordo o è sotto il centesimo
        """
        async with self._transaction(invoice_id):
            invoice = await self._load_invoice(invoice_id, for_update=True)

            if amount is None:
                raise InvalidAmountError("L'importo dello sconto è obbligatorio")
            amount = Decimal(str(amount))
            if amount < 0:
                raise InvalidAmountError(f"Lo sconto non può essere negativo (ricevuto {amount})")
            gross = to_money(invoice.gross_amount)
            if amount > gross:
                raise InvalidAmountError(
                    f"Lo sconto {amount} supera il totale lordo della fattura ({gross})"
                )
            if not is_whole_cents(amount):
                raise InvalidAmountError(f"Lo sconto {amount} ha più di due cifre decimali")
            amount = to_money(amount)

            invoice.discounts = amount
            invoice.discount_reason = reason
            invoice.total_amount = self.reconciler.recompute_total(invoice)
            invoice = await self._reconcile_and_save(invoice)

            logger.info(
                f"Sconto {amount} applicato a fattura {invoice_id}: "
                f"totale {invoice.total_amount}, stato {invoice.status}"
            )
            return invoice

    async def remove_discount(self, invoice_id: int) -> Invoice:
        """Azzera lo sconto e ricalcola totale, saldo e stato."""
        async with self._transaction(invoice_id):
            invoice = await self._load_invoice(invoice_id, for_update=True)
            invoice.discounts = ZERO
            invoice.discount_reason = None
            invoice.total_amount = self.reconciler.recompute_total(invoice)
            invoice = await self._reconcile_and_save(invoice)

            logger.info(f"Sconto rimosso da fattura {invoice_id}: totale {invoice.total_amount}")
            return invoice

    # ------------------------------------------------------------
    # Report
    # ------------------------------------------------------------

    @staticmethod
    def _in_period(
        invoice: Invoice,
        start_date: Optional[date],
        end_date: Optional[date],
    ) -> bool:
        issued = invoice.issued_time.date()
        if start_date is not None and issued < start_date:
            return False
        if end_date is not None and issued > end_date:
            return False
        return True

    @staticmethod
    def _check_period(start_date: Optional[date], end_date: Optional[date]) -> None:
        if start_date and end_date and start_date > end_date:
            raise BusinessValidationError(
                "La data di inizio è successiva alla data di fine"
            )

    async def get_total_revenue(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Decimal:
        """
        Somma dei totali delle fatture PAID emesse nel periodo.

        Gli estremi sono inclusi; None lascia il periodo aperto.
        """
        self._check_period(start_date, end_date)
        paid_invoices = await self.invoices.find_by_status(InvoiceStatus.PAID.value)
        total = ZERO
        for invoice in paid_invoices:
            if self._in_period(invoice, start_date, end_date):
                total += to_money(invoice.total_amount)
        return total

    async def get_revenue_report(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> RevenueReport:
        """
        Report incassi del periodo.

        Considera le fatture emesse nel periodo: fatturato, incassato,
        residuo, numero fatture e numero pagamenti COMPLETED.
        """
        self._check_period(start_date, end_date)
        invoices = [
            invoice
            for invoice in await self.invoices.find_all()
            if self._in_period(invoice, start_date, end_date)
        ]

        total_revenue = ZERO
        total_invoiced = ZERO
        total_paid = ZERO
        total_unpaid = ZERO
        payments_count = 0

        for invoice in invoices:
            total_invoiced += to_money(invoice.total_amount)
            total_paid += to_money(invoice.amount_paid)
            total_unpaid += to_money(invoice.outstanding_balance)
            if invoice.status == InvoiceStatus.PAID.value:
                total_revenue += to_money(invoice.total_amount)
            payments = await self.storage.payments.list_by_invoice(invoice.id)
            payments_count += sum(
                1 for p in payments if p.status == PaymentStatus.COMPLETED.value
            )

        return RevenueReport(
            from_date=start_date,
            to_date=end_date,
            total_revenue=total_revenue,
            total_invoiced=total_invoiced,
            total_paid=total_paid,
            total_unpaid=total_unpaid,
            invoices_count=len(invoices),
            payments_count=payments_count,
        )
