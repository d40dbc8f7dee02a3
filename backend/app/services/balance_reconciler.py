"""
Riconciliazione dei saldi
Progetto: Hotel SmartTrack (Billing Ledger)

Unica fonte di verità per amount_paid, outstanding_balance e status
di una fattura. Va richiamato dopo creazione, pagamento, rimborso,
modifica dello sconto e rigenerazione.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict

from app.models.invoice import Invoice, Payment
from app.schemas.invoice import InvoiceStatus, PaymentStatus
from app.services.charge_calculator import ZERO, to_money

logger = logging.getLogger(__name__)


class Reconciliation(BaseModel):
    """Esito della riconciliazione di una fattura."""

    invoice_id: Optional[int]
    total_amount: Decimal
    amount_paid: Decimal
    outstanding_balance: Decimal
    status: InvoiceStatus
    previous_status: Optional[str]

    model_config = ConfigDict(frozen=True)

    @property
    def status_changed(self) -> bool:
        return self.status.value != self.previous_status


class BalanceReconciler:
    """Calcoli di saldo e stato, tutti derivati dai pagamenti."""

    @staticmethod
    def amount_paid(payments: Iterable[Payment]) -> Decimal:
        """Somma dei soli pagamenti COMPLETED."""
        total = ZERO
        for payment in payments:
            if payment.status == PaymentStatus.COMPLETED.value:
                total += payment.amount
        return total

    @staticmethod
    def outstanding_balance(total: Decimal, paid: Decimal) -> Decimal:
        """max(0, total - paid)."""
        return max(total - paid, ZERO)

    @staticmethod
    def derive_status(total: Decimal, paid: Decimal) -> InvoiceStatus:
        """
        Stato derivato da totale e incassato.

        - PAID: totale positivo interamente coperto
        - PARTIALLY_PAID: incassato qualcosa
        - UNPAID: altrimenti (anche con totale zero)

        OVERDUE non viene mai derivato.
        """
        if total > 0 and paid >= total:
            return InvoiceStatus.PAID
        if paid > 0:
            return InvoiceStatus.PARTIALLY_PAID
        return InvoiceStatus.UNPAID

    @staticmethod
    def recompute_total(invoice: Invoice) -> Decimal:
        """room + incidental + taxes - discounts, mai negativo."""
        return max(to_money(invoice.gross_amount) - to_money(invoice.discounts), ZERO)

    @classmethod
    def reconcile(cls, invoice: Invoice, payments: Iterable[Payment]) -> Reconciliation:
        """
        Riscrive amount_paid, outstanding_balance e status della fattura.

        Args:
            invoice: Fattura da aggiornare (modificata sul posto)
            payments: Tutti i pagamenti della fattura

        Returns:
            Reconciliation: Valori applicati
        """
        previous_status = invoice.status
        paid = cls.amount_paid(payments)
        total = to_money(invoice.total_amount)
        status = cls.derive_status(total, paid)

        invoice.amount_paid = paid
        invoice.outstanding_balance = cls.outstanding_balance(total, paid)
        invoice.status = status.value

        if previous_status != status.value:
            logger.debug(
                f"Fattura {invoice.id}: stato {previous_status} → {status.value}"
            )

        return Reconciliation(
            invoice_id=invoice.id,
            total_amount=total,
            amount_paid=paid,
            outstanding_balance=invoice.outstanding_balance,
            status=status,
            previous_status=previous_status,
        )
