"""
Tests del BillingService su database (SQLAlchemy async + aiosqlite).

Stesso ciclo del soggiorno di riferimento, con commit reali sulla sessione.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.exceptions import ExceedsBalanceError, InvalidStateError
from app.models.invoice import Invoice, Payment


# ============================================================
# Tests per il ciclo completo su database
# ============================================================


class TestSqlBillingCycle:
    """Generazione, pagamenti e rimborso persistiti su tabella."""

    @pytest.mark.asyncio
    async def test_generate_and_pay(self, sql_billing_service, sql_session):
        """Test fattura 220, pagamento 100 e saldo 120 letti dal database."""
        invoice = await sql_billing_service.generate_invoice(1)
        await sql_billing_service.process_payment(invoice.id, Decimal("100.00"), "Cash")

        result = await sql_session.execute(select(Invoice).where(Invoice.id == invoice.id))
        stored = result.scalar_one()

        assert stored.total_amount == Decimal("220.00")
        assert stored.amount_paid == Decimal("100.00")
        assert stored.outstanding_balance == Decimal("120.00")
        assert stored.status == "PARTIALLY_PAID"

    @pytest.mark.asyncio
    async def test_full_cycle_with_refund(self, sql_billing_service):
        """Test 100 + 120 → PAID, rimborso 100 → PARTIALLY_PAID con saldo 100."""
        invoice = await sql_billing_service.generate_invoice(1)
        first = await sql_billing_service.process_payment(invoice.id, Decimal("100.00"), "Cash")
        await sql_billing_service.process_payment(invoice.id, Decimal("120.00"), "Card")

        assert (await sql_billing_service.get_invoice_by_id(invoice.id)).status == "PAID"

        await sql_billing_service.refund_payment(first.id)
        refunded = await sql_billing_service.get_invoice_by_id(invoice.id)

        assert refunded.status == "PARTIALLY_PAID"
        assert refunded.amount_paid == Decimal("120.00")
        assert refunded.outstanding_balance == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_rejected_payment_rolls_back(self, sql_billing_service, sql_session):
        """Test pagamento oltre il saldo: nessuna riga in payments."""
        invoice = await sql_billing_service.generate_invoice(1)

        with pytest.raises(ExceedsBalanceError):
            await sql_billing_service.process_payment(invoice.id, Decimal("300.00"), "Cash")

        result = await sql_session.execute(select(Payment))
        assert result.scalars().all() == []

    @pytest.mark.asyncio
    async def test_double_refund(self, sql_billing_service):
        """Test doppio rimborso rifiutato anche su database."""
        invoice = await sql_billing_service.generate_invoice(1)
        payment = await sql_billing_service.process_payment(invoice.id, Decimal("20.00"), None)

        assert payment.payment_method == "Unknown"

        await sql_billing_service.refund_payment(payment.id)
        with pytest.raises(InvalidStateError):
            await sql_billing_service.refund_payment(payment.id)

    @pytest.mark.asyncio
    async def test_discount_and_status_lists(self, sql_billing_service):
        """Test sconto su database e liste per stato."""
        invoice = await sql_billing_service.generate_invoice(1)
        await sql_billing_service.process_payment(invoice.id, Decimal("200.00"), "Cash")

        discounted = await sql_billing_service.apply_discount(invoice.id, Decimal("20.00"), "Reclamo")

        assert discounted.total_amount == Decimal("200.00")
        assert discounted.status == "PAID"
        assert [i.id for i in await sql_billing_service.get_invoices_by_status("paid")] == [invoice.id]
        assert await sql_billing_service.get_unpaid_invoices() == []
        assert await sql_billing_service.get_total_revenue() == Decimal("200.00")
