"""
Tests per BillingService su archivi in memoria.

Copre il ciclo completo del soggiorno di riferimento
(camera 150 + extra 50 + imposte 10% = 220) e le regole del ledger.
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.core.config import Settings
from app.core.exceptions import (
    BusinessValidationError,
    ExceedsBalanceError,
    InvalidAmountError,
    InvalidStateError,
    NotFoundError,
)
from app.models.invoice import Payment
from app.services.billing_service import BillingService
from app.services.storage import LedgerStorage


async def _assert_invariants(service: BillingService, invoice_id: int) -> None:
    """amount_paid, outstanding e stato coerenti con i pagamenti."""
    invoice = await service.get_invoice_by_id(invoice_id)
    payments = await service.get_payments_for_invoice(invoice_id)
    paid = sum(
        (p.amount for p in payments if p.status == "COMPLETED"),
        Decimal("0.00"),
    )

    assert invoice.amount_paid == paid
    assert invoice.outstanding_balance == max(invoice.total_amount - paid, Decimal("0.00"))
    assert invoice.total_amount == (
        invoice.room_charges + invoice.incidental_charges + invoice.taxes - invoice.discounts
    )


# ============================================================
# Tests per il ciclo di vita della fattura
# ============================================================


class TestInvoiceLifecycle:
    """Generazione, pagamenti parziali, saldo, rimborso."""

    @pytest.mark.asyncio
    async def test_generate_invoice(self, billing_service):
        """Test fattura del soggiorno di riferimento: 220.00 UNPAID."""
        invoice = await billing_service.generate_invoice(1)

        assert invoice.id == 1
        assert invoice.stay_id == 1
        assert invoice.guest_id == 10
        assert invoice.reservation_id == 100
        assert invoice.room_charges == Decimal("150.00")
        assert invoice.incidental_charges == Decimal("50.00")
        assert invoice.taxes == Decimal("20.00")
        assert invoice.total_amount == Decimal("220.00")
        assert invoice.outstanding_balance == Decimal("220.00")
        assert invoice.status == "UNPAID"
        await _assert_invariants(billing_service, invoice.id)

    @pytest.mark.asyncio
    async def test_full_payment_cycle(self, billing_service):
        """Test 100 → PARTIALLY_PAID, 120 → PAID, 0.01 → ExceedsBalance, rimborso 100."""
        invoice = await billing_service.generate_invoice(1)

        first = await billing_service.process_payment(invoice.id, Decimal("100.00"), "Cash")
        assert await billing_service.get_outstanding_balance(invoice.id) == Decimal("120.00")
        assert (await billing_service.get_invoice_by_id(invoice.id)).status == "PARTIALLY_PAID"

        await billing_service.process_payment(invoice.id, Decimal("120.00"), "Credit Card")
        paid = await billing_service.get_invoice_by_id(invoice.id)
        assert paid.status == "PAID"
        assert paid.outstanding_balance == Decimal("0.00")

        with pytest.raises(ExceedsBalanceError):
            await billing_service.process_payment(invoice.id, Decimal("0.01"), "Cash")

        await billing_service.refund_payment(first.id)
        refunded = await billing_service.get_invoice_by_id(invoice.id)
        assert refunded.status == "PARTIALLY_PAID"
        assert refunded.amount_paid == Decimal("120.00")
        assert refunded.outstanding_balance == Decimal("100.00")
        await _assert_invariants(billing_service, invoice.id)

    @pytest.mark.asyncio
    async def test_unpaid_and_partial_lists(self, billing_service, stay_gateway, stay_factory):
        """Test liste per stato dopo un pagamento parziale."""
        stay_gateway.register(stay_factory(stay_id=2))
        first = await billing_service.generate_invoice(1)
        second = await billing_service.generate_invoice(2)
        await billing_service.process_payment(second.id, Decimal("20.00"), "Cash")

        unpaid = await billing_service.get_unpaid_invoices()
        partial = await billing_service.get_partially_paid_invoices()

        assert [i.id for i in unpaid] == [first.id]
        assert [i.id for i in partial] == [second.id]

    @pytest.mark.asyncio
    async def test_generate_unknown_stay(self, billing_service):
        """Test soggiorno inesistente: NotFoundError."""
        with pytest.raises(NotFoundError):
            await billing_service.generate_invoice(999)

    @pytest.mark.asyncio
    async def test_duplicate_invoices_allowed_by_default(self, billing_service):
        """Test due generazioni per lo stesso soggiorno: due fatture."""
        first = await billing_service.generate_invoice(1)
        second = await billing_service.generate_invoice(1)

        assert first.id != second.id
        assert (await billing_service.get_invoice_by_stay(1)).id == first.id

    @pytest.mark.asyncio
    async def test_single_invoice_per_stay(self, memory_storage, stay_gateway, locks):
        """Test con billing_single_invoice_per_stay restituisce la fattura esistente."""
        settings = Settings(_env_file=None, billing_single_invoice_per_stay=True)
        service = BillingService(memory_storage, stay_gateway, locks, settings)

        first = await service.generate_invoice(1)
        second = await service.generate_invoice(1)

        assert second.id == first.id
        assert len(await service.get_all_invoices()) == 1

    @pytest.mark.asyncio
    async def test_zero_total_invoice(self, billing_service, stay_gateway, stay_factory):
        """Test fattura a zero: UNPAID e ogni pagamento rifiutato."""
        stay_gateway.register(
            stay_factory(stay_id=3, nightly_rate=Decimal("0.00"), extras=[])
        )
        invoice = await billing_service.generate_invoice(3)

        assert invoice.total_amount == Decimal("0.00")
        assert invoice.status == "UNPAID"
        with pytest.raises(ExceedsBalanceError):
            await billing_service.process_payment(invoice.id, Decimal("1.00"), "Cash")


# ============================================================
# Tests per pagamenti e rimborsi
# ============================================================


class TestPayments:
    """Validazioni dei pagamenti tramite il facade."""

    @pytest.mark.asyncio
    async def test_invalid_amount(self, billing_service):
        """Test importo negativo: InvalidAmountError."""
        invoice = await billing_service.generate_invoice(1)

        with pytest.raises(InvalidAmountError):
            await billing_service.process_payment(invoice.id, Decimal("-1.00"), "Cash")

    @pytest.mark.asyncio
    async def test_payment_with_reference(self, billing_service):
        """Test riferimento transazione salvato sul pagamento."""
        invoice = await billing_service.generate_invoice(1)

        payment = await billing_service.process_payment_with_reference(
            invoice.id, Decimal("50.00"), "Credit Card", "POS-0001"
        )
        stored = await billing_service.get_payment_by_id(payment.id)

        assert stored.transaction_reference == "POS-0001"
        assert stored.payment_method == "Credit Card"

    @pytest.mark.asyncio
    async def test_payments_ordered_by_id(self, billing_service):
        """Test pagamenti restituiti in ordine di registrazione."""
        invoice = await billing_service.generate_invoice(1)
        for amount in ("10.00", "20.00", "30.00"):
            await billing_service.process_payment(invoice.id, Decimal(amount), "Cash")

        payments = await billing_service.get_payments_for_invoice(invoice.id)

        assert [p.amount for p in payments] == [
            Decimal("10.00"),
            Decimal("20.00"),
            Decimal("30.00"),
        ]

    @pytest.mark.asyncio
    async def test_payments_for_unknown_invoice(self, billing_service):
        """Test pagamenti di una fattura inesistente: NotFoundError."""
        with pytest.raises(NotFoundError):
            await billing_service.get_payments_for_invoice(404)

    @pytest.mark.asyncio
    async def test_refund_twice(self, billing_service):
        """Test doppio rimborso: InvalidStateError."""
        invoice = await billing_service.generate_invoice(1)
        payment = await billing_service.process_payment(invoice.id, Decimal("50.00"), "Cash")
        await billing_service.refund_payment(payment.id)

        with pytest.raises(InvalidStateError):
            await billing_service.refund_payment(payment.id)

    @pytest.mark.asyncio
    async def test_refund_unknown_payment(self, billing_service):
        """Test rimborso inesistente: NotFoundError."""
        with pytest.raises(NotFoundError):
            await billing_service.refund_payment(77)

    @pytest.mark.asyncio
    async def test_concurrent_payments_never_overpay(self, billing_service):
        """Test due pagamenti da 150 in parallelo su 220: uno solo passa."""
        invoice = await billing_service.generate_invoice(1)

        results = await asyncio.gather(
            billing_service.process_payment(invoice.id, Decimal("150.00"), "Cash"),
            billing_service.process_payment(invoice.id, Decimal("150.00"), "Card"),
            return_exceptions=True,
        )

        succeeded = [r for r in results if isinstance(r, Payment)]
        rejected = [r for r in results if isinstance(r, ExceedsBalanceError)]
        assert len(succeeded) == 1
        assert len(rejected) == 1
        assert await billing_service.get_outstanding_balance(invoice.id) == Decimal("70.00")
        assert len(billing_service.locks) == 0


# ============================================================
# Tests per il registro dei lock
# ============================================================


class TestInvoiceLocks:
    """Serializzazione per chiave e rimozione dei lock inutilizzati."""

    @pytest.mark.asyncio
    async def test_same_key_serialized_then_evicted(self, locks):
        """Test due task sulla stessa fattura: uno alla volta, poi registro vuoto."""
        events = []

        async def worker(name: str) -> None:
            async with locks.hold(1):
                events.append(f"{name}-in")
                await asyncio.sleep(0)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events == ["a-in", "a-out", "b-in", "b-out"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_evicted_after_error(self, locks):
        """Test errore dentro il blocco: lock rilasciato e rimosso."""
        with pytest.raises(RuntimeError):
            async with locks.hold(("stay", 1)):
                assert len(locks) == 1
                raise RuntimeError("boom")

        assert len(locks) == 0


# ============================================================
# Tests per sconti, stato manuale e rigenerazione
# ============================================================


class TestAdjustments:
    """Sconti, override dello stato e rigenerazione."""

    @pytest.mark.asyncio
    async def test_discount_recomputes_total_and_status(self, billing_service):
        """Test sconto di 20 su 220 con 200 pagati: fattura PAID."""
        invoice = await billing_service.generate_invoice(1)
        await billing_service.process_payment(invoice.id, Decimal("200.00"), "Cash")

        discounted = await billing_service.apply_discount(invoice.id, Decimal("20.00"), "Fedeltà")

        assert discounted.discounts == Decimal("20.00")
        assert discounted.discount_reason == "Fedeltà"
        assert discounted.total_amount == Decimal("200.00")
        assert discounted.outstanding_balance == Decimal("0.00")
        assert discounted.status == "PAID"
        await _assert_invariants(billing_service, invoice.id)

    @pytest.mark.asyncio
    async def test_discount_replaces_previous(self, billing_service):
        """Test un secondo sconto sostituisce il primo."""
        invoice = await billing_service.generate_invoice(1)
        await billing_service.apply_discount(invoice.id, Decimal("20.00"))

        updated = await billing_service.apply_discount(invoice.id, Decimal("5.00"))

        assert updated.discounts == Decimal("5.00")
        assert updated.total_amount == Decimal("215.00")

    @pytest.mark.asyncio
    async def test_remove_discount(self, billing_service):
        """Test rimozione sconto: totale originale e stato ricalcolato."""
        invoice = await billing_service.generate_invoice(1)
        await billing_service.process_payment(invoice.id, Decimal("200.00"), "Cash")
        await billing_service.apply_discount(invoice.id, Decimal("20.00"))

        restored = await billing_service.remove_discount(invoice.id)

        assert restored.discounts == Decimal("0.00")
        assert restored.discount_reason is None
        assert restored.total_amount == Decimal("220.00")
        assert restored.status == "PARTIALLY_PAID"
        assert restored.outstanding_balance == Decimal("20.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "amount", [Decimal("-1.00"), Decimal("220.01"), Decimal("20.005"), None]
    )
    async def test_invalid_discount(self, billing_service, amount):
        """Test sconto negativo, oltre il lordo, sotto il centesimo o assente: InvalidAmountError."""
        invoice = await billing_service.generate_invoice(1)

        with pytest.raises(InvalidAmountError):
            await billing_service.apply_discount(invoice.id, amount)

    @pytest.mark.asyncio
    async def test_manual_overdue_until_next_payment(self, billing_service):
        """Test OVERDUE manuale visibile in lista, poi ricalcolato dal pagamento."""
        invoice = await billing_service.generate_invoice(1)

        overdue = await billing_service.update_invoice_status(invoice.id, "overdue")
        assert overdue.status == "OVERDUE"
        assert [i.id for i in await billing_service.get_overdue_invoices()] == [invoice.id]

        await billing_service.process_payment(invoice.id, Decimal("10.00"), "Cash")
        assert (await billing_service.get_invoice_by_id(invoice.id)).status == "PARTIALLY_PAID"
        assert await billing_service.get_overdue_invoices() == []

    @pytest.mark.asyncio
    async def test_invalid_manual_status(self, billing_service):
        """Test stato sconosciuto: BusinessValidationError."""
        invoice = await billing_service.generate_invoice(1)

        with pytest.raises(BusinessValidationError):
            await billing_service.update_invoice_status(invoice.id, "ARCHIVED")

    @pytest.mark.asyncio
    async def test_status_filter_normalizes_labels(self, billing_service):
        """Test 'partially paid' e 'Partially-Paid' equivalenti, stato ignoto vuoto."""
        invoice = await billing_service.generate_invoice(1)
        await billing_service.process_payment(invoice.id, Decimal("10.00"), "Cash")

        assert len(await billing_service.get_invoices_by_status("partially paid")) == 1
        assert len(await billing_service.get_invoices_by_status("Partially-Paid")) == 1
        assert await billing_service.get_invoices_by_status("archived") == []

    @pytest.mark.asyncio
    async def test_regenerate_picks_up_new_charges(
        self, billing_service, stay_gateway, stay_factory
    ):
        """Test rigenerazione con un extra aggiunto dopo l'emissione."""
        invoice = await billing_service.generate_invoice(1)
        await billing_service.apply_discount(invoice.id, Decimal("10.00"))
        stay_gateway.register(stay_factory(extras=[Decimal("50.00"), Decimal("30.00")]))

        regenerated = await billing_service.regenerate_invoice(invoice.id)

        assert regenerated.id == invoice.id
        assert regenerated.incidental_charges == Decimal("80.00")
        assert regenerated.taxes == Decimal("23.00")
        assert regenerated.discounts == Decimal("10.00")
        assert regenerated.total_amount == Decimal("243.00")
        assert regenerated.issued_time == invoice.issued_time
        await _assert_invariants(billing_service, invoice.id)

    @pytest.mark.asyncio
    async def test_regenerate_unknown_invoice(self, billing_service):
        """Test rigenerazione di una fattura inesistente: NotFoundError."""
        with pytest.raises(NotFoundError):
            await billing_service.regenerate_invoice(12)


# ============================================================
# Tests per calcoli e report
# ============================================================


class TestChargesAndRevenue:
    """Calcoli sul soggiorno e incassi."""

    @pytest.mark.asyncio
    async def test_stay_calculations(self, billing_service):
        """Test calcoli in tempo reale sul soggiorno."""
        assert await billing_service.compute_room_charges(1) == Decimal("150.00")
        assert await billing_service.compute_total_charges(1) == Decimal("220.00")
        assert billing_service.compute_tax(Decimal("200.00")) == Decimal("20.00")
        assert billing_service.compute_tax(Decimal("200.00"), Decimal("0.05")) == Decimal("10.00")
        assert billing_service.compute_tax(None) == Decimal("0")

    @pytest.mark.asyncio
    async def test_stay_calculations_unknown_stay(self, billing_service):
        """Test calcoli su soggiorno inesistente: NotFoundError."""
        with pytest.raises(NotFoundError):
            await billing_service.compute_total_charges(999)

    @pytest.mark.asyncio
    async def test_invoice_summary(self, billing_service):
        """Test riepilogo fattura."""
        invoice = await billing_service.generate_invoice(1)
        await billing_service.process_payment(invoice.id, Decimal("100.00"), "Cash")

        summary = await billing_service.get_invoice_summary(invoice.id)

        assert summary.invoice_id == invoice.id
        assert summary.status.value == "PARTIALLY_PAID"
        assert summary.total_amount == Decimal("220.00")
        assert summary.amount_paid == Decimal("100.00")
        assert summary.outstanding_balance == Decimal("120.00")

    @pytest.mark.asyncio
    async def test_total_revenue_counts_only_paid(self, billing_service, stay_gateway, stay_factory):
        """Test incassi: solo fatture PAID, filtro per data di emissione."""
        stay_gateway.register(stay_factory(stay_id=2))
        paid = await billing_service.generate_invoice(1)
        await billing_service.generate_invoice(2)
        await billing_service.process_payment(paid.id, Decimal("220.00"), "Cash")

        today = paid.issued_time.date()
        assert await billing_service.get_total_revenue() == Decimal("220.00")
        assert await billing_service.get_total_revenue(today, today) == Decimal("220.00")
        assert (
            await billing_service.get_total_revenue(today + timedelta(days=1), None)
            == Decimal("0.00")
        )

    @pytest.mark.asyncio
    async def test_revenue_invalid_period(self, billing_service):
        """Test periodo con inizio dopo la fine: BusinessValidationError."""
        with pytest.raises(BusinessValidationError):
            await billing_service.get_total_revenue(date(2024, 5, 2), date(2024, 5, 1))

    @pytest.mark.asyncio
    async def test_revenue_report(self, billing_service, stay_gateway, stay_factory):
        """Test report: fatturato, incassato, residuo e conteggi."""
        stay_gateway.register(stay_factory(stay_id=2))
        first = await billing_service.generate_invoice(1)
        second = await billing_service.generate_invoice(2)
        await billing_service.process_payment(first.id, Decimal("220.00"), "Cash")
        refunded = await billing_service.process_payment(second.id, Decimal("20.00"), "Cash")
        await billing_service.process_payment(second.id, Decimal("50.00"), "Cash")
        await billing_service.refund_payment(refunded.id)

        report = await billing_service.get_revenue_report()

        assert report.total_revenue == Decimal("220.00")
        assert report.total_invoiced == Decimal("440.00")
        assert report.total_paid == Decimal("270.00")
        assert report.total_unpaid == Decimal("170.00")
        assert report.invoices_count == 2
        assert report.payments_count == 2


# ============================================================
# Tests per la gestione delle transazioni
# ============================================================


class _RecordingStorage(LedgerStorage):
    """Storage in memoria che conta commit e rollback."""

    def __init__(self, inner: LedgerStorage) -> None:
        self.invoices = inner.invoices
        self.payments = inner.payments
        self.commits = 0
        self.rollbacks = 0

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


class TestTransactions:
    """Commit sulle operazioni riuscite, rollback sugli errori."""

    @pytest.mark.asyncio
    async def test_commit_and_rollback(self, memory_storage, stay_gateway, locks, settings):
        """Test pagamento valido → commit, pagamento eccessivo → rollback."""
        storage = _RecordingStorage(memory_storage)
        service = BillingService(storage, stay_gateway, locks, settings)
        invoice = await service.generate_invoice(1)
        await service.process_payment(invoice.id, Decimal("10.00"), "Cash")

        with pytest.raises(ExceedsBalanceError):
            await service.process_payment(invoice.id, Decimal("500.00"), "Cash")

        assert storage.commits == 2
        assert storage.rollbacks == 1
