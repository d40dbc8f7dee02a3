"""
Router FastAPI per la Fatturazione
Progetto: Hotel SmartTrack (Billing Ledger)

Definisce gli endpoint API per fatture, pagamenti su fattura,
sconti e stato.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from app.core.deps import get_billing_service
from app.core.exceptions import NotFoundError
from app.schemas.invoice import (
    DiscountApply,
    InvoiceRead,
    InvoiceStatusUpdate,
    InvoiceSummary,
    OutstandingBalance,
    PaymentCreate,
    PaymentRead,
)
from app.services.billing_service import BillingService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Router con prefix e tag
router = APIRouter(
    prefix="/invoices",
    tags=["Fatturazione"],
)


# -------------------------------------------------------------------
# Liste e ricerche
# -------------------------------------------------------------------

@router.get(
    "/",
    name="fatture_lista",
    summary="Lista fatture",
    description="Recupera tutte le fatture, eventualmente filtrate per stato.",
    response_model=List[InvoiceRead],
    status_code=status.HTTP_200_OK,
)
async def get_invoices(
    status_filter: Optional[str] = Query(
        None,
        alias="status",
        description="Filtro per stato (UNPAID, PARTIALLY_PAID, PAID, OVERDUE)",
    ),
    service: BillingService = Depends(get_billing_service),
) -> List[InvoiceRead]:
    if status_filter:
        return await service.get_invoices_by_status(status_filter)
    return await service.get_all_invoices()


@router.get(
    "/unpaid",
    name="fatture_non_pagate",
    summary="Fatture non pagate",
    response_model=List[InvoiceRead],
)
async def get_unpaid_invoices(
    service: BillingService = Depends(get_billing_service),
) -> List[InvoiceRead]:
    return await service.get_unpaid_invoices()


@router.get(
    "/partially-paid",
    name="fatture_parzialmente_pagate",
    summary="Fatture parzialmente pagate",
    response_model=List[InvoiceRead],
)
async def get_partially_paid_invoices(
    service: BillingService = Depends(get_billing_service),
) -> List[InvoiceRead]:
    return await service.get_partially_paid_invoices()


@router.get(
    "/overdue",
    name="fatture_scadute",
    summary="Fatture scadute",
    description="Fatture marcate manualmente come OVERDUE.",
    response_model=List[InvoiceRead],
)
async def get_overdue_invoices(
    service: BillingService = Depends(get_billing_service),
) -> List[InvoiceRead]:
    return await service.get_overdue_invoices()


@router.get(
    "/by-stay/{stay_id}",
    name="fattura_per_soggiorno",
    summary="Fattura di un soggiorno",
    response_model=InvoiceRead,
)
async def get_invoice_by_stay(
    stay_id: int = Path(..., description="Id del soggiorno"),
    service: BillingService = Depends(get_billing_service),
) -> InvoiceRead:
    invoice = await service.get_invoice_by_stay(stay_id)
    if not invoice:
        raise NotFoundError(f"Nessuna fattura per il soggiorno {stay_id}")
    return invoice


@router.get(
    "/by-guest/{guest_id}",
    name="fatture_per_ospite",
    summary="Fatture di un ospite",
    response_model=List[InvoiceRead],
)
async def get_invoices_by_guest(
    guest_id: int = Path(..., description="Id dell'ospite"),
    service: BillingService = Depends(get_billing_service),
) -> List[InvoiceRead]:
    return await service.get_invoices_by_guest(guest_id)


@router.get(
    "/by-reservation/{reservation_id}",
    name="fatture_per_prenotazione",
    summary="Fatture di una prenotazione",
    response_model=List[InvoiceRead],
)
async def get_invoices_by_reservation(
    reservation_id: int = Path(..., description="Id della prenotazione"),
    service: BillingService = Depends(get_billing_service),
) -> List[InvoiceRead]:
    return await service.get_invoices_by_reservation(reservation_id)


# -------------------------------------------------------------------
# Generazione
# -------------------------------------------------------------------

@router.post(
    "/from-stay/{stay_id}",
    name="crea_fattura_da_soggiorno",
    summary="Crea fattura da soggiorno",
    description="Genera la fattura di un soggiorno registrato al checkout.",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice_from_stay(
    stay_id: int = Path(..., description="Id del soggiorno"),
    service: BillingService = Depends(get_billing_service),
) -> InvoiceRead:
    return await service.generate_invoice(stay_id)


@router.post(
    "/{invoice_id}/regenerate",
    name="rigenera_fattura",
    summary="Rigenera fattura",
    description="Ricalcola addebiti e imposte dal soggiorno, mantenendo lo sconto.",
    response_model=InvoiceRead,
)
async def regenerate_invoice(
    invoice_id: int = Path(..., description="Id della fattura"),
    service: BillingService = Depends(get_billing_service),
) -> InvoiceRead:
    return await service.regenerate_invoice(invoice_id)


# -------------------------------------------------------------------
# Dettaglio fattura
# -------------------------------------------------------------------

@router.get(
    "/{invoice_id}",
    name="fattura_dettaglio",
    summary="Dettaglio fattura",
    response_model=InvoiceRead,
)
async def get_invoice(
    invoice_id: int = Path(..., description="Id della fattura"),
    service: BillingService = Depends(get_billing_service),
) -> InvoiceRead:
    invoice = await service.get_invoice_by_id(invoice_id)
    if not invoice:
        raise NotFoundError(f"Fattura {invoice_id} non trovata")
    return invoice


@router.get(
    "/{invoice_id}/summary",
    name="fattura_riepilogo",
    summary="Riepilogo fattura",
    response_model=InvoiceSummary,
)
async def get_invoice_summary(
    invoice_id: int = Path(..., description="Id della fattura"),
    service: BillingService = Depends(get_billing_service),
) -> InvoiceSummary:
    return await service.get_invoice_summary(invoice_id)


@router.get(
    "/{invoice_id}/balance",
    name="fattura_saldo",
    summary="Saldo residuo",
    response_model=OutstandingBalance,
)
async def get_outstanding_balance(
    invoice_id: int = Path(..., description="Id della fattura"),
    service: BillingService = Depends(get_billing_service),
) -> OutstandingBalance:
    balance = await service.get_outstanding_balance(invoice_id)
    return OutstandingBalance(invoice_id=invoice_id, outstanding_balance=balance)


@router.patch(
    "/{invoice_id}/status",
    name="fattura_stato",
    summary="Modifica manuale dello stato",
    description="Imposta lo stato (es. OVERDUE). Il prossimo pagamento lo ricalcola.",
    response_model=InvoiceRead,
)
async def update_invoice_status(
    data: InvoiceStatusUpdate,
    invoice_id: int = Path(..., description="Id della fattura"),
    service: BillingService = Depends(get_billing_service),
) -> InvoiceRead:
    return await service.update_invoice_status(invoice_id, data.status)


@router.post(
    "/{invoice_id}/discount",
    name="fattura_sconto",
    summary="Applica sconto",
    description="Applica o sostituisce lo sconto e ricalcola totale e stato.",
    response_model=InvoiceRead,
)
async def apply_discount(
    data: DiscountApply,
    invoice_id: int = Path(..., description="Id della fattura"),
    service: BillingService = Depends(get_billing_service),
) -> InvoiceRead:
    return await service.apply_discount(invoice_id, data.amount, data.reason)


@router.delete(
    "/{invoice_id}/discount",
    name="fattura_rimuovi_sconto",
    summary="Rimuovi sconto",
    response_model=InvoiceRead,
)
async def remove_discount(
    invoice_id: int = Path(..., description="Id della fattura"),
    service: BillingService = Depends(get_billing_service),
) -> InvoiceRead:
    return await service.remove_discount(invoice_id)


# -------------------------------------------------------------------
# Pagamenti della fattura
# -------------------------------------------------------------------

@router.get(
    "/{invoice_id}/payments",
    name="fattura_pagamenti",
    summary="Pagamenti della fattura",
    response_model=List[PaymentRead],
    tags=["Pagamenti"],
)
async def get_invoice_payments(
    invoice_id: int = Path(..., description="Id della fattura"),
    service: BillingService = Depends(get_billing_service),
) -> List[PaymentRead]:
    return await service.get_payments_for_invoice(invoice_id)


@router.post(
    "/{invoice_id}/payments",
    name="registra_pagamento",
    summary="Registra pagamento",
    description="Registra un pagamento; l'importo non può superare il saldo residuo.",
    response_model=PaymentRead,
    status_code=status.HTTP_201_CREATED,
    tags=["Pagamenti"],
)
async def create_payment(
    data: PaymentCreate,
    invoice_id: int = Path(..., description="Id della fattura"),
    service: BillingService = Depends(get_billing_service),
) -> PaymentRead:
    return await service.process_payment_with_reference(
        invoice_id,
        data.amount,
        data.payment_method,
        data.transaction_reference,
        idempotency_key=data.idempotency_key,
    )
