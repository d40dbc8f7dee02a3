"""
Router FastAPI per i Pagamenti
Progetto: Hotel SmartTrack (Billing Ledger)
"""

from fastapi import APIRouter, Depends, Path

from app.core.deps import get_billing_service
from app.core.exceptions import NotFoundError
from app.schemas.invoice import PaymentRead
from app.services.billing_service import BillingService

router = APIRouter(
    prefix="/payments",
    tags=["Pagamenti"],
)


@router.get(
    "/{payment_id}",
    name="pagamento_dettaglio",
    summary="Dettaglio pagamento",
    response_model=PaymentRead,
)
async def get_payment(
    payment_id: int = Path(..., description="Id del pagamento"),
    service: BillingService = Depends(get_billing_service),
) -> PaymentRead:
    payment = await service.get_payment_by_id(payment_id)
    if not payment:
        raise NotFoundError(f"Pagamento {payment_id} non trovato")
    return payment


@router.post(
    "/{payment_id}/refund",
    name="rimborsa_pagamento",
    summary="Rimborsa pagamento",
    description="Segna il pagamento come REFUNDED e ricalcola saldo e stato della fattura.",
    response_model=PaymentRead,
)
async def refund_payment(
    payment_id: int = Path(..., description="Id del pagamento"),
    service: BillingService = Depends(get_billing_service),
) -> PaymentRead:
    return await service.refund_payment(payment_id)
