"""
Router FastAPI per il checkout dei soggiorni
Progetto: Hotel SmartTrack (Billing Ledger)

Il modulo soggiorni notifica qui il checkout: la fotografia del
soggiorno viene registrata e la fattura generata subito.
"""

import logging

from fastapi import APIRouter, Depends, status

from app.core.deps import get_billing_service, get_stay_gateway
from app.schemas.invoice import InvoiceRead
from app.schemas.stay import StaySnapshot
from app.services.billing_service import BillingService
from app.services.stay_gateway import InMemoryStayGateway

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/stays",
    tags=["Soggiorni"],
)


@router.post(
    "/checkout",
    name="checkout_soggiorno",
    summary="Checkout e fatturazione",
    description="Registra il soggiorno concluso e genera la sua fattura.",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def checkout_stay(
    stay: StaySnapshot,
    stays: InMemoryStayGateway = Depends(get_stay_gateway),
    service: BillingService = Depends(get_billing_service),
) -> InvoiceRead:
    stays.register(stay)
    logger.info(f"Checkout soggiorno {stay.stay_id} ricevuto")
    return await service.generate_invoice(stay.stay_id)
