"""
Router FastAPI per i Report
Progetto: Hotel SmartTrack (Billing Ledger)
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from app.core.deps import get_billing_service
from app.schemas.invoice import ChargeBreakdown, RevenueReport
from app.services.billing_service import BillingService

router = APIRouter(
    prefix="/reports",
    tags=["Report"],
)


@router.get(
    "/revenue",
    name="report_incassi",
    summary="Report incassi",
    description="Incassi delle fatture emesse nel periodo (estremi inclusi).",
    response_model=RevenueReport,
)
async def get_revenue_report(
    from_date: Optional[date] = Query(None, description="Data inizio periodo"),
    to_date: Optional[date] = Query(None, description="Data fine periodo"),
    service: BillingService = Depends(get_billing_service),
) -> RevenueReport:
    return await service.get_revenue_report(from_date, to_date)


@router.get(
    "/charges/{stay_id}",
    name="anteprima_addebiti",
    summary="Anteprima addebiti soggiorno",
    description="Calcola addebiti, imposte e totale di un soggiorno senza emettere fattura.",
    response_model=ChargeBreakdown,
)
async def get_charge_breakdown(
    stay_id: int = Path(..., description="Id del soggiorno"),
    service: BillingService = Depends(get_billing_service),
) -> ChargeBreakdown:
    return await service.get_charge_breakdown(stay_id)
