"""
Schemas Pydantic per il progetto Hotel SmartTrack (Billing Ledger)

Questo modulo contiene tutti gli schemi Pydantic utilizzati per la validazione
e serializzazione delle risposte API.
"""

# Import degli schemi per renderli disponibili tramite import diretto
# es: from app.schemas import InvoiceRead, StaySnapshot, etc.

from app.schemas.invoice import (
    ChargeBreakdown,
    DiscountApply,
    InvoiceRead,
    InvoiceStatus,
    InvoiceStatusUpdate,
    InvoiceSummary,
    OutstandingBalance,
    PaymentCreate,
    PaymentRead,
    PaymentStatus,
    RevenueReport,
)
from app.schemas.stay import IncidentalChargeSnapshot, RoomSnapshot, StaySnapshot

__all__ = [
    "ChargeBreakdown",
    "DiscountApply",
    "IncidentalChargeSnapshot",
    "InvoiceRead",
    "InvoiceStatus",
    "InvoiceStatusUpdate",
    "InvoiceSummary",
    "OutstandingBalance",
    "PaymentCreate",
    "PaymentRead",
    "PaymentStatus",
    "RevenueReport",
    "RoomSnapshot",
    "StaySnapshot",
]
