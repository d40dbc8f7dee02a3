"""
Schemas Pydantic per la Fatturazione
Progetto: Hotel SmartTrack (Billing Ledger)

Contiene:
- Enums: InvoiceStatus, PaymentStatus
- Schemas per Payment
- Schemas per Invoice (lettura, riepilogo, saldo, sconto, stato)
- ChargeBreakdown e RevenueReport
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)

from app.core.exceptions import BusinessValidationError


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class InvoiceStatus(str, Enum):
    """Stato della fattura. OVERDUE è solo manuale, mai derivato."""
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"

    @classmethod
    def from_label(cls, value: Optional[str]) -> Optional["InvoiceStatus"]:
        """
        Converte un'etichetta libera nello stato corrispondente.

        Il confronto ignora maiuscole/minuscole e tratta spazi e trattini
        come underscore ("partially paid" → PARTIALLY_PAID).
        Restituisce None per etichette sconosciute.
        """
        if value is None:
            return None
        normalized = value.strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls(normalized)
        except ValueError:
            return None


class PaymentStatus(str, Enum):
    """Stato del pagamento."""
    COMPLETED = "COMPLETED"
    REFUNDED = "REFUNDED"


# -------------------------------------------------------------------
# Schemas per Payment
# -------------------------------------------------------------------

class PaymentCreate(BaseModel):
    """
    Schema per la registrazione di un pagamento su una fattura.

    La validazione dell'importo (> 0, ≤ saldo) è demandata al ledger,
    che solleva InvalidAmountError / ExceedsBalanceError.
    """

    amount: Decimal = Field(
        ...,
        description="Importo pagato",
    )
    payment_method: Optional[str] = Field(
        None,
        max_length=50,
        description="Metodo di pagamento (Cash, Credit Card, ...)",
    )
    transaction_reference: Optional[str] = Field(
        None,
        max_length=255,
        description="Riferimento transazione (POS, CRO bonifico, ...)",
    )
    idempotency_key: Optional[str] = Field(
        None,
        max_length=100,
        description="Chiave per evitare doppie registrazioni dello stesso pagamento",
    )


class PaymentRead(BaseModel):
    """Schema per la lettura di un pagamento."""

    id: int = Field(..., description="Id del pagamento")
    invoice_id: int = Field(
        ...,
        description="Id della fattura",
        serialization_alias="invoiceId",
    )
    amount: Decimal = Field(..., description="Importo pagato")
    payment_method: str = Field(
        ...,
        description="Metodo di pagamento",
        serialization_alias="paymentMethod",
    )
    transaction_reference: Optional[str] = Field(
        None,
        description="Riferimento transazione",
        serialization_alias="transactionReference",
    )
    status: PaymentStatus = Field(..., description="Stato del pagamento")
    payment_time: datetime = Field(
        ...,
        description="Data/ora del pagamento",
        serialization_alias="paymentTime",
    )
    refunded_time: Optional[datetime] = Field(
        None,
        description="Data/ora del rimborso",
        serialization_alias="refundedTime",
    )

    model_config = ConfigDict(from_attributes=True)


# -------------------------------------------------------------------
# Schemas per Invoice
# -------------------------------------------------------------------

class InvoiceRead(BaseModel):
    """Schema per la lettura completa di una fattura."""

    id: int = Field(..., description="Id della fattura")
    stay_id: Optional[int] = Field(None, serialization_alias="stayId")
    reservation_id: Optional[int] = Field(None, serialization_alias="reservationId")
    guest_id: Optional[int] = Field(None, serialization_alias="guestId")
    room_charges: Decimal = Field(
        ...,
        description="Addebito camera",
        serialization_alias="roomCharges",
    )
    incidental_charges: Decimal = Field(
        ...,
        description="Totale servizi extra",
        serialization_alias="incidentalCharges",
    )
    taxes: Decimal = Field(..., description="Imposte")
    discounts: Decimal = Field(..., description="Sconto applicato")
    discount_reason: Optional[str] = Field(
        None,
        description="Motivazione dello sconto",
        serialization_alias="discountReason",
    )
    total_amount: Decimal = Field(
        ...,
        description="Totale fattura",
        serialization_alias="totalAmount",
    )
    amount_paid: Decimal = Field(
        ...,
        description="Totale incassato",
        serialization_alias="amountPaid",
    )
    outstanding_balance: Decimal = Field(
        ...,
        description="Saldo residuo",
        serialization_alias="outstandingBalance",
    )
    status: InvoiceStatus = Field(..., description="Stato della fattura")
    issued_time: datetime = Field(
        ...,
        description="Data/ora di emissione",
        serialization_alias="issuedTime",
    )

    model_config = ConfigDict(from_attributes=True)

    @computed_field(alias="isSettled")
    @property
    def is_settled(self) -> bool:
        """True se non resta nulla da incassare."""
        return self.outstanding_balance == 0


class InvoiceSummary(BaseModel):
    """Riepilogo sintetico della fattura per il front desk."""

    invoice_id: int = Field(..., serialization_alias="invoiceId")
    status: InvoiceStatus
    total_amount: Decimal = Field(..., serialization_alias="totalAmount")
    amount_paid: Decimal = Field(..., serialization_alias="amountPaid")
    outstanding_balance: Decimal = Field(..., serialization_alias="outstandingBalance")

    model_config = ConfigDict(from_attributes=True)


class OutstandingBalance(BaseModel):
    """Saldo residuo di una fattura."""

    invoice_id: int = Field(..., serialization_alias="invoiceId")
    outstanding_balance: Decimal = Field(..., serialization_alias="outstandingBalance")


class DiscountApply(BaseModel):
    """Schema per applicare (o sostituire) lo sconto di una fattura."""

    amount: Decimal = Field(..., description="Importo dello sconto")
    reason: Optional[str] = Field(
        None,
        max_length=255,
        description="Motivazione dello sconto",
    )


class InvoiceStatusUpdate(BaseModel):
    """Schema per la modifica manuale dello stato (es. OVERDUE)."""

    status: str = Field(..., min_length=1, description="Nuovo stato")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if InvoiceStatus.from_label(v) is None:
            raise BusinessValidationError(f"Stato fattura '{v}' non valido")
        return v


# -------------------------------------------------------------------
# Calcolo addebiti e report
# -------------------------------------------------------------------

class ChargeBreakdown(BaseModel):
    """Scomposizione degli addebiti di un soggiorno."""

    room_charges: Decimal = Field(..., serialization_alias="roomCharges")
    incidental_charges: Decimal = Field(..., serialization_alias="incidentalCharges")
    subtotal: Decimal = Field(..., description="room + incidental")
    taxes: Decimal
    discounts: Decimal = Field(Decimal("0.00"))
    total: Decimal = Field(..., description="subtotal + taxes - discounts")

    model_config = ConfigDict(frozen=True)


class RevenueReport(BaseModel):
    """Schema per il report degli incassi."""

    from_date: Optional[date] = Field(
        None,
        description="Inizio periodo (incluso)",
        serialization_alias="fromDate",
    )
    to_date: Optional[date] = Field(
        None,
        description="Fine periodo (incluso)",
        serialization_alias="toDate",
    )
    total_revenue: Decimal = Field(
        ...,
        description="Somma dei totali delle fatture PAID nel periodo",
        serialization_alias="totalRevenue",
    )
    total_invoiced: Decimal = Field(
        ...,
        description="Somma totale delle fatture nel periodo",
        serialization_alias="totalInvoiced",
    )
    total_paid: Decimal = Field(
        ...,
        description="Somma incassata sulle fatture del periodo",
        serialization_alias="totalPaid",
    )
    total_unpaid: Decimal = Field(
        ...,
        description="Totale residuo da incassare",
        serialization_alias="totalUnpaid",
    )
    invoices_count: int = Field(
        ...,
        description="Numero di fatture nel periodo",
        serialization_alias="invoicesCount",
    )
    payments_count: int = Field(
        ...,
        description="Numero di pagamenti COMPLETED sulle fatture del periodo",
        serialization_alias="paymentsCount",
    )

    model_config = ConfigDict(from_attributes=True)
