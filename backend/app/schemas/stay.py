"""
Schemas Pydantic per i soggiorni visti dalla fatturazione
Progetto: Hotel SmartTrack (Billing Ledger)

La gestione di ospiti, camere e soggiorni è esterna al ledger:
qui si descrive solo la fotografia del soggiorno al checkout,
quanto basta per calcolare gli addebiti.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.exceptions import BusinessValidationError


class IncidentalChargeSnapshot(BaseModel):
    """Servizio extra addebitato durante il soggiorno (minibar, ristorante, ...)."""

    charge_id: Optional[int] = Field(None, serialization_alias="chargeId")
    service_type: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Tipo di servizio",
        serialization_alias="serviceType",
    )
    description: Optional[str] = Field(None, max_length=255)
    amount: Decimal = Field(..., ge=0, description="Importo dell'addebito")
    charge_time: Optional[datetime] = Field(None, serialization_alias="chargeTime")
    voided: bool = Field(False, description="Addebito stornato: escluso dai totali")

    model_config = ConfigDict(from_attributes=True)


class RoomSnapshot(BaseModel):
    """Camera occupata, con la tariffa per notte se nota."""

    room_id: Optional[int] = Field(None, serialization_alias="roomId")
    room_number: Optional[str] = Field(None, serialization_alias="roomNumber")
    nightly_rate: Optional[Decimal] = Field(
        None,
        ge=0,
        description="Tariffa base per notte del tipo camera",
        serialization_alias="nightlyRate",
    )

    model_config = ConfigDict(from_attributes=True)


class StaySnapshot(BaseModel):
    """
    Fotografia del soggiorno consegnata dal workflow di checkout.

    check_out_time assente significa soggiorno ancora in corso:
    le notti si contano fino ad oggi.
    """

    stay_id: int = Field(..., ge=1, serialization_alias="stayId")
    reservation_id: Optional[int] = Field(None, serialization_alias="reservationId")
    guest_id: Optional[int] = Field(None, serialization_alias="guestId")
    room: Optional[RoomSnapshot] = Field(None, description="Camera occupata")
    check_in_time: datetime = Field(..., serialization_alias="checkInTime")
    check_out_time: Optional[datetime] = Field(None, serialization_alias="checkOutTime")
    status: str = Field("CHECKED_OUT", max_length=20)
    incidental_charges: List[IncidentalChargeSnapshot] = Field(
        default_factory=list,
        serialization_alias="incidentalCharges",
    )

    model_config = ConfigDict(from_attributes=True)

    @field_validator("status")
    @classmethod
    def normalize_status(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("check_in_time", "check_out_time")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Orari senza fuso orario: UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def validate_times(self) -> "StaySnapshot":
        """Il checkout non può precedere il check-in."""
        if self.check_out_time is not None and self.check_out_time < self.check_in_time:
            raise BusinessValidationError(
                "La data di check-out non può essere precedente al check-in"
            )
        return self
