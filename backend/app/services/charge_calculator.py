"""
Service Layer per il calcolo degli addebiti
Progetto: Hotel SmartTrack (Billing Ledger)

Funzioni pure, senza accesso ad archivi né effetti collaterali:
notti, addebito camera, extra, imposte e scomposizione finale.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from app.schemas.invoice import ChargeBreakdown
from app.schemas.stay import IncidentalChargeSnapshot, StaySnapshot

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_money(value: Optional[Decimal]) -> Decimal:
    """Arrotonda al centesimo (ROUND_HALF_UP). None vale zero."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def is_whole_cents(value: Decimal) -> bool:
    """True se l'importo non ha cifre oltre il centesimo (120.00 sì, 120.004 no)."""
    return value == value.quantize(CENT)


class ChargeCalculator:
    """Calcolo degli addebiti di un soggiorno."""

    @staticmethod
    def compute_nights(
        check_in: datetime,
        check_out: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Conta le notti come differenza di giorni di calendario.

        Se il checkout manca si conta fino ad oggi. Il minimo è una notte,
        anche per arrivo e partenza nello stesso giorno.

        Args:
            check_in: Data/ora di check-in
            check_out: Data/ora di check-out (None = soggiorno in corso)
            now: Istante di riferimento per i soggiorni in corso

        Returns:
            int: Numero di notti (≥ 1)
        """
        if check_out is None:
            if now is None:
                now = datetime.now(timezone.utc) if check_in.tzinfo else datetime.now()
            check_out = now

        nights = (check_out.date() - check_in.date()).days
        return max(nights, 1)

    @staticmethod
    def compute_room_charges(
        stay: StaySnapshot,
        default_rate: Decimal,
        now: Optional[datetime] = None,
    ) -> Decimal:
        """
        Notti × tariffa della camera.

        Se la camera o la sua tariffa non sono disponibili
        si usa default_rate.
        """
        nights = ChargeCalculator.compute_nights(
            stay.check_in_time, stay.check_out_time, now=now
        )
        rate = default_rate
        if stay.room is not None and stay.room.nightly_rate is not None:
            rate = stay.room.nightly_rate
        return Decimal(nights) * rate

    @staticmethod
    def compute_incidental_total(
        charges: Iterable[IncidentalChargeSnapshot],
    ) -> Decimal:
        """Somma degli extra non stornati."""
        total = ZERO
        for charge in charges:
            if charge.voided:
                continue
            total += charge.amount
        return total

    @staticmethod
    def compute_tax(
        subtotal: Optional[Decimal],
        rate: Optional[Decimal],
    ) -> Decimal:
        """subtotal × rate, zero se uno dei due manca. Non arrotonda."""
        if subtotal is None or rate is None:
            return ZERO
        return subtotal * rate

    @staticmethod
    def build_breakdown(
        room_charges: Decimal,
        incidental_charges: Decimal,
        tax_rate: Optional[Decimal],
        discounts: Decimal = ZERO,
    ) -> ChargeBreakdown:
        """
        Compone room + incidental + imposte - sconto.

        Ogni componente è arrotondato al centesimo prima di sommare,
        così il totale coincide sempre con la somma delle voci stampate.
        """
        room = to_money(room_charges)
        incidental = to_money(incidental_charges)
        subtotal = room + incidental
        taxes = to_money(ChargeCalculator.compute_tax(subtotal, tax_rate))
        discount = to_money(discounts)
        total = max(subtotal + taxes - discount, ZERO)

        return ChargeBreakdown(
            room_charges=room,
            incidental_charges=incidental,
            subtotal=subtotal,
            taxes=taxes,
            discounts=discount,
            total=total,
        )
