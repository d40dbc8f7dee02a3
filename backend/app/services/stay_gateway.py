"""
Contratto verso il modulo soggiorni
Progetto: Hotel SmartTrack (Billing Ledger)

La fatturazione non possiede soggiorni, camere né extra: li legge
attraverso StayGateway. L'implementazione in processo conserva le
fotografie dei soggiorni consegnate dal workflow di checkout.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from app.schemas.stay import StaySnapshot
from app.services.charge_calculator import ChargeCalculator

logger = logging.getLogger(__name__)


class StayGateway(ABC):
    """
    Contratto del collaboratore soggiorni.
    """

    @abstractmethod
    async def get_stay_by_id(self, stay_id: int) -> Optional[StaySnapshot]:
        """Restituisce il soggiorno o None se sconosciuto."""
        pass

    @abstractmethod
    async def calculate_room_charges(
        self,
        stay_id: int,
        now: Optional[datetime] = None,
    ) -> Decimal:
        """Addebito camera del soggiorno (notti × tariffa)."""
        pass

    @abstractmethod
    async def get_total_incidental_charges(self, stay_id: int) -> Decimal:
        """Somma degli extra non stornati del soggiorno."""
        pass


class InMemoryStayGateway(StayGateway):
    """
    Soggiorni registrati al checkout, tenuti in memoria per id.

    I soggiorni sconosciuti valgono zero negli addebiti; è il facade
    a verificarne l'esistenza prima di fatturare.
    """

    def __init__(self, default_nightly_rate: Decimal = Decimal("100.00")) -> None:
        self._stays: Dict[int, StaySnapshot] = {}
        self.default_nightly_rate = default_nightly_rate

    def register(self, stay: StaySnapshot) -> StaySnapshot:
        """Registra (o sostituisce) la fotografia di un soggiorno."""
        if stay.stay_id in self._stays:
            logger.info(f"Soggiorno {stay.stay_id} aggiornato")
        self._stays[stay.stay_id] = stay
        return stay

    async def get_stay_by_id(self, stay_id: int) -> Optional[StaySnapshot]:
        return self._stays.get(stay_id)

    async def calculate_room_charges(
        self,
        stay_id: int,
        now: Optional[datetime] = None,
    ) -> Decimal:
        stay = self._stays.get(stay_id)
        if stay is None:
            return Decimal("0.00")
        return ChargeCalculator.compute_room_charges(
            stay, self.default_nightly_rate, now=now
        )

    async def get_total_incidental_charges(self, stay_id: int) -> Decimal:
        stay = self._stays.get(stay_id)
        if stay is None:
            return Decimal("0.00")
        return ChargeCalculator.compute_incidental_total(stay.incidental_charges)
