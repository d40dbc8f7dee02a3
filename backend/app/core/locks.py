"""
Serializzazione delle scritture per fattura.
Progetto: Hotel SmartTrack (Billing Ledger)

Ogni fattura ha un proprio asyncio.Lock: load → validate → append →
reconcile → persist vengono eseguiti da un solo task alla volta.
Fatture diverse non si bloccano a vicenda. La generazione usa una
chiave per soggiorno, perché la fattura non ha ancora un id.

Un lock esiste solo finché qualche task lo tiene o lo attende.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable

logger = logging.getLogger(__name__)


class InvoiceLockRegistry:
    """Registro dei lock per chiave, condiviso da tutte le richieste del processo."""

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        # task che tengono o attendono il lock della chiave
        self._holders: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """
        Acquisisce il lock per la durata del blocco.

        All'uscita dell'ultimo task interessato il lock viene rimosso
        dal registro.

        Example:
            async with locks.hold(invoice_id):
                ...
            async with locks.hold(("stay", stay_id)):
                ...
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._holders[key] = self._holders.get(key, 0) + 1

        try:
            if lock.locked():
                logger.debug(f"Attesa lock {key}")
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        """Numero di chiavi con un lock attivo."""
        return len(self._locks)
