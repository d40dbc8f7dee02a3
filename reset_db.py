"""
Ricrea le tabelle del Billing Ledger (invoices, payments).

Uso: python reset_db.py  (con DATABASE_URL nel .env)
"""

import asyncio
import logging
import os
import sys

# Aggiungi backend/ alla PYTHONPATH per importare app.*
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "backend"))

from app.core.config import settings
from app.core.database import close_db, engine
from app.models import Base

logging.basicConfig(level=settings.log_level, format="%(levelname)s - %(message)s")
logger = logging.getLogger("reset_db")


async def reset() -> None:
    if settings.is_production:
        logger.error("Reset rifiutato: APP_ENV=production")
        return

    tables = ", ".join(sorted(Base.metadata.tables))
    logger.info(f"Eliminazione tabelle del ledger ({tables})...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        logger.info("Tabelle eliminate. Creazione nuove tabelle...")
        await conn.run_sync(Base.metadata.create_all)
    await close_db()
    logger.info("Ledger resettato: nessuna fattura, nessun pagamento")


if __name__ == "__main__":
    asyncio.run(reset())
