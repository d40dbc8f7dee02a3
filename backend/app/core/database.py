"""
Configurazione Database - SQLAlchemy 2.0 Async
Progetto: Hotel SmartTrack (Billing Ledger)

Definisce engine e session factory; la sessione per richiesta è in app.core.deps.
Il database viene usato solo con storage_backend="database".
"""

import logging
from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings

# Logger per questo modulo
logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> Dict[str, Any]:
    """Opzioni del pool: SQLite (aiosqlite) non accetta pool_size/max_overflow."""
    options: Dict[str, Any] = {
        "echo": settings.debug,  # Log query in modalità debug
        "pool_pre_ping": True,   # Verifica connessione prima di usarla
    }
    if not database_url.startswith("sqlite"):
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
    return options


# ------------------------------------------------------------
# Engine Async SQLAlchemy 2.0
# ------------------------------------------------------------
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    **_engine_options(settings.database_url),
)


# ------------------------------------------------------------
# Session Factory
# ------------------------------------------------------------
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def init_db() -> None:
    """
    Inizializza la connessione al database.

    Esegue un test di connessione e, se db_create_tables è attivo,
    crea le tabelle invoices/payments mancanti.
    """
    # Import locale: registra i modelli sul metadata
    from app.models import Base

    try:
        async with engine.begin() as conn:
            # Test connessione
            await conn.execute(text("SELECT 1"))
            if settings.db_create_tables:
                await conn.run_sync(Base.metadata.create_all)
                logger.info("Tabelle del ledger verificate/create")
        logger.info("Connessione al database stabilita con successo")
    except Exception as e:
        logger.error("Errore connessione database: %s", e)
        raise


async def close_db() -> None:
    """
    Chiude le connessioni al database.

    Da chiamare durante lo shutdown dell'applicazione.
    """
    await engine.dispose()
    logger.info("Connessioni database chiuse")
