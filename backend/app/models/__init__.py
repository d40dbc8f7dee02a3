"""
Modelli Database SQLAlchemy
Progetto: Hotel SmartTrack (Billing Ledger)

Import centralizzato di tutti i modelli per create_all e usage generico.

Modelli:
- Invoice: Fatture generate dai soggiorni
- Payment: Pagamenti registrati sulle fatture
"""

# SQLAlchemy 2.0 Base declarativa
# Importato qui per essere disponibile per tutti i modelli
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


# Import modelli implementati
from app.models.invoice import Invoice, Payment

__all__ = [
    "Base",
    "Invoice",
    "Payment",
]
