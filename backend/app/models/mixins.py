"""
Mixin SQLAlchemy per modelli
Progetto: Hotel SmartTrack (Billing Ledger)

Mixin riutilizzabili per aggiungere funzionalità comuni ai modelli.
"""

import datetime
from typing import Any

from sqlalchemy import DateTime, Integer
from sqlalchemy import event
from sqlalchemy.orm import Mapped, mapped_column, Session
from sqlalchemy.sql import func


def utc_now() -> datetime.datetime:
    """Data/ora corrente in UTC (timezone-aware)."""
    return datetime.datetime.now(datetime.timezone.utc)


def copy_row(obj: Any) -> Any:
    """
    Copia transiente di un'istanza mappata, colonna per colonna.

    La copia non appartiene a nessuna sessione: usata dagli archivi
    in memoria per non esporre gli oggetti interni.
    """
    values = {column.key: getattr(obj, column.key) for column in obj.__table__.columns}
    return type(obj)(**values)


class TimestampMixin:
    """
    Mixin per gestione automatica timestamp creazione e aggiornamento.

    Aggiunge i campi:
    - created_at: data/ora di creazione record (impostato automaticamente)
    - updated_at: data/ora ultimo aggiornamento (aggiornato automaticamente)

    Usage:
        class MyModel(Base, TimestampMixin):
            __tablename__ = "my_table"
            ...
    """

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        doc="Data/ora di creazione del record",
    )

    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        doc="Data/ora ultimo aggiornamento del record",
    )


class IntegerIdMixin:
    """
    Mixin per ID intero autoincrementale.

    Gli id sono assegnati alla creazione, mai riutilizzati né modificati.

    Usage:
        class MyModel(Base, IntegerIdMixin):
            __tablename__ = "my_table"
            ...
    """

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        doc="Identificativo intero progressivo",
    )


# ------------------------------------------------------------
# Event Listeners
# ------------------------------------------------------------
@event.listens_for(Session, "before_flush")
def update_timestamp(session: Session, flush_context, instances) -> None:
    """
    Event listener per aggiornare automaticamente il campo updated_at.

    Questo listener viene eseguito prima di ogni flush e aggiorna il campo
    updated_at di tutti gli oggetti modificati (dirty) e nuovi (new).

    Args:
        session: Sessione SQLAlchemy
        flush_context: Contesto del flush
        instances: Oggetti instances (non usato)
    """
    now = utc_now()

    for obj in session.dirty:
        if hasattr(obj, 'updated_at'):
            # Solo se l'oggetto è stato davvero modificato
            if session.is_modified(obj, include_collections=False):
                obj.updated_at = now

    for obj in session.new:
        if hasattr(obj, 'updated_at'):
            obj.updated_at = now
