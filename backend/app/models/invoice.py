"""
Modelli SQLAlchemy per la Fatturazione
Progetto: Hotel SmartTrack (Billing Ledger)

Contiene:
- Invoice: Fattura generata da un soggiorno
- Payment: Pagamenti registrati sulla fattura

Gli stessi modelli sono usati anche dall'archivio in memoria
(istanze transienti, mai aggiunte a una sessione).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import IntegerIdMixin, TimestampMixin, utc_now


class Invoice(Base, IntegerIdMixin, TimestampMixin):
    """
    Modello per le fatture.

    Una fattura è generata al checkout di un soggiorno e raccoglie
    addebiti camera, extra, imposte e sconti. I campi amount_paid,
    outstanding_balance e status sono mantenuti dal BalanceReconciler
    e non vanno scritti direttamente.

    Attributes:
        id: Intero progressivo, assegnato alla creazione
        stay_id: Id del soggiorno di origine (riferimento debole)
        reservation_id: Id della prenotazione (riferimento debole)
        guest_id: Id dell'ospite (riferimento debole)
        room_charges: Addebito camera (notti × tariffa)
        incidental_charges: Totale servizi extra
        taxes: Imposte sul subtotale
        discounts: Sconto applicato
        discount_reason: Motivazione dello sconto
        total_amount: room + incidental + taxes - discounts
        amount_paid: Somma dei pagamenti COMPLETED
        outstanding_balance: max(0, total_amount - amount_paid)
        status: UNPAID | PARTIALLY_PAID | PAID | OVERDUE
        issued_time: Data/ora di emissione (immutabile)
    """

    __tablename__ = "invoices"

    # ------------------------------------------------------------
    # Colonne Riferimenti
    # ------------------------------------------------------------
    stay_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        doc="Id del soggiorno di origine",
    )

    reservation_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        doc="Id della prenotazione",
    )

    guest_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        doc="Id dell'ospite intestatario",
    )

    # ------------------------------------------------------------
    # Colonne Importi
    # ------------------------------------------------------------
    room_charges: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Addebito camera (notti × tariffa)",
    )

    incidental_charges: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Totale servizi extra (minibar, ristorante, ...)",
    )

    taxes: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Imposte calcolate sul subtotale",
    )

    discounts: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Sconto applicato al totale",
    )

    discount_reason: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        doc="Motivazione dello sconto",
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Totale fattura (room + incidental + taxes - discounts)",
    )

    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Somma dei pagamenti COMPLETED",
    )

    outstanding_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Saldo residuo da incassare",
    )

    # ------------------------------------------------------------
    # Colonne Stato
    # ------------------------------------------------------------
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="UNPAID",
        doc="Stato della fattura",
    )

    issued_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        doc="Data/ora di emissione",
    )

    __table_args__ = (
        # Ricerca per soggiorno/ospite/stato
        Index("ix_invoices_stay_id", "stay_id"),
        Index("ix_invoices_guest_id", "guest_id"),
        Index("ix_invoices_status", "status"),
        # Vincoli di check sugli importi
        CheckConstraint("room_charges >= 0", name="ck_invoices_room_charges_positive"),
        CheckConstraint("incidental_charges >= 0", name="ck_invoices_incidental_positive"),
        CheckConstraint("taxes >= 0", name="ck_invoices_taxes_positive"),
        CheckConstraint("discounts >= 0", name="ck_invoices_discounts_positive"),
        CheckConstraint("total_amount >= 0", name="ck_invoices_total_positive"),
        CheckConstraint("amount_paid >= 0", name="ck_invoices_amount_paid_positive"),
        CheckConstraint(
            "status IN ('UNPAID', 'PARTIALLY_PAID', 'PAID', 'OVERDUE')",
            name="ck_invoices_status",
        ),
    )

    @property
    def gross_amount(self) -> Decimal:
        """Addebiti prima dello sconto (room + incidental + taxes)."""
        return (
            (self.room_charges or Decimal("0"))
            + (self.incidental_charges or Decimal("0"))
            + (self.taxes or Decimal("0"))
        )

    def __repr__(self) -> str:
        """Rappresentazione stringa della fattura."""
        return (
            f"<Invoice(id={self.id}, stay_id={self.stay_id}, "
            f"total={self.total_amount}, status={self.status})>"
        )


class Payment(Base, IntegerIdMixin, TimestampMixin):
    """
    Modello per i pagamenti registrati su una fattura.

    L'ordine degli id coincide con l'ordine cronologico di registrazione.

    Attributes:
        id: Intero progressivo
        invoice_id: Fattura a cui il pagamento è imputato
        amount: Importo (> 0)
        payment_method: Metodo (Cash, Credit Card, ...; "Unknown" se assente)
        transaction_reference: Riferimento esterno (POS, bonifico, ...)
        idempotency_key: Chiave del chiamante per evitare doppi addebiti
        status: COMPLETED | REFUNDED
        payment_time: Data/ora di registrazione
        refunded_time: Data/ora del rimborso
    """

    __tablename__ = "payments"

    # ------------------------------------------------------------
    # Colonna Relazione - Fattura
    # ------------------------------------------------------------
    invoice_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=False,
        doc="Id della fattura",
    )

    # ------------------------------------------------------------
    # Colonne Dati
    # ------------------------------------------------------------
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        doc="Importo del pagamento",
    )

    payment_method: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="Unknown",
        doc="Metodo di pagamento",
    )

    transaction_reference: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        doc="Riferimento transazione",
    )

    idempotency_key: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        doc="Chiave di idempotenza fornita dal chiamante",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="COMPLETED",
        doc="Stato del pagamento",
    )

    payment_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        doc="Data/ora del pagamento",
    )

    refunded_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Data/ora del rimborso",
    )

    __table_args__ = (
        Index("ix_payments_invoice_id", "invoice_id"),
        Index("ix_payments_invoice_idempotency", "invoice_id", "idempotency_key"),
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        CheckConstraint(
            "status IN ('COMPLETED', 'REFUNDED')",
            name="ck_payments_status",
        ),
    )

    def __repr__(self) -> str:
        """Rappresentazione stringa del pagamento."""
        return (
            f"<Payment(id={self.id}, invoice_id={self.invoice_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
