"""
Modelli SQLAlchemy per i Preventivi
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Contiene:
- Quote: Preventivo (Angebot)
- QuoteItem: Righe del preventivo
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.customer import Customer
    from app.models.invoice import Invoice


class Quote(Base, UUIDMixin, TimestampMixin):
    """
    Modello per i preventivi.

    Un preventivo accettato può essere convertito una sola volta in
    fattura: il vincolo unique su invoices.quote_id lo garantisce anche
    sotto richieste concorrenti.

    Attributes:
        quote_number: Numero preventivo (formato: BM-ANB-2025-001)
        status: draft | sent | accepted | rejected
        is_editable: False dall'invio in poi
        valid_until: Data di scadenza dell'offerta
    """

    __tablename__ = "quotes"

    quote_number: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        unique=True,
        doc="Numero preventivo",
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        doc="UUID del cliente",
    )

    quote_date: Mapped[date] = mapped_column(Date, nullable=False)
    valid_until: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="draft",
        doc="Stato: draft, sent, accepted, rejected",
    )
    is_editable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    terms: Mapped[str | None] = mapped_column(Text, nullable=True)

    subtotal: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_vat: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_gross: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    customer: Mapped["Customer"] = relationship(
        "Customer",
        back_populates="quotes",
        lazy="selectin",
    )

    items: Mapped[List["QuoteItem"]] = relationship(
        "QuoteItem",
        back_populates="quote",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="QuoteItem.sort_order",
    )

    invoice: Mapped["Invoice | None"] = relationship(
        "Invoice",
        back_populates="quote",
        uselist=False,
        lazy="selectin",
        doc="Fattura generata dal preventivo",
    )

    __table_args__ = (
        Index("ix_quotes_customer_id", "customer_id"),
        CheckConstraint(
            "status IN ('draft', 'sent', 'accepted', 'rejected')",
            name="ck_quotes_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<Quote(id={self.id}, number={self.quote_number}, status={self.status})>"


class QuoteItem(Base, UUIDMixin, TimestampMixin):
    """Riga del preventivo, stessa aritmetica delle righe fattura."""

    __tablename__ = "quote_items"

    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quotes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    unit: Mapped[str] = mapped_column(String(30), nullable=False, default="Stück")
    unit_price: Mapped[float] = mapped_column(Float, nullable=False)
    vat_rate: Mapped[float] = mapped_column(Float, nullable=False, default=19.0)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False)
    vat_amount: Mapped[float] = mapped_column(Float, nullable=False)
    total: Mapped[float] = mapped_column(Float, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    quote: Mapped["Quote"] = relationship("Quote", back_populates="items")
