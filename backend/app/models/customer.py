"""
Modello SQLAlchemy per i Clienti
Progetto: Kontor (Buchhaltung für Kleinunternehmen)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.invoice import Invoice
    from app.models.quote import Quote


class Customer(Base, UUIDMixin, TimestampMixin):
    """
    Anagrafica cliente (Kunde).

    Attributes:
        customer_number: Numero cliente progressivo (formato: KD-001)
        name: Nome o referente
        company: Ragione sociale (opzionale)
        email: Email di contatto
        phone: Telefono
        address: Indirizzo completo
        vat_id: USt-IdNr. del cliente
        notes: Note interne
    """

    __tablename__ = "customers"

    customer_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        unique=True,
        doc="Numero cliente (KD-001)",
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    vat_id: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        doc="USt-IdNr. del cliente",
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    invoices: Mapped[List["Invoice"]] = relationship(
        "Invoice",
        back_populates="customer",
        lazy="noload",
    )

    quotes: Mapped[List["Quote"]] = relationship(
        "Quote",
        back_populates="customer",
        lazy="noload",
    )

    __table_args__ = (
        Index("idx_customers_name", "name"),
    )

    @property
    def display_name(self) -> str:
        """Nome visualizzato: ragione sociale se presente."""
        return self.company or self.name

    def __repr__(self) -> str:
        return f"<Customer({self.customer_number} {self.display_name})>"
