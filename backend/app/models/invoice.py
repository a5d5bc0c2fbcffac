"""
Modelli SQLAlchemy per la Fatturazione
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Contiene:
- Invoice: Fattura (Rechnung), anche storno e correzione
- InvoiceItem: Righe della fattura
- CorrectionType: tipo di documento correttivo
- Guardia di immutabilità per le fatture bloccate (GoBD)
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship
from sqlalchemy.orm.util import identity_key

from app.core.exceptions import BusinessValidationError
from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin

# Import per type hinting relazioni (evita circular import)
if TYPE_CHECKING:
    from app.models.customer import Customer
    from app.models.quote import Quote


class CorrectionType(str, enum.Enum):
    """Tipo di documento correttivo: None per le fatture ordinarie."""
    CANCELLATION = "cancellation"  # Stornorechnung
    CORRECTION = "correction"      # Korrekturrechnung


CANCELLATION_PREFIX = "[STORNO] "
CORRECTION_PREFIX = "[KORREKTUR] "

# Limite delle descrizioni in ingresso; la colonna ha spazio per il prefisso
ITEM_DESCRIPTION_LENGTH = 500


class Invoice(Base, UUIDMixin, TimestampMixin):
    """
    Modello per le fatture.

    Una fattura nasce in bozza, viene bloccata all'invio e da quel
    momento righe, data e importi non cambiano più: ogni rettifica
    passa per un nuovo documento (storno o correzione) collegato
    tramite corrects_id / corrected_by_id.

    Attributes:
        invoice_number: Numero univoco (formato: BM-2025-001)
        customer_id: UUID del cliente
        quote_id: UUID del preventivo di origine (massimo una fattura per preventivo)
        status: draft | sent | paid
        is_locked: True dall'invio in poi
        is_cancelled: True se stornata
        correction_type: None, cancellation o correction
        corrects_id: Fattura originale (solo documenti correttivi)
        corrected_by_id: Ultimo documento correttivo emesso su questa fattura
        subtotal, total_vat, total_gross: Somme delle righe, precisione piena

    Relationships:
        customer: Cliente
        quote: Preventivo di origine
        items: Righe ordinate per sort_order
    """

    __tablename__ = "invoices"

    # ------------------------------------------------------------
    # Colonne Identificazione
    # ------------------------------------------------------------
    invoice_number: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        unique=True,
        doc="Numero fattura (immutabile una volta assegnato)",
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        doc="UUID del cliente",
    )

    quote_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("quotes.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
        doc="UUID del preventivo convertito (relazione 1:1)",
    )

    # ------------------------------------------------------------
    # Colonne Date e Condizioni
    # ------------------------------------------------------------
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False, doc="Rechnungsdatum")
    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True, doc="Leistungsdatum")
    due_date: Mapped[date] = mapped_column(Date, nullable=False, doc="Data scadenza pagamento")
    payment_terms: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    terms: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ------------------------------------------------------------
    # Colonne Stato
    # ------------------------------------------------------------
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="draft",
        doc="Stato: draft, sent, paid",
    )

    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_editable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ------------------------------------------------------------
    # Colonne Documenti Correttivi
    # ------------------------------------------------------------
    correction_type: Mapped[CorrectionType | None] = mapped_column(
        SAEnum(
            CorrectionType,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=True,
        doc="None per fatture ordinarie",
    )

    corrects_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=True,
        doc="Fattura originale corretta o stornata da questo documento",
    )

    corrected_by_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
        doc="Documento correttivo emesso su questa fattura",
    )

    # ------------------------------------------------------------
    # Colonne Importi (precisione piena, arrotondati solo nei report)
    # ------------------------------------------------------------
    subtotal: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_vat: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_gross: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    customer: Mapped["Customer"] = relationship(
        "Customer",
        back_populates="invoices",
        lazy="selectin",
        doc="Cliente associato",
    )

    quote: Mapped["Quote | None"] = relationship(
        "Quote",
        back_populates="invoice",
        lazy="raise",
        doc="Preventivo di origine",
    )

    items: Mapped[List["InvoiceItem"]] = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceItem.sort_order",
        doc="Righe della fattura",
    )

    # ------------------------------------------------------------
    # Properties Calcolate
    # ------------------------------------------------------------
    @property
    def is_overdue(self) -> bool:
        """True se inviata, non pagata e oltre la scadenza."""
        return self.status == "sent" and not self.is_cancelled and date.today() > self.due_date

    # ------------------------------------------------------------
    # Indici e Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        Index("ix_invoices_customer_id", "customer_id"),
        Index("ix_invoices_invoice_date", "invoice_date"),
        Index("ix_invoices_status", "status"),
        CheckConstraint(
            "status IN ('draft', 'sent', 'paid')",
            name="ck_invoices_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, number={self.invoice_number}, total={self.total_gross})>"


class InvoiceItem(Base, UUIDMixin, TimestampMixin):
    """
    Riga della fattura.

    subtotal = quantity * unit_price, vat_amount = subtotal * vat_rate / 100,
    total = subtotal + vat_amount. Nelle righe di storno quantity e importi
    sono negativi, unit_price e vat_rate restano quelli originali.
    """

    __tablename__ = "invoice_items"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="UUID della fattura padre",
    )

    description: Mapped[str] = mapped_column(
        String(ITEM_DESCRIPTION_LENGTH + max(len(CANCELLATION_PREFIX), len(CORRECTION_PREFIX))),
        nullable=False,
    )
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    unit: Mapped[str] = mapped_column(String(30), nullable=False, default="Stück")
    unit_price: Mapped[float] = mapped_column(Float, nullable=False)
    vat_rate: Mapped[float] = mapped_column(Float, nullable=False, default=19.0)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False)
    vat_amount: Mapped[float] = mapped_column(Float, nullable=False)
    total: Mapped[float] = mapped_column(Float, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    invoice: Mapped["Invoice"] = relationship(
        "Invoice",
        back_populates="items",
        doc="Fattura padre",
    )

    def __repr__(self) -> str:
        return f"<InvoiceItem({self.description!r} x{self.quantity} = {self.total})>"


# ------------------------------------------------------------
# Guardia di immutabilità
# ------------------------------------------------------------
LOCKED_INVOICE_FIELDS = ("invoice_number", "invoice_date", "subtotal", "total_vat", "total_gross", "items")


def _was_locked(invoice: Invoice) -> bool:
    """Valore di is_locked prima delle modifiche pendenti nella sessione."""
    history = inspect(invoice).attrs.is_locked.history
    if history.deleted:
        return bool(history.deleted[0])
    if history.unchanged:
        return bool(history.unchanged[0])
    return False


@event.listens_for(Session, "before_flush")
def protect_locked_invoices(session: Session, flush_context, instances) -> None:
    """
    Impedisce di scrivere modifiche a fatture già bloccate.

    Ultima difesa dietro ai controlli dei service: righe, data,
    numero e importi di una fattura bloccata non arrivano mai al
    database, e una fattura bloccata non può essere cancellata.
    """
    for obj in session.dirty:
        if isinstance(obj, Invoice) and _was_locked(obj):
            state = inspect(obj)
            changed = [
                name for name in LOCKED_INVOICE_FIELDS
                if state.attrs[name].history.has_changes()
            ]
            if changed:
                raise BusinessValidationError(
                    f"La fattura {obj.invoice_number} è bloccata: campi {', '.join(changed)} "
                    "non modificabili. Usare storno o fattura di correzione.",
                    error_code="INVOICE_LOCKED",
                )

    for obj in list(session.dirty) + list(session.deleted) + list(session.new):
        if not isinstance(obj, InvoiceItem) or obj.invoice_id is None:
            continue
        if obj in session.dirty and not session.is_modified(obj, include_collections=False):
            continue
        parent = session.identity_map.get(identity_key(Invoice, obj.invoice_id))
        if parent is not None and parent not in session.new and _was_locked(parent):
            raise BusinessValidationError(
                f"La fattura {parent.invoice_number} è bloccata: le righe non sono modificabili. "
                "Usare storno o fattura di correzione.",
                error_code="INVOICE_LOCKED",
            )

    for obj in session.deleted:
        if isinstance(obj, Invoice) and _was_locked(obj):
            raise BusinessValidationError(
                f"La fattura {obj.invoice_number} è bloccata e non può essere eliminata. "
                "Usare lo storno.",
                error_code="INVOICE_LOCKED",
            )
