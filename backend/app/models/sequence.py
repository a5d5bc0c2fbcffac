"""
Modello SQLAlchemy per la Numerazione Documenti
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Contiene:
- DocumentSequence: contatore per tipo documento e periodo
"""

from sqlalchemy import CheckConstraint, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


class DocumentSequence(Base, UUIDMixin, TimestampMixin):
    """
    Contatore progressivo senza buchi per un tipo di documento.

    Una riga per (document_type, period_year, period_month). La riga
    nasce al primo numero emesso nel periodo e viene incrementata
    atomicamente da SequenceService. Le colonne di periodo valgono 0
    quando la numerazione non è partizionata.

    Attributes:
        document_type: customer | quote | invoice
        period_year: Anno del periodo (0 = numerazione continua)
        period_month: Mese del periodo (0 = non partizionato per mese)
        last_number: Ultimo numero emesso (0 = nessuno)
    """

    __tablename__ = "document_sequences"

    document_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Tipo documento (customer, quote, invoice)",
    )

    period_year: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Anno del periodo di numerazione",
    )

    period_month: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Mese del periodo di numerazione",
    )

    last_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Ultimo progressivo emesso",
    )

    __table_args__ = (
        UniqueConstraint(
            "document_type", "period_year", "period_month",
            name="uq_document_sequences_key",
        ),
        CheckConstraint("last_number >= 0", name="ck_document_sequences_last_number"),
        CheckConstraint(
            "document_type IN ('customer', 'quote', 'invoice')",
            name="ck_document_sequences_type",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<DocumentSequence({self.document_type} "
            f"{self.period_year}/{self.period_month}: {self.last_number})>"
        )
