"""
Modelli SQLAlchemy per Conti e Movimenti Bancari
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Contiene:
- BankAccount: Conto bancario
- Transaction: Movimento bancario (API, CSV o manuale)
"""

from __future__ import annotations

import uuid
import datetime
from typing import List

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    JSON,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


class BankAccount(Base, UUIDMixin, TimestampMixin):
    """
    Conto bancario collegato.

    Attributes:
        name: Nome del conto (es. "Vivid Geschäftskonto")
        iban: IBAN del conto
        bank_name: Nome della banca
        external_ref: Identificativo del conto presso il provider bancario
        last_synced_at: Ultima sincronizzazione riuscita
    """

    __tablename__ = "bank_accounts"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    iban: Mapped[str | None] = mapped_column(String(34), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    external_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_synced_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    transactions: Mapped[List["Transaction"]] = relationship(
        "Transaction",
        back_populates="bank_account",
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"<BankAccount({self.name})>"


class Transaction(Base, UUIDMixin, TimestampMixin):
    """
    Movimento bancario.

    Dopo la creazione cambiano solo i campi di categorizzazione
    (category, sub_category, vat_rate, vat_amount, notes, tags).

    Chiavi di deduplicazione:
    - external_id: id del provider bancario, univoco per conto
    - csv_row_hash: impronta della riga CSV (data|importo|descrizione)
    - contenuto: (conto, data, importo, descrizione)
    """

    __tablename__ = "transactions"

    bank_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bank_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )

    source: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        doc="Origine: api, csv, manual",
    )

    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    csv_row_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    import_batch_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False, doc="Importo con segno: negativo = uscita")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    counterparty: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # ------------------------------------------------------------
    # Categorizzazione
    # ------------------------------------------------------------
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sub_category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vat_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    vat_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    bank_account: Mapped["BankAccount"] = relationship(
        "BankAccount",
        back_populates="transactions",
        lazy="selectin",
    )

    __table_args__ = (
        Index(
            "uq_transactions_account_external_id",
            "bank_account_id", "external_id",
            unique=True,
        ),
        Index("ix_transactions_csv_row_hash", "csv_row_hash"),
        Index("ix_transactions_content", "bank_account_id", "date", "amount"),
        CheckConstraint("source IN ('api', 'csv', 'manual')", name="ck_transactions_source"),
    )

    def __repr__(self) -> str:
        return f"<Transaction({self.date} {self.amount} {self.description[:30]!r})>"
