"""
Schemas Pydantic per Conti e Movimenti Bancari
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Contiene:
- Schemas per BankAccount e Transaction
- Candidati e risultati della deduplicazione
- Esiti di import CSV, import bancario e deduplicazione massiva
"""

import datetime
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TransactionSource(str, Enum):
    """Origine del movimento."""
    API = "api"
    CSV = "csv"
    MANUAL = "manual"


# -------------------------------------------------------------------
# BankAccount
# -------------------------------------------------------------------

class BankAccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    iban: Optional[str] = Field(None, max_length=34)
    bank_name: Optional[str] = None
    currency: str = Field("EUR", min_length=3, max_length=3)
    external_ref: Optional[str] = None


class BankAccountRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    iban: Optional[str] = None
    bank_name: Optional[str] = None
    currency: str
    external_ref: Optional[str] = None
    is_active: bool
    last_synced_at: Optional[datetime.datetime] = None


# -------------------------------------------------------------------
# Transaction
# -------------------------------------------------------------------

class TransactionCreate(BaseModel):
    """Inserimento manuale di un movimento."""

    bank_account_id: uuid.UUID
    date: datetime.date
    amount: float = Field(..., description="Negativo = uscita")
    currency: str = Field("EUR", min_length=3, max_length=3)
    description: str = Field(..., min_length=1)
    counterparty: Optional[str] = None
    category: Optional[str] = None
    sub_category: Optional[str] = None
    vat_rate: Optional[float] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    tags: Optional[list[str]] = None


class TransactionCategorize(BaseModel):
    """Aggiornamento della sola categorizzazione."""

    category: Optional[str] = None
    sub_category: Optional[str] = None
    vat_rate: Optional[float] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    tags: Optional[list[str]] = None


class TransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    bank_account_id: uuid.UUID
    source: TransactionSource
    external_id: Optional[str] = None
    csv_row_hash: Optional[str] = None
    import_batch_id: Optional[uuid.UUID] = None
    date: datetime.date
    amount: float
    currency: str
    description: str
    counterparty: Optional[str] = None
    category: Optional[str] = None
    sub_category: Optional[str] = None
    vat_rate: Optional[float] = None
    vat_amount: Optional[float] = None
    notes: Optional[str] = None
    tags: Optional[list[str]] = None
    created_at: datetime.datetime


class TransactionList(BaseModel):
    items: list[TransactionRead] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    per_page: int = Field(..., ge=1)


# -------------------------------------------------------------------
# Deduplicazione
# -------------------------------------------------------------------

class TransactionCandidate(BaseModel):
    """Movimento in arrivo da verificare contro quelli già salvati."""

    date: datetime.date
    amount: float
    description: str = ""
    counterparty: Optional[str] = None
    currency: str = "EUR"
    external_id: Optional[str] = None
    csv_row_hash: Optional[str] = None


class DuplicateCheckResult(BaseModel):
    is_duplicate: bool
    matched_transaction_id: Optional[uuid.UUID] = None
    strategy: Optional[str] = Field(None, description="external_id | csv_hash | content")


class DuplicateCheckRequest(BaseModel):
    bank_account_id: uuid.UUID
    candidates: list[TransactionCandidate] = Field(..., min_length=1)


class DuplicateCheckResponse(BaseModel):
    duplicates: dict[int, bool] = Field(..., description="Indice candidato → duplicato")
    duplicate_count: int


# -------------------------------------------------------------------
# Esiti import
# -------------------------------------------------------------------

class CsvRowError(BaseModel):
    row: int = Field(..., description="Numero riga nel file (intestazione = 1)")
    error: str


class CsvImportResult(BaseModel):
    bank_account_id: uuid.UUID
    import_batch_id: uuid.UUID
    total_rows: int
    imported: int
    duplicates: int
    errors: list[CsvRowError] = Field(default_factory=list)


class BankImportRequest(BaseModel):
    """Movimenti già recuperati dal provider bancario."""

    bank_account_id: uuid.UUID
    transactions: list[TransactionCandidate] = Field(..., min_length=1)


class BankImportResult(BaseModel):
    bank_account_id: uuid.UUID
    imported: int
    duplicates: int
    pages: int = 1


class BulkDeduplicateResult(BaseModel):
    total: int
    duplicates: int
    remaining: int
    deleted: int


class BankTransactionPage(BaseModel):
    """Pagina di movimenti restituita dal provider bancario."""

    transactions: list[TransactionCandidate] = Field(default_factory=list)
    has_more: bool = False


# -------------------------------------------------------------------
# Riepiloghi IVA (USt-Übersicht)
# -------------------------------------------------------------------

class VatRateSummary(BaseModel):
    """Totali per aliquota; le uscite entrano con segno negativo."""

    rate: float
    net_amount: float
    vat_amount: float
    gross_amount: float


class CategorySummary(BaseModel):
    category: str
    amount: float = Field(..., description="Somma degli importi in valore assoluto")
    count: int


class PeriodSummary(BaseModel):
    """
    Riepilogo dei movimenti di un periodo, importi arrotondati a 2 decimali.

    vat_payable è l'IVA incassata meno quella pagata (Zahllast):
    positiva = da versare, negativa = credito.
    """

    from_date: datetime.date
    to_date: datetime.date
    transaction_count: int = 0
    total_income: float = 0.0
    total_expense: float = 0.0
    net_amount: float = 0.0
    vat_payable: float = 0.0
    vat_by_rate: list[VatRateSummary] = Field(default_factory=list)
    category_breakdown: list[CategorySummary] = Field(default_factory=list)


class DashboardSummary(PeriodSummary):
    """Riepilogo mensile con le prime categorie e gli ultimi movimenti."""

    recent_transactions: list[TransactionRead] = Field(default_factory=list)
