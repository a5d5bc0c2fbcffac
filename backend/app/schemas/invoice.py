"""
Schemas Pydantic per la Fatturazione
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Contiene:
- Enums: InvoiceStatus, InvoiceStatusFilter, PaymentMethod
- Schemas per le righe documento (condivise con i preventivi)
- Schemas per Invoice, pagamento, storno e correzione
- Report incassi
"""

import datetime
import uuid
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    ValidationInfo,
)

from app.models.invoice import ITEM_DESCRIPTION_LENGTH, CorrectionType


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class InvoiceStatus(str, Enum):
    """Stati persistiti della fattura."""
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"


# Matrice delle transizioni ammesse. paid è raggiungibile anche dalla
# bozza (pagamento registrato contestualmente all'invio).
VALID_TRANSITIONS: dict[InvoiceStatus, list[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: [InvoiceStatus.SENT, InvoiceStatus.PAID],
    InvoiceStatus.SENT: [InvoiceStatus.PAID],
    InvoiceStatus.PAID: [InvoiceStatus.PAID],
}


class InvoiceStatusFilter(str, Enum):
    """Filtri lista: gli stati più 'overdue' (inviata e scaduta)."""
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"


class PaymentMethod(str, Enum):
    """Metodi di pagamento supportati."""
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CARD = "card"
    PAYPAL = "paypal"
    OTHER = "other"


# -------------------------------------------------------------------
# Schemas per le righe
# -------------------------------------------------------------------

class DocumentItemCreate(BaseModel):
    """
    Riga in ingresso per preventivi, fatture e correzioni.

    unit e vat_rate assenti prendono i default configurati
    ("Stück", 19%). Gli importi di riga sono sempre calcolati dal server.
    """

    description: str = Field(
        ..., min_length=1, max_length=ITEM_DESCRIPTION_LENGTH, description="Descrizione"
    )
    quantity: float = Field(1.0, description="Quantità (negativa ammessa nelle correzioni)")
    unit: Optional[str] = Field(None, max_length=30, description="Unità di misura")
    unit_price: float = Field(..., description="Prezzo unitario netto")
    vat_rate: Optional[float] = Field(None, ge=0, le=100, description="Aliquota IVA in %")

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("La descrizione non può essere vuota")
        return v


class DocumentItemRead(BaseModel):
    """Riga documento in lettura, importi a precisione piena."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    description: str
    quantity: float
    unit: str
    unit_price: float
    vat_rate: float
    subtotal: float
    vat_amount: float
    total: float
    sort_order: int


class CustomerSummary(BaseModel):
    """Dati essenziali del cliente allegati ai documenti."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    customer_number: str
    name: str
    company: Optional[str] = None


# -------------------------------------------------------------------
# Schemas per Invoice
# -------------------------------------------------------------------

class InvoiceCreate(BaseModel):
    """Creazione fattura in bozza."""

    customer_id: uuid.UUID = Field(..., description="UUID del cliente")
    invoice_date: Optional[datetime.date] = Field(None, description="Default: oggi")
    delivery_date: Optional[datetime.date] = Field(None, description="Leistungsdatum")
    due_date: Optional[datetime.date] = Field(None, description="Default: data fattura + 14 giorni")
    payment_terms: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: list[DocumentItemCreate] = Field(..., min_length=1, description="Righe della fattura")


class InvoiceUpdate(BaseModel):
    """
    Aggiornamento parziale (PATCH).

    - items: sostituisce le righe (solo bozze)
    - status 'sent': invio e blocco
    - status 'paid' o paid_at: registrazione pagamento
    - campi di intestazione: solo finché la fattura non è bloccata
    """

    customer_id: Optional[uuid.UUID] = None
    invoice_date: Optional[datetime.date] = None
    delivery_date: Optional[datetime.date] = None
    due_date: Optional[datetime.date] = None
    payment_terms: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: Optional[list[DocumentItemCreate]] = Field(None, min_length=1)
    status: Optional[InvoiceStatus] = None
    paid_at: Optional[datetime.datetime] = None
    paid_amount: Optional[float] = None
    payment_method: Optional[PaymentMethod] = None

    @field_validator("customer_id", "invoice_date", "due_date")
    @classmethod
    def reject_null(cls, v, info: ValidationInfo):
        # Campo omesso: resta invariato. null esplicito: non ammesso.
        if v is None:
            raise ValueError(f"{info.field_name} non può essere null")
        return v


class MarkPaidRequest(BaseModel):
    """Registrazione pagamento."""

    paid_at: Optional[datetime.datetime] = Field(None, description="Default: ora")
    paid_amount: Optional[float] = Field(None, description="Default: totale lordo")
    payment_method: Optional[PaymentMethod] = None


class CancelRequest(BaseModel):
    """Richiesta di storno (Stornierung)."""

    reason: str = Field(..., min_length=1, max_length=1000, description="Motivo dello storno")


class CorrectionRequest(BaseModel):
    """Richiesta di fattura di correzione (Korrekturrechnung) con righe differenziali."""

    items: list[DocumentItemCreate] = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, max_length=1000, description="Motivo della correzione")


class InvoiceRead(BaseModel):
    """Fattura in lettura con righe e cliente."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    invoice_number: str
    customer_id: uuid.UUID
    quote_id: Optional[uuid.UUID] = None
    invoice_date: datetime.date
    delivery_date: Optional[datetime.date] = None
    due_date: datetime.date
    payment_terms: Optional[str] = None
    notes: Optional[str] = None
    terms: Optional[str] = None

    status: InvoiceStatus
    is_locked: bool
    is_editable: bool
    locked_at: Optional[datetime.datetime] = None
    paid_at: Optional[datetime.datetime] = None
    paid_amount: Optional[float] = None
    payment_method: Optional[str] = None
    is_cancelled: bool
    cancelled_at: Optional[datetime.datetime] = None
    cancellation_reason: Optional[str] = None

    correction_type: Optional[CorrectionType] = None
    corrects_id: Optional[uuid.UUID] = None
    corrected_by_id: Optional[uuid.UUID] = None

    subtotal: float
    total_vat: float
    total_gross: float

    items: list[DocumentItemRead] = Field(default_factory=list)
    customer: Optional[CustomerSummary] = None

    created_at: datetime.datetime
    updated_at: datetime.datetime

    @computed_field
    @property
    def is_overdue(self) -> bool:
        return (
            self.status == InvoiceStatus.SENT
            and not self.is_cancelled
            and datetime.date.today() > self.due_date
        )


class InvoiceList(BaseModel):
    """Risposta paginata delle fatture."""

    items: list[InvoiceRead] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    per_page: int = Field(..., ge=1)


# -------------------------------------------------------------------
# Report
# -------------------------------------------------------------------

class RevenueSummary(BaseModel):
    """Riepilogo fatturato, importi arrotondati a 2 decimali."""

    from_date: Optional[datetime.date] = None
    to_date: Optional[datetime.date] = None
    invoice_count: int = 0
    total_net: float = 0.0
    total_vat: float = 0.0
    total_gross: float = 0.0
    total_paid: float = 0.0
    total_open: float = 0.0
    total_overdue: float = 0.0
