"""
Schemas Pydantic per i Preventivi
Progetto: Kontor (Buchhaltung für Kleinunternehmen)
"""

import datetime
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from app.schemas.invoice import CustomerSummary, DocumentItemCreate, DocumentItemRead


class QuoteStatus(str, Enum):
    """Stati del preventivo."""
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


VALID_TRANSITIONS: dict[QuoteStatus, list[QuoteStatus]] = {
    QuoteStatus.DRAFT: [QuoteStatus.SENT, QuoteStatus.ACCEPTED, QuoteStatus.REJECTED],
    QuoteStatus.SENT: [QuoteStatus.ACCEPTED, QuoteStatus.REJECTED],
    QuoteStatus.ACCEPTED: [],  # Stato finale
    QuoteStatus.REJECTED: [QuoteStatus.SENT],  # Riproposta al cliente
}


class QuoteCreate(BaseModel):
    """Creazione preventivo in bozza."""

    customer_id: uuid.UUID
    quote_date: Optional[datetime.date] = Field(None, description="Default: oggi")
    valid_until: Optional[datetime.date] = Field(None, description="Default: data + 30 giorni")
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: list[DocumentItemCreate] = Field(..., min_length=1)


class QuoteUpdate(BaseModel):
    """
    Aggiornamento parziale del preventivo.

    Dopo l'invio si può cambiare solo lo stato verso accepted/rejected.
    """

    customer_id: Optional[uuid.UUID] = None
    quote_date: Optional[datetime.date] = None
    valid_until: Optional[datetime.date] = None
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: Optional[list[DocumentItemCreate]] = Field(None, min_length=1)
    status: Optional[QuoteStatus] = None

    @field_validator("customer_id", "quote_date", "valid_until")
    @classmethod
    def reject_null(cls, v, info: ValidationInfo):
        if v is None:
            raise ValueError(f"{info.field_name} non può essere null")
        return v


class QuoteRead(BaseModel):
    """Preventivo in lettura."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    quote_number: str
    customer_id: uuid.UUID
    quote_date: datetime.date
    valid_until: datetime.date
    status: QuoteStatus
    is_editable: bool
    sent_at: Optional[datetime.datetime] = None
    accepted_at: Optional[datetime.datetime] = None
    rejected_at: Optional[datetime.datetime] = None
    notes: Optional[str] = None
    terms: Optional[str] = None
    subtotal: float
    total_vat: float
    total_gross: float
    items: list[DocumentItemRead] = Field(default_factory=list)
    customer: Optional[CustomerSummary] = None
    invoice_id: Optional[uuid.UUID] = Field(None, description="Fattura generata, se convertito")
    created_at: datetime.datetime
    updated_at: datetime.datetime

    @classmethod
    def from_model(cls, quote) -> "QuoteRead":
        data = cls.model_validate(quote)
        invoice = quote.__dict__.get("invoice")
        if invoice is not None:
            data.invoice_id = invoice.id
        return data


class QuoteList(BaseModel):
    """Risposta paginata dei preventivi."""

    items: list[QuoteRead] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    per_page: int = Field(..., ge=1)
