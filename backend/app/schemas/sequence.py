"""
Schemas Pydantic per la Numerazione Documenti
Progetto: Kontor (Buchhaltung für Kleinunternehmen)
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.config import Settings


class DocumentType(str, Enum):
    """Tipi di documento numerati."""
    CUSTOMER = "customer"
    QUOTE = "quote"
    INVOICE = "invoice"


class NumberFormat(str, Enum):
    """Partizionamento della numerazione."""
    CONTINUOUS = "CONTINUOUS"  # BM-001
    YEAR = "YEAR"              # BM-2025-001
    MONTH = "MONTH"            # BM-2025-03-001


class NumberingConfig(BaseModel):
    """
    Configurazione del generatore di numeri.

    number_format resta una stringa libera: il valore viene
    verificato solo quando si emette un numero.
    """

    model_config = ConfigDict(frozen=True)

    invoice_prefix: str = "BM"
    quote_prefix: str = "BM-ANB"
    customer_prefix: str = "KD"
    number_format: str = NumberFormat.YEAR.value
    number_padding: int = 3
    customer_number_padding: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "NumberingConfig":
        return cls(
            invoice_prefix=settings.invoice_prefix,
            quote_prefix=settings.quote_prefix,
            customer_prefix=settings.customer_prefix,
            number_format=settings.number_format,
            number_padding=settings.number_padding,
            customer_number_padding=settings.customer_number_padding,
        )


class SequenceCurrent(BaseModel):
    """Stato corrente di un contatore."""

    document_type: DocumentType
    period_year: int = Field(..., description="Anno del periodo (0 = continuo)")
    period_month: int = Field(..., description="Mese del periodo (0 = non partizionato)")
    last_number: int = Field(..., description="Ultimo progressivo emesso")


class SequenceIssued(BaseModel):
    """Numero emesso manualmente."""

    document_type: DocumentType
    number: str


class SequenceReset(BaseModel):
    """Esito di un reset amministrativo."""

    document_type: DocumentType
    year: Optional[int] = None
    month: Optional[int] = None
    deleted: int = Field(..., description="Contatori eliminati")
