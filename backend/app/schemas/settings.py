"""
Schemas Pydantic per le Impostazioni Pubbliche
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Dati che il frontend usa per intestare i documenti e precompilare
i moduli. Nessun dato di connessione o credenziale.
"""

from pydantic import BaseModel, Field

from app.core.config import Settings
from app.schemas.sequence import NumberingConfig


class CompanyInfo(BaseModel):
    """Intestazione aziendale dei documenti."""

    name: str
    vat_id: str = Field("", description="USt-IdNr.")
    iban: str = ""


class DocumentDefaults(BaseModel):
    """Default applicati dal server a fatture e preventivi."""

    invoice_payment_days: int
    quote_validity_days: int
    default_vat_rate: float
    default_unit: str


class PublicSettings(BaseModel):
    company: CompanyInfo
    numbering: NumberingConfig
    documents: DocumentDefaults

    @classmethod
    def from_settings(cls, settings: Settings) -> "PublicSettings":
        return cls(
            company=CompanyInfo(
                name=settings.company_name,
                vat_id=settings.company_vat_id,
                iban=settings.company_iban,
            ),
            numbering=NumberingConfig.from_settings(settings),
            documents=DocumentDefaults(
                invoice_payment_days=settings.invoice_payment_days,
                quote_validity_days=settings.quote_validity_days,
                default_vat_rate=settings.default_vat_rate,
                default_unit=settings.default_unit,
            ),
        )
