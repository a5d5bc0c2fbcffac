"""
Schemas Pydantic per l'entità Customer
Progetto: Kontor (Buchhaltung für Kleinunternehmen)
"""
# Definisce gli schemi di validazione e serializzazione per l'API.

import datetime
import re
import uuid
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    computed_field,
    field_validator,
)


# -------------------------------------------------------------------
# Funzioni di normalizzazione e validazione
# -------------------------------------------------------------------

def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalizza il numero di telefono.

    Rimuove spazi, trattini e slash; accetta solo + e cifre.

    Raises:
        ValueError: Se il formato non è valido
    """
    if phone is None or not phone.strip():
        return None

    normalized = re.sub(r"[\s\-/]", "", phone.strip())
    if not re.match(r"^\+?\d+$", normalized):
        raise ValueError("Numero di telefono non valido")
    return normalized


def normalize_vat_id(vat_id: Optional[str]) -> Optional[str]:
    """
    Normalizza la USt-IdNr.

    Le partite IVA tedesche devono essere DE + 9 cifre; per gli altri
    paesi UE si accetta il prefisso nazionale seguito da caratteri
    alfanumerici.
    """
    if vat_id is None or not vat_id.strip():
        return None

    normalized = vat_id.replace(" ", "").upper()
    if normalized.startswith("DE"):
        if not re.match(r"^DE\d{9}$", normalized):
            raise ValueError("La USt-IdNr. tedesca deve essere DE seguito da 9 cifre")
    elif not re.match(r"^[A-Z]{2}[A-Z0-9]{2,13}$", normalized):
        raise ValueError("USt-IdNr. non valida")
    return normalized


# -------------------------------------------------------------------
# Schemas
# -------------------------------------------------------------------

class CustomerBase(BaseModel):
    """Campi comuni dell'anagrafica cliente."""

    name: str = Field(..., min_length=1, max_length=255, description="Nome o referente")
    company: Optional[str] = Field(None, max_length=255, description="Ragione sociale")
    email: Optional[EmailStr] = Field(None, description="Email di contatto")
    phone: Optional[str] = Field(None, max_length=50, description="Telefono")
    address: Optional[str] = Field(None, description="Indirizzo completo")
    vat_id: Optional[str] = Field(None, description="USt-IdNr.")
    notes: Optional[str] = Field(None, description="Note interne")

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_phone(v)

    @field_validator("vat_id")
    @classmethod
    def validate_vat_id(cls, v: Optional[str]) -> Optional[str]:
        return normalize_vat_id(v)


class CustomerCreate(CustomerBase):
    """Schema per la creazione di un cliente (il numero è assegnato dal sistema)."""
    pass


class CustomerUpdate(BaseModel):
    """Schema per aggiornamento parziale: solo i campi inviati cambiano."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    company: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    vat_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_phone(v)

    @field_validator("vat_id")
    @classmethod
    def validate_vat_id(cls, v: Optional[str]) -> Optional[str]:
        return normalize_vat_id(v)


class CustomerRead(CustomerBase):
    """Schema di lettura cliente."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    customer_number: str = Field(..., description="Numero cliente (KD-001)")
    created_at: datetime.datetime
    updated_at: datetime.datetime

    # In lettura i dati salvati non vengono rivalidati
    email: Optional[str] = None

    @computed_field
    @property
    def display_name(self) -> str:
        return self.company or self.name


# -------------------------------------------------------------------
# Schemas per Lista Paginata
# -------------------------------------------------------------------
class CustomerList(BaseModel):
    """Risposta paginata dei clienti."""

    model_config = ConfigDict(from_attributes=True)

    items: list[CustomerRead] = Field(default_factory=list, description="Lista dei clienti")
    total: int = Field(..., ge=0, description="Numero totale di clienti")
    page: int = Field(..., ge=1, description="Numero pagina corrente")
    per_page: int = Field(..., ge=1, description="Numero elementi per pagina")
