"""
Modelli Database SQLAlchemy
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Import centralizzato di tutti i modelli per Alembic e usage generico.

Modelli:
- Customer: Anagrafica clienti
- DocumentSequence: Contatori numerazione documenti
- Quote / QuoteItem: Preventivi
- Invoice / InvoiceItem: Fatture, storni e correzioni
- BankAccount / Transaction: Conti e movimenti bancari
"""

# SQLAlchemy 2.0 Base declarativa
# Importato qui per essere disponibile per tutti i modelli
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


# Import modelli implementati
from app.models.customer import Customer
from app.models.sequence import DocumentSequence
from app.models.quote import Quote, QuoteItem
from app.models.invoice import CorrectionType, Invoice, InvoiceItem
from app.models.transaction import BankAccount, Transaction

# Esportazione di tutti i modelli per Alembic
__all__ = [
    "Base",
    "Customer",
    "DocumentSequence",
    "Quote",
    "QuoteItem",
    "CorrectionType",
    "Invoice",
    "InvoiceItem",
    "BankAccount",
    "Transaction",
]
