"""
Schemas Pydantic di Kontor.

Richieste e risposte dell'API: importi in EUR come float arrotondati
a due decimali, aliquote IVA in percentuale.
"""

from app.schemas.customer import CustomerCreate, CustomerList, CustomerRead, CustomerUpdate
from app.schemas.sequence import DocumentType, NumberFormat, NumberingConfig
from app.schemas.invoice import (
    CancelRequest,
    CorrectionRequest,
    DocumentItemCreate,
    DocumentItemRead,
    InvoiceCreate,
    InvoiceList,
    InvoiceRead,
    InvoiceStatus,
    InvoiceStatusFilter,
    InvoiceUpdate,
    MarkPaidRequest,
    RevenueSummary,
)
from app.schemas.quote import QuoteCreate, QuoteList, QuoteRead, QuoteStatus, QuoteUpdate
from app.schemas.transaction import (
    BankAccountCreate,
    BankAccountRead,
    BankImportResult,
    BulkDeduplicateResult,
    CsvImportResult,
    DuplicateCheckResult,
    TransactionCandidate,
    TransactionCategorize,
    TransactionCreate,
    TransactionRead,
)

__all__ = [
    "CustomerCreate",
    "CustomerList",
    "CustomerRead",
    "CustomerUpdate",
    "DocumentType",
    "NumberFormat",
    "NumberingConfig",
    "CancelRequest",
    "CorrectionRequest",
    "DocumentItemCreate",
    "DocumentItemRead",
    "InvoiceCreate",
    "InvoiceList",
    "InvoiceRead",
    "InvoiceStatus",
    "InvoiceStatusFilter",
    "InvoiceUpdate",
    "MarkPaidRequest",
    "RevenueSummary",
    "QuoteCreate",
    "QuoteList",
    "QuoteRead",
    "QuoteStatus",
    "QuoteUpdate",
    "BankAccountCreate",
    "BankAccountRead",
    "BankImportResult",
    "BulkDeduplicateResult",
    "CsvImportResult",
    "DuplicateCheckResult",
    "TransactionCandidate",
    "TransactionCategorize",
    "TransactionCreate",
    "TransactionRead",
]
