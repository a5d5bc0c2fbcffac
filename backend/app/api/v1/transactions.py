"""
Router FastAPI per Conti e Movimenti Bancari
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Definisce gli endpoint API per:
- conti bancari
- movimenti: lista, inserimento manuale, categorizzazione
- import CSV e import da provider bancario
- verifica e pulizia dei duplicati
"""

import logging
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.transaction import (
    BankAccountCreate,
    BankAccountRead,
    BankImportRequest,
    BankImportResult,
    BulkDeduplicateResult,
    CsvImportResult,
    DuplicateCheckRequest,
    DuplicateCheckResponse,
    TransactionCategorize,
    TransactionCreate,
    TransactionList,
    TransactionRead,
    TransactionSource,
)
from app.services.transaction_service import TransactionService

# Logger per questo modulo
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/transactions",
    tags=["Transaktionen"],
)

accounts_router = APIRouter(
    prefix="/bank-accounts",
    tags=["Bankkonten"],
)


def get_transaction_service() -> TransactionService:
    """Dependency per ottenere un'istanza del TransactionService."""
    return TransactionService()


# -------------------------------------------------------------------
# Conti bancari
# -------------------------------------------------------------------

@accounts_router.get(
    "/",
    name="conti_lista",
    summary="Lista conti bancari",
    response_model=list[BankAccountRead],
)
async def get_bank_accounts(
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
) -> list[BankAccountRead]:
    accounts = await service.list_accounts(db=db)
    return [BankAccountRead.model_validate(a) for a in accounts]


@accounts_router.post(
    "/",
    name="conto_crea",
    summary="Crea conto bancario",
    response_model=BankAccountRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_bank_account(
    data: BankAccountCreate,
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
) -> BankAccountRead:
    account = await service.create_account(db=db, data=data)
    return BankAccountRead.model_validate(account)


# -------------------------------------------------------------------
# Movimenti
# -------------------------------------------------------------------

@router.get(
    "/",
    name="movimenti_lista",
    summary="Lista movimenti",
    response_model=TransactionList,
)
async def get_transactions(
    bank_account_id: Optional[uuid.UUID] = Query(None, description="Filtro per conto"),
    from_date: Optional[date] = Query(None, description="Data inizio (YYYY-MM-DD)"),
    to_date: Optional[date] = Query(None, description="Data fine (YYYY-MM-DD)"),
    category: Optional[str] = Query(None, description="Filtro per categoria"),
    source: Optional[TransactionSource] = Query(None, description="api, csv o manual"),
    search: Optional[str] = Query(None, description="Ricerca su descrizione e controparte"),
    page: int = Query(1, ge=1, description="Numero pagina"),
    per_page: int = Query(50, ge=1, le=500, description="Elementi per pagina"),
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionList:
    transactions, total = await service.get_all(
        db=db,
        bank_account_id=bank_account_id,
        from_date=from_date,
        to_date=to_date,
        category=category,
        source=source,
        search=search,
        page=page,
        per_page=per_page,
    )
    return TransactionList(
        items=[TransactionRead.model_validate(t) for t in transactions],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post(
    "/",
    name="movimento_crea",
    summary="Inserimento manuale",
    description="Registra un movimento manuale; rifiutato con 409 se già presente.",
    response_model=TransactionRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_transaction(
    data: TransactionCreate,
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionRead:
    transaction = await service.create_manual(db=db, data=data)
    return TransactionRead.model_validate(transaction)


@router.post(
    "/upload",
    name="movimenti_import_csv",
    summary="Import CSV",
    description="Importa un estratto conto CSV (Vivid). Le righe già presenti vengono saltate.",
    response_model=CsvImportResult,
    status_code=status.HTTP_201_CREATED,
)
async def upload_csv(
    file: UploadFile = File(..., description="File CSV, massimo 10 MB"),
    bank_account_id: Optional[uuid.UUID] = Form(None, description="Conto di destinazione"),
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
) -> CsvImportResult:
    content = await file.read()
    return await service.import_csv(
        db=db,
        filename=file.filename,
        content=content,
        bank_account_id=bank_account_id,
    )


@router.post(
    "/import",
    name="movimenti_import_banca",
    summary="Import da provider bancario",
    response_model=BankImportResult,
    status_code=status.HTTP_201_CREATED,
)
async def import_bank_transactions(
    data: BankImportRequest,
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
) -> BankImportResult:
    return await service.import_bank_records(db=db, data=data)


@router.post(
    "/check-duplicates",
    name="movimenti_verifica_duplicati",
    summary="Verifica duplicati",
    description="Indica per ogni candidato se esiste già sul conto. Non salva nulla.",
    response_model=DuplicateCheckResponse,
)
async def check_duplicates(
    data: DuplicateCheckRequest,
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
) -> DuplicateCheckResponse:
    flags = await service.duplicate_checker.check_batch_duplicates(
        db=db,
        bank_account_id=data.bank_account_id,
        candidates=data.candidates,
    )
    return DuplicateCheckResponse(duplicates=flags, duplicate_count=sum(flags.values()))


@router.delete(
    "/deduplicate",
    name="movimenti_pulizia_duplicati",
    summary="Elimina duplicati",
    description="Elimina i movimenti con stessa data, importo, descrizione e controparte, tenendo il più vecchio.",
    response_model=BulkDeduplicateResult,
)
async def deduplicate_transactions(
    bank_account_id: Optional[uuid.UUID] = Query(None, description="Limita la pulizia a un conto"),
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
) -> BulkDeduplicateResult:
    return await service.bulk_deduplicate(db=db, bank_account_id=bank_account_id)


@router.get(
    "/{transaction_id}",
    name="movimento_dettaglio",
    summary="Dettaglio movimento",
    response_model=TransactionRead,
)
async def get_transaction(
    transaction_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionRead:
    transaction = await service.get_by_id(db=db, transaction_id=transaction_id)
    return TransactionRead.model_validate(transaction)


@router.patch(
    "/{transaction_id}",
    name="movimento_categorizza",
    summary="Categorizza movimento",
    description="Aggiorna categoria, aliquota IVA, note e tag. Data e importo non sono modificabili.",
    response_model=TransactionRead,
)
async def categorize_transaction(
    transaction_id: uuid.UUID,
    data: TransactionCategorize,
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionRead:
    transaction = await service.update_categorization(db=db, transaction_id=transaction_id, data=data)
    return TransactionRead.model_validate(transaction)


@router.delete(
    "/{transaction_id}",
    name="movimento_elimina",
    summary="Elimina movimento",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_transaction(
    transaction_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
) -> None:
    await service.delete(db=db, transaction_id=transaction_id)
