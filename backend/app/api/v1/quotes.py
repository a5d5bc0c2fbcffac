"""
Router FastAPI per i Preventivi
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Definisce gli endpoint API per i preventivi e la conversione in fattura.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.invoice import InvoiceRead
from app.schemas.quote import QuoteCreate, QuoteList, QuoteRead, QuoteStatus, QuoteUpdate
from app.services.quote_service import QuoteService

# Logger per questo modulo
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/quotes",
    tags=["Angebote"],
)


def get_quote_service() -> QuoteService:
    """Dependency per ottenere un'istanza del QuoteService."""
    return QuoteService()


@router.get(
    "/",
    name="preventivi_lista",
    summary="Lista preventivi",
    response_model=QuoteList,
    status_code=status.HTTP_200_OK,
)
async def get_quotes(
    customer_id: Optional[uuid.UUID] = Query(None, description="Filtro per UUID cliente"),
    status_filter: Optional[QuoteStatus] = Query(None, alias="status", description="Filtro per stato"),
    page: int = Query(1, ge=1, description="Numero pagina"),
    per_page: int = Query(10, ge=1, le=100, description="Elementi per pagina"),
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteList:
    quotes, total = await service.get_all(
        db=db,
        customer_id=customer_id,
        status_filter=status_filter,
        page=page,
        per_page=per_page,
    )
    return QuoteList(
        items=[QuoteRead.from_model(q) for q in quotes],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get(
    "/{quote_id}",
    name="preventivo_dettaglio",
    summary="Dettaglio preventivo",
    response_model=QuoteRead,
    status_code=status.HTTP_200_OK,
)
async def get_quote(
    quote_id: uuid.UUID = Path(..., description="UUID del preventivo"),
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    quote = await service.get_by_id(db=db, quote_id=quote_id)
    return QuoteRead.from_model(quote)


@router.post(
    "/",
    name="preventivo_crea",
    summary="Crea preventivo",
    description="Crea un preventivo in bozza, valido 30 giorni se non indicato.",
    response_model=QuoteRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_quote(
    data: QuoteCreate,
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    quote = await service.create(db=db, data=data)
    return QuoteRead.from_model(quote)


@router.patch(
    "/{quote_id}",
    name="preventivo_aggiorna",
    summary="Aggiorna preventivo",
    description="Righe e intestazione solo in bozza; lo stato segue le transizioni ammesse.",
    response_model=QuoteRead,
    status_code=status.HTTP_200_OK,
)
async def update_quote(
    data: QuoteUpdate,
    quote_id: uuid.UUID = Path(..., description="UUID del preventivo"),
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    quote = await service.update(db=db, quote_id=quote_id, data=data)
    return QuoteRead.from_model(quote)


@router.delete(
    "/{quote_id}",
    name="preventivo_elimina",
    summary="Elimina preventivo",
    description="Elimina un preventivo non ancora convertito in fattura.",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_quote(
    quote_id: uuid.UUID = Path(..., description="UUID del preventivo"),
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> None:
    await service.delete(db=db, quote_id=quote_id)


@router.post(
    "/{quote_id}/convert",
    name="preventivo_converti",
    summary="Converti in fattura",
    description=(
        "Crea una fattura in bozza dal preventivo copiando righe e importi. "
        "Una seconda conversione risponde 409 con l'ID della fattura esistente."
    ),
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def convert_quote(
    quote_id: uuid.UUID = Path(..., description="UUID del preventivo"),
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> InvoiceRead:
    invoice = await service.convert_to_invoice(db=db, quote_id=quote_id)
    return InvoiceRead.model_validate(invoice)


async def _change_status(
    quote_id: uuid.UUID,
    target: QuoteStatus,
    db: AsyncSession,
    service: QuoteService,
) -> QuoteRead:
    quote = await service.change_status(db=db, quote_id=quote_id, target=target)
    return QuoteRead.from_model(quote)


@router.post(
    "/{quote_id}/send",
    name="preventivo_invia",
    summary="Invia preventivo",
    response_model=QuoteRead,
    status_code=status.HTTP_200_OK,
)
async def send_quote(
    quote_id: uuid.UUID = Path(..., description="UUID del preventivo"),
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    return await _change_status(quote_id, QuoteStatus.SENT, db, service)


@router.post(
    "/{quote_id}/accept",
    name="preventivo_accetta",
    summary="Preventivo accettato",
    response_model=QuoteRead,
    status_code=status.HTTP_200_OK,
)
async def accept_quote(
    quote_id: uuid.UUID = Path(..., description="UUID del preventivo"),
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    return await _change_status(quote_id, QuoteStatus.ACCEPTED, db, service)


@router.post(
    "/{quote_id}/reject",
    name="preventivo_rifiuta",
    summary="Preventivo rifiutato",
    response_model=QuoteRead,
    status_code=status.HTTP_200_OK,
)
async def reject_quote(
    quote_id: uuid.UUID = Path(..., description="UUID del preventivo"),
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    return await _change_status(quote_id, QuoteStatus.REJECTED, db, service)
