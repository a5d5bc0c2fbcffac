"""
Router FastAPI per la Numerazione dei Documenti
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Endpoint amministrativi sui contatori: valore corrente, emissione
manuale di un numero e reset.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.sequence import DocumentType, SequenceCurrent, SequenceIssued, SequenceReset
from app.services.sequence_service import SequenceService

# Logger per questo modulo
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/sequences",
    tags=["Nummernkreise"],
)


def get_sequence_service() -> SequenceService:
    """Dependency: la configurazione viene letta dalle settings a ogni richiesta."""
    return SequenceService()


@router.get(
    "/{document_type}",
    name="numerazione_corrente",
    summary="Ultimo numero emesso",
    description="Ultimo progressivo emesso nel periodo corrente (0 se nessuno).",
    response_model=SequenceCurrent,
)
async def get_current_sequence(
    document_type: DocumentType = Path(..., description="customer, quote o invoice"),
    db: AsyncSession = Depends(get_db),
    service: SequenceService = Depends(get_sequence_service),
) -> SequenceCurrent:
    year, month, last_number = await service.get_current(db=db, document_type=document_type)
    return SequenceCurrent(
        document_type=document_type,
        period_year=year,
        period_month=month,
        last_number=last_number,
    )


@router.post(
    "/{document_type}/issue",
    name="numerazione_emetti",
    summary="Emetti numero",
    description="Emette e conferma il prossimo numero del tipo indicato.",
    response_model=SequenceIssued,
    status_code=status.HTTP_201_CREATED,
)
async def issue_sequence_number(
    document_type: DocumentType = Path(..., description="customer, quote o invoice"),
    db: AsyncSession = Depends(get_db),
    service: SequenceService = Depends(get_sequence_service),
) -> SequenceIssued:
    number = await service.issue_number(db=db, document_type=document_type)
    return SequenceIssued(document_type=document_type, number=number)


@router.delete(
    "/{document_type}",
    name="numerazione_reset",
    summary="Reset numerazione",
    description="Elimina i contatori del tipo indicato. La numerazione ripartirà da 1.",
    response_model=SequenceReset,
)
async def reset_sequence(
    document_type: DocumentType = Path(..., description="customer, quote o invoice"),
    year: Optional[int] = Query(None, ge=0, description="Solo l'anno indicato"),
    month: Optional[int] = Query(None, ge=0, le=12, description="Solo il mese indicato"),
    db: AsyncSession = Depends(get_db),
    service: SequenceService = Depends(get_sequence_service),
) -> SequenceReset:
    deleted = await service.reset(db=db, document_type=document_type, year=year, month=month)
    return SequenceReset(document_type=document_type, year=year, month=month, deleted=deleted)
