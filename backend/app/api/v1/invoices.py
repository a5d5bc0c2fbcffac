"""
Router FastAPI per la Fatturazione
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Definisce gli endpoint API per il ciclo di vita delle fatture:
creazione in bozza, invio, pagamento, storno e correzione.
"""

import logging
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.invoice import (
    CancelRequest,
    CorrectionRequest,
    InvoiceCreate,
    InvoiceList,
    InvoiceRead,
    InvoiceStatusFilter,
    InvoiceUpdate,
    MarkPaidRequest,
)
from app.services.invoice_correction_service import InvoiceCorrectionService
from app.services.invoice_service import InvoiceService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Istanze dei service
invoice_service = InvoiceService()
correction_service = InvoiceCorrectionService(invoice_service=invoice_service)

# Router con prefix e tag
router = APIRouter(
    prefix="/invoices",
    tags=["Rechnungen"],
)


# -------------------------------------------------------------------
# Lettura
# -------------------------------------------------------------------

@router.get(
    "/",
    name="fatture_lista",
    summary="Lista fatture",
    description="Recupera la lista paginata delle fatture con eventuali filtri.",
    response_model=InvoiceList,
    status_code=status.HTTP_200_OK,
)
async def get_invoices(
    customer_id: Optional[uuid.UUID] = Query(None, description="Filtro per UUID cliente"),
    status_filter: Optional[InvoiceStatusFilter] = Query(
        None,
        alias="status",
        description="Filtro per stato (draft, sent, paid, overdue)",
    ),
    from_date: Optional[date] = Query(None, description="Data inizio periodo (formato: YYYY-MM-DD)"),
    to_date: Optional[date] = Query(None, description="Data fine periodo (formato: YYYY-MM-DD)"),
    page: int = Query(1, ge=1, description="Numero pagina"),
    per_page: int = Query(10, ge=1, le=100, description="Elementi per pagina"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceList:
    """
    Recupera la lista paginata delle fatture.

    Filtri disponibili:
    - customer_id: filtra per cliente
    - status: draft, sent, paid oppure overdue (inviata e scaduta)
    - from_date/to_date: intervallo date fattura
    """
    invoices, total = await invoice_service.get_all(
        db=db,
        customer_id=customer_id,
        status_filter=status_filter,
        from_date=from_date,
        to_date=to_date,
        page=page,
        per_page=per_page,
    )
    return InvoiceList(
        items=[InvoiceRead.model_validate(i) for i in invoices],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get(
    "/{invoice_id}",
    name="fattura_dettaglio",
    summary="Dettaglio fattura",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def get_invoice(
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.get_by_id(db=db, invoice_id=invoice_id)
    return InvoiceRead.model_validate(invoice)


# -------------------------------------------------------------------
# Creazione e modifica
# -------------------------------------------------------------------

@router.post(
    "/",
    name="fattura_crea",
    summary="Crea fattura",
    description="Crea una fattura in bozza con numero progressivo.",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice(
    data: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.create(db=db, data=data)
    return InvoiceRead.model_validate(invoice)


@router.patch(
    "/{invoice_id}",
    name="fattura_aggiorna",
    summary="Aggiorna fattura",
    description="Aggiornamento parziale: righe e intestazione solo in bozza, stato e pagamento sempre.",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def update_invoice(
    data: InvoiceUpdate,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    """
    Aggiorna una fattura.

    Dopo l'invio la fattura è bloccata: righe, date e importi non sono
    più modificabili. Usare storno o fattura di correzione.
    """
    invoice = await invoice_service.update(db=db, invoice_id=invoice_id, data=data)
    return InvoiceRead.model_validate(invoice)


@router.delete(
    "/{invoice_id}",
    name="fattura_elimina",
    summary="Elimina bozza",
    description="Elimina una fattura in bozza. Le fatture inviate non si eliminano.",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_invoice(
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> None:
    await invoice_service.delete_draft(db=db, invoice_id=invoice_id)


# -------------------------------------------------------------------
# Transizioni di stato
# -------------------------------------------------------------------

@router.post(
    "/{invoice_id}/send",
    name="fattura_invia",
    summary="Invia fattura",
    description="Porta la fattura da bozza a inviata e la blocca definitivamente.",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def send_invoice(
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.send(db=db, invoice_id=invoice_id)
    return InvoiceRead.model_validate(invoice)


@router.post(
    "/{invoice_id}/pay",
    name="fattura_paga",
    summary="Registra pagamento",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def pay_invoice(
    data: Optional[MarkPaidRequest] = None,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.mark_paid(db=db, invoice_id=invoice_id, data=data)
    return InvoiceRead.model_validate(invoice)


# -------------------------------------------------------------------
# Storno e correzione
# -------------------------------------------------------------------

@router.post(
    "/{invoice_id}/cancel",
    name="fattura_storna",
    summary="Storna fattura",
    description="Emette un documento di storno con importi negati e marca l'originale come stornato.",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def cancel_invoice(
    data: CancelRequest,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    cancellation = await correction_service.cancel(db=db, invoice_id=invoice_id, reason=data.reason)
    return InvoiceRead.model_validate(cancellation)


@router.post(
    "/{invoice_id}/correct",
    name="fattura_correggi",
    summary="Fattura di correzione",
    description="Emette una fattura di correzione con le sole righe differenziali.",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def correct_invoice(
    data: CorrectionRequest,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    correction = await correction_service.correct(
        db=db,
        invoice_id=invoice_id,
        items=data.items,
        reason=data.reason,
    )
    return InvoiceRead.model_validate(correction)


@router.get(
    "/{invoice_id}/corrections",
    name="fattura_documenti_correttivi",
    summary="Storni e correzioni di una fattura",
    response_model=list[InvoiceRead],
    status_code=status.HTTP_200_OK,
)
async def get_invoice_corrections(
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> list[InvoiceRead]:
    documents = await correction_service.get_by_original(db=db, invoice_id=invoice_id)
    return [InvoiceRead.model_validate(d) for d in documents]
