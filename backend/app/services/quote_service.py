"""
Service Layer per i Preventivi
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Definisce la logica di business per i preventivi (Angebote):
- CRUD con numerazione BM-ANB
- Transizioni draft → sent → accepted/rejected
- Conversione una tantum in fattura
"""

import logging
import uuid
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.core.exceptions import (
    BusinessValidationError,
    ConflictError,
    NotFoundError,
    QuoteAlreadyConvertedError,
)
from app.models import Customer, Invoice, InvoiceItem, Quote, QuoteItem
from app.models.mixins import utcnow
from app.schemas.invoice import InvoiceStatus
from app.schemas.quote import VALID_TRANSITIONS, QuoteCreate, QuoteStatus, QuoteUpdate
from app.schemas.sequence import DocumentType
from app.services.calculations import calculate_totals
from app.services.invoice_service import InvoiceService, build_items
from app.services.sequence_service import SequenceService

logger = logging.getLogger(__name__)


class QuoteService:
    """
    Service per la gestione dei preventivi.

    Un preventivo è modificabile solo in bozza; dopo l'invio può solo
    essere accettato o rifiutato.
    """

    def __init__(
        self,
        sequence_service: Optional[SequenceService] = None,
        invoice_service: Optional[InvoiceService] = None,
    ) -> None:
        self.sequence_service = sequence_service or SequenceService()
        self.invoice_service = invoice_service or InvoiceService(self.sequence_service)

    async def get_by_id(
        self,
        db: AsyncSession,
        quote_id: uuid.UUID,
        for_update: bool = False,
    ) -> Quote:
        """
        Recupera un preventivo con righe, cliente e fattura collegata.

        Raises:
            NotFoundError: Preventivo non trovato
        """
        stmt = (
            select(Quote)
            .where(Quote.id == quote_id)
            .options(
                selectinload(Quote.items),
                selectinload(Quote.customer),
                selectinload(Quote.invoice),
            )
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update(of=Quote)
        quote = (await db.execute(stmt)).scalar_one_or_none()
        if quote is None:
            raise NotFoundError(f"Preventivo {quote_id} non trovato")
        return quote

    async def get_all(
        self,
        db: AsyncSession,
        customer_id: Optional[uuid.UUID] = None,
        status_filter: Optional[QuoteStatus] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> tuple[list[Quote], int]:
        """Lista paginata dei preventivi, i più recenti per primi."""
        conditions = []
        if customer_id:
            conditions.append(Quote.customer_id == customer_id)
        if status_filter:
            conditions.append(Quote.status == QuoteStatus(status_filter).value)

        stmt = select(Quote).options(
            selectinload(Quote.items),
            selectinload(Quote.customer),
            selectinload(Quote.invoice),
        )
        count_stmt = select(func.count(Quote.id))
        if conditions:
            stmt = stmt.where(and_(*conditions))
            count_stmt = count_stmt.where(and_(*conditions))

        total = (await db.execute(count_stmt)).scalar() or 0
        stmt = (
            stmt.order_by(Quote.quote_date.desc(), Quote.quote_number.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        quotes = list((await db.execute(stmt)).scalars().all())
        return quotes, total

    async def create(self, db: AsyncSession, data: QuoteCreate) -> Quote:
        """
        Crea un preventivo in bozza con validità di default 30 giorni.

        Raises:
            NotFoundError: cliente inesistente
        """
        if await db.get(Customer, data.customer_id) is None:
            raise NotFoundError(f"Cliente {data.customer_id} non trovato")

        quote_date = data.quote_date or date.today()
        items = build_items(data.items, QuoteItem)
        try:
            quote_number = await self.sequence_service.next_number(db, DocumentType.QUOTE, quote_date)
            quote = Quote(
                quote_number=quote_number,
                customer_id=data.customer_id,
                quote_date=quote_date,
                valid_until=data.valid_until or quote_date + timedelta(days=settings.quote_validity_days),
                status=QuoteStatus.DRAFT.value,
                is_editable=True,
                notes=data.notes,
                terms=data.terms,
                items=items,
                **calculate_totals(items),
            )
            db.add(quote)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error("Errore di integrità durante creazione preventivo: %s", e.orig)
            raise ConflictError("Errore durante la creazione del preventivo")

        logger.info("Creato preventivo %s (%.2f EUR)", quote.quote_number, quote.total_gross)
        return await self.get_by_id(db, quote.id)

    async def update(self, db: AsyncSession, quote_id: uuid.UUID, data: QuoteUpdate) -> Quote:
        """
        Aggiornamento parziale.

        Righe e intestazione solo se il preventivo è modificabile;
        lo stato segue VALID_TRANSITIONS.

        Raises:
            BusinessValidationError: preventivo non modificabile o
                transizione non ammessa
        """
        quote = await self.get_by_id(db, quote_id, for_update=True)
        update_data = data.model_dump(exclude_unset=True)
        items = update_data.pop("items", None)
        status = update_data.pop("status", None)

        header = {k: v for k, v in update_data.items() if v != getattr(quote, k)}
        if (header or items is not None) and not quote.is_editable:
            raise BusinessValidationError(
                f"Il preventivo {quote.quote_number} è già stato inviato e non può essere modificato",
                error_code="QUOTE_NOT_EDITABLE",
            )
        if "customer_id" in header and await db.get(Customer, header["customer_id"]) is None:
            raise NotFoundError(f"Cliente {header['customer_id']} non trovato")

        for field, value in header.items():
            setattr(quote, field, value)
        if items is not None:
            new_items = build_items(data.items, QuoteItem)
            quote.items = new_items
            for field, value in calculate_totals(new_items).items():
                setattr(quote, field, value)
        if status is not None and status != QuoteStatus(quote.status):
            self._apply_status(quote, status)

        await db.commit()
        logger.info("Aggiornato preventivo %s", quote.quote_number)
        return await self.get_by_id(db, quote_id)

    def _apply_status(self, quote: Quote, target: QuoteStatus) -> None:
        current = QuoteStatus(quote.status)
        if target not in VALID_TRANSITIONS.get(current, []):
            raise BusinessValidationError(
                f"Transizione da '{current.value}' a '{target.value}' non consentita "
                f"per il preventivo {quote.quote_number}"
            )

        now = utcnow()
        quote.status = target.value
        quote.is_editable = False
        if target == QuoteStatus.SENT:
            quote.sent_at = now
        elif target == QuoteStatus.ACCEPTED:
            quote.accepted_at = now
        elif target == QuoteStatus.REJECTED:
            quote.rejected_at = now

    async def change_status(self, db: AsyncSession, quote_id: uuid.UUID, target: QuoteStatus) -> Quote:
        """Applica una transizione di stato (send/accept/reject)."""
        quote = await self.get_by_id(db, quote_id, for_update=True)
        self._apply_status(quote, target)
        await db.commit()
        logger.info("Preventivo %s -> %s", quote.quote_number, target.value)
        return await self.get_by_id(db, quote_id)

    async def delete(self, db: AsyncSession, quote_id: uuid.UUID) -> None:
        """
        Elimina un preventivo non ancora convertito.

        Raises:
            BusinessValidationError: esiste già una fattura collegata
        """
        quote = await self.get_by_id(db, quote_id, for_update=True)
        if quote.invoice is not None:
            raise BusinessValidationError(
                f"Il preventivo {quote.quote_number} è stato convertito nella fattura "
                f"{quote.invoice.invoice_number} e non può essere eliminato"
            )
        await db.delete(quote)
        await db.commit()
        logger.info("Eliminato preventivo %s", quote.quote_number)

    async def convert_to_invoice(self, db: AsyncSession, quote_id: uuid.UUID) -> Invoice:
        """
        Converte il preventivo in una fattura in bozza.

        Le righe vengono copiate con gli importi già calcolati, senza
        ricalcolo, così la fattura riporta esattamente le cifre del
        preventivo. Il preventivo passa ad 'accepted'.

        Raises:
            NotFoundError: preventivo inesistente
            QuoteAlreadyConvertedError: esiste già una fattura (anche se
                creata da una richiesta concorrente); porta la fattura esistente
            BusinessValidationError: preventivo rifiutato
        """
        quote = await self.get_by_id(db, quote_id, for_update=True)
        if quote.invoice is not None:
            raise QuoteAlreadyConvertedError(quote.invoice)
        if quote.status == QuoteStatus.REJECTED.value:
            raise BusinessValidationError(
                f"Il preventivo {quote.quote_number} è stato rifiutato e non può essere convertito"
            )

        now = utcnow()
        today = date.today()
        try:
            invoice_number = await self.sequence_service.next_number(db, DocumentType.INVOICE, today)
            items = [
                InvoiceItem(
                    description=item.description,
                    quantity=item.quantity,
                    unit=item.unit,
                    unit_price=item.unit_price,
                    vat_rate=item.vat_rate,
                    subtotal=item.subtotal,
                    vat_amount=item.vat_amount,
                    total=item.total,
                    sort_order=item.sort_order,
                )
                for item in quote.items
            ]
            invoice = Invoice(
                invoice_number=invoice_number,
                customer_id=quote.customer_id,
                quote_id=quote.id,
                invoice_date=today,
                due_date=today + timedelta(days=settings.invoice_payment_days),
                payment_terms=f"{settings.invoice_payment_days} Tage netto",
                notes=quote.notes,
                terms=quote.terms,
                status=InvoiceStatus.DRAFT.value,
                is_locked=False,
                is_editable=True,
                is_cancelled=False,
                subtotal=quote.subtotal,
                total_vat=quote.total_vat,
                total_gross=quote.total_gross,
                items=items,
            )
            db.add(invoice)

            quote.status = QuoteStatus.ACCEPTED.value
            quote.is_editable = False
            if quote.accepted_at is None:
                quote.accepted_at = now
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning("Conversione concorrente del preventivo %s: %s", quote_id, e.orig)
            existing = (
                await db.execute(select(Invoice).where(Invoice.quote_id == quote_id))
            ).scalar_one_or_none()
            if existing is None:
                raise ConflictError("Errore durante la conversione del preventivo")
            raise QuoteAlreadyConvertedError(existing)

        logger.info("Preventivo %s convertito nella fattura %s", quote.quote_number, invoice.invoice_number)
        return await self.invoice_service.get_by_id(db, invoice.id)
