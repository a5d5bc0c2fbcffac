"""
Service Layer per la Fatturazione
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Definisce la logica di business per il ciclo di vita delle fatture:
bozza → inviata (bloccata) → pagata, modifica righe in bozza,
eliminazione bozze e report fatturato.

Storno e correzione sono in InvoiceCorrectionService.
"""

import datetime
import logging
import uuid
from datetime import date, timedelta
from typing import Iterable, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.core.exceptions import (
    BusinessValidationError,
    ConflictError,
    NotFoundError,
)
from app.models import Customer, Invoice, InvoiceItem
from app.models.mixins import utcnow
from app.schemas.invoice import (
    VALID_TRANSITIONS,
    DocumentItemCreate,
    InvoiceCreate,
    InvoiceStatus,
    InvoiceStatusFilter,
    InvoiceUpdate,
    MarkPaidRequest,
    RevenueSummary,
)
from app.schemas.sequence import DocumentType
from app.services.calculations import calculate_item, calculate_totals, round_money
from app.services.sequence_service import SequenceService

# Logger per questo modulo
logger = logging.getLogger(__name__)

LOCKED_MESSAGE = (
    "La fattura {number} è bloccata e non può essere modificata. "
    "Creare uno storno o una fattura di correzione."
)


def build_items(items: Iterable[DocumentItemCreate], item_cls, prefix: str = ""):
    """
    Crea le righe documento calcolando gli importi.

    Args:
        items: Righe in ingresso
        item_cls: InvoiceItem o QuoteItem
        prefix: Prefisso della descrizione (es. "[KORREKTUR] ")

    Returns:
        Lista di righe non ancora aggiunte alla sessione
    """
    built = []
    for index, item in enumerate(items):
        vat_rate = item.vat_rate if item.vat_rate is not None else settings.default_vat_rate
        amounts = calculate_item(item.quantity, item.unit_price, vat_rate)
        built.append(
            item_cls(
                description=f"{prefix}{item.description}",
                quantity=item.quantity,
                unit=item.unit or settings.default_unit,
                unit_price=item.unit_price,
                vat_rate=vat_rate,
                sort_order=index,
                **amounts,
            )
        )
    return built


class InvoiceService:
    """
    Service per la gestione delle operazioni sulle fatture.

    Fornisce metodi asincroni per interagire con il database
    in modo centralizzato, senza dipendenze da FastAPI.

    Implementa:
    - Creazione in bozza con numero progressivo
    - Invio con blocco definitivo (GoBD)
    - Registrazione pagamento
    - Sostituzione righe e eliminazione solo in bozza
    - Report fatturato
    """

    def __init__(self, sequence_service: Optional[SequenceService] = None) -> None:
        self.sequence_service = sequence_service or SequenceService()

    # ------------------------------------------------------------
    # Lettura
    # ------------------------------------------------------------
    async def get_by_id(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        for_update: bool = False,
    ) -> Invoice:
        """
        Recupera una fattura per ID con righe e cliente caricati.

        Args:
            db: Sessione database
            invoice_id: UUID della fattura
            for_update: Se True blocca la riga fino al termine della transazione

        Raises:
            NotFoundError: Fattura non trovata
        """
        stmt = (
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .options(
                selectinload(Invoice.items),
                selectinload(Invoice.customer),
            )
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update(of=Invoice)
        result = await db.execute(stmt)
        invoice = result.scalar_one_or_none()

        if not invoice:
            raise NotFoundError(f"Fattura {invoice_id} non trovata")
        return invoice

    async def get_all(
        self,
        db: AsyncSession,
        customer_id: Optional[uuid.UUID] = None,
        status_filter: Optional[InvoiceStatusFilter] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> tuple[list[Invoice], int]:
        """
        Recupera la lista paginata delle fatture con filtri.

        Il filtro 'overdue' seleziona fatture inviate, non stornate
        e con scadenza passata.

        Returns:
            Tuple di (lista fatture, totale count)
        """
        conditions = []
        if customer_id:
            conditions.append(Invoice.customer_id == customer_id)
        if from_date:
            conditions.append(Invoice.invoice_date >= from_date)
        if to_date:
            conditions.append(Invoice.invoice_date <= to_date)
        if status_filter == InvoiceStatusFilter.OVERDUE:
            conditions.extend([
                Invoice.status == InvoiceStatus.SENT.value,
                Invoice.is_cancelled.is_(False),
                Invoice.due_date < date.today(),
            ])
        elif status_filter:
            conditions.append(Invoice.status == InvoiceStatusFilter(status_filter).value)

        stmt = select(Invoice).options(
            selectinload(Invoice.items),
            selectinload(Invoice.customer),
        )
        count_stmt = select(func.count(Invoice.id))
        if conditions:
            stmt = stmt.where(and_(*conditions))
            count_stmt = count_stmt.where(and_(*conditions))

        total = (await db.execute(count_stmt)).scalar() or 0
        stmt = (
            stmt.order_by(Invoice.invoice_date.desc(), Invoice.invoice_number.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        invoices = list((await db.execute(stmt)).scalars().all())
        return invoices, total

    # ------------------------------------------------------------
    # Creazione e modifica
    # ------------------------------------------------------------
    async def create(self, db: AsyncSession, data: InvoiceCreate) -> Invoice:
        """
        Crea una fattura in bozza.

        Il numero viene emesso nella stessa transazione: se la
        creazione fallisce il contatore torna indietro.

        Raises:
            NotFoundError: cliente inesistente
            ConflictError: errore di integrità
        """
        customer = await db.get(Customer, data.customer_id)
        if customer is None:
            raise NotFoundError(f"Cliente {data.customer_id} non trovato")

        invoice_date = data.invoice_date or date.today()
        items = build_items(data.items, InvoiceItem)

        try:
            invoice_number = await self.sequence_service.next_number(
                db, DocumentType.INVOICE, invoice_date
            )
            invoice = Invoice(
                invoice_number=invoice_number,
                customer_id=customer.id,
                invoice_date=invoice_date,
                delivery_date=data.delivery_date,
                due_date=data.due_date or invoice_date + timedelta(days=settings.invoice_payment_days),
                payment_terms=data.payment_terms,
                notes=data.notes,
                terms=data.terms,
                status=InvoiceStatus.DRAFT.value,
                is_locked=False,
                is_editable=True,
                is_cancelled=False,
                items=items,
                **calculate_totals(items),
            )
            db.add(invoice)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error("Errore di integrità durante creazione fattura: %s", e.orig)
            raise ConflictError("Errore durante la creazione della fattura")

        logger.info("Creata fattura in bozza %s (%.2f EUR)", invoice.invoice_number, invoice.total_gross)
        return await self.get_by_id(db, invoice.id)

    async def update(self, db: AsyncSession, invoice_id: uuid.UUID, data: InvoiceUpdate) -> Invoice:
        """
        Aggiornamento parziale di una fattura.

        Smista i campi sulle operazioni di ciclo di vita:
        - items → edit_draft_items
        - status 'sent' → send
        - status 'paid' o paid_at → mark_paid
        - status 'draft' su fattura bloccata → rifiutato
        - campi di intestazione → solo su fattura non bloccata

        Raises:
            NotFoundError: Fattura non trovata
            BusinessValidationError: fattura bloccata o transizione non ammessa
        """
        invoice = await self.get_by_id(db, invoice_id)
        update_data = data.model_dump(exclude_unset=True)

        items = update_data.pop("items", None)
        status = update_data.pop("status", None)
        paid_at = update_data.pop("paid_at", None)
        paid_amount = update_data.pop("paid_amount", None)
        payment_method = update_data.pop("payment_method", None)

        if status == InvoiceStatus.DRAFT and invoice.is_locked:
            raise BusinessValidationError(
                f"La fattura {invoice.invoice_number} è bloccata e non può tornare in bozza",
                error_code="INVOICE_LOCKED",
            )

        header = {k: v for k, v in update_data.items() if v != getattr(invoice, k)}
        if header:
            if invoice.is_locked:
                raise BusinessValidationError(
                    LOCKED_MESSAGE.format(number=invoice.invoice_number),
                    error_code="INVOICE_LOCKED",
                )
            if "customer_id" in header and await db.get(Customer, header["customer_id"]) is None:
                raise NotFoundError(f"Cliente {header['customer_id']} non trovato")
            for field, value in header.items():
                setattr(invoice, field, value)
            await db.commit()
            logger.info("Aggiornata intestazione fattura %s: %s", invoice.invoice_number, sorted(header))

        if items is not None:
            invoice = await self.edit_draft_items(db, invoice_id, data.items)
        if status == InvoiceStatus.SENT and invoice.status == InvoiceStatus.DRAFT.value:
            invoice = await self.send(db, invoice_id)
        if status == InvoiceStatus.PAID or paid_at is not None:
            invoice = await self.mark_paid(
                db,
                invoice_id,
                MarkPaidRequest(paid_at=paid_at, paid_amount=paid_amount, payment_method=payment_method),
            )

        return await self.get_by_id(db, invoice_id)

    async def edit_draft_items(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        items: list[DocumentItemCreate],
    ) -> Invoice:
        """
        Sostituisce tutte le righe di una bozza e ricalcola i totali.

        Raises:
            BusinessValidationError: la fattura non è in bozza
        """
        invoice = await self.get_by_id(db, invoice_id, for_update=True)
        if invoice.status != InvoiceStatus.DRAFT.value or invoice.is_locked:
            raise BusinessValidationError(
                f"Impossibile modificare le righe della fattura {invoice.invoice_number} già inviata. "
                "Creare uno storno o una fattura di correzione.",
                error_code="INVOICE_LOCKED",
            )

        new_items = build_items(items, InvoiceItem)
        invoice.items = new_items
        for field, value in calculate_totals(new_items).items():
            setattr(invoice, field, value)

        await db.commit()
        logger.info("Righe fattura %s sostituite (%s righe)", invoice.invoice_number, len(new_items))
        return await self.get_by_id(db, invoice_id)

    # ------------------------------------------------------------
    # Transizioni di stato
    # ------------------------------------------------------------
    def _check_transition(self, invoice: Invoice, target: InvoiceStatus) -> None:
        current = InvoiceStatus(invoice.status)
        if target not in VALID_TRANSITIONS.get(current, []):
            logger.warning("Transizione non consentita: %s -> %s (%s)", current, target, invoice.invoice_number)
            raise BusinessValidationError(
                f"Transizione da '{current.value}' a '{target.value}' non consentita "
                f"per la fattura {invoice.invoice_number}"
            )

    @staticmethod
    def _lock(invoice: Invoice, now: datetime.datetime) -> None:
        invoice.is_locked = True
        invoice.is_editable = False
        if invoice.locked_at is None:
            invoice.locked_at = now

    async def send(self, db: AsyncSession, invoice_id: uuid.UUID) -> Invoice:
        """
        Invia la fattura: draft → sent e blocco permanente.

        Raises:
            BusinessValidationError: la fattura non è in bozza
        """
        invoice = await self.get_by_id(db, invoice_id, for_update=True)
        self._check_transition(invoice, InvoiceStatus.SENT)

        invoice.status = InvoiceStatus.SENT.value
        self._lock(invoice, utcnow())
        await db.commit()

        logger.info("Fattura %s inviata e bloccata", invoice.invoice_number)
        return await self.get_by_id(db, invoice_id)

    async def mark_paid(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        data: Optional[MarkPaidRequest] = None,
    ) -> Invoice:
        """
        Registra il pagamento della fattura.

        paid_at di default è adesso; paid_amount di default è il totale
        lordo, salvo un importo già registrato. Una bozza pagata viene
        bloccata come una fattura inviata.
        """
        data = data or MarkPaidRequest()
        invoice = await self.get_by_id(db, invoice_id, for_update=True)
        self._check_transition(invoice, InvoiceStatus.PAID)

        now = utcnow()
        invoice.status = InvoiceStatus.PAID.value
        invoice.paid_at = data.paid_at or now
        if data.paid_amount is not None:
            invoice.paid_amount = data.paid_amount
        elif invoice.paid_amount is None:
            invoice.paid_amount = invoice.total_gross
        if data.payment_method is not None:
            invoice.payment_method = data.payment_method.value
        self._lock(invoice, now)

        await db.commit()
        logger.info("Fattura %s pagata (%.2f EUR)", invoice.invoice_number, invoice.paid_amount)
        return await self.get_by_id(db, invoice_id)

    async def delete_draft(self, db: AsyncSession, invoice_id: uuid.UUID) -> None:
        """
        Elimina una bozza. Il numero assegnato non viene riutilizzato.

        Raises:
            BusinessValidationError: fattura bloccata o non in bozza
        """
        invoice = await self.get_by_id(db, invoice_id, for_update=True)
        if invoice.is_locked:
            raise BusinessValidationError(
                f"La fattura {invoice.invoice_number} è bloccata e non può essere eliminata. "
                "Creare uno storno.",
                error_code="INVOICE_LOCKED",
            )
        if invoice.status != InvoiceStatus.DRAFT.value:
            raise BusinessValidationError("Solo le fatture in bozza possono essere eliminate")

        await db.delete(invoice)
        await db.commit()
        logger.info("Eliminata bozza fattura %s", invoice.invoice_number)

    # ------------------------------------------------------------
    # Report
    # ------------------------------------------------------------
    async def get_revenue_summary(
        self,
        db: AsyncSession,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> RevenueSummary:
        """
        Riepilogo fatturato nel periodo (bozze escluse).

        Storni e correzioni entrano con il loro segno, quindi una fattura
        stornata e il suo storno si annullano. Gli importi vengono
        arrotondati a 2 decimali solo qui.
        """
        conditions = [Invoice.status != InvoiceStatus.DRAFT.value]
        if from_date:
            conditions.append(Invoice.invoice_date >= from_date)
        if to_date:
            conditions.append(Invoice.invoice_date <= to_date)

        result = await db.execute(select(Invoice).where(and_(*conditions)))
        invoices = list(result.scalars().all())

        today = date.today()
        total_paid = 0.0
        total_open = 0.0
        total_overdue = 0.0
        for invoice in invoices:
            if invoice.status == InvoiceStatus.PAID.value:
                total_paid += invoice.paid_amount if invoice.paid_amount is not None else invoice.total_gross
            elif not invoice.is_cancelled and invoice.correction_type is None:
                total_open += invoice.total_gross
                if invoice.due_date < today:
                    total_overdue += invoice.total_gross

        return RevenueSummary(
            from_date=from_date,
            to_date=to_date,
            invoice_count=len(invoices),
            total_net=round_money(sum(i.subtotal for i in invoices)),
            total_vat=round_money(sum(i.total_vat for i in invoices)),
            total_gross=round_money(sum(i.total_gross for i in invoices)),
            total_paid=round_money(total_paid),
            total_open=round_money(total_open),
            total_overdue=round_money(total_overdue),
        )
