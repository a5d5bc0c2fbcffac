"""
Service Layer per Storni e Fatture di Correzione
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Una fattura bloccata non si modifica: si emette un nuovo documento.
- Storno (Stornorechnung): copia integrale con importi e quantità negati
- Correzione (Korrekturrechnung): fattura differenziale con le sole variazioni

Il nuovo documento e il flag sull'originale vengono scritti nella stessa
transazione. L'originale viene aggiornato con un UPDATE condizionato
(compare-and-set): se una richiesta concorrente è arrivata prima,
l'UPDATE non tocca righe e l'intera operazione viene annullata.
"""

import logging
import uuid
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import BusinessValidationError, ConflictError
from app.models import CorrectionType, Invoice, InvoiceItem
from app.models.invoice import CANCELLATION_PREFIX, CORRECTION_PREFIX
from app.models.mixins import utcnow
from app.schemas.invoice import DocumentItemCreate, InvoiceStatus
from app.schemas.sequence import DocumentType
from app.services.calculations import calculate_totals
from app.services.invoice_service import InvoiceService, build_items
from app.services.sequence_service import SequenceService

logger = logging.getLogger(__name__)

CANCELLATION_PAYMENT_TERMS = "Stornierung - keine Zahlung erforderlich"


class InvoiceCorrectionService:
    def __init__(
        self,
        invoice_service: Optional[InvoiceService] = None,
        sequence_service: Optional[SequenceService] = None,
    ) -> None:
        self.sequence_service = sequence_service or SequenceService()
        self.invoice_service = invoice_service or InvoiceService(self.sequence_service)

    async def cancel(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        reason: str,
    ) -> Invoice:
        """
        Storna una fattura inviata o pagata.

        Crea il documento di storno (nuovo numero, righe "[STORNO] " con
        quantità e importi negati, prezzo unitario e aliquota invariati,
        già bloccato) e marca l'originale come stornato.

        Raises:
            NotFoundError: fattura inesistente
            BusinessValidationError: bozza, non bloccata, già stornata o
                essa stessa uno storno
            ConflictError: storno concorrente arrivato prima
        """
        original = await self.invoice_service.get_by_id(db, invoice_id, for_update=True)

        if original.status == InvoiceStatus.DRAFT.value:
            raise BusinessValidationError(
                f"La fattura {original.invoice_number} è in bozza: eliminarla invece di stornarla"
            )
        if original.is_cancelled:
            raise BusinessValidationError(
                f"La fattura {original.invoice_number} è già stata stornata",
                error_code="INVOICE_ALREADY_CANCELLED",
            )
        if not original.is_locked:
            raise BusinessValidationError(
                f"La fattura {original.invoice_number} non è bloccata e non può essere stornata"
            )
        if original.correction_type == CorrectionType.CANCELLATION:
            raise BusinessValidationError(
                f"Il documento {original.invoice_number} è uno storno e non può essere stornato"
            )

        now = utcnow()
        today = date.today()
        try:
            number = await self.sequence_service.next_number(db, DocumentType.INVOICE, today)

            # Copia tutte le righe con segno negativo su quantità e importi
            items = [
                InvoiceItem(
                    description=f"{CANCELLATION_PREFIX}{item.description}",
                    quantity=-item.quantity,
                    unit=item.unit,
                    unit_price=item.unit_price,
                    vat_rate=item.vat_rate,
                    subtotal=-item.subtotal,
                    vat_amount=-item.vat_amount,
                    total=-item.total,
                    sort_order=item.sort_order,
                )
                for item in original.items
            ]
            cancellation = Invoice(
                invoice_number=number,
                customer_id=original.customer_id,
                invoice_date=today,
                delivery_date=original.delivery_date,
                due_date=today,
                payment_terms=CANCELLATION_PAYMENT_TERMS,
                notes=f"Stornierung von Rechnung {original.invoice_number}\n\nGrund: {reason}",
                terms=original.terms,
                status=InvoiceStatus.SENT.value,
                is_locked=True,
                is_editable=False,
                locked_at=now,
                is_cancelled=False,
                correction_type=CorrectionType.CANCELLATION,
                corrects_id=original.id,
                subtotal=-original.subtotal,
                total_vat=-original.total_vat,
                total_gross=-original.total_gross,
                items=items,
            )
            db.add(cancellation)
            await db.flush()

            result = await db.execute(
                update(Invoice)
                .where(Invoice.id == original.id, Invoice.is_cancelled.is_(False))
                .values(
                    is_cancelled=True,
                    cancelled_at=now,
                    cancellation_reason=reason,
                    corrected_by_id=cancellation.id,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await db.rollback()
                logger.warning("Storno concorrente su fattura %s: operazione annullata", original.invoice_number)
                raise ConflictError(
                    f"La fattura {original.invoice_number} è già stata stornata",
                    error_code="INVOICE_ALREADY_CANCELLED",
                )

            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error("Errore di integrità durante lo storno: %s", e.orig)
            raise ConflictError("Errore durante la creazione dello storno")

        logger.info(
            "Fattura %s stornata con %s (%.2f EUR)",
            original.invoice_number, cancellation.invoice_number, cancellation.total_gross,
        )
        return await self.invoice_service.get_by_id(db, cancellation.id)

    async def correct(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        items: list[DocumentItemCreate],
        reason: str,
    ) -> Invoice:
        """
        Emette una fattura di correzione differenziale.

        Le righe ("[KORREKTUR] ") contengono solo le variazioni rispetto
        all'originale; i totali sono la somma delle righe. Ogni fattura
        ammette una sola correzione.

        Raises:
            BusinessValidationError: bozza, stornata, già corretta o storno
            ConflictError: correzione concorrente arrivata prima
        """
        original = await self.invoice_service.get_by_id(db, invoice_id, for_update=True)

        if original.status == InvoiceStatus.DRAFT.value:
            raise BusinessValidationError(
                f"La fattura {original.invoice_number} è in bozza: modificarne le righe direttamente"
            )
        if original.is_cancelled:
            raise BusinessValidationError(
                f"La fattura {original.invoice_number} è stornata e non può essere corretta",
                error_code="INVOICE_ALREADY_CANCELLED",
            )
        if original.correction_type == CorrectionType.CANCELLATION:
            raise BusinessValidationError(
                f"Il documento {original.invoice_number} è uno storno e non può essere corretto"
            )
        if original.corrected_by_id is not None:
            raise BusinessValidationError(
                f"La fattura {original.invoice_number} ha già una fattura di correzione. "
                "Stornarla e riemetterla per ulteriori modifiche.",
                error_code="INVOICE_ALREADY_CORRECTED",
            )

        now = utcnow()
        today = date.today()
        new_items = build_items(items, InvoiceItem, prefix=CORRECTION_PREFIX)
        try:
            number = await self.sequence_service.next_number(db, DocumentType.INVOICE, today)
            correction = Invoice(
                invoice_number=number,
                customer_id=original.customer_id,
                invoice_date=today,
                delivery_date=original.delivery_date,
                due_date=today + timedelta(days=settings.invoice_payment_days),
                payment_terms=original.payment_terms,
                notes=f"Korrekturrechnung zu Rechnung {original.invoice_number}\n\nGrund: {reason}",
                terms=original.terms,
                status=InvoiceStatus.SENT.value,
                is_locked=True,
                is_editable=False,
                locked_at=now,
                is_cancelled=False,
                correction_type=CorrectionType.CORRECTION,
                corrects_id=original.id,
                items=new_items,
                **calculate_totals(new_items),
            )
            db.add(correction)
            await db.flush()

            result = await db.execute(
                update(Invoice)
                .where(
                    Invoice.id == original.id,
                    Invoice.corrected_by_id.is_(None),
                    Invoice.is_cancelled.is_(False),
                )
                .values(corrected_by_id=correction.id, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await db.rollback()
                raise ConflictError(
                    f"La fattura {original.invoice_number} è stata corretta o stornata nel frattempo",
                    error_code="INVOICE_ALREADY_CORRECTED",
                )

            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error("Errore di integrità durante la correzione: %s", e.orig)
            raise ConflictError("Errore durante la creazione della fattura di correzione")

        logger.info(
            "Fattura %s corretta con %s (%.2f EUR)",
            original.invoice_number, correction.invoice_number, correction.total_gross,
        )
        return await self.invoice_service.get_by_id(db, correction.id)

    async def get_by_original(self, db: AsyncSession, invoice_id: uuid.UUID) -> list[Invoice]:
        """Documenti correttivi emessi su una fattura, in ordine di emissione."""
        await self.invoice_service.get_by_id(db, invoice_id)
        result = await db.execute(
            select(Invoice)
            .where(Invoice.corrects_id == invoice_id)
            .order_by(Invoice.created_at.asc())
        )
        return list(result.scalars().all())
