"""
Test per InvoiceCorrectionService: storno (Stornorechnung) e
fattura di correzione (Korrekturrechnung).
"""

import asyncio

import pytest
from pydantic import ValidationError

from app.core.exceptions import BusinessValidationError, ConflictError, NotFoundError
from app.models import CorrectionType, InvoiceItem
from app.schemas.invoice import DocumentItemCreate, InvoiceCreate, InvoiceStatus
from app.services.invoice_correction_service import InvoiceCorrectionService


@pytest.fixture
def correction_service(invoice_service, sequence_service) -> InvoiceCorrectionService:
    return InvoiceCorrectionService(invoice_service, sequence_service)


class TestCancel:
    """Storno di fatture bloccate."""

    async def test_cancellation_document(self, db, correction_service, sent_invoice):
        cancellation = await correction_service.cancel(db, sent_invoice.id, "Doppelt berechnet")

        assert cancellation.correction_type == CorrectionType.CANCELLATION
        assert cancellation.corrects_id == sent_invoice.id
        assert cancellation.total_gross == pytest.approx(-238.00)
        assert cancellation.subtotal == pytest.approx(-200.00)
        assert cancellation.total_vat == pytest.approx(-38.00)
        assert cancellation.status == InvoiceStatus.SENT.value
        assert cancellation.is_locked is True
        assert cancellation.invoice_number != sent_invoice.invoice_number
        assert "Grund: Doppelt berechnet" in cancellation.notes

    async def test_cancellation_items_are_negated(self, db, correction_service, sent_invoice):
        cancellation = await correction_service.cancel(db, sent_invoice.id, "Fehler")

        item = cancellation.items[0]
        assert item.description == "[STORNO] Consulting"
        assert item.quantity == pytest.approx(-2)
        assert item.unit_price == pytest.approx(100.00)
        assert item.vat_rate == pytest.approx(19)
        assert item.total == pytest.approx(-238.00)

    async def test_original_is_flagged(self, db, correction_service, invoice_service, sent_invoice):
        cancellation = await correction_service.cancel(db, sent_invoice.id, "Fehler")

        original = await invoice_service.get_by_id(db, sent_invoice.id)
        assert original.is_cancelled is True
        assert original.cancelled_at is not None
        assert original.cancellation_reason == "Fehler"
        assert original.corrected_by_id == cancellation.id
        # invariato l'importo dell'originale
        assert original.total_gross == pytest.approx(238.00)
        assert original.total_gross + cancellation.total_gross == pytest.approx(0)

    async def test_paid_invoice_can_be_cancelled(self, db, correction_service, invoice_service, sent_invoice):
        await invoice_service.mark_paid(db, sent_invoice.id)

        cancellation = await correction_service.cancel(db, sent_invoice.id, "Rückerstattung")

        assert cancellation.total_gross == pytest.approx(-238.00)

    async def test_double_cancel_rejected(self, db, correction_service, sent_invoice):
        await correction_service.cancel(db, sent_invoice.id, "Erster Versuch")

        with pytest.raises(BusinessValidationError) as exc_info:
            await correction_service.cancel(db, sent_invoice.id, "Zweiter Versuch")

        assert exc_info.value.error_code == "INVOICE_ALREADY_CANCELLED"

    async def test_draft_cannot_be_cancelled(self, db, correction_service, draft_invoice):
        with pytest.raises(BusinessValidationError):
            await correction_service.cancel(db, draft_invoice.id, "Fehler")

    async def test_cancellation_cannot_be_cancelled(self, db, correction_service, sent_invoice):
        cancellation = await correction_service.cancel(db, sent_invoice.id, "Fehler")

        with pytest.raises(BusinessValidationError):
            await correction_service.cancel(db, cancellation.id, "Storno vom Storno")

    async def test_unknown_invoice(self, db, correction_service):
        import uuid

        with pytest.raises(NotFoundError):
            await correction_service.cancel(db, uuid.uuid4(), "Fehler")

    async def test_concurrent_cancels(self, db, session_factory, correction_service, sent_invoice):
        """Due storni concorrenti: esattamente uno riesce."""
        invoice_id = sent_invoice.id
        await db.rollback()

        async def cancel_once(reason: str):
            async with session_factory() as session:
                return await correction_service.cancel(session, invoice_id, reason)

        results = await asyncio.gather(
            cancel_once("A"), cancel_once("B"), return_exceptions=True
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], (BusinessValidationError, ConflictError))
        assert failures[0].error_code == "INVOICE_ALREADY_CANCELLED"

        documents = await correction_service.get_by_original(db, invoice_id)
        assert len(documents) == 1


class TestCorrect:
    """Fatture di correzione differenziali."""

    async def test_differential_correction(self, db, correction_service, invoice_service, sent_invoice):
        correction = await correction_service.correct(
            db,
            sent_invoice.id,
            [DocumentItemCreate(description="Consulting", quantity=-1, unit_price=100.0, vat_rate=19)],
            "Eine Stunde zu viel berechnet",
        )

        assert correction.correction_type == CorrectionType.CORRECTION
        assert correction.corrects_id == sent_invoice.id
        assert correction.items[0].description == "[KORREKTUR] Consulting"
        assert correction.total_gross == pytest.approx(-119.00)
        assert correction.is_locked is True

        original = await invoice_service.get_by_id(db, sent_invoice.id)
        assert original.corrected_by_id == correction.id
        assert original.is_cancelled is False
        assert original.total_gross == pytest.approx(238.00)

    async def test_second_correction_rejected(self, db, correction_service, sent_invoice, consulting_items):
        await correction_service.correct(db, sent_invoice.id, consulting_items, "Nachberechnung")

        with pytest.raises(BusinessValidationError) as exc_info:
            await correction_service.correct(db, sent_invoice.id, consulting_items, "Noch einmal")

        assert exc_info.value.error_code == "INVOICE_ALREADY_CORRECTED"

    async def test_cancelled_invoice_cannot_be_corrected(self, db, correction_service, sent_invoice, consulting_items):
        await correction_service.cancel(db, sent_invoice.id, "Fehler")

        with pytest.raises(BusinessValidationError):
            await correction_service.correct(db, sent_invoice.id, consulting_items, "Zu spät")

    async def test_cancellation_cannot_be_corrected(self, db, correction_service, sent_invoice, consulting_items):
        cancellation = await correction_service.cancel(db, sent_invoice.id, "Fehler")

        with pytest.raises(BusinessValidationError):
            await correction_service.correct(db, cancellation.id, consulting_items, "Korrektur")

    async def test_draft_cannot_be_corrected(self, db, correction_service, draft_invoice, consulting_items):
        with pytest.raises(BusinessValidationError):
            await correction_service.correct(db, draft_invoice.id, consulting_items, "Korrektur")

    async def test_corrected_invoice_can_still_be_cancelled(
        self, db, correction_service, sent_invoice, consulting_items
    ):
        await correction_service.correct(db, sent_invoice.id, consulting_items, "Nachberechnung")

        cancellation = await correction_service.cancel(db, sent_invoice.id, "Komplett storniert")

        documents = await correction_service.get_by_original(db, sent_invoice.id)
        assert [d.correction_type for d in documents] == [
            CorrectionType.CORRECTION,
            CorrectionType.CANCELLATION,
        ]
        assert documents[-1].id == cancellation.id


class TestLongDescriptions:
    """Righe con la descrizione più lunga ammessa."""

    @pytest.fixture
    async def long_invoice(self, db, invoice_service, customer):
        invoice = await invoice_service.create(
            db,
            InvoiceCreate(
                customer_id=customer.id,
                items=[DocumentItemCreate(description="x" * 500, quantity=1, unit_price=50.0)],
            ),
        )
        return await invoice_service.send(db, invoice.id)

    def column_length(self) -> int:
        return InvoiceItem.__table__.c.description.type.length

    async def test_cancel(self, db, correction_service, long_invoice):
        cancellation = await correction_service.cancel(db, long_invoice.id, "Fehler")

        description = cancellation.items[0].description
        assert description == "[STORNO] " + "x" * 500
        assert len(description) <= self.column_length()

    async def test_correct(self, db, correction_service, long_invoice):
        correction = await correction_service.correct(
            db,
            long_invoice.id,
            [DocumentItemCreate(description="y" * 500, quantity=1, unit_price=-10.0)],
            "Rabatt",
        )

        description = correction.items[0].description
        assert description == "[KORREKTUR] " + "y" * 500
        assert len(description) <= self.column_length()

    def test_longer_input_rejected(self):
        with pytest.raises(ValidationError):
            DocumentItemCreate(description="x" * 501, unit_price=1.0)
