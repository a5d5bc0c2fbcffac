"""
Test per TransactionService e DuplicateChecker: import CSV,
sincronizzazione bancaria, inserimento manuale e pulizia duplicati.
"""

import uuid
from datetime import date

import pytest

from app.core.exceptions import (
    BusinessValidationError,
    DuplicateError,
    ExternalServiceError,
)
from app.models import Transaction
from app.schemas.transaction import (
    BankAccountCreate,
    BankImportRequest,
    BankTransactionPage,
    TransactionCandidate,
    TransactionCategorize,
    TransactionCreate,
    TransactionSource,
)
from app.services.duplicate_checker import (
    STRATEGY_CONTENT,
    STRATEGY_CSV_HASH,
    STRATEGY_EXTERNAL_ID,
    DuplicateChecker,
)
from app.services.transaction_service import TransactionService

GERMAN_EXPORT = (
    '"Booking Date","Description","Counterparty","Amount"\n'
    '"15.03.2026","Office Supplies","Bürobedarf GmbH","-89,99"\n'
    '"16.03.2026","Kundenzahlung BM-2026-001","Mustermann GmbH","238,00"\n'
).encode("utf-8")

ISO_EXPORT = (
    "Booking Date,Description,Counterparty,Amount\n"
    "2026-03-15,Office Supplies,Bürobedarf GmbH,-89.99\n"
).encode("utf-8")


@pytest.fixture
def transaction_service() -> TransactionService:
    return TransactionService()


@pytest.fixture
async def account(db, transaction_service):
    return await transaction_service.create_account(
        db,
        BankAccountCreate(name="Geschäftskonto", bank_name="Vivid", external_ref="vivid-acc-1"),
    )


class FakeBankSource:
    """Provider bancario finto: restituisce pagine predefinite."""

    def __init__(self, pages, fail_on_page=None):
        self.pages = pages
        self.fail_on_page = fail_on_page
        self.calls = []

    async def fetch_page(self, account_ref, from_date, to_date, page):
        self.calls.append((account_ref, from_date, to_date, page))
        if page == self.fail_on_page:
            raise ConnectionError("Zeitüberschreitung")
        transactions = self.pages[page - 1]
        return BankTransactionPage(transactions=transactions, has_more=page < len(self.pages))


def api_record(external_id: str, day: int, amount: float, description: str) -> TransactionCandidate:
    return TransactionCandidate(
        external_id=external_id,
        date=date(2026, 3, day),
        amount=amount,
        description=description,
    )


class TestCsvImport:
    """Import degli estratti conto."""

    async def test_import(self, db, transaction_service, account):
        result = await transaction_service.import_csv(db, "maerz.csv", GERMAN_EXPORT, account.id)

        assert result.total_rows == 2
        assert result.imported == 2
        assert result.duplicates == 0

        transactions, total = await transaction_service.get_all(db, bank_account_id=account.id)
        assert total == 2
        assert {t.source for t in transactions} == {TransactionSource.CSV.value}
        assert {t.import_batch_id for t in transactions} == {result.import_batch_id}

    async def test_reimport_yields_no_new_rows(self, db, transaction_service, account):
        await transaction_service.import_csv(db, "maerz.csv", GERMAN_EXPORT, account.id)

        result = await transaction_service.import_csv(db, "maerz.csv", GERMAN_EXPORT, account.id)

        assert result.imported == 0
        assert result.duplicates == 2

    async def test_other_export_format_is_duplicate(self, db, transaction_service, account):
        """Stessa operazione esportata con date ISO e punto decimale."""
        await transaction_service.import_csv(db, "maerz.csv", GERMAN_EXPORT, account.id)

        result = await transaction_service.import_csv(db, "maerz_iso.csv", ISO_EXPORT, account.id)

        assert result.imported == 0
        assert result.duplicates == 1

    async def test_default_account_is_created(self, db, transaction_service):
        result = await transaction_service.import_csv(db, "maerz.csv", GERMAN_EXPORT)

        accounts = await transaction_service.list_accounts(db)
        assert [a.id for a in accounts] == [result.bank_account_id]
        assert accounts[0].name == "Vivid Geschäftskonto"

    async def test_invalid_filename(self, db, transaction_service, account):
        with pytest.raises(BusinessValidationError):
            await transaction_service.import_csv(db, "maerz.pdf", GERMAN_EXPORT, account.id)

    async def test_file_without_valid_rows(self, db, transaction_service, account):
        content = b"Booking Date,Description,Amount\nirgendwann,Miete,-1200.00\n"

        with pytest.raises(BusinessValidationError) as exc_info:
            await transaction_service.import_csv(db, "kaputt.csv", content, account.id)

        assert exc_info.value.extra["errors"][0]["row"] == 2

    async def test_partial_errors_are_reported(self, db, transaction_service, account):
        content = (
            b"Booking Date,Description,Amount\n"
            b"2026-03-15,Office Supplies,-89.99\n"
            b"2026-03-16,Miete,unbekannt\n"
        )

        result = await transaction_service.import_csv(db, "teilweise.csv", content, account.id)

        assert result.imported == 1
        assert [e.row for e in result.errors] == [3]

    async def test_latin1_content(self, db, transaction_service, account):
        content = "Booking Date,Description,Amount\n2026-03-15,Bürobedarf,-12.00\n".encode("latin-1")

        result = await transaction_service.import_csv(db, "alt.csv", content, account.id)

        transactions, _ = await transaction_service.get_all(db, bank_account_id=account.id)
        assert result.imported == 1
        assert transactions[0].description == "Bürobedarf"


class TestDuplicateChecker:
    """Strategie di riconoscimento."""

    async def test_strategies_in_order(self, db, transaction_service, account):
        await transaction_service.import_bank_records(
            db,
            BankImportRequest(
                bank_account_id=account.id,
                transactions=[api_record("tx-1", 15, -89.99, "Office Supplies")],
            ),
        )
        await transaction_service.import_csv(db, "maerz.csv", GERMAN_EXPORT, account.id)
        checker = DuplicateChecker()

        by_external_id = await checker.check_duplicate(
            db, account.id, api_record("tx-1", 20, -1.0, "anders")
        )
        assert by_external_id.strategy == STRATEGY_EXTERNAL_ID

        csv_transactions, _ = await transaction_service.get_all(
            db, bank_account_id=account.id, source=TransactionSource.CSV
        )
        by_hash = await checker.check_duplicate(
            db,
            account.id,
            TransactionCandidate(
                date=date(2026, 1, 1),
                amount=0.0,
                csv_row_hash=csv_transactions[0].csv_row_hash,
            ),
        )
        assert by_hash.strategy == STRATEGY_CSV_HASH

        by_content = await checker.check_duplicate(
            db,
            account.id,
            TransactionCandidate(date=date(2026, 3, 15), amount=-89.99, description="Office Supplies"),
        )
        assert by_content.strategy == STRATEGY_CONTENT

        fresh = await checker.check_duplicate(
            db,
            account.id,
            TransactionCandidate(date=date(2026, 3, 15), amount=-89.99, description="Druckerpapier"),
        )
        assert fresh.is_duplicate is False

    async def test_other_account_is_not_a_duplicate(self, db, transaction_service, account):
        await transaction_service.import_csv(db, "maerz.csv", GERMAN_EXPORT, account.id)
        other = await transaction_service.create_account(db, BankAccountCreate(name="Tagesgeld"))

        result = await transaction_service.import_csv(db, "maerz.csv", GERMAN_EXPORT, other.id)

        assert result.imported == 2

    async def test_batch_repeats_external_id(self, db, account):
        checker = DuplicateChecker()

        flags = await checker.check_batch_duplicates(
            db,
            account.id,
            [
                api_record("tx-1", 15, -10.0, "A"),
                api_record("tx-1", 15, -10.0, "A"),
                api_record("tx-2", 16, -20.0, "B"),
            ],
        )

        assert flags == {0: False, 1: True, 2: False}

    async def test_api_and_csv_copies_collide_on_content(self, db, transaction_service, account):
        """Un movimento già sincronizzato non rientra dal CSV con gli stessi dati."""
        await transaction_service.import_bank_records(
            db,
            BankImportRequest(
                bank_account_id=account.id,
                transactions=[api_record("tx-1", 15, -89.99, "Office Supplies")],
            ),
        )

        result = await transaction_service.import_csv(db, "maerz.csv", GERMAN_EXPORT, account.id)

        assert result.imported == 1
        assert result.duplicates == 1

    async def test_api_and_csv_with_different_text_are_both_kept(self, db, transaction_service, account):
        await transaction_service.import_bank_records(
            db,
            BankImportRequest(
                bank_account_id=account.id,
                transactions=[api_record("tx-1", 15, -89.99, "KARTENZAHLUNG BUEROBEDARF")],
            ),
        )

        result = await transaction_service.import_csv(db, "maerz.csv", GERMAN_EXPORT, account.id)

        assert result.imported == 2
        _, total = await transaction_service.get_all(db, bank_account_id=account.id)
        assert total == 3


class TestBankSync:
    """Sincronizzazione paginata con il provider bancario."""

    async def test_pages_are_imported(self, db, transaction_service, account):
        source = FakeBankSource([
            [api_record("tx-1", 1, -10.0, "A"), api_record("tx-2", 2, -20.0, "B")],
            [api_record("tx-3", 3, -30.0, "C")],
        ])

        result = await transaction_service.sync_bank_transactions(db, account.id, source)

        assert result.imported == 3
        assert result.pages == 2
        assert [call[3] for call in source.calls] == [1, 2]
        assert source.calls[0][0] == "vivid-acc-1"

        refreshed = await transaction_service.get_account(db, account.id)
        assert refreshed.last_synced_at is not None

    async def test_resync_skips_known_transactions(self, db, transaction_service, account):
        pages = [[api_record("tx-1", 1, -10.0, "A")]]
        await transaction_service.sync_bank_transactions(db, account.id, FakeBankSource(pages))

        result = await transaction_service.sync_bank_transactions(db, account.id, FakeBankSource(pages))

        assert result.imported == 0
        assert result.duplicates == 1

    async def test_failure_keeps_earlier_pages(self, db, transaction_service, account):
        source = FakeBankSource(
            [[api_record("tx-1", 1, -10.0, "A")], [api_record("tx-2", 2, -20.0, "B")]],
            fail_on_page=2,
        )

        with pytest.raises(ExternalServiceError) as exc_info:
            await transaction_service.sync_bank_transactions(db, account.id, source)

        assert exc_info.value.status_code == 502
        assert exc_info.value.extra == {"imported": 1, "duplicates": 0, "page": 2}
        _, total = await transaction_service.get_all(db, bank_account_id=account.id)
        assert total == 1

    async def test_unlinked_account(self, db, transaction_service):
        account = await transaction_service.create_account(db, BankAccountCreate(name="Bargeld"))

        with pytest.raises(BusinessValidationError):
            await transaction_service.sync_bank_transactions(db, account.id, FakeBankSource([[]]))


class TestManualTransactions:
    """Inserimento manuale e categorizzazione."""

    async def test_create_with_vat(self, db, transaction_service, account):
        transaction = await transaction_service.create_manual(
            db,
            TransactionCreate(
                bank_account_id=account.id,
                date=date(2026, 3, 20),
                amount=-119.0,
                description="Monitor",
                vat_rate=19,
            ),
        )

        assert transaction.source == TransactionSource.MANUAL.value
        assert transaction.vat_amount == pytest.approx(-19.0)

    async def test_duplicate_rejected(self, db, transaction_service, account):
        data = TransactionCreate(
            bank_account_id=account.id,
            date=date(2026, 3, 20),
            amount=-119.0,
            description="Monitor",
        )
        first = await transaction_service.create_manual(db, data)

        with pytest.raises(DuplicateError) as exc_info:
            await transaction_service.create_manual(db, data)

        assert exc_info.value.extra["matched_transaction_id"] == str(first.id)

    async def test_categorization_recomputes_vat(self, db, transaction_service, account):
        transaction = await transaction_service.create_manual(
            db,
            TransactionCreate(
                bank_account_id=account.id,
                date=date(2026, 3, 21),
                amount=1000.0,
                description="Honorar",
            ),
        )
        assert transaction.vat_amount is None

        updated = await transaction_service.update_categorization(
            db, transaction.id, TransactionCategorize(category="Einnahmen", vat_rate=7)
        )

        assert updated.category == "Einnahmen"
        assert updated.vat_amount == pytest.approx(70.0)


class TestBulkDeduplicate:
    """Pulizia massiva dei duplicati già salvati."""

    async def test_keeps_one_copy_per_key(self, db, transaction_service, account):
        for _ in range(3):
            db.add(Transaction(
                bank_account_id=account.id,
                source=TransactionSource.CSV.value,
                date=date(2026, 3, 15),
                amount=-89.99,
                description="Office Supplies",
                counterparty="Bürobedarf GmbH",
            ))
        db.add(Transaction(
            bank_account_id=account.id,
            source=TransactionSource.CSV.value,
            date=date(2026, 3, 16),
            amount=238.0,
            description="Kundenzahlung",
        ))
        await db.commit()

        result = await transaction_service.bulk_deduplicate(db)

        assert result.total == 4
        assert result.duplicates == 2
        assert result.deleted == 2
        assert result.remaining == 2
        _, total = await transaction_service.get_all(db)
        assert total == 2

    async def test_is_idempotent(self, db, transaction_service, account):
        for _ in range(2):
            db.add(Transaction(
                bank_account_id=account.id,
                source=TransactionSource.MANUAL.value,
                date=date(2026, 3, 15),
                amount=-5.0,
                description="Kaffee",
            ))
        await db.commit()

        await transaction_service.bulk_deduplicate(db)
        result = await transaction_service.bulk_deduplicate(db)

        assert result.duplicates == 0
        assert result.deleted == 0

    async def test_accounts_are_separate(self, db, transaction_service, account):
        other = await transaction_service.create_account(db, BankAccountCreate(name="Tagesgeld"))
        for bank_account_id in (account.id, other.id):
            db.add(Transaction(
                bank_account_id=bank_account_id,
                source=TransactionSource.MANUAL.value,
                date=date(2026, 3, 15),
                amount=-5.0,
                description="Kaffee",
            ))
        await db.commit()

        result = await transaction_service.bulk_deduplicate(db)

        assert result.duplicates == 0

    async def test_sub_cent_amounts_are_distinct(self, db, transaction_service, account):
        for amount in (-10.001, -10.004):
            db.add(Transaction(
                bank_account_id=account.id,
                source=TransactionSource.API.value,
                date=date(2026, 3, 15),
                amount=amount,
                description="FX Gebühr",
            ))
        await db.commit()

        result = await transaction_service.bulk_deduplicate(db)

        assert result.duplicates == 0
        assert result.remaining == 2

    async def test_same_batch_keeps_lowest_id(self, db, transaction_service, account):
        ids = [uuid.UUID(int=n) for n in (3, 1, 2)]
        for transaction_id in ids:
            db.add(Transaction(
                id=transaction_id,
                bank_account_id=account.id,
                source=TransactionSource.CSV.value,
                date=date(2026, 3, 15),
                amount=-89.99,
                description="Office Supplies",
            ))
        await db.commit()

        result = await transaction_service.bulk_deduplicate(db)

        assert result.deleted == 2
        remaining, _ = await transaction_service.get_all(db)
        assert [t.id for t in remaining] == [uuid.UUID(int=1)]


class TestPeriodSummary:
    """Riepilogo IVA (USt-Übersicht) e dashboard mensile."""

    @pytest.fixture
    async def march_bookings(self, db, transaction_service, account):
        bookings = [
            (date(2026, 3, 2), 1000.0, "Honorar März", "Beratung", 19),
            (date(2026, 3, 5), -119.0, "Druckerpapier", "Büro", 19),
            (date(2026, 3, 9), -107.0, "Fachbuch", "Bücher", 7),
            (date(2026, 3, 31), -50.0, "Porto", "Büro", None),
            (date(2026, 4, 1), -20.0, "Kaffee", None, None),
        ]
        for day, amount, description, category, vat_rate in bookings:
            await transaction_service.create_manual(
                db,
                TransactionCreate(
                    bank_account_id=account.id,
                    date=day,
                    amount=amount,
                    description=description,
                    category=category,
                    vat_rate=vat_rate,
                ),
            )

    async def test_totals(self, db, transaction_service, march_bookings):
        summary = await transaction_service.get_period_summary(db, date(2026, 3, 1), date(2026, 3, 31))

        assert summary.transaction_count == 4
        assert summary.total_income == pytest.approx(1000.0)
        assert summary.total_expense == pytest.approx(276.0)
        assert summary.net_amount == pytest.approx(724.0)
        assert summary.vat_payable == pytest.approx(164.0)

    async def test_vat_by_rate(self, db, transaction_service, march_bookings):
        summary = await transaction_service.get_period_summary(db, date(2026, 3, 1), date(2026, 3, 31))

        reduced, standard = summary.vat_by_rate
        assert reduced.rate == 7
        assert reduced.net_amount == pytest.approx(-100.0)
        assert reduced.vat_amount == pytest.approx(-7.0)
        assert reduced.gross_amount == pytest.approx(-107.0)
        assert standard.rate == 19
        assert standard.net_amount == pytest.approx(900.0)
        assert standard.vat_amount == pytest.approx(171.0)
        assert standard.gross_amount == pytest.approx(1071.0)

    async def test_category_breakdown(self, db, transaction_service, march_bookings):
        summary = await transaction_service.get_period_summary(db, date(2026, 3, 1), date(2026, 3, 31))

        assert [(c.category, c.amount, c.count) for c in summary.category_breakdown] == [
            ("Beratung", 1000.0, 1),
            ("Büro", 169.0, 2),
            ("Bücher", 107.0, 1),
        ]

    async def test_empty_period(self, db, transaction_service, account):
        summary = await transaction_service.get_period_summary(db, date(2025, 1, 1), date(2025, 1, 31))

        assert summary.transaction_count == 0
        assert summary.vat_payable == 0
        assert summary.vat_by_rate == []

    async def test_inverted_period(self, db, transaction_service):
        with pytest.raises(BusinessValidationError):
            await transaction_service.get_period_summary(db, date(2026, 3, 31), date(2026, 3, 1))

    async def test_dashboard(self, db, transaction_service, march_bookings):
        dashboard = await transaction_service.get_dashboard(db, year=2026, month=3)

        assert dashboard.from_date == date(2026, 3, 1)
        assert dashboard.to_date == date(2026, 3, 31)
        assert dashboard.transaction_count == 4
        assert dashboard.recent_transactions[0].description == "Kaffee"
        assert len(dashboard.recent_transactions) == 5

    async def test_dashboard_invalid_month(self, db, transaction_service):
        with pytest.raises(BusinessValidationError):
            await transaction_service.get_dashboard(db, year=2026, month=13)
