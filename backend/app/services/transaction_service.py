"""
Service Layer per Conti e Movimenti Bancari
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Tre vie di ingresso per i movimenti, tutte filtrate da DuplicateChecker:
- sincronizzazione con il provider bancario (external_id)
- import CSV degli estratti conto (csv_row_hash)
- inserimento manuale

Più la pulizia massiva dei duplicati già salvati, su richiesta, e i
riepiloghi IVA per periodo e per mese.
"""

import calendar
import logging
import uuid
from datetime import date, timedelta
from typing import Optional, Protocol, Sequence

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    BusinessValidationError,
    ConflictError,
    DuplicateError,
    ExternalServiceError,
    NotFoundError,
)
from app.models import BankAccount, Transaction
from app.models.mixins import utcnow
from app.schemas.transaction import (
    BankAccountCreate,
    BankImportRequest,
    BankImportResult,
    BankTransactionPage,
    BulkDeduplicateResult,
    CategorySummary,
    CsvImportResult,
    DashboardSummary,
    PeriodSummary,
    TransactionCandidate,
    TransactionCategorize,
    TransactionCreate,
    TransactionRead,
    TransactionSource,
    VatRateSummary,
)
from app.services.calculations import calculate_transaction_vat, round_money
from app.services.csv_parser import is_valid_csv_filename, parse_bank_csv
from app.services.duplicate_checker import DuplicateChecker

logger = logging.getLogger(__name__)

# Prima sincronizzazione: ultimi 3 mesi
INITIAL_SYNC_DAYS = 90
DELETE_CHUNK_SIZE = 500


class BankTransactionSource(Protocol):
    """Client del provider bancario usato dalla sincronizzazione."""

    async def fetch_page(
        self,
        account_ref: str,
        from_date: date,
        to_date: date,
        page: int,
    ) -> BankTransactionPage:
        ...


class TransactionService:
    """
    Service per conti bancari e movimenti.

    Ogni lotto importato viene salvato con un proprio commit: un errore
    su un lotto successivo non annulla quelli già importati.
    """

    def __init__(self, duplicate_checker: Optional[DuplicateChecker] = None) -> None:
        self.duplicate_checker = duplicate_checker or DuplicateChecker()

    # ------------------------------------------------------------
    # Conti
    # ------------------------------------------------------------
    async def get_account(self, db: AsyncSession, bank_account_id: uuid.UUID) -> BankAccount:
        account = await db.get(BankAccount, bank_account_id)
        if account is None:
            raise NotFoundError(f"Conto bancario {bank_account_id} non trovato")
        return account

    async def list_accounts(self, db: AsyncSession) -> list[BankAccount]:
        result = await db.execute(select(BankAccount).order_by(BankAccount.created_at.asc()))
        return list(result.scalars().all())

    async def create_account(self, db: AsyncSession, data: BankAccountCreate) -> BankAccount:
        account = BankAccount(**data.model_dump())
        db.add(account)
        await db.commit()
        logger.info("Creato conto bancario %s", account.name)
        return account

    async def get_or_create_default_account(self, db: AsyncSession) -> BankAccount:
        """Conto predefinito per gli import CSV senza conto indicato."""
        result = await db.execute(
            select(BankAccount)
            .where(BankAccount.name == settings.default_bank_account_name)
            .order_by(BankAccount.created_at.asc())
            .limit(1)
        )
        account = result.scalar_one_or_none()
        if account is None:
            account = BankAccount(name=settings.default_bank_account_name, bank_name="Vivid")
            db.add(account)
            await db.flush()
            logger.info("Creato conto predefinito %s", account.name)
        return account

    # ------------------------------------------------------------
    # Lettura
    # ------------------------------------------------------------
    async def get_by_id(self, db: AsyncSession, transaction_id: uuid.UUID) -> Transaction:
        transaction = await db.get(Transaction, transaction_id)
        if transaction is None:
            raise NotFoundError(f"Movimento {transaction_id} non trovato")
        return transaction

    async def get_all(
        self,
        db: AsyncSession,
        bank_account_id: Optional[uuid.UUID] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        category: Optional[str] = None,
        source: Optional[TransactionSource] = None,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[Transaction], int]:
        """Lista paginata dei movimenti, i più recenti per primi."""
        conditions = []
        if bank_account_id:
            conditions.append(Transaction.bank_account_id == bank_account_id)
        if from_date:
            conditions.append(Transaction.date >= from_date)
        if to_date:
            conditions.append(Transaction.date <= to_date)
        if category:
            conditions.append(Transaction.category == category)
        if source:
            conditions.append(Transaction.source == TransactionSource(source).value)
        if search:
            term = f"%{search}%"
            conditions.append(or_(Transaction.description.ilike(term), Transaction.counterparty.ilike(term)))

        stmt = select(Transaction)
        count_stmt = select(func.count(Transaction.id))
        if conditions:
            stmt = stmt.where(and_(*conditions))
            count_stmt = count_stmt.where(and_(*conditions))

        total = (await db.execute(count_stmt)).scalar() or 0
        stmt = (
            stmt.order_by(Transaction.date.desc(), Transaction.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        transactions = list((await db.execute(stmt)).scalars().all())
        return transactions, total

    # ------------------------------------------------------------
    # Inserimento
    # ------------------------------------------------------------
    async def create_manual(self, db: AsyncSession, data: TransactionCreate) -> Transaction:
        """
        Inserisce un movimento manuale con calcolo IVA.

        Raises:
            NotFoundError: conto inesistente
            DuplicateError: movimento già presente (stessa data, importo, descrizione)
        """
        await self.get_account(db, data.bank_account_id)
        candidate = TransactionCandidate(
            date=data.date,
            amount=data.amount,
            description=data.description,
            counterparty=data.counterparty,
            currency=data.currency,
        )
        check = await self.duplicate_checker.check_duplicate(db, data.bank_account_id, candidate)
        if check.is_duplicate:
            raise DuplicateError(
                "Movimento già presente",
                extra={"matched_transaction_id": str(check.matched_transaction_id)},
            )

        transaction = Transaction(
            source=TransactionSource.MANUAL.value,
            vat_amount=calculate_transaction_vat(data.amount, data.vat_rate),
            **data.model_dump(),
        )
        db.add(transaction)
        await db.commit()
        logger.info("Movimento manuale %s %.2f registrato", transaction.date, transaction.amount)
        return transaction

    async def update_categorization(
        self,
        db: AsyncSession,
        transaction_id: uuid.UUID,
        data: TransactionCategorize,
    ) -> Transaction:
        """Aggiorna solo i campi di categorizzazione; l'IVA segue l'aliquota."""
        transaction = await self.get_by_id(db, transaction_id)
        update_data = data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(transaction, field, value)
        if "vat_rate" in update_data:
            transaction.vat_amount = calculate_transaction_vat(transaction.amount, transaction.vat_rate)

        await db.commit()
        return transaction

    async def delete(self, db: AsyncSession, transaction_id: uuid.UUID) -> None:
        transaction = await self.get_by_id(db, transaction_id)
        await db.delete(transaction)
        await db.commit()
        logger.info("Eliminato movimento %s", transaction_id)

    async def _insert_new(
        self,
        db: AsyncSession,
        bank_account_id: uuid.UUID,
        candidates: Sequence[TransactionCandidate],
        source: TransactionSource,
        import_batch_id: Optional[uuid.UUID] = None,
    ) -> tuple[int, int]:
        """Aggiunge alla sessione i candidati non duplicati. Non esegue commit."""
        flags = await self.duplicate_checker.check_batch_duplicates(db, bank_account_id, candidates)
        imported = 0
        for index, candidate in enumerate(candidates):
            if flags.get(index):
                continue
            db.add(
                Transaction(
                    bank_account_id=bank_account_id,
                    source=source.value,
                    import_batch_id=import_batch_id,
                    **candidate.model_dump(),
                )
            )
            imported += 1
        await db.flush()
        return imported, len(candidates) - imported

    async def import_csv(
        self,
        db: AsyncSession,
        filename: Optional[str],
        content: bytes,
        bank_account_id: Optional[uuid.UUID] = None,
    ) -> CsvImportResult:
        """
        Importa un estratto conto CSV.

        Senza conto indicato usa (o crea) il conto predefinito. Le righe
        già importate vengono contate come duplicati; quelle non valide
        finiscono in errors senza bloccare il resto del file.

        Raises:
            BusinessValidationError: file non CSV, troppo grande o senza righe valide
        """
        if not is_valid_csv_filename(filename):
            raise BusinessValidationError("Tipo di file non valido: caricare un file .csv")
        if len(content) > settings.csv_max_file_size:
            raise BusinessValidationError(
                f"File troppo grande: massimo {settings.csv_max_file_size // (1024 * 1024)} MB"
            )

        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            text = content.decode("latin-1")

        parsed = parse_bank_csv(text)
        if not parsed.rows and parsed.errors:
            raise BusinessValidationError(
                "Impossibile interpretare il file CSV",
                extra={"errors": [e.model_dump() for e in parsed.errors]},
            )

        if bank_account_id is not None:
            account = await self.get_account(db, bank_account_id)
        else:
            account = await self.get_or_create_default_account(db)

        import_batch_id = uuid.uuid4()
        try:
            imported, duplicates = await self._insert_new(
                db,
                account.id,
                [candidate for _, candidate in parsed.rows],
                TransactionSource.CSV,
                import_batch_id,
            )
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error("Errore di integrità durante import CSV: %s", e.orig)
            raise ConflictError("Errore durante l'import del file CSV")

        logger.info(
            "Import CSV %s su %s: %s nuovi, %s duplicati, %s errori",
            filename, account.name, imported, duplicates, len(parsed.errors),
        )
        return CsvImportResult(
            bank_account_id=account.id,
            import_batch_id=import_batch_id,
            total_rows=parsed.total_rows,
            imported=imported,
            duplicates=duplicates,
            errors=parsed.errors,
        )

    async def import_bank_records(self, db: AsyncSession, data: BankImportRequest) -> BankImportResult:
        """Importa movimenti già recuperati dal provider bancario come un unico lotto."""
        await self.get_account(db, data.bank_account_id)
        try:
            imported, duplicates = await self._insert_new(
                db, data.bank_account_id, data.transactions, TransactionSource.API
            )
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error("Errore di integrità durante import bancario: %s", e.orig)
            raise ConflictError("Movimenti importati contemporaneamente da un'altra richiesta")

        return BankImportResult(
            bank_account_id=data.bank_account_id,
            imported=imported,
            duplicates=duplicates,
        )

    async def sync_bank_transactions(
        self,
        db: AsyncSession,
        bank_account_id: uuid.UUID,
        source: BankTransactionSource,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> BankImportResult:
        """
        Sincronizza i movimenti dal provider bancario, pagina per pagina.

        Intervallo di default: dall'ultima sincronizzazione (o dagli
        ultimi 90 giorni) a oggi. Ogni pagina è salvata con un proprio
        commit.

        Raises:
            BusinessValidationError: conto non collegato al provider
            ExternalServiceError: provider non raggiungibile; extra riporta
                i movimenti già importati e la pagina fallita
        """
        account = await self.get_account(db, bank_account_id)
        if not account.external_ref:
            raise BusinessValidationError(f"Il conto {account.name} non è collegato a una banca")

        to_date = to_date or date.today()
        if from_date is None:
            if account.last_synced_at is not None:
                from_date = account.last_synced_at.date()
            else:
                from_date = to_date - timedelta(days=INITIAL_SYNC_DAYS)

        imported = 0
        duplicates = 0
        page = 1
        while True:
            try:
                batch = await source.fetch_page(account.external_ref, from_date, to_date, page)
            except Exception as e:
                logger.error("Sincronizzazione %s interrotta alla pagina %s: %s", account.name, page, e)
                raise ExternalServiceError(
                    f"Errore del provider bancario: {e}",
                    extra={"imported": imported, "duplicates": duplicates, "page": page},
                ) from e

            try:
                page_imported, page_duplicates = await self._insert_new(
                    db, account.id, batch.transactions, TransactionSource.API
                )
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                logger.error("Errore di integrità alla pagina %s: %s", page, e.orig)
                raise ConflictError(
                    "Movimenti importati contemporaneamente da un'altra richiesta",
                    extra={"imported": imported, "duplicates": duplicates, "page": page},
                )
            imported += page_imported
            duplicates += page_duplicates

            if not batch.has_more:
                break
            page += 1

        account.last_synced_at = utcnow()
        await db.commit()
        logger.info("Sincronizzato %s: %s nuovi, %s duplicati, %s pagine", account.name, imported, duplicates, page)
        return BankImportResult(
            bank_account_id=account.id,
            imported=imported,
            duplicates=duplicates,
            pages=page,
        )

    # ------------------------------------------------------------
    # Pulizia duplicati
    # ------------------------------------------------------------
    async def bulk_deduplicate(
        self,
        db: AsyncSession,
        bank_account_id: Optional[uuid.UUID] = None,
    ) -> BulkDeduplicateResult:
        """
        Elimina i movimenti duplicati già salvati.

        Per ogni chiave conto|data|importo|descrizione|controparte resta
        il movimento creato per primo. L'importo è confrontato senza
        arrotondamento; a parità di created_at (stesso flush) vince l'id
        minore. Operazione distruttiva e idempotente.
        """
        stmt = select(Transaction).order_by(Transaction.created_at.asc(), Transaction.id.asc())
        if bank_account_id is not None:
            stmt = stmt.where(Transaction.bank_account_id == bank_account_id)
        transactions = list((await db.execute(stmt)).scalars().all())

        seen: set[tuple] = set()
        duplicate_ids: list[uuid.UUID] = []
        for t in transactions:
            key = (t.bank_account_id, t.date, t.amount, t.description, t.counterparty or "")
            if key in seen:
                duplicate_ids.append(t.id)
            else:
                seen.add(key)

        deleted = 0
        for start in range(0, len(duplicate_ids), DELETE_CHUNK_SIZE):
            chunk = duplicate_ids[start:start + DELETE_CHUNK_SIZE]
            result = await db.execute(
                delete(Transaction)
                .where(Transaction.id.in_(chunk))
                .execution_options(synchronize_session=False)
            )
            deleted += result.rowcount
        await db.commit()

        logger.warning("Pulizia duplicati: %s eliminati su %s movimenti", deleted, len(transactions))
        return BulkDeduplicateResult(
            total=len(transactions),
            duplicates=len(duplicate_ids),
            remaining=len(transactions) - len(duplicate_ids),
            deleted=deleted,
        )

    # ------------------------------------------------------------
    # Riepiloghi IVA
    # ------------------------------------------------------------
    async def get_period_summary(
        self,
        db: AsyncSession,
        from_date: date,
        to_date: date,
        bank_account_id: Optional[uuid.UUID] = None,
        top_categories: Optional[int] = None,
    ) -> PeriodSummary:
        """
        Entrate, uscite, IVA per aliquota e categorie dei movimenti nel periodo.

        Le entrate sono registrate al netto (lordo = importo + IVA), le
        uscite al lordo (netto = importo - IVA), come in
        calculate_transaction_vat. Le somme restano a precisione piena
        e vengono arrotondate solo nel risultato.

        Raises:
            BusinessValidationError: from_date successiva a to_date
        """
        if from_date > to_date:
            raise BusinessValidationError(
                f"Periodo non valido: {from_date.isoformat()} è successiva a {to_date.isoformat()}"
            )

        conditions = [Transaction.date >= from_date, Transaction.date <= to_date]
        if bank_account_id:
            conditions.append(Transaction.bank_account_id == bank_account_id)
        result = await db.execute(select(Transaction).where(and_(*conditions)))
        transactions = list(result.scalars().all())

        total_income = 0.0
        total_expense = 0.0
        by_rate: dict[float, tuple[float, float, float]] = {}
        by_category: dict[str, tuple[float, int]] = {}

        for t in transactions:
            if t.amount > 0:
                total_income += t.amount
            else:
                total_expense -= t.amount

            if t.category:
                amount, count = by_category.get(t.category, (0.0, 0))
                by_category[t.category] = (amount + abs(t.amount), count + 1)

            if t.vat_rate is not None and t.vat_amount is not None:
                if t.amount > 0:
                    net, gross = t.amount, t.amount + t.vat_amount
                else:
                    net, gross = t.amount - t.vat_amount, t.amount
                rate_net, rate_vat, rate_gross = by_rate.get(t.vat_rate, (0.0, 0.0, 0.0))
                by_rate[t.vat_rate] = (rate_net + net, rate_vat + t.vat_amount, rate_gross + gross)

        categories = sorted(by_category.items(), key=lambda entry: entry[1][0], reverse=True)
        if top_categories is not None:
            categories = categories[:top_categories]

        return PeriodSummary(
            from_date=from_date,
            to_date=to_date,
            transaction_count=len(transactions),
            total_income=round_money(total_income),
            total_expense=round_money(total_expense),
            net_amount=round_money(total_income - total_expense),
            vat_payable=round_money(sum(vat for _, vat, _ in by_rate.values())),
            vat_by_rate=[
                VatRateSummary(
                    rate=rate,
                    net_amount=round_money(net),
                    vat_amount=round_money(vat),
                    gross_amount=round_money(gross),
                )
                for rate, (net, vat, gross) in sorted(by_rate.items())
            ],
            category_breakdown=[
                CategorySummary(category=name, amount=round_money(amount), count=count)
                for name, (amount, count) in categories
            ],
        )

    async def get_dashboard(
        self,
        db: AsyncSession,
        year: int,
        month: int,
        recent_limit: int = 10,
    ) -> DashboardSummary:
        """Riepilogo del mese, prime 10 categorie e ultimi movimenti (di qualsiasi periodo)."""
        if not 1 <= month <= 12:
            raise BusinessValidationError(f"Mese non valido: {month}")

        first_day = date(year, month, 1)
        last_day = date(year, month, calendar.monthrange(year, month)[1])
        summary = await self.get_period_summary(db, first_day, last_day, top_categories=10)

        result = await db.execute(
            select(Transaction)
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
            .limit(recent_limit)
        )
        return DashboardSummary(
            **summary.model_dump(),
            recent_transactions=[TransactionRead.model_validate(t) for t in result.scalars().all()],
        )
