"""
Service Layer per la Numerazione Documenti
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Generatore di numeri progressivi senza buchi e sicuro sotto
concorrenza per clienti, preventivi e fatture.

L'incremento è un unico statement
    INSERT ... ON CONFLICT (tipo, anno, mese) DO UPDATE
    SET last_number = last_number + 1 RETURNING last_number
eseguito dentro la transazione del chiamante: la riga del contatore
resta bloccata in scrittura fino al commit, quindi due richieste non
ottengono mai lo stesso numero, e se la creazione del documento fallisce
il rollback restituisce anche il numero.
"""

import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConfigurationError
from app.models import DocumentSequence
from app.models.mixins import utcnow
from app.schemas.sequence import DocumentType, NumberFormat, NumberingConfig

# Logger per questo modulo
logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SequenceService:
    """
    Service per l'emissione dei numeri documento.

    Formati:
    - CONTINUOUS: {prefisso}-{progressivo}
    - YEAR: {prefisso}-{anno}-{progressivo}
    - MONTH: {prefisso}-{anno}-{mese}-{progressivo}

    I numeri cliente non sono mai partizionati (KD-001).
    """

    def __init__(self, config: Optional[NumberingConfig] = None) -> None:
        self.config = config or NumberingConfig.from_settings(settings)

    # ------------------------------------------------------------
    # Risoluzione configurazione
    # ------------------------------------------------------------
    def _resolve(self, document_type: DocumentType) -> tuple[str, NumberFormat, int]:
        """Prefisso, modalità e padding per un tipo documento."""
        document_type = DocumentType(document_type)
        if document_type == DocumentType.CUSTOMER:
            prefix = self.config.customer_prefix
            mode = NumberFormat.CONTINUOUS
            padding = self.config.customer_number_padding
        else:
            prefix = (
                self.config.invoice_prefix
                if document_type == DocumentType.INVOICE
                else self.config.quote_prefix
            )
            try:
                mode = NumberFormat(self.config.number_format.upper())
            except ValueError:
                raise ConfigurationError(
                    f"Modalità di numerazione sconosciuta: {self.config.number_format!r}. "
                    f"Valori ammessi: {', '.join(m.value for m in NumberFormat)}",
                    extra={"number_format": self.config.number_format},
                )
            padding = self.config.number_padding

        if not isinstance(padding, int) or padding < 1:
            raise ConfigurationError(
                f"Padding numerazione non valido: {padding!r} (minimo 1)",
                extra={"padding": padding},
            )
        return prefix, mode, padding

    @staticmethod
    def period_key(mode: NumberFormat, today: date) -> tuple[int, int]:
        """Chiave di periodo (anno, mese) per la modalità indicata."""
        if mode == NumberFormat.MONTH:
            return today.year, today.month
        if mode == NumberFormat.YEAR:
            return today.year, 0
        return 0, 0

    @staticmethod
    def format_number(
        prefix: str,
        mode: NumberFormat,
        value: int,
        padding: int,
        year: int,
        month: int,
    ) -> str:
        padded = str(value).zfill(padding)
        if mode == NumberFormat.MONTH:
            return f"{prefix}-{year}-{month:02d}-{padded}"
        if mode == NumberFormat.YEAR:
            return f"{prefix}-{year}-{padded}"
        return f"{prefix}-{padded}"

    # ------------------------------------------------------------
    # Emissione
    # ------------------------------------------------------------
    async def next_number(
        self,
        db: AsyncSession,
        document_type: DocumentType,
        today: Optional[date] = None,
    ) -> str:
        """
        Emette il prossimo numero dentro la transazione corrente.

        Non esegue commit: il numero diventa definitivo con il commit
        del documento che lo usa.

        Args:
            db: Sessione database
            document_type: Tipo documento
            today: Data di riferimento per il periodo (default: oggi)

        Returns:
            Numero formattato

        Raises:
            ConfigurationError: modalità sconosciuta o padding non valido,
                prima di qualsiasi incremento
        """
        document_type = DocumentType(document_type)
        prefix, mode, padding = self._resolve(document_type)
        year, month = self.period_key(mode, today or date.today())

        dialect = db.get_bind().dialect.name
        insert = _INSERT_BY_DIALECT.get(dialect)
        if insert is None:
            raise ConfigurationError(f"Database non supportato per la numerazione: {dialect}")

        now = utcnow()
        stmt = (
            insert(DocumentSequence)
            .values(
                id=uuid.uuid4(),
                document_type=document_type.value,
                period_year=year,
                period_month=month,
                last_number=1,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=["document_type", "period_year", "period_month"],
                set_={
                    "last_number": DocumentSequence.last_number + 1,
                    "updated_at": now,
                },
            )
            .returning(DocumentSequence.last_number)
        )
        result = await db.execute(stmt)
        value = result.scalar_one()

        number = self.format_number(prefix, mode, value, padding, year, month)
        logger.debug("Riservato numero %s (%s)", number, document_type.value)
        return number

    async def issue_number(
        self,
        db: AsyncSession,
        document_type: DocumentType,
        today: Optional[date] = None,
    ) -> str:
        """Emette un numero in una transazione propria e la conferma."""
        try:
            number = await self.next_number(db, document_type, today)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Emesso numero %s", number)
        return number

    # ------------------------------------------------------------
    # Amministrazione
    # ------------------------------------------------------------
    async def get_current(
        self,
        db: AsyncSession,
        document_type: DocumentType,
        today: Optional[date] = None,
    ) -> tuple[int, int, int]:
        """
        Ultimo numero emesso nel periodo corrente.

        Returns:
            Tuple (anno, mese, last_number); last_number = 0 se il
            periodo non ha ancora numeri
        """
        document_type = DocumentType(document_type)
        _, mode, _ = self._resolve(document_type)
        year, month = self.period_key(mode, today or date.today())

        result = await db.execute(
            select(DocumentSequence.last_number).where(
                DocumentSequence.document_type == document_type.value,
                DocumentSequence.period_year == year,
                DocumentSequence.period_month == month,
            )
        )
        return year, month, result.scalar_one_or_none() or 0

    async def reset(
        self,
        db: AsyncSession,
        document_type: DocumentType,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> int:
        """
        Elimina i contatori di un tipo documento (operazione amministrativa).

        Senza anno/mese elimina tutti i periodi del tipo indicato.

        Returns:
            Numero di contatori eliminati
        """
        document_type = DocumentType(document_type)
        stmt = delete(DocumentSequence).where(DocumentSequence.document_type == document_type.value)
        if year is not None:
            stmt = stmt.where(DocumentSequence.period_year == year)
        if month is not None:
            stmt = stmt.where(DocumentSequence.period_month == month)

        result = await db.execute(stmt)
        await db.commit()
        logger.warning(
            "Reset numerazione %s (anno=%s, mese=%s): %s contatori eliminati",
            document_type.value, year, month, result.rowcount,
        )
        return result.rowcount
