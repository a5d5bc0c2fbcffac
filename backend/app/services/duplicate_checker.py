"""
Riconoscimento dei movimenti duplicati
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Un movimento in arrivo (sync bancario, CSV, inserimento manuale) è un
duplicato se, sullo stesso conto, esiste già un movimento con:
1. lo stesso external_id (movimenti da API bancaria)
2. lo stesso csv_row_hash (movimenti da CSV)
3. stessa data, importo e descrizione

Le strategie si applicano in quest'ordine e la prima che trova una
corrispondenza decide.
"""

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Transaction
from app.schemas.transaction import DuplicateCheckResult, TransactionCandidate

logger = logging.getLogger(__name__)

STRATEGY_EXTERNAL_ID = "external_id"
STRATEGY_CSV_HASH = "csv_hash"
STRATEGY_CONTENT = "content"


class DuplicateChecker:
    """Verifica dei duplicati contro i movimenti già salvati."""

    async def _find_by_content(
        self,
        db: AsyncSession,
        bank_account_id: uuid.UUID,
        candidate: TransactionCandidate,
    ) -> Optional[uuid.UUID]:
        result = await db.execute(
            select(Transaction.id)
            .where(
                Transaction.bank_account_id == bank_account_id,
                Transaction.date == candidate.date,
                Transaction.amount == candidate.amount,
                Transaction.description == candidate.description,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def check_duplicate(
        self,
        db: AsyncSession,
        bank_account_id: uuid.UUID,
        candidate: TransactionCandidate,
    ) -> DuplicateCheckResult:
        """
        Verifica un singolo movimento.

        Returns:
            DuplicateCheckResult con l'ID del movimento trovato e la
            strategia che lo ha riconosciuto
        """
        if candidate.external_id:
            matched = (
                await db.execute(
                    select(Transaction.id)
                    .where(
                        Transaction.bank_account_id == bank_account_id,
                        Transaction.external_id == candidate.external_id,
                    )
                    .limit(1)
                )
            ).scalar_one_or_none()
            if matched is not None:
                return DuplicateCheckResult(
                    is_duplicate=True, matched_transaction_id=matched, strategy=STRATEGY_EXTERNAL_ID
                )

        if candidate.csv_row_hash:
            matched = (
                await db.execute(
                    select(Transaction.id)
                    .where(
                        Transaction.bank_account_id == bank_account_id,
                        Transaction.csv_row_hash == candidate.csv_row_hash,
                    )
                    .limit(1)
                )
            ).scalar_one_or_none()
            if matched is not None:
                return DuplicateCheckResult(
                    is_duplicate=True, matched_transaction_id=matched, strategy=STRATEGY_CSV_HASH
                )

        matched = await self._find_by_content(db, bank_account_id, candidate)
        if matched is not None:
            return DuplicateCheckResult(
                is_duplicate=True, matched_transaction_id=matched, strategy=STRATEGY_CONTENT
            )
        return DuplicateCheckResult(is_duplicate=False)

    async def check_batch_duplicates(
        self,
        db: AsyncSession,
        bank_account_id: uuid.UUID,
        candidates: Sequence[TransactionCandidate],
    ) -> dict[int, bool]:
        """
        Verifica un lotto di movimenti.

        external_id e csv_row_hash esistenti vengono letti con una sola
        query ciascuno; il confronto per contenuto resta per singolo
        candidato. Un external_id ripetuto all'interno del lotto conta
        come duplicato dalla seconda occorrenza.

        Returns:
            Mappa indice candidato → duplicato
        """
        external_ids = {c.external_id for c in candidates if c.external_id}
        csv_hashes = {c.csv_row_hash for c in candidates if c.csv_row_hash}

        existing_external_ids: set[str] = set()
        if external_ids:
            result = await db.execute(
                select(Transaction.external_id).where(
                    Transaction.bank_account_id == bank_account_id,
                    Transaction.external_id.in_(external_ids),
                )
            )
            existing_external_ids = set(result.scalars().all())

        existing_hashes: set[str] = set()
        if csv_hashes:
            result = await db.execute(
                select(Transaction.csv_row_hash).where(
                    Transaction.bank_account_id == bank_account_id,
                    Transaction.csv_row_hash.in_(csv_hashes),
                )
            )
            existing_hashes = set(result.scalars().all())

        results: dict[int, bool] = {}
        seen_external_ids: set[str] = set()
        for index, candidate in enumerate(candidates):
            if candidate.external_id:
                if (
                    candidate.external_id in existing_external_ids
                    or candidate.external_id in seen_external_ids
                ):
                    results[index] = True
                    continue
                seen_external_ids.add(candidate.external_id)

            if candidate.csv_row_hash and candidate.csv_row_hash in existing_hashes:
                results[index] = True
                continue

            results[index] = await self._find_by_content(db, bank_account_id, candidate) is not None

        duplicates = sum(results.values())
        if duplicates:
            logger.info("Conto %s: %s duplicati su %s movimenti", bank_account_id, duplicates, len(candidates))
        return results
