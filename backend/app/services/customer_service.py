"""
Service Layer per l'entità Customer
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Definisce la logica di business per la gestione dei clienti:
- Numerazione continua KD-001 tramite SequenceService
- Ricerca e paginazione
- Eliminazione consentita solo senza documenti collegati
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessValidationError, ConflictError, NotFoundError
from app.models import Customer, Invoice, Quote
from app.schemas.customer import CustomerCreate, CustomerUpdate
from app.schemas.sequence import DocumentType
from app.services.sequence_service import SequenceService

# Logger per questo modulo
logger = logging.getLogger(__name__)


class CustomerService:
    """
    Service per la gestione delle operazioni CRUD sui clienti.

    Fornisce metodi asincroni per interagire con il database
    in modo centralizzato, senza dipendenze da FastAPI.
    """

    def __init__(self, sequence_service: Optional[SequenceService] = None) -> None:
        self.sequence_service = sequence_service or SequenceService()

    async def get_all(
        self,
        db: AsyncSession,
        page: int = 1,
        per_page: int = 10,
        search: Optional[str] = None,
    ) -> tuple[list[Customer], int]:
        """
        Recupera la lista paginata dei clienti.

        Args:
            db: Sessione database
            page: Numero pagina (default 1)
            per_page: Elementi per pagina (default 10)
            search: Termine di ricerca su nome, azienda, email, numero cliente

        Returns:
            Tuple di (lista clienti, totale count)
        """
        conditions = []
        if search:
            search_term = f"%{search}%"
            conditions.append(
                or_(
                    Customer.name.ilike(search_term),
                    Customer.company.ilike(search_term),
                    Customer.email.ilike(search_term),
                    Customer.customer_number.ilike(search_term),
                )
            )

        query = select(Customer).order_by(Customer.customer_number.asc())
        count_query = select(func.count()).select_from(Customer)
        if conditions:
            query = query.where(*conditions)
            count_query = count_query.where(*conditions)

        result = await db.execute(query.offset((page - 1) * per_page).limit(per_page))
        customers = list(result.scalars().all())
        total = (await db.execute(count_query)).scalar() or 0

        logger.info("Recuperati %s clienti su %s totali (pagina %s)", len(customers), total, page)
        return customers, total

    async def get_by_id(self, db: AsyncSession, customer_id: uuid.UUID) -> Customer:
        """
        Recupera un cliente tramite ID.

        Raises:
            NotFoundError: Se il cliente non esiste
        """
        result = await db.execute(select(Customer).where(Customer.id == customer_id))
        customer = result.scalar_one_or_none()
        if customer is None:
            logger.warning("Cliente non trovato: %s", customer_id)
            raise NotFoundError(f"Cliente con ID {customer_id} non trovato")
        return customer

    async def create(self, db: AsyncSession, customer_data: CustomerCreate) -> Customer:
        """
        Crea un nuovo cliente con numero KD progressivo.

        Il numero viene riservato nella stessa transazione dell'inserimento:
        se l'inserimento fallisce, il numero non va perso.

        Raises:
            ConflictError: Se il database genera un errore di integrità
        """
        try:
            customer_number = await self.sequence_service.next_number(db, DocumentType.CUSTOMER)
            customer = Customer(customer_number=customer_number, **customer_data.model_dump())
            db.add(customer)
            await db.commit()
        except IntegrityError as e:
            logger.error("Errore IntegrityError creazione cliente: %s", e.orig)
            await db.rollback()
            raise ConflictError("Errore durante la creazione del cliente")
        except SQLAlchemyError as e:
            logger.error("Errore SQLAlchemy creazione cliente: %s - %s", e.__class__.__name__, e)
            await db.rollback()
            raise ConflictError("Errore del database durante la creazione del cliente")

        logger.info("Creato nuovo cliente: %s - %s", customer.customer_number, customer.display_name)
        return customer

    async def update(
        self,
        db: AsyncSession,
        customer_id: uuid.UUID,
        customer_data: CustomerUpdate,
    ) -> Customer:
        """
        Aggiorna un cliente esistente (solo i campi inviati).

        Raises:
            NotFoundError: Se il cliente non esiste
        """
        customer = await self.get_by_id(db, customer_id)
        update_data = customer_data.model_dump(exclude_unset=True)
        if "name" in update_data and not update_data["name"]:
            raise BusinessValidationError("Il nome del cliente è obbligatorio")

        for field, value in update_data.items():
            setattr(customer, field, value)

        try:
            await db.commit()
        except IntegrityError as e:
            logger.error("Errore IntegrityError aggiornamento cliente: %s", e.orig)
            await db.rollback()
            raise ConflictError("Errore durante l'aggiornamento del cliente")

        logger.info("Aggiornato cliente: %s", customer.customer_number)
        return customer

    async def delete(self, db: AsyncSession, customer_id: uuid.UUID) -> None:
        """
        Elimina un cliente senza documenti collegati.

        Il numero cliente non viene riutilizzato.

        Raises:
            NotFoundError: Se il cliente non esiste
            BusinessValidationError: Se esistono fatture o preventivi del cliente
        """
        customer = await self.get_by_id(db, customer_id)

        invoice_count = (
            await db.execute(select(func.count()).select_from(Invoice).where(Invoice.customer_id == customer_id))
        ).scalar() or 0
        quote_count = (
            await db.execute(select(func.count()).select_from(Quote).where(Quote.customer_id == customer_id))
        ).scalar() or 0
        if invoice_count or quote_count:
            raise BusinessValidationError(
                f"Il cliente {customer.customer_number} ha {invoice_count} fatture e "
                f"{quote_count} preventivi e non può essere eliminato",
                extra={"invoices": invoice_count, "quotes": quote_count},
            )

        await db.delete(customer)
        await db.commit()
        logger.info("Eliminato cliente: %s", customer.customer_number)
