"""
Router FastAPI per l'entità Customer
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Definisce gli endpoint API per la gestione dei clienti.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.customer import (
    CustomerCreate,
    CustomerList,
    CustomerRead,
    CustomerUpdate,
)
from app.services.customer_service import CustomerService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Router con prefix e tag
router = APIRouter(
    prefix="/customers",
    tags=["Kunden"],
)


def get_customer_service() -> CustomerService:
    """Dependency per ottenere un'istanza del CustomerService."""
    return CustomerService()


@router.get(
    "/",
    name="clienti_lista",
    summary="Lista clienti",
    description="Recupera la lista paginata dei clienti con eventuale filtro di ricerca.",
    response_model=CustomerList,
    status_code=status.HTTP_200_OK,
)
async def get_customers(
    page: int = Query(1, ge=1, description="Numero pagina"),
    per_page: int = Query(10, ge=1, le=100, description="Elementi per pagina"),
    search: Optional[str] = Query(None, description="Ricerca su nome, azienda, email, numero cliente"),
    db: AsyncSession = Depends(get_db),
    service: CustomerService = Depends(get_customer_service),
) -> CustomerList:
    customers, total = await service.get_all(db=db, page=page, per_page=per_page, search=search)
    return CustomerList(
        items=[CustomerRead.model_validate(c) for c in customers],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get(
    "/{customer_id}",
    name="cliente_dettaglio",
    summary="Dettaglio cliente",
    response_model=CustomerRead,
    status_code=status.HTTP_200_OK,
)
async def get_customer(
    customer_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: CustomerService = Depends(get_customer_service),
) -> CustomerRead:
    customer = await service.get_by_id(db=db, customer_id=customer_id)
    return CustomerRead.model_validate(customer)


@router.post(
    "/",
    name="cliente_crea",
    summary="Crea cliente",
    description="Crea un nuovo cliente con numero KD progressivo.",
    response_model=CustomerRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_customer(
    customer_data: CustomerCreate,
    db: AsyncSession = Depends(get_db),
    service: CustomerService = Depends(get_customer_service),
) -> CustomerRead:
    """
    Crea un nuovo cliente.

    Il numero cliente (KD-001, KD-002, ...) viene assegnato dal server.
    """
    customer = await service.create(db=db, customer_data=customer_data)
    return CustomerRead.model_validate(customer)


@router.patch(
    "/{customer_id}",
    name="cliente_aggiorna",
    summary="Aggiorna cliente",
    response_model=CustomerRead,
    status_code=status.HTTP_200_OK,
)
async def update_customer(
    customer_id: uuid.UUID,
    customer_data: CustomerUpdate,
    db: AsyncSession = Depends(get_db),
    service: CustomerService = Depends(get_customer_service),
) -> CustomerRead:
    customer = await service.update(db=db, customer_id=customer_id, customer_data=customer_data)
    return CustomerRead.model_validate(customer)


@router.delete(
    "/{customer_id}",
    name="cliente_elimina",
    summary="Elimina cliente",
    description="Elimina un cliente senza fatture né preventivi.",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_customer(
    customer_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: CustomerService = Depends(get_customer_service),
) -> None:
    await service.delete(db=db, customer_id=customer_id)
