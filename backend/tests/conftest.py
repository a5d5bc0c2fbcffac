"""
Pytest configuration and fixtures.

Ogni test lavora su un database SQLite su file (aiosqlite) creato da
zero con build_engine: due sessioni concorrenti si serializzano
davvero sul lock di scrittura.
"""

import os

os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("DEBUG", "false")

from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.core.database import build_engine, build_session_factory, create_tables
from app.models import Customer
from app.schemas.customer import CustomerCreate
from app.schemas.invoice import DocumentItemCreate, InvoiceCreate
from app.schemas.sequence import NumberingConfig
from app.services.customer_service import CustomerService
from app.services.invoice_service import InvoiceService
from app.services.sequence_service import SequenceService


# ============================================================
# Database
# ============================================================


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Engine su un file SQLite temporaneo con schema completo."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'kontor_test.db'}")
    await create_tables(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Factory con le stesse opzioni di AsyncSessionLocal."""
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Sessione per il singolo test."""
    async with session_factory() as session:
        yield session


# ============================================================
# Service
# ============================================================


@pytest.fixture
def numbering() -> NumberingConfig:
    """Numerazione di riferimento: BM-2026-001, BM-ANB-2026-001, KD-001."""
    return NumberingConfig(
        invoice_prefix="BM",
        quote_prefix="BM-ANB",
        customer_prefix="KD",
        number_format="YEAR",
        number_padding=3,
        customer_number_padding=3,
    )


@pytest.fixture
def sequence_service(numbering) -> SequenceService:
    return SequenceService(numbering)


@pytest.fixture
def invoice_service(sequence_service) -> InvoiceService:
    return InvoiceService(sequence_service)


# ============================================================
# Dati di esempio
# ============================================================


@pytest.fixture
async def customer(db, sequence_service) -> Customer:
    """Cliente con numero KD-001."""
    return await CustomerService(sequence_service).create(
        db,
        CustomerCreate(
            name="Max Mustermann",
            company="Mustermann GmbH",
            email="max@mustermann.de",
            address="Hauptstraße 1, 10115 Berlin",
        ),
    )


@pytest.fixture
def consulting_items() -> list[DocumentItemCreate]:
    """Una riga: 2 x 100,00 EUR al 19%."""
    return [
        DocumentItemCreate(
            description="Consulting",
            quantity=2,
            unit="Stunde",
            unit_price=100.00,
            vat_rate=19,
        )
    ]


@pytest.fixture
async def draft_invoice(db, invoice_service, customer, consulting_items):
    """Fattura in bozza da 238,00 EUR lordi."""
    return await invoice_service.create(
        db,
        InvoiceCreate(customer_id=customer.id, items=consulting_items),
    )


@pytest.fixture
async def sent_invoice(db, invoice_service, draft_invoice):
    """Fattura inviata e quindi bloccata."""
    return await invoice_service.send(db, draft_invoice.id)
