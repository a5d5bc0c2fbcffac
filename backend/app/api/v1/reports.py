"""
Router FastAPI per i Report
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

- /reports/vat: USt-Übersicht dei movimenti in un periodo
- /reports/dashboard: riepilogo mensile per la home
- /reports/revenue: fatturato emesso, incassato e aperto
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.invoice import RevenueSummary
from app.schemas.transaction import DashboardSummary, PeriodSummary
from app.services.invoice_service import InvoiceService
from app.services.transaction_service import TransactionService

router = APIRouter(
    prefix="/reports",
    tags=["Berichte"],
)

transaction_service = TransactionService()


@router.get(
    "/vat",
    name="report_iva",
    summary="Riepilogo IVA del periodo",
    description=(
        "Entrate, uscite, IVA per aliquota, Zahllast e ripartizione per categoria "
        "dei movimenti bancari tra from_date e to_date (inclusi)."
    ),
    response_model=PeriodSummary,
)
async def get_vat_summary(
    from_date: date = Query(..., description="Data inizio (YYYY-MM-DD)"),
    to_date: date = Query(..., description="Data fine (YYYY-MM-DD)"),
    bank_account_id: Optional[uuid.UUID] = Query(None, description="Solo questo conto"),
    db: AsyncSession = Depends(get_db),
) -> PeriodSummary:
    return await transaction_service.get_period_summary(
        db, from_date=from_date, to_date=to_date, bank_account_id=bank_account_id
    )


@router.get(
    "/dashboard",
    name="dashboard",
    summary="Riepilogo mensile",
    response_model=DashboardSummary,
)
async def get_dashboard(
    month: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}$", description="Mese (YYYY-MM), default: corrente"),
    db: AsyncSession = Depends(get_db),
) -> DashboardSummary:
    """Mese corrente se month è assente."""
    if month is None:
        today = date.today()
        year, month_number = today.year, today.month
    else:
        year, month_number = (int(part) for part in month.split("-"))
    return await transaction_service.get_dashboard(db, year=year, month=month_number)


@router.get(
    "/revenue",
    name="report_fatturato",
    summary="Riepilogo fatturato",
    description="Totali netto, IVA e lordo delle fatture non in bozza, con incassato, aperto e scaduto.",
    response_model=RevenueSummary,
)
async def get_revenue_summary(
    from_date: Optional[date] = Query(None, description="Data inizio (YYYY-MM-DD)"),
    to_date: Optional[date] = Query(None, description="Data fine (YYYY-MM-DD)"),
    db: AsyncSession = Depends(get_db),
) -> RevenueSummary:
    return await InvoiceService().get_revenue_summary(db=db, from_date=from_date, to_date=to_date)
