"""
API v1 Routes
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Router versione 1 dell'API.
"""

from fastapi import APIRouter

from app.api.v1 import customers, invoices, quotes, reports, sequences, settings, transactions

# Router aggregato per v1
api_v1_router = APIRouter(prefix="/api/v1")

# Includi i router dei moduli
api_v1_router.include_router(customers.router)
api_v1_router.include_router(invoices.router)
api_v1_router.include_router(quotes.router)
api_v1_router.include_router(transactions.router)
api_v1_router.include_router(transactions.accounts_router)
api_v1_router.include_router(sequences.router)
api_v1_router.include_router(reports.router)
api_v1_router.include_router(settings.router)

# Esportazione
__all__ = ["api_v1_router"]
