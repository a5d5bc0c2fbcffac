"""
Main Entry Point - FastAPI Application
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Avvio con: uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1 import api_v1_router
from app.core.config import settings
from app.core.database import close_db, create_tables, init_db
from app.core.exceptions import AppException

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("kontor")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Verifica il database all'avvio; in sviluppo crea anche lo schema."""
    logger.info("Kontor %s avviato in ambiente %s", settings.app_version, settings.app_env)
    await init_db()
    if settings.is_development:
        await create_tables()

    yield

    await close_db()
    logger.info("Connessioni database chiuse")


app = FastAPI(
    title=settings.app_name,
    description=(
        "Fatture con numerazione progressiva senza buchi, storni e correzioni "
        "conformi GoBD, preventivi e import dei movimenti bancari."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Traduce le eccezioni di dominio in {"detail", "error_code", "extra"}.

    Gli errori 5xx (configurazione, banca) vanno a livello ERROR,
    le regole contabili violate solo a INFO.
    """
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(level, "%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.error_code)

    body = {"detail": exc.detail, "error_code": exc.error_code}
    if exc.extra:
        body["extra"] = exc.extra
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Errore non gestito su %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Errore interno del server", "error_code": "INTERNAL_SERVER_ERROR"},
    )


@app.get("/health", tags=["System"], summary="Stato dell'applicazione")
async def health_check() -> dict[str, str]:
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.app_env,
    }


app.include_router(api_v1_router)
