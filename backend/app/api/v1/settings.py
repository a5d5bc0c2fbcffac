"""
Router FastAPI per le Impostazioni
Progetto: Kontor (Buchhaltung für Kleinunternehmen)
"""

from fastapi import APIRouter, Depends

from app.core.config import Settings, get_settings
from app.schemas.settings import PublicSettings

router = APIRouter(
    prefix="/settings",
    tags=["Einstellungen"],
)


@router.get(
    "/",
    name="impostazioni",
    summary="Impostazioni pubbliche",
    description="Intestazione aziendale, numerazione e default dei documenti.",
    response_model=PublicSettings,
)
async def get_public_settings(settings: Settings = Depends(get_settings)) -> PublicSettings:
    return PublicSettings.from_settings(settings)
