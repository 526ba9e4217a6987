from fastapi import APIRouter, Depends

from webmentions.core.config import Settings, get_settings
from webmentions.services.repository import describe_database

router = APIRouter()


@router.get("/")
async def root() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz")
async def healthz(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    return {"status": "ok", "storage": describe_database(settings.database_url)}
