import hashlib
import hmac

from fastapi import Depends, HTTPException, Request, status

from webmentions.core.config import Settings, get_settings


async def require_admin_key(request: Request, settings: Settings = Depends(get_settings)) -> None:
    if not settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="admin API key is not configured",
        )
    presented_key = request.headers.get(settings.api_key_header)
    if not presented_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"admin access requires {settings.api_key_header}",
        )

    expected = hashlib.sha256(settings.admin_api_key.encode("utf-8")).hexdigest()
    presented = hashlib.sha256(presented_key.encode("utf-8")).hexdigest()
    if not hmac.compare_digest(expected, presented):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid admin API key")
