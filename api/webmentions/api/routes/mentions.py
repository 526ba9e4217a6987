from fastapi import APIRouter, Depends, HTTPException, Query, status

from webmentions.core.security import require_admin_key
from webmentions.schemas.mentions import MentionPageOut
from webmentions.services.mentions_api import get_mentions_api
from webmentions.services.pagination import InvalidListOptionsError, parse_list_options
from webmentions.services.repository import RepositoryUnavailableError

router = APIRouter()


@router.get("", response_model=MentionPageOut, dependencies=[Depends(require_admin_key)])
async def list_mentions(
    limit: str | None = Query(default=None, description="page size, or 'all'"),
    page: int | None = Query(default=None, ge=1),
    filter: str | None = Query(default=None, min_length=1),
    order: str | None = Query(default=None, min_length=1),
    mentions_api=Depends(get_mentions_api),
) -> MentionPageOut:
    try:
        options = parse_list_options(limit=limit, page=page, filter=filter, order=order)
    except InvalidListOptionsError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        result = await mentions_api.list_mentions(options)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return MentionPageOut.from_page(result)
