import logging

from fastapi import APIRouter, Depends, HTTPException, status

from webmentions.schemas.mentions import MentionOut, WebmentionRequest
from webmentions.services.mentions_api import InvalidTargetError, get_mentions_api
from webmentions.services.metadata import MetadataFetchError
from webmentions.services.repository import RepositoryConflictError, RepositoryUnavailableError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=MentionOut, status_code=status.HTTP_202_ACCEPTED)
async def receive_webmention(
    payload: WebmentionRequest,
    mentions_api=Depends(get_mentions_api),
) -> MentionOut:
    try:
        mention = await mentions_api.process_webmention(payload.source, payload.target, payload.payload)
    except InvalidTargetError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except MetadataFetchError as exc:
        logger.info("rejecting webmention from unreachable source=%s: %s", payload.source, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return MentionOut.from_entity(mention)
