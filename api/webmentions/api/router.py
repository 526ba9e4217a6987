from fastapi import APIRouter

from webmentions.api.routes import health, mentions, webmentions

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(webmentions.router, prefix="/webmentions", tags=["public"])
api_router.include_router(mentions.router, prefix="/mentions", tags=["admin"])
