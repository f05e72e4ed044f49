from fastapi import APIRouter

from app.api.routes import health, moderation, postings

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(postings.router, prefix="/postings", tags=["postings"])
api_router.include_router(moderation.router, prefix="/moderation", tags=["moderation"])
