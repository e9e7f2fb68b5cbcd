from fastapi import APIRouter

from app.api.v1.routers import documents, health, loans

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(loans.router)
api_router.include_router(documents.router)

__all__ = ["api_router"]
