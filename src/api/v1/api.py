from fastapi import APIRouter

from .clients import router as clients_router
from .documents import router as documents_router
from .health import router as health_router
from .reviews import router as reviews_router


api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(reviews_router)
api_router.include_router(clients_router)
api_router.include_router(documents_router)
