"""V1 API router aggregation."""

from fastapi import APIRouter

from app.api.v1.api_tokens import router as api_tokens_router
from app.api.v1.auth import router as auth_router
from app.api.v1.tenants import router as tenants_router
from app.api.v1.variants import router as variants_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(tenants_router)
v1_router.include_router(auth_router)
v1_router.include_router(api_tokens_router)
v1_router.include_router(variants_router)
