from fastapi import APIRouter

from reception.api.v1.endpoints import reception


api_router = APIRouter(prefix="/api/v1")

api_router.include_router(
    reception.router,
    tags=["Reception"]
)
