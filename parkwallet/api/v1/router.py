"""API v1 router."""

from fastapi import APIRouter

from parkwallet.api.v1.endpoints import parking, wallets
from parkwallet.schemas.common import ErrorResponse

api_router = APIRouter(
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)

api_router.include_router(parking.router, prefix="/parking", tags=["parking"])
api_router.include_router(wallets.router, prefix="/wallets", tags=["wallets"])
