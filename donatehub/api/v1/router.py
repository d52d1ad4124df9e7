"""v1 API router."""

from fastapi import APIRouter

from donatehub.api.v1.endpoints import auth, causes, donations, payments

router = APIRouter(prefix="/v1")
router.include_router(auth.router, prefix="/auth", tags=["v1-auth"])
router.include_router(causes.router, prefix="/causes", tags=["v1-causes"])
router.include_router(payments.router, prefix="/payments", tags=["v1-payments"])
router.include_router(donations.router, prefix="/donations", tags=["v1-donations"])
