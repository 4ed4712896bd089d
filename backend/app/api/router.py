from fastapi import APIRouter
from app.modules.auth import api as auth
from app.modules.entitlements import api as entitlements
from app.modules.onboarding import api as onboarding
from app.modules.stores import api as stores

router = APIRouter()
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(onboarding.router, prefix="/onboarding", tags=["onboarding"])
router.include_router(entitlements.router, prefix="/entitlements", tags=["entitlements"])
router.include_router(stores.router, prefix="/stores", tags=["stores"])
