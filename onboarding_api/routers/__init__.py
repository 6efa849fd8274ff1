"""API routers."""

from onboarding_api.routers.admin_onboardings import router as admin_onboardings_router
from onboarding_api.routers.files import router as files_router
from onboarding_api.routers.onboarding import router as onboarding_router

__all__ = [
    "admin_onboardings_router",
    "files_router",
    "onboarding_router",
]
