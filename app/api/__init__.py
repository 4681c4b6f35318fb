from fastapi import APIRouter

from .auth_api import router as auth_router
from .stations import router as stations_router
from .bookings import router as bookings_router
from .payments import router as payments_router
from .walk_in import router as walk_in_router
from .users import router as users_router
from .admin import router as admin_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(stations_router)
router.include_router(bookings_router)
router.include_router(payments_router)
router.include_router(walk_in_router)
router.include_router(users_router)
router.include_router(admin_router)
