from fastapi import APIRouter

from routers import sensor

router = APIRouter()

# include sub-routers
router.include_router(sensor.router)
