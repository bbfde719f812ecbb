from contextlib import asynccontextmanager
from dataclasses import replace
import logging

from fastapi import FastAPI
from pydantic_settings import BaseSettings

from routers.api import router as api_router
from schemas import AppHealthOK
from core.service_manager import ServiceManager
from core.config_loader import config_loader

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    app_name: str = "Glucose Sensor Simulator API"
    debug: bool = True
    # Environment variables override the values from config/simulator_config.json
    simulation_enabled: bool = config_loader.get_simulation_enabled()
    error_probability: float = config_loader.get_error_probability()
    storage_dir: str = config_loader.get_storage_dir()


settings = Settings()
service_manager = ServiceManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the sensor engine on startup and stop it on shutdown."""
    config = replace(
        config_loader.get_config(),
        simulation_enabled=settings.simulation_enabled,
        error_probability=settings.error_probability,
        storage_dir=settings.storage_dir,
    )
    logger.info(
        "Starting sensor simulator (simulation %s, error probability %.2f)",
        "enabled" if config.simulation_enabled else "disabled", config.error_probability,
    )
    app.state.engine = await service_manager.start_services(config)

    try:
        yield
    finally:
        logger.info("Stopping background services")
        await service_manager.stop_services()
        app.state.engine = None


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)


@app.get("/", tags=["meta"])
async def read_root() -> dict[str, str]:
    return {"message": settings.app_name}


@app.get("/health", tags=["meta"], response_model=AppHealthOK)
async def healthcheck() -> AppHealthOK:
    return AppHealthOK(status="ok", app=settings.app_name)


# mount API router under /api
app.include_router(api_router, prefix="/api")
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
