import asyncio
import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request

from .api import shares
from .core.exceptions import MountBaseDirectoryError
from .dependencies import (
    get_event_bus,
    get_mount_orchestrator,
    get_mount_trigger_service,
    get_reachability_monitor,
    get_settings,
    get_share_config_handler,
)
from .logging_config import setup_logging
from .models import TriggerKind

# Exit status when the base mount directory cannot be created
EXIT_BASE_DIRECTORY = 2


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    settings = get_settings()
    setup_logging(settings)

    config_info = settings.config_file_info
    logging.info(f"Configuration loaded from: {config_info['active_config_file']}")
    logging.info(f"Running on hostname: {config_info['hostname']}")
    if len(config_info["all_available_configs"]) > 1:
        logging.info(f"Available config files: {', '.join(config_info['all_available_configs'])}")

    logging.info("Share Mounter starting up...")
    orchestrator = get_mount_orchestrator()
    try:
        await orchestrator.prepare_base_directory()
    except MountBaseDirectoryError as e:
        logging.critical(str(e))
        sys.exit(EXIT_BASE_DIRECTORY)

    await get_share_config_handler().load_into(orchestrator)

    reachability_monitor = get_reachability_monitor()
    await reachability_monitor.start_monitoring()

    trigger_service = get_mount_trigger_service()
    await trigger_service.start()

    trigger_service.trigger_mount_all(TriggerKind.AUTOMATIC)
    logging.info("Initial mount cycle started")

    yield

    # Shutdown
    logging.info("Share Mounter shutting down...")
    await trigger_service.stop()
    await reachability_monitor.stop_monitoring()
    await orchestrator.unmount(user_triggered=False)
    await get_event_bus().drain()
    logging.info("All shares unmounted, background tasks stopped")


app = FastAPI(
    title="Share Mounter",
    description="Keeps configured network shares mounted",
    version="0.1.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logging.debug(f"Incoming request: {request.method} {request.url.path}")
    response = await call_next(request)
    logging.debug(f"Response: {response.status_code} for {request.url.path}")
    return response


app.include_router(shares.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "share-mounter"}


def run() -> None:
    """Console entry point: checks the base directory, then serves the API."""
    settings = get_settings()
    setup_logging(settings)
    try:
        asyncio.run(get_mount_orchestrator().prepare_base_directory())
    except MountBaseDirectoryError as e:
        logging.critical(str(e))
        sys.exit(EXIT_BASE_DIRECTORY)

    uvicorn.run(
        "share_mounter.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    run()
