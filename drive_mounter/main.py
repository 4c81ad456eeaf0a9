import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request

from .api import connections, mounts, settings as settings_api, websockets
from .dependencies import (
    get_config_manager,
    get_mount_orchestrator,
    get_rclone_runner,
    get_settings,
    get_websocket_manager,
)
from .logging_config import setup_logging

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    setup_logging(settings)
    logging.info("Drive Mounter starting up...")
    logging.info(f"Data directory: {settings.data_path}")

    config_manager = get_config_manager()
    await config_manager.initialize()

    rclone_version = await get_rclone_runner().version()
    if rclone_version != "Unknown":
        logging.info(f"Using {rclone_version}")
    else:
        logging.warning(f"rclone not found at {config_manager.effective_rclone_path()}, mounts will fail")

    websocket_manager = get_websocket_manager()
    await websocket_manager.subscribe_to_events()

    orchestrator = get_mount_orchestrator()
    await orchestrator.auto_mount()

    yield

    # Shutdown
    logging.info("Drive Mounter shutting down...")
    await orchestrator.shutdown()
    logging.info("Mount cleanup finished")


app = FastAPI(
    title="Drive Mounter",
    description="Mounts SFTP and FTP remotes as local drive letters through rclone",
    version="0.1.0",
    lifespan=lifespan,
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logging.info(
        f"Incoming request: {request.method} {request.url.path}",
        extra={
            "operation": "http_request",
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else "unknown",
        },
    )

    response = await call_next(request)

    logging.info(
        f"Response: {response.status_code}",
        extra={
            "operation": "http_response",
            "status_code": response.status_code,
            "path": request.url.path,
        },
    )

    return response


app.include_router(connections.router)
app.include_router(mounts.router)
app.include_router(settings_api.router)
app.include_router(websockets.router)


@app.get("/health")
async def health():
    """Health check."""
    return {"status": "healthy", "service": "drive-mounter"}


def run() -> None:
    uvicorn.run(
        "drive_mounter.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
