import asyncio
import contextlib
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app_constants.app_configurations import Service, Sharing
from app_constants.connectors import Connectors
from app_constants.constants import CommonConstants
from app_constants.log_module import logger
from scripts.services.file_management_service import router as file_management_router
from scripts.services.folder_management import router as folder_management_router
from scripts.services.share_management_service import public_router as public_share_router
from scripts.services.share_management_service import router as share_management_router
from scripts.services.system_service import router as system_router
from scripts.services.system_service import storage_router
from scripts.utils.exceptions import CloudDriveError


async def _sweep_periodically(connectors: Connectors, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await connectors.sweep()
        except CloudDriveError as e:
            logger.error(f"Share expiry sweep failed: {e.message}")
        except Exception as e:
            logger.exception(f"Unexpected error in share expiry sweep: {e}")


def create_app(connectors: Connectors = None, sweep_interval: int = Sharing.SWEEP_INTERVAL_SECONDS) -> FastAPI:
    connectors = connectors or Connectors()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await connectors.startup()
        sweeper = asyncio.create_task(_sweep_periodically(connectors, sweep_interval)) if sweep_interval > 0 \
            else None
        try:
            yield
        finally:
            try:
                if sweeper is not None:
                    sweeper.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await sweeper
            finally:
                await connectors.shutdown()

    app = FastAPI(title="Cloud File Manager", lifespan=lifespan)
    app.state.connectors = connectors

    app.include_router(file_management_router)
    app.include_router(folder_management_router)
    app.include_router(share_management_router)
    app.include_router(public_share_router)
    app.include_router(storage_router)
    app.include_router(system_router)

    @app.exception_handler(CloudDriveError)
    async def cloud_drive_exception_handler(request: Request, exc: CloudDriveError):
        logger.info(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={CommonConstants.status: CommonConstants.failed, CommonConstants.message: exc.message},
        )

    if Service.ENABLE_CORS in [True, "true", "True"]:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["GET", "POST", "DELETE", "PUT"],
            allow_headers=["*"],
        )

    return app


app = create_app()

if __name__ == "__main__":
    logger.debug("APP STARTED")
    logger.info(f"Host: {Service.HOST}, Port: {Service.PORT}")
    uvicorn.run("main:app", host=Service.HOST, port=int(Service.PORT), workers=1)
