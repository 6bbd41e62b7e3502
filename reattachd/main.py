import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from reattachd import __version__
from reattachd.config import Settings, settings as default_settings
from reattachd.exceptions import TmuxError, TrustError
from reattachd.routers import auth, notifications, panes, register, sessions
from reattachd.services.device_trust import DeviceTrustService
from reattachd.services.notifications import NotificationService, build_notification_service

logger = logging.getLogger(__name__)


def create_app(
    config: Settings | None = None,
    *,
    trust: DeviceTrustService | None = None,
    notification_service: NotificationService | None = None,
) -> FastAPI:
    """Build the daemon's API.

    Services not passed in are built from config when the app starts.
    """
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.trust = trust or DeviceTrustService.from_data_dir(config.data_dir)
        app.state.notifications = notification_service or build_notification_service(config)

        if not await app.state.trust.has_devices():
            logger.warning("No devices registered. Run 'reattachd setup --url <URL>' to register a device.")
            logger.info("Starting in open mode (no authentication required)")
        yield
        if app.state.notifications is not None:
            await app.state.notifications.close()

    app = FastAPI(title="reattachd", version=__version__, lifespan=lifespan)

    @app.exception_handler(TrustError)
    async def trust_error_handler(request: Request, exc: TrustError):
        # Same answer for every credential failure
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": "Unauthorized"},
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(TmuxError)
    async def tmux_error_handler(request: Request, exc: TmuxError):
        logger.error("tmux command failed: %s", exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(exc)})

    app.include_router(register.router, tags=["register"])
    app.include_router(auth.router, prefix="/auth", tags=["auth"])
    app.include_router(notifications.router, tags=["notifications"])
    app.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
    app.include_router(panes.router, prefix="/panes", tags=["panes"])

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
