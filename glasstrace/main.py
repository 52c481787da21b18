"""
FastAPI application factory for the scanning terminal.

Assembles the app, registers the routers and wires the terminal's
lifecycle: the session managers start with the app and the station's
service session is closed on shutdown.
"""

import logging

from fastapi import FastAPI

from glasstrace.controllers.auth_controller import router as auth_router
from glasstrace.controllers.scanner_controller import router as scanner_router
from glasstrace.core.config import settings
from glasstrace.terminal import build_terminal

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # ── Register routers ─────────────────────────────────────────────
    app.include_router(auth_router)
    app.include_router(scanner_router)

    # ── Startup / Shutdown ───────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup() -> None:
        """Build the terminal unless one was attached beforehand."""
        if getattr(app.state, "terminal", None) is None:
            app.state.terminal = build_terminal(settings)
        await app.state.terminal.start()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        terminal = getattr(app.state, "terminal", None)
        if terminal is not None:
            await terminal.stop()
        logger.info("Terminal stopped.")

    # ── Health check ─────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
