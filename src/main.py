"""FastAPI application entry point.

Run with: uvicorn src.main:app --loop uvloop --port 8000
      or: pm-engine   (console script, same thing)
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config.settings import settings
from src.pm_common.errors import AppError
from src.pm_common.response import error_response
from src.pm_gateway.api.router import router as engine_router
from src.pm_gateway.commands.handler import CommandHandler
from src.pm_gateway.middleware.request_log import RequestLogMiddleware
from src.pm_ledger.application.service import Ledger
from src.pm_persistence.infrastructure.persistence import PersistenceManager
from src.pm_resolution.application.service import ResolutionEngine

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


def build_handler(persistence: PersistenceManager) -> CommandHandler:
    """Load the saved state and wire the engine around it.

    Raises PersistenceError if the state file exists but cannot be trusted.
    """
    ledger = Ledger(persistence.load(), persistence)
    return CommandHandler(ledger, ResolutionEngine(ledger))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: load state. Shutdown: write any snapshot a failed save left pending."""
    persistence = PersistenceManager()
    app.state.handler = build_handler(persistence)
    logger.info("%s started, state file %s", settings.APP_NAME, persistence.path)
    yield
    if persistence.has_pending:
        logger.info("Flushing pending state snapshot before shutdown")
    await persistence.flush()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    debug=settings.DEBUG,
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(
        exc.code, exc.message, request_id=getattr(request.state, "request_id", None)
    )
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(engine_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}


def run() -> None:
    uvicorn.run(app, host="0.0.0.0", port=8000, loop="uvloop")
