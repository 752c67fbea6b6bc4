"""
storelink — Storefront integration reconciliation & monitoring service

Mounts the sync and monitoring routers. Authentication happens upstream;
admin requests arrive with the store id in the X-Store-Id header.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from . import __version__
from .errors import ConfigurationError
from .logging_config import setup_logging
from .routers import monitoring, sync
from .startup import run_startup_migrations


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    run_startup_migrations()
    logger.info("storelink {} started", __version__)
    yield


app = FastAPI(title="storelink", version=__version__, lifespan=lifespan)
app.include_router(sync.router)
app.include_router(monitoring.router)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.warning("Configuration error on {}: {}", request.url.path, exc)
    return JSONResponse({"success": False, "error": str(exc)}, status_code=400)


@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}
