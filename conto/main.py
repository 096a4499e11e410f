"""
Conto API.
FastAPI application: conti proselitismo e servizi.

Avvio: uvicorn conto.main:app --host 0.0.0.0 --port 8001
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from conto import __version__
from conto.config import settings
from conto.database import Database
from conto.middleware import add_exception_handlers
from conto.routers.conto import router as conto_router
from conto.services.conto_cache import ContoCache
from conto.utils.logger import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await Database.connect_db()
    try:
        yield
    finally:
        await Database.close_db()


def create_app(cache: Optional[ContoCache] = None, manage_db: bool = True) -> FastAPI:
    """
    Build the application.

    Args:
        cache: Cache for summary/breakdown (one is built from settings if None)
        manage_db: Open/close the Mongo connection with the app lifespan
    """
    setup_logging()

    app = FastAPI(
        title="Conto API",
        description="Import, ripartizione competenze e viste per ruolo dei conti",
        version=__version__,
        lifespan=lifespan if manage_db else None,
    )
    app.state.conto_cache = cache or ContoCache(
        ttl_seconds=settings.CONTO_CACHE_TTL_SECONDS,
        enabled=settings.CONTO_CACHE_ENABLED,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    add_exception_handlers(app)

    app.include_router(conto_router, prefix="/api/conto/{account}", tags=["Conto"])

    @app.get("/api/health", tags=["Health"])
    async def health():
        return {
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    logger.info(f"Conto API {__version__} ready")
    return app


app = create_app()
