import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scene.api.routes import router
from scene.config import settings
from scene.db.connection import run_migrations
from scene.repositories.enrichment_repository import EnrichmentRepository
from scene.services.enrichment_service import EnrichmentService
from scene.services.http_client import HttpFetcher
from scene.services.subscription_service import SubscriptionService


def _configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def wire_services(app: FastAPI, db_path: str, fetcher: HttpFetcher | None = None) -> None:
    """Build the repository and services on app.state. Pacing comes from settings."""
    fetcher = fetcher or HttpFetcher()
    app.state.repository = EnrichmentRepository(db_path)
    app.state.fetcher = fetcher
    app.state.enrichment_service = EnrichmentService(app.state.repository, fetcher)
    app.state.subscription_service = SubscriptionService(app.state.repository, fetcher)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _configure_logging()
    logger = logging.getLogger(__name__)
    logger.info("Restaurant Scene starting | db=%s | port=%s", settings.DB_PATH, settings.PORT)
    run_migrations(settings.DB_PATH)
    wire_services(app, settings.DB_PATH)
    yield
    logger.info("Restaurant Scene shutting down")


def create_app() -> FastAPI:
    app = FastAPI(title="Restaurant Scene", version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logging.getLogger(__name__).exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Internal server error"},
        )

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("scene.main:app", host="0.0.0.0", port=settings.PORT, log_level=settings.LOG_LEVEL)
