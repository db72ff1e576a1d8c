"""Main FastAPI application - admin API plus the background sweeps."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import async_session, init_db, close_db
from .errors import DuplicateConfiguration, NotFound, RepositoryFailure
from .routers import sites_router, monitoring_router, alerts_router
from .services.container import Services, build_services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    owns_services = app.state.services is None
    if owns_services:
        logger.info("Starting Sitewatch")
        await init_db()
        logger.info("Database initialized")

        app.state.services = build_services(async_session, settings)
        app.state.services.scheduler.start()

    yield

    if owns_services:
        await app.state.services.scheduler.shutdown()
        await close_db()
        logger.info("Shutdown complete")


def _register_error_handlers(app: FastAPI):
    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(DuplicateConfiguration)
    async def duplicate_handler(request: Request, exc: DuplicateConfiguration):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(RepositoryFailure)
    async def repository_failure_handler(request: Request, exc: RepositoryFailure):
        logger.error(f"Repository failure on {request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={"detail": "Storage temporarily unavailable"})


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    When services are passed in, the caller owns them: the lifespan neither
    initializes the database nor starts the scheduler.
    """
    app = FastAPI(
        title="Sitewatch",
        description="Health monitoring and alerting for registered web sites",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(sites_router)
    app.include_router(monitoring_router)
    app.include_router(alerts_router)
    _register_error_handlers(app)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
