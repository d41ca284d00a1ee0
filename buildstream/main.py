"""Main FastAPI application entry point."""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from buildstream.api.routes import router
from buildstream.config import settings
from buildstream.database import Base, engine
from buildstream.logging import RequestIdMiddleware, setup_logging
# Import models to register them with SQLAlchemy Base
from buildstream.models import audit, domain, identity  # noqa: F401
from buildstream.services.errors import BuildStreamError

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    Base.metadata.create_all(bind=engine)
    logger.info("startup", tables=sorted(Base.metadata.tables))
    yield


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="Role-based site logs, safety intake and account approval for construction sites.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(RequestIdMiddleware)
    # Enable CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BuildStreamError)
    async def buildstream_error_handler(request: Request, exc: BuildStreamError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": {"error": exc.kind, "message": exc.message}},
        )

    # Include API routes
    app.include_router(router, prefix="/api", tags=["BuildStream"])

    # Health check
    @app.get("/health")
    def health_check():
        return {"status": "healthy", "service": "BuildStream"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
