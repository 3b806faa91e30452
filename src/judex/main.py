"""FastAPI application entry point for judex.

Serves ``POST /api/v1/extract`` plus health and root endpoints. Run with
``judex serve`` or ``uvicorn judex.main:app``.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from judex import __version__
from judex.api import register_exception_handlers
from judex.api.extraction import get_llm_client, router as extraction_router
from judex.api.middleware import setup_middleware
from judex.config import Settings, get_settings
from judex.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(
        f"judex API {__version__} starting",
        extra={
            "environment": settings.environment,
            "llm_model": settings.llm_model,
            "llm_base_url": settings.llm_base_url,
            "ai_configured": settings.ai_configured,
        },
    )
    if not settings.ai_configured:
        logger.warning("No LLM API key configured; every extraction will be rule-based")

    yield

    if get_llm_client.cache_info().currsize:
        await get_llm_client().aclose()
        get_llm_client.cache_clear()
    logger.info("judex API stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Interactive docs are only served in development.
    """
    settings = settings or get_settings()
    docs = settings.is_development

    application = FastAPI(
        title="judex API",
        description="Hybrid rule and LLM extraction for Chinese court judgments",
        version=__version__,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
        openapi_url="/openapi.json" if docs else None,
        debug=settings.api_debug,
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Error-Code"],
    )
    setup_middleware(application)
    register_exception_handlers(application)

    @application.get("/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "service": "judex-api",
            "ai_configured": get_settings().ai_configured,
        }

    @application.get("/", tags=["Root"])
    async def root():
        return {
            "name": "judex API",
            "version": __version__,
            "description": "Judgment element extraction",
            "docs": "/docs" if docs else None,
        }

    application.include_router(extraction_router, prefix="/api/v1", tags=["Extraction"])
    return application


app = create_app()
