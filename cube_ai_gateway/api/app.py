"""
AI gateway FastAPI application.

This module is the HTTP layer only; credential, quota, prompt and model
logic live in the core flows.

Endpoints (under the configurable prefix, ``/api/ai`` by default):
- POST /generate - Natural language to query
- POST /explain/analyze - AI critique of an execution plan
- GET /health - Configuration and quota status
"""

import logging
import os
from contextlib import asynccontextmanager, contextmanager
from typing import Iterator, Optional, Tuple

from fastapi import APIRouter, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .schemas import ExplainAnalyzeRequest, GenerateRequest
from cube_ai_gateway.config.loader import (
    ConfigProvider,
    EnvironmentConfigProvider,
    GatewayConfig,
    resolve_gateway_config,
)
from cube_ai_gateway.core.errors import GatewayError
from cube_ai_gateway.core.generation import GenerationFlow
from cube_ai_gateway.core.plan_analysis import PlanAnalysisFlow
from cube_ai_gateway.core.quota import QuotaLedger
from cube_ai_gateway.core.status import StatusReporter
from cube_ai_gateway.sdk.gemini_client import GatewayClient
from cube_ai_gateway.semantic.indexes import IndexMetadataProvider, SqliteIndexMetadataProvider
from cube_ai_gateway.semantic.metadata import CubeMetadataProvider, YamlCubeMetadataProvider
from cube_ai_gateway.storage.repository import SettingsRepository, initialize_schema

DEFAULT_ROUTE_PREFIX = "/api/ai"


def setup_logging() -> logging.Logger:
    """Configure logging for the gateway package."""
    logger = logging.getLogger("cube_ai_gateway")

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    return logger


logger = logging.getLogger(__name__)


@contextmanager
def _as_gateway_errors(failure_message: str) -> Iterator[None]:
    """Convert unexpected exceptions into a JSON 500 gateway error."""
    try:
        yield
    except GatewayError:
        raise
    except Exception as e:
        logger.exception("%s", failure_message)
        raise GatewayError(failure_message, details=str(e)) from e


def _request_services(request: Request) -> Tuple[GatewayConfig, QuotaLedger, GatewayClient]:
    # Configuration is resolved once per request
    config = resolve_gateway_config(request.app.state.config_provider)
    ledger = QuotaLedger(SettingsRepository(config.db_path), limit=config.daily_limit)
    client = GatewayClient(
        model=config.model,
        base_url=config.base_url,
        timeout=config.timeout_seconds
    )
    return config, ledger, client


def create_app(
    config_provider: Optional[ConfigProvider] = None,
    metadata_provider: Optional[CubeMetadataProvider] = None,
    index_provider: Optional[IndexMetadataProvider] = None,
    route_prefix: str = DEFAULT_ROUTE_PREFIX
) -> FastAPI:
    """Build the gateway application.

    Args:
        config_provider: Source of settings (defaults to the environment)
        metadata_provider: Semantic-layer metadata (defaults to bundled cubes)
        index_provider: Index metadata (defaults to SQLite at the configured path)
        route_prefix: Mount point for the gateway routes

    Returns:
        Configured FastAPI application
    """
    config_provider = config_provider or EnvironmentConfigProvider()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        startup_config = resolve_gateway_config(app.state.config_provider)
        initialize_schema(startup_config.db_path)
        logger.info(
            "AI gateway started (model=%s, server key configured=%s, daily limit=%d)",
            startup_config.model, startup_config.has_server_key, startup_config.daily_limit
        )
        yield
        logger.info("AI gateway shutting down.")

    app = FastAPI(
        title="Cube AI Gateway",
        description="Quota-limited Gemini gateway for semantic-layer analytics",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.config_provider = config_provider
    app.state.metadata_provider = metadata_provider or YamlCubeMetadataProvider()
    app.state.index_provider = index_provider

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "details": str(exc.errors())}
        )

    router = APIRouter(prefix=route_prefix, tags=["AI"])

    @router.post("/generate")
    def generate(
        body: GenerateRequest,
        request: Request,
        x_api_key: Optional[str] = Header(default=None)
    ):
        """Generate a semantic query from natural language."""
        with _as_gateway_errors("Failed to generate content with Gemini API"):
            config, ledger, client = _request_services(request)
            flow = GenerationFlow(config, ledger, request.app.state.metadata_provider, client)
            result = flow.run(body.text, user_api_key=x_api_key)
        return JSONResponse(content=result.to_payload())

    @router.post("/explain/analyze")
    def analyze_explain(
        body: ExplainAnalyzeRequest,
        request: Request,
        x_api_key: Optional[str] = Header(default=None)
    ):
        """Critique a previously computed execution plan."""
        with _as_gateway_errors("Failed to analyze execution plan with Gemini API"):
            config, ledger, client = _request_services(request)
            index_provider = request.app.state.index_provider or SqliteIndexMetadataProvider(config.db_path)
            flow = PlanAnalysisFlow(
                config, ledger, request.app.state.metadata_provider, index_provider, client
            )
            analysis = flow.run(body.explainResult, body.query, user_api_key=x_api_key)
        return JSONResponse(content=analysis)

    @router.get("/health")
    def health(request: Request):
        """Report configuration and quota usage. Always answers 200."""
        try:
            config, ledger, _ = _request_services(request)
        except ValueError as e:
            logger.error("Invalid gateway configuration: %s", e)
            return JSONResponse(content={"status": "error", "error": str(e)})
        return JSONResponse(content=StatusReporter(config, ledger, route_prefix).report())

    app.include_router(router)
    return app
