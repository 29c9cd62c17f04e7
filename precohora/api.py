"""FastAPI routes for station lookups.

Thin glue: query parameters go to the orchestrator unchanged and its
envelope comes back as JSON. The browser session is opened when the
application starts and closed when it stops; a session that cannot be
opened aborts startup.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import AsyncIterator

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.settings import GlobalConfig, get_config
from precohora.exceptions import BrowserInitializationError, QueryValidationError
from precohora.logger import get_logger
from precohora.models import supported_fuel_types
from precohora.service import AcquisitionOrchestrator

log = get_logger(__name__)


def _describe_endpoints(config: GlobalConfig) -> list[dict]:
    fuel_list = ", ".join(supported_fuel_types(config))
    fuel_param = {
        "name": "type",
        "type": "string",
        "required": False,
        "description": f"Fuel type (default: {config.default_fuel_type}). Supported values: {fuel_list}",
    }
    radius_param = {
        "name": "radius",
        "type": "number",
        "required": False,
        "description": f"Search radius in km (default: {config.default_radius_km})",
    }
    return [
        {
            "path": "/api/fuel/stations",
            "method": "GET",
            "description": "Fuel stations by postal code (CEP)",
            "parameters": [
                {
                    "name": "cep",
                    "type": "string",
                    "required": True,
                    "description": "Postal code (00000000 or 00000-000)",
                },
                fuel_param,
                radius_param,
            ],
        },
        {
            "path": "/api/fuel/stations/city",
            "method": "GET",
            "description": "Fuel stations by city",
            "parameters": [
                {"name": "city", "type": "string", "required": True, "description": "City name"},
                {
                    "name": "state",
                    "type": "string",
                    "required": False,
                    "description": f"State code (default: {config.default_state})",
                },
                fuel_param,
                radius_param,
            ],
        },
        {
            "path": "/api/health",
            "method": "GET",
            "description": "Health check",
            "parameters": [],
        },
    ]


def create_app(
    config: GlobalConfig | None = None,
    orchestrator: AcquisitionOrchestrator | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        config: Optional GlobalConfig. Uses singleton if not provided.
        orchestrator: Optional pre-built orchestrator (tests inject fakes).

    Returns:
        Configured FastAPI instance.
    """
    config = config or get_config()
    orchestrator = orchestrator or AcquisitionOrchestrator(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await orchestrator.session.initialize()
        except BrowserInitializationError as exc:
            log.critical("Browser session unavailable, refusing to start", error=exc.message)
            raise
        log.info("Server ready", host=config.host, port=config.port, environment=config.environment)

        yield

        log.info("Shutting down")
        await orchestrator.shutdown()

    app = FastAPI(title=config.app_name, version=config.app_version, lifespan=lifespan)
    app.state.orchestrator = orchestrator

    @app.exception_handler(QueryValidationError)
    async def validation_error_handler(request: Request, exc: QueryValidationError) -> JSONResponse:
        log.warning("Rejected request", path=request.url.path, field=exc.field, error=exc.message)
        return JSONResponse(status_code=400, content={"success": False, "error": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        error = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": error, "status": exc.status_code},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        log.exception("Unhandled error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "status": 500},
        )

    @app.get("/", include_in_schema=False)
    async def root() -> RedirectResponse:
        return RedirectResponse(url="/api")

    @app.get("/api")
    async def describe() -> dict:
        return {
            "name": config.app_name,
            "version": config.app_version,
            "description": "Fuel station prices from the Preço da Hora portal (Bahia)",
            "fuelTypes": {
                fuel_id: entry.name for fuel_id, entry in config.fuel_types.items()
            },
            "endpoints": _describe_endpoints(config),
        }

    @app.get("/api/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
            "message": f"{config.app_name} is running",
            "version": config.app_version,
            "browser": "ready" if orchestrator.session.is_initialized else "idle",
        }

    @app.get("/api/fuel/stations")
    async def stations_by_postal_code(
        cep: str | None = None,
        fuel_type: str | None = Query(default=None, alias="type"),
        radius: str | None = None,
    ) -> JSONResponse:
        envelope = await orchestrator.by_postal_code(cep, fuel_type, radius)
        return JSONResponse(content=envelope.to_json_dict())

    @app.get("/api/fuel/stations/city")
    async def stations_by_city(
        city: str | None = None,
        state: str | None = None,
        fuel_type: str | None = Query(default=None, alias="type"),
        radius: str | None = None,
    ) -> JSONResponse:
        envelope = await orchestrator.by_city(city, state, fuel_type, radius)
        return JSONResponse(content=envelope.to_json_dict())

    return app
