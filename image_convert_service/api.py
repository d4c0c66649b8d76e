"""FastAPI application factory for stateless request/response services."""

import inspect
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from fastapi import BackgroundTasks, Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import ApiKeyAuth
from .config import Settings, settings as default_settings
from .errors import ConversionError, ServiceError
from .models import ErrorResponse, HealthResponse, LogSavedResponse, MemoryResponse
from .processor import BaseProcessor, StatelessAction
from .resource_log import (
    ResourceLogBuffer,
    ResourceSampler,
    log_file_name,
    take_sample,
    write_log_file,
)

logger = logging.getLogger(__name__)


@dataclass
class ServiceConfig:
    """
    Configuration for building a stateless microservice application.

    Args:
        name: Override service name (defaults to processor.name)
        version: Override service version (defaults to processor.version)
        description: Short description for generated docs
        resource_sampling: Run the periodic resource sampler while the app is up
    """

    name: str | None = None
    version: str | None = None
    description: str | None = None
    resource_sampling: bool = True


async def _call_handler(action: StatelessAction, *args):
    call_result = action.handler(*args)
    if inspect.isawaitable(call_result):
        call_result = await call_result
    if isinstance(call_result, Response):
        return call_result
    if action.media_type and isinstance(call_result, (bytes, bytearray, memoryview)):
        return Response(content=bytes(call_result), media_type=action.media_type)
    return call_result


def make_endpoint(action: StatelessAction):
    if action.raw_request:
        async def endpoint(request: Request):
            return await _call_handler(action, request)
    else:
        async def endpoint():
            return await _call_handler(action)

    return endpoint


def create_app(
    processor: BaseProcessor,
    config: ServiceConfig | None = None,
    settings: Settings | None = None,
    auth: ApiKeyAuth | None = None,
) -> FastAPI:
    """
    Create a FastAPI application for a stateless processor.

    Args:
        processor: The processor instance implementing business logic
        config: Optional service configuration
        settings: Runtime settings (defaults to the environment-loaded settings)
        auth: Optional bearer-token checker (defaults to one built from settings)
    """

    config = config or ServiceConfig()
    settings = settings or default_settings
    auth = auth or ApiKeyAuth(settings.api_key, settings.admin_access_token)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    service_name = config.name or processor.name
    service_version = config.version or processor.version
    service_description = config.description or f"{service_name} stateless API"

    resource_log = ResourceLogBuffer(
        duration_seconds=settings.resource_log_duration_seconds,
        max_entries=settings.resource_log_max_entries,
    )
    sampler = ResourceSampler(resource_log, interval=settings.resource_log_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.resource_sampling:
            sampler.start()
        logger.info("%s %s started", service_name, service_version)
        yield
        await sampler.stop()

    app = FastAPI(
        title=f"{service_name.title()} Stateless API",
        description=service_description,
        version=service_version,
        lifespan=lifespan,
    )

    app.state.processor = processor
    app.state.service_config = config
    app.state.settings = settings
    app.state.resource_log = resource_log
    app.state.service_name = service_name

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    @app.exception_handler(ServiceError)
    async def service_exception_handler(request: Request, exc: ServiceError):
        """Map the service error taxonomy onto status codes; detail stays in the logs."""
        if isinstance(exc, ConversionError):
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail, exc_info=exc)
        else:
            logger.warning("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message).model_dump(),
        )

    @app.get("/", response_model=HealthResponse)
    async def root():
        return HealthResponse(status="healthy", version=service_version)

    @app.get("/health", response_model=MemoryResponse, dependencies=[Depends(auth.require())])
    async def health_check():
        sample = take_sample()
        return MemoryResponse(
            status="healthy",
            version=service_version,
            rss_mb=sample.rss_mb,
            vms_mb=sample.vms_mb,
            free_mb=sample.free_mb,
            total_mb=sample.total_mb,
            usage_percent=sample.usage_percent,
        )

    @app.get(
        "/health/log",
        response_model=LogSavedResponse,
        dependencies=[Depends(auth.require(admin=True))],
    )
    async def save_resource_log(background_tasks: BackgroundTasks):
        file_name = log_file_name()
        background_tasks.add_task(
            write_log_file,
            resource_log,
            Path(settings.log_dir) / file_name,
            settings.log_dump_delay_seconds,
        )
        return LogSavedResponse(message=f"Logs saved to {file_name}", file_name=file_name)

    actions = processor.get_stateless_actions()
    if not actions:
        logger.warning(
            "Processor %s registered with stateless service but get_stateless_actions() returned nothing.",
            processor.name,
        )

    for action in actions:
        logger.info("Registering stateless action '%s' at %s", action.name, action.path)

        endpoint = make_endpoint(action)

        route_kwargs = {
            "methods": list(action.methods),
            "response_model": action.response_model,
            "summary": action.summary,
            "description": action.description,
            "tags": list(action.tags) if action.tags else None,
            "dependencies": [Depends(auth.require())] if action.requires_auth else None,
            "responses": {
                400: {"model": ErrorResponse},
                500: {"model": ErrorResponse},
                503: {"model": ErrorResponse},
            },
        }
        route_kwargs = {k: v for k, v in route_kwargs.items() if v is not None}

        app.api_route(action.path, **route_kwargs)(endpoint)

    return app
