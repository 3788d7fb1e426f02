"""
FastAPI Service Factory - Object-Oriented Factory Pattern
Builds every SafeHER service app the same way: CORS, health, Prometheus
metrics, error-to-JSON mapping and shutdown hooks for shared clients.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, List, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from common.errors import SafeHerError
from libs.config import Config

logger = logging.getLogger(__name__)

ShutdownHook = Callable[[], Awaitable[None]]


class ServiceMetrics:
    """Per-service Prometheus registry with request and business counters."""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.registry = CollectorRegistry()

        self.request_count = Counter(
            "service_requests_total",
            "Total HTTP requests handled by the service",
            ["service", "method", "path", "http_status"],
            registry=self.registry,
        )
        self.request_latency = Histogram(
            "service_request_duration_seconds",
            "Request latency in seconds",
            ["service", "path"],
            registry=self.registry,
        )

        self.business_metrics: List[Counter] = []

    def record_request(self, method: str, path: str, status_code: int, duration: float):
        self.request_count.labels(
            service=self.service_name,
            method=method,
            path=path,
            http_status=status_code,
        ).inc()
        self.request_latency.labels(service=self.service_name, path=path).observe(duration)

    def business_counter(self, name: str, description: str, labels: List[str]) -> Counter:
        counter = Counter(name, description, labels, registry=self.registry)
        self.business_metrics.append(counter)
        return counter

    def render(self) -> bytes:
        """Prometheus text exposition of this service's registry."""
        return generate_latest(self.registry)


class CORSMiddlewareConfig:
    """CORS settings; origins default to Config.CORS_ALLOW_ORIGINS."""

    def __init__(
        self,
        allow_origins: Optional[List[str]] = None,
        allow_credentials: bool = True,
        allow_methods: Optional[List[str]] = None,
        allow_headers: Optional[List[str]] = None,
    ):
        self.allow_origins = allow_origins or Config.CORS_ALLOW_ORIGINS
        self.allow_credentials = allow_credentials
        self.allow_methods = allow_methods or ["GET", "POST", "OPTIONS"]
        self.allow_headers = allow_headers or ["Authorization", "Content-Type"]


class ServiceAppConfig:
    """Configuration for creating a service FastAPI app."""

    def __init__(
        self,
        title: str,
        description: str,
        service_name: str,
        version: str = "1.0.0",
        cors_config: Optional[CORSMiddlewareConfig] = None,
        enable_metrics: bool = True,
        shutdown_hooks: Optional[List[ShutdownHook]] = None,
    ):
        self.title = title
        self.description = description
        self.service_name = service_name
        self.version = version
        self.cors_config = cors_config or CORSMiddlewareConfig()
        self.enable_metrics = enable_metrics
        self.shutdown_hooks = shutdown_hooks or []


class FastAPIServiceFactory:
    """
    Factory class for creating standardized FastAPI service applications.

    Services call ``create_app()`` once at import time, register their
    routes on the returned app, and add business counters through
    ``add_business_metric``.
    """

    def __init__(self, config: ServiceAppConfig):
        self.config = config
        self.metrics = ServiceMetrics(config.service_name) if config.enable_metrics else None

    def create_app(self) -> FastAPI:
        """
        Factory method: Creates and configures a FastAPI application.

        Returns:
            Fully configured FastAPI app ready for route registration
        """
        app = FastAPI(
            title=self.config.title,
            description=self.config.description,
            version=self.config.version,
            lifespan=self._lifespan,
        )

        cors = self.config.cors_config
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors.allow_origins,
            allow_credentials=cors.allow_credentials,
            allow_methods=cors.allow_methods,
            allow_headers=cors.allow_headers,
        )

        self._add_health_endpoint(app)
        self._add_error_handlers(app)

        if self.metrics:
            self._add_metrics_middleware(app)
            self._add_metrics_endpoint(app)

        app.state.metrics = self.metrics
        app.state.service_name = self.config.service_name
        return app

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        logger.info(f"{self.config.service_name} service starting")
        yield
        for hook in self.config.shutdown_hooks:
            try:
                await hook()
            except Exception as e:
                logger.error(f"Shutdown hook {getattr(hook, '__name__', hook)} failed: {e}")
        logger.info(f"{self.config.service_name} service stopped")

    def _add_metrics_middleware(self, app: FastAPI):
        metrics = self.metrics

        @app.middleware("http")
        async def prometheus_middleware(request: Request, call_next):
            start = time.time()
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
            try:
                response = await call_next(request)
                status_code = response.status_code
                return response
            finally:
                # Route template, not the raw path: story ids would explode cardinality
                route = request.scope.get("route")
                metrics.record_request(
                    method=request.method,
                    path=getattr(route, "path", request.url.path),
                    status_code=status_code,
                    duration=time.time() - start,
                )

    def _add_metrics_endpoint(self, app: FastAPI):
        metrics = self.metrics

        @app.get("/metrics", include_in_schema=False)
        async def metrics_endpoint():
            return Response(content=metrics.render(), media_type=CONTENT_TYPE_LATEST)

    def _add_health_endpoint(self, app: FastAPI):
        service_name = self.config.service_name

        @app.get("/health")
        async def health_check():
            return {"status": "ok", "service": service_name}

    def _add_error_handlers(self, app: FastAPI):
        """
        Map failures to JSON bodies of the form ``{"detail": ...}``.

        - SafeHerError: its own status code and message
        - request validation: 400 with the offending fields
        - anything else: logged with traceback, generic 500
        """

        @app.exception_handler(SafeHerError)
        async def safeher_error_handler(request: Request, exc: SafeHerError):
            if exc.status_code >= 500:
                logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
            else:
                logger.info(
                    f"{request.method} {request.url.path} rejected "
                    f"({exc.status_code}): {exc.message}"
                )
            return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

        @app.exception_handler(RequestValidationError)
        async def validation_error_handler(request: Request, exc: RequestValidationError):
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={
                    "detail": "Invalid request",
                    "errors": [
                        {"loc": list(err.get("loc", [])), "msg": err.get("msg", "")}
                        for err in exc.errors()
                    ],
                },
            )

        @app.exception_handler(Exception)
        async def unexpected_error_handler(request: Request, exc: Exception):
            logger.error(
                f"Unexpected error in {request.method} {request.url.path}: {exc}",
                exc_info=exc,
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"detail": "Internal server error"},
            )

    def add_business_metric(
        self, name: str, description: str, labels: Optional[List[str]] = None
    ) -> Counter:
        """
        Add a business-specific metric counter to the service registry.

        Raises:
            ValueError: If metrics are disabled for this service
        """
        if not self.metrics:
            raise ValueError("Metrics not enabled for this service")
        return self.metrics.business_counter(name, description, labels or [])
