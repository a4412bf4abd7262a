"""
FastAPI service skeleton shared by the hotel backend services.

Subclasses get request-id propagation, request metrics and logging,
canonical error responses, ``/health`` and ``/metrics`` routes, and
``on_startup``/``on_shutdown`` hooks run by the application lifespan.
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from shared.config import ServiceConfig, get_config
from shared.errors import ErrorResponse, HotelServiceException
from shared.logging import (
    REQUEST_ID_HEADER,
    bind_request_id,
    configure_logging,
    get_logger,
    reset_request_id,
)
from shared.metrics import get_metrics_collector

SERVICE_VERSION = "1.0.0"


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level, json_logs=self.config.env != "local")
        self.logger = get_logger(f"{service_name}.service")

        self.app = FastAPI(
            title=f"{service_name.title()} Service",
            description=f"Hotel booking backend - {service_name.title()} Service",
            version=SERVICE_VERSION,
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=self._lifespan,
        )
        self._setup_middleware()
        self._setup_exception_handlers()
        self._setup_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.on_startup()
        self.logger.info("Service started", port=self.port, env=self.config.env)
        try:
            yield
        finally:
            await self.on_shutdown()
            self.logger.info("Service stopped")

    async def on_startup(self) -> None:
        """Acquire service resources. Override in subclasses."""

    async def on_shutdown(self) -> None:
        """Release service resources. Override in subclasses."""

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report dependency states for ``/health``. Override in subclasses."""
        return {}

    def allowed_origins(self) -> List[str]:
        if self.config.env == "local":
            return ["*"]
        return [self.config.frontend_url] if self.config.frontend_url else []

    def _setup_middleware(self):
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=self.allowed_origins(),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        self.app.middleware("http")(self._request_context)

    async def _request_context(self, request: Request, call_next):
        """Bind the request id, then time and log the request."""
        request_id, token = bind_request_id(request.headers.get(REQUEST_ID_HEADER))
        started = time.perf_counter()
        try:
            response = await call_next(request)
            duration = time.perf_counter() - started
            self.metrics.record_http_request(request.method, request.url.path, response.status_code, duration)
            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
        finally:
            reset_request_id(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    def _setup_exception_handlers(self):
        @self.app.exception_handler(HotelServiceException)
        async def service_error(request: Request, exc: HotelServiceException):
            log = self.logger.warning if exc.status_code < 500 else self.logger.error
            log("Request failed", code=exc.code, error=exc.message, details=exc.details, path=request.url.path)
            self.metrics.record_error(exc.code)
            return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())

        @self.app.exception_handler(Exception)
        async def unhandled_error(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            body = ErrorResponse(code="INTERNAL_ERROR", message="Internal server error")
            return JSONResponse(status_code=500, content=body.model_dump())

    def _setup_routes(self):
        @self.app.get("/health")
        async def health():
            try:
                payload = await self._health_payload()
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)},
                )
            self.metrics.record_health_check("ok")
            return payload

        @self.app.get("/metrics")
        async def metrics():
            return Response(content=self.metrics.export(), media_type=CONTENT_TYPE_LATEST)

    async def _health_payload(self) -> Dict[str, Any]:
        return {
            "service": self.service_name,
            "status": "ok",
            "uptime_seconds": round(time.time() - self._start_time, 3),
            "dependencies": await self._check_dependencies(),
            "version": SERVICE_VERSION,
            "commit": os.getenv("GIT_COMMIT", "unknown"),
        }

    def run(self):
        """Serve the app with uvicorn."""
        import uvicorn

        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
        )
