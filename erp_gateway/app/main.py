"""
Backend-for-frontend service for the ERP single-page app.
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel

from erp_core.cache import QueryCache
from erp_core.config import ErpSettings, get_settings
from erp_core.errors import ErpException
from erp_core.logging import (
    clear_context, configure_logging, get_logger, request_id_var, set_request_id, set_user_context
)
from erp_core.metrics import get_metrics_collector
from erp_core.notifications import NotificationCenter
from erp_core.results import error_field
from erp_core.retry import ResilientCaller, RetryPolicy, schema_cache_predicate

from .backend.client import BackendClient
from .messages import describe_failure
from .refresh import RefetchScheduler
from .services.dashboard import DashboardService
from .services.settings_store import SettingsService
from .services.vendors import VendorPayload, VendorService


SERVICE_NAME = "gateway"


class SettingsUpdate(BaseModel):
    changes: Dict[str, Any]


class GatewayService:
    """Wires the shared cache, retry wrapper and backend client into HTTP routes."""

    def __init__(self,
                 settings: Optional[ErpSettings] = None,
                 backend: Optional[BackendClient] = None):
        self.config = settings or get_settings()
        configure_logging(SERVICE_NAME, self.config.log_level)
        self.logger = get_logger(SERVICE_NAME)
        self.metrics = get_metrics_collector(SERVICE_NAME)
        self._start_time = time.time()

        self.notifications = NotificationCenter()
        self.cache = QueryCache(ttl=self.config.query_cache_ttl)
        self.caller = ResilientCaller(
            self.cache,
            self.notifications.notify,
            policy=RetryPolicy.from_settings(self.config),
            is_retryable=schema_cache_predicate(self.config.schema_cache_error_codes),
            metrics=self.metrics,
        )
        self.backend = backend or BackendClient(
            self.config.backend_url,
            self.config.backend_anon_key,
            timeout=self.config.backend_timeout,
            metrics=self.metrics,
        )

        self.dashboard = DashboardService(self.backend, self.caller)
        self.settings_store = SettingsService(
            self.backend, self.caller, initial_delay=self.config.retry_initial_delay
        )
        self.vendors = VendorService(
            self.backend, self.caller, initial_delay=self.config.retry_initial_delay
        )

        self.latest_stats: Dict[str, Any] = DashboardService.empty_stats()
        self.stats_refresher = RefetchScheduler(
            self._refresh_stats,
            interval=self.config.refetch_interval,
            name="dashboard",
        )

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    async def _refresh_stats(self, token) -> Dict[str, Any]:
        stats = await self.dashboard.get_dashboard_stats(token)
        if not token.aborted:
            self.latest_stats = stats
        return stats

    def _create_app(self) -> FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.stats_refresher.start()
            yield
            await self.stats_refresher.stop()

        return FastAPI(
            title="ERP Gateway Service",
            description="ERP data access layer - Gateway Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=lifespan,
        )

    def _setup_middleware(self):
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else [],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def add_request_timing(request: Request, call_next):
            set_request_id(request.headers.get("x-request-id"))
            set_user_context(request.headers.get("x-user-id"), request.headers.get("x-user-role"))
            start_time = time.time()

            try:
                response = await call_next(request)

                duration = time.time() - start_time
                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=response.status_code,
                    duration=duration
                )
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2)
                )
                return response
            finally:
                clear_context()

    def _setup_routes(self):

        @self.app.get("/")
        async def root():
            return {
                "service": SERVICE_NAME,
                "message": "ERP data access layer - Gateway",
                "version": "1.0.0"
            }

        @self.app.get("/health")
        async def health_check():
            backend_ok = await self.backend.health_check()
            return {
                "service": SERVICE_NAME,
                "status": "ok" if backend_ok else "degraded",
                "uptime_seconds": time.time() - self._start_time,
                "dependencies": {"backend": "ok" if backend_ok else "unavailable"},
                "version": "1.0.0",
                "commit": os.getenv("GIT_COMMIT", "unknown")
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            return Response(content=self.metrics.export(), media_type=CONTENT_TYPE_LATEST)

        @self.app.get("/api/v1/dashboard/stats")
        async def dashboard_stats():
            self.latest_stats = await self.dashboard.get_dashboard_stats()
            return self.latest_stats

        @self.app.get("/api/v1/orders/recent")
        async def recent_orders(limit: int = 5):
            return {"orders": await self.dashboard.get_recent_orders(limit)}

        @self.app.get("/api/v1/settings")
        async def get_settings_route():
            return await self.settings_store.fetch_settings()

        @self.app.put("/api/v1/settings/general")
        async def update_general(update: SettingsUpdate):
            saved = await self.settings_store.update_general_settings(**update.changes)
            return {"saved": saved, **self.settings_store.snapshot()}

        @self.app.put("/api/v1/settings/notifications")
        async def update_notifications(update: SettingsUpdate):
            saved = await self.settings_store.update_notification_settings(**update.changes)
            return {"saved": saved, **self.settings_store.snapshot()}

        @self.app.get("/api/v1/vendors")
        async def list_vendors():
            result = await self.vendors.list_vendors()
            if result.error:
                return self._failure_response(result.error, "load vendors")
            return {"vendors": VendorService.rows(result)}

        @self.app.post("/api/v1/vendors", status_code=201)
        async def create_vendor(payload: VendorPayload, request: Request):
            result = await self.vendors.save_vendor(payload, role=request.headers.get("x-user-role"))
            if result.error:
                return self._failure_response(result.error, "save vendor")
            return {"vendors": VendorService.rows(result)}

        @self.app.put("/api/v1/vendors/{vendor_id}")
        async def update_vendor(vendor_id: str, payload: VendorPayload, request: Request):
            result = await self.vendors.save_vendor(
                payload, vendor_id=vendor_id, role=request.headers.get("x-user-role")
            )
            if result.error:
                return self._failure_response(result.error, "save vendor")
            return {"vendors": VendorService.rows(result)}

        @self.app.post("/api/v1/cache/clear")
        async def clear_cache():
            self.caller.clear_query_cache()
            return {"cleared": True}

        @self.app.get("/api/v1/notifications")
        async def active_notifications():
            return {"notifications": [n.to_dict() for n in self.notifications.active()]}

        @self.app.exception_handler(ErpException)
        async def erp_exception_handler(request: Request, exc: ErpException):
            self.logger.error(
                "ERP error",
                code=exc.code,
                message=exc.message,
                details=exc.details
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response(request_id_var.get()).model_dump()
            )

    def _failure_response(self, error: Any, action: str) -> JSONResponse:
        status_code = getattr(error, "status_code", None)
        if not isinstance(status_code, int) or status_code < 400:
            status_code = 502
        code = error_field(error, "code") or "BACKEND_ERROR"
        self.metrics.record_error(code)
        return JSONResponse(
            status_code=status_code,
            content={
                "request_id": request_id_var.get(),
                "code": code,
                "message": describe_failure(error, action) or "Request cancelled",
                "details": {},
            },
        )

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )


def create_app(settings: Optional[ErpSettings] = None,
               backend: Optional[BackendClient] = None) -> FastAPI:
    """Create FastAPI app instance."""
    return GatewayService(settings, backend).app


if __name__ == "__main__":
    GatewayService().run()
