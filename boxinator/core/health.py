"""
Health and metrics endpoints.

Liveness is a constant answer; readiness pings the configured store and
looks at disk and memory headroom.
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

import psutil
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from .logging_config import get_logger

logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class HealthStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"

    @classmethod
    def from_headroom(cls, value: float, fail_below: float, warn_below: float) -> "HealthStatus":
        if value < fail_below:
            return cls.FAIL
        if value < warn_below:
            return cls.WARN
        return cls.PASS


def _result(state: HealthStatus, component_type: str, **details: Any) -> Dict[str, Any]:
    return {"status": state.value, "componentType": component_type, **details, "time": _now()}


class ServiceHealth:
    """Builds the health router for one API instance."""

    # (fail below, warn below)
    DISK_FREE_GB = (1, 5)
    MEMORY_AVAILABLE_MB = (100, 500)

    def __init__(
        self,
        service_name: str,
        version: str = "1.0.0",
        store_provider: Optional[Callable[[], Any]] = None,
        insecure_config: bool = False,
    ):
        self.service_name = service_name
        self.version = version
        self.store_provider = store_provider
        self.insecure_config = insecure_config
        self.started = time.time()
        self.checks_performed = 0

    def create_health_router(self) -> APIRouter:
        router = APIRouter(tags=["health"])

        @router.get("/health", status_code=status.HTTP_200_OK)
        def health_check() -> Dict[str, Any]:
            return {
                "status": HealthStatus.PASS,
                "service": self.service_name,
                "version": self.version,
                "timestamp": _now(),
            }

        @router.get("/health/live", status_code=status.HTTP_200_OK)
        def liveness() -> Dict[str, Any]:
            return {"status": "alive"}

        @router.get("/health/ready")
        def readiness() -> JSONResponse:
            checks = self.readiness_checks()
            overall = self.overall_status(checks)
            code = status.HTTP_503_SERVICE_UNAVAILABLE if overall == HealthStatus.FAIL else status.HTTP_200_OK
            body = {
                "status": overall.value,
                "version": self.version,
                "serviceId": self.service_name,
                "checks": checks,
                "timestamp": _now(),
            }
            return JSONResponse(status_code=code, content=body)

        @router.get("/metrics")
        def metrics() -> Dict[str, Any]:
            process = psutil.Process()
            with process.oneshot():
                memory = process.memory_info()
                cpu = process.cpu_percent()
                threads = process.num_threads()
            store = self.store_provider() if self.store_provider else None
            return {
                "service": self.service_name,
                "version": self.version,
                "storage_backend": getattr(store, "backend", None),
                "uptime_seconds": round(time.time() - self.started, 3),
                "checks_performed": self.checks_performed,
                "timestamp": _now(),
                "process": {
                    "memory_rss_bytes": memory.rss,
                    "memory_vms_bytes": memory.vms,
                    "cpu_percent": cpu,
                    "num_threads": threads,
                },
            }

        return router

    def readiness_checks(self) -> Dict[str, Dict[str, Any]]:
        self.checks_performed += 1
        return {
            "datastore:connectivity": self._check_store(),
            "config:secrets": self._check_config(),
            "storage:disk_space": self._check_disk_space(),
            "system:memory": self._check_memory(),
        }

    def _check_store(self) -> Dict[str, Any]:
        store = self.store_provider() if self.store_provider else None
        if store is None:
            return _result(HealthStatus.FAIL, "datastore", output="store not initialized")
        started = time.perf_counter()
        reachable = store.ping()
        elapsed_ms = (time.perf_counter() - started) * 1000
        if not reachable:
            logger.error("Store health check failed", extra={'extra_fields': {'backend': store.backend}})
        return _result(
            HealthStatus.PASS if reachable else HealthStatus.FAIL,
            "datastore",
            componentId=store.backend,
            observedValue=f"{elapsed_ms:.2f}",
            observedUnit="ms",
        )

    def _check_config(self) -> Dict[str, Any]:
        if self.insecure_config:
            return _result(HealthStatus.WARN, "configuration", output="JWT_SECRET is the default value")
        return _result(HealthStatus.PASS, "configuration")

    def _check_disk_space(self) -> Dict[str, Any]:
        try:
            free_gb = psutil.disk_usage('/').free / 1024 ** 3
        except OSError as exc:
            return _result(HealthStatus.WARN, "system", output=str(exc))
        state = HealthStatus.from_headroom(free_gb, *self.DISK_FREE_GB)
        return _result(state, "system", observedValue=f"{free_gb:.2f}", observedUnit="GB")

    def _check_memory(self) -> Dict[str, Any]:
        available_mb = psutil.virtual_memory().available / 1024 ** 2
        state = HealthStatus.from_headroom(available_mb, *self.MEMORY_AVAILABLE_MB)
        return _result(state, "system", observedValue=f"{available_mb:.2f}", observedUnit="MB")

    @staticmethod
    def overall_status(checks: Dict[str, Dict[str, Any]]) -> HealthStatus:
        states = {check.get("status", HealthStatus.PASS.value) for check in checks.values()}
        for worst in (HealthStatus.FAIL, HealthStatus.WARN):
            if worst.value in states:
                return worst
        return HealthStatus.PASS
