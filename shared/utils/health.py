"""
Health check utilities for NewsDesk services.
Provides health monitoring and status reporting for the object store and Redis.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from shared.app_logging.logger import get_logger
from shared.storage.object_store import ObjectStore
from shared.utils.redis_client import RedisClient

logger = get_logger(__name__)


class HealthStatus(Enum):
    """Health status enumeration."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"
    UNKNOWN = "unknown"


@dataclass
class HealthCheck:
    """Individual health check result."""

    name: str
    status: HealthStatus
    message: str
    response_time_ms: Optional[float] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc)


class HealthChecker:
    """Runs registered async checks and aggregates their status."""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.logger = get_logger(f"{service_name}.health")
        self.checks: List[Callable[[], Awaitable[HealthCheck]]] = []

    def add_check(self, check_func: Callable[[], Awaitable[HealthCheck]]):
        """Add a health check coroutine function."""
        self.checks.append(check_func)

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000

    async def check_object_store(self, store: ObjectStore) -> HealthCheck:
        """Check object store connectivity."""
        start = time.perf_counter()
        try:
            reachable = await store.ping()
        except Exception as e:
            return HealthCheck(
                name="object_store",
                status=HealthStatus.UNHEALTHY,
                message=f"Object store check failed: {e}",
                response_time_ms=self._elapsed_ms(start),
            )
        return HealthCheck(
            name="object_store",
            status=HealthStatus.HEALTHY if reachable else HealthStatus.UNHEALTHY,
            message="Object store reachable" if reachable else "Object store not reachable",
            response_time_ms=self._elapsed_ms(start),
            details={"backend": store.name},
        )

    async def check_redis(self, client: RedisClient) -> HealthCheck:
        """Check Redis connectivity. The queue only matters for triggers, so failure degrades."""
        start = time.perf_counter()
        if client.ping():
            return HealthCheck(
                name="redis",
                status=HealthStatus.HEALTHY,
                message="Redis connection successful",
                response_time_ms=self._elapsed_ms(start),
            )
        return HealthCheck(
            name="redis",
            status=HealthStatus.DEGRADED,
            message="Redis connection failed; triggers unavailable",
            response_time_ms=self._elapsed_ms(start),
        )

    async def run_all_checks(self) -> Dict[str, Any]:
        """Run all registered health checks."""
        results = []
        overall_status = HealthStatus.HEALTHY

        for check_func in self.checks:
            try:
                result = await check_func()
            except Exception as e:
                self.logger.error(f"Health check {getattr(check_func, '__name__', check_func)} raised: {e}")
                result = HealthCheck(
                    name=getattr(check_func, "__name__", "check"),
                    status=HealthStatus.UNHEALTHY,
                    message=f"Health check failed with exception: {str(e)}",
                )
            results.append(result)

            if result.status == HealthStatus.UNHEALTHY:
                overall_status = HealthStatus.UNHEALTHY
            elif result.status == HealthStatus.DEGRADED and overall_status == HealthStatus.HEALTHY:
                overall_status = HealthStatus.DEGRADED

        return {
            "service": self.service_name,
            "status": overall_status.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": [
                {
                    "name": check.name,
                    "status": check.status.value,
                    "message": check.message,
                    "response_time_ms": check.response_time_ms,
                    "details": check.details,
                    "timestamp": check.timestamp.isoformat(),
                }
                for check in results
            ],
        }


def create_articles_health_checker(store: ObjectStore, redis_client: RedisClient) -> HealthChecker:
    """Create health checker for the articles service."""
    checker = HealthChecker("articles")

    async def object_store():
        return await checker.check_object_store(store)

    async def redis():
        return await checker.check_redis(redis_client)

    checker.add_check(object_store)
    checker.add_check(redis)
    return checker
