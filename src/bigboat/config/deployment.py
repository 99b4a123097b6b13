"""Health checks for deployed control planes.

This module checks the components a running dashboard backend depends on:
the record store, the reconciliation scheduler and process memory.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any

import psutil
from pydantic import BaseModel

from bigboat.core.reconciler import ReconciliationScheduler
from bigboat.storage import RecordStore
from bigboat.utils.telemetry import SystemMonitor, get_logger

logger = get_logger(__name__)


class HealthCheckConfig(BaseModel):
    """Configuration for health checks."""

    timeout_seconds: float = 5.0

    check_store: bool = True
    check_scheduler: bool = True
    check_memory_usage: bool = True

    max_memory_usage_percent: float = 90.0
    max_response_time_ms: float = 1000.0


@dataclass
class HealthStatus:
    """Health check status."""

    healthy: bool
    ready: bool
    checks: dict[str, Any]
    timestamp: float
    response_time_ms: float


class HealthChecker:
    """Health check implementation.

    Args:
        config: Thresholds and enabled checks
        store: Record store to ping
        scheduler: Reconciliation scheduler expected to be running
    """

    def __init__(
        self,
        config: HealthCheckConfig,
        store: RecordStore | None = None,
        scheduler: ReconciliationScheduler | None = None,
    ):
        self.config = config
        self.store = store
        self.scheduler = scheduler
        self._monitor = SystemMonitor()
        self._last_check: HealthStatus | None = None
        self._check_lock = asyncio.Lock()

    async def check_health(self) -> HealthStatus:
        """Perform comprehensive health check.

        Returns:
            Health status with detailed check results
        """
        start_time = time.time()

        async with self._check_lock:
            checks: dict[str, Any] = {}
            healthy = True
            ready = True

            # An unreachable store makes every operation fail
            if self.config.check_store and self.store is not None:
                try:
                    store_ok = await asyncio.wait_for(
                        self.store.ping(), timeout=self.config.timeout_seconds
                    )
                    checks["store"] = {"healthy": store_ok, "error": None}
                    if not store_ok:
                        healthy = False
                        ready = False
                except Exception as e:
                    logger.warning("Store health check failed", error=str(e))
                    checks["store"] = {"healthy": False, "error": str(e)}
                    healthy = False
                    ready = False

            # Snapshots are accepted but not applied without a scheduler
            if self.config.check_scheduler and self.scheduler is not None:
                running = self.scheduler.running
                checks["scheduler"] = {"healthy": running, "ready": running}
                if not running:
                    ready = False

            if self.config.check_memory_usage:
                memory_ok, memory_info = self._check_memory()
                checks["memory"] = {"healthy": memory_ok, **memory_info}
                if not memory_ok:
                    healthy = False

            response_time_ms = (time.time() - start_time) * 1000

            if response_time_ms > self.config.max_response_time_ms:
                healthy = False
                checks["response_time"] = {
                    "healthy": False,
                    "response_time_ms": response_time_ms,
                    "threshold_ms": self.config.max_response_time_ms,
                }
            else:
                checks["response_time"] = {
                    "healthy": True,
                    "response_time_ms": response_time_ms,
                }

            status = HealthStatus(
                healthy=healthy,
                ready=ready,
                checks=checks,
                timestamp=time.time(),
                response_time_ms=response_time_ms,
            )

            self._last_check = status
            return status

    def _check_memory(self) -> tuple[bool, dict[str, Any]]:
        """Check memory usage.

        Returns:
            Tuple of (within_limits, memory_info)
        """
        try:
            rss_bytes = self._monitor.record_memory_usage("process")
            memory_percent = self._monitor.memory_percent()
        except psutil.Error as e:
            logger.warning("Memory check failed", error=str(e))
            return False, {"error": str(e)}

        info = {
            "usage_percent": memory_percent,
            "rss_mb": rss_bytes / 1024 / 1024,
            "threshold_percent": self.config.max_memory_usage_percent,
        }
        return memory_percent < self.config.max_memory_usage_percent, info

    def get_last_check(self) -> HealthStatus | None:
        """Get the last health check result."""
        return self._last_check
