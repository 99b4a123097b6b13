# Shared utilities: errors, stamps and telemetry

from .errors import (
    AppNotFoundError,
    BucketExistsError,
    BucketNotFoundError,
    CatalogError,
    ComposeError,
    ConflictError,
    DashboardError,
    DispatchFailureError,
    DuplicateRecordError,
    InstanceExistsError,
    InstanceNotFoundError,
    NotFoundError,
    RecoveryAction,
    StoreFailureError,
)
from .stamps import StampSource, counter_clock
from .telemetry import (
    PerformanceTimer,
    SystemMonitor,
    async_performance_timer,
    get_logger,
    get_tracer,
    setup_logging,
    setup_tracing,
    start_metrics_server,
)

__all__ = [
    "AppNotFoundError",
    "BucketExistsError",
    "BucketNotFoundError",
    "CatalogError",
    "ComposeError",
    "ConflictError",
    "DashboardError",
    "DispatchFailureError",
    "DuplicateRecordError",
    "InstanceExistsError",
    "InstanceNotFoundError",
    "NotFoundError",
    "PerformanceTimer",
    "RecoveryAction",
    "StampSource",
    "StoreFailureError",
    "SystemMonitor",
    "async_performance_timer",
    "counter_clock",
    "get_logger",
    "get_tracer",
    "setup_logging",
    "setup_tracing",
    "start_metrics_server",
]
