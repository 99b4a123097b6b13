# Control plane core: reconciliation, lifecycle operations and queries

from .compose import derive_tags, effective_options, enhance_compose
from .lifecycle import LifecycleController
from .queries import QueryService
from .reconciler import (
    ReconciliationResult,
    ReconciliationScheduler,
    Reconciler,
    observed_state,
)

__all__ = [
    "LifecycleController",
    "QueryService",
    "ReconciliationResult",
    "ReconciliationScheduler",
    "Reconciler",
    "derive_tags",
    "effective_options",
    "enhance_compose",
    "observed_state",
]
