"""bigboat - Control plane for a container-orchestration dashboard.

bigboat keeps the desired and observed state of application instances
running on a swarm, reconciles what the agent reports against what users
asked for, and broadcasts every change to subscribers.
"""

__version__ = "0.1.0"

from .bus import InMemoryNotificationBus, NotificationBus, Topic
from .core import (
    LifecycleController,
    QueryService,
    ReconciliationResult,
    ReconciliationScheduler,
    Reconciler,
)
from .schemas import App, Bucket, DesiredState, Instance, InstanceState
from .storage import InMemoryRecordStore, RecordStore, SQLiteRecordStore, open_store

__all__ = [
    "App",
    "Bucket",
    "DesiredState",
    "InMemoryNotificationBus",
    "InMemoryRecordStore",
    "Instance",
    "InstanceState",
    "LifecycleController",
    "NotificationBus",
    "QueryService",
    "ReconciliationResult",
    "ReconciliationScheduler",
    "Reconciler",
    "RecordStore",
    "SQLiteRecordStore",
    "Topic",
    "__version__",
    "open_store",
]
