"""Data models and type definitions for the dashboard control plane."""

from .models import (
    App,
    AppDescriptor,
    AppTemplate,
    Bucket,
    DataStore,
    DesiredState,
    Instance,
    InstanceState,
    Resource,
)
from .types import (
    AgentCommand,
    CopyBucketCommand,
    DeleteBucketCommand,
    ObservedFields,
    Snapshot,
    StartCommand,
    StopCommand,
)

__all__ = [
    "AgentCommand",
    "App",
    "AppDescriptor",
    "AppTemplate",
    "Bucket",
    "CopyBucketCommand",
    "DataStore",
    "DeleteBucketCommand",
    "DesiredState",
    "Instance",
    "InstanceState",
    "ObservedFields",
    "Resource",
    "Snapshot",
    "StartCommand",
    "StopCommand",
]
