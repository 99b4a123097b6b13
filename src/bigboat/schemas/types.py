"""Wire-level type definitions using TypedDict for agent commands and snapshots.

Commands leave the process with camelCase keys, the convention of the agent.
"""

from collections.abc import Mapping
from typing import Annotated, Any, Literal, TypedDict


class InstanceRef(TypedDict, total=False):
    """Instance part of an agent command."""

    name: Annotated[str, "Instance name"]
    options: Annotated[dict[str, Any], "Effective start options, camelCase keys (storageBucket)"]


class AppRef(TypedDict, total=False):
    """App part of an agent command.

    Start commands carry the full enhanced descriptor, stop commands only the
    identity fields.
    """

    name: Annotated[str, "App name"]
    version: Annotated[str, "App version"]
    dockerCompose: Annotated[str, "Enhanced docker compose definition"]
    bigboatCompose: Annotated[str, "BigBoat compose definition"]


class StartCommand(TypedDict):
    """Ask the agent to deploy an instance of an app."""

    kind: Literal["start"]
    app: AppRef
    instance: InstanceRef


class StopCommand(TypedDict):
    """Ask the agent to stop a running instance."""

    kind: Literal["stop"]
    app: AppRef
    instance: InstanceRef


class DeleteBucketCommand(TypedDict):
    """Ask the agent to delete a storage bucket."""

    kind: Literal["deleteBucket"]
    name: Annotated[str, "Bucket to delete"]


class CopyBucketCommand(TypedDict):
    """Ask the agent to copy a storage bucket's data."""

    kind: Literal["copyBucket"]
    source: Annotated[str, "Bucket to copy from"]
    destination: Annotated[str, "Bucket to copy into"]


AgentCommand = StartCommand | StopCommand | DeleteBucketCommand | CopyBucketCommand

# Fields the agent reports for one instance, keyed by field name.
ObservedFields = dict[str, Any]

# Point-in-time view of every live instance, keyed by instance name.
Snapshot = Mapping[str, ObservedFields]
