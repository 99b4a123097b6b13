"""Pydantic models for record validation and subscriber-facing serialization.

Records live in the stores as plain documents with snake_case keys. The
models validate those documents and serialize them with camelCase aliases
for the notification bus and the HTTP surface.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class InstanceState(str, Enum):
    """Observed lifecycle state of an instance."""

    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"
    REMOVED = "removed"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value: Any) -> "InstanceState":
        """Map any reported value onto a known state, UNKNOWN if unrecognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


class DesiredState(str, Enum):
    """User intention for an instance."""

    RUNNING = "running"
    STOPPED = "stopped"


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_public(self) -> dict[str, Any]:
        """Serialize for subscribers and API clients."""
        return self.model_dump(mode="json", by_alias=True)

    def to_record(self) -> dict[str, Any]:
        """Serialize as a store document."""
        return self.model_dump(mode="json")


class AppDescriptor(_Record):
    """Application definition embedded in an instance."""

    name: str = Field(min_length=1)
    version: str = Field(min_length=1)
    docker_compose: str = ""
    bigboat_compose: str = ""


class App(AppDescriptor):
    """Stored app keyed by (name, version), with tags from its bigboat compose."""

    tags: list[str] = Field(default_factory=list)


class Instance(_Record):
    """Deployed workload keyed by its unique name.

    ``state``, ``services`` and ``reconciliation_stamp`` belong to the
    reconciler. ``desired_state``, ``started_by`` and ``stopped_by`` belong to
    the lifecycle controller.
    """

    name: str = Field(min_length=1)
    state: InstanceState = InstanceState.UNKNOWN
    desired_state: DesiredState | None = None
    status: str = ""
    storage_bucket: str | None = None
    app: AppDescriptor | None = None
    services: dict[str, dict[str, Any]] = Field(default_factory=dict)
    started_by: str | None = None
    stopped_by: str | None = None
    reconciliation_stamp: int | None = Field(default=None, exclude=True)

    @field_validator("state", mode="before")
    @classmethod
    def coerce_state(cls, v: Any) -> InstanceState:
        """Accept any agent-reported string."""
        return InstanceState.coerce(v)

    @field_validator("services", mode="before")
    @classmethod
    def coerce_services(cls, v: Any) -> dict[str, Any]:
        """Older records store an empty list for no services."""
        if v is None or v == []:
            return {}
        return v

    def service_list(self, name: str | None = None) -> list[dict[str, Any]]:
        """Services as a list with the service name merged in.

        Args:
            name: Only return the service with this name
        """
        return [
            {"name": service_name, **info}
            for service_name, info in self.services.items()
            if name is None or name == service_name
        ]


class Bucket(_Record):
    """Storage bucket; locked while an asynchronous agent operation is in flight."""

    name: str = Field(min_length=1)
    is_locked: bool = False


class Resource(_Record):
    """Infrastructure resource registered with the dashboard."""

    name: str = Field(min_length=1)


class DataStore(_Record):
    """Data store backing the instance buckets."""

    name: str = Field(min_length=1)


class AppTemplate(_Record):
    """Entry of the remote app store manifest."""

    name: str
    version: str = ""
    docker_compose: str = ""
    bigboat_compose: str = ""
    image: str | None = None
