"""Structured error types for the dashboard control plane.

This module provides structured exceptions with recovery actions for the
failure kinds of the reconciliation loop and the lifecycle operations.
"""

from enum import Enum
from typing import Any


class RecoveryAction(Enum):
    """Recovery actions for error handling."""

    RETRY = "retry"
    ABORT = "abort"
    RETRY_WITH_DELAY = "retry_with_delay"
    AWAIT_RECONCILIATION = "await_reconciliation"


class DashboardError(Exception):
    """Base exception for control plane errors."""

    def __init__(
        self, message: str, recovery_action: RecoveryAction = RecoveryAction.ABORT
    ):
        """Initialize dashboard error.

        Args:
            message: Error message
            recovery_action: Suggested recovery action
        """
        super().__init__(message)
        self.recovery_action = recovery_action


class NotFoundError(DashboardError):
    """Error raised when a referenced record does not exist.

    The operation is rejected before any state change happens.
    """

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} {key} does not exist", RecoveryAction.ABORT)


class AppNotFoundError(NotFoundError):
    """Error raised when an app (name, version) is not in the store."""

    def __init__(self, name: str, version: str):
        self.name = name
        self.version = version
        super().__init__("App", f"{name}:{version}")


class InstanceNotFoundError(NotFoundError):
    """Error raised when no instance matches the given name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__("Instance", name)


class BucketNotFoundError(NotFoundError):
    """Error raised when no bucket matches the given name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__("Bucket", name)


class ConflictError(DashboardError):
    """Error raised when a record with the same key already exists."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} {key} already exists", RecoveryAction.ABORT)


class DuplicateRecordError(ConflictError):
    """Error raised by a store when an insert would violate key uniqueness."""

    def __init__(self, collection: str, key: dict[str, Any]):
        self.collection = collection
        self.record_key = key
        key_str = ",".join(f"{k}={v}" for k, v in key.items())
        super().__init__(f"Record in {collection}", key_str)


class InstanceExistsError(ConflictError):
    """Error raised when starting an instance whose name is already taken."""

    def __init__(self, name: str):
        self.name = name
        super().__init__("Instance", name)


class BucketExistsError(ConflictError):
    """Error raised when a copy destination bucket already exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__("Bucket", name)


class StoreFailureError(DashboardError):
    """Error raised when a record store call fails.

    A reconciliation pass that hits this error stops before its garbage
    collection sweep, so no record is deleted after a partial write.
    """

    def __init__(self, operation: str, collection: str, cause: Exception):
        self.operation = operation
        self.collection = collection
        self.cause = cause
        message = f"Store {operation} on {collection} failed: {cause}"
        super().__init__(message, RecoveryAction.RETRY)


class DispatchFailureError(DashboardError):
    """Error raised when a command cannot be handed to the agent.

    The store mutation that preceded the dispatch is kept. The command is
    lost and has to be re-derived by a later reconciliation or retry.
    """

    def __init__(
        self,
        command: str,
        cause: Exception | str,
        record: dict[str, Any] | None = None,
    ):
        self.command = command
        self.cause = cause
        self.record = record
        message = f"Dispatch of {command} command failed: {cause}"
        super().__init__(message, RecoveryAction.AWAIT_RECONCILIATION)


class ComposeError(DashboardError):
    """Error raised when an app compose definition cannot be parsed."""

    def __init__(self, app_name: str, reason: str):
        self.app_name = app_name
        self.reason = reason
        super().__init__(
            f"Invalid compose definition for app {app_name}: {reason}",
            RecoveryAction.ABORT,
        )


class CatalogError(DashboardError):
    """Error raised when the remote app store manifest cannot be fetched."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(
            f"App store fetch from {url} failed: {reason}",
            RecoveryAction.RETRY_WITH_DELAY,
        )
