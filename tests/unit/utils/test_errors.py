"""Unit tests for structured error types."""

import pytest

from bigboat.utils.errors import (
    AppNotFoundError,
    BucketExistsError,
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


class TestDashboardError:
    """Test base DashboardError class."""

    def test_initialization(self) -> None:
        """Test error initialization with message and recovery action."""
        error = DashboardError("Test error", RecoveryAction.RETRY)
        assert str(error) == "Test error"
        assert error.recovery_action == RecoveryAction.RETRY

    def test_default_recovery_action(self) -> None:
        """Test default recovery action is ABORT."""
        assert DashboardError("Test error").recovery_action == RecoveryAction.ABORT


class TestNotFoundErrors:
    """Test the not-found family."""

    def test_app_not_found(self) -> None:
        error = AppNotFoundError("nginx", "1.0")

        assert isinstance(error, NotFoundError)
        assert str(error) == "App nginx:1.0 does not exist"
        assert (error.name, error.version) == ("nginx", "1.0")
        assert error.recovery_action == RecoveryAction.ABORT

    def test_instance_not_found(self) -> None:
        error = InstanceNotFoundError("web1")
        assert error.kind == "Instance"
        assert error.key == "web1"


class TestConflictErrors:
    """Test the conflict family."""

    @pytest.mark.parametrize(
        "error,message",
        [
            (InstanceExistsError("web1"), "Instance web1 already exists"),
            (BucketExistsError("data"), "Bucket data already exists"),
            (
                DuplicateRecordError("apps", {"name": "a", "version": "1"}),
                "Record in apps name=a,version=1 already exists",
            ),
        ],
    )
    def test_messages(self, error, message) -> None:
        assert isinstance(error, ConflictError)
        assert str(error) == message


class TestFailureErrors:
    """Test store, dispatch, compose and catalog failures."""

    def test_store_failure_retries(self) -> None:
        cause = OSError("disk full")
        error = StoreFailureError("upsert", "instances", cause)

        assert error.cause is cause
        assert error.recovery_action == RecoveryAction.RETRY
        assert str(error) == "Store upsert on instances failed: disk full"

    def test_dispatch_failure_awaits_reconciliation(self) -> None:
        """Test that a lost command keeps the record it followed."""
        error = DispatchFailureError("start", "timeout", {"name": "web1"})

        assert error.command == "start"
        assert error.record == {"name": "web1"}
        assert error.recovery_action == RecoveryAction.AWAIT_RECONCILIATION
        assert "start" in str(error)

    def test_compose_error(self) -> None:
        error = ComposeError("wordpress", "bad indent")
        assert error.app_name == "wordpress"
        assert "bad indent" in str(error)

    def test_catalog_error_retries_later(self) -> None:
        error = CatalogError("http://store", "HTTP 503")
        assert error.recovery_action == RecoveryAction.RETRY_WITH_DELAY
