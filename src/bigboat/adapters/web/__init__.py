"""Web adapter for REST and WebSocket endpoints.

This module provides the FastAPI application serving dashboard queries and
lifecycle operations, agent snapshot intake and per-topic subscriptions.
"""

from bigboat.adapters.web.server import (
    CopyBucketRequest,
    ErrorResponse,
    ReconciliationResponse,
    StartInstanceRequest,
    StopInstanceRequest,
    WebAdapter,
    create_web_adapter,
    http_error,
)

__all__ = [
    "CopyBucketRequest",
    "ErrorResponse",
    "ReconciliationResponse",
    "StartInstanceRequest",
    "StopInstanceRequest",
    "WebAdapter",
    "create_web_adapter",
    "http_error",
]
