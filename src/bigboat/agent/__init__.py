"""Agent-facing transports: command dispatch and service log tailing."""

from bigboat.agent.channel import (
    COMMAND_PATHS,
    AgentCommandChannel,
    HttpCommandChannel,
    InMemoryCommandChannel,
)
from bigboat.agent.logs import fetch_service_logs

__all__ = [
    "COMMAND_PATHS",
    "AgentCommandChannel",
    "HttpCommandChannel",
    "InMemoryCommandChannel",
    "fetch_service_logs",
]
