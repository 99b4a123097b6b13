"""One-way command channel to the orchestration agent.

Commands are fire-and-forget: a successful ``send`` only means the command
left this process. The agent's effect shows up in a later snapshot.
"""

from abc import ABC, abstractmethod
from typing import Any

import httpx

from bigboat.schemas.types import AgentCommand
from bigboat.utils.errors import DispatchFailureError
from bigboat.utils.telemetry import get_logger, record_agent_command

# Agent endpoint per command kind, relative to the agent's command URL
COMMAND_PATHS = {
    "start": "instance/start",
    "stop": "instance/stop",
    "deleteBucket": "storage/delete",
    "copyBucket": "storage/copy",
}


class AgentCommandChannel(ABC):
    """Base class for agent command transports.

    Subclasses implement ``_deliver``; ``send`` adds metrics, logging and
    turns transport errors into DispatchFailureError.
    """

    def __init__(self) -> None:
        self._logger = get_logger(f"bigboat.agent.{type(self).__name__}")

    async def send(self, command: AgentCommand) -> None:
        """Hand a command to the agent.

        Raises:
            DispatchFailureError: If the transport rejects the command
        """
        kind = command["kind"]
        if kind not in COMMAND_PATHS:
            raise ValueError(f"Unknown agent command: {kind}")

        try:
            await self._deliver(command)
        except DispatchFailureError:
            record_agent_command(kind, "error")
            raise
        except Exception as e:
            record_agent_command(kind, "error")
            self._logger.error(
                "Agent command dispatch failed",
                command=kind,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DispatchFailureError(kind, e) from e

        record_agent_command(kind, "success")
        self._logger.info("Agent command dispatched", command=kind)

    @abstractmethod
    async def _deliver(self, command: AgentCommand) -> None: ...

    async def close(self) -> None:
        """Release transport resources."""


class InMemoryCommandChannel(AgentCommandChannel):
    """Channel that keeps every command in a list, for tests and dry runs."""

    def __init__(self) -> None:
        super().__init__()
        self.sent: list[AgentCommand] = []

    async def _deliver(self, command: AgentCommand) -> None:
        self.sent.append(command)

    def of_kind(self, kind: str) -> list[AgentCommand]:
        return [c for c in self.sent if c["kind"] == kind]


class HttpCommandChannel(AgentCommandChannel):
    """Channel POSTing JSON commands to the agent's HTTP command endpoint."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None

    async def _deliver(self, command: AgentCommand) -> None:
        body: dict[str, Any] = {k: v for k, v in command.items() if k != "kind"}
        url = f"{self.base_url}/{COMMAND_PATHS[command['kind']]}"
        response = await self._client.post(url, json=body)
        if response.status_code >= 400:
            raise DispatchFailureError(
                command["kind"], f"agent answered HTTP {response.status_code}"
            )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
