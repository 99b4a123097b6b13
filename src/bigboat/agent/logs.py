"""Service log tailing through the URLs the agent reports."""

from typing import Any

import httpx

# Docker multiplexed log streams prefix every line with an 8-byte header.
STREAM_HEADER_BYTES = 8
DEFAULT_TAIL = "1000"


async def fetch_service_logs(
    client: httpx.AsyncClient,
    service_info: dict[str, Any],
    tail: str = DEFAULT_TAIL,
) -> list[str]:
    """Fetch the last log lines of a service.

    Args:
        client: HTTP client to use
        service_info: Service runtime info as reported by the agent; its
            ``logs`` mapping holds one URL per tail length
        tail: Tail length key in ``logs``

    Returns:
        Log lines without the stream header, empty when the service reports
        no log URL for ``tail``

    Raises:
        httpx.HTTPError: If the log endpoint cannot be read
    """
    url = (service_info.get("logs") or {}).get(tail)
    if not url:
        return []

    response = await client.get(url)
    response.raise_for_status()
    return [line[STREAM_HEADER_BYTES:] for line in response.text.split("\n")]
