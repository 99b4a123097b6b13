"""Remote app store catalog.

The app store publishes a YAML manifest listing app templates. Fetching it
is read-only and never touches the record stores.
"""

from typing import Any

import httpx
import yaml
from pydantic import ValidationError

from bigboat.schemas.models import AppTemplate
from bigboat.utils.errors import CatalogError
from bigboat.utils.telemetry import get_logger

DEFAULT_APPSTORE_URL = (
    "https://raw.githubusercontent.com/bigboat-io/appstore/master/apps.yml"
)


def parse_manifest(text: str, source: str = "<manifest>") -> list[AppTemplate]:
    """Parse an app store manifest.

    Raises:
        CatalogError: If the text is not a YAML list of app entries
    """
    try:
        data: Any = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise CatalogError(source, f"invalid YAML: {e}") from e

    if data is None:
        return []
    if not isinstance(data, list):
        raise CatalogError(source, "manifest must be a list of apps")

    try:
        return [AppTemplate.model_validate(entry) for entry in data]
    except ValidationError as e:
        raise CatalogError(source, f"invalid app entry: {e}") from e


class AppStoreClient:
    """Fetches app templates from the remote manifest, one request per call."""

    def __init__(
        self,
        url: str = DEFAULT_APPSTORE_URL,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(
            timeout=timeout_seconds, follow_redirects=True
        )
        self._owns_client = client is None
        self._logger = get_logger("bigboat.catalog")

    async def fetch(self) -> list[AppTemplate]:
        """Download and parse the manifest.

        Raises:
            CatalogError: If the download or the parse fails
        """
        try:
            response = await self._client.get(self.url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            self._logger.warning("App store fetch failed", url=self.url, error=str(e))
            raise CatalogError(self.url, str(e)) from e

        templates = parse_manifest(response.text, self.url)
        self._logger.info("App store fetched", url=self.url, apps=len(templates))
        return templates

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
