"""Entity readers consumed by the export aggregator.

`EntityReaders` is the collaborator interface. Entity sets that have no backing
source yet (events, users, schedules) return empty collections by default so a
partially implemented upstream never breaks an export.

`HttpEntityReaders` reads collections from the surrounding application's API.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from backend.services.backup_scheduler.schemas import DateRange


Record = Dict[str, Any]


class EntityReaders(ABC):
    """Abstract source of the entity collections included in an export."""

    @abstractmethod
    async def list_clubs(self) -> List[Record]:
        """Return all clubs."""

    @abstractmethod
    async def list_zones(self) -> List[Record]:
        """Return all zones."""

    @abstractmethod
    async def list_event_types(self) -> List[Record]:
        """Return all event types."""

    async def list_events(self, date_range: Optional[DateRange] = None) -> List[Record]:
        """Return events, optionally restricted to a date range.

        Args:
            date_range: Optional start/end filter.

        Returns:
            List[Record]: Events. The base implementation has no event source.
        """

        return []

    async def list_users(self) -> List[Record]:
        """Return users. The base implementation has no user source."""

        return []

    async def list_schedules(self) -> List[Record]:
        """Return schedules of the surrounding application (not backup schedules)."""

        return []


class HttpEntityReaders(EntityReaders):
    """Read entity collections over HTTP.

    Each endpoint is expected to return either a JSON list or an object holding
    the list under the collection's key (e.g. ``{"clubs": [...]}``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the readers.

        Args:
            base_url: API base URL, e.g. http://app:3000/api.
            api_key: Optional bearer token.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """

        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    async def _get_collection(self, path: str, key: str, params: Optional[Dict[str, str]] = None) -> List[Record]:
        """GET a collection endpoint.

        Args:
            path: Endpoint path relative to the base URL.
            key: Key holding the list when the response is an object.
            params: Optional query parameters.

        Returns:
            List[Record]: Records.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx responses.
            ValueError: When the response does not contain a list.
        """

        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(f"{self.base_url}{path}", headers=headers, params=params)
            response.raise_for_status()
            data = response.json()

        if isinstance(data, dict):
            data = data.get(key)
        if not isinstance(data, list):
            raise ValueError(f"Unexpected response from {path}: expected a list of {key}")
        return data

    async def list_clubs(self) -> List[Record]:
        return await self._get_collection("/clubs", "clubs")

    async def list_zones(self) -> List[Record]:
        return await self._get_collection("/zones", "zones")

    async def list_event_types(self) -> List[Record]:
        return await self._get_collection("/event-types", "eventTypes")
