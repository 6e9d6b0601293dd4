"""
HTTP fetch operation.

Thin wrapper around httpx. GETs JSON from one URL, forwarding dependency
values as query parameters. Raises FetchError on failures.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

import httpx

from resource_cache.models import FetchError

logger = logging.getLogger(__name__)


class HttpSource:
    """
    Async fetch operation backed by an httpx client.

    Connection errors, 429 and 5xx responses are transient failures; any
    other non-200 status is permanent, since retrying the same request
    would fail the same way.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: str,
        params: Iterable[str] = (),
        api_key: Optional[str] = None,
        data_field: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self._http = http_client
        self._url = url
        self._params = list(params)
        self._api_key = api_key
        self._data_field = data_field
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        if self._api_key:
            return {"x-api-key": self._api_key}
        return {}

    def _query(self, context: Mapping[str, Any]) -> dict[str, str]:
        return {
            key: str(context[key])
            for key in self._params
            if context.get(key) is not None
        }

    async def __call__(self, context: Mapping[str, Any]) -> Any:
        """Fetch the resource. Returns the JSON body or its data_field."""
        try:
            response = await self._http.get(
                self._url,
                params=self._query(context),
                headers=self._headers(),
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            logger.error("Source request failed: %s %s -> %s", "GET", self._url, exc)
            raise FetchError(f"Connection error: {exc}") from exc

        if response.status_code == 429:
            raise FetchError("Rate limited by source", status_code=429)

        if response.status_code >= 500:
            raise FetchError(
                f"Source returned {response.status_code}",
                status_code=response.status_code,
            )

        if response.status_code != 200:
            raise FetchError(
                f"Source returned {response.status_code}",
                permanent=True,
                status_code=response.status_code,
            )

        body = response.json()
        if self._data_field is None:
            return body
        return body.get(self._data_field)
