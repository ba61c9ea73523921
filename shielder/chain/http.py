"""
HTTP transport shared by the relayer and TEE clients.

Owns the aiohttp session and the request timeout; callers see only
TransportError for connection problems and non-success statuses.
"""

import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp

from shielder.errors import TransportError
from shielder.utils.logger import get_logger

logger = get_logger("http")


class HttpTransport:
    """JSON-over-HTTP transport with a lazily created aiohttp session."""

    def __init__(
        self,
        timeout: float = 60.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Content-Type": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        url: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        session = self._get_session()
        logger.debug(f"{method} {url}")
        try:
            async with session.request(method, url, json=body, params=params) as response:
                text = await response.text()
                if response.status >= 400:
                    raise TransportError(
                        f"{method} {url} failed with status {response.status}",
                        status=response.status,
                        body=text,
                    )
        except aiohttp.ClientError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"{method} {url} timed out after {self.timeout}s") from e

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise TransportError(f"{method} {url} returned invalid JSON", body=text) from e

    async def get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Any:
        return await self._request("GET", url, params=params)

    async def post_json(self, url: str, body: Dict[str, Any]) -> Any:
        return await self._request("POST", url, body=body)
