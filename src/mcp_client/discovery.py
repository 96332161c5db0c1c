"""Discovery cache and result normalization for MCP Client.

Remote servers disagree on the shape of `tools/list` and
`resources/list` results; the normalizers here flatten every observed
variant. `DiscoveryCache` memoizes the flattened lists.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from shared.logging import get_logger

logger = get_logger(__name__)


Fetcher = Callable[[], Awaitable[list[dict[str, Any]]]]


def normalize_tools(result: Any) -> list[dict[str, Any]]:
    """
    Flatten a `tools/list` result.

    Accepts `{"tools": [...]}`, the nested `{"tools": {"tools": [...]}}`
    some servers emit, or a bare list.
    """
    while isinstance(result, dict) and "tools" in result:
        result = result["tools"]
    if isinstance(result, list):
        return result
    return []


def normalize_resources(result: Any) -> list[dict[str, Any]]:
    """Flatten a `resources/list` result: `{"resources": [...]}` or a bare list."""
    if isinstance(result, list):
        return result
    if isinstance(result, dict):
        resources = result.get("resources")
        if isinstance(resources, list):
            return resources
    return []


class _CacheSlot:
    """A lazily populated value with single-flight refresh."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.value: Optional[list[dict[str, Any]]] = None
        self._lock = asyncio.Lock()

    async def get_or_fetch(self, fetch: Fetcher) -> list[dict[str, Any]]:
        if self.value is not None:
            return list(self.value)

        async with self._lock:
            # Double-check after acquiring lock
            if self.value is not None:
                return list(self.value)

            value = await fetch()
            self.value = list(value)
            logger.debug("Discovery cache populated", slot=self.name, count=len(value))
            return list(value)

    def snapshot(self) -> Optional[list[dict[str, Any]]]:
        return None if self.value is None else list(self.value)

    def invalidate(self) -> None:
        self.value = None
        logger.debug("Discovery cache invalidated", slot=self.name)


class DiscoveryCache:
    """
    Memoized tool and resource lists.

    Each slot is empty until first fetched and then kept until it is
    invalidated explicitly; there is no expiry. Callers receive copies of
    the cached lists.
    """

    def __init__(self) -> None:
        self._tools = _CacheSlot("tools")
        self._resources = _CacheSlot("resources")

    @property
    def tools(self) -> Optional[list[dict[str, Any]]]:
        return self._tools.snapshot()

    @tools.setter
    def tools(self, value: Optional[list[dict[str, Any]]]) -> None:
        self._tools.value = value

    @property
    def resources(self) -> Optional[list[dict[str, Any]]]:
        return self._resources.snapshot()

    @resources.setter
    def resources(self, value: Optional[list[dict[str, Any]]]) -> None:
        self._resources.value = value

    async def get_tools(self, fetch: Fetcher) -> list[dict[str, Any]]:
        """Return cached tools, fetching them on first use."""
        return await self._tools.get_or_fetch(fetch)

    async def get_resources(self, fetch: Fetcher) -> list[dict[str, Any]]:
        """Return cached resources, fetching them on first use."""
        return await self._resources.get_or_fetch(fetch)

    def invalidate_tools(self) -> None:
        self._tools.invalidate()

    def invalidate_resources(self) -> None:
        self._resources.invalidate()

    def clear(self) -> None:
        """Invalidate both slots."""
        self._tools.value = None
        self._resources.value = None
