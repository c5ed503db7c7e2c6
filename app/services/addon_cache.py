"""Per-user memo of assembled addon interfaces."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from ..catalog_ids import Source
from ..models import AddonManifest, CatalogRequest, UserKeys
from .router import CatalogRouter

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AddonInterface:
    """A user's manifest plus the catalog handler bound to their sources."""

    user_id: str
    manifest: AddonManifest
    sources: tuple[Source, ...]
    randomized: frozenset[str]
    keys: UserKeys
    router: CatalogRouter = field(repr=False)

    async def catalog(self, request: CatalogRequest) -> dict[str, Any]:
        logger.debug(
            "Catalog request for %s - %s/%s", self.user_id, request.type, request.id
        )
        metas = await self.router.route(
            request, self.sources, randomized=self.randomized, keys=self.keys
        )
        return {"metas": metas}


InterfaceBuilder = Callable[[str], Awaitable[AddonInterface]]


class AddonInterfaceCache:
    """Holds at most one interface per user until explicitly invalidated.

    Entries never expire on their own; every configuration change must call
    :meth:`invalidate`. A build that was started before an invalidation is
    returned to its caller but never stored. Concurrent misses for one user
    may each build an interface; the last one stored wins.
    """

    def __init__(self) -> None:
        self._entries: dict[str, AddonInterface] = {}
        self._generations: dict[str, int] = {}
        self._epoch = 0

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, user_id: str) -> AddonInterface | None:
        return self._entries.get(user_id)

    async def get_or_build(
        self, user_id: str, builder: InterfaceBuilder
    ) -> AddonInterface:
        cached = self._entries.get(user_id)
        if cached is not None:
            logger.debug("Using cached addon interface for user %s", user_id)
            return cached
        generation = self._generation(user_id)
        interface = await builder(user_id)
        if self._generation(user_id) != generation:
            logger.debug(
                "Configuration for user %s changed during build; not caching", user_id
            )
            return interface
        self._entries[user_id] = interface
        return interface

    def _generation(self, user_id: str) -> tuple[int, int]:
        return self._epoch, self._generations.get(user_id, 0)

    def invalidate(self, user_id: str) -> None:
        self._generations[user_id] = self._generations.get(user_id, 0) + 1
        if self._entries.pop(user_id, None) is not None:
            logger.debug("Cleared addon cache for user %s", user_id)

    def invalidate_all(self) -> None:
        logger.debug("Clearing entire addon cache (%d entries)", len(self._entries))
        self._entries.clear()
        self._epoch += 1
