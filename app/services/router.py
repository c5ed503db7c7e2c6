"""Route catalog requests to the source that owns the composite id."""

from __future__ import annotations

import logging
import random
from typing import Any, Collection, Mapping, Protocol, Sequence

from ..catalog_ids import RoutingMiss, Source, match_catalog_id
from ..models import CatalogRequest, ExternalSource, InternalSource, UserKeys
from .addon_proxy import AddonProxy
from .manifest import DEFAULT_CATALOG_ID
from .post_processor import post_process
from .posters import RPDB_BASE_URL, rpdb_enricher

logger = logging.getLogger(__name__)


class InternalStrategy(Protocol):
    async def fetch(
        self,
        source: InternalSource,
        request: CatalogRequest,
        inner_id: str,
        keys: UserKeys,
    ) -> list[dict[str, Any]]: ...


class CatalogRouter:
    """Resolves a composite id and dispatches to a retrieval strategy.

    External sources are proxied over HTTP. Internal sources are looked up in
    ``providers`` by their provider tag; an internal source whose provider is
    not registered is a configuration bug and is answered with no results.
    """

    def __init__(
        self,
        proxy: AddonProxy,
        providers: Mapping[str, InternalStrategy],
        *,
        rpdb_base_url: str = RPDB_BASE_URL,
        rng: random.Random | None = None,
    ) -> None:
        self._proxy = proxy
        self._providers = dict(providers)
        self._rpdb_base_url = rpdb_base_url
        self._rng = rng

    async def route(
        self,
        request: CatalogRequest,
        sources: Sequence[Source],
        *,
        randomized: Collection[str] = (),
        keys: UserKeys | None = None,
    ) -> list[dict[str, Any]]:
        keys = keys or UserKeys()
        try:
            match = match_catalog_id(request.id, request.type, sources)
        except RoutingMiss:
            placeholder = request.id == DEFAULT_CATALOG_ID and request.type == "movie"
            if placeholder and not sources:
                logger.info(
                    "Serving empty metas for %s (%s): no catalogs configured",
                    request.id,
                    request.type,
                )
            else:
                logger.warning(
                    "Source or inner catalog not found for %s of type %s",
                    request.id,
                    request.type,
                )
            return []

        source = match.source
        try:
            metas = await self._dispatch(source, request, match.inner_id, keys)
        except Exception:
            logger.exception(
                "Catalog retrieval failed for %s/%s (source %s)",
                request.type,
                request.id,
                source.id,
            )
            return []

        enrich = rpdb_enricher(keys.rpdb_api_key, base_url=self._rpdb_base_url)
        randomize = source.id in randomized
        if randomize and len(metas) > 1:
            logger.debug("Randomizing catalog items for %s", source.id)
        return post_process(metas, randomize=randomize, enrich=enrich, rng=self._rng)

    async def _dispatch(
        self,
        source: Source,
        request: CatalogRequest,
        inner_id: str,
        keys: UserKeys,
    ) -> list[dict[str, Any]]:
        if isinstance(source, ExternalSource):
            return await self._proxy.fetch(source, request, inner_id, keys)
        if isinstance(source, InternalSource):
            strategy = self._providers.get(source.provider)
            if strategy is None:
                logger.error(
                    "Internal source %s has no registered provider %r; "
                    "refusing to fetch %s",
                    source.id,
                    source.provider,
                    source.endpoint,
                )
                return []
            return await strategy.fetch(source, request, inner_id, keys)
        raise TypeError(f"Unsupported source type: {type(source).__name__}")
