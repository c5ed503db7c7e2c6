"""In-process catalog providers backed by MDBList data."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from ..models import CatalogRequest, InnerCatalog, InternalSource, UserKeys
from .mdblist import MDBListClient, MDBListError

logger = logging.getLogger(__name__)

WATCHLIST_PROVIDER = "mdblist_watchlist"
WATCHLIST_SOURCE_ID = "aiocatalogs_mdb_user_watchlist"
WATCHLIST_NAME = "MDBList Watchlist"
MDBLIST_PROVIDER = "mdblist"

# Watchlist inner catalog id -> Stremio content type.
WATCHLIST_BUCKETS: dict[str, str] = {"movies": "movie", "series": "series"}


def _content_flags(metas: Sequence[dict[str, Any]]) -> tuple[bool, bool]:
    has_movies = any(meta.get("type") == "movie" for meta in metas)
    has_series = any(meta.get("type") == "series" for meta in metas)
    return has_movies, has_series


def build_watchlist_source(
    user_id: str, metas: Sequence[dict[str, Any]]
) -> InternalSource:
    """Describe the user's watchlist as a source, driven by its contents.

    When the watchlist holds neither movies nor series both buckets are
    still declared so the catalogs appear once items are added.
    """

    has_movies, has_series = _content_flags(metas)
    if not (has_movies or has_series):
        logger.info(
            "Watchlist for %s has no movies or series; adding placeholder catalogs",
            user_id,
        )
        has_movies = has_series = True

    catalogs: list[InnerCatalog] = []
    if has_movies:
        catalogs.append(
            InnerCatalog(id="movies", type="movie", name=f"{WATCHLIST_NAME} (Movies)")
        )
    if has_series:
        catalogs.append(
            InnerCatalog(id="series", type="series", name=f"{WATCHLIST_NAME} (Series)")
        )
    return InternalSource(
        id=WATCHLIST_SOURCE_ID,
        name=WATCHLIST_NAME,
        description="Your personal MDBList Watchlist.",
        provider=WATCHLIST_PROVIDER,
        handle=user_id,
        catalogs=catalogs,
        resources=["catalog"],
        types=[catalog.type for catalog in catalogs],
    )


def build_mdblist_source(
    list_id: str, name: str, metas: Sequence[dict[str, Any]]
) -> InternalSource:
    """Describe a public MDBList list as a source."""

    has_movies, has_series = _content_flags(metas)
    if not (has_movies or has_series):
        has_movies = has_series = True
    inner_id = f"mdblist_{list_id}"
    catalogs = [
        InnerCatalog(id=inner_id, type=content_type, name=name)
        for content_type, present in (("movie", has_movies), ("series", has_series))
        if present
    ]
    return InternalSource(
        id=inner_id,
        name=name,
        description=f"{name} - MDBList catalog",
        provider=MDBLIST_PROVIDER,
        handle=list_id,
        catalogs=catalogs,
        resources=["catalog"],
        types=["movie", "series"],
    )


class WatchlistStrategy:
    """Serves the ``movies`` and ``series`` buckets of a user's watchlist."""

    def __init__(self, client: MDBListClient) -> None:
        self._client = client

    async def fetch(
        self,
        source: InternalSource,
        request: CatalogRequest,
        inner_id: str,
        keys: UserKeys,
    ) -> list[dict[str, Any]]:
        content_type = WATCHLIST_BUCKETS.get(inner_id)
        if content_type is None:
            logger.warning(
                "Invalid watchlist bucket %r for source %s; expected movies or series",
                inner_id,
                source.id,
            )
            return []
        if not keys.mdblist_api_key:
            logger.warning(
                "No MDBList API key for watchlist %s (user %s)", source.id, source.handle
            )
            return []
        try:
            metas = await self._client.fetch_watchlist(keys.mdblist_api_key)
        except MDBListError as exc:
            logger.error("Error fetching MDBList watchlist for %s: %s", source.handle, exc)
            return []
        return [dict(meta) for meta in metas if meta.get("type") == content_type]


class MDBListStrategy:
    """Serves a public MDBList list filtered by the requested content type."""

    def __init__(self, client: MDBListClient) -> None:
        self._client = client

    async def fetch(
        self,
        source: InternalSource,
        request: CatalogRequest,
        inner_id: str,
        keys: UserKeys,
    ) -> list[dict[str, Any]]:
        list_id = source.handle
        if not list_id.isdigit():
            logger.warning("Invalid MDBList list id %r on source %s", list_id, source.id)
            return []
        if not keys.mdblist_api_key:
            logger.warning("No MDBList API key for list %s", list_id)
            return []
        try:
            metas = await self._client.fetch_list_items(list_id, keys.mdblist_api_key)
        except MDBListError as exc:
            logger.error("Error fetching MDBList list %s: %s", list_id, exc)
            return []
        return [dict(meta) for meta in metas if meta.get("type") == request.type]
