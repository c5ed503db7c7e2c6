"""Facade exposing the addon operations used by the HTTP layer."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ..catalog_ids import Source
from ..models import AddonManifest, CatalogRequest, InternalSource
from .addon_cache import AddonInterface, AddonInterfaceCache
from .addon_proxy import AddonProxy
from .config_store import ConfigStore
from .manifest import ManifestComposer
from .mdblist import MDBListClient, MDBListError, is_api_key_plausible
from .router import CatalogRouter
from .watchlist import build_mdblist_source, build_watchlist_source

logger = logging.getLogger(__name__)


class AddonService:
    """Serves manifests and catalogs for every configured user."""

    def __init__(
        self,
        store: ConfigStore,
        composer: ManifestComposer,
        router: CatalogRouter,
        cache: AddonInterfaceCache,
        proxy: AddonProxy,
        mdblist: MDBListClient,
    ) -> None:
        self._store = store
        self._composer = composer
        self._router = router
        self._cache = cache
        self._proxy = proxy
        self._mdblist = mdblist

    @property
    def store(self) -> ConfigStore:
        return self._store

    @property
    def cache(self) -> AddonInterfaceCache:
        return self._cache

    async def get_manifest(self, user_id: str) -> AddonManifest:
        """Compose the user's manifest from a fresh read of their sources."""

        sources = await self._store.get_all_sources(user_id)
        logger.info("Found %d catalogs for user %s", len(sources), user_id)
        return self._composer.compose(user_id, sources)

    async def get_catalog(
        self,
        user_id: str,
        content_type: str,
        catalog_id: str,
        extra: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        interface = await self._cache.get_or_build(user_id, self._build_interface)
        request = CatalogRequest(type=content_type, id=catalog_id, extra=dict(extra or {}))
        return await interface.catalog(request)

    async def _build_interface(self, user_id: str) -> AddonInterface:
        sources = await self._store.get_all_sources(user_id)
        randomized = await self._store.get_randomized_source_ids(user_id)
        keys = await self._store.get_api_keys(user_id)
        logger.info("Building addon interface for user %s (%d sources)", user_id, len(sources))
        return AddonInterface(
            user_id=user_id,
            manifest=self._composer.compose(user_id, sources),
            sources=tuple(sources),
            randomized=frozenset(randomized),
            keys=keys,
            router=self._router,
        )

    async def list_sources(self, user_id: str) -> list[dict[str, Any]]:
        if not await self._store.user_exists(user_id):
            raise KeyError(f"User {user_id} not found")
        sources = await self._store.get_all_sources(user_id)
        randomized = await self._store.get_randomized_source_ids(user_id)
        return [
            {**source.to_payload(), "randomize": source.id in randomized}
            for source in sources
        ]

    async def add_addon(self, user_id: str, manifest_url: str) -> Source:
        """Attach the external addon published at ``manifest_url``."""

        if not await self._store.user_exists(user_id):
            raise KeyError(f"User {user_id} not found")
        source = await self._proxy.fetch_manifest(manifest_url)
        return await self._store.add_source(user_id, source)

    async def import_watchlist(self, user_id: str) -> InternalSource:
        """Attach the user's MDBList watchlist as an internal source."""

        api_key = await self._require_mdblist_key(user_id)
        try:
            metas = await self._mdblist.fetch_watchlist(api_key)
        except MDBListError as exc:
            raise ValueError(f"Failed to import watchlist: {exc}") from exc
        source = build_watchlist_source(user_id, metas)
        await self._store.add_source(user_id, source)
        logger.info("Imported MDBList watchlist for user %s", user_id)
        return source

    async def add_mdblist_list(
        self, user_id: str, list_id: str, name: str | None = None
    ) -> InternalSource:
        """Attach a public MDBList list as an internal source."""

        list_id = str(list_id).strip()
        if not list_id.isdigit():
            raise ValueError("MDBList list id must be numeric")
        api_key = await self._require_mdblist_key(user_id)

        list_name = (name or "").strip() or f"MDBList {list_id}"
        try:
            details = await self._mdblist.fetch_list_details(list_id, api_key)
        except MDBListError as exc:
            logger.warning("Error fetching MDBList list details for %s: %s", list_id, exc)
            details = None
        if details is not None:
            list_name = details.name

        try:
            metas = await self._mdblist.fetch_list_items(list_id, api_key)
        except MDBListError as exc:
            raise ValueError(f"Failed to add MDBList list {list_id}: {exc}") from exc
        source = build_mdblist_source(list_id, list_name, metas)
        await self._store.add_source(user_id, source)
        return source

    async def remove_source(self, user_id: str, source_id: str) -> bool:
        return await self._store.remove_source(user_id, source_id)

    async def update_source(
        self,
        user_id: str,
        source_id: str,
        *,
        custom_name: str | None = None,
        randomize: bool | None = None,
    ) -> Source:
        return await self._store.update_source(
            user_id, source_id, custom_name=custom_name, randomize=randomize
        )

    async def save_api_keys(self, user_id: str, payload: Mapping[str, Any]) -> dict[str, bool]:
        """Validate and store the API keys present in ``payload``."""

        updates: dict[str, Any] = {}
        if "mdblistApiKey" in payload:
            mdblist_key = payload.get("mdblistApiKey")
            if mdblist_key:
                if not await self._mdblist.validate_api_key(str(mdblist_key).strip()):
                    raise ValueError("Invalid MDBList API key")
            updates["mdblist_api_key"] = mdblist_key
        if "rpdbApiKey" in payload:
            updates["rpdb_api_key"] = payload.get("rpdbApiKey")
        keys = await self._store.save_api_keys(user_id, **updates)
        return {
            "mdblistApiKey": bool(keys.mdblist_api_key),
            "rpdbApiKey": bool(keys.rpdb_api_key),
        }

    async def _require_mdblist_key(self, user_id: str) -> str:
        if not await self._store.user_exists(user_id):
            raise KeyError(f"User {user_id} not found")
        keys = await self._store.get_api_keys(user_id)
        if not keys.mdblist_api_key or not is_api_key_plausible(keys.mdblist_api_key):
            raise ValueError(
                "MDBList API key not configured or invalid. Please save a valid API key first."
            )
        return keys.mdblist_api_key
