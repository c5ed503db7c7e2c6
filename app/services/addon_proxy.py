"""Relay catalog requests to third-party Stremio addons."""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from ..models import CatalogRequest, ExternalSource, UserKeys, parse_source
from ..utils import normalize_addon_url

logger = logging.getLogger(__name__)


class AddonManifestError(ValueError):
    """Raised when a third-party manifest cannot be loaded as a source."""


class AddonProxy:
    """Fetches catalogs and manifests from external addons over HTTP."""

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self._client = http_client

    @staticmethod
    def catalog_url(
        endpoint: str,
        content_type: str,
        inner_id: str,
        extra: Mapping[str, str] | None = None,
    ) -> str:
        """Return the upstream catalog URL for ``inner_id``."""

        base = endpoint[:-1] if endpoint.endswith("/") else endpoint
        if extra:
            return f"{base}/catalog/{content_type}/{inner_id}/{urlencode(extra)}.json"
        return f"{base}/catalog/{content_type}/{inner_id}.json"

    async def fetch(
        self,
        source: ExternalSource,
        request: CatalogRequest,
        inner_id: str,
        keys: UserKeys,
    ) -> list[dict[str, Any]]:
        """Return the metas of ``inner_id`` tagged with ``source.id``.

        Any upstream failure is logged and answered with an empty list.
        ``keys`` is unused; it keeps the calling shape of the internal
        strategies.
        """

        url = self.catalog_url(source.endpoint, request.type, inner_id, request.extra)
        logger.debug(
            "Fetching external catalog from %s (source %s, catalog %s)",
            url,
            source.id,
            inner_id,
        )
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            logger.error("Exception fetching catalog from %s: %s", url, exc)
            return []
        if not response.is_success:
            logger.error(
                "Error fetching catalog: %s %s from %s",
                response.status_code,
                response.reason_phrase,
                url,
            )
            return []

        try:
            payload = response.json()
        except ValueError:
            logger.error("Catalog response from %s is not valid JSON", url)
            return []

        metas = payload.get("metas") if isinstance(payload, dict) else None
        if not isinstance(metas, list):
            logger.error("Catalog response from %s has no metas list", url)
            return []

        return [
            {**meta, "sourceAddon": source.id}
            for meta in metas
            if isinstance(meta, dict)
        ]

    async def fetch_manifest(self, manifest_url: str) -> ExternalSource:
        """Load a third-party manifest and describe it as an external source."""

        endpoint = normalize_addon_url(manifest_url)
        if not endpoint or not endpoint.startswith(("http://", "https://")):
            raise AddonManifestError("Manifest URL must be an http(s) URL")

        url = f"{endpoint}/manifest.json"
        try:
            response = await self._client.get(url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise AddonManifestError(f"Unable to fetch manifest from {url}: {exc}") from exc
        except ValueError as exc:
            raise AddonManifestError(f"Manifest at {url} is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise AddonManifestError(f"Manifest at {url} is not an object")

        payload = {**payload, "kind": "external", "endpoint": endpoint}
        payload.pop("customName", None)
        try:
            source = parse_source(payload)
        except ValidationError as exc:
            raise AddonManifestError(f"Manifest at {url} is invalid: {exc}") from exc
        if not isinstance(source, ExternalSource):
            raise AddonManifestError(f"Manifest at {url} is invalid")
        if not source.catalogs:
            raise AddonManifestError(f"Addon at {endpoint} does not expose any catalogs")
        return source
