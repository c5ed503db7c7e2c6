"""Merge a user's catalog sources into a single addon manifest."""

from __future__ import annotations

import logging
from typing import Sequence

from ..catalog_ids import Source, compose_catalog_id
from ..config import Settings
from ..models import SUPPORTED_RESOURCES, AddonManifest, ManifestCatalog

logger = logging.getLogger(__name__)

ADDON_ID = "community.aiocatalogs"
DEFAULT_CATALOG_ID = "aiocatalogs-default"
DEFAULT_CATALOG_NAME = "AIO Catalogs (No catalogs added yet)"
ERROR_CATALOG_ID = "error"


class ManifestComposer:
    """Builds the aggregate manifest served to Stremio for one user."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def compose(self, user_id: str, sources: Sequence[Source]) -> AddonManifest:
        """Return the aggregate manifest, or the error manifest on failure."""

        try:
            logger.debug(
                "Building manifest for user %s with %d catalog sources",
                user_id,
                len(sources),
            )
            if not sources:
                return self._placeholder_manifest(user_id)
            return self._aggregate_manifest(user_id, sources)
        except Exception:
            logger.exception("Error building manifest for user %s", user_id)
            return self._error_manifest(user_id)

    def _aggregate_manifest(
        self, user_id: str, sources: Sequence[Source]
    ) -> AddonManifest:
        catalogs: list[ManifestCatalog] = []
        emitted: set[tuple[str, str]] = set()
        types: list[str] = []
        resources: list[str] = []

        for source in sources:
            for inner in source.catalogs:
                # Search helpers carry no browsable content.
                if "search" in inner.id.lower():
                    continue
                composite_id = compose_catalog_id(source.id, inner.id)
                key = (inner.type, composite_id)
                if key in emitted:
                    continue
                emitted.add(key)
                entry = inner.protocol_fields()
                entry.update(
                    id=composite_id,
                    name=source.display_name(inner),
                    source=source.id,
                )
                catalogs.append(ManifestCatalog.model_validate(entry))
                if inner.type not in types:
                    types.append(inner.type)

            for resource in sorted(source.resource_names() & SUPPORTED_RESOURCES):
                if resource not in resources:
                    resources.append(resource)

        if not catalogs:
            logger.info(
                "Sources for user %s expose no browsable catalogs; using placeholder",
                user_id,
            )
            catalogs.append(
                ManifestCatalog(
                    type="movie", id=DEFAULT_CATALOG_ID, name=DEFAULT_CATALOG_NAME
                )
            )
            types = ["movie"]

        return self._envelope(
            user_id,
            catalogs=catalogs,
            types=types,
            resources=resources or sorted(SUPPORTED_RESOURCES),
        )

    def _placeholder_manifest(self, user_id: str) -> AddonManifest:
        catalogs = [
            ManifestCatalog(
                type=content_type, id=DEFAULT_CATALOG_ID, name=DEFAULT_CATALOG_NAME
            )
            for content_type in ("movie", "series")
        ]
        return self._envelope(
            user_id,
            catalogs=catalogs,
            types=["movie", "series"],
            resources=["catalog"],
        )

    def _error_manifest(self, user_id: str) -> AddonManifest:
        catalog = ManifestCatalog(
            type="movie",
            id=ERROR_CATALOG_ID,
            name="Error: Configuration could not be loaded",
        )
        return self._envelope(
            user_id,
            catalogs=[catalog],
            types=["movie"],
            resources=["catalog"],
            description="Error loading configuration",
        )

    def _envelope(
        self,
        user_id: str,
        *,
        catalogs: list[ManifestCatalog],
        types: list[str],
        resources: list[str],
        description: str | None = None,
    ) -> AddonManifest:
        settings = self._settings
        return AddonManifest(
            id=f"{ADDON_ID}.{user_id}",
            version=settings.addon_version,
            name=settings.app_name,
            description=description or settings.addon_description,
            logo=str(settings.addon_logo) if settings.addon_logo else None,
            background=(
                str(settings.addon_background) if settings.addon_background else None
            ),
            resources=resources,
            types=types,
            catalogs=catalogs,
        )
