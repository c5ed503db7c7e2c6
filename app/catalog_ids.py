"""Composite catalog identifiers shared by the manifest and the router.

A composite id is ``<source id>_<inner catalog id>``. Source ids may
themselves contain underscores (``aiocatalogs_mdb_user_watchlist``), so an id
is resolved by walking the user's sources in their configured order and
taking the first source whose prefix and inner catalog both fit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .models import ExternalSource, InternalSource

SEPARATOR = "_"

Source = ExternalSource | InternalSource


class RoutingMiss(LookupError):
    """Raised when a composite id matches no configured source catalog."""

    def __init__(self, composite_id: str, content_type: str) -> None:
        super().__init__(f"No catalog matches {content_type}/{composite_id}")
        self.composite_id = composite_id
        self.content_type = content_type


@dataclass(frozen=True, slots=True)
class CatalogMatch:
    source: Source
    inner_id: str


def compose_catalog_id(source_id: str, inner_id: str) -> str:
    """Return the client-facing id for ``inner_id`` of ``source_id``."""

    return f"{source_id}{SEPARATOR}{inner_id}"


def match_catalog_id(
    composite_id: str, content_type: str, sources: Sequence[Source]
) -> CatalogMatch:
    """Resolve ``composite_id`` back to a source and inner catalog id."""

    for source in sources:
        prefix = source.id + SEPARATOR
        if not composite_id.startswith(prefix):
            continue
        inner_id = composite_id[len(prefix):]
        for catalog in source.catalogs:
            if catalog.id == inner_id and catalog.type == content_type:
                return CatalogMatch(source=source, inner_id=inner_id)
    raise RoutingMiss(composite_id, content_type)


def find_ambiguities(sources: Sequence[Source]) -> list[str]:
    """Return composite ids that first-match routing sends to the wrong source."""

    shadowed: list[str] = []
    for source in sources:
        for catalog in source.catalogs:
            composite_id = compose_catalog_id(source.id, catalog.id)
            match = match_catalog_id(composite_id, catalog.type, sources)
            if match.source.id != source.id and composite_id not in shadowed:
                shadowed.append(composite_id)
    return shadowed
