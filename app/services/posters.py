"""Rewrite catalog posters to RatingPosterDB artwork."""

from __future__ import annotations

from typing import Any, Callable, Sequence
from urllib.parse import quote

Enricher = Callable[[Sequence[dict[str, Any]]], list[dict[str, Any]]]

RPDB_BASE_URL = "https://api.ratingposterdb.com"


def process_poster_urls(
    metas: Sequence[dict[str, Any]],
    api_key: str,
    *,
    base_url: str = RPDB_BASE_URL,
) -> list[dict[str, Any]]:
    """Return copies of ``metas`` whose IMDb-keyed posters point at RPDB."""

    base = base_url.rstrip("/")
    key = quote(api_key.strip(), safe="")
    processed: list[dict[str, Any]] = []
    for meta in metas:
        updated = dict(meta)
        meta_id = str(updated.get("id") or "")
        if meta_id.startswith("tt"):
            updated["poster"] = (
                f"{base}/{key}/imdb/poster-default/{meta_id}.jpg?fallback=true"
            )
        processed.append(updated)
    return processed


def rpdb_enricher(api_key: str | None, *, base_url: str = RPDB_BASE_URL) -> Enricher | None:
    """Return a poster enricher for ``api_key``, or ``None`` without a key."""

    if not api_key or not api_key.strip():
        return None

    def enrich(metas: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        return process_poster_urls(metas, api_key, base_url=base_url)

    return enrich
