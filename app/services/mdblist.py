"""Utilities for communicating with the MDBList API."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_API_KEY_RE = re.compile(r"^[A-Za-z0-9]{16,64}$")

# MDBList groups list entries by media type; Stremio calls shows "series".
_MEDIA_BUCKETS: tuple[tuple[str, str], ...] = (("movies", "movie"), ("shows", "series"))


class MDBListError(RuntimeError):
    """Raised when MDBList cannot be reached or returns an unusable payload."""


@dataclass(slots=True)
class MDBListDetails:
    """Descriptive fields of a public MDBList list."""

    id: str
    name: str
    slug: str | None = None
    user_name: str | None = None
    items: int = 0


def is_api_key_plausible(api_key: str | None) -> bool:
    """Return whether ``api_key`` has the shape of an MDBList key."""

    return bool(api_key and _API_KEY_RE.match(api_key.strip()))


class MDBListClient:
    """Thin wrapper around the MDBList HTTP API."""

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self._client = http_client

    async def fetch_watchlist(self, api_key: str) -> list[dict[str, Any]]:
        """Return the user's watchlist as Stremio metas."""

        payload = await self._get("/watchlist/items", api_key)
        return self.to_metas(payload)

    async def fetch_list_items(self, list_id: str, api_key: str) -> list[dict[str, Any]]:
        """Return the entries of list ``list_id`` as Stremio metas."""

        payload = await self._get(f"/lists/{list_id}/items", api_key)
        return self.to_metas(payload)

    async def fetch_list_details(self, list_id: str, api_key: str) -> MDBListDetails | None:
        payload = await self._get(f"/lists/{list_id}", api_key)
        entries = payload if isinstance(payload, list) else [payload]
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("name"):
                continue
            return MDBListDetails(
                id=str(entry.get("id") or list_id),
                name=str(entry["name"]),
                slug=entry.get("slug"),
                user_name=entry.get("user_name"),
                items=_coerce_int(entry.get("items")),
            )
        return None

    async def validate_api_key(self, api_key: str) -> bool:
        """Return whether MDBList accepts ``api_key``.

        The top lists endpoint is cheap and always populated, so a well-formed
        non-empty answer is taken as proof the key works.
        """

        if not is_api_key_plausible(api_key):
            return False
        try:
            payload = await self._get("/lists/top", api_key)
        except MDBListError as exc:
            logger.warning("MDBList API key validation failed: %s", exc)
            return False
        if not isinstance(payload, list) or not payload:
            return False
        first = payload[0]
        return isinstance(first, dict) and {"name", "user_name"} <= first.keys()

    async def _get(self, path: str, api_key: str) -> Any:
        try:
            response = await self._client.get(path, params={"apikey": api_key})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise MDBListError(
                f"MDBList returned {exc.response.status_code} for {path}"
            ) from exc
        except httpx.HTTPError as exc:
            raise MDBListError(f"MDBList request for {path} failed: {exc}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise MDBListError(f"MDBList returned invalid JSON for {path}") from exc

    @staticmethod
    def to_metas(payload: Any) -> list[dict[str, Any]]:
        """Convert an MDBList ``{movies, shows}`` payload into Stremio metas."""

        if not isinstance(payload, dict):
            raise MDBListError("Unexpected MDBList response structure")
        metas: list[dict[str, Any]] = []
        for bucket, content_type in _MEDIA_BUCKETS:
            entries = payload.get(bucket) or []
            if not isinstance(entries, list):
                continue
            for entry in entries:
                if not isinstance(entry, dict):
                    continue
                imdb_id = str(entry.get("imdb_id") or "").strip()
                if not imdb_id.startswith("tt"):
                    continue
                meta: dict[str, Any] = {
                    "id": imdb_id,
                    "type": content_type,
                    "name": entry.get("title") or imdb_id,
                }
                year = entry.get("release_year")
                if year:
                    meta["releaseInfo"] = str(year)
                poster = entry.get("poster")
                if isinstance(poster, str) and poster.startswith("http"):
                    meta["poster"] = poster
                metas.append(meta)
        return metas


def _coerce_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
