"""Utility helpers for the AIOCatalogs service."""

from __future__ import annotations

import secrets
from typing import Any


def normalize_addon_url(value: str | None) -> str | None:
    """Return the addon base URL for a manifest or endpoint URL."""

    if not value:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    normalized = normalized.split("?", 1)[0].split("#", 1)[0]
    if normalized.lower().startswith("stremio://"):
        normalized = "https://" + normalized[len("stremio://"):]
    normalized = normalized.rstrip("/")
    lowered = normalized.lower()
    for suffix in ("/manifest.json", "/manifest"):
        if lowered.endswith(suffix):
            normalized = normalized[: -len(suffix)].rstrip("/")
            break
    return normalized or None


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in {"1", "true", "yes", "on"}
    if isinstance(value, (int, float)):
        return bool(value)
    return False


def generate_user_id() -> str:
    """Return a new opaque, URL-safe user identifier."""

    return secrets.token_hex(8)
