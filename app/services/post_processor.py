"""Final shaping of catalog results before they are returned to Stremio."""

from __future__ import annotations

import random
from typing import Any, Sequence

from .posters import Enricher

_system_random = random.SystemRandom()


def shuffle_metas(
    metas: Sequence[dict[str, Any]], rng: random.Random | None = None
) -> list[dict[str, Any]]:
    """Return a uniformly shuffled copy of ``metas`` (Fisher-Yates)."""

    shuffled = list(metas)
    (rng or _system_random).shuffle(shuffled)
    return shuffled


def post_process(
    metas: Sequence[dict[str, Any]],
    *,
    randomize: bool = False,
    enrich: Enricher | None = None,
    rng: random.Random | None = None,
) -> list[dict[str, Any]]:
    """Return enriched and optionally shuffled copies of ``metas``.

    Neither the incoming sequence nor its meta dicts are modified.
    """

    processed = [dict(meta) for meta in metas]
    if enrich is not None and processed:
        processed = list(enrich(processed))
    if randomize and len(processed) > 1:
        processed = shuffle_metas(processed, rng)
    return processed
