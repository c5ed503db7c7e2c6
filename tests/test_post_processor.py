"""Tests for result shuffling and poster enrichment."""

from __future__ import annotations

import random
from collections import Counter

from app.services.post_processor import post_process, shuffle_metas
from app.services.posters import process_poster_urls, rpdb_enricher


def _metas(*ids: str) -> list[dict[str, str]]:
    return [{"id": meta_id, "poster": f"https://img.example.com/{meta_id}.jpg"} for meta_id in ids]


def test_shuffle_is_unbiased_over_many_trials() -> None:
    rng = random.Random(20240601)
    trials = 6_000
    original = _metas("a", "b", "c")

    counts = Counter(
        tuple(meta["id"] for meta in shuffle_metas(original, rng)) for _ in range(trials)
    )

    assert len(counts) == 6
    expected = trials / 6
    chi_square = sum((observed - expected) ** 2 / expected for observed in counts.values())
    # 5 degrees of freedom; 25.7 is roughly the 0.9999 quantile.
    assert chi_square < 25.7
    for observed in counts.values():
        assert abs(observed - expected) < expected * 0.15


def test_shuffle_returns_a_copy() -> None:
    original = _metas("a", "b", "c", "d")
    snapshot = [dict(meta) for meta in original]

    shuffled = shuffle_metas(original, random.Random(1))

    assert original == snapshot
    assert sorted(meta["id"] for meta in shuffled) == ["a", "b", "c", "d"]


def test_post_process_without_options_copies_items() -> None:
    original = _metas("a", "b")

    processed = post_process(original)

    assert processed == original
    assert processed is not original
    assert all(new is not old for new, old in zip(processed, original))


def test_post_process_applies_enrichment_and_randomization() -> None:
    original = _metas("tt1", "tt2", "tt3", "x4")
    snapshot = [dict(meta) for meta in original]
    enrich_calls: list[int] = []

    def enrich(metas):
        enrich_calls.append(len(metas))
        return [{**meta, "enriched": True} for meta in metas]

    class Reverse(random.Random):
        def shuffle(self, x) -> None:  # type: ignore[override]
            x.reverse()

    processed = post_process(original, randomize=True, enrich=enrich, rng=Reverse())

    assert enrich_calls == [4]
    assert [meta["id"] for meta in processed] == ["x4", "tt3", "tt2", "tt1"]
    assert all(meta["enriched"] for meta in processed)
    assert original == snapshot


def test_single_item_is_never_shuffled() -> None:
    class Exploding(random.Random):
        def shuffle(self, x) -> None:  # type: ignore[override]
            raise AssertionError("shuffle should not run")

    assert post_process(_metas("a"), randomize=True, rng=Exploding()) == _metas("a")


def test_rpdb_posters_replace_imdb_keyed_artwork_only() -> None:
    original = _metas("tt0111161", "kitsu:1")

    processed = process_poster_urls(original, "t0-key")

    assert processed[0]["poster"] == (
        "https://api.ratingposterdb.com/t0-key/imdb/poster-default/tt0111161.jpg?fallback=true"
    )
    assert processed[1]["poster"] == "https://img.example.com/kitsu:1.jpg"
    assert original[0]["poster"] == "https://img.example.com/tt0111161.jpg"


def test_rpdb_enricher_requires_a_key() -> None:
    assert rpdb_enricher(None) is None
    assert rpdb_enricher("  ") is None

    enrich = rpdb_enricher("key", base_url="https://posters.example.com/")
    assert enrich is not None
    assert enrich(_metas("tt1"))[0]["poster"].startswith(
        "https://posters.example.com/key/imdb/"
    )
