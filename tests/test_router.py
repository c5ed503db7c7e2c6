"""Tests for catalog request routing and dispatch."""

from __future__ import annotations

import logging
import random
from typing import Any

import httpx
import pytest

from app.models import (
    CatalogRequest,
    ExternalSource,
    InnerCatalog,
    InternalSource,
    UserKeys,
)
from app.services.addon_proxy import AddonProxy
from app.services.manifest import DEFAULT_CATALOG_ID
from app.services.router import CatalogRouter


def _external(source_id: str = "s1") -> ExternalSource:
    return ExternalSource(
        id=source_id,
        name=source_id,
        endpoint=f"https://{source_id}.example.com/",
        catalogs=[InnerCatalog(id="top", type="movie", name="Top Movies")],
        resources=["catalog"],
    )


def _internal(provider: str = "mdblist_watchlist") -> InternalSource:
    return InternalSource(
        id="aiocatalogs_mdb_user_watchlist",
        provider=provider,
        handle="user-1",
        catalogs=[
            InnerCatalog(id="movies", type="movie", name="Movies"),
            InnerCatalog(id="series", type="series", name="Series"),
        ],
    )


class RecordingStrategy:
    def __init__(self, metas: list[dict[str, Any]] | None = None, *, fail: bool = False):
        self.metas = metas if metas is not None else [{"id": "tt9", "type": "movie"}]
        self.fail = fail
        self.calls: list[tuple[str, str, UserKeys]] = []

    async def fetch(self, source, request, inner_id, keys):
        self.calls.append((source.id, inner_id, keys))
        if self.fail:
            raise RuntimeError("provider bug")
        return [dict(meta) for meta in self.metas]


class Recorder:
    """MockTransport handler that records URLs and answers with fixed metas."""

    def __init__(self, metas: list[dict[str, Any]] | None = None) -> None:
        self.urls: list[str] = []
        self.metas = metas if metas is not None else [{"id": "m1"}]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.urls.append(str(request.url))
        return httpx.Response(200, json={"metas": self.metas})


@pytest.mark.anyio("asyncio")
async def test_external_request_is_proxied_and_tagged() -> None:
    recorder = Recorder()
    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http_client:
        router = CatalogRouter(AddonProxy(http_client), {})
        metas = await router.route(
            CatalogRequest(type="movie", id="s1_top"), [_external()]
        )

    assert recorder.urls == ["https://s1.example.com/catalog/movie/top.json"]
    assert metas == [{"id": "m1", "sourceAddon": "s1"}]


@pytest.mark.anyio("asyncio")
async def test_extra_params_are_forwarded_upstream() -> None:
    recorder = Recorder()
    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http_client:
        router = CatalogRouter(AddonProxy(http_client), {})
        await router.route(
            CatalogRequest.from_path("movie", "s1_top", "skip=100&genre=Drama"),
            [_external()],
        )

    assert recorder.urls == [
        "https://s1.example.com/catalog/movie/top/skip=100&genre=Drama.json"
    ]


@pytest.mark.anyio("asyncio")
async def test_unknown_catalog_returns_empty_and_warns(caplog) -> None:
    recorder = Recorder()
    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http_client:
        router = CatalogRouter(AddonProxy(http_client), {})
        with caplog.at_level(logging.WARNING, logger="app.services.router"):
            metas = await router.route(
                CatalogRequest(type="movie", id="nope_top"), [_external()]
            )

    assert metas == []
    assert recorder.urls == []
    assert any("not found" in record.getMessage() for record in caplog.records)


@pytest.mark.anyio("asyncio")
async def test_placeholder_catalog_is_served_empty(caplog) -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(Recorder())) as http_client:
        router = CatalogRouter(AddonProxy(http_client), {})
        with caplog.at_level(logging.INFO, logger="app.services.router"):
            metas = await router.route(
                CatalogRequest(type="movie", id=DEFAULT_CATALOG_ID), []
            )

    assert metas == []
    assert [record.levelno for record in caplog.records] == [logging.INFO]


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    ("content_type", "configured"), [("movie", True), ("series", False)]
)
async def test_stray_placeholder_requests_warn(
    caplog, content_type: str, configured: bool
) -> None:
    sources = [_external()] if configured else []
    async with httpx.AsyncClient(transport=httpx.MockTransport(Recorder())) as http_client:
        router = CatalogRouter(AddonProxy(http_client), {})
        with caplog.at_level(logging.INFO, logger="app.services.router"):
            metas = await router.route(
                CatalogRequest(type=content_type, id=DEFAULT_CATALOG_ID), sources
            )

    assert metas == []
    assert [record.levelno for record in caplog.records] == [logging.WARNING]


@pytest.mark.anyio("asyncio")
async def test_internal_source_dispatches_by_provider_tag() -> None:
    strategy = RecordingStrategy()
    keys = UserKeys(mdblist_api_key="k")
    async with httpx.AsyncClient(transport=httpx.MockTransport(Recorder())) as http_client:
        router = CatalogRouter(AddonProxy(http_client), {"mdblist_watchlist": strategy})
        metas = await router.route(
            CatalogRequest(type="series", id="aiocatalogs_mdb_user_watchlist_series"),
            [_external(), _internal()],
            keys=keys,
        )

    assert strategy.calls == [("aiocatalogs_mdb_user_watchlist", "series", keys)]
    assert metas == [{"id": "tt9", "type": "movie"}]


@pytest.mark.anyio("asyncio")
async def test_unregistered_internal_provider_never_hits_http(caplog) -> None:
    recorder = Recorder()
    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http_client:
        router = CatalogRouter(AddonProxy(http_client), {})
        with caplog.at_level(logging.ERROR, logger="app.services.router"):
            metas = await router.route(
                CatalogRequest(type="movie", id="aiocatalogs_mdb_user_watchlist_movies"),
                [_internal(provider="unknown_provider")],
            )

    assert metas == []
    assert recorder.urls == []
    assert any("no registered provider" in record.getMessage() for record in caplog.records)


@pytest.mark.anyio("asyncio")
async def test_strategy_crash_degrades_to_empty() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(Recorder())) as http_client:
        router = CatalogRouter(
            AddonProxy(http_client), {"mdblist_watchlist": RecordingStrategy(fail=True)}
        )
        metas = await router.route(
            CatalogRequest(type="movie", id="aiocatalogs_mdb_user_watchlist_movies"),
            [_internal()],
        )

    assert metas == []


@pytest.mark.anyio("asyncio")
async def test_randomized_sources_are_shuffled_and_posters_enriched() -> None:
    recorder = Recorder([{"id": f"tt{index}"} for index in range(5)])

    class Reverse(random.Random):
        def shuffle(self, x) -> None:  # type: ignore[override]
            x.reverse()

    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http_client:
        router = CatalogRouter(
            AddonProxy(http_client),
            {},
            rpdb_base_url="https://posters.example.com",
            rng=Reverse(),
        )
        request = CatalogRequest(type="movie", id="s1_top")
        plain = await router.route(request, [_external()])
        shuffled = await router.route(
            request,
            [_external()],
            randomized={"s1"},
            keys=UserKeys(rpdb_api_key="rp"),
        )

    assert [meta["id"] for meta in plain] == ["tt0", "tt1", "tt2", "tt3", "tt4"]
    assert "poster" not in plain[0]
    assert [meta["id"] for meta in shuffled] == ["tt4", "tt3", "tt2", "tt1", "tt0"]
    assert shuffled[0]["poster"] == (
        "https://posters.example.com/rp/imdb/poster-default/tt4.jpg?fallback=true"
    )
