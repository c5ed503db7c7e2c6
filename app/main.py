"""Entry point for the FastAPI-powered Stremio addon."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import Database
from .models import CatalogRequest
from .services.addon import AddonService
from .services.addon_cache import AddonInterfaceCache
from .services.addon_proxy import AddonProxy
from .services.config_store import ConfigStore
from .services.manifest import ManifestComposer
from .services.mdblist import MDBListClient
from .services.router import CatalogRouter
from .services.watchlist import (
    MDBLIST_PROVIDER,
    WATCHLIST_PROVIDER,
    MDBListStrategy,
    WatchlistStrategy,
)
from .utils import coerce_bool

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(_: FastAPI):
    exit_stack = AsyncExitStack()
    addon_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            timeout=httpx.Timeout(
                settings.upstream_timeout_seconds,
                connect=settings.connect_timeout_seconds,
            ),
            follow_redirects=True,
            headers={"User-Agent": f"{settings.app_name} (aiocatalogs)"},
        )
    )
    mdblist_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.mdblist_api_url),
            timeout=httpx.Timeout(20.0, connect=10.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    app.state.addon_service = build_addon_service(
        database, addon_http_client, mdblist_http_client
    )
    app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def build_addon_service(
    database: Database,
    addon_http_client: httpx.AsyncClient,
    mdblist_http_client: httpx.AsyncClient,
) -> AddonService:
    """Wire the addon service and its collaborators together."""

    cache = AddonInterfaceCache()
    store = ConfigStore(database.session_factory, on_change=cache.invalidate)
    proxy = AddonProxy(addon_http_client)
    mdblist = MDBListClient(mdblist_http_client)
    router = CatalogRouter(
        proxy,
        {
            WATCHLIST_PROVIDER: WatchlistStrategy(mdblist),
            MDBLIST_PROVIDER: MDBListStrategy(mdblist),
        },
        rpdb_base_url=str(settings.rpdb_api_url),
    )
    return AddonService(
        store, ManifestComposer(settings), router, cache, proxy, mdblist
    )


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Combine catalogs from multiple Stremio addons into one",
        version=settings.addon_version,
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_addon_service(app: FastAPI) -> AddonService:
    service = getattr(app.state, "addon_service", None)
    if not isinstance(service, AddonService):
        raise RuntimeError("Addon service not initialised")
    return service


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        payload = {}
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    return payload


def register_routes(fastapi_app: FastAPI) -> None:
    async def _catalog_endpoint(
        user_id: str,
        content_type: str,
        catalog_id: str,
        extra_segment: str | None = None,
    ) -> JSONResponse:
        service = get_addon_service(fastapi_app)
        request = CatalogRequest.from_path(content_type, catalog_id, extra_segment)
        try:
            payload = await service.get_catalog(
                user_id, request.type, request.id, request.extra
            )
        except Exception as exc:
            logger.exception(
                "Error handling catalog %s/%s for user %s", content_type, catalog_id, user_id
            )
            raise HTTPException(status_code=500, detail="Server error") from exc
        return JSONResponse(payload)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/{user_id}/manifest.json")
    async def manifest(user_id: str) -> JSONResponse:
        service = get_addon_service(fastapi_app)
        try:
            addon_manifest = await service.get_manifest(user_id)
        except Exception as exc:
            logger.exception("Error getting manifest for user %s", user_id)
            raise HTTPException(status_code=500, detail="Server error") from exc
        return JSONResponse(addon_manifest.to_payload())

    @fastapi_app.get("/{user_id}/catalog/{content_type}/{catalog_id}.json")
    async def catalog(user_id: str, content_type: str, catalog_id: str) -> JSONResponse:
        return await _catalog_endpoint(user_id, content_type, catalog_id)

    @fastapi_app.get("/{user_id}/catalog/{content_type}/{catalog_id}/{extra}.json")
    async def catalog_with_extra(
        user_id: str, content_type: str, catalog_id: str, extra: str
    ) -> JSONResponse:
        return await _catalog_endpoint(user_id, content_type, catalog_id, extra)

    @fastapi_app.post("/api/users")
    async def create_user() -> JSONResponse:
        service = get_addon_service(fastapi_app)
        user_id = await service.store.create_user()
        return JSONResponse(
            {"userId": user_id, "manifestPath": f"/{user_id}/manifest.json"},
            status_code=201,
        )

    @fastapi_app.get("/api/users/{user_id}/sources")
    async def list_sources(user_id: str) -> JSONResponse:
        service = get_addon_service(fastapi_app)
        try:
            sources = await service.list_sources(user_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="User not found") from exc
        return JSONResponse({"sources": sources})

    @fastapi_app.post("/api/users/{user_id}/sources")
    async def add_source(user_id: str, request: Request) -> JSONResponse:
        service = get_addon_service(fastapi_app)
        payload = await _json_body(request)
        manifest_url = str(payload.get("manifestUrl") or "").strip()
        if not manifest_url:
            raise HTTPException(status_code=400, detail="manifestUrl is required")
        try:
            source = await service.add_addon(user_id, manifest_url)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="User not found") from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse({"source": source.to_payload()}, status_code=201)

    @fastapi_app.patch("/api/users/{user_id}/sources/{source_id}")
    async def update_source(user_id: str, source_id: str, request: Request) -> JSONResponse:
        service = get_addon_service(fastapi_app)
        payload = await _json_body(request)
        custom_name = payload.get("customName")
        if custom_name is not None and not isinstance(custom_name, str):
            raise HTTPException(status_code=400, detail="customName must be a string")
        randomize = coerce_bool(payload["randomize"]) if "randomize" in payload else None
        try:
            source = await service.update_source(
                user_id, source_id, custom_name=custom_name, randomize=randomize
            )
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="User or source not found") from exc
        return JSONResponse({"source": source.to_payload()})

    @fastapi_app.delete("/api/users/{user_id}/sources/{source_id}")
    async def remove_source(user_id: str, source_id: str) -> JSONResponse:
        service = get_addon_service(fastapi_app)
        try:
            removed = await service.remove_source(user_id, source_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="User not found") from exc
        if not removed:
            raise HTTPException(status_code=404, detail="Source not found")
        return JSONResponse({"removed": source_id})

    @fastapi_app.put("/api/users/{user_id}/keys")
    async def save_keys(user_id: str, request: Request) -> JSONResponse:
        service = get_addon_service(fastapi_app)
        payload = await _json_body(request)
        try:
            configured = await service.save_api_keys(user_id, payload)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="User not found") from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse({"configured": configured})

    @fastapi_app.post("/api/users/{user_id}/mdblist/watchlist")
    async def import_watchlist(user_id: str) -> JSONResponse:
        service = get_addon_service(fastapi_app)
        try:
            source = await service.import_watchlist(user_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="User not found") from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse({"source": source.to_payload()}, status_code=201)

    @fastapi_app.post("/api/users/{user_id}/mdblist/lists")
    async def add_mdblist_list(user_id: str, request: Request) -> JSONResponse:
        service = get_addon_service(fastapi_app)
        payload = await _json_body(request)
        list_id = str(payload.get("listId") or "").strip()
        if not list_id:
            raise HTTPException(status_code=400, detail="listId is required")
        name = payload.get("name")
        try:
            source = await service.add_mdblist_list(
                user_id, list_id, name if isinstance(name, str) else None
            )
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="User not found") from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse({"source": source.to_payload()}, status_code=201)


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
