# backend/main.py
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import httpx
from core import IntegrationError, settings
from core.redis_client import create_redis_client
from core.redis_store import RedisStore
from core.stores import KeyValueCredentialStore, KeyValueItemStore
from fastapi import Body, FastAPI, Form, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from integrations import IntegrationManager
from integrations.adapters import build_registry
from integrations.base import oauth_close_window
from integrations.core import ExportOptions

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


def build_manager(http: httpx.AsyncClient, kv: RedisStore) -> IntegrationManager:
    credential_store = KeyValueCredentialStore(
        kv, settings.user_id, skew_seconds=settings.token_refresh_skew_seconds
    )
    return IntegrationManager(
        build_registry(),
        http,
        settings,
        item_store=KeyValueItemStore(kv, settings.user_id),
        credential_store=credential_store,
        kv_store=kv,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    client = httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
        headers={"User-Agent": "lifely-integrations/1.0"},
    )
    kv = RedisStore(create_redis_client(settings.redis_url))

    manager = build_manager(client, kv)
    await manager.initialize()
    app.state.manager = manager

    yield

    await client.aclose()
    await kv.close()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(IntegrationError)
async def integration_error_handler(request: Request, exc: IntegrationError):
    return JSONResponse(status_code=exc.status, content=exc.to_dict())


def get_manager(request: Request) -> IntegrationManager:
    return request.app.state.manager


def describe(adapter) -> dict:
    return {
        **adapter.config.model_dump(mode="json"),
        "capabilities": adapter.capabilities.model_dump(mode="json"),
    }


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/integrations/providers")
async def list_providers(request: Request):
    return get_manager(request).get_available_providers()


@app.get("/integrations/summary")
async def integration_summary(request: Request):
    return get_manager(request).get_integration_summary()


@app.get("/integrations")
async def list_integrations(request: Request):
    return [describe(adapter) for adapter in get_manager(request).get_all_integrations()]


@app.post("/integrations/bulk-import")
async def bulk_import(request: Request, integration_ids: List[str] = Body(...)):
    return await get_manager(request).bulk_import(integration_ids)


@app.post("/integrations/{provider}/authorize")
async def authorize_integration(request: Request, provider: str, user_id: str = Form(...)):
    """Authorization URL for any OAuth provider."""
    return await get_manager(request).get_authorization_url(provider, user_id)


@app.get("/integrations/{provider}/oauth2callback")
async def oauth_callback_integration(provider: str, request: Request):
    await get_manager(request).complete_oauth(provider, dict(request.query_params))
    return oauth_close_window()


@app.post("/integrations/{integration_id}/authenticate")
async def authenticate_integration(request: Request, integration_id: str):
    manager = get_manager(request)
    await manager.authenticate_integration(integration_id)
    return describe(manager.get_integration(integration_id))


@app.post("/integrations/{integration_id}/import")
async def import_integration(
    request: Request, integration_id: str, category_id: Optional[str] = Form(None)
):
    return await get_manager(request).import_data(integration_id, category_id)


@app.post("/integrations/{integration_id}/export")
async def export_integration(
    request: Request, integration_id: str, options: Optional[ExportOptions] = None
):
    return await get_manager(request).export_data(integration_id, options or ExportOptions())


@app.post("/integrations/{integration_id}/youtube")
async def import_youtube_video(
    request: Request,
    integration_id: str,
    video_url: str = Form(...),
    category_id: Optional[str] = Form(None),
):
    return await get_manager(request).import_youtube_transcript(
        integration_id, video_url, category_id
    )


@app.post("/integrations/{integration_id}/youtube/batch")
async def import_youtube_videos(
    request: Request,
    integration_id: str,
    video_urls: List[str] = Body(...),
    category_id: Optional[str] = None,
):
    return await get_manager(request).import_youtube_videos(
        integration_id, video_urls, category_id
    )


@app.get("/integrations/{integration_id}/youtube/search")
async def search_youtube(request: Request, integration_id: str, q: str, max_results: int = 10):
    return await get_manager(request).search_youtube_videos(integration_id, q, max_results)


@app.delete("/integrations/{integration_id}")
async def remove_integration(
    request: Request,
    integration_id: str,
    purge_credentials: bool = False,
    purge_items: bool = False,
):
    await get_manager(request).remove_integration(
        integration_id, purge_credentials=purge_credentials, purge_items=purge_items
    )
    return {"removed": integration_id}


@app.post("/integrations/{provider}")
async def create_integration(
    request: Request, provider: str, api_key: Optional[str] = Form(None)
):
    manager = get_manager(request)
    integration_id = manager.create_integration(
        provider, credentials={"api_key": api_key} if api_key else None
    )
    return describe(manager.get_integration(integration_id))
