"""
Mercado Libre relay endpoints

Public URLs registered with Mercado Libre. They forward inbound traffic to the
Supabase edge functions, injecting the anon key the functions gateway requires.

- GET  /meli/webhook   answers the provider's reachability check with "OK"
- POST /meli/webhook   forwarded verbatim to WEBHOOK_FORWARD_URL
- GET  /meli/callback  query string forwarded to CALLBACK_FORWARD_URL
"""
import logging
from typing import Dict, Mapping

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse, Response

from stockbridge.api.deps import get_http_client
from stockbridge.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meli", tags=["Relay"])

# Recomputed by the transport on each side of the relay
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
    "content-encoding",
}


def _filter_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    return {key: value for key, value in headers.items() if key.lower() not in HOP_BY_HOP_HEADERS}


def _service_credentials() -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {settings.SUPABASE_ANON_KEY}",
        "apikey": settings.SUPABASE_ANON_KEY,
    }


def _passthrough(upstream: httpx.Response) -> Response:
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers=_filter_headers(upstream.headers),
    )


def _require_target(url: str, name: str) -> str:
    if not url:
        raise HTTPException(status_code=500, detail=f"{name} not configured")
    return url


@router.get("/webhook")
async def webhook_reachability():
    """Reachability check; nothing is forwarded"""
    return PlainTextResponse("OK", status_code=200)


@router.post("/webhook")
async def relay_webhook(request: Request, http_client: httpx.AsyncClient = Depends(get_http_client)):
    """Forward a webhook notification with its headers and body"""
    target = _require_target(settings.WEBHOOK_FORWARD_URL, "WEBHOOK_FORWARD_URL")

    # lower-case keys so the injected credentials replace any incoming ones
    headers = {key.lower(): value for key, value in _filter_headers(request.headers).items()}
    headers.update({key.lower(): value for key, value in _service_credentials().items()})

    body = await request.body()
    upstream = await http_client.post(target, content=body, headers=headers)
    logger.info(f"Relayed ML webhook ({len(body)} bytes) -> {upstream.status_code}")
    return _passthrough(upstream)


@router.get("/callback")
async def relay_callback(request: Request, http_client: httpx.AsyncClient = Depends(get_http_client)):
    """Forward the OAuth callback query string (code, state) to the callback function"""
    target = _require_target(settings.CALLBACK_FORWARD_URL, "CALLBACK_FORWARD_URL")

    url = f"{target}?{request.url.query}" if request.url.query else target
    upstream = await http_client.get(url, headers=_service_credentials())
    logger.info(f"Relayed ML OAuth callback -> {upstream.status_code}")
    return _passthrough(upstream)
