"""
CORS middleware for the dashboard and relay endpoints

Allows any origin: the request's Origin is echoed back (or "*" without one)
and preflight requests get the headers they asked for.
"""
from typing import Any, Callable, Dict

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

DEFAULT_ALLOW_HEADERS = "authorization, content-type, apikey, x-client-info, x-meli-signature"
ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"


def cors_headers(request: Request) -> Dict[str, str]:
    """CORS response headers mirrored from the request"""
    return {
        "Access-Control-Allow-Origin": request.headers.get("origin") or "*",
        "Access-Control-Allow-Methods": ALLOW_METHODS,
        "Access-Control-Allow-Headers": (
            request.headers.get("access-control-request-headers") or DEFAULT_ALLOW_HEADERS
        ),
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


class MirrorCORSMiddleware(BaseHTTPMiddleware):
    """Answers OPTIONS with 204 and adds CORS headers to every other response"""

    async def dispatch(self, request: Request, call_next: Callable) -> Any:
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=cors_headers(request))

        response = await call_next(request)
        response.headers.update(cors_headers(request))
        return response
