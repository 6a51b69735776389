"""Helpers to resolve the caller's address and the server's external URL."""

from typing import Optional

from starlette.requests import Request


def get_real_client_ip(request: Request) -> str:
    """Get real client IP from proxy headers or the connection.

    Checks headers in priority order:
    1. X-Real-IP (nginx)
    2. X-Forwarded-For (first IP in chain)
    3. request.client.host (fallback)
    """
    real_ip = request.headers.get('x-real-ip')
    if real_ip:
        return real_ip.strip()

    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


def get_external_url(request: Request, issuer: Optional[str] = None) -> str:
    """Get the external base URL for this service.

    A configured issuer always wins. Otherwise proxied requests are resolved
    through X-Forwarded-Host / X-Forwarded-Proto before the Host header.
    """
    if issuer:
        return issuer.rstrip("/")

    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme

    return f"{proto}://{host}"
