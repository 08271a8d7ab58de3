"""Request-context middleware using ContextVar.

Extracts the tenant from the X-Tenant-ID request header (or falls back to
subdomain detection) and the requester's IP address and user agent. The
values are stored in a ContextVar so that downstream code (repositories, the
audit recorder) can call get_current_tenant() / get_request_context() without
explicit parameter passing.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from core.request_context import (
    RequestContext,
    reset_request_context,
    set_request_context,
)


def client_ip(request: Request) -> str | None:
    """First X-Forwarded-For hop, else the peer address."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def tenant_from_request(request: Request) -> str:
    """Tenant resolution.

    Priority:
    1. X-Tenant-ID header (explicit)
    2. First subdomain segment (e.g., acme.shop.example.com → "acme")
    3. Falls back to "default"
    """
    tenant_id = request.headers.get("X-Tenant-ID")
    if not tenant_id:
        host = request.headers.get("host", "")
        parts = host.split(".")
        if len(parts) > 2:
            tenant_id = parts[0]
    return tenant_id or "default"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Populate the request context for the duration of a request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        token = set_request_context(RequestContext(
            tenant_id=tenant_from_request(request),
            ip_address=client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        ))
        try:
            response = await call_next(request)
            return response
        finally:
            reset_request_context(token)
