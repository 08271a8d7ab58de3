"""Per-request context stored in ContextVars.

The API middleware fills these at the start of each request so that code far
from the HTTP layer (the audit recorder in particular) can read the tenant and
requester details without explicit parameter passing. Outside a request the
defaults apply.
"""

from contextvars import ContextVar
from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Who is calling: tenant plus requester fingerprint for audit rows."""

    tenant_id: str = "default"
    ip_address: str | None = None
    user_agent: str | None = None


_current_context: ContextVar[RequestContext] = ContextVar(
    "current_request_context", default=RequestContext()
)


def get_request_context() -> RequestContext:
    """Return the context of the current request (or the defaults)."""
    return _current_context.get()


def get_current_tenant() -> str:
    """Shortcut used by routers and repositories::

        tenant = get_current_tenant()
        rows = await repo.for_cart(tenant, cart_id)
    """
    return _current_context.get().tenant_id


def set_request_context(context: RequestContext):
    """Set the context; returns the token needed to reset it."""
    return _current_context.set(context)


def reset_request_context(token) -> None:
    _current_context.reset(token)
