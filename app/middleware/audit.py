"""Audit logging middleware — records every state-changing request to audit_trail."""


import asyncio
import logging
import time
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings
from app.db.base import get_session_factory
from app.domain.audit import AuditTrail

logger = logging.getLogger(__name__)

# Methods that mutate state
_WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Path segments naming an action rather than an entity
_ACTIONS = {"snapshot", "summary", "attach-ffl", "override-hold", "status", "check", "config"}

def entity_from_path(path: str) -> tuple[str, str | None]:
    """Infer (entity_type, entity_id) from an API path.

    ``/api/v1/orders/abc/attach-ffl`` → ("order", "abc");
    ``/api/v1/checkout`` → ("checkout", None).
    """
    parts = [p for p in path.strip("/").split("/") if p]
    if parts and parts[-1] in _ACTIONS:
        parts = parts[:-1]
    if len(parts) >= 4:  # api / v1 / <collection> / <id>
        return parts[-2].rstrip("s"), parts[-1][:64]
    return (parts[-1] if parts else "unknown").rstrip("s"), None

class AuditMiddleware(BaseHTTPMiddleware):
    """Logs all write operations.

    Each audit row is written asynchronously AFTER the response is sent so it
    never adds latency to the request. Failures in audit logging are caught and
    logged; they never raise to the caller.
    """

    def __init__(self, app, enabled: bool = True):
        super().__init__(app)
        self._enabled = enabled
        self._pending: set[asyncio.Task] = set()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000)

        if self._enabled and request.method in _WRITE_METHODS:
            # Fire-and-forget: don't await here so the response is not delayed
            task = asyncio.create_task(self._record(request, response.status_code, duration_ms))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return response

    async def _record(
        self, request: Request, status_code: int, duration_ms: int
    ) -> None:
        """Persist an audit row. Errors are logged, never raised."""
        try:
            entity_type, entity_id = entity_from_path(request.url.path)
            session_factory = getattr(request.app.state, "session_factory", None) or get_session_factory()
            async with session_factory() as session:
                session.add(
                    AuditTrail(
                        client_id=settings.default_client_id or "unknown",
                        user_id=None,
                        ip_address=request.client.host if request.client else None,
                        user_agent=request.headers.get("user-agent"),
                        action=f"{request.method}:{status_code}",
                        entity_type=entity_type,
                        entity_id=entity_id,
                        description=f"{request.method} {request.url.path} → {status_code} ({duration_ms}ms)",
                    )
                )
                await session.commit()
        except Exception:  # pragma: no cover
            logger.exception("Audit write failed for %s %s", request.method, request.url.path)
