from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
principal_ctx_var: ContextVar[str | None] = ContextVar("principal_id", default=None)
logger = logging.getLogger("worktimer.request")

# Health checks and metric scrapes are not logged.
QUIET_PATHS = frozenset({"/health", "/metrics"})


def _route_template(request: Request) -> str | None:
    # "/api/v1/timers/{entity_kind}/{entity_id}/start" rather than one path per entity.
    route = request.scope.get("route")
    return getattr(route, "path", None)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with a correlation id and log one line when it completes."""

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self.header_name) or uuid4().hex
        token = request_id_ctx_var.set(request_id)
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000
            response.headers[self.header_name] = request_id
            if request.url.path not in QUIET_PATHS:
                principal = getattr(request.state, "principal", None)
                principal_token = principal_ctx_var.set(principal)
                try:
                    level = logging.WARNING if response.status_code >= 500 else logging.INFO
                    logger.log(
                        level,
                        "request.completed",
                        extra={
                            "extra_data": {
                                "method": request.method,
                                "path": request.url.path,
                                "route": _route_template(request),
                                "status": response.status_code,
                                "duration_ms": round(duration_ms, 2),
                            }
                        },
                    )
                finally:
                    principal_ctx_var.reset(principal_token)
            return response
        finally:
            request_id_ctx_var.reset(token)
