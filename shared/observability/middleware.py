"""FastAPI middleware for request correlation and timing."""

from __future__ import annotations

import time
from typing import Awaitable, Callable, Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from .logger import generate_request_id, get_logger, request_context

__all__ = ["CorrelationIdMiddleware", "RequestTimingMiddleware"]


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind a request identifier and the acting user for the request lifetime.

    The request id is echoed back on the response. The actor id is supplied by
    the upstream identity provider and only used for audit attribution.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        header_name: str = "X-Request-ID",
        actor_header: str = "X-Actor-ID",
        additional_headers: Iterable[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.header_name = header_name
        self.actor_header = actor_header
        candidates = [header_name, "X-Request-ID", "X-Correlation-ID", *(additional_headers or ())]
        seen: set[str] = set()
        ordered: list[str] = []
        for name in candidates:
            normalized = name.strip()
            if not normalized or normalized.lower() in seen:
                continue
            seen.add(normalized.lower())
            ordered.append(normalized)
        self._candidate_headers = ordered

    def _resolve_request_id(self, request: Request) -> str:
        for header in self._candidate_headers:
            value = (request.headers.get(header) or "").strip()
            if value:
                return value[:128]
        return generate_request_id()

    def _resolve_actor_id(self, request: Request) -> str | None:
        value = (request.headers.get(self.actor_header) or "").strip()
        return value[:128] or None

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = self._resolve_request_id(request)
        actor_id = self._resolve_actor_id(request)
        request.state.request_id = request_id
        request.state.actor_id = actor_id

        with request_context(request_id=request_id, actor_id=actor_id):
            response = await call_next(request)

        response.headers.setdefault(self.header_name, request_id)
        return response


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Measure request latency and emit structured log entries."""

    def __init__(self, app: ASGIApp, *, header_name: str = "X-Response-Time") -> None:
        super().__init__(app)
        self._header_name = header_name
        self._logger = get_logger("http")

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000.0
            self._logger.bind(
                method=request.method,
                path=request.url.path,
                duration_ms=duration_ms,
            ).exception("http_request_failed")
            raise

        duration_ms = (time.perf_counter() - start) * 1000.0
        if self._header_name:
            response.headers[self._header_name] = f"{duration_ms / 1000.0:.6f}s"

        self._logger.bind(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        ).info("http_request_completed")

        return response
