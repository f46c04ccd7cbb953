"""Conversion between Starlette requests/responses and handler results."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.types import Receive, Scope, Send

from otel_demo.services.demo import JSON_MEDIA_TYPE, DemoService, Finalizer, HandlerResult

logger = logging.getLogger(__name__)


class FinalizingResponse(Response):
    """Response that awaits ``finalizer`` after sending, even if sending fails."""

    def __init__(
        self,
        content: Any,
        *,
        finalizer: Finalizer,
        status_code: int = 200,
        media_type: Optional[str] = None,
        background: Optional[BackgroundTask] = None,
    ) -> None:
        super().__init__(content=content, status_code=status_code, media_type=media_type, background=background)
        self._finalizer = finalizer

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self._finalizer()


def to_response(result: HandlerResult) -> Response:
    """Render a handler result as a Starlette response."""

    if result.finalizer is not None:
        content = JSONResponse(result.body).body if result.media_type == JSON_MEDIA_TYPE else result.body
        return FinalizingResponse(
            content,
            finalizer=result.finalizer,
            status_code=result.status_code,
            media_type=result.media_type,
        )
    if result.media_type == JSON_MEDIA_TYPE:
        return JSONResponse(result.body, status_code=result.status_code)
    return PlainTextResponse(result.body, status_code=result.status_code)


async def read_json_body(request: Request) -> Any:
    """Return the decoded JSON body, or ``None`` when it is absent or malformed."""

    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.debug("Ignoring malformed JSON body on %s", request.url.path)
        return None


def get_demo_service(request: Request) -> DemoService:
    service: Optional[DemoService] = getattr(request.app.state, "demo_service", None)
    if service is None:
        raise RuntimeError("Demo service is not initialised")
    return service
