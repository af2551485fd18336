"""
Error handler middleware.

Turns any exception that escapes a route into a JSON 500 body. Dataset
errors keep their ``kind`` in the payload so clients can tell a storage
outage from a bug. Pure ASGI (no BaseHTTPMiddleware) so streamed responses
pass through untouched.
"""

import json
import logging

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.errors import DatasetProcessingError

logger = logging.getLogger("datalens.middleware.error_handler")


def _error_body(exc: Exception, path: str) -> bytes:
    payload = {
        "error": "internal_server_error",
        "message": "An unexpected error occurred. Please try again.",
        "path": path,
    }
    if isinstance(exc, DatasetProcessingError):
        payload["kind"] = exc.kind
    return json.dumps(payload).encode("utf-8")


class ErrorHandlerMiddleware:
    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_tracking(message: Message):
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_tracking)
        except Exception as exc:
            path = scope.get("path", "unknown")
            logger.exception("Unhandled %s on %s %s", type(exc).__name__, scope.get("method", "?"), path)
            if response_started:
                # Headers are already on the wire; nothing sensible left to send
                raise

            body = _error_body(exc, path)
            await send({
                "type": "http.response.start",
                "status": 500,
                "headers": [
                    [b"content-type", b"application/json"],
                    [b"content-length", str(len(body)).encode()],
                ],
            })
            await send({"type": "http.response.body", "body": body})
