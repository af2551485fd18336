"""
Request logger middleware.

One log line per request (``METHOD path -> status (ms)``) plus an
``x-response-time-ms`` header. Health probes are logged at DEBUG so they do
not drown out upload traffic.
"""

import logging
import time

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("datalens.middleware.request_logger")

QUIET_PATHS = ("/health",)


class RequestLoggerMiddleware:
    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        status_code = 0
        path = scope.get("path", "?")
        level = logging.DEBUG if path in QUIET_PATHS else logging.INFO

        def elapsed_ms() -> float:
            return round((time.perf_counter() - started) * 1000, 2)

        async def send_timed(message: Message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
                headers = list(message.get("headers", []))
                headers.append([b"x-response-time-ms", str(elapsed_ms()).encode()])
                message = {**message, "headers": headers}
            elif message["type"] == "http.response.body" and not message.get("more_body", False):
                logger.log(level, "%s %s -> %s (%.2fms)",
                           scope.get("method", "?"), path, status_code, elapsed_ms())
            await send(message)

        await self.app(scope, receive, send_timed)
