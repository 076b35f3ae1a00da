"""Request body size limit middleware.

Label photos are posted as base64 inside a JSON body, so bodies are large
but must still be bounded. Enforces the limit for both Content-Length and
chunked transfer encoding.
"""

import json
from typing import List, Optional

from starlette.types import Message, Receive, Scope, Send


class BodyTooLargeError(Exception):
    """Raised when the request body exceeds the size limit."""


class SizeLimitedStream:
    """Reads a request body up front, counting bytes as they arrive.

    FastAPI turns any error raised while parsing a body into a 400, so the
    limit has to be enforced before the app sees the first byte. The
    buffered messages are then replayed through ``receive``.
    """

    def __init__(self, receive: Receive, max_size: int):
        self._receive = receive
        self._max_size = max_size
        self._bytes_read = 0
        self._buffered: List[Message] = []

    async def buffer(self) -> None:
        """Read the whole body.

        Raises:
            BodyTooLargeError: As soon as the running total passes the limit
        """
        while True:
            message = await self._receive()
            self._buffered.append(message)
            if message["type"] != "http.request":
                return
            self._bytes_read += len(message.get("body", b""))
            if self._bytes_read > self._max_size:
                raise BodyTooLargeError(
                    f"Request body too large. Maximum allowed: {self._max_size} bytes"
                )
            if not message.get("more_body", False):
                return

    async def receive(self) -> Message:
        if self._buffered:
            return self._buffered.pop(0)
        return await self._receive()


class RequestSizeLimitMiddleware:
    """ASGI middleware to limit request body size.

    Returns HTTP 413 (Payload Too Large) if the limit is exceeded. Raw ASGI
    is used so the receive callable is wrapped before Starlette's Request is
    constructed.

    Usage:
        app.add_middleware(RequestSizeLimitMiddleware, max_body_size=50*1024*1024)
    """

    def __init__(self, app, max_body_size: int = 50 * 1024 * 1024):
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = self._content_length(scope)
        if content_length is not None:
            # The server never delivers more than Content-Length bytes
            if content_length > self.max_body_size:
                await self._send_413_response(send)
                return
            await self.app(scope, receive, send)
            return

        stream = SizeLimitedStream(receive, self.max_body_size)
        try:
            await stream.buffer()
        except BodyTooLargeError as exc:
            await self._send_413_response(send, detail=str(exc))
            return
        await self.app(scope, stream.receive, send)

    @staticmethod
    def _content_length(scope: Scope) -> Optional[int]:
        for name, value in scope.get("headers", []):
            if name.lower() == b"content-length":
                try:
                    return int(value.decode())
                except ValueError:
                    return None
        return None

    async def _send_413_response(self, send: Send, detail: Optional[str] = None) -> None:
        if detail is None:
            detail = (
                f"Request body too large. Maximum allowed: {self.max_body_size} bytes"
            )
        body = json.dumps(
            {"success": False, "error": detail, "error_code": "payload_too_large"}
        ).encode()

        await send(
            {
                "type": "http.response.start",
                "status": 413,
                "headers": [
                    [b"content-type", b"application/json"],
                    [b"content-length", str(len(body)).encode()],
                ],
            }
        )
        await send({"type": "http.response.body", "body": body})
