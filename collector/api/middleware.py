"""ASGI middleware verifying request signatures and inflating gzip bodies.

The signature covers the body exactly as it was sent over the wire, before
decompression, which is how the agent computes it.
"""

from __future__ import annotations

import logging
import zlib

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from shared.schemas import ErrorCode, ErrorResponse
from shared.signing import SIGNATURE_HEADER, decompress, verify_signature

logger = logging.getLogger(__name__)


class RequestBodyMiddleware:
    """Checks ``HashSHA256`` against the shared key and decodes ``Content-Encoding: gzip``."""

    def __init__(self, app: ASGIApp, key: str = "") -> None:
        self.app = app
        self.key = key

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        gzipped = headers.get("content-encoding", "").lower() == "gzip"
        if not self.key and not gzipped:
            await self.app(scope, receive, send)
            return

        body = await self._read_body(receive)

        if self.key and body and not verify_signature(self.key, body, headers.get(SIGNATURE_HEADER)):
            logger.warning("Rejected %s %s: signature mismatch", scope["method"], scope["path"])
            await self._reject(
                scope, receive, send, ErrorCode.SIGNATURE_MISMATCH, "Request signature mismatch"
            )
            return

        if gzipped:
            try:
                body = decompress(body)
            except (OSError, EOFError, zlib.error):
                logger.warning("Rejected %s %s: invalid gzip body", scope["method"], scope["path"])
                await self._reject(
                    scope, receive, send, ErrorCode.VALIDATION_ERROR, "Invalid gzip body"
                )
                return
            scope = dict(scope)
            scope["headers"] = [
                (name, value)
                for name, value in scope["headers"]
                if name.lower() not in (b"content-encoding", b"content-length")
            ] + [(b"content-length", str(len(body)).encode("latin-1"))]

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)

    @staticmethod
    async def _read_body(receive: Receive) -> bytes:
        chunks: list[bytes] = []
        while True:
            message = await receive()
            if message["type"] != "http.request":
                break
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                break
        return b"".join(chunks)

    @staticmethod
    async def _reject(
        scope: Scope, receive: Receive, send: Send, code: ErrorCode, message: str
    ) -> None:
        response = JSONResponse(
            status_code=400,
            content=ErrorResponse(code=code, message=message).model_dump(mode="json"),
        )
        await response(scope, receive, send)
