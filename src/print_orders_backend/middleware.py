import logging

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

TOO_LARGE_MESSAGE = "Request body too large"


class JSONBodyLimitMiddleware:
    """
    Rejects JSON request bodies larger than max_bytes with 413.

    A declared Content-Length is checked up front. Bodies without one
    (chunked transfer) are counted as they are received and the request is
    aborted as soon as the running total passes the limit.

    Only JSON bodies are limited here; multipart uploads are limited per
    file by the UploadHandler while they are streamed to disk.
    """

    def __init__(self, app: ASGIApp, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        if not headers.get("content-type", "").startswith("application/json"):
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        content_length = headers.get("content-length")
        if content_length is not None:
            try:
                length = int(content_length)
            except ValueError:
                response = JSONResponse(status_code=400, content={"error": "Invalid Content-Length header"})
                await response(scope, receive, send)
                return
            if length > self.max_bytes:
                logger.warning(f"Rejected {length} byte JSON body on {path}")
                await self._reject(scope, receive, send)
                return

        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    logger.warning(f"Rejected streamed JSON body over {self.max_bytes} bytes on {path}")
                    raise HTTPException(status_code=413, detail=TOO_LARGE_MESSAGE)
            return message

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracking_send)
        except HTTPException as exc:
            # Raised from limited_receive outside FastAPI's own body handling
            if exc.status_code != 413 or response_started:
                raise
            await self._reject(scope, receive, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse(status_code=413, content={"error": TOO_LARGE_MESSAGE})
        await response(scope, receive, send)
