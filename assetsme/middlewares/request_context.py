import re
from uuid import uuid4

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from assetsme.core import context

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


def _header(headers: dict[bytes, bytes], name: bytes) -> str:
    return headers.get(name, b"").decode("latin-1").strip()


class RequestContextMiddleware:
    """Bind request_id and owner_id to the log context for one HTTP request.

    A caller-supplied ``X-Request-ID`` is reused only when it is a short
    token; anything else is replaced so log lines stay parseable.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        context.clear_context()
        headers = dict(scope.get("headers", []))
        request_id = _header(headers, b"x-request-id")
        if not _REQUEST_ID_RE.match(request_id):
            request_id = str(uuid4())
        context.set_request_id(request_id)

        owner_id = _header(headers, b"x-user-id")
        if owner_id:
            context.set_owner_id(owner_id)

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                message["headers"] = [*message.get("headers", []), (b"x-request-id", request_id.encode())]
            await send(message)

        await self.app(scope, receive, send_with_request_id)
