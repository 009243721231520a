"""Request routing for SandboxDAV.

Every WebDAV request arrives at ``/{sandbox}/{path}``. The router checks the
verb, splits off the sandbox slug, confirms the sandbox exists and hands the
normalized path to the matching handler.
"""

from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response

from sandboxdav.errors import MethodNotAllowed, MissingSandbox, NoSuchSandbox
from sandboxdav.handlers.collection import ALLOWED_METHODS, CollectionHandler
from sandboxdav.handlers.resource import ResourceHandler
from sandboxdav.paths import split_sandbox_path
from sandboxdav.validation import is_valid_slug

VerbHandler = Callable[[Request, str, str], Awaitable[Response]]

# Verbs the catch-all route accepts. Those without a handler reach
# dispatch() and get a WebDAV 405 listing ALLOWED_METHODS.
ROUTED_METHODS = [
    "OPTIONS", "PROPFIND", "GET", "HEAD", "PUT", "MKCOL", "MOVE", "DELETE",
    "POST", "PATCH", "COPY", "LOCK", "UNLOCK", "PROPPATCH",
]


def request_path(request: Request) -> str:
    """Return the still percent-encoded request path.

    All decoding happens in ``normalize_path``, which keeps one decoding
    rule for every caller.
    """
    raw = request.scope.get("raw_path")
    if raw:
        return raw.decode("latin-1").split("?", 1)[0]
    return request.url.path


class DavRouter:
    """Dispatches WebDAV requests to the verb handlers.

    Attributes:
        app: The parent FastAPI application.
    """

    def __init__(self, app: FastAPI) -> None:
        self.app = app
        resource = ResourceHandler(app)
        collection = CollectionHandler(app)
        self._handlers: dict[str, VerbHandler] = {
            "OPTIONS": collection.options,
            "PROPFIND": collection.propfind,
            "MKCOL": collection.mkcol,
            "GET": resource.get,
            "HEAD": resource.head,
            "PUT": resource.put,
            "MOVE": resource.move,
            "DELETE": resource.delete,
        }

    async def dispatch(self, request: Request) -> Response:
        """Route one request.

        Raises:
            MethodNotAllowed: For verbs outside the supported set.
            MissingSandbox: If the URL has no sandbox segment.
            NoSuchSandbox: If the slug is malformed or unknown.
        """
        handler = self._handlers.get(request.method.upper())
        if handler is None:
            raise MethodNotAllowed(
                f"Method {request.method} is not supported", allow=ALLOWED_METHODS
            )

        parsed = split_sandbox_path(request_path(request))
        if parsed is None:
            raise MissingSandbox()
        slug, path = parsed

        if not is_valid_slug(slug):
            raise NoSuchSandbox(slug)
        if await self.app.state.metadata.get_sandbox(slug) is None:
            raise NoSuchSandbox(slug)

        request.state.sandbox = slug
        return await handler(request, slug, path)
