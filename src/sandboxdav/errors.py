"""WebDAV error definitions for SandboxDAV."""


class DavError(Exception):
    """A protocol error with code, message, and HTTP status.

    Attributes:
        code: Short error code string (e.g. "NotFound", "Conflict").
        message: Human-readable error description.
        http_status: The HTTP status code to return.
        headers: Extra response headers to send with the error (e.g. Allow).
    """

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = 400,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            code: Error code.
            message: Error description.
            http_status: HTTP status code (default 400).
            headers: Optional extra response headers.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.headers = headers or {}


# -- Not found -----------------------------------------------------------------


class NotFound(DavError):
    """The requested resource does not exist."""

    def __init__(self, path: str = "") -> None:
        message = f"Not found: {path}" if path else "Not found"
        super().__init__(code="NotFound", message=message, http_status=404)


class NoSuchSandbox(DavError):
    """The sandbox named in the URL does not exist."""

    def __init__(self, slug: str = "") -> None:
        super().__init__(
            code="NoSuchSandbox",
            message=f'Sandbox "{slug}" not found',
            http_status=404,
        )


# -- Client errors -------------------------------------------------------------


class BadRequest(DavError):
    """The request is malformed."""

    def __init__(self, message: str = "Bad Request") -> None:
        super().__init__(code="BadRequest", message=message, http_status=400)


class MissingSandbox(BadRequest):
    """The URL carries no sandbox segment."""

    def __init__(self) -> None:
        super().__init__("Missing sandbox ID in URL. Use /{sandboxId}/path")
        self.code = "MissingSandbox"


class InvalidSandboxSlug(BadRequest):
    """The proposed sandbox slug does not match the slug pattern."""

    def __init__(self, slug: str = "") -> None:
        super().__init__(
            "Slug must be 3-50 characters, lowercase alphanumeric and hyphens, "
            f"cannot start/end with hyphen: {slug!r}"
        )
        self.code = "InvalidSandboxSlug"


class Forbidden(DavError):
    """The operation is not permitted on this resource."""

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(code="Forbidden", message=message, http_status=403)


class MethodNotAllowed(DavError):
    """The method is not allowed against this resource."""

    def __init__(
        self,
        message: str = "The specified method is not allowed against this resource.",
        allow: str | None = None,
    ) -> None:
        super().__init__(
            code="MethodNotAllowed",
            message=message,
            http_status=405,
            headers={"Allow": allow} if allow else None,
        )


class Conflict(DavError):
    """The request conflicts with the current state of the resource."""

    def __init__(self, message: str = "Conflict") -> None:
        super().__init__(code="Conflict", message=message, http_status=409)


class SandboxAlreadyExists(Conflict):
    """A sandbox with the requested slug already exists."""

    def __init__(self, slug: str = "") -> None:
        super().__init__(f'Sandbox with slug "{slug}" already exists')
        self.code = "SandboxAlreadyExists"


class InvalidState(DavError):
    """A state transition was attempted from the wrong state."""

    def __init__(self, message: str = "Invalid state transition") -> None:
        super().__init__(code="InvalidState", message=message, http_status=409)


class InvalidRange(DavError):
    """The requested range is not satisfiable."""

    def __init__(
        self,
        total: int | None = None,
        message: str = "The requested range is not satisfiable.",
    ) -> None:
        headers = {"Content-Range": f"bytes */{total}"} if total is not None else None
        super().__init__(
            code="InvalidRange", message=message, http_status=416, headers=headers
        )


# -- Server errors -------------------------------------------------------------


class InternalError(DavError):
    """An internal server error occurred."""

    def __init__(self, message: str = "Internal Error") -> None:
        super().__init__(code="InternalError", message=message, http_status=500)


class UpstreamError(DavError):
    """The blob store failed or returned an unusable response."""

    def __init__(self, message: str = "Bad response from blob store") -> None:
        super().__init__(code="UpstreamError", message=message, http_status=502)
