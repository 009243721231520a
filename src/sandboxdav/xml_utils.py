"""WebDAV XML response rendering helpers for SandboxDAV."""

import email.utils
from xml.sax.saxutils import escape as _sax_escape

from fastapi.responses import Response

from sandboxdav.metadata.models import FileEntry, iso_to_http_date

XML_MEDIA_TYPE = "application/xml; charset=utf-8"


def _escape_xml(value: str) -> str:
    """Escape special XML characters (including double quotes) in a value."""
    return _sax_escape(str(value), {'"': "&quot;"})


def render_error(
    code: str,
    message: str,
    resource: str = "",
    request_id: str = "",
) -> str:
    """Render an XML error response body.

    Args:
        code: The error code (e.g. "NotFound").
        message: Human-readable error message.
        resource: The request path that triggered the error.
        request_id: An opaque request identifier.

    Returns:
        The XML error document.
    """
    parts = [
        '<?xml version="1.0" encoding="utf-8"?>',
        "<error>",
        f"<code>{_escape_xml(code)}</code>",
        f"<message>{_escape_xml(message)}</message>",
    ]
    if resource:
        parts.append(f"<resource>{_escape_xml(resource)}</resource>")
    if request_id:
        parts.append(f"<request-id>{_escape_xml(request_id)}</request-id>")
    parts.append("</error>")
    return "\n".join(parts)


def xml_response(body: str, status: int = 200, headers: dict[str, str] | None = None) -> Response:
    """Wrap an XML body string in a Response with the XML content type."""
    return Response(
        content=body.encode("utf-8"),
        status_code=status,
        headers=headers,
        media_type=XML_MEDIA_TYPE,
    )


def _render_response_element(href: str, entry: FileEntry | None) -> str:
    """Render one ``<d:response>`` element.

    ``entry`` is None for the implicit root collection.
    """
    is_collection = entry is None or entry.is_dir
    if is_collection and not href.endswith("/"):
        href += "/"

    if entry is None:
        display_name = ""
        last_modified = email.utils.formatdate(usegmt=True)
        content_length = 0
    else:
        display_name = entry.name
        last_modified = iso_to_http_date(entry.mtime)
        content_length = entry.size

    resource_type = (
        "<d:resourcetype><d:collection/></d:resourcetype>"
        if is_collection
        else "<d:resourcetype/>"
    )

    return "\n".join([
        "<d:response>",
        f"<d:href>{_escape_xml(href)}</d:href>",
        "<d:propstat>",
        "<d:prop>",
        resource_type,
        f"<d:displayname>{_escape_xml(display_name)}</d:displayname>",
        f"<d:getlastmodified>{_escape_xml(last_modified)}</d:getlastmodified>",
        f"<d:getcontentlength>{content_length}</d:getcontentlength>",
        "</d:prop>",
        "<d:status>HTTP/1.1 200 OK</d:status>",
        "</d:propstat>",
        "</d:response>",
    ])


def render_multistatus(entries: list[tuple[str, FileEntry | None]]) -> str:
    """Render a 207 Multi-Status body.

    Args:
        entries: ``(href, entry)`` pairs, one response element each. The
            entry may be None for the implicit root collection. Collection
            hrefs are given a trailing ``/`` if they lack one.

    Returns:
        The multistatus XML document.
    """
    parts = [
        '<?xml version="1.0" encoding="utf-8"?>',
        '<d:multistatus xmlns:d="DAV:">',
    ]
    parts.extend(_render_response_element(href, entry) for href, entry in entries)
    parts.append("</d:multistatus>")
    return "\n".join(parts)
