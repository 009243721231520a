"""URL path helpers for SandboxDAV.

All paths handled by the metadata store are absolute, tenant-relative and
normalized: a single leading ``/``, no repeated separators and no trailing
separator except for the root path ``/`` itself.
"""

import re
import urllib.parse

ROOT = "/"

_REPEATED_SEP_RE = re.compile(r"/+")


def normalize_path(raw: str) -> str:
    """Normalize a raw URL path.

    Percent-decodes until the value stops changing, collapses repeated
    separators, strips a trailing separator (root stays ``/``) and
    guarantees a leading separator. The result is a fixpoint:
    ``normalize_path(normalize_path(p)) == normalize_path(p)``.

    Args:
        raw: The raw path, possibly percent-encoded.

    Returns:
        The normalized path.
    """
    path = raw
    while True:
        decoded = urllib.parse.unquote(path)
        if decoded == path:
            break
        path = decoded
    path = _REPEATED_SEP_RE.sub("/", path)
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    if not path.startswith("/"):
        path = "/" + path
    return path


def parent_path(path: str) -> str:
    """Return the parent of a normalized path. The root is its own parent."""
    if path == ROOT:
        return ROOT
    idx = path.rfind("/")
    return ROOT if idx <= 0 else path[:idx]


def base_name(path: str) -> str:
    """Return the last segment of a normalized path, ``""`` for the root."""
    if path == ROOT:
        return ""
    return path[path.rfind("/") + 1 :]


def split_sandbox_path(full_path: str) -> tuple[str, str] | None:
    """Split a request path into its sandbox slug and file path.

    Examples::

        "/my-sandbox/docs/readme.txt" -> ("my-sandbox", "/docs/readme.txt")
        "/my-sandbox"                 -> ("my-sandbox", "/")
        "/"                           -> None

    Args:
        full_path: The request path (raw or normalized).

    Returns:
        A ``(slug, path)`` tuple, or None when the URL has no sandbox segment.
    """
    normalized = normalize_path(full_path)
    stripped = normalized[1:]
    if not stripped:
        return None

    slash = stripped.find("/")
    if slash == -1:
        return stripped, ROOT
    return stripped[:slash], stripped[slash:]


def href_for(slug: str, path: str, is_collection: bool = False) -> str:
    """Build a percent-encoded, sandbox-prefixed href for a resource.

    Collection hrefs always end with ``/``.
    """
    href = f"/{slug}" + ("" if path == ROOT else path)
    if is_collection and not href.endswith("/"):
        href += "/"
    return urllib.parse.quote(href)
