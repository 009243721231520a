"""HTTP byte-range parsing for SandboxDAV."""

import re

from sandboxdav.errors import InvalidRange

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


def parse_range_header(
    header: str | None, total: int, strict: bool = False
) -> tuple[int, int] | None:
    """Parse an HTTP Range header into (start, end) byte offsets.

    Supports three forms:
        - bytes=start-end  (both specified)
        - bytes=start-     (from start to end of file)
        - bytes=-suffix    (last N bytes)

    Anything else (other units, multiple ranges, garbage) yields None so the
    caller serves the full entity. An unsatisfiable range also yields None,
    unless ``strict`` is set.

    Args:
        header: The Range header value, e.g. "bytes=0-499".
        total: The total size of the entity in bytes.
        strict: Raise InvalidRange for syntactically valid but
            unsatisfiable ranges instead of ignoring them.

    Returns:
        A (start, end) tuple of inclusive byte offsets, or None.

    Raises:
        InvalidRange: Only in strict mode, if the range cannot be satisfied.
    """
    if not header:
        return None

    m = _RANGE_RE.match(header.strip())
    if not m:
        return None

    start_str, end_str = m.group(1), m.group(2)
    if not start_str and not end_str:
        return None

    if not start_str:
        # Suffix range: last N bytes
        start = max(0, total - int(end_str))
        end = total - 1
    elif not end_str:
        start = int(start_str)
        end = total - 1
    else:
        start = int(start_str)
        end = int(end_str)

    if start > end or start >= total:
        if strict:
            raise InvalidRange(total)
        return None

    return start, min(end, total - 1)


def content_range(start: int, end: int, total: int) -> str:
    """Format a Content-Range header value."""
    return f"bytes {start}-{end}/{total}"
