"""Input validation helpers for SandboxDAV.

Each function raises an appropriate ``DavError`` subclass on invalid input.
"""

import re

from sandboxdav.errors import InvalidSandboxSlug

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Sandbox slug rules:
#   - 3-50 characters
#   - lowercase letters, digits and hyphens
#   - must start and end with a letter or digit
SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,48}[a-z0-9]$")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def is_valid_slug(slug: str) -> bool:
    """Return True if ``slug`` matches the sandbox slug pattern."""
    return bool(SLUG_RE.fullmatch(slug))


def validate_sandbox_slug(slug: str) -> None:
    """Validate a sandbox slug.

    Args:
        slug: The candidate slug.

    Raises:
        InvalidSandboxSlug: If the slug violates the naming rules.
    """
    if not is_valid_slug(slug):
        raise InvalidSandboxSlug(slug)
