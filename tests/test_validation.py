"""Tests for sandbox slug validation."""

import pytest

from sandboxdav.errors import InvalidSandboxSlug
from sandboxdav.validation import is_valid_slug, validate_sandbox_slug


@pytest.mark.parametrize("slug", ["abc", "my-sandbox", "a1b2c3", "x" * 50, "a-b"])
def test_valid_slugs(slug):
    assert is_valid_slug(slug)
    validate_sandbox_slug(slug)


@pytest.mark.parametrize(
    "slug",
    ["ab", "x" * 51, "-abc", "abc-", "ABC", "my_box", "my box", "abc\n", "_health", ""],
)
def test_invalid_slugs(slug):
    assert not is_valid_slug(slug)
    with pytest.raises(InvalidSandboxSlug):
        validate_sandbox_slug(slug)


def test_invalid_slug_is_bad_request():
    with pytest.raises(InvalidSandboxSlug) as excinfo:
        validate_sandbox_slug("Nope")
    assert excinfo.value.http_status == 400
    assert excinfo.value.code == "InvalidSandboxSlug"
