"""Shared plumbing for SandboxDAV verb handlers."""

import urllib.parse

from fastapi import FastAPI

from sandboxdav.config import SandboxDavConfig
from sandboxdav.metadata.models import FileEntry, iso_to_http_date
from sandboxdav.metadata.store import MetadataStore
from sandboxdav.storage.backend import BlobStore


def entity_tag(entry: FileEntry) -> str:
    """Return the quoted ETag for an entry.

    Files are tagged with their object key, which encodes the version, so
    the tag changes on every write and survives a move. Directories are
    tagged with their version.
    """
    if entry.object_key:
        return '"' + urllib.parse.quote(entry.object_key, safe="/:@") + '"'
    return f'"{entry.version}"'


def entry_headers(entry: FileEntry) -> dict[str, str]:
    """Build the metadata headers shared by GET and HEAD."""
    headers = {
        "Last-Modified": iso_to_http_date(entry.mtime),
        "ETag": entity_tag(entry),
    }
    if not entry.is_dir:
        headers["Content-Type"] = "application/octet-stream"
        headers["Content-Length"] = str(entry.size)
        headers["Accept-Ranges"] = "bytes"
    return headers


class BaseHandler:
    """Gives handlers access to the stores and config on ``app.state``.

    The stores are looked up on every access so tests can swap them.

    Attributes:
        app: The parent FastAPI application.
    """

    def __init__(self, app: FastAPI) -> None:
        self.app = app

    @property
    def metadata(self) -> MetadataStore:
        return self.app.state.metadata

    @property
    def storage(self) -> BlobStore:
        return self.app.state.storage

    @property
    def config(self) -> SandboxDavConfig:
        return self.app.state.config
