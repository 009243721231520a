"""Per-resource WebDAV handlers for SandboxDAV.

Implements:
    - HEAD    /{sandbox}/{path}   metadata headers only
    - GET     /{sandbox}/{path}   file content, with single byte-range support
    - PUT     /{sandbox}/{path}   new file version via the two-phase write
    - DELETE  /{sandbox}/{path}   tombstone a file or directory
    - MOVE    /{sandbox}/{path}   rename within the same sandbox
"""

import logging
import urllib.parse

from fastapi import Request, Response
from fastapi.responses import StreamingResponse

from sandboxdav.errors import (
    BadRequest,
    Forbidden,
    InternalError,
    MethodNotAllowed,
    NotFound,
    UpstreamError,
)
from sandboxdav.handlers.base import BaseHandler, entity_tag, entry_headers
from sandboxdav.paths import ROOT, base_name, parent_path, split_sandbox_path
from sandboxdav.ranges import content_range, parse_range_header
from sandboxdav.writes import WriteSaga

logger = logging.getLogger(__name__)


class ResourceHandler(BaseHandler):
    """Handles verbs that act on a single file or directory."""

    async def head(self, request: Request, tenant_id: str, path: str) -> Response:
        """Return an entry's metadata as headers.

        Returns:
            200 with Last-Modified and ETag; files also carry Content-Length
            and Accept-Ranges.
        """
        entry = await self.metadata.stat(tenant_id, path)
        if entry is None:
            raise NotFound(path)
        return Response(status_code=200, headers=entry_headers(entry))

    async def get(self, request: Request, tenant_id: str, path: str) -> Response:
        """Stream a file's content.

        A satisfiable ``Range`` header yields 206 with Content-Range. Any
        other Range header is ignored and the whole file is sent with 200,
        unless strict ranges are configured, in which case an unsatisfiable
        range is a 416.
        """
        entry = await self.metadata.stat(tenant_id, path)
        if entry is None:
            raise NotFound(path)
        if entry.is_dir:
            raise MethodNotAllowed("Cannot GET a directory")
        if not entry.object_key:
            raise InternalError(f"No object key recorded for {path}")

        byte_range = parse_range_header(
            request.headers.get("range"),
            entry.size,
            strict=self.config.dav.strict_ranges,
        )
        if byte_range is not None:
            start, end = byte_range
            offset, length = start, end - start + 1
        else:
            offset, length = 0, None
        expected = entry.size if length is None else length

        try:
            blob = await self.storage.get(entry.object_key, offset=offset, length=length)
        except FileNotFoundError as exc:
            logger.error("Blob %s missing for %s%s", entry.object_key, tenant_id, path)
            raise UpstreamError("Object missing from blob store") from exc
        except Exception as exc:
            logger.error("Blob read failed for %s", entry.object_key, exc_info=True)
            raise UpstreamError(f"Blob read failed: {exc}") from exc

        if blob.length != expected:
            await blob.stream.aclose()
            logger.error(
                "Blob %s returned %d bytes, expected %d",
                entry.object_key,
                blob.length,
                expected,
            )
            raise UpstreamError("Blob size does not match metadata")

        headers = entry_headers(entry)
        headers["Content-Length"] = str(expected)
        status = 200
        if byte_range is not None:
            headers["Content-Range"] = content_range(start, end, entry.size)
            status = 206

        return StreamingResponse(
            content=blob.stream,
            status_code=status,
            headers=headers,
            media_type="application/octet-stream",
        )

    async def put(self, request: Request, tenant_id: str, path: str) -> Response:
        """Write a new version of a file.

        The body is buffered in full before any store is touched.

        Returns:
            201 with an ETag derived from the new object key.
        """
        if path == ROOT:
            raise Forbidden("Cannot write to root")

        data = await request.body()
        saga = WriteSaga(
            self.metadata,
            self.storage,
            tenant_id,
            path,
            pending_timeout_seconds=self.config.dav.pending_timeout_seconds,
        )
        entry = await saga.run(data)
        return Response(status_code=201, headers={"ETag": entity_tag(entry)})

    async def delete(self, request: Request, tenant_id: str, path: str) -> Response:
        """Tombstone a path.

        Directories lose only their immediate children unless recursive
        delete is configured. Deleting an absent path succeeds.
        """
        if path == ROOT:
            raise Forbidden("Cannot delete root")

        if self.config.dav.recursive_delete:
            count = await self.metadata.soft_delete_tree(tenant_id, path)
        else:
            count = await self.metadata.soft_delete(tenant_id, path)
        logger.debug("Deleted %s%s (%d entries)", tenant_id, path, count)
        return Response(status_code=204)

    async def move(self, request: Request, tenant_id: str, path: str) -> Response:
        """Rename a path within the sandbox.

        The ``Destination`` header may be an absolute URL or a bare path and
        must name the same sandbox. An existing destination is replaced.
        """
        destination = request.headers.get("destination")
        if not destination:
            raise BadRequest("Missing Destination header")

        parts = urllib.parse.urlsplit(destination)
        dest_url_path = parts.path if parts.scheme and parts.netloc else destination
        parsed = split_sandbox_path(dest_url_path)
        if parsed is None:
            raise BadRequest("Destination does not name a sandbox")
        dst_tenant, dst_path = parsed
        if dst_tenant != tenant_id:
            raise BadRequest("Destination must be in the same sandbox")

        if path == ROOT or dst_path == ROOT:
            raise Forbidden("Cannot move root")

        await self.metadata.move(
            tenant_id,
            path,
            dst_path,
            base_name(dst_path),
            parent_path(dst_path),
        )
        return Response(status_code=201)
