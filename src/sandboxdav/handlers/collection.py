"""Collection-level WebDAV handlers for SandboxDAV.

Implements:
    - PROPFIND  /{sandbox}/{path}   list properties (Depth 0 or 1)
    - MKCOL     /{sandbox}/{path}   create a directory
    - OPTIONS   /{sandbox}/{path}   advertise capabilities
"""

from fastapi import Request, Response

from sandboxdav.errors import MethodNotAllowed, NotFound
from sandboxdav.handlers.base import BaseHandler
from sandboxdav.metadata.models import FileEntry
from sandboxdav.paths import ROOT, href_for
from sandboxdav.xml_utils import render_multistatus, xml_response

ALLOWED_METHODS = "OPTIONS, PROPFIND, GET, HEAD, PUT, MKCOL, MOVE, DELETE"


class CollectionHandler(BaseHandler):
    """Handles verbs that describe or create collections."""

    async def propfind(self, request: Request, tenant_id: str, path: str) -> Response:
        """Describe a resource and, unless ``Depth: 0``, its children.

        Any Depth other than ``0`` (including ``infinity``) is treated as 1.
        The sandbox root always exists even though no entry represents it.

        Returns:
            207 Multi-Status.
        """
        depth = request.headers.get("depth", "1").strip()
        entries: list[tuple[str, FileEntry | None]] = []

        if path == ROOT:
            entries.append((href_for(tenant_id, ROOT, is_collection=True), None))
            list_children = True
        else:
            entry = await self.metadata.stat(tenant_id, path)
            if entry is None:
                raise NotFound(path)
            entries.append((href_for(tenant_id, entry.path, entry.is_dir), entry))
            list_children = entry.is_dir

        if list_children and depth != "0":
            for child in await self.metadata.list_children(tenant_id, path):
                entries.append((href_for(tenant_id, child.path, child.is_dir), child))

        return xml_response(render_multistatus(entries), status=207)

    async def mkcol(self, request: Request, tenant_id: str, path: str) -> Response:
        """Create a directory. An existing directory is left alone.

        Raises:
            MethodNotAllowed: For the sandbox root, which always exists.
            Conflict: If a file occupies the path.
        """
        if path == ROOT:
            raise MethodNotAllowed("Root directory already exists", allow=ALLOWED_METHODS)
        await self.metadata.ensure_directory(tenant_id, path)
        return Response(status_code=201)

    async def options(self, request: Request, tenant_id: str, path: str) -> Response:
        return Response(
            status_code=200,
            headers={"DAV": "1", "Allow": ALLOWED_METHODS, "MS-Author-Via": "DAV"},
        )
