"""FastAPI application factory and route setup for SandboxDAV."""

import email.utils
import json
import logging
import secrets
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError

from sandboxdav.config import SandboxDavConfig
from sandboxdav.errors import DavError
from sandboxdav.metadata import create_metadata_store
from sandboxdav.router import ROUTED_METHODS, DavRouter
from sandboxdav.storage.backend import BlobStore
from sandboxdav.storage.local import LocalStorageBackend
from sandboxdav.writes import reap_stranded_writes
from sandboxdav.xml_utils import render_error, xml_response

logger = logging.getLogger(__name__)

# Operational endpoints. Their leading underscore can never start a valid
# sandbox slug, so they cannot shadow a sandbox.
_QUIET_PATHS = {"/_metrics", "/_health", "/_healthz", "/_readyz"}

# Module-level singleton so multiple create_app() calls (e.g. in tests)
# don't re-register the same Prometheus gauge in the global registry.
_instrumentator = None


def _get_instrumentator():
    global _instrumentator
    if _instrumentator is None:
        from prometheus_fastapi_instrumentator import Instrumentator

        _instrumentator = Instrumentator(
            should_instrument_requests_inprogress=True,
            excluded_handlers=["/_metrics"],
        )
    return _instrumentator


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config: SandboxDavConfig) -> FastAPI:
    """Create and configure the SandboxDAV FastAPI application.

    The lifespan opens the metadata store and blob store on startup and
    closes them on shutdown. Every startup is a recovery: stranded pending
    writes are reaped before the first request is served when
    ``dav.reap_on_startup`` is set.

    Args:
        config: The loaded SandboxDAV configuration.

    Returns:
        A configured FastAPI application ready to run.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        metadata = create_metadata_store(config.metadata)
        await metadata.init_db()
        app.state.metadata = metadata

        storage = create_storage_backend(config)
        await storage.init()
        app.state.storage = storage

        logger.info("Metadata store initialized: %s", config.metadata.engine)
        logger.info("Storage backend initialized: %s", config.storage.backend)

        try:
            if config.dav.reap_on_startup:
                await reap_stranded_writes(
                    metadata, storage, config.dav.pending_timeout_seconds
                )
            yield
        finally:
            await storage.close()
            await metadata.close()
            logger.info("Metadata store and storage backend closed")

    app = FastAPI(
        title="SandboxDAV",
        version="0.1.0",
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config

    _register_exception_handlers(app)
    _register_middleware(app, config)

    # /_metrics must be registered before the WebDAV catch-all route.
    if config.observability.metrics:
        import sandboxdav.metrics as _metrics

        _metrics.init_metrics()
        _get_instrumentator().instrument(app, metric_namespace="sandboxdav").expose(
            app, endpoint="/_metrics"
        )

    _setup_routes(app, config)

    return app


def create_storage_backend(config: SandboxDavConfig) -> BlobStore:
    """Create a blob store instance based on configuration.

    Supports 'local', 'memory' and 's3' backends.

    Raises:
        ValueError: If the backend is unknown or misconfigured.
    """
    backend = config.storage.backend
    if backend == "local":
        return LocalStorageBackend(config.storage.local_root)
    elif backend == "memory":
        from sandboxdav.storage.memory import MemoryStorageBackend

        return MemoryStorageBackend()
    elif backend == "s3":
        if not config.storage.s3_bucket:
            raise ValueError("storage.s3.bucket is required when backend is 's3'")
        from sandboxdav.storage.s3 import S3StorageBackend

        return S3StorageBackend(
            bucket_name=config.storage.s3_bucket,
            region=config.storage.s3_region,
            prefix=config.storage.s3_prefix,
            endpoint_url=config.storage.s3_endpoint_url,
            access_key_id=config.storage.s3_access_key_id,
            secret_access_key=config.storage.s3_secret_access_key,
        )
    else:
        raise ValueError(f"Unknown storage backend: {backend}")


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the FastAPI app."""

    @app.exception_handler(DavError)
    async def dav_error_handler(request: Request, exc: DavError) -> Response:
        """Render a DavError as an XML error document.

        HEAD requests must not have a body.
        """
        request_id = getattr(request.state, "request_id", "")

        if request.method == "HEAD":
            return Response(status_code=exc.http_status, headers=exc.headers)

        body = render_error(
            code=exc.code,
            message=exc.message,
            resource=request.url.path,
            request_id=request_id,
        )
        return xml_response(body, status=exc.http_status, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        request_id = getattr(request.state, "request_id", "")
        messages = []
        for err in exc.errors():
            loc = " -> ".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", "Invalid value")
            messages.append(f"{loc}: {msg}" if loc else msg)
        combined = "; ".join(messages) or "Invalid request parameters"

        if request.method == "HEAD":
            return Response(status_code=400)

        body = render_error(
            code="BadRequest",
            message=combined,
            resource=request.url.path,
            request_id=request_id,
        )
        return xml_response(body, status=400)

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> Response:
        """Catch unexpected exceptions and return InternalError."""
        logger.exception("Unhandled exception in request handler")
        request_id = getattr(request.state, "request_id", "")

        if request.method == "HEAD":
            return Response(status_code=500)

        body = render_error(
            code="InternalError",
            message="We encountered an internal error. Please try again.",
            resource=request.url.path,
            request_id=request_id,
        )
        return xml_response(body, status=500)


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _content_length(value: str | None) -> int:
    if not value:
        return 0
    try:
        return int(value)
    except ValueError:
        return 0


def _register_middleware(app: FastAPI, config: SandboxDavConfig) -> None:
    """Register the common-headers, access-log and metrics middleware."""

    metrics_enabled = config.observability.metrics

    @app.middleware("http")
    async def common_headers_middleware(request: Request, call_next) -> Response:
        """Add common response headers to every response.

        Generates X-Request-Id (16-char uppercase hex), Date (RFC 1123) and
        Server. Stores request_id on request.state so exception handlers can
        use it. When metrics are enabled, also counts operations and bytes.
        """
        request_id = secrets.token_hex(8).upper()
        request.state.request_id = request_id
        start = time.monotonic()

        response = await call_next(request)

        duration_ms = round((time.monotonic() - start) * 1000, 2)

        response.headers["X-Request-Id"] = request_id
        response.headers["Date"] = email.utils.formatdate(usegmt=True)
        response.headers["Server"] = "SandboxDAV"

        quiet = request.url.path in _QUIET_PATHS

        if metrics_enabled and not quiet:
            import sandboxdav.metrics as _m

            if _m.dav_operations_total is not None:
                _m.dav_operations_total.labels(
                    method=request.method, status=str(response.status_code)
                ).inc()
            req_size = _content_length(request.headers.get("content-length"))
            if req_size > 0 and _m.bytes_received_total is not None:
                _m.bytes_received_total.inc(req_size)
            resp_size = _content_length(response.headers.get("content-length"))
            if resp_size > 0 and request.method != "HEAD" and _m.bytes_sent_total is not None:
                _m.bytes_sent_total.inc(resp_size)

        if not quiet:
            logger.info(
                "%s %s %d %.2fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "sandbox": getattr(request.state, "sandbox", None),
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "request_id": request_id,
                },
            )

        return response


# ---------------------------------------------------------------------------
# Health check helpers
# ---------------------------------------------------------------------------


async def _check_metadata(app: FastAPI) -> dict:
    """Check the metadata store with a sandbox lookup.

    Returns a dict with ``status`` and ``latency_ms`` keys.
    """
    metadata = getattr(app.state, "metadata", None)
    if metadata is None:
        return {"status": "error", "error": "metadata store not initialized", "latency_ms": 0}
    try:
        start = time.monotonic()
        await metadata.get_sandbox("_health-check")
        latency = round((time.monotonic() - start) * 1000, 1)
        return {"status": "ok", "latency_ms": latency}
    except Exception as exc:
        return {"status": "error", "error": str(exc), "latency_ms": 0}


async def _check_storage(app: FastAPI) -> dict:
    """Check the blob store with an existence check."""
    storage = getattr(app.state, "storage", None)
    if storage is None:
        return {"status": "error", "error": "storage backend not initialized", "latency_ms": 0}
    try:
        start = time.monotonic()
        await storage.exists("_health-check")
        latency = round((time.monotonic() - start) * 1000, 1)
        return {"status": "ok", "latency_ms": latency}
    except Exception as exc:
        return {"status": "error", "error": str(exc), "latency_ms": 0}


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _setup_routes(app: FastAPI, config: SandboxDavConfig) -> None:
    """Register the operational endpoints and the WebDAV catch-all route.

    The catch-all accepts every method so that unsupported verbs reach the
    router and get a WebDAV 405 with an Allow header.
    """
    health_check_enabled = config.observability.health_check

    @app.get("/_health")
    async def health_check(request: Request) -> Response:
        """Return health status.

        When health_check is enabled: check metadata and storage and return
        JSON with component checks and latency_ms.
        When disabled: return static ``{"status": "ok"}``.
        """
        if not health_check_enabled:
            return Response(content='{"status":"ok"}', media_type="application/json")

        meta_check = await _check_metadata(app)
        storage_check = await _check_storage(app)
        all_ok = meta_check["status"] == "ok" and storage_check["status"] == "ok"

        body = json.dumps(
            {
                "status": "ok" if all_ok else "degraded",
                "checks": {
                    "metadata": meta_check,
                    "storage": storage_check,
                },
            }
        )
        return Response(
            content=body,
            status_code=200 if all_ok else 503,
            media_type="application/json",
        )

    if health_check_enabled:

        @app.get("/_healthz")
        async def healthz() -> Response:
            """Liveness check. Returns 200 with empty body."""
            return Response(status_code=200)

        @app.get("/_readyz")
        async def readyz() -> Response:
            """Readiness check. 200 if both stores answer, 503 otherwise."""
            meta_check = await _check_metadata(app)
            storage_check = await _check_storage(app)
            all_ok = meta_check["status"] == "ok" and storage_check["status"] == "ok"
            return Response(status_code=200 if all_ok else 503)

    router = DavRouter(app)

    @app.api_route("/{full_path:path}", methods=ROUTED_METHODS, include_in_schema=False)
    async def dav_catch_all(request: Request, full_path: str) -> Response:
        return await router.dispatch(request)
