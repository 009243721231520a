"""S3-compatible blob store for SandboxDAV.

Stores objects in an upstream S3 bucket (AWS S3, Cloudflare R2, MinIO, ...)
via aiobotocore. Metadata stays in the metadata store; this backend handles
raw bytes only.

Key mapping:
    {prefix}{object_key}

Credentials come from the config when both key id and secret are set,
otherwise from the standard AWS credential chain.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

from aiobotocore.session import AioSession
from botocore.exceptions import ClientError

from sandboxdav.storage.backend import CHUNK_SIZE, BlobRead

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = ("NoSuchKey", "404", "NotFound")


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


class S3StorageBackend:
    """Blob store that proxies to an S3-compatible bucket.

    Attributes:
        bucket_name: The upstream bucket name.
        region: Region name passed to the client ("auto" for R2).
        prefix: Key prefix for all objects in the upstream bucket.
        endpoint_url: Custom endpoint (required for R2 and MinIO).
    """

    def __init__(
        self,
        bucket_name: str,
        region: str = "auto",
        prefix: str = "",
        endpoint_url: str = "",
        access_key_id: str = "",
        secret_access_key: str = "",
    ) -> None:
        self.bucket_name = bucket_name
        self.region = region
        self.prefix = prefix
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self._session = AioSession()
        self._client = None
        self._client_ctx = None

    def _s3_key(self, object_key: str) -> str:
        """Map an object key to an upstream S3 key."""
        return f"{self.prefix}{object_key}"

    async def init(self) -> None:
        """Create the aiobotocore S3 client and verify the bucket exists.

        Raises:
            ValueError: If the upstream bucket does not exist or is inaccessible.
        """
        client_kwargs: dict[str, Any] = {"region_name": self.region}
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url

        if self.access_key_id and self.secret_access_key:
            self._session.set_credentials(self.access_key_id, self.secret_access_key)
        self._client_ctx = self._session.create_client("s3", **client_kwargs)
        self._client = await self._client_ctx.__aenter__()

        try:
            await self._client.head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None
            raise ValueError(
                f"Cannot access upstream bucket '{self.bucket_name}': {_error_code(e)}"
            ) from e

        logger.info(
            "S3 blob store initialized: bucket=%s region=%s endpoint=%s prefix='%s'",
            self.bucket_name,
            self.region,
            self.endpoint_url or "default",
            self.prefix,
        )

    async def close(self) -> None:
        """Close the aiobotocore client session."""
        if self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None

    async def put(self, object_key: str, data: bytes) -> None:
        """Upload a whole object to the upstream bucket."""
        await self._client.put_object(
            Bucket=self.bucket_name,
            Key=self._s3_key(object_key),
            Body=data,
            ContentLength=len(data),
        )

    async def get(self, object_key: str, offset: int = 0, length: int | None = None) -> BlobRead:
        """Issue a (possibly ranged) GET against the upstream bucket.

        Raises:
            FileNotFoundError: If the object does not exist.
        """
        kwargs: dict[str, Any] = {"Bucket": self.bucket_name, "Key": self._s3_key(object_key)}
        if offset > 0 or length is not None:
            if length is not None:
                kwargs["Range"] = f"bytes={offset}-{offset + length - 1}"
            else:
                kwargs["Range"] = f"bytes={offset}-"

        try:
            resp = await self._client.get_object(**kwargs)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise FileNotFoundError(f"Object not found: {object_key}") from e
            raise

        return BlobRead(stream=self._iter_body(resp["Body"]), length=int(resp["ContentLength"]))

    async def _iter_body(self, body: Any) -> AsyncIterator[bytes]:
        async with body as stream:
            while True:
                chunk = await stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    async def delete(self, object_key: str) -> None:
        """Delete an object. S3 delete_object does not error on missing keys."""
        await self._client.delete_object(Bucket=self.bucket_name, Key=self._s3_key(object_key))

    async def exists(self, object_key: str) -> bool:
        try:
            await self._client.head_object(Bucket=self.bucket_name, Key=self._s3_key(object_key))
            return True
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return False
            raise
