"""
S3 Blob Store

Implements BlobStore over aioboto3.

S3 specifics that shape this module:

  Metadata
    User metadata is returned with lower-cased keys and cannot be edited in
    place. set_metadata() therefore copies the object onto itself with
    MetadataDirective=REPLACE, carrying the Content-Type across.
    S3 caps user metadata at 2 KB (UTF-8 bytes of keys plus values) and only
    accepts US-ASCII values; set_metadata() checks both up front and raises
    MetadataRejectedError instead of making the call.

  Copy
    CopyObject is server-side and finishes before the call returns, but the
    relocation contract still verifies the destination independently:
    get_copy_status() HEADs the destination and compares it with the size
    recorded from the source and the ETag returned by the copy.

        destination missing            → pending
        size and ETag match            → success
        present but anything differs   → failed

  Containers
    Containers are buckets. create_bucket is idempotent for the owner
    (BucketAlreadyOwnedByYou is swallowed); BucketAlreadyExists means
    another account owns the name and is raised.
"""

from __future__ import annotations

import logging

import aioboto3
from botocore.exceptions import ClientError

from taxdoc.core.config import Settings, settings as default_settings
from taxdoc.schemas.documents import CopyStatus
from taxdoc.storage.base import BlobNotFoundError, BlobStore, CopyHandle

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound", "NoSuchBucket"})

MAX_USER_METADATA_BYTES = 2048


class MetadataRejectedError(ValueError):
    """Metadata map S3 would refuse: over the size cap or non-ASCII."""


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _check_metadata(metadata: dict[str, str]) -> None:
    size = sum(len(k.encode("utf-8")) + len(v.encode("utf-8")) for k, v in metadata.items())
    if size > MAX_USER_METADATA_BYTES:
        raise MetadataRejectedError(
            f"User metadata is {size} bytes, S3 allows {MAX_USER_METADATA_BYTES}"
        )
    non_ascii = sorted(k for k, v in metadata.items() if not (k + v).isascii())
    if non_ascii:
        raise MetadataRejectedError(f"Non-ASCII metadata in: {', '.join(non_ascii)}")


def _etag(value: str | None) -> str:
    return (value or "").strip('"')


class S3BlobStore(BlobStore):
    """
    One instance per pipeline invocation (cheap: holds only a Session).
    Each operation opens its own scoped client.
    """

    def __init__(self, cfg: Settings | None = None) -> None:
        self._cfg = cfg or default_settings
        self._session = aioboto3.Session()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self):
        """Return a scoped async S3 client context manager."""
        kwargs: dict = {"region_name": self._cfg.aws_region}
        if self._cfg.s3_endpoint_url:
            kwargs["endpoint_url"] = self._cfg.s3_endpoint_url
        if self._cfg.aws_access_key_id:
            # Local dev only; in production the worker role supplies credentials
            kwargs["aws_access_key_id"] = self._cfg.aws_access_key_id
            kwargs["aws_secret_access_key"] = self._cfg.aws_secret_access_key
        return self._session.client("s3", **kwargs)

    async def _head(self, s3, container: str, key: str) -> dict:
        try:
            return await s3.head_object(Bucket=container, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                raise BlobNotFoundError(f"Object not found: s3://{container}/{key}") from exc
            raise

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def get_metadata(self, container: str, key: str) -> dict[str, str]:
        async with self._client() as s3:
            resp = await self._head(s3, container, key)
        return dict(resp.get("Metadata") or {})

    async def set_metadata(self, container: str, key: str, metadata: dict[str, str]) -> None:
        _check_metadata(metadata)
        async with self._client() as s3:
            head = await self._head(s3, container, key)
            await s3.copy_object(
                Bucket=container,
                Key=key,
                CopySource={"Bucket": container, "Key": key},
                Metadata=metadata,
                MetadataDirective="REPLACE",
                ContentType=head.get("ContentType") or "application/octet-stream",
            )
        logger.info("S3 metadata set | key=s3://%s/%s keys=%d", container, key, len(metadata))

    # ------------------------------------------------------------------
    # Copy / delete
    # ------------------------------------------------------------------

    async def start_copy(
        self,
        source_container:      str,
        key:                   str,
        destination_container: str,
    ) -> CopyHandle:
        async with self._client() as s3:
            head = await self._head(s3, source_container, key)
            resp = await s3.copy_object(
                Bucket=destination_container,
                Key=key,
                CopySource={"Bucket": source_container, "Key": key},
                MetadataDirective="COPY",
            )

        copy_etag = _etag(resp.get("CopyObjectResult", {}).get("ETag"))
        logger.info(
            "S3 copy started | src=s3://%s/%s dst=s3://%s/%s",
            source_container, key, destination_container, key,
        )
        return CopyHandle(
            source_container=source_container,
            destination_container=destination_container,
            key=key,
            expected_size=head.get("ContentLength"),
            expected_etag=copy_etag or None,
            copy_id=resp.get("VersionId"),
        )

    async def get_copy_status(self, handle: CopyHandle) -> CopyStatus:
        async with self._client() as s3:
            try:
                head = await self._head(s3, handle.destination_container, handle.key)
            except BlobNotFoundError:
                return CopyStatus.PENDING

        if handle.expected_size is not None and head.get("ContentLength") != handle.expected_size:
            logger.warning(
                "S3 copy size mismatch | key=%s expected=%s actual=%s",
                handle.key, handle.expected_size, head.get("ContentLength"),
            )
            return CopyStatus.FAILED
        if handle.expected_etag and _etag(head.get("ETag")) != handle.expected_etag:
            logger.warning("S3 copy etag mismatch | key=%s", handle.key)
            return CopyStatus.FAILED
        return CopyStatus.SUCCESS

    async def delete(self, container: str, key: str) -> None:
        async with self._client() as s3:
            await s3.delete_object(Bucket=container, Key=key)
        logger.warning("S3 hard delete | key=s3://%s/%s", container, key)

    # ------------------------------------------------------------------
    # Containers / URLs
    # ------------------------------------------------------------------

    async def create_container_if_absent(self, container: str) -> bool:
        params: dict = {"Bucket": container}
        if self._cfg.aws_region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self._cfg.aws_region}

        async with self._client() as s3:
            try:
                await s3.create_bucket(**params)
            except ClientError as exc:
                if _error_code(exc) == "BucketAlreadyOwnedByYou":
                    return False
                raise
        logger.info("S3 bucket created | bucket=%s", container)
        return True

    async def document_url(self, container: str, key: str) -> str:
        """Presigned GET so the analysis service can read a private object."""
        async with self._client() as s3:
            return await s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": container, "Key": key},
                ExpiresIn=self._cfg.presigned_url_ttl,
            )
