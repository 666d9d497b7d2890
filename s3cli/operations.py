"""Bucket and object operations backed by boto3.

Thin wrappers over the SDK that normalize results into s3cli models.
Errors from botocore propagate to the caller.
"""

import logging
import os
from typing import Any, Iterator, Optional

from boto3.s3.transfer import TransferConfig

from s3cli.models import BucketSummary, ObjectSummary

logger = logging.getLogger(__name__)

# DeleteObjects accepts at most 1000 keys per call
DELETE_BATCH_SIZE = 1000

# Part size for multipart uploads: 8 MiB
DEFAULT_PART_SIZE = 8 * 1024 * 1024

# Size of chunks when streaming a download to disk: 1 MiB
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def default_key(filename: str, key: Optional[str] = None) -> str:
    """Use the file's base name when no key is given."""
    return key or os.path.basename(filename)


def format_range(byte_range: Optional[str]) -> Optional[str]:
    """Turn '0-64' into a Range header value ('bytes=0-64')."""
    if not byte_range:
        return None
    return f"bytes={byte_range}"


class SdkOperations:
    """Bucket/object commands over a boto3 S3 client."""

    def __init__(self, s3_client: Any):
        self.s3_client = s3_client

    # Buckets

    def create_bucket(self, bucket: str) -> None:
        self.s3_client.create_bucket(Bucket=bucket)

    def list_buckets(self) -> list[BucketSummary]:
        response = self.s3_client.list_buckets()
        return [
            BucketSummary(name=b["Name"], creation_date=_iso(b.get("CreationDate")))
            for b in response.get("Buckets", [])
        ]

    def delete_bucket(self, bucket: str) -> None:
        self.s3_client.delete_bucket(Bucket=bucket)

    def head_bucket(self, bucket: str) -> dict:
        return self.s3_client.head_bucket(Bucket=bucket)

    def get_bucket_acl(self, bucket: str) -> dict:
        return self.s3_client.get_bucket_acl(Bucket=bucket)

    # Objects

    def head_object(self, bucket: str, key: str) -> dict:
        return self.s3_client.head_object(Bucket=bucket, Key=key)

    def get_object_acl(self, bucket: str, key: str) -> dict:
        return self.s3_client.get_object_acl(Bucket=bucket, Key=key)

    def put_object(self, bucket: str, filename: str, key: Optional[str] = None) -> str:
        """Upload a file in a single PUT.

        Returns:
            The object key used.
        """
        key = default_key(filename, key)
        with open(filename, "rb") as f:
            self.s3_client.put_object(Bucket=bucket, Key=key, Body=f)
        return key

    def multipart_upload(
        self,
        bucket: str,
        filename: str,
        key: Optional[str] = None,
        part_size: int = DEFAULT_PART_SIZE,
    ) -> str:
        """Upload a file through the boto3 transfer manager.

        Files larger than part_size are sent as a multipart upload.

        Returns:
            The object key used.
        """
        key = default_key(filename, key)
        transfer_config = TransferConfig(
            multipart_threshold=part_size,
            multipart_chunksize=part_size,
        )
        self.s3_client.upload_file(filename, bucket, key, Config=transfer_config)
        return key

    def iter_objects(self, bucket: str, prefix: str = "", delimiter: str = "") -> Iterator[dict]:
        """Yield raw listing pages for a bucket.

        Pagination ends when the store reports the listing is complete.
        """
        kwargs = {"Bucket": bucket, "Prefix": prefix}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        paginator = self.s3_client.get_paginator("list_objects_v2")
        yield from paginator.paginate(**kwargs)

    def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: str = "",
    ) -> tuple[list[ObjectSummary], list[str]]:
        """List objects under a prefix.

        Returns:
            Tuple of (objects, common_prefixes).
        """
        objects: list[ObjectSummary] = []
        prefixes: list[str] = []
        for page in self.iter_objects(bucket, prefix, delimiter):
            for obj in page.get("Contents", []):
                objects.append(ObjectSummary(
                    key=obj["Key"],
                    size=obj.get("Size", 0),
                    last_modified=_iso(obj.get("LastModified")),
                    etag=obj.get("ETag", "").strip('"') or None,
                ))
            prefixes.extend(p["Prefix"] for p in page.get("CommonPrefixes", []))
        return objects, prefixes

    def get_object(
        self,
        bucket: str,
        key: str,
        filename: Optional[str] = None,
        byte_range: Optional[str] = None,
    ) -> str:
        """Download an object (or a byte range of it) to a local file.

        Returns:
            The path written.
        """
        filename = filename or os.path.basename(key)
        kwargs = {"Bucket": bucket, "Key": key}
        range_header = format_range(byte_range)
        if range_header:
            kwargs["Range"] = range_header

        response = self.s3_client.get_object(**kwargs)
        body = response["Body"]
        with open(filename, "wb") as f:
            for chunk in body.iter_chunks(DOWNLOAD_CHUNK_SIZE):
                f.write(chunk)
        return filename

    def delete_object(self, bucket: str, key: str) -> int:
        self.s3_client.delete_object(Bucket=bucket, Key=key)
        return 1

    def delete_prefix(self, bucket: str, prefix: str) -> int:
        """Delete every object whose key starts with prefix.

        Returns:
            Number of objects deleted.
        """
        count = 0
        batch: list[dict] = []
        for page in self.iter_objects(bucket, prefix):
            for obj in page.get("Contents", []):
                batch.append({"Key": obj["Key"]})
                if len(batch) == DELETE_BATCH_SIZE:
                    count += self._delete_batch(bucket, batch)
                    batch = []
        if batch:
            count += self._delete_batch(bucket, batch)
        return count

    def _delete_batch(self, bucket: str, batch: list[dict]) -> int:
        self.s3_client.delete_objects(
            Bucket=bucket,
            Delete={"Objects": batch, "Quiet": True},
        )
        logger.debug("Deleted %d objects from %s", len(batch), bucket)
        return len(batch)

    def put_object_acl(self, bucket: str, key: str, acl: str) -> int:
        self.s3_client.put_object_acl(Bucket=bucket, Key=key, ACL=acl)
        return 1

    def apply_acl_prefix(self, bucket: str, prefix: str, acl: str) -> int:
        """Apply a canned ACL to every object under prefix.

        Returns:
            Number of objects updated.
        """
        count = 0
        for page in self.iter_objects(bucket, prefix):
            for obj in page.get("Contents", []):
                count += self.put_object_acl(bucket, obj["Key"], acl)
        return count
