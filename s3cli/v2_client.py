"""Bucket and object operations sent over httpx with v2 signatures.

Offers the same methods as SdkOperations for the commands that map to a
single request. Each attempt builds the httpx request first, then signs
the URL and headers it will send with sign_request. Transient failures
are retried with backoff and re-signed on every attempt.
"""

import logging
import os
import xml.etree.ElementTree as ET
from typing import Optional, Sequence
from urllib.parse import urlencode

import httpx

from s3cli.config import ConfigurationError
from s3cli.models import BucketSummary, Credentials, ObjectSummary
from s3cli.operations import DOWNLOAD_CHUNK_SIZE, default_key, format_range
from s3cli.presign import object_url
from s3cli.retry import retry_with_backoff
from s3cli.signing import SignableRequest, sign_request

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


def _local_name(tag: str) -> str:
    """Strip the XML namespace from a tag."""
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if _local_name(child.tag) == name]


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    found = _children(element, name)
    return found[0].text if found else None


def parse_bucket_listing(body: bytes) -> list[BucketSummary]:
    """Parse a ListAllMyBucketsResult document."""
    root = ET.fromstring(body)
    buckets = []
    for container in _children(root, "Buckets"):
        for bucket in _children(container, "Bucket"):
            buckets.append(BucketSummary(
                name=_child_text(bucket, "Name") or "",
                creation_date=_child_text(bucket, "CreationDate"),
            ))
    return buckets


def parse_object_listing(body: bytes) -> tuple[list[ObjectSummary], list[str], bool, Optional[str]]:
    """Parse a ListBucketResult document.

    Returns:
        Tuple of (objects, common_prefixes, is_truncated, next_marker).
    """
    root = ET.fromstring(body)
    objects = []
    for contents in _children(root, "Contents"):
        etag = _child_text(contents, "ETag")
        objects.append(ObjectSummary(
            key=_child_text(contents, "Key") or "",
            size=int(_child_text(contents, "Size") or 0),
            last_modified=_child_text(contents, "LastModified"),
            etag=etag.strip('"') if etag else None,
        ))
    prefixes = [
        _child_text(p, "Prefix") or "" for p in _children(root, "CommonPrefixes")
    ]
    is_truncated = (_child_text(root, "IsTruncated") or "").lower() == "true"
    next_marker = _child_text(root, "NextMarker")
    return objects, prefixes, is_truncated, next_marker


class V2Operations:
    """Bucket/object commands signed with the legacy v2 scheme."""

    def __init__(
        self,
        http_client: httpx.Client,
        endpoint: str,
        credentials: Credentials,
        max_attempts: int = 3,
        delays: Sequence[float] = (1.0, 2.0, 4.0),
    ):
        """Initialize the v2 transport.

        Args:
            http_client: httpx client used to send requests
            endpoint: Base URL of the store, e.g. http://127.0.0.1:9000
            credentials: Key pair to sign with
            max_attempts: Attempts per request, including the first
            delays: Backoff delays between attempts
        """
        if not endpoint:
            raise ConfigurationError("Unknown endpoint")
        self.http_client = http_client
        self.endpoint = endpoint.rstrip("/")
        self.credentials = credentials
        self.max_attempts = max_attempts
        self.delays = delays

    def _url(self, bucket: str = "", key: str = "", query: str = "") -> str:
        if not bucket:
            url = self.endpoint + "/"
        elif key:
            url = object_url(self.endpoint, bucket, key)
        else:
            url = object_url(self.endpoint, bucket, "").rstrip("/")
        return f"{url}?{query}" if query else url

    def _send_once(
        self,
        method: str,
        url: str,
        headers: Optional[dict],
        content: Optional[bytes],
        stream: bool,
    ) -> httpx.Response:
        http_request = self.http_client.build_request(
            method, url, headers=headers, content=content,
        )
        # Sign the URL and headers httpx will actually send
        request = SignableRequest(
            method=method,
            url=str(http_request.url),
            headers=httpx.Headers(http_request.headers),
        )
        sign_request(self.credentials, request)
        http_request.headers["Date"] = request.headers["Date"]
        http_request.headers["Authorization"] = request.headers["Authorization"]

        response = self.http_client.send(http_request, stream=stream)
        if response.is_error and stream:
            response.read()
            response.close()
        response.raise_for_status()
        return response

    def send(
        self,
        method: str,
        bucket: str = "",
        key: str = "",
        query: str = "",
        headers: Optional[dict] = None,
        content: Optional[bytes] = None,
        stream: bool = False,
    ) -> httpx.Response:
        """Sign and send one request, retrying transient failures.

        Raises:
            httpx.HTTPStatusError: For non-retryable error responses.
            RetryExhausted: If every attempt failed transiently.
        """
        url = self._url(bucket, key, query)
        logger.debug("%s %s", method, url)
        return retry_with_backoff(
            self._send_once,
            max_attempts=self.max_attempts,
            delays=self.delays,
            args=(method, url, headers, content, stream),
        )

    # Buckets

    def create_bucket(self, bucket: str) -> None:
        self.send("PUT", bucket)

    def list_buckets(self) -> list[BucketSummary]:
        return parse_bucket_listing(self.send("GET").content)

    def delete_bucket(self, bucket: str) -> None:
        self.send("DELETE", bucket)

    def head_bucket(self, bucket: str) -> dict:
        return dict(self.send("HEAD", bucket).headers)

    def get_bucket_acl(self, bucket: str) -> str:
        return self.send("GET", bucket, query="acl").text

    # Objects

    def head_object(self, bucket: str, key: str) -> dict:
        return dict(self.send("HEAD", bucket, key).headers)

    def get_object_acl(self, bucket: str, key: str) -> str:
        return self.send("GET", bucket, key, query="acl").text

    def put_object(self, bucket: str, filename: str, key: Optional[str] = None) -> str:
        key = default_key(filename, key)
        with open(filename, "rb") as f:
            data = f.read()
        self.send("PUT", bucket, key, content=data)
        return key

    def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: str = "",
    ) -> tuple[list[ObjectSummary], list[str]]:
        """List objects under a prefix, following markers across pages."""
        objects: list[ObjectSummary] = []
        prefixes: list[str] = []
        marker = ""
        while True:
            params = {"prefix": prefix}
            if delimiter:
                params["delimiter"] = delimiter
            if marker:
                params["marker"] = marker

            response = self.send("GET", bucket, query=urlencode(params))
            page, page_prefixes, is_truncated, next_marker = parse_object_listing(response.content)
            objects.extend(page)
            prefixes.extend(page_prefixes)

            if not is_truncated:
                break
            marker = next_marker or (page[-1].key if page else "")
            if not marker:
                break
        return objects, prefixes

    def get_object(
        self,
        bucket: str,
        key: str,
        filename: Optional[str] = None,
        byte_range: Optional[str] = None,
    ) -> str:
        filename = filename or os.path.basename(key)
        headers = {}
        range_header = format_range(byte_range)
        if range_header:
            headers["Range"] = range_header

        response = self.send("GET", bucket, key, headers=headers, stream=True)
        try:
            with open(filename, "wb") as f:
                for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                    f.write(chunk)
        finally:
            response.close()
        return filename

    def delete_object(self, bucket: str, key: str) -> int:
        self.send("DELETE", bucket, key)
        return 1

    def put_object_acl(self, bucket: str, key: str, acl: str) -> int:
        self.send("PUT", bucket, key, query="acl", headers={"x-amz-acl": acl})
        return 1

    def multipart_upload(self, bucket: str, filename: str, key: Optional[str] = None, **kwargs) -> str:
        raise ConfigurationError("Multipart upload is not supported with --sign-v2")

    def delete_prefix(self, bucket: str, prefix: str) -> int:
        raise ConfigurationError("Prefix delete is not supported with --sign-v2")

    def apply_acl_prefix(self, bucket: str, prefix: str, acl: str) -> int:
        raise ConfigurationError("Prefix ACL is not supported with --sign-v2")
