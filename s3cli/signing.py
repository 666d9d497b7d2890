"""Legacy S3 "v2" request signing.

Two signing paths with different string-to-sign formats:

- sign_request: header-based auth. Adds ``Date`` and
  ``Authorization: AWS <access-key>:<signature>`` to the request.
- presign_request: query-string auth. Adds ``AWSAccessKeyId``,
  ``Expires`` and ``Signature`` to the URL.

Both use base64(HMAC-SHA1(secret-key, string-to-sign)). Nothing here does
I/O; the only outside input is the clock, which every entry point lets
the caller pin with ``now`` (Unix seconds).

Reference: https://docs.aws.amazon.com/AmazonS3/latest/API/RESTAuthentication.html
"""

import base64
import hashlib
import hmac
import logging
import re
import time
from dataclasses import dataclass, field
from email.utils import formatdate
from operator import itemgetter
from typing import Iterable, Mapping, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from s3cli.models import Credentials

logger = logging.getLogger(__name__)

# Prefix of vendor headers that take part in the signature
AMZ_HEADER_PREFIX = "x-amz-"

# Sub-resources and response overrides that must be signed
SIGNABLE_QUERY_PARAMS = frozenset(
    {
        "acl",
        "location",
        "logging",
        "notification",
        "partNumber",
        "policy",
        "requestPayment",
        "torrent",
        "uploadId",
        "uploads",
        "versionId",
        "versioning",
        "versions",
        "response-content-type",
        "response-content-language",
        "response-expires",
        "response-cache-control",
        "response-content-disposition",
        "response-content-encoding",
    }
)

SIGNABLE_METHODS = frozenset({"GET", "PUT", "DELETE", "HEAD", "POST"})

# A "%" not followed by two hex digits
_BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")

HeadersLike = Union[httpx.Headers, Mapping[str, str], Mapping[str, list[str]]]


class SigningError(Exception):
    """Raised when a request cannot be canonicalized for signing."""

    pass


@dataclass
class SignableRequest:
    """Description of an outbound HTTP request to be signed.

    The URL path must already be percent-escaped; it is signed exactly
    as written. Headers are case-insensitive and may repeat.
    """

    method: str
    url: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        if self.method not in SIGNABLE_METHODS:
            raise SigningError(f"Unsupported method for v2 signing: {self.method}")
        if not isinstance(self.headers, httpx.Headers):
            self.headers = httpx.Headers(list(_header_pairs(self.headers)))

    def split_url(self):
        try:
            return urlsplit(self.url)
        except ValueError as e:
            raise SigningError(f"Invalid URL {self.url!r}: {e}") from e

    @property
    def escaped_path(self) -> str:
        """URL path exactly as escaped in the URL, never decoded."""
        return self.split_url().path

    @property
    def query_params(self) -> list[tuple[str, str]]:
        """Query parameters in URL order. A bare name has value ''."""
        query = self.split_url().query
        bad_escape = _BAD_ESCAPE_RE.search(query)
        if bad_escape:
            raise SigningError(
                f"Invalid query string {query!r}: malformed escape at offset {bad_escape.start()}"
            )
        try:
            return parse_qsl(query, keep_blank_values=True, errors="strict")
        except ValueError as e:
            raise SigningError(f"Invalid query string {query!r}: {e}") from e

    def first_header(self, name: str) -> str:
        """Return the first value of a header, or '' if absent."""
        values = self.headers.get_list(name)
        return values[0] if values else ""


def _header_pairs(headers: HeadersLike) -> Iterable[tuple[str, str]]:
    if isinstance(headers, httpx.Headers):
        yield from headers.multi_items()
        return
    for name, value in headers.items():
        if isinstance(value, str):
            yield name, value
        else:
            for item in value:
                yield name, item


def canonical_amz_headers(headers: HeadersLike) -> list[str]:
    """Select and order the vendor headers that are part of the signature.

    Only headers whose lower-cased name starts with ``x-amz-`` are kept.
    Names are lower-cased and sorted; repeated headers (in any case) are
    merged with their values joined by ``,``.

    Args:
        headers: httpx.Headers, or a mapping of name to a value or a
                list of values.

    Returns:
        Lines of the form ``name:value``, in signing order.
    """
    collected: dict[str, list[str]] = {}
    for name, value in _header_pairs(headers):
        lowered = name.lower()
        if lowered.startswith(AMZ_HEADER_PREFIX):
            collected.setdefault(lowered, []).append(value)

    return [f"{name}:{','.join(collected[name])}" for name in sorted(collected)]


def canonical_resource(request: SignableRequest) -> str:
    """Build the path plus signed sub-resources of a request.

    Query parameters outside SIGNABLE_QUERY_PARAMS are dropped. Each kept
    value becomes ``name=value``, or the bare ``name`` when empty; tokens
    are sorted and joined with ``&``.
    """
    resource = request.escaped_path or "/"

    tokens = []
    for name, value in request.query_params:
        if name not in SIGNABLE_QUERY_PARAMS:
            continue
        tokens.append(f"{name}={value}" if value else name)

    if tokens:
        resource += "?" + "&".join(sorted(tokens))
    return resource


def build_string_to_sign(request: SignableRequest, date: str) -> str:
    """Build the string-to-sign for header-based auth."""
    amz_lines = canonical_amz_headers(request.headers)
    amz_block = "\n".join(amz_lines) + "\n" if amz_lines else ""

    return "\n".join([
        request.method,
        request.first_header("Content-MD5"),
        request.first_header("Content-Type"),
        date,
        amz_block + canonical_resource(request),
    ])


def compute_signature(secret_key: str, string_to_sign: str) -> str:
    """Return base64(HMAC-SHA1(secret_key, string_to_sign))."""
    digest = hmac.new(
        secret_key.encode("utf-8"),
        string_to_sign.encode("utf-8"),
        hashlib.sha1,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def sign_request(
    credentials: Credentials,
    request: SignableRequest,
    now: Optional[float] = None,
) -> SignableRequest:
    """Sign a request in place with an ``Authorization`` header.

    The ``Date`` header is regenerated from the clock on every call,
    replacing any value already present.

    Args:
        credentials: Access/secret key pair.
        request: Request to sign; its headers are modified.
        now: Unix time to sign at (defaults to the current time).

    Returns:
        The same request, for chaining.

    Raises:
        SigningError: If the URL or its query string is malformed.
    """
    if now is None:
        now = time.time()

    date = formatdate(now, usegmt=True)
    request.headers["Date"] = date

    string_to_sign = build_string_to_sign(request, date)
    logger.debug("StringToSign:\n%s", string_to_sign)

    signature = compute_signature(credentials.secret_key, string_to_sign)
    request.headers["Authorization"] = f"AWS {credentials.access_key}:{signature}"
    return request


def presign_request(
    credentials: Credentials,
    request: SignableRequest,
    expires_in: int,
    now: Optional[float] = None,
) -> str:
    """Embed a query-string signature valid for ``expires_in`` seconds.

    Only the method, Content-MD5, Content-Type, expiry and escaped path
    are signed: no vendor headers and no sub-resources.

    Args:
        credentials: Access/secret key pair.
        request: Request to presign; its ``url`` is replaced.
        expires_in: Lifetime of the URL in seconds.
        now: Unix time to sign at (defaults to the current time).

    Returns:
        The presigned URL.

    Raises:
        SigningError: If the URL or its query string is malformed.
    """
    if now is None:
        now = time.time()

    expires = str(int(now) + int(expires_in))

    params = [
        (name, value) for name, value in request.query_params
        if name not in ("AWSAccessKeyId", "Expires", "Signature")
    ]
    params.append(("AWSAccessKeyId", credentials.access_key))
    params.append(("Expires", expires))

    string_to_sign = "\n".join([
        request.method,
        request.first_header("Content-MD5"),
        request.first_header("Content-Type"),
        expires,
        request.escaped_path,
    ])
    logger.debug("StringToSign:\n%s", string_to_sign)

    params.append(("Signature", compute_signature(credentials.secret_key, string_to_sign)))

    # Stable sort: values of a repeated name keep their order
    query = urlencode(sorted(params, key=itemgetter(0)))
    parts = request.split_url()
    request.url = urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))
    return request.url
