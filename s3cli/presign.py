"""Presigned URL generation.

presign_object_v2 builds the URL with the legacy v2 query-string
signature; presign_object delegates to boto3 (SigV4).
"""

import logging
import re
from decimal import Decimal
from typing import Any, Optional
from urllib.parse import quote

from s3cli.config import ConfigurationError, require_presign_settings
from s3cli.models import ClientConfig, Credentials
from s3cli.signing import SignableRequest, presign_request

logger = logging.getLogger(__name__)

# Default lifetime of a presigned URL: 12 hours
DEFAULT_EXPIRY_SECONDS = 12 * 60 * 60

_DURATION_UNITS = {
    "h": Decimal(3600),
    "m": Decimal(60),
    "s": Decimal(1),
    "ms": Decimal("0.001"),
    "us": Decimal("0.000001"),
    "µs": Decimal("0.000001"),
    "ns": Decimal("0.000000001"),
}
# Longer units first so 'ms' is not read as 'm' followed by 's'
_DURATION_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|h|m|s)")


def parse_duration(text: str) -> int:
    """Parse a duration such as '12h', '1h30m', '1.5h', '90s' or '3600'.

    Accepts the units h, m, s, ms, us and ns with optional fractions. A
    bare integer is a number of seconds.

    Returns:
        The duration in whole seconds, truncated.

    Raises:
        ConfigurationError: If the text is not a positive duration.
    """
    text = text.strip()
    if text.isdigit():
        seconds = int(text)
    elif text and _DURATION_RE.sub("", text) == "":
        total = sum(
            Decimal(amount) * _DURATION_UNITS[unit]
            for amount, unit in _DURATION_RE.findall(text)
        )
        seconds = int(total)
    else:
        raise ConfigurationError(f"Invalid duration: {text!r}")

    if seconds <= 0:
        raise ConfigurationError(f"Duration must be at least one second: {text!r}")
    return seconds


def _quote_segment(segment: str) -> str:
    # '.' and '..' are escaped so URL normalization cannot remove them
    if segment in (".", ".."):
        return segment.replace(".", "%2E")
    return quote(segment, safe="~")


def object_url(endpoint: str, bucket: str, key: str) -> str:
    """Build the path-style URL of an object, with bucket and key escaped."""
    escaped_key = "/".join(_quote_segment(segment) for segment in key.split("/"))
    return f"{endpoint.rstrip('/')}/{quote(bucket, safe='')}/{escaped_key}"


def presign_object_v2(
    config: ClientConfig,
    bucket: str,
    key: str,
    expires_in: int = DEFAULT_EXPIRY_SECONDS,
    put: bool = False,
    now: Optional[float] = None,
) -> str:
    """Presign a GET (or PUT) URL for an object with the v2 signature.

    Args:
        config: Must carry access key, secret key and endpoint.
        bucket: Bucket name.
        key: Object key.
        expires_in: Lifetime of the URL in seconds.
        put: Presign an upload URL instead of a download URL.
        now: Unix time to sign at (defaults to the current time).

    Returns:
        The presigned URL.

    Raises:
        ConfigurationError: If credentials or endpoint are missing.
    """
    require_presign_settings(config)

    request = SignableRequest(
        method="PUT" if put else "GET",
        url=object_url(config.endpoint, bucket, key),
    )
    credentials = Credentials(config.access_key, config.secret_key)
    url = presign_request(credentials, request, expires_in, now=now)
    logger.debug("Presigned v2 %s URL for %s/%s", request.method, bucket, key)
    return url


def presign_object(
    s3_client: Any,
    bucket: str,
    key: str,
    expires_in: int = DEFAULT_EXPIRY_SECONDS,
    put: bool = False,
) -> str:
    """Presign a GET (or PUT) URL for an object with boto3 (SigV4)."""
    return s3_client.generate_presigned_url(
        "put_object" if put else "get_object",
        Params={"Bucket": bucket, "Key": key},
        ExpiresIn=expires_in,
        HttpMethod="PUT" if put else "GET",
    )
