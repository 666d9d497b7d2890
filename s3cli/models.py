"""Data models for the s3cli client."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Credentials:
    """Resolved access/secret key pair."""

    access_key: str
    secret_key: str

    def __repr__(self) -> str:
        return f"Credentials(access_key={self.access_key!r}, secret_key='***')"


@dataclass
class ClientConfig:
    """Settings for talking to an S3-compatible endpoint."""

    endpoint: str = ""
    access_key: str = ""
    secret_key: str = ""
    region: str = ""
    credential_file: str = ""
    profile: str = ""
    debug: bool = False
    sign_v2: bool = False


@dataclass
class BucketSummary:
    """One entry from a bucket listing."""

    name: str
    creation_date: Optional[str] = None


@dataclass
class ObjectSummary:
    """One entry from an object listing."""

    key: str
    size: int = 0
    last_modified: Optional[str] = None
    etag: Optional[str] = None
