"""S3 client factory for s3cli.

Creates boto3 S3 clients configured with the endpoint, region and
credentials from a ClientConfig, and resolves the plain key pair the v2
signer needs.

Credential sources, in order:
1. Static access/secret key
2. Shared credential file (with optional profile)
3. Profile from the default credential file
4. botocore's default provider chain
"""

from typing import Optional

import boto3
import botocore.session
from botocore.client import Config

from s3cli.config import ConfigurationError
from s3cli.models import ClientConfig, Credentials


def build_session(config: ClientConfig) -> boto3.Session:
    """Build a boto3 session for the configured credential source."""
    if config.access_key:
        return boto3.Session(
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            region_name=config.region or None,
        )

    core_session = botocore.session.Session(profile=config.profile or None)
    if config.credential_file:
        core_session.set_config_variable("credentials_file", config.credential_file)

    return boto3.Session(
        botocore_session=core_session,
        region_name=config.region or None,
    )


def build_s3_client(config: ClientConfig, session: Optional[boto3.Session] = None):
    """Build a boto3 S3 client for the given configuration.

    Args:
        config: Client configuration with endpoint, region and credentials.
        session: Session to use instead of building one.

    Returns:
        A boto3 S3 client using path-style addressing.
    """
    if session is None:
        session = build_session(config)

    boto_config = Config(
        signature_version="s3v4",
        s3={"addressing_style": "path"},
    )

    return session.client(
        "s3",
        endpoint_url=config.endpoint or None,
        region_name=config.region or None,
        config=boto_config,
    )


def resolve_credentials(config: ClientConfig) -> Credentials:
    """Resolve the access/secret key pair for v2 signing.

    Raises:
        ConfigurationError: If no credentials can be found.
    """
    if config.access_key:
        if not config.secret_key:
            raise ConfigurationError("Unknown secret key")
        return Credentials(config.access_key, config.secret_key)

    resolved = build_session(config).get_credentials()
    if resolved is None:
        raise ConfigurationError("No credentials found")

    frozen = resolved.get_frozen_credentials()
    return Credentials(frozen.access_key, frozen.secret_key)
