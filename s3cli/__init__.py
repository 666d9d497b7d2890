"""
s3cli: command-line client for S3-compatible object stores.

Bucket and object commands over boto3, plus presigning and request
signing with the legacy S3 "v2" signature.
"""

__version__ = "1.0.3"

from s3cli.cli import main

__all__ = ["main", "__version__"]
