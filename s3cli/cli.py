"""Command-line interface for s3cli.

Provides argument parsing, command dispatch and the main entry point.
"""

import argparse
import os
import sys
from typing import Any, Optional

import httpx
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console
from rich.table import Table

from s3cli import __version__
from s3cli.config import ConfigurationError, load_config
from s3cli.log import setup_logging
from s3cli.models import BucketSummary, ClientConfig, ObjectSummary
from s3cli.operations import SdkOperations
from s3cli.presign import (
    DEFAULT_EXPIRY_SECONDS,
    parse_duration,
    presign_object,
    presign_object_v2,
)
from s3cli.retry import RetryExhausted
from s3cli.s3_client import build_s3_client, resolve_credentials
from s3cli.signing import SigningError
from s3cli.v2_client import DEFAULT_TIMEOUT, V2Operations

# Errors from the store or the network that fail a command with exit code 1
OPERATION_ERRORS = (
    ClientError,
    BotoCoreError,
    httpx.HTTPError,
    RetryExhausted,
    SigningError,
    OSError,
)

CANNED_ACLS = [
    "private",
    "public-read",
    "public-read-write",
    "authenticated-read",
    "bucket-owner-read",
    "bucket-owner-full-control",
]


class CommandContext:
    """Lazily built clients shared by a single command run."""

    def __init__(self, config: ClientConfig, console: Console):
        self.config = config
        self.console = console
        self._s3_client = None
        self._http_client: Optional[httpx.Client] = None
        self._operations = None

    @property
    def s3_client(self):
        if self._s3_client is None:
            self._s3_client = build_s3_client(self.config)
        return self._s3_client

    @property
    def operations(self):
        """SDK operations, or the v2 transport when --sign-v2 is set."""
        if self._operations is None:
            if self.config.sign_v2:
                self._http_client = httpx.Client(timeout=DEFAULT_TIMEOUT)
                self._operations = V2Operations(
                    self._http_client,
                    self.config.endpoint,
                    resolve_credentials(self.config),
                )
            else:
                self._operations = SdkOperations(self.s3_client)
        return self._operations

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None


def print_buckets(console: Console, buckets: list[BucketSummary]) -> None:
    table = Table(title="Buckets")
    table.add_column("Name")
    table.add_column("Created")
    for bucket in buckets:
        table.add_row(bucket.name, bucket.creation_date or "")
    console.print(table)


def print_objects(console: Console, objects: list[ObjectSummary], prefixes: list[str]) -> None:
    table = Table(title="Objects")
    table.add_column("Key")
    table.add_column("Size", justify="right")
    table.add_column("Last Modified")
    table.add_column("ETag")
    for prefix in prefixes:
        table.add_row(prefix, "DIR", "", "")
    for obj in objects:
        table.add_row(obj.key, str(obj.size), obj.last_modified or "", obj.etag or "")
    console.print(table)


# Command handlers. Each returns the process exit code.

def cmd_create_bucket(args: argparse.Namespace, ctx: CommandContext) -> int:
    ctx.operations.create_bucket(args.bucket)
    ctx.console.print(f"Created bucket {args.bucket}")
    return 0


def cmd_list_buckets(args: argparse.Namespace, ctx: CommandContext) -> int:
    print_buckets(ctx.console, ctx.operations.list_buckets())
    return 0


def cmd_delete_bucket(args: argparse.Namespace, ctx: CommandContext) -> int:
    ctx.operations.delete_bucket(args.bucket)
    ctx.console.print(f"Bucket {args.bucket} deleted")
    return 0


def cmd_head(args: argparse.Namespace, ctx: CommandContext) -> int:
    if args.key:
        ctx.console.print(ctx.operations.head_object(args.bucket, args.key))
    else:
        ctx.console.print(ctx.operations.head_bucket(args.bucket))
    return 0


def cmd_get_acl(args: argparse.Namespace, ctx: CommandContext) -> int:
    if args.key:
        ctx.console.print(ctx.operations.get_object_acl(args.bucket, args.key))
    else:
        ctx.console.print(ctx.operations.get_bucket_acl(args.bucket))
    return 0


def cmd_upload(args: argparse.Namespace, ctx: CommandContext) -> int:
    key = ctx.operations.put_object(args.bucket, args.file, args.key)
    ctx.console.print(f"Uploaded object {key}")
    return 0


def cmd_multipart_upload(args: argparse.Namespace, ctx: CommandContext) -> int:
    key = ctx.operations.multipart_upload(args.bucket, args.file, args.key)
    ctx.console.print(f"Uploaded object {key}")
    return 0


def cmd_list(args: argparse.Namespace, ctx: CommandContext) -> int:
    if args.bucket:
        objects, prefixes = ctx.operations.list_objects(args.bucket, args.prefix, args.delimiter)
        print_objects(ctx.console, objects, prefixes)
    else:
        print_buckets(ctx.console, ctx.operations.list_buckets())
    return 0


def cmd_download(args: argparse.Namespace, ctx: CommandContext) -> int:
    destination = args.destination or os.path.basename(args.key)
    if os.path.exists(destination) and not args.overwrite:
        print(f"{destination} already exists, use --overwrite to replace it", file=sys.stderr)
        return 1
    path = ctx.operations.get_object(args.bucket, args.key, destination, args.range)
    ctx.console.print(f"Downloaded object {args.key} to {path}")
    return 0


def cmd_delete(args: argparse.Namespace, ctx: CommandContext) -> int:
    if args.key is None and not args.prefix:
        ctx.operations.delete_bucket(args.bucket)
        ctx.console.print(f"Bucket {args.bucket} deleted")
        return 0

    if args.prefix:
        count = ctx.operations.delete_prefix(args.bucket, args.key or "")
    else:
        count = ctx.operations.delete_object(args.bucket, args.key)
    ctx.console.print(f"Deleted {count} objects")
    return 0


def cmd_presign(args: argparse.Namespace, ctx: CommandContext) -> int:
    expires_in = parse_duration(args.expire)
    if args.v2:
        url = presign_object_v2(ctx.config, args.bucket, args.key, expires_in, put=args.put)
    else:
        url = presign_object(ctx.s3_client, args.bucket, args.key, expires_in, put=args.put)
    # Plain print so the URL is never wrapped
    print(url)
    return 0


def cmd_acl(args: argparse.Namespace, ctx: CommandContext) -> int:
    if args.prefix:
        count = ctx.operations.apply_acl_prefix(args.bucket, args.key or "", args.acl)
    elif args.key:
        count = ctx.operations.put_object_acl(args.bucket, args.key, args.acl)
    else:
        raise ConfigurationError("acl needs a key, or --prefix to update every object")
    ctx.console.print(f"Set ACL {args.acl} on {count} objects")
    return 0


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="s3cli",
        description="s3cli client tool for S3 Bucket/Object operation",
    )
    parser.add_argument("-v", "--version", action="version", version=f"[{__version__}]")
    parser.add_argument("-d", "--debug", action="store_true", help="print debug log")
    parser.add_argument("-c", "--credential", default="", help="credential file")
    parser.add_argument("-p", "--profile", default="", help="credential profile")
    parser.add_argument("-e", "--endpoint", default="", help="endpoint URL")
    parser.add_argument("-a", "--accesskey", default="", help="access key")
    parser.add_argument("-s", "--secretkey", default="", help="secret key")
    parser.add_argument("-R", "--region", default="", help="s3 region")
    parser.add_argument("--config", metavar="PATH", help="JSON config file (default: ~/.s3cli.json)")
    parser.add_argument(
        "--sign-v2",
        action="store_true",
        help="send bucket/object requests signed with the legacy v2 signature",
    )

    sub = parser.add_subparsers(dest="command", metavar="<command>")
    sub.required = True

    p = sub.add_parser("createBucket", aliases=["cb"], help="create Bucket")
    p.add_argument("bucket")
    p.set_defaults(handler=cmd_create_bucket)

    p = sub.add_parser("listBucket", aliases=["lb"], help="list all Buckets")
    p.set_defaults(handler=cmd_list_buckets)

    p = sub.add_parser("deleteBucket", aliases=["db"], help="delete a bucket")
    p.add_argument("bucket")
    p.set_defaults(handler=cmd_delete_bucket)

    p = sub.add_parser("head", help="get Bucket/Object metadata")
    p.add_argument("bucket")
    p.add_argument("key", nargs="?")
    p.set_defaults(handler=cmd_head)

    p = sub.add_parser("getacl", aliases=["ga"], help="get Bucket/Object ACL")
    p.add_argument("bucket")
    p.add_argument("key", nargs="?")
    p.set_defaults(handler=cmd_get_acl)

    p = sub.add_parser("upload", aliases=["up"], help="upload Object to Bucket")
    p.add_argument("bucket")
    p.add_argument("file")
    p.add_argument("-k", "--key", default="", help="key name")
    p.set_defaults(handler=cmd_upload)

    p = sub.add_parser("mpu", aliases=["mp", "mu"], help="multipart upload Object to Bucket")
    p.add_argument("bucket")
    p.add_argument("file")
    p.add_argument("-k", "--key", default="", help="key name")
    p.set_defaults(handler=cmd_multipart_upload)

    p = sub.add_parser("list", aliases=["ls"], help="list Buckets or Objects in Bucket")
    p.add_argument("bucket", nargs="?")
    p.add_argument("-P", "--prefix", default="", help="Object prefix")
    p.add_argument("--delimiter", default="", help="Object delimiter")
    p.set_defaults(handler=cmd_list)

    p = sub.add_parser("download", aliases=["get", "down", "d"], help="download Object from Bucket")
    p.add_argument("bucket")
    p.add_argument("key")
    p.add_argument("destination", nargs="?")
    p.add_argument("-r", "--range", default="", help="Object range to download, 0-64 means [0, 64]")
    p.add_argument("-w", "--overwrite", action="store_true", help="overwrite file if exist")
    p.set_defaults(handler=cmd_download)

    p = sub.add_parser("delete", aliases=["del", "rm"], help="delete Bucket or Object(s) in Bucket")
    p.add_argument("bucket")
    p.add_argument("key", nargs="?")
    p.add_argument("-P", "--prefix", action="store_true", help="delete all Objects with specified prefix(key)")
    p.set_defaults(handler=cmd_delete)

    p = sub.add_parser("presign", aliases=["psn", "psg"], help="presign Object URL")
    p.add_argument("bucket")
    p.add_argument("key")
    p.add_argument(
        "-E", "--expire",
        default=f"{DEFAULT_EXPIRY_SECONDS // 3600}h",
        help="URL expire time, e.g. 12h, 1h30m, 1.5h, 3600 (default: 12h)",
    )
    p.add_argument("--put", action="store_true", help="generate a put URL")
    p.add_argument("-2", "--v2", action="store_true", help="s3v2 signature")
    p.set_defaults(handler=cmd_presign)

    p = sub.add_parser("acl", aliases=["pa"], help="set a canned ACL on Object(s) in Bucket")
    p.add_argument("bucket")
    p.add_argument("key", nargs="?")
    p.add_argument("-P", "--prefix", action="store_true", help="acl all Objects with specified prefix(key)")
    p.add_argument("--acl", default="private", choices=CANNED_ACLS, help="canned ACL (default: private)")
    p.set_defaults(handler=cmd_acl)

    return parser.parse_args(argv)


def config_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Map global flags onto ClientConfig fields."""
    return {
        "endpoint": args.endpoint,
        "access_key": args.accesskey,
        "secret_key": args.secretkey,
        "region": args.region,
        "credential_file": args.credential,
        "profile": args.profile,
        "debug": args.debug,
        "sign_v2": args.sign_v2,
    }


def main(argv: Optional[list[str]] = None, console: Optional[Console] = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])
        console: Console for command output (defaults to stdout)

    Returns:
        Exit code: 0 for success, 1 for operation failures, 2 for
        configuration errors
    """
    args = parse_args(argv)
    setup_logging(args.debug)

    if console is None:
        console = Console()

    try:
        config = load_config(args.config, config_overrides(args))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    ctx = CommandContext(config, console)
    try:
        return args.handler(args, ctx)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except OPERATION_ERRORS as e:
        print(f"{args.command} failed: {e}", file=sys.stderr)
        return 1
    finally:
        ctx.close()


if __name__ == "__main__":
    sys.exit(main())
