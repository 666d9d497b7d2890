"""Logging setup for the command-line client."""

import logging
from typing import Optional

import boto3
from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(name)s: %(message)s"


def setup_logging(debug: bool = False, console: Optional[Console] = None) -> None:
    """Configure logging for s3cli.

    Args:
        debug: Log s3cli at DEBUG and turn on botocore wire logging.
        console: Console the handler writes to (defaults to stderr).
    """
    if console is None:
        console = Console(stderr=True)

    handler = RichHandler(console=console, show_path=False)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logging.basicConfig(
        level=logging.WARNING,
        handlers=[handler],
        force=True,
    )

    if debug:
        logging.getLogger("s3cli").setLevel(logging.DEBUG)
        boto3.set_stream_logger("botocore", logging.DEBUG)
