"""Tests for presigned URL generation."""

import base64
import hashlib
import hmac
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlsplit

import pytest

from s3cli.config import ConfigurationError
from s3cli.models import ClientConfig
from s3cli.presign import (
    DEFAULT_EXPIRY_SECONDS,
    object_url,
    parse_duration,
    presign_object,
    presign_object_v2,
)

NOW = 1700000000


def expected_signature(secret: str, payload: str) -> str:
    digest = hmac.new(secret.encode(), payload.encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


@pytest.fixture
def config() -> ClientConfig:
    """Config with everything v2 presigning needs."""
    return ClientConfig(
        endpoint="http://s3.example.com:9090/",
        access_key="AKIDEXAMPLE",
        secret_key="topsecret",
    )


class TestParseDuration:
    """Tests for parse_duration function."""

    def test_hours(self):
        assert parse_duration("12h") == 43200

    def test_combined_units(self):
        assert parse_duration("1h30m") == 5400

    def test_seconds_suffix(self):
        assert parse_duration("45s") == 45

    def test_bare_integer_is_seconds(self):
        assert parse_duration("3600") == 3600

    def test_surrounding_whitespace_ignored(self):
        assert parse_duration(" 10m ") == 600

    def test_fractional_hours(self):
        assert parse_duration("1.5h") == 5400

    def test_sub_second_units_accumulate(self):
        """ms/us/ns add up and the total is truncated to whole seconds."""
        assert parse_duration("2500ms") == 2
        assert parse_duration("1m500ms") == 60
        assert parse_duration("3000000us") == 3

    @pytest.mark.parametrize("text", ["", "abc", "h", "1d", ".h", "-5m", "1h 30m"])
    def test_invalid_duration_raises_error(self, text):
        """Reject anything that isn't a sequence of <number><unit>."""
        with pytest.raises(ConfigurationError, match="Invalid duration"):
            parse_duration(text)

    @pytest.mark.parametrize("text", ["0s", "500ms", "0.2s"])
    def test_under_one_second_raises_error(self, text):
        with pytest.raises(ConfigurationError, match="at least one second"):
            parse_duration(text)

    def test_default_expiry_is_twelve_hours(self):
        assert DEFAULT_EXPIRY_SECONDS == parse_duration("12h")


class TestObjectUrl:
    """Tests for object_url function."""

    def test_path_style_url(self):
        assert object_url("http://s3.example.com", "bkt", "a/b.txt") == (
            "http://s3.example.com/bkt/a/b.txt"
        )

    def test_trailing_slash_stripped(self):
        assert object_url("http://s3.example.com/", "bkt", "k") == "http://s3.example.com/bkt/k"

    def test_key_escaped_with_slashes_kept(self):
        assert object_url("http://h", "bkt", "dir/my file+1.txt") == (
            "http://h/bkt/dir/my%20file%2B1.txt"
        )

    def test_dot_segments_escaped(self):
        """'.' and '..' key segments survive URL normalization."""
        assert object_url("http://h", "bkt", "a/../b/./c..d") == (
            "http://h/bkt/a/%2E%2E/b/%2E/c..d"
        )


class TestPresignObjectV2:
    """Tests for presign_object_v2 orchestration."""

    def test_get_url(self, config: ClientConfig):
        """A GET URL with expiry and signature over the escaped path."""
        url = presign_object_v2(config, "bkt", "dir/my file.txt", 3600, now=NOW)

        parts = urlsplit(url)
        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == (
            "http://s3.example.com:9090/bkt/dir/my%20file.txt"
        )
        query = parse_qs(parts.query)
        assert query["AWSAccessKeyId"] == ["AKIDEXAMPLE"]
        assert query["Expires"] == ["1700003600"]
        assert query["Signature"] == [expected_signature(
            "topsecret", "GET\n\n\n1700003600\n/bkt/dir/my%20file.txt"
        )]

    def test_put_url_signs_put_method(self, config: ClientConfig):
        """--put presigns the PUT method."""
        url = presign_object_v2(config, "bkt", "upload.bin", 600, put=True, now=NOW)

        query = parse_qs(urlsplit(url).query)
        assert query["Signature"] == [expected_signature(
            "topsecret", "PUT\n\n\n1700000600\n/bkt/upload.bin"
        )]

    @pytest.mark.parametrize(
        "field, message",
        [
            ("access_key", "Unknown access key"),
            ("secret_key", "Unknown secret key"),
            ("endpoint", "Unknown endpoint"),
        ],
    )
    def test_missing_setting_fails_before_signing(self, config, field, message):
        """No HMAC is computed when a required setting is empty."""
        setattr(config, field, "")

        with patch("s3cli.signing.compute_signature") as mock_sign:
            with pytest.raises(ConfigurationError, match=message):
                presign_object_v2(config, "bkt", "key", 3600, now=NOW)

        mock_sign.assert_not_called()


class TestPresignObject:
    """Tests for SigV4 presigning through boto3."""

    def test_get_object_url(self):
        """GET presigning delegates to generate_presigned_url('get_object')."""
        s3_client = MagicMock()
        s3_client.generate_presigned_url.return_value = "https://signed"

        url = presign_object(s3_client, "bkt", "key", 900)

        assert url == "https://signed"
        s3_client.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "bkt", "Key": "key"},
            ExpiresIn=900,
            HttpMethod="GET",
        )

    def test_put_object_url(self):
        """PUT presigning uses the put_object operation."""
        s3_client = MagicMock()

        presign_object(s3_client, "bkt", "key", 900, put=True)

        args, kwargs = s3_client.generate_presigned_url.call_args
        assert args[0] == "put_object"
        assert kwargs["HttpMethod"] == "PUT"
