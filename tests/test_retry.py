"""Tests for retry module."""

import logging
from unittest.mock import MagicMock, patch

import httpx
import pytest

from s3cli.retry import (
    RetryExhausted,
    is_retryable_error,
    retry_with_backoff,
    s3_error_code,
)


def status_error(status_code: int, body: bytes = b"") -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "http://s3.example.com/bkt")
    response = httpx.Response(status_code, request=request, content=body)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


def s3_error_body(code: str) -> bytes:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f"<Error><Code>{code}</Code><Message>details</Message></Error>"
    ).encode()


class TestIsRetryableError:
    """Tests for error classification."""

    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectTimeout("Connection timed out"),
            httpx.ConnectError("Connection refused"),
            httpx.ReadTimeout("Read timed out"),
        ],
    )
    def test_network_errors_are_retryable(self, error):
        """Connection-level failures should trigger retry."""
        assert is_retryable_error(error) is True

    @pytest.mark.parametrize("status_code", [429, 500, 502, 503, 504])
    def test_transient_status_is_retryable(self, status_code):
        """Throttling and server errors should trigger retry."""
        assert is_retryable_error(status_error(status_code)) is True

    @pytest.mark.parametrize("status_code", [400, 401, 403, 404])
    def test_client_status_is_not_retryable(self, status_code):
        """Client errors, including signature mismatches, are permanent."""
        assert is_retryable_error(status_error(status_code)) is False

    def test_generic_exception_is_not_retryable(self):
        """Generic exceptions should NOT trigger retry by default."""
        assert is_retryable_error(ValueError("Some error")) is False

    def test_request_timeout_code_is_retryable(self):
        """S3 answers an idle upload with 400 RequestTimeout; that is transient."""
        error = status_error(400, s3_error_body("RequestTimeout"))
        assert is_retryable_error(error) is True

    def test_signature_mismatch_logged_not_retried(self, caplog):
        """A 403 SignatureDoesNotMatch is permanent and logged at debug."""
        caplog.set_level(logging.DEBUG, logger="s3cli.retry")
        error = status_error(403, s3_error_body("SignatureDoesNotMatch"))

        assert is_retryable_error(error) is False
        assert "403 SignatureDoesNotMatch" in caplog.text

    def test_403_with_retryable_code_still_not_retried(self):
        error = status_error(403, s3_error_body("SlowDown"))
        assert is_retryable_error(error) is False


class TestS3ErrorCode:
    """Tests for s3_error_code function."""

    def test_reads_code_from_error_body(self):
        error = status_error(404, s3_error_body("NoSuchKey"))
        assert s3_error_code(error.response) == "NoSuchKey"

    @pytest.mark.parametrize("body", [b"", b"not xml", b"<Error/>"])
    def test_missing_code_is_none(self, body):
        """Empty (HEAD) or non-XML bodies have no code."""
        assert s3_error_code(status_error(500, body).response) is None


class TestRetryWithBackoff:
    """Tests for retry_with_backoff function."""

    def test_success_on_first_attempt(self):
        """Succeed immediately without retrying."""
        mock_func = MagicMock(return_value="success")

        result = retry_with_backoff(mock_func, max_attempts=3, delays=[1, 2, 4])

        assert result == "success"
        assert mock_func.call_count == 1

    @patch("s3cli.retry.time.sleep")
    def test_success_after_retries_uses_delays(self, mock_sleep: MagicMock):
        """Succeed after two retries, sleeping the configured delays."""
        mock_func = MagicMock(
            side_effect=[
                httpx.ConnectError("fail1"),
                status_error(503),
                "success",
            ]
        )

        result = retry_with_backoff(mock_func, max_attempts=3, delays=[0.1, 0.2])

        assert result == "success"
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.1, 0.2]

    @patch("s3cli.retry.time.sleep")
    def test_last_delay_reused(self, mock_sleep: MagicMock):
        """Delays past the end of the sequence reuse the last one."""
        mock_func = MagicMock(side_effect=[status_error(500)] * 3 + ["ok"])

        retry_with_backoff(mock_func, max_attempts=4, delays=[0.5])

        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 0.5, 0.5]

    @patch("s3cli.retry.time.sleep")
    def test_failure_after_max_retries_exceeded(self, mock_sleep: MagicMock):
        """Raise RetryExhausted with the last error after all attempts fail."""
        last_error = httpx.ConnectTimeout("Final timeout")
        mock_func = MagicMock(
            side_effect=[httpx.ConnectError("First"), httpx.ConnectError("Second"), last_error]
        )

        with pytest.raises(RetryExhausted) as exc_info:
            retry_with_backoff(mock_func, max_attempts=3, delays=[0.01])

        assert mock_func.call_count == 3
        assert "3 attempts" in str(exc_info.value)
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is last_error

    def test_non_retryable_error_raises_immediately(self):
        """A 403 is raised without retry."""
        mock_func = MagicMock(side_effect=status_error(403))

        with pytest.raises(httpx.HTTPStatusError):
            retry_with_backoff(mock_func, max_attempts=3, delays=[0.01])

        assert mock_func.call_count == 1

    def test_passes_args_and_kwargs_to_function(self):
        """Arguments and keyword arguments are passed through."""
        mock_func = MagicMock(return_value="success")

        retry_with_backoff(
            mock_func,
            max_attempts=3,
            delays=[0.01],
            args=("arg1", "arg2"),
            kwargs={"key1": "value1"},
        )

        mock_func.assert_called_with("arg1", "arg2", key1="value1")
