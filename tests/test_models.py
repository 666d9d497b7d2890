"""Tests for data models."""

from dataclasses import FrozenInstanceError

import pytest

from s3cli.models import ClientConfig, Credentials


class TestCredentials:
    """Tests for Credentials dataclass."""

    def test_repr_hides_secret(self):
        """The secret key never appears in repr."""
        credentials = Credentials("AKID", "very-secret")

        assert "very-secret" not in repr(credentials)
        assert "AKID" in repr(credentials)

    def test_immutable(self):
        credentials = Credentials("AKID", "secret")

        with pytest.raises(FrozenInstanceError):
            credentials.secret_key = "other"

    def test_equality(self):
        assert Credentials("a", "b") == Credentials("a", "b")


class TestClientConfig:
    """Tests for ClientConfig dataclass."""

    def test_defaults(self):
        config = ClientConfig()

        assert config.endpoint == ""
        assert config.debug is False
        assert config.sign_v2 is False
