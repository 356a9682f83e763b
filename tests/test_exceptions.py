"""Tests for Hookshot exception hierarchy."""

import pytest

from hookshot.exceptions import (
    ConfigurationError,
    DeliveryError,
    HookshotError,
    NotFoundError,
    StorageError,
    ValidationError,
)


class TestHookshotError:
    """Tests for the base HookshotError class."""

    def test_error_message(self):
        error = HookshotError("Something went wrong")
        assert error.message == "Something went wrong"
        assert str(error) == "Something went wrong"

    def test_to_dict(self):
        """Should convert to API-friendly dict."""
        error = HookshotError("Something went wrong")
        assert error.to_dict() == {
            "error": {
                "code": "hookshot_error",
                "message": "Something went wrong",
            }
        }

    def test_inheritance(self):
        """All custom exceptions should inherit from HookshotError."""
        exceptions = [
            ValidationError("field", "invalid"),
            NotFoundError("subscription", "whk_1"),
            StorageError("failed"),
            DeliveryError("failed"),
            ConfigurationError("missing"),
        ]
        for exc in exceptions:
            assert isinstance(exc, HookshotError)


class TestValidationError:
    """Tests for ValidationError."""

    def test_field_and_message(self):
        error = ValidationError("url", "must use HTTPS in production")
        assert error.field == "url"
        assert error.message == "url: must use HTTPS in production"

    def test_to_dict_includes_field(self):
        result = ValidationError("events", "unknown event type(s): x").to_dict()
        assert result["error"]["code"] == "validation_error"
        assert result["error"]["field"] == "events"

    def test_does_not_shadow_pydantic(self):
        """Should be distinct from pydantic's ValidationError."""
        import pydantic

        assert not issubclass(ValidationError, pydantic.ValidationError)


class TestNotFoundError:
    """Tests for NotFoundError."""

    def test_resource_info(self):
        error = NotFoundError("subscription", "whk_123")
        assert error.resource_type == "subscription"
        assert error.resource_id == "whk_123"
        assert error.message == "subscription not found: whk_123"

    def test_to_dict_includes_resource_info(self):
        result = NotFoundError("secret", "sec_456").to_dict()
        assert result["error"]["code"] == "not_found"
        assert result["error"]["resource_type"] == "secret"
        assert result["error"]["resource_id"] == "sec_456"


class TestSimpleErrors:
    """Tests for simple error types with just messages."""

    @pytest.mark.parametrize(
        ("cls", "code"),
        [
            (StorageError, "storage_error"),
            (DeliveryError, "delivery_error"),
            (ConfigurationError, "configuration_error"),
        ],
    )
    def test_codes(self, cls, code):
        error = cls("boom")
        assert error.code == code
        assert error.message == "boom"

    def test_catch_all_with_base_class(self):
        for error in (ValidationError("f", "m"), NotFoundError("t", "i"), StorageError("m")):
            with pytest.raises(HookshotError):
                raise error
