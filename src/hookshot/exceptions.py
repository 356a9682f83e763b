"""Hookshot exception hierarchy.

All exceptions inherit from HookshotError so callers can catch every
webhook-subsystem failure with a single except clause. Delivery failures
and replay precondition failures are reported through result models,
not exceptions; these classes cover misuse and infrastructure faults.
"""

from __future__ import annotations


class HookshotError(Exception):
    """Base exception for all Hookshot errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "hookshot_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(HookshotError):
    """Invalid input provided.

    Raised when a subscription registration or update fails validation:
    bad URL, non-HTTPS URL in production, unreachable endpoint, unknown
    event pattern, or a secret that is too short.

    Attributes:
        field: The field that failed validation.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(HookshotError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "subscription", "secret").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(HookshotError):
    """Storage operation failed.

    Raised when the datastore rejects an operation that retrying cannot fix.
    """

    code: str = "storage_error"


class DeliveryError(HookshotError):
    """Delivery could not be set up.

    Raised for misuse such as delivering without a signing secret; HTTP
    failures themselves are captured in ``DeliveryResult``.
    """

    code: str = "delivery_error"


class ConfigurationError(HookshotError):
    """Configuration error.

    Raised when required configuration is missing or invalid.
    """

    code: str = "configuration_error"
