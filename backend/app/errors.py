"""Error taxonomy for the function-call gateway.

Boundary errors (auth, request shape, tenant resolution) carry the HTTP status
the webhook answers with. Function-level errors are reported inside a normal
200 results envelope, except downstream failures which answer 500.
"""

from typing import Any, Optional


class GatewayError(Exception):
    code = "internal_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_entry(self) -> dict[str, Any]:
        """Render as one entry of the provider's ``results`` array."""
        entry: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            entry["details"] = self.details
        return entry


class Unauthenticated(GatewayError):
    code = "unauthenticated"
    status_code = 401


class MalformedRequest(GatewayError):
    code = "malformed_request"
    status_code = 400


class UnknownTenant(GatewayError):
    code = "unknown_tenant"
    status_code = 401


class MissingCredential(GatewayError):
    code = "missing_credential"
    status_code = 401


class UnknownFunction(GatewayError):
    code = "unknown_function"
    status_code = 200


class ValidationError(GatewayError):
    code = "validation_error"
    status_code = 200


class DownstreamFailure(GatewayError):
    code = "downstream_failure"
    status_code = 500

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.status = status
