"""Error taxonomy shared by the auth chain, tenancy guard and handlers.

Every error maps to exactly one HTTP status. Translation to a response
happens in one place (backend.app.api.errors).
"""


class ApiError(Exception):
    """Base class for errors that are safe to show to the caller."""

    status_code: int = 500
    default_message: str = "Server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def headers(self) -> dict[str, str]:
        """Extra response headers for this error."""
        return {}


class Unauthenticated(ApiError):
    """No credential, or a credential that failed verification."""

    status_code = 401
    default_message = "Authentication required"

    def headers(self) -> dict[str, str]:
        return {"WWW-Authenticate": "Bearer"}


class AccountDisabled(ApiError):
    """Credential is valid but the user or organization is inactive."""

    status_code = 401
    default_message = "Account is disabled"


class Forbidden(ApiError):
    """Authenticated, but the role is not allowed on this endpoint."""

    status_code = 403
    default_message = "Access denied"


class OwnerRequired(Forbidden):
    """Organization-level context calling an endpoint that needs a user."""

    default_message = "This operation requires a user identity"


class NotFound(ApiError):
    """Missing resource, or one outside the caller's tenancy scope."""

    status_code = 404
    default_message = "Not found"


class Conflict(ApiError):
    """Uniqueness violation (organization name, username, email)."""

    status_code = 409
    default_message = "Resource already exists"


class InvalidQuery(ApiError):
    """Bad pagination, sort or filter input."""

    status_code = 400
    default_message = "Invalid query parameters"


class RateLimitExceeded(ApiError):
    """Client exceeded its request budget for the current window."""

    status_code = 429
    default_message = "Too many requests, please try again later."

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after

    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after)}


class TransientStoreError(Exception):
    """Momentary persistence failure (connection blip); may be retried once."""
