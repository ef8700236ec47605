"""Integration error taxonomy.

Every failure the integration layer surfaces is an ``IntegrationError`` with a
closed ``ErrorKind``, so callers can branch on the kind instead of parsing
message strings.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    NO_CREDENTIAL = "no_credential"
    INVALID_CREDENTIAL = "invalid_credential"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"
    RATE_LIMITED = "rate_limited"
    REQUEST_FAILED = "request_failed"
    NOT_FOUND = "not_found"
    UNSUPPORTED_PROVIDER = "unsupported_provider"
    NOT_CONNECTED = "not_connected"
    UNSUPPORTED_OPERATION = "unsupported_operation"
    PARTIAL_IMPORT_FAILURE = "partial_import_failure"
    OAUTH_CONFIGURATION = "oauth_configuration"
    OAUTH_STATE = "oauth_state"
    SYNC_IN_PROGRESS = "sync_in_progress"
    IMPORT_FAILED = "import_failed"


class IntegrationError(Exception):
    """
    Structured integration error.

    Attributes:
        kind: Error kind from the ErrorKind enum
        message: Human-readable error message
        provider: Provider the error originated from, if any
        code: Upstream HTTP status code, if any
        retryable: Whether retrying the same call may succeed
        status: HTTP status used when the error reaches the API surface
        details: Additional error context
    """

    kind: ErrorKind = ErrorKind.REQUEST_FAILED
    status: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        code: Optional[int] = None,
        retryable: Optional[bool] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.provider = provider
        self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.kind.value,
            "message": self.message,
            "provider": self.provider,
            "code": self.code,
            "retryable": self.retryable,
            "details": self.details,
        }


class NoCredentialError(IntegrationError):
    """No credential is available for the provider at all."""

    kind = ErrorKind.NO_CREDENTIAL
    status = 401


class InvalidCredentialError(IntegrationError):
    """A credential exists but the provider rejected it."""

    kind = ErrorKind.INVALID_CREDENTIAL
    status = 401


class TokenRefreshFailedError(IntegrationError):
    kind = ErrorKind.TOKEN_REFRESH_FAILED
    status = 401


class RateLimitedError(IntegrationError):
    """Provider kept answering 429 after the retry budget was spent."""

    kind = ErrorKind.RATE_LIMITED
    status = 429
    retryable = True


class RequestFailedError(IntegrationError):
    """Non-2xx response (other than handled 401/429) or a transport failure."""

    kind = ErrorKind.REQUEST_FAILED
    status = 502


class NotFoundError(IntegrationError):
    kind = ErrorKind.NOT_FOUND
    status = 404

    def __init__(self, integration_id: str) -> None:
        super().__init__(
            f"Integration with ID '{integration_id}' not found",
            details={"integration_id": integration_id},
        )


class UnsupportedProviderError(IntegrationError):
    kind = ErrorKind.UNSUPPORTED_PROVIDER
    status = 400

    def __init__(self, provider: str) -> None:
        super().__init__(
            f"Provider '{provider}' is not supported", provider=provider
        )


class NotConnectedError(IntegrationError):
    kind = ErrorKind.NOT_CONNECTED
    status = 409


class UnsupportedOperationError(IntegrationError):
    kind = ErrorKind.UNSUPPORTED_OPERATION
    status = 400


class PartialImportFailureError(IntegrationError):
    kind = ErrorKind.PARTIAL_IMPORT_FAILURE
    status = 207


class OAuthConfigurationError(IntegrationError):
    """OAuth parameters are missing or contradictory; raised before any network call."""

    kind = ErrorKind.OAUTH_CONFIGURATION
    status = 500


class OAuthStateError(IntegrationError):
    kind = ErrorKind.OAUTH_STATE
    status = 400


class SyncInProgressError(IntegrationError):
    kind = ErrorKind.SYNC_IN_PROGRESS
    status = 409
    retryable = True


class ImportFailedError(IntegrationError):
    kind = ErrorKind.IMPORT_FAILED
    status = 502
