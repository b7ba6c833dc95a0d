"""Custom exceptions for sessionkeeper package."""


class SessionKeeperError(Exception):
    """Base exception class for all sessionkeeper errors."""


class ConfigurationError(SessionKeeperError):
    """Raised when required configuration is missing or invalid at startup."""


class AuthError(SessionKeeperError):
    """Raised when a login, verify or logout call against the backend fails.

    Attributes:
        message: Human-readable error message (backend message when available).
        status_code: HTTP status code returned by the backend, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize AuthError.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code returned by the backend (optional).
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status {self.status_code})"
        return self.message


class TransportError(AuthError):
    """Network failure or timeout while talking to the backend."""


class RejectedError(AuthError):
    """Backend answered but refused the request or returned an unusable response."""


class RetryExhaustedError(SessionKeeperError):
    """Raised when every attempt of a retried operation failed.

    Attributes:
        attempts: Number of attempts made.
        last_error: The exception raised by the final attempt.
    """

    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(f"All {attempts} attempts failed: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class RetryInterruptedError(SessionKeeperError):
    """Raised when a shutdown request interrupts a backoff wait."""

    def __init__(self, attempts: int, last_error: Exception | None = None) -> None:
        super().__init__(f"Retry interrupted after {attempts} attempt(s)")
        self.attempts = attempts
        self.last_error = last_error


class CycleError(SessionKeeperError):
    """Unexpected internal error while running a keep-alive cycle."""


class AlertError(SessionKeeperError):
    """Raised when an alert transport fails to deliver a notification."""
