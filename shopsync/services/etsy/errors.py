"""Exceptions raised by the Etsy integration."""

from typing import Any, Optional


class EtsyError(Exception):
    """Base class for Etsy integration failures."""


class QuotaExceeded(EtsyError):
    """The daily API call budget is spent; calls resume after UTC midnight."""

    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(
            f"Etsy API daily rate limit reached ({count}/{limit}). "
            "Requests are paused until midnight UTC."
        )


class EtsyAPIError(EtsyError):
    """Custom exception for Etsy API errors."""

    def __init__(
        self,
        status_code: Optional[int],
        message: str,
        response_body: Any = None,
    ):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"Etsy API Error {status_code}: {message}")


class RateLimited(EtsyAPIError):
    """HTTP 429 still returned after the retry budget was spent."""

    def __init__(self, message: str, retry_after: float, response_body: Any = None):
        self.retry_after = retry_after
        super().__init__(429, message, response_body)


class AuthExpired(EtsyAPIError):
    """Credentials were rejected and could not be refreshed.

    Terminal for the shop until it is reconnected.
    """

    def __init__(self, message: str, response_body: Any = None):
        super().__init__(401, message, response_body)


class RemoteUnavailable(EtsyAPIError):
    """Transport failure, timeout, or 5xx from Etsy."""


class SignatureInvalid(EtsyError):
    """Webhook signature did not verify."""


class EtsyOAuthError(Exception):
    """Token endpoint rejected a code exchange or refresh."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)
