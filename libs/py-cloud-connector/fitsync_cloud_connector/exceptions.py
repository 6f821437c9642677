"""Custom exceptions for the cloud connector library."""

from fitsync_core.exceptions import SourceError


class CloudConnectorError(SourceError):
    """Base exception for all connector errors."""


class OAuthError(CloudConnectorError):
    """OAuth-related errors (exchange failed, invalid grant, etc.)."""


class AuthenticationError(CloudConnectorError):
    """No usable credential is stored; the user has to log in."""

    @property
    def requires_reauthentication(self) -> bool:
        return True


class TokenError(CloudConnectorError):
    """Stored token could not be read or decoded."""


class CredentialStoreError(CloudConnectorError):
    """Credential store read, write or encryption errors."""


class VendorAPIError(CloudConnectorError):
    """Vendor API errors (non-200 status, timeouts, undecodable bodies)."""


class RateLimitError(VendorAPIError):
    """Rate limiting errors (429 from vendor API)."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        retry_after: int | None = None,
    ):
        super().__init__(message, source, status_code=429)
        self.retry_after = retry_after


class HealthStoreError(CloudConnectorError):
    """Local health-data store could not be read."""
