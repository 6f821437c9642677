"""Type definitions and Pydantic models for the Fitbit connector."""

import os
from datetime import datetime, timezone

from pydantic import BaseModel, Field

FITBIT_AUTH_URL = "https://www.fitbit.com/oauth2/authorize"
FITBIT_TOKEN_URL = "https://api.fitbit.com/oauth2/token"
FITBIT_REVOKE_URL = "https://api.fitbit.com/oauth2/revoke"
FITBIT_API_BASE_URL = "https://api.fitbit.com"
DEFAULT_REDIRECT_URI = "http://localhost:8080/callback"

# Lifetime requested for access tokens (1 year)
DEFAULT_TOKEN_LIFETIME = 31536000


class OAuthTokens(BaseModel):
    """OAuth token set from vendor API."""

    access_token: str
    refresh_token: str | None = None
    expires_in: int  # seconds
    expires_at: datetime | None = None
    token_type: str = "Bearer"
    scopes: list[str] = Field(default_factory=list)
    user_id: str | None = None

    def is_expired(self) -> bool:
        """Check if access token has expired."""
        if not self.expires_at:
            return False
        now = datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            # If expires_at is naive, assume UTC
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now >= expires_at


class FitbitConfig(BaseModel):
    """Fitbit application configuration."""

    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = DEFAULT_REDIRECT_URI
    auth_url: str = FITBIT_AUTH_URL
    token_url: str = FITBIT_TOKEN_URL
    revoke_url: str | None = FITBIT_REVOKE_URL
    base_url: str = FITBIT_API_BASE_URL
    scopes: list[str] = Field(default_factory=lambda: ["weight"])
    token_lifetime: int = DEFAULT_TOKEN_LIFETIME
    timezone: str | None = None  # IANA name; None means system local time
    timeout: float = 30.0

    @property
    def is_configured(self) -> bool:
        """True once real client credentials have been provided."""
        return (
            bool(self.client_id)
            and bool(self.client_secret)
            and "YOUR_CLIENT_ID" not in self.client_id
            and "YOUR_CLIENT_SECRET" not in self.client_secret
        )

    @classmethod
    def from_env(cls) -> "FitbitConfig":
        """Build configuration from FITBIT_* environment variables."""
        return cls(
            client_id=os.getenv("FITBIT_CLIENT_ID", ""),
            client_secret=os.getenv("FITBIT_CLIENT_SECRET", ""),
            redirect_uri=os.getenv("FITBIT_REDIRECT_URI", DEFAULT_REDIRECT_URI),
            base_url=os.getenv("FITBIT_API_BASE_URL", FITBIT_API_BASE_URL),
            timezone=os.getenv("FITBIT_TIMEZONE") or None,
        )
