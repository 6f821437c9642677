"""Base class for cloud measurement connectors."""

import asyncio
import logging
from abc import ABC
from typing import Any

import httpx

from fitsync_core.sources import MeasurementSource

from .exceptions import AuthenticationError, CloudConnectorError, OAuthError, TokenError
from .oauth import OAuthHandler, extract_code
from .tokens import TokenStore
from .vendor_types import FitbitConfig, OAuthTokens

logger = logging.getLogger(__name__)


class CloudConnectorBase(MeasurementSource, ABC):
    """
    Abstract base class for cloud measurement connectors.

    Each vendor connector extends this class and implements the fetch
    methods of MeasurementSource.

    Inherited functionality:
    - Authorization URL building and code exchange
    - Token storage through a TokenStore
    - Refresh of expired access tokens
    - Logout (revoke and delete)
    """

    def __init__(
        self,
        config: FitbitConfig,
        token_store: TokenStore,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self.token_store = token_store

        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=config.timeout)

        self.oauth_handler = OAuthHandler(
            client_id=config.client_id,
            client_secret=config.client_secret,
            auth_url=config.auth_url,
            token_url=config.token_url,
            revoke_url=config.revoke_url,
            http_client=self.http_client,
        )

        # Refresh tokens are single use, so concurrent fetches must not
        # refresh twice
        self._refresh_lock = asyncio.Lock()

    # ============================================================================
    # OAuth Methods - Inherited by all connectors
    # ============================================================================

    def build_authorization_url(self, state: str | None = None, **extra_params: Any) -> str:
        """
        Build OAuth authorization URL for user consent.

        Args:
            state: Optional state parameter for CSRF protection
            **extra_params: Additional vendor-specific parameters

        Returns:
            Full authorization URL
        """
        return self.oauth_handler.build_authorization_url(
            redirect_uri=self.config.redirect_uri,
            scopes=self.config.scopes,
            state=state,
            expires_in=str(self.config.token_lifetime),
            **extra_params,
        )

    async def exchange_code(self, code_or_url: str) -> OAuthTokens:
        """
        Exchange authorization code for access tokens and store them.

        Args:
            code_or_url: Authorization code, or the full redirect URL

        Returns:
            OAuthTokens

        Raises:
            OAuthError: If no code is present or the exchange fails
        """
        code = extract_code(code_or_url)
        if not code:
            raise OAuthError("No authorization code received", source=self.name)

        tokens = await self.oauth_handler.exchange_code(code, self.config.redirect_uri)
        self.token_store.save_tokens(tokens)
        logger.info("Stored new %s tokens", self.name)

        return tokens

    async def refresh_if_needed(self) -> OAuthTokens:
        """
        Refresh access token if expired.

        Returns:
            Valid OAuthTokens (refreshed if needed)

        Raises:
            AuthenticationError: If no tokens are stored or they cannot be refreshed
            OAuthError: If refresh fails
        """
        tokens = self.token_store.get_tokens()

        if not tokens:
            raise AuthenticationError(
                f"Not authenticated. Please log in to {self.name}.",
                source=self.name,
            )

        if not tokens.is_expired():
            return tokens

        async with self._refresh_lock:
            # Another fetch may have refreshed while we waited
            tokens = self.token_store.get_tokens()
            if tokens and not tokens.is_expired():
                return tokens

            if not tokens or not tokens.refresh_token:
                raise AuthenticationError(
                    "Access token expired and no refresh token available",
                    source=self.name,
                )

            logger.info("Refreshing expired %s access token", self.name)
            new_tokens = await self.oauth_handler.refresh_token(tokens.refresh_token)
            self.token_store.save_tokens(new_tokens)

            return new_tokens

    async def access_token(self) -> str:
        """Return a valid bearer credential or raise."""
        tokens = await self.refresh_if_needed()
        return tokens.access_token

    @property
    def is_authenticated(self) -> bool:
        return self.token_store.has_tokens()

    async def logout(self, revoke: bool = True) -> None:
        """
        Forget stored tokens, revoking them with the vendor first.

        Revocation is best effort; local tokens are deleted either way.
        """
        tokens = None
        if revoke:
            try:
                tokens = self.token_store.get_tokens()
            except TokenError as e:
                logger.warning("Stored tokens unreadable, skipping revocation: %s", e)

        if tokens:
            try:
                await self.oauth_handler.revoke_token(tokens.refresh_token or tokens.access_token)
            except CloudConnectorError as e:
                logger.warning("Token revocation failed, deleting locally anyway: %s", e)

        self.token_store.delete_tokens()

    # ============================================================================
    # Utility Methods
    # ============================================================================

    async def close(self) -> None:
        """Close HTTP connections."""
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "CloudConnectorBase":
        """Context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Context manager exit."""
        await self.close()
