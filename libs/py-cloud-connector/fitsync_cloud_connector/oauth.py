"""OAuth 2.0 utilities for token exchange and refresh."""

import base64
import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from .exceptions import OAuthError, VendorAPIError
from .vendor_types import OAuthTokens

logger = logging.getLogger(__name__)


def extract_code(callback: str) -> str | None:
    """
    Pull the authorization code out of a redirect URL.

    A bare code (no scheme or query) is returned unchanged, so users can
    paste either the full redirect URL or just the code.

    Args:
        callback: Redirect URL or bare code

    Returns:
        Authorization code, or None if the URL carries none
    """
    callback = callback.strip()
    if not callback:
        return None

    parsed = urlparse(callback)
    if not parsed.scheme and not parsed.query:
        return callback

    # Fitbit appends "#_=_" to redirects; only the query matters
    codes = parse_qs(parsed.query).get("code")
    return codes[0] if codes else None


class OAuthHandler:
    """
    Handles OAuth 2.0 authorization code flow and token management.

    Client credentials are sent with HTTP Basic authentication, as the
    Fitbit token endpoint requires.

    Supports:
    - Authorization URL generation
    - Code exchange for tokens
    - Token refresh
    - Token revocation
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        auth_url: str,
        token_url: str,
        revoke_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.auth_url = auth_url
        self.token_url = token_url
        self.revoke_url = revoke_url

        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    def _basic_auth_header(self) -> str:
        credentials = f"{self.client_id}:{self.client_secret}".encode("utf-8")
        return f"Basic {base64.b64encode(credentials).decode('ascii')}"

    def build_authorization_url(
        self,
        redirect_uri: str,
        scopes: list[str],
        state: str | None = None,
        **extra_params: Any,
    ) -> str:
        """
        Build OAuth authorization URL.

        Args:
            redirect_uri: Callback URL
            scopes: List of OAuth scopes
            state: Optional state parameter for CSRF protection
            **extra_params: Additional vendor-specific parameters

        Returns:
            Full authorization URL
        """
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "scope": " ".join(scopes),
            **extra_params,
        }

        if state:
            params["state"] = state

        return f"{self.auth_url}?{urlencode(params)}"

    async def _post_token_request(self, data: dict[str, Any], action: str) -> OAuthTokens:
        try:
            response = await self.http_client.post(
                self.token_url,
                data=data,
                headers={
                    "Authorization": self._basic_auth_header(),
                    "Content-Type": "application/x-www-form-urlencoded",
                },
            )
        except httpx.RequestError as e:
            raise VendorAPIError(f"Network error during token {action}: {e}") from e

        logger.debug("Token %s status code: %s", action, response.status_code)

        if response.status_code != 200:
            error_msg = response.text
            try:
                error_data = response.json() if response.text else {}
            except ValueError:
                error_data = {}
            if isinstance(error_data, dict):
                # Fitbit nests details in an "errors" list
                errors = error_data.get("errors") or [{}]
                error_msg = (
                    error_data.get("error_description")
                    or errors[0].get("message")
                    or error_msg
                )
            raise OAuthError(
                f"Token {action} failed: {error_msg}",
                status_code=response.status_code,
            )

        try:
            token_data = response.json()
        except ValueError as e:
            raise OAuthError(f"Token {action} returned invalid JSON") from e

        return self._parse_token_response(token_data)

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        **extra_params: Any,
    ) -> OAuthTokens:
        """
        Exchange authorization code for access token.

        Args:
            code: Authorization code from vendor
            redirect_uri: Must match the one used in authorization
            **extra_params: Additional vendor-specific parameters

        Returns:
            OAuthTokens with access and refresh tokens

        Raises:
            OAuthError: If exchange fails
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            **extra_params,
        }
        return await self._post_token_request(data, "exchange")

    async def refresh_token(
        self,
        refresh_token: str,
        **extra_params: Any,
    ) -> OAuthTokens:
        """
        Refresh an expired access token.

        Args:
            refresh_token: Refresh token from previous exchange
            **extra_params: Additional vendor-specific parameters

        Returns:
            OAuthTokens with new access token

        Raises:
            OAuthError: If refresh fails
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            **extra_params,
        }
        return await self._post_token_request(data, "refresh")

    async def revoke_token(self, token: str) -> bool:
        """
        Revoke an access or refresh token.

        Args:
            token: Token to revoke

        Returns:
            True if revocation succeeded
        """
        if not self.revoke_url:
            # Some vendors don't provide revocation endpoint
            return True

        try:
            response = await self.http_client.post(
                self.revoke_url,
                data={"token": token},
                headers={
                    "Authorization": self._basic_auth_header(),
                    "Content-Type": "application/x-www-form-urlencoded",
                },
            )
        except httpx.RequestError as e:
            raise VendorAPIError(f"Network error during token revocation: {e}") from e

        # RFC 7009: successful revocations return 200
        return response.status_code == 200

    def _parse_token_response(self, data: dict[str, Any]) -> OAuthTokens:
        """
        Parse vendor token response into OAuthTokens.

        Args:
            data: Token response from vendor

        Returns:
            OAuthTokens object
        """
        access_token = data.get("access_token")
        if not access_token:
            raise OAuthError("Missing access_token in response")

        expires_in = data.get("expires_in", 3600)  # Default 1 hour
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)

        # Parse scopes (can be string or list)
        scope = data.get("scope", "")
        scopes = scope.split() if isinstance(scope, str) else scope

        return OAuthTokens(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_in=expires_in,
            expires_at=expires_at,
            token_type=data.get("token_type", "Bearer"),
            scopes=scopes,
            user_id=data.get("user_id"),
        )

    async def close(self) -> None:
        """Close HTTP client if this handler created it."""
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "OAuthHandler":
        """Context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Context manager exit."""
        await self.close()
