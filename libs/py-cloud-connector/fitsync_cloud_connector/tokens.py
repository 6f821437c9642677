"""
OAuth token persistence on top of a credential store.
"""

import logging

from pydantic import ValidationError

from .credentials import CredentialStore
from .exceptions import TokenError
from .vendor_types import OAuthTokens

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_KEY = "fitbit_token"


class TokenStore:
    """
    Stores one OAuthTokens set as JSON under a single credential key.
    """

    def __init__(self, credential_store: CredentialStore, key: str = DEFAULT_TOKEN_KEY):
        self.credential_store = credential_store
        self.key = key

    def save_tokens(self, tokens: OAuthTokens) -> None:
        """Persist tokens, replacing any previous set."""
        self.credential_store.set(self.key, tokens.model_dump_json())
        logger.debug("Saved tokens under %s", self.key)

    def get_tokens(self) -> OAuthTokens | None:
        """
        Load stored tokens.

        Returns:
            OAuthTokens if stored, None otherwise

        Raises:
            TokenError: If the stored value is not a valid token set
        """
        raw = self.credential_store.get(self.key)
        if raw is None:
            return None

        try:
            return OAuthTokens.model_validate_json(raw)
        except ValidationError as e:
            raise TokenError(f"Stored token under {self.key} is corrupted") from e

    def delete_tokens(self) -> None:
        """Permanently delete stored tokens."""
        self.credential_store.delete(self.key)
        logger.debug("Deleted tokens under %s", self.key)

    def has_tokens(self) -> bool:
        return self.credential_store.get(self.key) is not None
