"""FitSync Cloud Connector - OAuth, credential storage and measurement sources."""

from .base import CloudConnectorBase
from .credentials import (
    CredentialStore,
    EncryptedFileCredentialStore,
    MemoryCredentialStore,
    SecretsManagerCredentialStore,
    build_credential_store,
)
from .exceptions import (
    AuthenticationError,
    CloudConnectorError,
    CredentialStoreError,
    HealthStoreError,
    OAuthError,
    RateLimitError,
    TokenError,
    VendorAPIError,
)
from .fitbit import FitbitConnector
from .health_export import AppleHealthExportSource
from .tokens import TokenStore
from .vendor_types import FitbitConfig, OAuthTokens

__version__ = "0.1.0"

__all__ = [
    "CloudConnectorBase",
    "FitbitConnector",
    "AppleHealthExportSource",
    "FitbitConfig",
    "OAuthTokens",
    "TokenStore",
    "CredentialStore",
    "MemoryCredentialStore",
    "EncryptedFileCredentialStore",
    "SecretsManagerCredentialStore",
    "build_credential_store",
    "CloudConnectorError",
    "OAuthError",
    "AuthenticationError",
    "TokenError",
    "CredentialStoreError",
    "VendorAPIError",
    "RateLimitError",
    "HealthStoreError",
]
