"""
Secure key-value credential storage.

Three backends share one get/set/delete interface:

- MemoryCredentialStore: process-local, for tests and throwaway sessions
- EncryptedFileCredentialStore: Fernet-encrypted JSON file on disk
- SecretsManagerCredentialStore: AWS Secrets Manager, one secret per key

Usage:
    store = build_credential_store("file", path="~/.fitsync/credentials.enc")
    store.set("fitbit_token", token_json)
    store.get("fitbit_token")
    store.delete("fitbit_token")
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from cryptography.fernet import Fernet, InvalidToken

from .exceptions import CredentialStoreError

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIALS_FILE = "~/.fitsync/credentials.enc"


class CredentialStore(ABC):
    """Abstract secure key-value store for credentials."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value stored under key, or None."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is not an error."""
        ...


class MemoryCredentialStore(CredentialStore):
    """In-memory store for local testing."""

    def __init__(self):
        self._values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class EncryptedFileCredentialStore(CredentialStore):
    """
    Credentials kept in a single Fernet-encrypted JSON file.

    The encryption key comes from the `key` argument, then the
    FITSYNC_CREDENTIAL_KEY environment variable, then a key file next to the
    credentials file (`<name>.key`), which is generated on first use. Both
    files are written with 0600 permissions.
    """

    def __init__(self, path: str | Path = DEFAULT_CREDENTIALS_FILE, key: str | bytes | None = None):
        self.path = Path(path).expanduser()
        self.key_path = self.path.with_suffix(".key")

        try:
            self._fernet = Fernet(self._load_key(key))
        except ValueError as e:
            raise CredentialStoreError(f"Invalid credential encryption key: {e}") from e

    def _load_key(self, key: str | bytes | None) -> bytes:
        key = key or os.getenv("FITSYNC_CREDENTIAL_KEY")
        if key:
            return key.encode("ascii") if isinstance(key, str) else key

        if self.key_path.exists():
            return self.key_path.read_bytes().strip()

        logger.info("Generating credential encryption key at %s", self.key_path)
        new_key = Fernet.generate_key()
        self._write_private(self.key_path, new_key)
        return new_key

    @staticmethod
    def _write_private(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            plaintext = self._fernet.decrypt(self.path.read_bytes())
        except InvalidToken as e:
            raise CredentialStoreError(
                f"Failed to decrypt {self.path}: wrong key or corrupted file"
            ) from e
        except OSError as e:
            raise CredentialStoreError(f"Failed to read {self.path}: {e}") from e

        try:
            data = json.loads(plaintext)
        except ValueError as e:
            raise CredentialStoreError(f"Corrupted credentials file {self.path}") from e

        if not isinstance(data, dict):
            raise CredentialStoreError(f"Corrupted credentials file {self.path}")
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        try:
            self._write_private(self.path, self._fernet.encrypt(json.dumps(data).encode("utf-8")))
        except OSError as e:
            raise CredentialStoreError(f"Failed to write {self.path}: {e}") from e

    def get(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)


class SecretsManagerCredentialStore(CredentialStore):
    """
    AWS Secrets Manager backed store.

    Each key is stored as its own secret named "{prefix}/{key}".
    """

    def __init__(
        self,
        prefix: str = "fitsync",
        region_name: str | None = None,
        client=None,
    ):
        self.prefix = prefix
        self.region_name = region_name or os.getenv("AWS_REGION", "us-east-1")
        self.client = client or boto3.client("secretsmanager", region_name=self.region_name)

    def _secret_id(self, key: str) -> str:
        return f"{self.prefix}/{key}"

    @staticmethod
    def _error_code(e: ClientError) -> str:
        return e.response.get("Error", {}).get("Code", "Unknown")

    def get(self, key: str) -> str | None:
        try:
            response = self.client.get_secret_value(SecretId=self._secret_id(key))
        except ClientError as e:
            if self._error_code(e) == "ResourceNotFoundException":
                return None
            raise CredentialStoreError(f"Failed to get secret: {self._error_code(e)}") from e
        except BotoCoreError as e:
            raise CredentialStoreError(f"Failed to get secret: {e}") from e

        return response.get("SecretString")

    def set(self, key: str, value: str) -> None:
        secret_id = self._secret_id(key)
        try:
            try:
                self.client.put_secret_value(SecretId=secret_id, SecretString=value)
            except ClientError as e:
                if self._error_code(e) != "ResourceNotFoundException":
                    raise
                self.client.create_secret(Name=secret_id, SecretString=value)
        except ClientError as e:
            raise CredentialStoreError(f"Failed to save secret: {self._error_code(e)}") from e
        except BotoCoreError as e:
            raise CredentialStoreError(f"Failed to save secret: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete_secret(
                SecretId=self._secret_id(key),
                ForceDeleteWithoutRecovery=True,
            )
        except ClientError as e:
            if self._error_code(e) == "ResourceNotFoundException":
                return
            raise CredentialStoreError(f"Failed to delete secret: {self._error_code(e)}") from e
        except BotoCoreError as e:
            raise CredentialStoreError(f"Failed to delete secret: {e}") from e


def build_credential_store(
    backend: str = "file",
    path: str | Path | None = None,
    key: str | None = None,
    prefix: str = "fitsync",
    region_name: str | None = None,
) -> CredentialStore:
    """
    Create a credential store by backend name.

    Args:
        backend: "file", "aws" or "memory"
        path: Credentials file (file backend)
        key: Fernet key (file backend)
        prefix: Secret name prefix (aws backend)
        region_name: AWS region (aws backend)

    Returns:
        CredentialStore

    Raises:
        ValueError: If backend is unknown
    """
    backend = backend.lower()
    if backend == "file":
        return EncryptedFileCredentialStore(path or DEFAULT_CREDENTIALS_FILE, key=key)
    if backend == "aws":
        return SecretsManagerCredentialStore(prefix=prefix, region_name=region_name)
    if backend == "memory":
        return MemoryCredentialStore()
    raise ValueError(f"Unknown credential backend: {backend}")
