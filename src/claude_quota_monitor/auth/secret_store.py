"""Secret storage backends.

The credential stores only ever talk to a ``SecretStore``; which backend sits
behind it (OS keychain, encrypted file, memory) is a configuration choice.
"""

import base64
import os
import secrets
from abc import ABC, abstractmethod
from pathlib import Path

import keyring
import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from keyring.errors import KeyringError, PasswordDeleteError
from structlog import get_logger

from claude_quota_monitor.exceptions import CredentialsStorageError


logger = get_logger(__name__)

_NONCE_BYTES = 12


class SecretStore(ABC):
    """Minimal string key/value capability for secrets."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value or None when absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store (or replace) a value."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a value.

        Returns:
            True if something was deleted
        """

    @abstractmethod
    def describe(self) -> str:
        """Human-readable description of where secrets live."""


class MemorySecretStore(SecretStore):
    """Process-local store for headless runs and tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def describe(self) -> str:
        return "memory"


class KeyringSecretStore(SecretStore):
    """OS keychain backend via the keyring library.

    Keys map to keyring "usernames" under a single service name.
    """

    def __init__(self, service_name: str) -> None:
        self.service_name = service_name

    def get(self, key: str) -> str | None:
        try:
            return keyring.get_password(self.service_name, key)
        except KeyringError as e:
            raise CredentialsStorageError(
                f"Keyring read failed for {self.service_name}: {e}"
            ) from e

    def set(self, key: str, value: str) -> None:
        try:
            keyring.set_password(self.service_name, key, value)
        except KeyringError as e:
            raise CredentialsStorageError(
                f"Keyring write failed for {self.service_name}: {e}"
            ) from e

    def delete(self, key: str) -> bool:
        try:
            keyring.delete_password(self.service_name, key)
            return True
        except PasswordDeleteError:
            return False
        except KeyringError as e:
            raise CredentialsStorageError(
                f"Keyring delete failed for {self.service_name}: {e}"
            ) from e

    def describe(self) -> str:
        return f"keyring:{self.service_name}"


class EncryptedFileSecretStore(SecretStore):
    """JSON file of AES-256-GCM encrypted values.

    The data key is kept next to the file (``<name>.key``, mode 0600) and is
    generated on first write.
    """

    def __init__(self, path: Path, key_path: Path | None = None) -> None:
        self.path = path
        self.key_path = key_path or path.with_suffix(".key")

    def _load_key(self, create: bool) -> bytes | None:
        if self.key_path.exists():
            key = self.key_path.read_bytes()
            if len(key) != 32:
                raise CredentialsStorageError(
                    f"Encryption key at {self.key_path} is corrupt"
                )
            return key
        if not create:
            return None
        key = AESGCM.generate_key(bit_length=256)
        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(key)
        return key

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = orjson.loads(self.path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            raise CredentialsStorageError(
                f"Cannot read secrets file {self.path}: {e}"
            ) from e
        if not isinstance(data, dict):
            raise CredentialsStorageError(f"Secrets file {self.path} is malformed")
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(orjson.dumps(data))
        except OSError as e:
            raise CredentialsStorageError(
                f"Cannot write secrets file {self.path}: {e}"
            ) from e

    def get(self, key: str) -> str | None:
        blob = self._read_all().get(key)
        if blob is None:
            return None
        aes_key = self._load_key(create=False)
        if aes_key is None:
            raise CredentialsStorageError(
                f"Encryption key {self.key_path} missing for stored secret"
            )
        try:
            raw = base64.b64decode(blob)
            nonce, ciphertext = raw[:_NONCE_BYTES], raw[_NONCE_BYTES:]
            return AESGCM(aes_key).decrypt(nonce, ciphertext, key.encode()).decode()
        except (InvalidTag, ValueError) as e:
            raise CredentialsStorageError(f"Cannot decrypt secret '{key}'") from e

    def set(self, key: str, value: str) -> None:
        aes_key = self._load_key(create=True)
        assert aes_key is not None
        nonce = secrets.token_bytes(_NONCE_BYTES)
        ciphertext = AESGCM(aes_key).encrypt(nonce, value.encode(), key.encode())
        data = self._read_all()
        data[key] = base64.b64encode(nonce + ciphertext).decode()
        self._write_all(data)

    def delete(self, key: str) -> bool:
        data = self._read_all()
        if key not in data:
            return False
        del data[key]
        self._write_all(data)
        return True

    def describe(self) -> str:
        return f"file:{self.path}"
