"""Storage for tokens issued to this application by the interactive login."""

import asyncio

import orjson
from pydantic import ValidationError
from structlog import get_logger

from claude_quota_monitor.auth.models import Credentials
from claude_quota_monitor.auth.secret_store import SecretStore
from claude_quota_monitor.auth.storage.base import CredentialStore
from claude_quota_monitor.exceptions import CredentialsStorageError


logger = get_logger(__name__)

CREDENTIALS_KEY = "credentials"


class AppCredentialStore(CredentialStore):
    """Credentials serialized as JSON under one secret store key.

    Encryption at rest is the secret store backend's job.
    """

    def __init__(self, secret_store: SecretStore, key: str = CREDENTIALS_KEY) -> None:
        self.secret_store = secret_store
        self.key = key

    async def load(self) -> Credentials | None:
        try:
            raw = await asyncio.to_thread(self.secret_store.get, self.key)
        except CredentialsStorageError as e:
            logger.warning(
                "stored_credentials_unreadable_clearing",
                location=self.get_location(),
                error=str(e),
            )
            await self._clear_quietly()
            return None

        if raw is None:
            return None

        try:
            return Credentials.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as e:
            logger.warning(
                "stored_credentials_invalid_clearing",
                location=self.get_location(),
                error=str(e),
            )
            await self._clear_quietly()
            return None

    async def save(self, credentials: Credentials) -> bool:
        payload = orjson.dumps(credentials.model_dump(mode="json")).decode()
        try:
            await asyncio.to_thread(self.secret_store.set, self.key, payload)
        except CredentialsStorageError as e:
            logger.error(
                "credentials_save_failed", location=self.get_location(), error=str(e)
            )
            return False
        logger.debug("credentials_saved", location=self.get_location())
        return True

    async def exists(self) -> bool:
        try:
            return await asyncio.to_thread(self.secret_store.get, self.key) is not None
        except CredentialsStorageError:
            return False

    async def delete(self) -> bool:
        try:
            return await asyncio.to_thread(self.secret_store.delete, self.key)
        except CredentialsStorageError as e:
            logger.error(
                "credentials_delete_failed", location=self.get_location(), error=str(e)
            )
            return False

    async def _clear_quietly(self) -> None:
        try:
            await asyncio.to_thread(self.secret_store.delete, self.key)
        except CredentialsStorageError as e:
            logger.debug("credentials_clear_failed", error=str(e))

    def get_location(self) -> str:
        return f"{self.secret_store.describe()}#{self.key}"
