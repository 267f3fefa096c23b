"""Read/refresh access to credentials managed by the Claude Code CLI.

The CLI keeps one JSON document in the platform secret store::

    {
      "claudeAiOauth": {
        "accessToken": "...",
        "refreshToken": "...",
        "expiresAt": 1767225600000,
        "scopes": ["user:inference"],
        "subscriptionType": "max"
      },
      "accountUuid": "...",
      "emailAddress": "...",
      "displayName": "..."
    }

Only the token fields are ever written back; everything else the CLI stores is
preserved untouched.
"""

import asyncio
from typing import Any

import orjson
from pydantic import ValidationError
from structlog import get_logger

from claude_quota_monitor.auth.models import Credentials
from claude_quota_monitor.auth.secret_store import SecretStore
from claude_quota_monitor.auth.storage.base import CredentialStore
from claude_quota_monitor.exceptions import CredentialsStorageError


logger = get_logger(__name__)

OAUTH_SECTION = "claudeAiOauth"


class ExternalCredentialStore(CredentialStore):
    """Credentials owned by another tool, refreshed in place."""

    read_only = True

    def __init__(self, secret_store: SecretStore, key: str) -> None:
        self.secret_store = secret_store
        self.key = key

    async def _read_document(self) -> dict[str, Any] | None:
        raw = await asyncio.to_thread(self.secret_store.get, self.key)
        if not raw or not raw.strip():
            return None
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise CredentialsStorageError(
                f"Credentials at {self.get_location()} are not valid JSON"
            ) from e
        if not isinstance(data, dict):
            raise CredentialsStorageError(
                f"Credentials at {self.get_location()} are malformed"
            )
        return data

    async def load(self) -> Credentials | None:
        try:
            data = await self._read_document()
        except CredentialsStorageError as e:
            logger.error(
                "external_credentials_read_failed",
                location=self.get_location(),
                error=str(e),
            )
            return None
        if data is None:
            return None

        oauth = data.get(OAUTH_SECTION)
        if not isinstance(oauth, dict) or not oauth.get("accessToken"):
            logger.error(
                "external_credentials_missing_oauth_section",
                location=self.get_location(),
            )
            return None

        try:
            return Credentials(
                access_token=oauth["accessToken"],
                refresh_token=oauth.get("refreshToken"),
                expires_at=oauth.get("expiresAt"),
                scopes=oauth.get("scopes") or [],
                subscription_type=oauth.get("subscriptionType"),
                account_id=data.get("accountUuid"),
                email=data.get("emailAddress"),
                display_name=data.get("displayName"),
            )
        except ValidationError as e:
            logger.error(
                "external_credentials_invalid",
                location=self.get_location(),
                error=str(e),
            )
            return None

    async def save(self, credentials: Credentials) -> bool:
        try:
            data = await self._read_document() or {}
            oauth = data.get(OAUTH_SECTION)
            if not isinstance(oauth, dict):
                oauth = {}
            oauth.update(
                {
                    "accessToken": credentials.access_token,
                    "refreshToken": credentials.refresh_token,
                    "expiresAt": credentials.expires_at,
                }
            )
            data[OAUTH_SECTION] = oauth
            await asyncio.to_thread(
                self.secret_store.set, self.key, orjson.dumps(data).decode()
            )
        except CredentialsStorageError as e:
            logger.error(
                "external_credentials_update_failed",
                location=self.get_location(),
                error=str(e),
            )
            return False
        logger.info("external_credentials_updated", location=self.get_location())
        return True

    async def exists(self) -> bool:
        try:
            return await asyncio.to_thread(self.secret_store.get, self.key) is not None
        except CredentialsStorageError:
            return False

    async def delete(self) -> bool:
        logger.debug("external_credentials_delete_skipped", location=self.get_location())
        return False

    def get_location(self) -> str:
        return f"{self.secret_store.describe()}#{self.key}"
