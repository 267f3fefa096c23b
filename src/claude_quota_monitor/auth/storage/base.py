"""Credential store interface shared by the app and external sources."""

from abc import ABC, abstractmethod

from claude_quota_monitor.auth.models import Credentials


class CredentialStore(ABC):
    """Async access to one OAuth credential record.

    Implementations sit on top of a :class:`SecretStore` and translate between
    the stored JSON document and :class:`Credentials`. Blocking backend calls
    are expected to run off the event loop.
    """

    #: External stores are owned by another tool and are never deleted.
    read_only: bool = False

    @abstractmethod
    async def load(self) -> Credentials | None:
        """Return the stored credentials, or None when absent or unreadable."""

    @abstractmethod
    async def save(self, credentials: Credentials) -> bool:
        """Persist ``credentials``.

        Returns:
            False when the backend rejected the write.
        """

    @abstractmethod
    async def delete(self) -> bool:
        """Remove the record. Returns True if something was removed."""

    @abstractmethod
    def get_location(self) -> str:
        """Describe where the record lives, for status output."""

    async def exists(self) -> bool:
        return await self.load() is not None
