"""Credential storage implementations."""

from claude_quota_monitor.auth.storage.app import AppCredentialStore
from claude_quota_monitor.auth.storage.base import CredentialStore
from claude_quota_monitor.auth.storage.external import ExternalCredentialStore


__all__ = [
    "AppCredentialStore",
    "CredentialStore",
    "ExternalCredentialStore",
]
