"""Exception hierarchy shared by the core components."""

from __future__ import annotations


class RakkaError(Exception):
    """Base class for all rakka errors."""


class CredentialError(RakkaError):
    """A personal API key could not be produced for a user."""


class APIKeyNotFoundError(CredentialError):
    def __init__(self, user_id: str):
        super().__init__("no API key found for user")
        self.user_id = user_id


class DecryptionFailedError(CredentialError):
    def __init__(self, user_id: str):
        super().__init__("failed to decrypt API key")
        self.user_id = user_id


class CreditStoreError(RakkaError):
    """The credential file could not be read or written."""


class ProviderError(RakkaError):
    """An LLM backend failed to produce a reply.

    Messages are safe to log: key-bearing parameters are redacted before the
    exception is built.
    """


class SafetyBlockedError(ProviderError):
    """The vendor refused to answer because of its safety policy."""

    def __init__(self, reason: str):
        super().__init__(f"blocked by safety settings ({reason})")
        self.reason = reason


class ProviderTransportError(ProviderError):
    """Network failure, non-success status or unparseable response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
