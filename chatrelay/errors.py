"""
Exception types raised by the relay core.

NotFound is not an exception here: lookups return None and deletes return
False, so callers branch on it like any other expected outcome.
"""


class RelayError(Exception):
    """Base class for relay errors."""


class CredentialError(RelayError):
    """Handshake rejected; the connection never registers."""


class MissingCredential(CredentialError):
    """No credential material was presented at handshake."""


class InvalidCredential(CredentialError):
    """Credential present but failed signature, expiry or claim checks."""


class StorageUnavailable(RelayError):
    """The message log could not be read or written."""
