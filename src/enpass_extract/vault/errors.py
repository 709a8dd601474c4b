# Vault - Error Types
#
# Session-fatal errors (VaultOpenError, IdentityLookupError,
# KeyDerivationError, BadPasswordError) abort the run.
# DecryptionError subclasses are per-record and always carry the record id.

from typing import Any, Optional


class VaultError(Exception):
    """Base class for every error raised while reading an Enpass vault."""


class VaultOpenError(VaultError):
    """The SQLCipher container could not be opened or unlocked."""


class IdentityLookupError(VaultError):
    """The Identity table did not contain exactly one row."""


# ── Key derivation (fatal) ──────────────────────────────────────────


class KeyDerivationError(VaultError):
    """No data-encryption key can be derived for this vault."""


class MalformedIdentity(KeyDerivationError):
    """The identity ``info`` blob is too short to hold an IV and salt."""


class UnsupportedFormatVersion(KeyDerivationError):
    """The vault uses a data-encryption scheme this tool does not implement."""


# ── Record decryption (per record) ──────────────────────────────────


class DecryptionError(VaultError):
    """A single record could not be decrypted or parsed.

    Attributes:
        record_id: Identifier of the failing record (None when decrypting
                   a payload outside of a vault session)
    """

    def __init__(self, message: str, record_id: Optional[Any] = None):
        self.record_id = record_id
        self.reason = message
        if record_id is not None:
            message = f"record {record_id}: {message}"
        super().__init__(message)


class InvalidCiphertextLength(DecryptionError):
    """Payload is empty or not a whole number of cipher blocks."""


class PaddingError(DecryptionError):
    """PKCS#7 padding check failed (usually a wrong key or wrong format)."""


class PayloadFormatError(DecryptionError):
    """Plaintext is not UTF-8 JSON."""


class BadPasswordError(VaultError):
    """Too many consecutive padding failures to be a per-record problem."""

    def __init__(self, consecutive_failures: int):
        self.consecutive_failures = consecutive_failures
        super().__init__(
            f"{consecutive_failures} consecutive records failed the padding "
            "check; the master password or vault format version is probably wrong"
        )
