# Vault Module - Key Derivation and Record Decryption
#
# Identity row -> derive() -> DerivedKeyMaterial -> decrypt() per card
#
# The container reader (vault.reader) needs sqlcipher3 and is imported
# from there directly.

from .errors import (
    BadPasswordError,
    DecryptionError,
    IdentityLookupError,
    InvalidCiphertextLength,
    KeyDerivationError,
    MalformedIdentity,
    PaddingError,
    PayloadFormatError,
    UnsupportedFormatVersion,
    VaultError,
    VaultOpenError,
)
from .keys import DerivedKeyMaterial, IdentityMetadata, VaultFormatVersion, derive
from .records import (
    FailurePolicy,
    RecordResult,
    decrypt,
    decrypt_bytes,
    decrypt_records,
    parse_payload,
)

__all__ = [
    # Key derivation
    "DerivedKeyMaterial",
    "IdentityMetadata",
    "VaultFormatVersion",
    "derive",
    # Record decryption
    "FailurePolicy",
    "RecordResult",
    "decrypt",
    "decrypt_bytes",
    "decrypt_records",
    "parse_payload",
    # Errors
    "VaultError",
    "VaultOpenError",
    "IdentityLookupError",
    "KeyDerivationError",
    "MalformedIdentity",
    "UnsupportedFormatVersion",
    "DecryptionError",
    "InvalidCiphertextLength",
    "PaddingError",
    "PayloadFormatError",
    "BadPasswordError",
]
