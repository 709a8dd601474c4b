# enpass-extract - Main Package
#
# Decrypts the cards of an Enpass 5 vault (SQLCipher container) given the
# master password and emits them as JSON lines.

__version__ = "0.1.0"
__description__ = "Enpass 5 vault decryption and card export"

from .vault import (
    DerivedKeyMaterial,
    FailurePolicy,
    IdentityMetadata,
    RecordResult,
    VaultFormatVersion,
    decrypt,
    decrypt_records,
    derive,
)

__all__ = [
    "__version__",
    "DerivedKeyMaterial",
    "FailurePolicy",
    "IdentityMetadata",
    "RecordResult",
    "VaultFormatVersion",
    "decrypt",
    "decrypt_records",
    "derive",
]
