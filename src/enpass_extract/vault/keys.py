# Vault - Key Derivation
#
# Identity row -> AES-256 data-encryption key + CBC IV (Enpass 5)
#
# Identity.info layout:
#   [ 0:16)  unused here
#   [16:32)  IV, used directly for AES-CBC
#   [32:48)  PBKDF2 salt
#
# key = PBKDF2-HMAC-SHA256(Identity.hash, salt, 2 iterations, 32 bytes)
#
# The 2-iteration count is the record key schedule, not the SQLCipher page
# KDF (24000 iterations) that unlocks the container itself.

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import MalformedIdentity, UnsupportedFormatVersion

logger = logging.getLogger(__name__)

KEY_LENGTH = 32  # AES-256
IV_LENGTH = 16  # AES block size
IV_OFFSET = 16
SALT_OFFSET = 32
SALT_LENGTH = 16
INFO_MIN_LENGTH = SALT_OFFSET + SALT_LENGTH  # 48
PBKDF2_ITERATIONS = 2


class VaultFormatVersion(str, Enum):
    """Enpass vault generations."""

    V5 = "5"
    V6 = "6"

    @classmethod
    def from_flag(cls, version_6: bool) -> "VaultFormatVersion":
        return cls.V6 if version_6 else cls.V5


@dataclass(frozen=True)
class IdentityMetadata:
    """The single row of the vault's ``Identity`` table.

    ``hmac_key_material`` is the ``hash`` column. Despite the column name it
    is not a digest to verify: it keys the HMAC used as the PBKDF2 PRF.
    Text values are UTF-8 encoded; BLOB values are used byte for byte.
    """

    id: int
    version: int
    signature: str
    sync_uuid: str
    hmac_key_material: Union[str, bytes] = field(repr=False)
    info: bytes = field(repr=False)


@dataclass(frozen=True)
class DerivedKeyMaterial:
    """AES-256 key and CBC IV for one vault session."""

    key: bytes = field(repr=False)
    iv: bytes

    def __post_init__(self):
        if len(self.key) != KEY_LENGTH:
            raise ValueError(f"key must be {KEY_LENGTH} bytes, got {len(self.key)}")
        if len(self.iv) != IV_LENGTH:
            raise ValueError(f"iv must be {IV_LENGTH} bytes, got {len(self.iv)}")


def _key_material_bytes(value: Union[str, bytes, memoryview]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def derive(
    identity: IdentityMetadata,
    master_password: str,
    vault_format_version: VaultFormatVersion = VaultFormatVersion.V5,
) -> DerivedKeyMaterial:
    """
    Derive the record encryption key and IV from the identity row.

    Args:
        identity: Identity row read from the unlocked container
        master_password: User's master password. Not used by the V5 scheme:
                         it was already consumed unlocking the container.
        vault_format_version: Vault generation

    Returns:
        DerivedKeyMaterial for decrypting every record of this vault

    Raises:
        UnsupportedFormatVersion: Vault is not Enpass 5
        MalformedIdentity: ``info`` shorter than 48 bytes
    """
    version = VaultFormatVersion(vault_format_version)
    if version is not VaultFormatVersion.V5:
        raise UnsupportedFormatVersion(
            f"Enpass {version.value} vaults are not supported"
        )

    info = identity.info
    if info is None or len(info) < INFO_MIN_LENGTH:
        size = 0 if info is None else len(info)
        raise MalformedIdentity(
            f"identity info is {size} bytes, need at least {INFO_MIN_LENGTH}"
        )
    if identity.hmac_key_material is None:
        raise MalformedIdentity("identity hash is missing")

    iv = bytes(info[IV_OFFSET:IV_OFFSET + IV_LENGTH])
    salt = bytes(info[SALT_OFFSET:SALT_OFFSET + SALT_LENGTH])

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
        backend=default_backend(),
    )
    key = kdf.derive(_key_material_bytes(identity.hmac_key_material))

    logger.debug("Derived record key for identity %s (format v%s)",
                 identity.id, version.value)
    return DerivedKeyMaterial(key=key, iv=iv)
