# Vault - SQLCipher Container Reader
#
# Opens an Enpass 5 vault (walletx) with sqlcipher3 and exposes the
# Identity row and the Cards rows as plain Python values.
#
# Enpass 5 container settings (SQLCipher 3 era):
#   PRAGMA cipher_page_size = 1024
#   PRAGMA kdf_iter = 24000
#   PRAGMA cipher_hmac_algorithm = HMAC_SHA1
#   PRAGMA cipher_kdf_algorithm = PBKDF2_HMAC_SHA1

import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Tuple, Union

from sqlcipher3 import dbapi2 as sqlcipher

from .errors import IdentityLookupError, UnsupportedFormatVersion, VaultOpenError
from .keys import IdentityMetadata, VaultFormatVersion

logger = logging.getLogger(__name__)

ENPASS5_PRAGMAS = (
    "PRAGMA cipher_page_size = 1024",
    "PRAGMA kdf_iter = 24000",
    "PRAGMA cipher_hmac_algorithm = HMAC_SHA1",
    "PRAGMA cipher_kdf_algorithm = PBKDF2_HMAC_SHA1",
)

IDENTITY_QUERY = "SELECT * FROM Identity"
CARDS_QUERY = (
    "SELECT id, uuid, title, subtitle, deleted, trashed, type, category, data "
    "FROM Cards ORDER BY title, trashed, deleted"
)
CARDS_BATCH_SIZE = 100

# VaultReader also accepts plain sqlite3 connections
DATABASE_ERRORS = (sqlcipher.DatabaseError, sqlite3.DatabaseError)


@dataclass(frozen=True)
class CardRow:
    """One row of the ``Cards`` table; ``data`` is still encrypted."""

    id: int
    uuid: str
    title: str
    subtitle: str
    deleted: bool
    trashed: bool
    type: str
    category: str
    data: bytes = field(repr=False)

    @classmethod
    def from_row(cls, row) -> "CardRow":
        id_, uuid, title, subtitle, deleted, trashed, type_, category, data = row
        return cls(
            id=id_,
            uuid=uuid,
            title=title,
            subtitle=subtitle,
            deleted=bool(deleted),
            trashed=bool(trashed),
            type=type_,
            category=category,
            data=bytes(data) if data is not None else b"",
        )


def _escape_pragma_value(value: str) -> str:
    """Double single quotes so the password can sit in a PRAGMA literal."""
    return value.replace("'", "''")


def open_vault(
    path: Union[str, Path],
    master_password: str,
    version: VaultFormatVersion = VaultFormatVersion.V5,
):
    """
    Open and unlock an Enpass vault container.

    Args:
        path: Path to the vault file
        master_password: User's master password (SQLCipher passphrase)
        version: Vault generation; only Enpass 5 is supported

    Returns:
        Unlocked sqlcipher3 connection

    Raises:
        UnsupportedFormatVersion: Not an Enpass 5 vault
        VaultOpenError: Missing file, wrong password or not a vault
    """
    version = VaultFormatVersion(version)
    if version is not VaultFormatVersion.V5:
        raise UnsupportedFormatVersion(f"Enpass {version.value} vaults are not supported")

    path = Path(path)
    if not path.is_file():
        raise VaultOpenError(f"Vault file not found: {path}")

    conn = sqlcipher.connect(str(path))
    try:
        conn.execute(f"PRAGMA key = '{_escape_pragma_value(master_password)}'")
        for pragma in ENPASS5_PRAGMAS:
            conn.execute(pragma)
        # SQLCipher only checks the key when the first page is read
        conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
    except sqlcipher.DatabaseError as e:
        conn.close()
        raise VaultOpenError(
            f"Could not unlock {path.name}: {e} (wrong password or not an Enpass 5 vault)"
        ) from e

    logger.info("Opened vault %s", path)
    return conn


class VaultReader:
    """
    Reads the Identity and Cards tables from an unlocked vault connection.

    Works with any DB-API connection exposing the Enpass schema.
    """

    def __init__(self, conn):
        self.conn = conn

    def __enter__(self) -> "VaultReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.conn.close()

    def read_identity(self) -> IdentityMetadata:
        """
        Read the single Identity row.

        Raises:
            IdentityLookupError: Zero or several Identity rows, or the
                Identity table cannot be read
        """
        try:
            rows = self.conn.execute(IDENTITY_QUERY).fetchmany(2)
        except DATABASE_ERRORS as e:
            raise IdentityLookupError(f"could not read the Identity table: {e}") from e
        if len(rows) != 1:
            raise IdentityLookupError(
                f"expected exactly one Identity row, found {'none' if not rows else 'several'}"
            )

        id_, version, signature, sync_uuid, hash_, info = tuple(rows[0])[:6]
        identity = IdentityMetadata(
            id=id_,
            version=version,
            signature=signature,
            sync_uuid=sync_uuid,
            hmac_key_material=hash_,
            info=bytes(info) if info is not None else b"",
        )
        logger.debug("Loaded %r", identity)
        return identity

    def iter_cards(self) -> Iterator[CardRow]:
        """
        Lazily yield Cards rows ordered by title, trashed, deleted.

        Raises:
            VaultOpenError: The Cards table is missing or cannot be read
        """
        try:
            cursor = self.conn.execute(CARDS_QUERY)
        except DATABASE_ERRORS as e:
            raise VaultOpenError(f"could not read the Cards table: {e}") from e

        while True:
            try:
                rows = cursor.fetchmany(CARDS_BATCH_SIZE)
            except DATABASE_ERRORS as e:
                raise VaultOpenError(f"could not read the Cards table: {e}") from e
            if not rows:
                return
            for row in rows:
                yield CardRow.from_row(row)

    def iter_payloads(self) -> Iterator[Tuple[Any, bytes]]:
        """Yield ``(uuid, encrypted data)`` pairs for decrypt_records()."""
        for card in self.iter_cards():
            yield card.uuid, card.data
