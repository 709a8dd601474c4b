"""
Shared pytest fixtures for the enpass-extract test suite.

Autouse fixture below isolates tests from the process-wide audit logger:
  - Audit logger -> in-memory stream (events readable via ``audit_events``)

Vault fixtures build a plain SQLite database with the Enpass 5 schema,
standing in for an already-unlocked SQLCipher container.
"""

import io
import json
import sqlite3

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from enpass_extract.vault.keys import DerivedKeyMaterial, IdentityMetadata, derive

TEST_HASH = "testhash"
TEST_SALT = bytes(range(1, 17))
TEST_INFO = bytes(32) + TEST_SALT  # IV = [16:32) = zeros


def encrypt_payload(plaintext: bytes, key_material: DerivedKeyMaterial) -> bytes:
    """PKCS#7-pad and AES-256-CBC encrypt, the way Enpass stores Cards.data."""
    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key_material.key), modes.CBC(key_material.iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


@pytest.fixture(autouse=True)
def audit_stream(monkeypatch):
    """Redirect the global AuditLogger to an in-memory stream for every test.

    Without this, any code path that calls ``get_audit_logger()`` writes
    JSON events onto the real stderr of the test run.
    """
    import enpass_extract.core.audit_log as audit_mod

    stream = io.StringIO()
    monkeypatch.setattr(audit_mod, "_audit_logger", audit_mod.AuditLogger(stream=stream))
    return stream


@pytest.fixture
def audit_events(audit_stream):
    """Callable returning the audit events logged so far, as dicts."""
    def _events():
        return [json.loads(line) for line in audit_stream.getvalue().splitlines() if line]
    return _events


@pytest.fixture
def identity():
    """Identity row matching the reference test vector."""
    return IdentityMetadata(
        id=1,
        version=5,
        signature="sig",
        sync_uuid="00000000-0000-0000-0000-000000000000",
        hmac_key_material=TEST_HASH,
        info=TEST_INFO,
    )


@pytest.fixture
def key_material(identity):
    return derive(identity, "master password")


@pytest.fixture
def vault_db(tmp_path, key_material):
    """Enpass 5 schema with one identity row and three cards.

    Cards (ordered by title): "Bank" (valid), "Corrupt" (not JSON),
    "Mail" (valid, trashed).
    """
    path = tmp_path / "vault.walletx"
    conn = sqlite3.connect(str(path))
    conn.execute("""
        CREATE TABLE Identity (
            ID INTEGER PRIMARY KEY,
            Version INTEGER,
            Signature TEXT,
            Sync_UUID TEXT,
            Hash TEXT,
            Info BLOB
        )
    """)
    conn.execute("""
        CREATE TABLE Cards (
            id INTEGER PRIMARY KEY,
            uuid TEXT,
            title TEXT,
            subtitle TEXT,
            deleted INTEGER,
            trashed INTEGER,
            type TEXT,
            category TEXT,
            data BLOB
        )
    """)
    conn.execute(
        "INSERT INTO Identity VALUES (?, ?, ?, ?, ?, ?)",
        (1, 5, "sig", "sync-uuid", TEST_HASH, TEST_INFO),
    )
    cards = [
        (3, "uuid-mail", "Mail", "me@example.com", 0, 1, "login", "login",
         encrypt_payload(b'{"fields":[{"label":"Password","value":"hunter2"}]}', key_material)),
        (1, "uuid-bank", "Bank", "acct", 0, 0, "login", "finance",
         encrypt_payload(b'{"fields":[{"label":"PIN","value":"1234"}]}', key_material)),
        (2, "uuid-corrupt", "Corrupt", "", 0, 0, "note", "note",
         encrypt_payload(b"not json", key_material)),
    ]
    conn.executemany("INSERT INTO Cards VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)", cards)
    conn.commit()
    conn.close()
    return path
