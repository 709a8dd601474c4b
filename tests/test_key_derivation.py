# Tests for vault key derivation
# Coverage:
#   - Reference test vector (hash "testhash", salt 0x01..0x10, zero IV)
#   - Determinism and salt/hash sensitivity, TEXT vs BLOB hash column
#   - Short info blob -> MalformedIdentity
#   - Enpass 6 -> UnsupportedFormatVersion without any crypto work
#   - DerivedKeyMaterial length checks and secret-free repr

import hashlib

import pytest

from enpass_extract.vault import keys as keys_mod
from enpass_extract.vault.errors import (
    KeyDerivationError,
    MalformedIdentity,
    UnsupportedFormatVersion,
)
from enpass_extract.vault.keys import (
    DerivedKeyMaterial,
    IdentityMetadata,
    VaultFormatVersion,
    derive,
)

from conftest import TEST_HASH, TEST_INFO, TEST_SALT


def _identity(info=TEST_INFO, hmac_key_material=TEST_HASH):
    return IdentityMetadata(
        id=7,
        version=5,
        signature="sig",
        sync_uuid="sync",
        hmac_key_material=hmac_key_material,
        info=info,
    )


class TestDeriveV5:
    def test_reference_vector(self, identity):
        material = derive(identity, "master password")
        expected = hashlib.pbkdf2_hmac("sha256", TEST_HASH.encode(), TEST_SALT, 2, 32)
        assert material.key == expected
        assert material.iv == bytes(16)

    def test_key_and_iv_lengths(self, identity):
        material = derive(identity, "pw")
        assert len(material.key) == 32
        assert len(material.iv) == 16

    def test_deterministic(self, identity):
        assert derive(identity, "pw") == derive(identity, "pw")

    def test_master_password_not_used(self, identity):
        assert derive(identity, "one") == derive(identity, "two")

    def test_iv_taken_verbatim_from_info(self):
        iv = bytes(range(100, 116))
        info = bytes(16) + iv + TEST_SALT
        assert derive(_identity(info=info), "pw").iv == iv

    def test_uses_exactly_two_iterations(self):
        material = derive(_identity(), "pw")
        one_iter = hashlib.pbkdf2_hmac("sha256", TEST_HASH.encode(), TEST_SALT, 1, 32)
        three_iter = hashlib.pbkdf2_hmac("sha256", TEST_HASH.encode(), TEST_SALT, 3, 32)
        assert material.key not in (one_iter, three_iter)

    def test_different_salt_different_key(self):
        other = bytes(32) + bytes(range(2, 18))
        assert derive(_identity(), "pw").key != derive(_identity(info=other), "pw").key

    def test_different_hash_different_key(self):
        a = derive(_identity(hmac_key_material="a"), "pw")
        b = derive(_identity(hmac_key_material="b"), "pw")
        assert a.key != b.key

    def test_blob_hash_same_as_text(self):
        text = derive(_identity(), "pw")
        assert derive(_identity(hmac_key_material=TEST_HASH.encode()), "pw") == text
        assert derive(_identity(hmac_key_material=memoryview(TEST_HASH.encode())), "pw") == text

    def test_non_ascii_hash_is_utf8(self):
        material = derive(_identity(hmac_key_material="clé"), "pw")
        expected = hashlib.pbkdf2_hmac("sha256", "clé".encode("utf-8"), TEST_SALT, 2, 32)
        assert material.key == expected

    def test_bytes_beyond_48_ignored(self):
        assert derive(_identity(info=TEST_INFO + b"trailing"), "pw") == derive(_identity(), "pw")

    def test_accepts_version_value(self, identity):
        assert derive(identity, "pw", "5") == derive(identity, "pw", VaultFormatVersion.V5)


class TestMalformedIdentity:
    @pytest.mark.parametrize("size", [0, 1, 16, 32, 47])
    def test_short_info(self, size):
        with pytest.raises(MalformedIdentity):
            derive(_identity(info=bytes(size)), "pw")

    def test_none_info(self):
        with pytest.raises(MalformedIdentity):
            derive(_identity(info=None), "pw")

    def test_missing_hash(self):
        with pytest.raises(MalformedIdentity):
            derive(_identity(hmac_key_material=None), "pw")

    def test_is_key_derivation_error(self):
        with pytest.raises(KeyDerivationError):
            derive(_identity(info=b"short"), "pw")


class TestUnsupportedVersion:
    def test_v6_rejected(self, identity):
        with pytest.raises(UnsupportedFormatVersion):
            derive(identity, "pw", VaultFormatVersion.V6)

    def test_v6_does_no_crypto_work(self, identity, monkeypatch):
        def _fail(*args, **kwargs):
            raise AssertionError("PBKDF2 must not run for Enpass 6")

        monkeypatch.setattr(keys_mod, "PBKDF2HMAC", _fail)
        with pytest.raises(UnsupportedFormatVersion):
            derive(identity, "pw", VaultFormatVersion.V6)

    def test_v6_checked_before_info(self):
        with pytest.raises(UnsupportedFormatVersion):
            derive(_identity(info=b""), "pw", VaultFormatVersion.V6)

    def test_from_flag(self):
        assert VaultFormatVersion.from_flag(True) is VaultFormatVersion.V6
        assert VaultFormatVersion.from_flag(False) is VaultFormatVersion.V5


class TestDerivedKeyMaterial:
    def test_rejects_short_key(self):
        with pytest.raises(ValueError):
            DerivedKeyMaterial(key=bytes(16), iv=bytes(16))

    def test_rejects_short_iv(self):
        with pytest.raises(ValueError):
            DerivedKeyMaterial(key=bytes(32), iv=bytes(8))

    def test_repr_hides_key(self, key_material):
        assert key_material.key.hex() not in repr(key_material)
        assert repr(key_material.key) not in repr(key_material)

    def test_identity_repr_hides_hash(self, identity):
        assert TEST_HASH not in repr(identity)
