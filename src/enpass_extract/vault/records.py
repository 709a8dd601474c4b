# Vault - Record Decryption
#
# Cards.data -> AES-256-CBC decrypt -> PKCS#7 unpad -> UTF-8 -> JSON
#
# Two fallible stages, kept separate:
#   decrypt_bytes()  ciphertext -> plaintext   (PaddingError = wrong key)
#   parse_payload()  plaintext  -> JSON tree   (PayloadFormatError = one bad record)
#
# A run of padding failures means the key is wrong for the whole vault;
# a lone parse failure means one corrupt record.

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Tuple

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..core.audit_log import get_audit_logger
from .errors import (
    BadPasswordError,
    DecryptionError,
    InvalidCiphertextLength,
    PaddingError,
    PayloadFormatError,
)
from .keys import DerivedKeyMaterial

logger = logging.getLogger(__name__)

BLOCK_SIZE = 16  # AES block size in bytes

# trace(stage, context) - context holds record id and byte lengths only
TraceCallback = Callable[[str, Dict[str, Any]], None]


class FailurePolicy(str, Enum):
    """What decrypt_records() does with a record that fails."""

    REPORT = "report"  # yield the failed result to the caller
    SKIP = "skip"      # log it, notify on_failure, do not yield
    ABORT = "abort"    # raise the first failure


@dataclass(frozen=True)
class RecordResult:
    """Outcome of decrypting one record."""

    record_id: Any
    value: Any = None
    error: Optional[DecryptionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _trace(trace: Optional[TraceCallback], stage: str, **context) -> None:
    if trace is not None:
        trace(stage, context)


def decrypt_bytes(
    payload: bytes,
    key_material: DerivedKeyMaterial,
    record_id: Any = None,
) -> bytes:
    """
    AES-256-CBC decrypt ``payload`` and strip its PKCS#7 padding.

    Raises:
        InvalidCiphertextLength: Empty or not a multiple of 16 bytes
        PaddingError: Padding check failed after decryption
    """
    if not payload or len(payload) % BLOCK_SIZE != 0:
        raise InvalidCiphertextLength(
            f"ciphertext length {len(payload) if payload else 0} "
            f"is not a positive multiple of {BLOCK_SIZE}",
            record_id=record_id,
        )

    decryptor = Cipher(
        algorithms.AES(key_material.key),
        modes.CBC(key_material.iv),
        backend=default_backend(),
    ).decryptor()
    padded = decryptor.update(bytes(payload)) + decryptor.finalize()

    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise PaddingError(f"invalid PKCS#7 padding ({e})", record_id=record_id) from e


def parse_payload(plaintext: bytes, record_id: Any = None) -> Any:
    """
    Parse decrypted record bytes as UTF-8 JSON.

    Raises:
        PayloadFormatError: Not UTF-8, or not valid JSON
    """
    try:
        text = plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise PayloadFormatError(f"plaintext is not UTF-8 ({e.reason})",
                                 record_id=record_id) from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise PayloadFormatError(f"plaintext is not JSON ({e.msg} at {e.pos})",
                                 record_id=record_id) from e


def decrypt(
    payload: bytes,
    key_material: DerivedKeyMaterial,
    record_id: Any = None,
    trace: Optional[TraceCallback] = None,
) -> Any:
    """
    Decrypt one record's ``data`` column into its JSON tree.

    The tree is returned as-is; fields such as title or category are not
    interpreted here.

    Args:
        payload: Raw encrypted bytes of the record
        key_material: Session key and IV from keys.derive()
        record_id: Identifier included in any error raised
        trace: Optional diagnostic callback (never receives secrets)

    Raises:
        InvalidCiphertextLength, PaddingError, PayloadFormatError
    """
    _trace(trace, "ciphertext", record_id=record_id, length=len(payload or b""))
    plaintext = decrypt_bytes(payload, key_material, record_id=record_id)
    _trace(trace, "plaintext", record_id=record_id, length=len(plaintext))
    value = parse_payload(plaintext, record_id=record_id)
    _trace(trace, "parsed", record_id=record_id, value_type=type(value).__name__)
    return value


def decrypt_records(
    payloads: Iterable[Tuple[Any, bytes]],
    key_material: DerivedKeyMaterial,
    policy: FailurePolicy = FailurePolicy.REPORT,
    max_consecutive_padding_failures: Optional[int] = None,
    trace: Optional[TraceCallback] = None,
    on_failure: Optional[Callable[[DecryptionError], None]] = None,
) -> Iterator[RecordResult]:
    """
    Lazily decrypt ``(record_id, payload)`` pairs in input order.

    Args:
        payloads: Iterable of (record_id, encrypted bytes)
        key_material: Session key and IV
        policy: Failure handling (see FailurePolicy)
        max_consecutive_padding_failures: Raise BadPasswordError after this
            many PaddingErrors in a row (None or 0 disables)
        trace: Optional diagnostic callback passed to decrypt()
        on_failure: Called with every DecryptionError, whatever the policy

    Yields:
        RecordResult per record (failed ones only under REPORT)

    Raises:
        DecryptionError: First failure, under ABORT
        BadPasswordError: Too many consecutive padding failures
    """
    policy = FailurePolicy(policy)
    audit = get_audit_logger()
    consecutive_padding = 0

    for record_id, payload in payloads:
        try:
            value = decrypt(payload, key_material, record_id=record_id, trace=trace)
        except DecryptionError as e:
            if isinstance(e, PaddingError):
                consecutive_padding += 1
            else:
                consecutive_padding = 0

            logger.warning("Record %s failed: %s", record_id, e.reason)
            audit.log_record_failure(e, policy.value)
            if on_failure is not None:
                on_failure(e)

            if (max_consecutive_padding_failures
                    and consecutive_padding >= max_consecutive_padding_failures):
                raise BadPasswordError(consecutive_padding) from e
            if policy is FailurePolicy.ABORT:
                raise
            if policy is FailurePolicy.REPORT:
                yield RecordResult(record_id=record_id, error=e)
            continue

        consecutive_padding = 0
        yield RecordResult(record_id=record_id, value=value)
