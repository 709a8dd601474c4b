# Card Export - JSON Lines
#
# Joins each Cards row's metadata with its decrypted data tree and writes
# one compact JSON object per line:
#   {"id", "uuid", "title", "subtitle", "deleted", "trashed",
#    "type", "category", "data"}

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, TextIO

from .core.audit_log import EventSeverity, EventType, get_audit_logger
from .vault.errors import DecryptionError
from .vault.keys import DerivedKeyMaterial
from .vault.reader import CardRow
from .vault.records import FailurePolicy, TraceCallback, decrypt_records

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Card:
    """A Cards row with its ``data`` column decrypted."""

    id: int
    uuid: str
    title: str
    subtitle: str
    deleted: bool
    trashed: bool
    type: str
    category: str
    data: Any

    @classmethod
    def from_row(cls, row: CardRow, data: Any) -> "Card":
        return cls(
            id=row.id,
            uuid=row.uuid,
            title=row.title,
            subtitle=row.subtitle,
            deleted=row.deleted,
            trashed=row.trashed,
            type=row.type,
            category=row.category,
            data=data,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "title": self.title,
            "subtitle": self.subtitle,
            "deleted": self.deleted,
            "trashed": self.trashed,
            "type": self.type,
            "category": self.category,
            "data": self.data,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))


@dataclass
class ExportSummary:
    """Counts for one export run; ``failures`` lists (uuid, reason)."""

    exported: int = 0
    failures: List[tuple] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


def export_cards(
    rows: Iterable[CardRow],
    key_material: DerivedKeyMaterial,
    out: TextIO,
    policy: FailurePolicy = FailurePolicy.SKIP,
    max_consecutive_padding_failures: Optional[int] = None,
    trace: Optional[TraceCallback] = None,
) -> ExportSummary:
    """
    Decrypt ``rows`` and write one JSON line per card to ``out``.

    Failed records are never written; they are collected in the summary
    and recorded in the audit log. Under FailurePolicy.ABORT the first
    failure is raised after the cards before it have been written.

    Returns:
        ExportSummary with exported/failed counts
    """
    summary = ExportSummary()
    pending: Dict[Any, CardRow] = {}

    def pairs():
        for row in rows:
            pending[row.uuid] = row
            yield row.uuid, row.data

    def record_failure(error: DecryptionError):
        pending.pop(error.record_id, None)
        summary.failures.append((error.record_id, error.reason))

    results = decrypt_records(
        pairs(),
        key_material,
        policy=policy,
        max_consecutive_padding_failures=max_consecutive_padding_failures,
        trace=trace,
        on_failure=record_failure,
    )
    for result in results:
        if not result.ok:
            continue
        row = pending.pop(result.record_id)
        out.write(Card.from_row(row, result.value).to_json())
        out.write("\n")
        summary.exported += 1

    logger.info("Exported %d cards, %d failed", summary.exported, summary.failed)
    get_audit_logger().log_event(
        event_type=EventType.EXPORT_COMPLETED,
        severity=EventSeverity.WARNING if summary.failed else EventSeverity.INFO,
        message=f"Exported {summary.exported} cards ({summary.failed} failed)",
        details={"exported": summary.exported, "failed": summary.failed},
    )
    return summary
