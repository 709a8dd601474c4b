# Main Entry Point - enpass-extract
#
# enpass-extract -d vault.walletx -p <master password> > cards.jsonl
#
# Cards go to stdout as JSON lines; diagnostics and audit events go to
# stderr (or --log-file).
#
# Exit codes:
#   0  all cards exported
#   1  vault could not be opened or read, no key could be derived, or the run aborted
#   2  usage error or unsupported vault version
#   3  some records failed (report policy)

import argparse
import logging
import sys
from pathlib import Path

from . import __version__
from .core.audit_log import EventSeverity, EventType, configure_audit_logger
from .core.config import FAILURE_POLICIES, Settings
from .export import export_cards
from .vault.errors import (
    BadPasswordError,
    DecryptionError,
    IdentityLookupError,
    KeyDerivationError,
    VaultOpenError,
)
from .vault.keys import VaultFormatVersion, derive
from .vault.reader import VaultReader, open_vault
from .vault.records import FailurePolicy

logger = logging.getLogger("enpass_extract")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2
EXIT_PARTIAL = 3


def build_parser() -> argparse.ArgumentParser:
    # Flag defaults are None so unset flags fall back to the ENPASS_* variables
    parser = argparse.ArgumentParser(
        prog="enpass-extract",
        description="Decrypt the cards of an Enpass 5 vault to JSON lines",
    )
    parser.add_argument(
        "-d", "--database",
        required=True,
        type=Path,
        help="Path to the Enpass vault file (walletx)"
    )
    parser.add_argument(
        "-p", "--password",
        help="Master password (default: $ENPASS_PASSWORD)"
    )
    parser.add_argument(
        "-6",
        dest="version_6",
        action="store_true",
        help="Vault is an Enpass 6 vault (not supported)"
    )
    parser.add_argument(
        "--on-error",
        choices=FAILURE_POLICIES,
        help="What to do with a card that fails to decrypt "
             "(default: $ENPASS_FAILURE_POLICY or skip)"
    )
    parser.add_argument(
        "--max-padding-failures",
        type=int,
        metavar="N",
        help="Stop after N consecutive padding failures, 0 to never stop "
             "(default: $ENPASS_MAX_PADDING_FAILURES or 10)"
    )
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Log per-record decryption stages (lengths only) at DEBUG level"
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Append audit events to this file instead of stderr "
             "(default: $ENPASS_AUDIT_LOG)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"enpass-extract {__version__}"
    )
    return parser


def _trace(stage, context):
    logger.debug("trace %s %s", stage, context)


def main(argv=None) -> int:
    """Entry point for the enpass-extract console script."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env(
            password=args.password,
            failure_policy=args.on_error,
            max_padding_failures=args.max_padding_failures,
            audit_log=args.log_file,
        )
    except ValueError as e:
        print(f"enpass-extract: {e}", file=sys.stderr)
        return EXIT_USAGE

    logging.basicConfig(
        level=logging.DEBUG if args.trace else getattr(logging, settings.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    audit = configure_audit_logger(stream=sys.stderr, log_file=settings.audit_log)
    try:
        return _run(parser, args, settings, audit)
    finally:
        audit.close()


def _run(parser, args, settings, audit) -> int:
    version = VaultFormatVersion.from_flag(args.version_6)
    if version is VaultFormatVersion.V6:
        print("Enpass 6 is currently not supported.", file=sys.stderr)
        audit.log_event(
            event_type=EventType.SESSION_ABORTED,
            severity=EventSeverity.CRITICAL,
            message="Enpass 6 vaults are not supported",
            details={"database": str(args.database)},
        )
        return EXIT_USAGE

    if not settings.password:
        parser.error("a master password is required (-p or $ENPASS_PASSWORD)")

    try:
        conn = open_vault(args.database, settings.password, version)
    except VaultOpenError as e:
        print(f"enpass-extract: {e}", file=sys.stderr)
        audit.log_event(
            event_type=EventType.VAULT_OPEN_FAILED,
            severity=EventSeverity.CRITICAL,
            message=str(e),
            details={"database": str(args.database)},
        )
        return EXIT_FATAL

    audit.log_event(
        event_type=EventType.VAULT_OPENED,
        severity=EventSeverity.INFO,
        message=f"Opened vault {args.database.name}",
        details={"database": str(args.database), "format": version.value},
    )

    with VaultReader(conn) as reader:
        try:
            identity = reader.read_identity()
            audit.log_event(
                event_type=EventType.IDENTITY_LOADED,
                severity=EventSeverity.INFO,
                message="Identity row loaded",
                details={"identity_id": identity.id, "identity_version": identity.version},
            )
            key_material = derive(identity, settings.password, version)
        except (IdentityLookupError, KeyDerivationError) as e:
            print(f"enpass-extract: {e}", file=sys.stderr)
            audit.log_event(
                event_type=EventType.KEY_DERIVATION_FAILED,
                severity=EventSeverity.CRITICAL,
                message=str(e),
                details={"error": type(e).__name__},
            )
            return EXIT_FATAL

        audit.log_event(
            event_type=EventType.KEY_DERIVED,
            severity=EventSeverity.INFO,
            message="Record key derived",
            details={"identity_id": identity.id},
        )

        policy = FailurePolicy(settings.failure_policy)
        try:
            summary = export_cards(
                reader.iter_cards(),
                key_material,
                sys.stdout,
                policy=policy,
                max_consecutive_padding_failures=settings.max_padding_failures or None,
                trace=_trace if args.trace else None,
            )
        except (BadPasswordError, DecryptionError, VaultOpenError) as e:
            print(f"enpass-extract: {e}", file=sys.stderr)
            audit.log_event(
                event_type=EventType.SESSION_ABORTED,
                severity=EventSeverity.CRITICAL,
                message=str(e),
                details={"error": type(e).__name__, "policy": policy.value},
            )
            return EXIT_FATAL

    if summary.failed:
        if policy is FailurePolicy.REPORT:
            for record_id, reason in summary.failures:
                print(f"enpass-extract: card {record_id}: {reason}", file=sys.stderr)
            return EXIT_PARTIAL
        print(f"enpass-extract: skipped {summary.failed} card(s) that failed to decrypt",
              file=sys.stderr)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
