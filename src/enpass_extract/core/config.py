# Core - Configuration
#
# Settings come from environment variables; CLI flags override them.
#
#   ENPASS_PASSWORD              master password when -p is not given
#   ENPASS_FAILURE_POLICY        report | skip | abort   (default: skip)
#   ENPASS_MAX_PADDING_FAILURES  consecutive padding failures before giving
#                                up on the password, 0 disables (default: 10)
#   ENPASS_LOG_LEVEL             stdlib logging level (default: WARNING)
#   ENPASS_AUDIT_LOG             append audit events to this file

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

FAILURE_POLICIES = ("report", "skip", "abort")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Settings:
    """Runtime settings for an extraction run."""

    password: Optional[str] = None
    failure_policy: str = "skip"
    max_padding_failures: int = 10
    log_level: str = "WARNING"
    audit_log: Optional[Path] = None

    def __post_init__(self):
        if self.failure_policy not in FAILURE_POLICIES:
            raise ValueError(
                f"ENPASS_FAILURE_POLICY must be one of {', '.join(FAILURE_POLICIES)}, "
                f"got {self.failure_policy!r}"
            )
        if self.max_padding_failures < 0:
            raise ValueError(
                "ENPASS_MAX_PADDING_FAILURES / --max-padding-failures must be >= 0"
            )
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"ENPASS_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "Settings":
        """
        Build settings from ``environ`` (default: os.environ).

        Keyword ``overrides`` that are not None (CLI flags) replace the
        matching variable before validation, so a bad variable that a flag
        overrides is never looked at.
        """
        env = os.environ if environ is None else environ
        overrides = {name: value for name, value in overrides.items() if value is not None}

        values = {}
        if "max_padding_failures" not in overrides:
            raw_max = env.get("ENPASS_MAX_PADDING_FAILURES", "10")
            try:
                values["max_padding_failures"] = int(raw_max)
            except ValueError:
                raise ValueError(
                    f"ENPASS_MAX_PADDING_FAILURES must be an integer, got {raw_max!r}"
                ) from None

        audit_log = env.get("ENPASS_AUDIT_LOG")
        values.update(
            password=env.get("ENPASS_PASSWORD") or None,
            failure_policy=env.get("ENPASS_FAILURE_POLICY", "skip").lower(),
            log_level=env.get("ENPASS_LOG_LEVEL", "WARNING"),
            audit_log=Path(audit_log) if audit_log else None,
        )
        values.update(overrides)
        return cls(**values)
