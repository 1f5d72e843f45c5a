from __future__ import annotations

import os
from dataclasses import dataclass

from tamebox.runtime.errors import ConfigError, UnsafeConfigError
from tamebox.runtime.severity import Severity


_TRUTHY = {"1", "true", "True", "TRUE", "yes", "YES"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"`{name}` must be an integer, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"`{name}` must not be negative, got {value}")
    return value


@dataclass(frozen=True)
class RuntimeConfig:
    """
    Centralized runtime configuration.

    Notes
    - The acceptance threshold defaults to the strictest level (`SAFE`). A
      baseline with any deviation from the ideal aborts initialization unless
      the embedding application opts in to a relaxed threshold explicitly.
    - `diagnostic_examples` bounds how many individual violations a report
      retains; counts are always complete.
    """

    max_severity: Severity = Severity.SAFE
    allow_relaxed_severity: bool = False
    diagnostic_examples: int = 10

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        raw_severity = os.getenv("TAMEBOX_MAX_SEVERITY", "").strip()
        max_severity = Severity.parse(raw_severity) if raw_severity else Severity.SAFE

        allow_relaxed = os.getenv("TAMEBOX_ALLOW_RELAXED_SEVERITY", "").strip() in _TRUTHY

        return cls(
            max_severity=max_severity,
            allow_relaxed_severity=allow_relaxed,
            diagnostic_examples=_env_int("TAMEBOX_DIAGNOSTIC_EXAMPLES", 10),
        )

    @classmethod
    def relaxed(cls, max_severity: Severity | str | int, **kwargs) -> "RuntimeConfig":
        """Explicit opt-in to a threshold above `SAFE`."""
        return cls(max_severity=Severity.parse(max_severity), allow_relaxed_severity=True, **kwargs)

    def validate(self) -> None:
        """Validate the safety of the runtime configuration."""
        if self.max_severity > Severity.SAFE and not self.allow_relaxed_severity:
            raise UnsafeConfigError(
                "Acceptance threshold relaxed without explicit opt-in.\n"
                f"- Current: {self.max_severity.name}\n"
                "- To accept it intentionally, set `TAMEBOX_ALLOW_RELAXED_SEVERITY=1` "
                "or build the config with `RuntimeConfig.relaxed(...)`."
            )
        if self.diagnostic_examples < 0:
            raise ConfigError("diagnostic_examples must not be negative")
