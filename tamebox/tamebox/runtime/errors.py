from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tamebox.runtime.severity import Severity


class TameboxError(Exception):
    """Base error for runtime-related failures."""


class ConfigError(TameboxError):
    """Raised when runtime configuration is missing or malformed."""


class UnsafeConfigError(ConfigError):
    """Raised when configuration relaxes the baseline without an explicit opt-in."""


class PolicyError(TameboxError):
    """Raised when a policy document cannot be loaded."""


class LifecycleError(TameboxError):
    """Raised on an illegal baseline or ledger state transition."""


class ParseError(TameboxError):
    """Raised when confined source text cannot be parsed or uses refused syntax."""

    def __init__(self, message: str, *, lineno: int | None = None) -> None:
        super().__init__(message)
        self.lineno = lineno


class RepairDetectionFailure(TameboxError):
    """A repair detector raised; defect presence is indeterminate."""

    def __init__(self, patch: str, cause: BaseException) -> None:
        super().__init__(f"Detector for {patch!r} failed: {cause}")
        self.patch = patch
        self.cause = cause


class PolicyMismatch(TameboxError):
    """An object graph disagrees with the policy document."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class InitializationAborted(TameboxError):
    """The baseline exceeded the acceptance threshold and is unusable."""

    def __init__(self, worst: "Severity", threshold: "Severity", summary: str = "") -> None:
        message = f"Max severity {worst.label} exceeds accepted {threshold.label}"
        if summary:
            message = f"{message}\n{summary}"
        super().__init__(message)
        self.worst = worst
        self.threshold = threshold
        self.summary = summary


class EvaluationError(TameboxError):
    """
    A confined program threw or failed to parse.

    Returned to `confine` callers inside an `EvaluationResult`; never raised out
    of the runner.
    """

    def __init__(self, kind: str, message: str, *, lineno: int | None = None) -> None:
        super().__init__(f"{kind}: {message}")
        self.kind = kind
        self.message = message
        self.lineno = lineno

    def as_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "lineno": self.lineno}
