from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from tamebox.runtime.severity import Severity


class Disposition(str, Enum):
    KEPT = "kept"
    DELETED = "deleted"
    SKIPPED = "skipped"
    FROZEN_ONLY = "frozen-only"

    @property
    def heading(self) -> str:
        return _HEADINGS[self]


_HEADINGS = {
    Disposition.KEPT: "Apparently fine",
    Disposition.DELETED: "Deleted",
    Disposition.FROZEN_ONLY: "Frozen only",
    Disposition.SKIPPED: "Skipped",
}


@dataclass(frozen=True)
class Violation:
    path: str
    disposition: Disposition
    severity: Severity
    reason: str


@dataclass
class DispositionReport:
    """Counts per disposition plus the worst severity of one taming pass."""

    max_examples: int = 10
    counts: Counter = field(default_factory=Counter)
    severities: Counter = field(default_factory=Counter)
    worst: Severity = Severity.SAFE
    visited: int = 0
    examples: list[Violation] = field(default_factory=list)
    findings: list[tuple[str, Severity, str]] = field(default_factory=list)

    def note_severity(self, severity: Severity, path: str, reason: str) -> None:
        """Record an object-level finding that is not a property disposition."""
        self.severities[severity] += 1
        if severity > self.worst:
            self.worst = severity
        if len(self.findings) < self.max_examples:
            self.findings.append((path, severity, reason))

    def add(self, path: str, disposition: Disposition, severity: Severity = Severity.SAFE, reason: str = "") -> None:
        self.counts[disposition] += 1
        self.severities[severity] += 1
        if severity > self.worst:
            self.worst = severity
        if disposition is not Disposition.KEPT and len(self.examples) < self.max_examples:
            self.examples.append(Violation(path, disposition, severity, reason))

    @property
    def kept(self) -> int:
        return self.counts[Disposition.KEPT]

    @property
    def deleted(self) -> int:
        return self.counts[Disposition.DELETED]

    @property
    def skipped(self) -> int:
        return self.counts[Disposition.SKIPPED]

    @property
    def frozen_only(self) -> int:
        return self.counts[Disposition.FROZEN_ONLY]

    def as_dict(self) -> dict:
        return {
            "worst": self.worst.name,
            "visited": self.visited,
            "counts": {d.value: self.counts[d] for d in Disposition},
            "severities": {s.name: self.severities[s] for s in sorted(self.severities, reverse=True)},
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DispositionReport):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def summary(self) -> str:
        """Human-readable report; worse severities come first."""
        lines = [f"Max Severity: {self.worst.label}."]
        for disposition in Disposition:
            lines.append(f"{self.counts[disposition]} {disposition.heading}")
        for severity in sorted(self.severities, reverse=True):
            if severity is Severity.SAFE:
                continue
            lines.append(f"{self.severities[severity]} {severity.description}")
        for example in sorted(self.examples, key=lambda v: -v.severity):
            lines.append(f"  {example.severity.description}: {example.path} {example.disposition.value} ({example.reason})")
        for path, severity, reason in sorted(self.findings, key=lambda f: -f[1]):
            lines.append(f"  {severity.description}: {path} ({reason})")
        return "\n".join(lines)
