from __future__ import annotations

from collections import Counter
from enum import IntEnum

from tamebox.runtime.errors import ConfigError, LifecycleError


class Severity(IntEnum):
    """How far a repair or taming outcome deviates from the ideal baseline."""

    SAFE = 0
    SAFE_SPEC_VIOLATION = 1
    UNSAFE_SPEC_VIOLATION = 2
    NOT_OCAP_SAFE = 3
    NOT_ISOLATED = 4
    NEW_SYMPTOM = 5

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def label(self) -> str:
        return f"{self.description}({int(self)})"

    @classmethod
    def parse(cls, value: "str | int | Severity") -> "Severity":
        """Parse a severity from its name (any case) or its ordinal."""
        if isinstance(value, Severity):
            return value
        if isinstance(value, bool):
            raise ConfigError(f"Invalid severity: {value!r}")
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError as exc:
                raise ConfigError(f"Invalid severity ordinal: {value}") from exc

        raw = str(value).strip()
        if raw.isdigit():
            return cls.parse(int(raw))
        key = raw.upper().replace("-", "_").replace(" ", "_")
        try:
            return cls[key]
        except KeyError as exc:
            raise ConfigError(f"Invalid severity: {value!r}. Allowed: {[s.name for s in cls]}") from exc


_DESCRIPTIONS = {
    Severity.SAFE: "Safe",
    Severity.SAFE_SPEC_VIOLATION: "Safe spec violation",
    Severity.UNSAFE_SPEC_VIOLATION: "Unsafe spec violation",
    Severity.NOT_OCAP_SAFE: "Not ocap safe",
    Severity.NOT_ISOLATED: "Not isolated",
    Severity.NEW_SYMPTOM: "New symptom",
}


class SeverityLedger:
    """
    Running maximum of recorded severities plus counts for reporting.

    One ledger belongs to one initialization attempt. Once closed it refuses
    further records.
    """

    def __init__(self) -> None:
        self._worst = Severity.SAFE
        self._by_severity: Counter[Severity] = Counter()
        self._by_category: Counter[str] = Counter()
        self._closed = False

    def record(self, severity: Severity, category: str = "general") -> Severity:
        if self._closed:
            raise LifecycleError("Severity ledger is closed")
        severity = Severity.parse(severity)
        self._by_severity[severity] += 1
        self._by_category[category] += 1
        if severity > self._worst:
            self._worst = severity
        return self._worst

    def worst(self) -> Severity:
        return self._worst

    def accept(self, threshold: Severity) -> bool:
        return self._worst <= Severity.parse(threshold)

    def counts(self) -> dict[Severity, int]:
        return {s: self._by_severity[s] for s in sorted(self._by_severity, reverse=True)}

    def category_counts(self) -> dict[str, int]:
        return dict(sorted(self._by_category.items()))

    def total(self) -> int:
        return sum(self._by_severity.values())

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def summary(self) -> str:
        lines = [f"Max Severity: {self._worst.label}."]
        for severity, count in self.counts().items():
            lines.append(f"{count} {severity.description}")
        return "\n".join(lines)
