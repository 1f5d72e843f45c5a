from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from tamebox.runtime.errors import RepairDetectionFailure
from tamebox.runtime.graph import HostObject
from tamebox.runtime.registry import PatchCatalog, PatchDescriptor
from tamebox.runtime.severity import Severity, SeverityLedger

logger = logging.getLogger(__name__)


class RepairStatus(str, Enum):
    ABSENT = "absent"
    REPAIRED = "repaired"
    UNREPAIRED = "unrepaired"
    INDETERMINATE = "indeterminate"
    REGION_ABANDONED = "region-abandoned"


@dataclass(frozen=True)
class RepairOutcome:
    patch: str
    status: RepairStatus
    severity: Severity
    detail: str = ""


@dataclass
class RepairReport:
    outcomes: list[RepairOutcome] = field(default_factory=list)

    def counts(self) -> dict[RepairStatus, int]:
        counter = Counter(o.status for o in self.outcomes)
        return {status: counter[status] for status in RepairStatus}

    def worst(self) -> Severity:
        return max((o.severity for o in self.outcomes), default=Severity.SAFE)

    def failures(self) -> list[RepairOutcome]:
        return [o for o in self.outcomes if o.status in {RepairStatus.UNREPAIRED, RepairStatus.INDETERMINATE}]

    def summary(self) -> str:
        lines = [f"Max Severity: {self.worst().label}."]
        for status, count in self.counts().items():
            if count:
                lines.append(f"{count} {status.value}")
        for outcome in sorted(self.outcomes, key=lambda o: -o.severity):
            if outcome.status is RepairStatus.ABSENT:
                continue
            detail = f" ({outcome.detail})" if outcome.detail else ""
            lines.append(f"  {outcome.severity.description}: {outcome.patch} {outcome.status.value}{detail}")
        return "\n".join(lines)


class RepairEngine:
    """
    Apply an ordered catalog of conditional patches to a raw host graph.

    Every patch yields exactly one outcome and one ledger entry, whether it was
    applied or not.
    """

    def __init__(self, catalog: PatchCatalog) -> None:
        self.catalog = catalog

    def run(self, root: HostObject, ledger: SeverityLedger) -> RepairReport:
        report = RepairReport()
        failed_regions: set[str] = set()

        for patch in self.catalog:
            outcome = self._apply(patch, root, failed_regions)
            if outcome.status is RepairStatus.INDETERMINATE and patch.region:
                failed_regions.add(patch.region)
            ledger.record(outcome.severity, f"repair.{outcome.status.value}")
            report.outcomes.append(outcome)
            logger.debug("repair %s: %s (%s)", patch.name, outcome.status.value, outcome.severity.description)

        return report

    def _apply(self, patch: PatchDescriptor, root: HostObject, failed_regions: set[str]) -> RepairOutcome:
        if patch.region and patch.region in failed_regions:
            return RepairOutcome(
                patch.name,
                RepairStatus.REGION_ABANDONED,
                Severity.SAFE,
                f"earlier detector failed in region {patch.region}",
            )

        try:
            present = bool(patch.detector(root))
        except Exception as exc:
            return self._indeterminate(patch, exc)

        if not present:
            return RepairOutcome(patch.name, RepairStatus.ABSENT, Severity.SAFE)

        unrepaired = max(patch.severity, Severity.UNSAFE_SPEC_VIOLATION)
        try:
            patch.applicator(root)
        except Exception as exc:
            logger.warning("Repair %s failed: %s", patch.name, exc)
            return RepairOutcome(patch.name, RepairStatus.UNREPAIRED, unrepaired, f"repair raised: {exc}")

        try:
            still_present = bool(patch.detector(root))
        except Exception as exc:
            return self._indeterminate(patch, exc, "verification raised")

        if still_present:
            return RepairOutcome(patch.name, RepairStatus.UNREPAIRED, unrepaired, "defect still present after repair")
        return RepairOutcome(patch.name, RepairStatus.REPAIRED, patch.severity, patch.description)

    def _indeterminate(self, patch: PatchDescriptor, exc: Exception, stage: str = "detection raised") -> RepairOutcome:
        # A detector that throws leaves the whole region in an unknown state.
        failure = RepairDetectionFailure(patch.name, exc)
        logger.warning("%s", failure)
        return RepairOutcome(patch.name, RepairStatus.INDETERMINATE, Severity.NEW_SYMPTOM, f"{stage}: {exc}")
