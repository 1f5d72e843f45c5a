"""
Policy-driven taming of a host object graph.

A policy record describes one primordial object. Records are first bound to
the objects they describe by walking the policy tree in parallel with the
graph. The graph walk then decides every own property of every reachable
object: the permit for a name comes from the object's own record, or from the
nearest delegation ancestor whose record mentions that name, in which case
only an inherited `"*"` permits it.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import replace

from tamebox.runtime.errors import PolicyMismatch
from tamebox.runtime.graph import (
    HostObject,
    HostTypeError,
    Poison,
    PropertyDescriptor,
    contained_objects,
    freeze_value,
    is_poisoned,
)
from tamebox.runtime.report import Disposition, DispositionReport
from tamebox.runtime.schemas import (
    DENY,
    Deny,
    InheritPermit,
    Nested,
    Permit,
    PermitAccessorAware,
    PolicyEntry,
    PolicyNode,
)
from tamebox.runtime.severity import Severity, SeverityLedger

logger = logging.getLogger(__name__)


class VisitedSet:
    """Identity-keyed set; holds references so ids stay unique for its lifetime."""

    def __init__(self) -> None:
        self._ids: set[int] = set()
        self._refs: list[object] = []

    def add(self, obj: object) -> bool:
        """Add `obj`; return False if it was already present."""
        key = id(obj)
        if key in self._ids:
            return False
        self._ids.add(key)
        self._refs.append(obj)
        return True

    def __contains__(self, obj: object) -> bool:
        return id(obj) in self._ids

    def __len__(self) -> int:
        return len(self._ids)


class TamingWalker:
    def __init__(
        self,
        policy_root: PolicyNode,
        ledger: SeverityLedger | None = None,
        *,
        max_examples: int = 10,
    ) -> None:
        self.policy_root = policy_root
        self.ledger = ledger if ledger is not None else SeverityLedger()
        self.max_examples = max_examples
        self._bound: dict[int, tuple[HostObject, PolicyNode]] = {}

    # -- phase 1: bind policy records to objects ------------------------

    def bind(self, root: HostObject, report: DispositionReport) -> None:
        self._bound = {id(root): (root, self.policy_root)}
        pending: list[tuple[HostObject, PolicyNode, str]] = [(root, self.policy_root, "")]
        while pending:
            obj, node, path = pending.pop()
            for name, entry in node.entries.items():
                if not isinstance(entry, Nested):
                    continue
                desc = obj.get_own_property(name)
                if desc is None or desc.accessor or not isinstance(desc.value, HostObject):
                    continue
                value = desc.value
                child_path = _join(path, name)
                previous = self._bound.get(id(value))
                if previous is not None:
                    if previous[1] is not entry.node:
                        mismatch = PolicyMismatch(child_path, "primordial reachable through multiple policy paths")
                        self._finding(report, mismatch, Severity.UNSAFE_SPEC_VIOLATION, "taming.mismatch")
                    continue
                self._bound[id(value)] = (value, entry.node)
                pending.append((value, entry.node, child_path))

    # -- permit resolution ----------------------------------------------

    def policy_of(self, obj: HostObject) -> PolicyNode | None:
        bound = self._bound.get(id(obj))
        return bound[1] if bound is not None else None

    def resolve(self, obj: HostObject, name: str) -> tuple[PolicyEntry | None, bool]:
        """
        Return `(entry, own)` deciding `name` on `obj`.

        `own` is True when the decision comes from the object's own record. An
        ancestor's entry only counts if it is `"*"`; any other ancestor mention
        denies.
        """
        node = self.policy_of(obj)
        if node is not None and name in node:
            return node.get(name), True

        base = obj.proto
        while base is not None:
            node = self.policy_of(base)
            if node is not None and name in node:
                entry = node.get(name)
                if isinstance(entry, InheritPermit):
                    return entry, False
                return DENY, False
            base = base.proto
        return None, False

    # -- phase 2: walk --------------------------------------------------

    def tame(self, root: HostObject) -> DispositionReport:
        report = DispositionReport(max_examples=self.max_examples)
        self.bind(root, report)

        visited = VisitedSet()
        visited.add(root)
        pending: deque[tuple[HostObject, str]] = deque([(root, "")])
        while pending:
            obj, path = pending.popleft()
            children: list[tuple[HostObject, str]] = []

            for name in obj.own_keys():
                for child, child_path in self._tame_property(obj, name, _join(path, name), report):
                    children.append((child, child_path))

            if obj.proto is not None:
                children.append((obj.proto, f"{path or '<root>'}.[[Prototype]]"))

            self._seal(obj, path or "<root>", report)

            for child, child_path in children:
                if visited.add(child):
                    pending.append((child, child_path))

        report.visited = len(visited)
        return report

    def _tame_property(
        self,
        obj: HostObject,
        name: str,
        path: str,
        report: DispositionReport,
    ) -> list[tuple[HostObject, str]]:
        desc = obj.get_own_property(name)
        if desc is None:
            return []

        if is_poisoned(desc):
            self._note(report, path, Disposition.SKIPPED, Severity.SAFE, "already poisoned")
            return []

        entry, own = self.resolve(obj, name)

        if entry is None:
            self._remove(obj, name, path, report, Severity.UNSAFE_SPEC_VIOLATION, "not in policy")
            return []

        if isinstance(entry, Deny):
            severity = Severity.SAFE if own else Severity.UNSAFE_SPEC_VIOLATION
            reason = "denied" if own else "not inherited"
            self._remove(obj, name, path, report, severity, reason)
            return []

        if isinstance(entry, (Permit, Nested, InheritPermit)) and desc.accessor:
            self._remove(obj, name, path, report, Severity.SAFE_SPEC_VIOLATION, "not a data property")
            return []

        if isinstance(entry, (Permit, Nested, InheritPermit, PermitAccessorAware)):
            if not desc.accessor:
                try:
                    frozen = freeze_value(desc.value)
                    if frozen is not desc.value:
                        obj.define_property(name, replace(desc, value=frozen))
                        desc = obj.get_own_property(name)
                except HostTypeError as exc:
                    self._note(report, path, Disposition.SKIPPED, Severity.NOT_ISOLATED, f"holds a mutable container: {exc}")
                    return list(contained_objects(desc.value, path))

            self._keep(obj, name, desc, path, report)
            if desc.accessor:
                children = []
                if desc.get is not None:
                    children.append((desc.get, f"{path}<getter>"))
                if desc.set is not None:
                    children.append((desc.set, f"{path}<setter>"))
                return children
            return list(contained_objects(desc.value, path))

        raise PolicyMismatch(path, f"unknown policy entry {entry!r}")

    def _keep(
        self,
        obj: HostObject,
        name: str,
        desc: PropertyDescriptor,
        path: str,
        report: DispositionReport,
    ) -> None:
        if desc.is_hard:
            self._note(report, path, Disposition.KEPT)
            return

        if desc.accessor or desc.configurable:
            hardened = replace(desc, configurable=False) if desc.accessor else replace(desc, configurable=False, writable=False)
            disposition = Disposition.KEPT
        else:
            hardened = replace(desc, writable=False)
            disposition = Disposition.FROZEN_ONLY

        try:
            obj.define_property(name, hardened)
        except HostTypeError as exc:
            self._note(report, path, Disposition.SKIPPED, Severity.NOT_ISOLATED, f"cannot be hardened: {exc}")
            return
        reason = "" if disposition is Disposition.KEPT else "was non-configurable but writable"
        self._note(report, path, disposition, Severity.SAFE, reason)

    def _remove(
        self,
        obj: HostObject,
        name: str,
        path: str,
        report: DispositionReport,
        severity: Severity,
        reason: str,
    ) -> None:
        desc = obj.get_own_property(name)
        if desc is not None and desc.is_data and desc.is_hard and desc.value is None:
            self._note(report, path, Disposition.SKIPPED, Severity.SAFE, f"{reason}; already neutralized")
            return

        if obj.delete(name):
            self._note(report, path, Disposition.DELETED, severity, reason)
            return

        poison = Poison(path)
        try:
            obj.define_property(name, PropertyDescriptor.accessor_pair(poison, poison, configurable=False))
        except HostTypeError:
            pass
        else:
            self._note(report, path, Disposition.DELETED, max(severity, Severity.SAFE_SPEC_VIOLATION), f"{reason}; poisoned")
            return

        desc = obj.get_own_property(name)
        if desc is not None and desc.is_data and desc.writable:
            # Still writable: park it in a harmless state.
            try:
                obj.define_property(name, replace(desc, value=None, writable=False))
            except HostTypeError:
                pass
            else:
                self._note(report, path, Disposition.DELETED, max(severity, Severity.SAFE_SPEC_VIOLATION), f"{reason}; neutralized")
                return

        self._note(report, path, Disposition.SKIPPED, Severity.NOT_ISOLATED, f"{reason}; cannot be deleted")

    def _seal(self, obj: HostObject, path: str, report: DispositionReport) -> None:
        if not obj.extensible:
            return
        try:
            obj.prevent_extensions()
        except HostTypeError as exc:
            self._finding(report, PolicyMismatch(path, f"cannot be made non-extensible: {exc}"), Severity.NOT_ISOLATED, "taming.unfreezable")

    def _note(
        self,
        report: DispositionReport,
        path: str,
        disposition: Disposition,
        severity: Severity = Severity.SAFE,
        reason: str = "",
    ) -> None:
        report.add(path, disposition, severity, reason)
        self.ledger.record(severity, f"taming.{disposition.value}")
        if disposition is not Disposition.KEPT or severity > Severity.SAFE:
            logger.debug("%s: %s (%s) %s", path, disposition.value, severity.description, reason)

    def _finding(self, report: DispositionReport, finding: PolicyMismatch, severity: Severity, category: str) -> None:
        # Object-level findings are not property dispositions; they only raise severity.
        report.note_severity(severity, finding.path, finding.reason)
        self.ledger.record(severity, category)
        logger.debug("%s (%s)", finding, severity.description)


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def tame(
    root: HostObject,
    policy_root: PolicyNode,
    ledger: SeverityLedger | None = None,
    *,
    max_examples: int = 10,
) -> DispositionReport:
    """Reduce everything reachable from `root` to what `policy_root` permits."""
    return TamingWalker(policy_root, ledger, max_examples=max_examples).tame(root)
