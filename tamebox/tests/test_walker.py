from __future__ import annotations

import pytest

from tamebox.runtime.graph import HostFunction, HostObject, HostTypeError, PropertyDescriptor, is_poisoned
from tamebox.runtime.registry import build_default_catalog
from tamebox.runtime.repair import RepairEngine
from tamebox.runtime.report import Disposition
from tamebox.runtime.schemas import load_policy
from tamebox.runtime.severity import Severity, SeverityLedger
from tamebox.runtime.walker import TamingWalker, VisitedSet, tame
from tamebox.utils.primordials import build_host_runtime
from tamebox.utils.whitelist import WHITELIST


def _ctor(name: str) -> HostFunction:
    return HostFunction(lambda this: None, name=name)


def _deny_vs_inherit_graph() -> tuple[HostObject, HostObject, HostObject]:
    y = HostObject(name="Y")
    y.set_own("ctor", _ctor("Y.ctor"))
    x = HostObject(y, name="X")
    x.set_own("ctor", _ctor("X.ctor"))
    root = HostObject(name="global")
    root.set_own("X", x)
    root.set_own("Y", y)
    return root, x, y


def test_own_deny_beats_inherited_permit():
    root, x, y = _deny_vs_inherit_graph()
    report = tame(root, load_policy({"Y": {"ctor": "*"}, "X": {"ctor": False}}))

    assert not x.has_own("ctor")
    assert y.has_own("ctor")
    assert report.deleted == 1
    assert report.worst is Severity.SAFE
    assert x.get("ctor") is y.get("ctor")


def test_inherited_star_permits_own_property():
    root, x, y = _deny_vs_inherit_graph()
    report = tame(root, load_policy({"Y": {"ctor": "*"}, "X": {}}))

    assert x.has_own("ctor")
    assert report.deleted == 0
    assert x.get_own_property("ctor").is_hard


def test_ancestor_mention_without_star_is_not_inherited():
    root, x, y = _deny_vs_inherit_graph()
    ledger = SeverityLedger()
    report = tame(root, load_policy({"Y": {"ctor": True}, "X": {}}), ledger)

    assert not x.has_own("ctor")
    assert y.has_own("ctor")
    assert report.worst is Severity.UNSAFE_SPEC_VIOLATION
    assert report.examples[0].reason == "not inherited"
    assert ledger.worst() is Severity.UNSAFE_SPEC_VIOLATION


def test_unlisted_property_is_deleted_as_unexpected():
    root = HostObject()
    root.set_own("ambient", HostObject(name="ambient"))
    report = tame(root, load_policy({}))

    assert not root.has_own("ambient")
    assert report.deleted == 1
    assert report.worst is Severity.UNSAFE_SPEC_VIOLATION
    assert report.visited == 1


def test_accessor_needs_accessor_aware_permit():
    getter = HostFunction(lambda this: 1, name="getter")
    holder = HostObject(name="holder")
    holder.define_property("plain", PropertyDescriptor.accessor_pair(getter))
    holder.define_property("aware", PropertyDescriptor.accessor_pair(getter))
    root = HostObject()
    root.set_own("holder", holder)

    report = tame(root, load_policy({"holder": {"plain": True, "aware": "maybeAccessor"}}))

    assert not holder.has_own("plain")
    assert holder.get_own_property("aware").is_hard
    assert getter.is_frozen()
    assert report.worst is Severity.SAFE_SPEC_VIOLATION


def test_kept_writable_non_configurable_slot_is_frozen_only():
    root = HostObject()
    root.set_own("count", 1, configurable=False)
    report = tame(root, load_policy({"count": True}))

    desc = root.get_own_property("count")
    assert not desc.writable
    assert report.frozen_only == 1
    assert report.worst is Severity.SAFE


def test_undeletable_property_is_neutralized_or_skipped():
    root = HostObject()
    root.set_own("leak", HostObject(name="secret"), configurable=False)
    root.set_own("stuck", HostObject(name="stuck"), writable=False, configurable=False)
    report = tame(root, load_policy({}))

    leak = root.get_own_property("leak")
    assert leak.value is None and not leak.writable
    assert root.get_own_property("stuck").value is not None
    assert report.deleted == 1
    assert report.skipped == 1
    assert report.worst is Severity.NOT_ISOLATED


class StickyObject(HostObject):
    """A host object that refuses deletes but still accepts redefinition."""

    def delete(self, name: str) -> bool:
        return not self.has_own(name)


def test_undeletable_property_is_poisoned():
    sticky = StickyObject(name="sticky")
    sticky.set_own("secret", HostObject(name="secret"))
    root = HostObject()
    root.set_own("sticky", sticky)
    policy = load_policy({"sticky": {}})

    report = tame(root, policy)

    desc = sticky.get_own_property("secret")
    assert is_poisoned(desc)
    assert report.deleted == 1
    assert report.worst is Severity.UNSAFE_SPEC_VIOLATION
    with pytest.raises(HostTypeError, match="sticky.secret"):
        sticky.get("secret")

    again = tame(root, policy)
    assert again.deleted == 0
    assert again.skipped == 1
    assert again.worst is Severity.SAFE


def test_exotic_object_is_reported_as_not_isolated():
    root = HostObject()
    window = HostObject(name="window", exotic=True)
    root.set_own("window", window)
    ledger = SeverityLedger()
    report = tame(root, load_policy({"window": {}}), ledger)

    assert report.worst is Severity.NOT_ISOLATED
    assert report.findings[0][0] == "window"
    assert ledger.category_counts()["taming.unfreezable"] == 1


def test_cycle_visits_each_object_once():
    a = HostObject(name="A")
    b = HostObject(name="B")
    a.proto = b
    b.set_own("back", a)
    root = HostObject()
    root.set_own("A", a)
    root.set_own("B", b)

    report = tame(root, load_policy({"A": {}, "B": {"back": True}}))

    assert report.visited == 3
    assert report.kept == 3
    assert b.has_own("back")
    with pytest.raises(HostTypeError):
        a.put("fresh", 1)


def test_same_object_under_two_records_is_a_mismatch():
    shared = HostObject(name="shared")
    root = HostObject()
    root.set_own("a", shared)
    root.set_own("b", shared)

    report = tame(root, load_policy({"a": {}, "b": {}}))

    assert report.worst is Severity.UNSAFE_SPEC_VIOLATION
    assert report.findings[0][2] == "primordial reachable through multiple policy paths"


def test_examples_are_bounded_but_counts_are_complete():
    root = HostObject()
    for i in range(25):
        root.set_own(f"extra{i}", i)
    report = tame(root, load_policy({}), max_examples=5)

    assert report.deleted == 25
    assert len(report.examples) == 5


def test_second_pass_deletes_nothing_and_is_stable():
    root = build_host_runtime()
    policy = load_policy(WHITELIST)
    RepairEngine(build_default_catalog()).run(root, SeverityLedger())

    first = tame(root, policy)
    second = tame(root, policy)
    third = tame(root, policy)

    assert first.deleted > 0
    assert second.deleted == 0
    assert second == third
    assert second.visited == first.visited


def test_default_host_tames_without_isolation_loss():
    root = build_host_runtime()
    RepairEngine(build_default_catalog()).run(root, SeverityLedger())
    report = TamingWalker(load_policy(WHITELIST)).tame(root)

    assert report.worst is Severity.UNSAFE_SPEC_VIOLATION
    assert report.skipped == 0
    deleted = {v.path for v in report.examples if v.disposition is Disposition.DELETED}
    assert "os" in deleted
    assert not root.get("Math").has_own("random")
    assert root.get("Object").get("prototype").is_frozen()


def test_visited_set_uses_identity():
    visited = VisitedSet()
    a, b = [], []
    assert visited.add(a)
    assert visited.add(b)
    assert not visited.add(a)
    assert len(visited) == 2
    assert b in visited


def _config_root() -> tuple[HostObject, HostObject, HostObject]:
    member = HostObject(name="member")
    member.set_own("secret", 1)
    cfg = HostObject(name="cfg")
    cfg.set_own("items", [1, [2, 3], member])
    cfg.set_own("table", {"a": 1, "nested": {"b": [4]}})
    root = HostObject(name="global")
    root.set_own("cfg", cfg)
    return root, cfg, member


def test_kept_containers_are_frozen_and_their_members_tamed():
    root, cfg, member = _config_root()
    policy = load_policy({"cfg": {"items": True, "table": True}})

    report = tame(root, policy)

    assert cfg.get("items") == (1, (2, 3), member)
    table = cfg.get("table")
    with pytest.raises(TypeError):
        table["a"] = "changed"
    assert table["nested"]["b"] == (4,)
    # Objects held inside containers are walked like any other object.
    assert not member.has_own("secret")
    assert not member.extensible
    assert report.visited == 3
    assert report.worst is Severity.UNSAFE_SPEC_VIOLATION

    again = tame(root, policy)
    assert again.deleted == 0
    assert again.skipped == 0
    assert again.worst is Severity.SAFE


def test_container_in_a_hard_slot_is_not_isolated():
    cfg = HostObject(name="cfg")
    cfg.set_own("items", [1, 2], writable=False, configurable=False)
    root = HostObject(name="global")
    root.set_own("cfg", cfg)

    report = tame(root, load_policy({"cfg": {"items": True}}))

    assert report.skipped == 1
    assert report.worst is Severity.NOT_ISOLATED
    assert "mutable container" in report.examples[0].reason
