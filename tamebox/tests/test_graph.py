from __future__ import annotations

from types import MappingProxyType

import pytest

from tamebox.runtime.graph import (
    HostFunction,
    HostObject,
    HostTypeError,
    Poison,
    PropertyDescriptor,
    freeze_value,
    harden,
    is_poisoned,
    reachable,
)


def test_lookup_follows_delegation():
    base = HostObject(name="base")
    base.set_own("greeting", "hi")
    child = HostObject(base, name="child")

    owner, desc = child.lookup("greeting")
    assert owner is base
    assert desc.value == "hi"
    assert child.get("greeting") == "hi"
    assert child.get("missing") is None


def test_put_shadows_inherited_writable_property():
    base = HostObject()
    base.set_own("x", 1)
    child = HostObject(base)
    child.put("x", 2)
    assert child.get_own_property("x").value == 2
    assert base.get_own_property("x").value == 1


def test_put_on_read_only_inherited_property_fails():
    base = HostObject()
    base.set_own("x", 1, writable=False)
    child = HostObject(base)
    with pytest.raises(HostTypeError, match="read only"):
        child.put("x", 2)


def test_non_configurable_property_only_loses_mutability():
    obj = HostObject()
    obj.set_own("x", 1, configurable=False)
    obj.define_property("x", PropertyDescriptor.data(1, writable=False, configurable=False))
    with pytest.raises(HostTypeError):
        obj.define_property("x", PropertyDescriptor.data(1, writable=True, configurable=False))
    assert not obj.delete("x")


def test_freeze_makes_every_slot_hard():
    obj = HostObject()
    obj.set_own("x", 1)
    obj.define_property("y", PropertyDescriptor.accessor_pair(HostFunction(lambda this: 2)))
    obj.freeze()
    assert obj.is_frozen()
    with pytest.raises(HostTypeError):
        obj.put("z", 3)


def test_accessor_get_receives_receiver():
    base = HostObject()
    base.define_property("me", PropertyDescriptor.accessor_pair(HostFunction(lambda this: this)))
    child = HostObject(base)
    assert child.get("me") is child


def test_exotic_objects_refuse_changes():
    obj = HostObject(name="window", exotic=True)
    with pytest.raises(HostTypeError):
        obj.prevent_extensions()
    with pytest.raises(HostTypeError):
        obj.set_own("x", 1)


def test_poison_throws_on_access():
    poison = Poison("Thing.secret")
    holder = HostObject()
    holder.define_property("secret", PropertyDescriptor.accessor_pair(poison, poison, configurable=False))

    assert is_poisoned(holder.get_own_property("secret"))
    assert poison.is_frozen()
    with pytest.raises(HostTypeError, match="Thing.secret"):
        holder.get("secret")


def test_reachable_terminates_on_cycles():
    a = HostObject(name="a")
    b = HostObject(a, name="b")
    a.set_own("b", b)
    b.set_own("self", b)

    assert {obj.name for obj in reachable(b)} == {"a", "b"}


def test_harden_reports_refusing_objects():
    root = HostObject()
    exotic = HostObject(name="exotic", exotic=True)
    root.set_own("inner", HostObject())
    root.set_own("exotic", exotic)

    refused = harden(root)
    assert refused == [exotic]
    assert root.is_frozen()
    assert root.get("inner").is_frozen()


def test_reachable_looks_inside_plain_containers():
    listed = HostObject(name="listed")
    mapped = HostObject(name="mapped")
    root = HostObject(name="root")
    root.set_own("items", [1, [listed]])
    root.set_own("table", {"k": mapped})

    assert {obj.name for obj in reachable(root)} == {"root", "listed", "mapped"}


def test_freeze_value_copies_containers_once():
    source = {"items": [1, [2]], "tags": {"a"}}
    frozen = freeze_value(source)

    assert isinstance(frozen, MappingProxyType)
    assert frozen["items"] == (1, (2,))
    assert frozen["tags"] == frozenset({"a"})
    source["items"].append(3)
    assert frozen["items"] == (1, (2,))
    assert freeze_value(frozen) is frozen


def test_harden_freezes_containers_and_their_objects():
    inner = HostObject(name="inner")
    root = HostObject()
    root.set_own("items", [1, inner])
    root.set_own("table", {"a": 1})

    assert harden(root) == []
    assert root.get("items") == (1, inner)
    with pytest.raises(TypeError):
        root.get("table")["a"] = 2
    assert inner.is_frozen()


def test_self_containing_container_refuses_to_harden():
    loop: list = []
    loop.append(loop)
    root = HostObject()
    root.set_own("loop", loop)

    assert harden(root) == [root]
    with pytest.raises(HostTypeError):
        freeze_value(loop)
