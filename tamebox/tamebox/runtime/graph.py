"""
Explicit model of a prototype-based host runtime.

Objects own an ordered property map and a single delegation link. Property
semantics follow ES5: non-configurable slots only ever lose mutability,
non-extensible objects refuse new properties, and lookups fall through the
delegation chain.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableSequence
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Callable, Iterator


class HostError(Exception):
    """An error thrown inside the host runtime."""

    kind = "Error"


class HostTypeError(HostError):
    kind = "TypeError"


class HostRangeError(HostError):
    kind = "RangeError"


class HostReferenceError(HostError):
    kind = "ReferenceError"


class HostSyntaxError(HostError):
    kind = "SyntaxError"


_MISSING: Any = object()


@dataclass(frozen=True)
class PropertyDescriptor:
    value: Any = None
    writable: bool = False
    get: "HostFunction | None" = None
    set: "HostFunction | None" = None
    enumerable: bool = False
    configurable: bool = False
    accessor: bool = False

    @classmethod
    def data(
        cls,
        value: Any,
        *,
        writable: bool = True,
        enumerable: bool = False,
        configurable: bool = True,
    ) -> "PropertyDescriptor":
        return cls(value=value, writable=writable, enumerable=enumerable, configurable=configurable)

    @classmethod
    def accessor_pair(
        cls,
        get: "HostFunction | None" = None,
        set: "HostFunction | None" = None,
        *,
        enumerable: bool = False,
        configurable: bool = True,
    ) -> "PropertyDescriptor":
        return cls(get=get, set=set, enumerable=enumerable, configurable=configurable, accessor=True)

    @property
    def is_data(self) -> bool:
        return not self.accessor

    @property
    def is_hard(self) -> bool:
        """True when the slot can no longer change."""
        if self.configurable:
            return False
        return self.accessor or not self.writable

    def values(self) -> Iterator[Any]:
        """Values reachable through this slot without invoking anything."""
        if self.accessor:
            if self.get is not None:
                yield self.get
            if self.set is not None:
                yield self.set
        else:
            yield self.value


class HostObject:
    def __init__(
        self,
        proto: "HostObject | None" = None,
        *,
        name: str = "",
        exotic: bool = False,
    ) -> None:
        self.proto = proto
        self.name = name
        self.exotic = exotic
        self.extensible = True
        self._props: dict[str, PropertyDescriptor] = {}

    def __repr__(self) -> str:
        label = self.name or "anonymous"
        return f"<{type(self).__name__} {label}>"

    # -- own properties -------------------------------------------------

    def own_keys(self) -> list[str]:
        return list(self._props)

    def get_own_property(self, name: str) -> PropertyDescriptor | None:
        return self._props.get(name)

    def has_own(self, name: str) -> bool:
        return name in self._props

    def define_property(self, name: str, desc: PropertyDescriptor) -> None:
        if self.exotic:
            raise HostTypeError(f"Cannot redefine property {name!r} of exotic object {self.name!r}")

        current = self._props.get(name)
        if current is None:
            if not self.extensible:
                raise HostTypeError(f"Cannot define property {name!r}, object is not extensible")
            self._props[name] = desc
            return

        if not current.configurable and not _compatible(current, desc):
            raise HostTypeError(f"Cannot redefine non-configurable property {name!r}")
        self._props[name] = desc

    def set_own(self, name: str, value: Any, **attrs: bool) -> None:
        """Convenience used when building hosts: define a data property."""
        self.define_property(name, PropertyDescriptor.data(value, **attrs))

    def delete(self, name: str) -> bool:
        current = self._props.get(name)
        if current is None:
            return True
        if self.exotic or not current.configurable:
            return False
        del self._props[name]
        return True

    # -- integrity ------------------------------------------------------

    def prevent_extensions(self) -> None:
        if self.exotic:
            raise HostTypeError(f"Cannot prevent extensions of exotic object {self.name!r}")
        self.extensible = False

    def freeze(self) -> None:
        for name, desc in list(self._props.items()):
            if desc.is_hard:
                continue
            if desc.accessor:
                self.define_property(name, replace(desc, configurable=False))
            else:
                self.define_property(name, replace(desc, configurable=False, writable=False))
        self.prevent_extensions()

    def is_frozen(self) -> bool:
        return not self.extensible and all(desc.is_hard for desc in self._props.values())

    # -- lookup ---------------------------------------------------------

    def lookup(self, name: str) -> tuple["HostObject", PropertyDescriptor] | None:
        """Find the nearest object in the delegation chain owning `name`."""
        base: HostObject | None = self
        while base is not None:
            desc = base._props.get(name)
            if desc is not None:
                return base, desc
            base = base.proto
        return None

    def get(self, name: str, receiver: Any = _MISSING) -> Any:
        found = self.lookup(name)
        if found is None:
            return None
        _, desc = found
        if not desc.accessor:
            return desc.value
        if desc.get is None:
            return None
        return desc.get.call(self if receiver is _MISSING else receiver, ())

    def put(self, name: str, value: Any) -> None:
        """Strict-mode assignment: failures raise HostTypeError."""
        found = self.lookup(name)
        if found is not None:
            owner, desc = found
            if desc.accessor:
                if desc.set is None:
                    raise HostTypeError(f"Cannot set property {name!r} which has only a getter")
                desc.set.call(self, (value,))
                return
            if not desc.writable:
                raise HostTypeError(f"Cannot assign to read only property {name!r}")
            if owner is self:
                self.define_property(name, replace(desc, value=value))
                return

        if not self.extensible:
            raise HostTypeError(f"Cannot add property {name!r}, object is not extensible")
        self.define_property(name, PropertyDescriptor.data(value, enumerable=True))


class HostFunction(HostObject):
    """A callable host object wrapping `impl(this, *args)`."""

    def __init__(
        self,
        impl: Callable[..., Any],
        proto: HostObject | None = None,
        *,
        name: str = "",
        exotic: bool = False,
    ) -> None:
        super().__init__(proto, name=name, exotic=exotic)
        self.impl = impl

    def call(self, this: Any, args: tuple[Any, ...] | list[Any], kwargs: dict[str, Any] | None = None) -> Any:
        return self.impl(this, *args, **(kwargs or {}))


def _compatible(current: PropertyDescriptor, desc: PropertyDescriptor) -> bool:
    """ES5 rules for redefining a non-configurable property."""
    if desc.configurable or desc.enumerable != current.enumerable:
        return False
    if current.accessor != desc.accessor:
        return False
    if current.accessor:
        return desc.get is current.get and desc.set is current.set
    if current.writable:
        return True
    return not desc.writable and desc.value is current.value


class Poison(HostFunction):
    """Getter/setter installed on a property that could not be deleted."""

    def __init__(self, path: str, proto: HostObject | None = None) -> None:
        def throw(this: Any, *args: Any) -> Any:
            raise HostTypeError(f"Cannot access property {path}")

        super().__init__(throw, proto, name=f"poison:{path}")
        self.path = path
        self.freeze()


def is_poisoned(desc: PropertyDescriptor) -> bool:
    return desc.accessor and isinstance(desc.get, Poison)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset, MutableSequence))


def contained_objects(value: Any, path: str = "") -> Iterator[tuple[HostObject, str]]:
    """Host objects held by `value`, directly or inside plain containers."""
    seen: set[int] = set()
    pending: list[tuple[Any, str]] = [(value, path)]
    while pending:
        item, item_path = pending.pop()
        if isinstance(item, HostObject):
            yield item, item_path
            continue
        if id(item) in seen:
            continue
        if isinstance(item, Mapping):
            seen.add(id(item))
            pending.extend((v, f"{item_path}[{k!r}]") for k, v in reversed(list(item.items())))
        elif _is_sequence(item):
            seen.add(id(item))
            pending.extend((v, f"{item_path}[{i}]") for i, v in reversed(list(enumerate(item))))


def freeze_value(value: Any, _active: frozenset[int] = frozenset()) -> Any:
    """
    Return an immutable equivalent of a plain container value.

    Lists become tuples, sets become frozensets and mappings become read-only
    proxies over a private copy. Values that are already immutable come back
    unchanged, so freezing twice yields the same object. Host objects are left
    alone; they are frozen through the object model. Raises HostTypeError for
    a container that contains itself.
    """
    if isinstance(value, HostObject) or not (isinstance(value, Mapping) or _is_sequence(value)):
        return value
    if id(value) in _active:
        raise HostTypeError("Cannot freeze a container that contains itself")
    active = _active | {id(value)}

    if isinstance(value, Mapping):
        items = {k: freeze_value(v, active) for k, v in value.items()}
        if isinstance(value, MappingProxyType) and all(items[k] is v for k, v in value.items()):
            return value
        return MappingProxyType(items)

    elements = [freeze_value(v, active) for v in value]
    if isinstance(value, frozenset):
        if all(a is b for a, b in zip(elements, value)):
            return value
        return frozenset(elements)
    if isinstance(value, set):
        return frozenset(elements)
    if isinstance(value, tuple) and all(a is b for a, b in zip(elements, value)):
        return value
    return tuple(elements)


def reachable(root: HostObject) -> Iterator[HostObject]:
    """Yield every object reachable from `root` exactly once (work-list, no recursion)."""
    seen: set[int] = set()
    stack: list[HostObject] = [root]
    while stack:
        obj = stack.pop()
        if id(obj) in seen:
            continue
        seen.add(id(obj))
        yield obj
        for name in reversed(obj.own_keys()):
            desc = obj.get_own_property(name)
            if desc is None:
                continue
            for value in desc.values():
                for child, _ in contained_objects(value):
                    if id(child) not in seen:
                        stack.append(child)
        if obj.proto is not None and id(obj.proto) not in seen:
            stack.append(obj.proto)


def _freeze_containers(obj: HostObject) -> None:
    for name in obj.own_keys():
        desc = obj.get_own_property(name)
        if desc is None or desc.accessor:
            continue
        frozen = freeze_value(desc.value)
        if frozen is not desc.value:
            obj.define_property(name, replace(desc, value=frozen))


def harden(root: HostObject) -> list[HostObject]:
    """
    Deep-freeze everything reachable from `root`, including plain containers
    held in data properties.

    Returns the objects that refused to freeze (exotic host objects, or slots
    holding a container that could not be replaced).
    """
    refused: list[HostObject] = []
    for obj in list(reachable(root)):
        try:
            _freeze_containers(obj)
            obj.freeze()
        except HostTypeError:
            refused.append(obj)
    return refused
