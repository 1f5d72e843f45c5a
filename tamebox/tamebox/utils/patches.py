"""
Repairs for the known defects of hosts built by `tamebox.utils.primordials`.

Every patch pairs a detector with a repair. The engine runs detectors before
and after each repair, so a repair only has to attempt the fix; whether it
worked is decided by detecting again.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from tamebox.runtime.graph import HostFunction, HostObject, PropertyDescriptor
from tamebox.runtime.severity import Severity


@dataclass(frozen=True)
class PatchSpec:
    name: str
    detect: Callable[[HostObject], bool]
    repair: Callable[[HostObject], None]
    severity: Severity
    region: str = ""
    description: str = ""


def _path(root: HostObject, *names: str) -> HostObject:
    """Follow own data properties; raises LookupError when the path is broken."""
    obj = root
    for name in names:
        desc = obj.get_own_property(name)
        if desc is None or desc.accessor or not isinstance(desc.value, HostObject):
            raise LookupError(f"Missing primordial: {'.'.join(names)}")
        obj = desc.value
    return obj


def _throw_type_error(root: HostObject) -> HostFunction:
    fn = _path(root, "vm", "anonIntrinsics", "ThrowTypeError")
    if not isinstance(fn, HostFunction):
        raise LookupError("%ThrowTypeError% is not a function")
    return fn


# -- %ThrowTypeError% must be frozen ------------------------------------


def detect_extensible_throw_type_error(root: HostObject) -> bool:
    return not _throw_type_error(root).is_frozen()


def freeze_throw_type_error(root: HostObject) -> None:
    _throw_type_error(root).freeze()


# -- Function.prototype.caller/arguments --------------------------------

_RESTRICTED = ("caller", "arguments")


def detect_leaky_function_restrictions(root: HostObject) -> bool:
    proto = _path(root, "Function", "prototype")
    for name in _RESTRICTED:
        desc = proto.get_own_property(name)
        if desc is not None and not (desc.accessor and desc.get is _throw_type_error(root)):
            return True
    return False


def poison_function_restrictions(root: HostObject) -> None:
    proto = _path(root, "Function", "prototype")
    thrower = _throw_type_error(root)
    for name in _RESTRICTED:
        if proto.has_own(name):
            proto.define_property(name, PropertyDescriptor.accessor_pair(thrower, thrower, configurable=False))


# -- Object.freeze must freeze -------------------------------------------


def _freeze_function(root: HostObject) -> HostFunction:
    fn = _path(root, "Object").get_own_property("freeze")
    if fn is None or fn.accessor or not isinstance(fn.value, HostFunction):
        raise LookupError("Object.freeze is not a function")
    return fn.value


def detect_noop_freeze(root: HostObject) -> bool:
    sample = HostObject(None, name="sample")
    sample.set_own("x", 1)
    _freeze_function(root).call(None, (sample,))
    return not sample.is_frozen()


def replace_freeze(root: HostObject) -> None:
    ctor = _path(root, "Object")
    broken = _freeze_function(root)

    def freeze(this, obj=None):
        if isinstance(obj, HostObject):
            obj.freeze()
        return obj

    fixed = HostFunction(freeze, broken.proto, name="Object.freeze")
    for name in ("length", "name"):
        desc = broken.get_own_property(name)
        if desc is not None:
            fixed.define_property(name, desc)
    ctor.define_property("freeze", PropertyDescriptor.data(fixed))


DEFAULT_PATCHES = [
    PatchSpec(
        "THROW_TYPE_ERROR_EXTENSIBLE",
        detect_extensible_throw_type_error,
        freeze_throw_type_error,
        Severity.SAFE_SPEC_VIOLATION,
        region="anonIntrinsics",
        description="%ThrowTypeError% is not frozen",
    ),
    PatchSpec(
        "FUNCTION_PROTOTYPE_CALLER_LEAKS",
        detect_leaky_function_restrictions,
        poison_function_restrictions,
        Severity.SAFE_SPEC_VIOLATION,
        region="Function.prototype",
        description="Function.prototype.caller/arguments are readable data properties",
    ),
    PatchSpec(
        "OBJECT_FREEZE_IS_NOOP",
        detect_noop_freeze,
        replace_freeze,
        Severity.UNSAFE_SPEC_VIOLATION,
        region="Object",
        description="Object.freeze leaves its argument mutable",
    ),
]
