"""
Default host runtime: a freshly built, untamed global namespace.

The builder mirrors what a live host hands over before hardening: standard
constructors and prototypes, optionally a few non-standard extensions that the
policy does not know about, and optionally the defects the default repair
catalog addresses.
"""

from __future__ import annotations

import json
import logging
import math
import os
import random
from typing import Any, Callable

from tamebox.runtime.graph import (
    HostFunction,
    HostObject,
    HostRangeError,
    HostSyntaxError,
    HostTypeError,
    PropertyDescriptor,
    harden,
)
from tamebox.runtime.realm import RunnerFunction

vm_logger = logging.getLogger("tamebox.vm")

MAX_SAFE_INTEGER = 2**53 - 1


class _Builder:
    def __init__(self) -> None:
        self.object_prototype = HostObject(None, name="Object.prototype")
        self.function_prototype = HostFunction(lambda this, *args: None, self.object_prototype, name="Function.prototype")

    def fn(self, name: str, impl: Callable[..., Any], length: int = 0) -> HostFunction:
        func = HostFunction(impl, self.function_prototype, name=name)
        return self._label(func, name, length)

    def runner_fn(self, operation: str, length: int) -> RunnerFunction:
        return self._label(RunnerFunction(operation, self.function_prototype), operation, length)

    def _label(self, func: HostFunction, name: str, length: int) -> Any:
        func.set_own("length", length, writable=False)
        func.set_own("name", name.rsplit(".", 1)[-1], writable=False)
        return func

    def methods(self, target: HostObject, prefix: str, table: dict[str, tuple[Callable[..., Any], int]]) -> None:
        for key, (impl, length) in table.items():
            target.set_own(key, self.fn(f"{prefix}.{key}" if prefix else key, impl, length))

    def constructor(self, name: str, impl: Callable[..., Any], prototype: HostObject, length: int = 1) -> HostFunction:
        ctor = self.fn(name, impl, length)
        ctor.set_own("prototype", prototype, writable=False, configurable=False)
        prototype.set_own("constructor", ctor)
        return ctor


def to_string(value: Any) -> str:
    if isinstance(value, HostFunction):
        return f"function {value.get_own_property('name').value if value.has_own('name') else ''}() {{ [native code] }}"
    if isinstance(value, HostObject):
        return "[object Object]"
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "undefined"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(to_string(v) for v in value)
    return str(value)


def to_number(value: Any) -> float | int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if value is None:
        return math.nan
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            return int(text)
        except ValueError:
            try:
                return float(text)
            except ValueError:
                return math.nan
    return math.nan


def same_value(this: Any, a: Any = None, b: Any = None) -> bool:
    if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
        return True
    if isinstance(a, HostObject) or isinstance(b, HostObject):
        return a is b
    return type(a) is type(b) and a == b


def _require_list(this: Any, method: str) -> list:
    if not isinstance(this, list):
        raise HostTypeError(f"Array.prototype.{method} called on a non-array")
    return this


def _require_str(this: Any, method: str) -> str:
    if not isinstance(this, str):
        raise HostTypeError(f"String.prototype.{method} called on a non-string")
    return this


def _apply(fn: Any, this: Any, args: tuple) -> Any:
    if isinstance(fn, HostFunction):
        return fn.call(this, args)
    raise HostTypeError(f"{to_string(fn)} is not a function")


def _to_plain(value: Any, seen: set[int] | None = None) -> Any:
    seen = seen if seen is not None else set()
    if isinstance(value, HostFunction):
        return None
    if isinstance(value, HostObject):
        if id(value) in seen:
            raise HostTypeError("Converting circular structure to JSON")
        seen = seen | {id(value)}
        out = {}
        for key in value.own_keys():
            desc = value.get_own_property(key)
            if desc is not None and desc.enumerable and not desc.accessor:
                out[key] = _to_plain(desc.value, seen)
        return out
    if isinstance(value, (list, tuple)):
        return [_to_plain(v, seen) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    raise HostTypeError(f"Cannot serialize {type(value).__name__}")


def build_host_runtime(*, extensions: bool = True, defects: bool = True) -> HostObject:
    """
    Build a fresh, mutable global object.

    `extensions` adds non-standard globals and methods the default policy
    does not list; `defects` plants the problems `tamebox.utils.patches`
    repairs.
    """
    b = _Builder()
    op = b.object_prototype
    fp = b.function_prototype
    g = HostObject(None, name="global")

    def from_plain(value: Any) -> Any:
        if isinstance(value, dict):
            record = HostObject(op)
            for key, item in value.items():
                record.define_property(key, PropertyDescriptor.data(from_plain(item), enumerable=True))
            return record
        if isinstance(value, list):
            return [from_plain(v) for v in value]
        return value

    # -- Object ---------------------------------------------------------

    def object_create(this, proto=None):
        if proto is not None and not isinstance(proto, HostObject):
            raise HostTypeError("Object prototype may only be an Object or None")
        return HostObject(proto)

    def object_keys(this, obj):
        if not isinstance(obj, HostObject):
            raise HostTypeError("Object.keys called on non-object")
        return [k for k in obj.own_keys() if obj.get_own_property(k).enumerable]

    def object_freeze(this, obj):
        if isinstance(obj, HostObject):
            obj.freeze()
        return obj

    def object_define_property(this, obj, name, attributes):
        if not isinstance(obj, HostObject) or not isinstance(attributes, HostObject):
            raise HostTypeError("Object.defineProperty called on non-object")
        desc = PropertyDescriptor.data(
            attributes.get("value"),
            writable=bool(attributes.get("writable")),
            enumerable=bool(attributes.get("enumerable")),
            configurable=bool(attributes.get("configurable")),
        )
        obj.define_property(to_string(name), desc)
        return obj

    object_ctor = b.constructor(
        "Object",
        lambda this, value=None: value if isinstance(value, HostObject) else HostObject(op),
        op,
    )
    b.methods(object_ctor, "Object", {
        "create": (object_create, 2),
        "keys": (object_keys, 1),
        "freeze": (object_freeze, 1),
        "isFrozen": (lambda this, obj: obj.is_frozen() if isinstance(obj, HostObject) else True, 1),
        "isExtensible": (lambda this, obj: obj.extensible if isinstance(obj, HostObject) else False, 1),
        "getPrototypeOf": (lambda this, obj: obj.proto if isinstance(obj, HostObject) else None, 1),
        "defineProperty": (object_define_property, 3),
        "is": (same_value, 2),
    })

    def has_own_property(this, name):
        if isinstance(this, HostObject):
            return this.has_own(to_string(name))
        return name == "length" and isinstance(this, (str, list, tuple))

    def is_prototype_of(this, obj):
        base = obj.proto if isinstance(obj, HostObject) else None
        while base is not None:
            if base is this:
                return True
            base = base.proto
        return False

    b.methods(op, "Object.prototype", {
        "hasOwnProperty": (has_own_property, 1),
        "isPrototypeOf": (is_prototype_of, 1),
        "propertyIsEnumerable": (
            lambda this, name: isinstance(this, HostObject) and this.has_own(name) and this.get_own_property(name).enumerable,
            1,
        ),
        "toString": (lambda this: "[object Object]" if isinstance(this, HostObject) else to_string(this), 0),
        "valueOf": (lambda this: this, 0),
    })

    # -- Function -------------------------------------------------------

    def function_call(this, this_arg=None, *args):
        return _apply(this, this_arg, args)

    def function_apply(this, this_arg=None, args=None):
        return _apply(this, this_arg, tuple(args or ()))

    def function_bind(this, this_arg=None, *bound):
        if not isinstance(this, HostFunction):
            raise HostTypeError("Bind must be called on a function")
        target = this
        return b.fn(f"bound {target.name}", lambda _this, *args: _apply(target, this_arg, bound + args))

    def function_ctor(this, *args):
        raise HostTypeError("Function constructor is not available")

    fp.set_own("length", 0, writable=False)
    fp.set_own("name", "", writable=False)
    b.constructor("Function", function_ctor, fp)
    b.methods(fp, "Function.prototype", {
        "call": (function_call, 1),
        "apply": (function_apply, 2),
        "bind": (function_bind, 1),
        "toString": (lambda this: to_string(this), 0),
    })

    # -- Array ----------------------------------------------------------

    ap = HostObject(op, name="Array.prototype")
    array_ctor = b.constructor("Array", lambda this, *items: list(items), ap)
    b.methods(array_ctor, "Array", {
        "isArray": (lambda this, value=None: isinstance(value, list), 1),
        "of": (lambda this, *items: list(items), 0),
        "from": (lambda this, items=(): list(items) if isinstance(items, (list, tuple, str)) else [], 1),
    })

    def array_push(this, *items):
        target = _require_list(this, "push")
        target.extend(items)
        return len(target)

    def array_pop(this):
        target = _require_list(this, "pop")
        return target.pop() if target else None

    def array_index_of(this, item=None):
        items = this if isinstance(this, (list, tuple)) else _require_list(this, "indexOf")
        for i, value in enumerate(items):
            if value is item or (type(value) is type(item) and value == item):
                return i
        return -1

    def array_map(this, fn):
        items = this if isinstance(this, (list, tuple)) else _require_list(this, "map")
        return [_apply(fn, None, (value, i)) for i, value in enumerate(items)]

    def array_filter(this, fn):
        items = this if isinstance(this, (list, tuple)) else _require_list(this, "filter")
        return [value for i, value in enumerate(items) if _apply(fn, None, (value, i))]

    ap.set_own("length", 0)
    b.methods(ap, "Array.prototype", {
        "push": (array_push, 1),
        "pop": (array_pop, 0),
        "indexOf": (array_index_of, 1),
        "includes": (lambda this, item=None: array_index_of(this, item) >= 0, 1),
        "join": (lambda this, sep=",": to_string(sep).join(to_string(v) for v in this), 1),
        "concat": (lambda this, *others: list(this) + [x for o in others for x in (o if isinstance(o, (list, tuple)) else [o])], 1),
        "slice": (lambda this, start=0, end=None: list(this)[start:end], 2),
        "reverse": (lambda this: _require_list(this, "reverse").reverse() or this, 0),
        "map": (array_map, 1),
        "filter": (array_filter, 1),
    })

    # -- String ---------------------------------------------------------

    sp = HostObject(op, name="String.prototype")
    string_ctor = b.constructor("String", lambda this, value="": to_string(value), sp)
    b.methods(string_ctor, "String", {
        "fromCharCode": (lambda this, *codes: "".join(chr(int(c)) for c in codes), 1),
    })

    def string_repeat(this, count=0):
        text = _require_str(this, "repeat")
        if not isinstance(count, int) or count < 0:
            raise HostRangeError(f"Invalid count value: {count}")
        return text * count

    def string_char_at(this, index=0):
        text = _require_str(this, "charAt")
        if not isinstance(index, int) or not 0 <= index < len(text):
            return ""
        return text[index]

    def string_split(this, sep=None):
        text = _require_str(this, "split")
        if sep is None:
            return [text]
        if sep == "":
            return list(text)
        return text.split(to_string(sep))

    sp.set_own("length", 0)
    b.methods(sp, "String.prototype", {
        "toUpperCase": (lambda this: _require_str(this, "toUpperCase").upper(), 0),
        "toLowerCase": (lambda this: _require_str(this, "toLowerCase").lower(), 0),
        "trim": (lambda this: _require_str(this, "trim").strip(), 0),
        "indexOf": (lambda this, sub="": _require_str(this, "indexOf").find(to_string(sub)), 1),
        "includes": (lambda this, sub="": to_string(sub) in _require_str(this, "includes"), 1),
        "startsWith": (lambda this, sub="": _require_str(this, "startsWith").startswith(to_string(sub)), 1),
        "endsWith": (lambda this, sub="": _require_str(this, "endsWith").endswith(to_string(sub)), 1),
        "charAt": (string_char_at, 1),
        "slice": (lambda this, start=0, end=None: _require_str(this, "slice")[start:end], 2),
        "split": (string_split, 2),
        "repeat": (string_repeat, 1),
        "concat": (lambda this, *parts: _require_str(this, "concat") + "".join(to_string(p) for p in parts), 1),
        "toString": (lambda this: _require_str(this, "toString"), 0),
    })

    # -- Number / Boolean -------------------------------------------------

    np_ = HostObject(op, name="Number.prototype")
    number_ctor = b.constructor("Number", lambda this, value=0: to_number(value), np_)

    def parse_int(this, text="", radix=10):
        try:
            return int(to_string(text).strip(), int(radix))
        except ValueError:
            return math.nan

    def parse_float(this, text=""):
        value = to_number(to_string(text))
        return float(value)

    def is_finite(this, value=None):
        number = to_number(value)
        return not (math.isnan(number) or math.isinf(number))

    def is_nan(this, value=None):
        number = to_number(value)
        return isinstance(number, float) and math.isnan(number)

    b.methods(number_ctor, "Number", {
        "isInteger": (lambda this, v=None: isinstance(v, int) and not isinstance(v, bool) or (isinstance(v, float) and v.is_integer()), 1),
        "isFinite": (lambda this, v=None: isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v), 1),
        "isNaN": (lambda this, v=None: isinstance(v, float) and math.isnan(v), 1),
        "parseInt": (parse_int, 2),
        "parseFloat": (parse_float, 1),
    })
    number_ctor.set_own("MAX_SAFE_INTEGER", MAX_SAFE_INTEGER, writable=False, configurable=False)
    number_ctor.set_own("EPSILON", 2.0**-52, writable=False, configurable=False)

    def to_fixed(this, digits=0):
        if not isinstance(digits, int) or not 0 <= digits <= 100:
            raise HostRangeError("toFixed() digits argument must be between 0 and 100")
        return f"{to_number(this):.{digits}f}"

    b.methods(np_, "Number.prototype", {
        "toFixed": (to_fixed, 1),
        "toString": (lambda this: to_string(this), 0),
    })

    bp = HostObject(op, name="Boolean.prototype")
    b.constructor("Boolean", lambda this, value=None: bool(value) if not isinstance(value, HostObject) else True, bp)
    b.methods(bp, "Boolean.prototype", {
        "toString": (lambda this: to_string(this), 0),
    })

    # -- Math -----------------------------------------------------------

    math_obj = HostObject(op, name="Math")
    b.methods(math_obj, "Math", {
        "abs": (lambda this, x=None: abs(to_number(x)), 1),
        "floor": (lambda this, x=None: math.floor(to_number(x)), 1),
        "ceil": (lambda this, x=None: math.ceil(to_number(x)), 1),
        "round": (lambda this, x=None: math.floor(to_number(x) + 0.5), 1),
        "trunc": (lambda this, x=None: math.trunc(to_number(x)), 1),
        "sign": (lambda this, x=None: (to_number(x) > 0) - (to_number(x) < 0), 1),
        "sqrt": (lambda this, x=None: math.sqrt(to_number(x)) if to_number(x) >= 0 else math.nan, 1),
        "pow": (lambda this, x=None, y=None: math.pow(to_number(x), to_number(y)), 2),
        "max": (lambda this, *xs: max((to_number(x) for x in xs), default=-math.inf), 2),
        "min": (lambda this, *xs: min((to_number(x) for x in xs), default=math.inf), 2),
        "hypot": (lambda this, *xs: math.hypot(*(to_number(x) for x in xs)), 2),
        "random": (lambda this: random.random(), 0),
    })
    math_obj.set_own("PI", math.pi, writable=False, configurable=False)
    math_obj.set_own("E", math.e, writable=False, configurable=False)

    # -- JSON -----------------------------------------------------------

    def json_parse(this, text=""):
        try:
            return from_plain(json.loads(to_string(text)))
        except json.JSONDecodeError as exc:
            raise HostSyntaxError(f"JSON.parse: {exc}") from None

    json_obj = HostObject(op, name="JSON")
    b.methods(json_obj, "JSON", {
        "parse": (json_parse, 2),
        "stringify": (lambda this, value=None: json.dumps(_to_plain(value), separators=(",", ":")), 3),
    })

    # -- Errors ---------------------------------------------------------

    ep = HostObject(op, name="Error.prototype")
    ep.set_own("name", "Error")
    ep.set_own("message", "")

    def error_ctor_for(proto: HostObject):
        def make(this, message=""):
            err = HostObject(proto)
            err.set_own("message", to_string(message))
            return err

        return make

    b.constructor("Error", error_ctor_for(ep), ep)
    error_types = {}
    for kind in ("TypeError", "RangeError", "ReferenceError", "SyntaxError"):
        proto = HostObject(ep, name=f"{kind}.prototype")
        proto.set_own("name", kind)
        error_types[kind] = b.constructor(kind, error_ctor_for(proto), proto)

    # -- vm: intrinsics and confinement helpers ---------------------------

    def throw_type_error(this, *args):
        raise HostTypeError("Restricted property")

    throw_type_error_fn = b.fn("ThrowTypeError", throw_type_error)
    throw_type_error_fn.freeze()

    iterator_proto = HostObject(op, name="IteratorPrototype")
    iterator_proto.set_own("next", b.fn("IteratorPrototype.next", lambda this: None))
    iterator_proto.set_own("constructor", object_ctor)
    array_iterator_proto = HostObject(iterator_proto, name="ArrayIteratorPrototype")
    array_iterator_proto.set_own("next", b.fn("ArrayIteratorPrototype.next", lambda this: None))

    anon = HostObject(op, name="anonIntrinsics")
    anon.set_own("ThrowTypeError", throw_type_error_fn)
    anon.set_own("IteratorPrototype", iterator_proto)
    anon.set_own("ArrayIteratorPrototype", array_iterator_proto)

    def vm_log(this, *args):
        vm_logger.info("%s", " ".join(to_string(a) for a in args))
        return None

    def vm_def(this, value=None):
        if isinstance(value, HostObject):
            refused = harden(value)
            if refused:
                raise HostTypeError(f"Cannot harden {len(refused)} exotic object(s)")
        return value

    def vm_nat(this, value=None):
        if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= MAX_SAFE_INTEGER:
            raise HostRangeError(f"{to_string(value)} is not a natural number")
        return value

    vm = HostObject(op, name="vm")
    vm.set_own("anonIntrinsics", anon)
    b.methods(vm, "vm", {
        "log": (vm_log, 1),
        "def": (vm_def, 1),
        "Nat": (vm_nat, 1),
    })
    vm.set_own("is", object_ctor.get_own_property("is").value)
    for operation, length in (("confine", 2), ("compileExpr", 1), ("makeImports", 0), ("copyToImports", 2)):
        vm.set_own(operation, b.runner_fn(operation, length))

    # -- global namespace -----------------------------------------------

    g.set_own("Infinity", math.inf, writable=False, configurable=False)
    g.set_own("NaN", math.nan, writable=False, configurable=False)
    g.set_own("undefined", None, writable=False, configurable=False)
    b.methods(g, "", {
        "isFinite": (is_finite, 1),
        "isNaN": (is_nan, 1),
        "parseInt": (parse_int, 2),
        "parseFloat": (parse_float, 1),
    })
    g.set_own("Object", object_ctor)
    g.set_own("Function", fp.get_own_property("constructor").value)
    g.set_own("Array", array_ctor)
    g.set_own("String", string_ctor)
    g.set_own("Number", number_ctor)
    g.set_own("Boolean", bp.get_own_property("constructor").value)
    g.set_own("Math", math_obj)
    g.set_own("JSON", json_obj)
    g.set_own("Error", ep.get_own_property("constructor").value)
    for kind, ctor in error_types.items():
        g.set_own(kind, ctor)
    g.set_own("vm", vm)

    if extensions:
        _add_extensions(b, g, ap, sp)
    if defects:
        _add_defects(b, g, object_ctor, fp, throw_type_error_fn)

    return g


def _add_extensions(b: _Builder, g: HostObject, ap: HostObject, sp: HostObject) -> None:
    """Ambient authority and non-standard methods a host might expose."""
    host_os = HostObject(b.object_prototype, name="os")
    b.methods(host_os, "os", {
        "getenv": (lambda this, name="", default=None: os.getenv(to_string(name), default), 1),
        "getcwd": (lambda this: os.getcwd(), 0),
    })
    g.set_own("os", host_os)
    g.set_own("globalThis", g)
    ap.set_own("flatten", b.fn("Array.prototype.flatten", lambda this: [x for v in this for x in (v if isinstance(v, list) else [v])]))
    sp.set_own("toSource", b.fn("String.prototype.toSource", lambda this: repr(this)))


def _add_defects(
    b: _Builder,
    g: HostObject,
    object_ctor: HostFunction,
    fp: HostFunction,
    throw_type_error_fn: HostFunction,
) -> None:
    """Plant the defects the default repair catalog knows how to neutralize."""
    # Function.prototype.caller/arguments expose the global object.
    fp.set_own("caller", g)
    fp.set_own("arguments", g)

    # Object.freeze silently does nothing.
    object_ctor.set_own("freeze", b.fn("Object.freeze", lambda this, obj=None: obj, 1))

    # %ThrowTypeError% is shared by every realm yet stays extensible.
    throw_type_error_fn.extensible = True


