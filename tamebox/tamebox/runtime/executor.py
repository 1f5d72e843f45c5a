from __future__ import annotations

import ast
import operator
from collections.abc import Mapping, MutableMapping
from typing import TYPE_CHECKING, Any, Callable

from tamebox.runtime.graph import (
    HostError,
    HostFunction,
    HostObject,
    HostRangeError,
    HostTypeError,
    PropertyDescriptor,
)

if TYPE_CHECKING:
    from tamebox.runtime.realm import Realm


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


_BINARY_OPS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.LShift: operator.lshift,
    ast.RShift: operator.rshift,
    ast.BitOr: operator.or_,
    ast.BitXor: operator.xor,
    ast.BitAnd: operator.and_,
}

_UNARY_OPS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Invert: operator.invert,
    ast.Not: operator.not_,
}

_COMPARE_OPS: dict[type[ast.cmpop], Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_PRIMITIVES = (str, int, float, bool, type(None))


def _type_name(value: Any) -> str:
    if value is None:
        return "None"
    if isinstance(value, HostFunction):
        return "function"
    if isinstance(value, HostObject):
        return "object"
    return type(value).__name__


def _check_operand(value: Any, op: str) -> None:
    if isinstance(value, HostObject):
        raise HostTypeError(f"Unsupported operand for {op}: {_type_name(value)}")


class Interpreter:
    """
    Evaluate a validated module inside one realm.

    The interpreter never touches a Python attribute of a value. Property
    reads and writes go through the host object model; primitives borrow the
    realm's primordial prototypes.
    """

    def __init__(self, realm: "Realm") -> None:
        self.realm = realm
        self.lineno: int | None = None
        self.completion: Any = None

    def run(self, module: ast.Module) -> Any:
        try:
            self._run_block(module.body)
        except (_Break, _Continue) as exc:
            raise HostTypeError(f"'{type(exc).__name__[1:].lower()}' outside loop") from None
        return self.completion

    # -- statements -----------------------------------------------------

    def _run_block(self, body: list[ast.stmt]) -> None:
        for stmt in body:
            self._exec(stmt)

    def _exec(self, stmt: ast.stmt) -> None:
        self.lineno = getattr(stmt, "lineno", self.lineno)

        if isinstance(stmt, ast.Expr):
            self.completion = self._eval(stmt.value)

        elif isinstance(stmt, ast.Assign):
            value = self._eval(stmt.value)
            for target in stmt.targets:
                self._assign(target, value)

        elif isinstance(stmt, ast.AugAssign):
            self._augment(stmt)

        elif isinstance(stmt, ast.If):
            if self._truthy(self._eval(stmt.test)):
                self._run_block(stmt.body)
            else:
                self._run_block(stmt.orelse)

        elif isinstance(stmt, ast.While):
            while self._truthy(self._eval(stmt.test)):
                try:
                    self._run_block(stmt.body)
                except _Break:
                    break
                except _Continue:
                    continue

        elif isinstance(stmt, ast.For):
            iterable = self._iterable(self._eval(stmt.iter))
            for item in iterable:
                self._assign(stmt.target, item)
                try:
                    self._run_block(stmt.body)
                except _Break:
                    break
                except _Continue:
                    continue

        elif isinstance(stmt, ast.Break):
            raise _Break()

        elif isinstance(stmt, ast.Continue):
            raise _Continue()

        elif isinstance(stmt, ast.Pass):
            pass

        else:
            raise HostTypeError(f"Unsupported statement: {type(stmt).__name__}")

    def _augment(self, stmt: ast.AugAssign) -> None:
        target = stmt.target
        if isinstance(target, ast.Name):
            current = self.realm.lookup(target.id)
            self.realm.assign(target.id, self._binary(stmt.op, current, self._eval(stmt.value)))
        elif isinstance(target, ast.Attribute):
            obj = self._eval(target.value)
            current = self.get_property(obj, target.attr)
            self.set_property(obj, target.attr, self._binary(stmt.op, current, self._eval(stmt.value)))
        elif isinstance(target, ast.Subscript):
            obj = self._eval(target.value)
            key = self._eval(target.slice)
            current = self._get_item(obj, key)
            self._set_item(obj, key, self._binary(stmt.op, current, self._eval(stmt.value)))
        else:
            raise HostTypeError(f"Unsupported assignment target: {type(target).__name__}")

    def _assign(self, target: ast.expr, value: Any) -> None:
        if isinstance(target, ast.Name):
            self.realm.assign(target.id, value)
        elif isinstance(target, ast.Attribute):
            self.set_property(self._eval(target.value), target.attr, value)
        elif isinstance(target, ast.Subscript):
            self._set_item(self._eval(target.value), self._eval(target.slice), value)
        else:
            raise HostTypeError(f"Unsupported assignment target: {type(target).__name__}")

    def _iterable(self, value: Any) -> list[Any]:
        if isinstance(value, (list, tuple, frozenset)):
            return list(value)
        if isinstance(value, str):
            return list(value)
        if isinstance(value, Mapping):
            return list(value.keys())
        if isinstance(value, HostObject):
            keys = []
            for name in value.own_keys():
                desc = value.get_own_property(name)
                if desc is not None and desc.enumerable:
                    keys.append(name)
            return keys
        raise HostTypeError(f"{_type_name(value)} is not iterable")

    # -- expressions ----------------------------------------------------

    def _eval(self, node: ast.expr) -> Any:
        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            return self.realm.lookup(node.id)

        if isinstance(node, ast.Attribute):
            return self.get_property(self._eval(node.value), node.attr)

        if isinstance(node, ast.Subscript):
            return self._get_item(self._eval(node.value), self._eval(node.slice))

        if isinstance(node, ast.Call):
            return self._call(node)

        if isinstance(node, ast.BinOp):
            return self._binary(node.op, self._eval(node.left), self._eval(node.right))

        if isinstance(node, ast.UnaryOp):
            operand = self._eval(node.operand)
            if isinstance(node.op, ast.Not):
                return not self._truthy(operand)
            _check_operand(operand, type(node.op).__name__)
            try:
                return _UNARY_OPS[type(node.op)](operand)
            except TypeError as exc:
                raise HostTypeError(str(exc)) from None

        if isinstance(node, ast.BoolOp):
            value: Any = None
            for operand in node.values:
                value = self._eval(operand)
                truthy = self._truthy(value)
                if isinstance(node.op, ast.And) and not truthy:
                    return value
                if isinstance(node.op, ast.Or) and truthy:
                    return value
            return value

        if isinstance(node, ast.Compare):
            left = self._eval(node.left)
            for op, comparator in zip(node.ops, node.comparators):
                right = self._eval(comparator)
                if not self._compare(op, left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.IfExp):
            if self._truthy(self._eval(node.test)):
                return self._eval(node.body)
            return self._eval(node.orelse)

        if isinstance(node, ast.List):
            return [self._eval(item) for item in node.elts]

        if isinstance(node, ast.Tuple):
            return tuple(self._eval(item) for item in node.elts)

        if isinstance(node, ast.Dict):
            record = self.realm.new_object()
            for key_node, value_node in zip(node.keys, node.values):
                key = self._eval(key_node)
                if not isinstance(key, str):
                    raise HostTypeError(f"Object keys must be strings, got {_type_name(key)}")
                record.define_property(key, PropertyDescriptor.data(self._eval(value_node), enumerable=True))
            return record

        raise HostTypeError(f"Unsupported expression: {type(node).__name__}")

    def _truthy(self, value: Any) -> bool:
        if isinstance(value, HostObject):
            return True
        return bool(value)

    def _binary(self, op: ast.operator, left: Any, right: Any) -> Any:
        fn = _BINARY_OPS.get(type(op))
        if fn is None:
            raise HostTypeError(f"Unsupported operator: {type(op).__name__}")
        _check_operand(left, type(op).__name__)
        _check_operand(right, type(op).__name__)
        try:
            return fn(left, right)
        except ZeroDivisionError as exc:
            raise HostRangeError(str(exc)) from None
        except OverflowError as exc:
            raise HostRangeError(str(exc)) from None
        except TypeError as exc:
            raise HostTypeError(str(exc)) from None

    def _compare(self, op: ast.cmpop, left: Any, right: Any) -> bool:
        if isinstance(op, (ast.In, ast.NotIn)):
            result = self._contains(right, left)
            return result if isinstance(op, ast.In) else not result
        fn = _COMPARE_OPS[type(op)]
        if isinstance(op, (ast.Lt, ast.LtE, ast.Gt, ast.GtE)):
            _check_operand(left, type(op).__name__)
            _check_operand(right, type(op).__name__)
        try:
            return bool(fn(left, right))
        except TypeError as exc:
            raise HostTypeError(str(exc)) from None

    def _contains(self, container: Any, item: Any) -> bool:
        if isinstance(container, HostObject):
            if not isinstance(item, str):
                return False
            return container.lookup(item) is not None
        if isinstance(container, (list, tuple, frozenset, Mapping)):
            return item in container
        if isinstance(container, str):
            if not isinstance(item, str):
                raise HostTypeError("'in <str>' requires a string operand")
            return item in container
        raise HostTypeError(f"argument of type {_type_name(container)} is not iterable")

    # -- properties -----------------------------------------------------

    def get_property(self, target: Any, name: str) -> Any:
        if isinstance(target, HostObject):
            return target.get(name)
        if target is None:
            raise HostTypeError(f"Cannot read property {name!r} of None")
        if name == "length" and isinstance(target, (str, list, tuple)):
            return len(target)
        proto = self.realm.prototype_for(target)
        if proto is None:
            raise HostTypeError(f"Cannot read property {name!r} of {_type_name(target)}")
        return proto.get(name, target)

    def set_property(self, target: Any, name: str, value: Any) -> None:
        if isinstance(target, HostObject):
            target.put(name, value)
            return
        raise HostTypeError(f"Cannot set property {name!r} on {_type_name(target)}")

    def _get_item(self, target: Any, key: Any) -> Any:
        if isinstance(target, HostObject):
            if not isinstance(key, str):
                raise HostTypeError("Object keys must be strings")
            return target.get(key)
        if isinstance(target, (list, tuple, str)):
            if not isinstance(key, int) or isinstance(key, bool):
                raise HostTypeError(f"{_type_name(target)} indices must be integers")
            try:
                return target[key]
            except IndexError:
                raise HostRangeError(f"Index {key} out of range") from None
        if isinstance(target, Mapping):
            return target.get(key)
        raise HostTypeError(f"{_type_name(target)} is not subscriptable")

    def _set_item(self, target: Any, key: Any, value: Any) -> None:
        if isinstance(target, HostObject):
            if not isinstance(key, str):
                raise HostTypeError("Object keys must be strings")
            target.put(key, value)
            return
        if isinstance(target, list):
            if not isinstance(key, int) or isinstance(key, bool):
                raise HostTypeError("list indices must be integers")
            try:
                target[key] = value
            except IndexError:
                raise HostRangeError(f"Index {key} out of range") from None
            return
        if isinstance(target, MutableMapping):
            target[key] = value
            return
        raise HostTypeError(f"{_type_name(target)} does not support item assignment")

    # -- calls ----------------------------------------------------------

    def _call(self, node: ast.Call) -> Any:
        this: Any = None
        if isinstance(node.func, ast.Attribute):
            this = self._eval(node.func.value)
            fn = self.get_property(this, node.func.attr)
            label = node.func.attr
        else:
            fn = self._eval(node.func)
            label = node.func.id if isinstance(node.func, ast.Name) else "<expression>"

        args = [self._eval(arg) for arg in node.args]
        kwargs = {kw.arg: self._eval(kw.value) for kw in node.keywords if kw.arg is not None}
        return self.invoke(fn, this, args, kwargs, label=label)

    def invoke(self, fn: Any, this: Any, args: list[Any], kwargs: dict[str, Any] | None = None, *, label: str = "") -> Any:
        kwargs = kwargs or {}
        if isinstance(fn, HostFunction):
            try:
                return fn.call(this, args, kwargs)
            except (HostError, RecursionError):
                raise
            except Exception as exc:
                raise HostError(f"Call failed: {label or fn.name}: {exc}") from exc

        if isinstance(fn, HostObject) or isinstance(fn, _PRIMITIVES) or not callable(fn):
            raise HostTypeError(f"{label or 'value'} is not a function")

        # A Python callable granted explicitly through the realm's bindings.
        try:
            return fn(*args, **kwargs)
        except (HostError, RecursionError):
            raise
        except Exception as exc:
            raise HostError(f"Call failed: {label}: {exc}") from exc
