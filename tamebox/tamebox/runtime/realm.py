from __future__ import annotations

import ast
import keyword
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, NoReturn

from tamebox.runtime.errors import EvaluationError, ParseError
from tamebox.runtime.executor import Interpreter
from tamebox.runtime.graph import (
    HostError,
    HostFunction,
    HostObject,
    HostRangeError,
    HostReferenceError,
    HostSyntaxError,
    HostTypeError,
    PropertyDescriptor,
    reachable,
)
from tamebox.runtime.parser import parse_source

logger = logging.getLogger(__name__)


_PROTOTYPE_PATHS = {
    "object": ("Object", "prototype"),
    "function": ("Function", "prototype"),
    "array": ("Array", "prototype"),
    "string": ("String", "prototype"),
    "number": ("Number", "prototype"),
    "boolean": ("Boolean", "prototype"),
}


def _own_data(obj: HostObject | None, name: str) -> HostObject | None:
    """Follow an own data property without invoking getters."""
    if obj is None:
        return None
    desc = obj.get_own_property(name)
    if desc is None or desc.accessor or not isinstance(desc.value, HostObject):
        return None
    return desc.value


class Realm:
    """
    One isolated namespace: a fresh global object plus a local scope.

    Identifier resolution never leaves the realm's global object, whose only
    bindings are the shared primordials and the explicitly granted values.
    """

    def __init__(self, global_object: HostObject, prototypes: Mapping[str, HostObject | None]) -> None:
        self.global_object = global_object
        self.scope: dict[str, Any] = {}
        self._prototypes = dict(prototypes)

    def lookup(self, name: str) -> Any:
        if name in self.scope:
            return self.scope[name]
        if self.global_object.lookup(name) is None:
            raise HostReferenceError(f"{name} is not defined")
        return self.global_object.get(name)

    def assign(self, name: str, value: Any) -> None:
        if name not in self.scope and self.global_object.has_own(name):
            self.global_object.put(name, value)
            return
        self.scope[name] = value

    def prototype_for(self, value: Any) -> HostObject | None:
        if isinstance(value, bool):
            return self._prototypes.get("boolean")
        if isinstance(value, (int, float)):
            return self._prototypes.get("number")
        if isinstance(value, str):
            return self._prototypes.get("string")
        if isinstance(value, (list, tuple)):
            return self._prototypes.get("array")
        return None

    def new_object(self) -> HostObject:
        return HostObject(self._prototypes.get("object"))


@dataclass(frozen=True)
class EvaluationResult:
    value: Any = None
    error: EvaluationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value


def _check_binding_name(name: Any) -> str:
    if not isinstance(name, str) or not name.isidentifier() or keyword.iskeyword(name):
        raise EvaluationError("TypeError", f"Invalid binding name: {name!r}")
    if name.startswith("__"):
        raise EvaluationError("TypeError", f"Dunder binding names are not allowed: {name}")
    return name


class RealmFactory:
    """Builds fresh realms that share one tamed, frozen primordial graph."""

    def __init__(self, tamed_root: HostObject) -> None:
        self.tamed_root = tamed_root
        self._prototypes = {
            kind: _own_data(_own_data(tamed_root, ctor), proto)
            for kind, (ctor, proto) in _PROTOTYPE_PATHS.items()
        }

    def prototype(self, kind: str) -> HostObject | None:
        """The tamed prototype backing values of `kind` (`"object"`, `"function"`, ...)."""
        return self._prototypes.get(kind)

    def make_imports(self) -> HostObject:
        """A fresh global object seeded with read-only references to the primordials."""
        imports = HostObject(None, name="imports")
        for name in self.tamed_root.own_keys():
            desc = self.tamed_root.get_own_property(name)
            if desc is None:
                continue
            if desc.accessor:
                shared = replace(desc, configurable=True)
            else:
                shared = replace(desc, writable=False, configurable=True)
            imports.define_property(name, shared)
        return imports

    def copy_to_imports(self, imports: HostObject, bindings: Mapping[str, Any] | None) -> HostObject:
        for name, value in (bindings or {}).items():
            imports.define_property(
                _check_binding_name(name),
                PropertyDescriptor.data(value, writable=True, enumerable=True, configurable=False),
            )
        return imports

    def create_realm(self, bindings: Mapping[str, Any] | None = None) -> Realm:
        imports = self.copy_to_imports(self.make_imports(), bindings)
        return Realm(imports, self._prototypes)


def _to_evaluation_error(exc: BaseException, lineno: int | None) -> EvaluationError:
    if isinstance(exc, EvaluationError):
        return exc
    if isinstance(exc, ParseError):
        return EvaluationError("SyntaxError", str(exc), lineno=exc.lineno)
    if isinstance(exc, HostError):
        return EvaluationError(exc.kind, str(exc), lineno=lineno)
    if isinstance(exc, RecursionError):
        return EvaluationError("RangeError", "Maximum call stack size exceeded", lineno=lineno)
    return EvaluationError("InternalError", f"{type(exc).__name__}: {exc}", lineno=lineno)


class CompiledProgram:
    """Source parsed and validated once, evaluated in a fresh realm per call."""

    def __init__(self, runner: "ConfinementRunner", source: str, module: ast.Module) -> None:
        self._runner = runner
        self.source = source
        self.module = module

    def __call__(self, bindings: Mapping[str, Any] | None = None) -> EvaluationResult:
        return self._runner.run(self.module, bindings)


class ConfinementRunner:
    def __init__(self, factory: RealmFactory) -> None:
        self.factory = factory
        for obj in reachable(factory.tamed_root):
            if isinstance(obj, RunnerFunction):
                obj.adopt(self)

    def compile_expr(self, source_text: str) -> CompiledProgram:
        """Parse once; raises `EvaluationError` (kind `SyntaxError`) on invalid source."""
        try:
            module = parse_source(source_text)
        except ParseError as exc:
            raise _to_evaluation_error(exc, exc.lineno) from exc
        return CompiledProgram(self, source_text, module)

    def confine(self, source_text: str, external_bindings: Mapping[str, Any] | None = None) -> EvaluationResult:
        """
        Evaluate `source_text` in a fresh realm granted exactly `external_bindings`.

        Failures of the confined program come back as `EvaluationResult.error`.
        """
        try:
            module = parse_source(source_text)
        except (ParseError, RecursionError) as exc:
            error = _to_evaluation_error(exc, None)
            logger.debug("confined source rejected: %s", error)
            return EvaluationResult(error=error)
        return self.run(module, external_bindings)

    def run(self, module: ast.Module, external_bindings: Mapping[str, Any] | None = None) -> EvaluationResult:
        interpreter: Interpreter | None = None
        try:
            realm = self.factory.create_realm(external_bindings)
            interpreter = Interpreter(realm)
            return EvaluationResult(value=interpreter.run(module))
        except Exception as exc:
            error = _to_evaluation_error(exc, interpreter.lineno if interpreter else None)
            logger.debug("confined program failed: %s", error)
            return EvaluationResult(error=error)


# -----------------------------
# vm functions served by a runner
# -----------------------------

_HOST_ERRORS: dict[str, type[HostError]] = {
    "TypeError": HostTypeError,
    "RangeError": HostRangeError,
    "ReferenceError": HostReferenceError,
    "SyntaxError": HostSyntaxError,
}


def _rethrow(error: EvaluationError) -> NoReturn:
    """Surface a nested program's failure as a throw in the calling program."""
    raise _HOST_ERRORS.get(error.kind, HostError)(error.message)


def _record_bindings(value: Any) -> Mapping[str, Any]:
    """Bindings handed over by confined code: the enumerable own properties of a record."""
    if value is None:
        return {}
    if isinstance(value, HostObject):
        bindings: dict[str, Any] = {}
        for name in value.own_keys():
            desc = value.get_own_property(name)
            if desc is not None and desc.enumerable:
                bindings[name] = value.get(name)
        return bindings
    if isinstance(value, Mapping):
        return value
    raise HostTypeError(f"Bindings must be an object, got {type(value).__name__}")


def _require_source(value: Any, operation: str) -> str:
    if not isinstance(value, str):
        raise HostTypeError(f"{operation} expects source text, got {type(value).__name__}")
    return value


def _vm_confine(runner: ConfinementRunner, source_text: Any = None, bindings: Any = None) -> Any:
    result = runner.confine(_require_source(source_text, "confine"), _record_bindings(bindings))
    if result.error is not None:
        _rethrow(result.error)
    return result.value


def _vm_compile_expr(runner: ConfinementRunner, source_text: Any = None) -> HostFunction:
    try:
        program = runner.compile_expr(_require_source(source_text, "compileExpr"))
    except EvaluationError as exc:
        _rethrow(exc)

    def run_compiled(this: Any, bindings: Any = None) -> Any:
        result = program(_record_bindings(bindings))
        if result.error is not None:
            _rethrow(result.error)
        return result.value

    compiled = HostFunction(run_compiled, runner.factory.prototype("function"), name="compiledExpr")
    compiled.freeze()
    return compiled


def _vm_make_imports(runner: ConfinementRunner) -> HostObject:
    return runner.factory.make_imports()


def _vm_copy_to_imports(runner: ConfinementRunner, imports: Any = None, bindings: Any = None) -> HostObject:
    if not isinstance(imports, HostObject):
        raise HostTypeError("copyToImports expects an imports object")
    try:
        return runner.factory.copy_to_imports(imports, _record_bindings(bindings))
    except EvaluationError as exc:
        _rethrow(exc)


_RUNNER_OPERATIONS: dict[str, Callable[..., Any]] = {
    "confine": _vm_confine,
    "compileExpr": _vm_compile_expr,
    "makeImports": _vm_make_imports,
    "copyToImports": _vm_copy_to_imports,
}


class RunnerFunction(HostFunction):
    """
    A `vm` primordial served by a confinement runner.

    The primordial graph is built before any runner exists. The first runner
    constructed over the tamed graph adopts every runner function it reaches;
    until then calls throw a TypeError.
    """

    def __init__(self, operation: str, proto: HostObject | None = None) -> None:
        if operation not in _RUNNER_OPERATIONS:
            raise ValueError(f"Unknown runner operation: {operation}")
        super().__init__(self._dispatch, proto, name=f"vm.{operation}")
        self.operation = operation
        self.runner: ConfinementRunner | None = None

    def adopt(self, runner: ConfinementRunner) -> None:
        if self.runner is None:
            self.runner = runner

    def _dispatch(self, this: Any, *args: Any) -> Any:
        if self.runner is None:
            raise HostTypeError(f"{self.name} is not available before the baseline is ready")
        return _RUNNER_OPERATIONS[self.operation](self.runner, *args)
