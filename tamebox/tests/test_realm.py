from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from tamebox.runtime.errors import EvaluationError
from tamebox.runtime.graph import HostObject, HostTypeError
from tamebox.runtime.realm import ConfinementRunner, RealmFactory, RunnerFunction
from tamebox.runtime.schemas import load_policy
from tamebox.runtime.walker import tame


def test_confine_evaluates_with_granted_bindings(runner: ConfinementRunner):
    result = runner.confine("x + y", {"x": 3, "y": 4})
    assert result.ok
    assert result.value == 7
    assert result.unwrap() == 7


def test_unknown_identifier_is_a_reference_error(runner: ConfinementRunner):
    result = runner.confine("z")
    assert result.error.kind == "ReferenceError"
    with pytest.raises(EvaluationError):
        result.unwrap()


@pytest.mark.parametrize("name", ["os", "globalThis", "print", "open"])
def test_ambient_authority_is_unreachable(runner: ConfinementRunner, name: str):
    assert runner.confine(name).error.kind == "ReferenceError"


def test_denied_primordials_are_gone(runner: ConfinementRunner):
    assert runner.confine("Math.random").value is None
    assert runner.confine("Math.random()").error.kind == "TypeError"
    assert runner.confine("[].flatten").value is None


@pytest.mark.parametrize(
    "source",
    [
        "Array.prototype.push = 1",
        "Object.prototype.polluted = 1",
        "Math.PI = 3",
        "Array = 1",
        "JSON.parse.extra = 1",
    ],
)
def test_primordials_are_frozen(runner: ConfinementRunner, source: str):
    result = runner.confine(source)
    assert result.error.kind == "TypeError"


def test_poisoned_restricted_properties_throw(runner: ConfinementRunner):
    assert runner.confine("Math.max.caller").error.kind == "TypeError"


def test_realms_do_not_share_assignments(runner: ConfinementRunner):
    assert runner.confine("leak = 1\nleak").value == 1
    assert runner.confine("leak").error.kind == "ReferenceError"


def test_granted_bindings_are_writable_but_not_removable(runner: ConfinementRunner, tamed_root: HostObject):
    assert runner.confine("count = count + 1\ncount", {"count": 0}).value == 1

    factory = RealmFactory(tamed_root)
    imports = factory.copy_to_imports(factory.make_imports(), {"count": 0})
    desc = imports.get_own_property("count")
    assert desc.writable and not desc.configurable
    assert not imports.delete("count")


def test_imports_share_primordials_read_only(tamed_root: HostObject):
    factory = RealmFactory(tamed_root)
    first = factory.make_imports()
    second = factory.make_imports()

    assert first is not second
    assert first.proto is None
    assert first.get("Array") is second.get("Array") is tamed_root.get("Array")
    assert not first.get_own_property("Array").writable


def test_granted_objects_carry_only_their_own_authority(runner: ConfinementRunner):
    box = HostObject(None)
    box.set_own("value", 1)
    assert runner.confine("box.value = box.value + 41\nbox.value", {"box": box}).value == 42
    assert box.get("value") == 42


@pytest.mark.parametrize("name", ["not valid", "class", "__builtins__", 3])
def test_invalid_binding_names_are_type_errors(runner: ConfinementRunner, name):
    result = runner.confine("1", {name: 1})
    assert result.error.kind == "TypeError"


def test_syntax_errors_are_reported_not_raised(runner: ConfinementRunner):
    result = runner.confine("x = (")
    assert result.error.kind == "SyntaxError"
    assert runner.confine("import os").error.kind == "SyntaxError"


def test_compile_once_run_many(runner: ConfinementRunner):
    program = runner.compile_expr("n * 2")
    assert [program({"n": n}).value for n in range(4)] == [0, 2, 4, 6]

    with pytest.raises(EvaluationError) as info:
        runner.compile_expr("def f(): pass")
    assert info.value.kind == "SyntaxError"


def test_concurrent_confinements_are_isolated(runner: ConfinementRunner):
    source = (
        "counter = 0\n"
        "for i in [1, 2, 3, 4, 5]:\n"
        "    counter += i * seed\n"
        "counter\n"
    )

    def run(seed: int):
        return runner.confine(source, {"seed": seed}).value

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(run, range(64)))

    assert results == [15 * seed for seed in range(64)]


def test_concurrent_confinements_keep_their_own_counter(runner: ConfinementRunner):
    source = (
        "for i in [1, 2, 3, 4, 5]:\n"
        "    counter += 1\n"
        "counter\n"
    )
    starts = list(range(0, 640, 10))

    def run(start: int):
        return runner.confine(source, {"counter": start}).value

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(run, starts))

    assert results == [start + 5 for start in starts]


def test_container_primordials_are_not_shared_mutable_state():
    cfg = HostObject(name="cfg")
    cfg.set_own("items", [1, 2])
    cfg.set_own("table", {"a": 1})
    root = HostObject(name="global")
    root.set_own("cfg", cfg)
    tame(root, load_policy({"cfg": {"items": True, "table": True}}))
    runner = ConfinementRunner(RealmFactory(root))

    assert runner.confine("cfg.items[0] = 99").error.kind == "TypeError"
    assert runner.confine("cfg.table['a'] = 'changed'").error.kind == "TypeError"
    assert runner.confine("[cfg.items[0], cfg.table['a']]").value == [1, 1]


def test_confined_code_can_confine_further(runner: ConfinementRunner):
    assert runner.confine("vm.confine('x + y', {'x': 3, 'y': 4})").value == 7
    assert runner.confine("vm.confine('1 + 1')").value == 2


def test_nested_confinement_sees_only_what_it_is_handed(runner: ConfinementRunner):
    result = runner.confine("secret = 1\nvm.confine('secret')")
    assert result.error.kind == "ReferenceError"

    result = runner.confine("vm.confine('x = (')")
    assert result.error.kind == "SyntaxError"


def test_compile_expr_from_confined_code(runner: ConfinementRunner):
    source = (
        "double = vm.compileExpr('n * 2')\n"
        "[double({'n': 1}), double({'n': 5})]\n"
    )
    assert runner.confine(source).value == [2, 10]
    assert runner.confine("vm.compileExpr('import os')").error.kind == "SyntaxError"
    assert runner.confine("f = vm.compileExpr('1')\nf.extra = 1").error.kind == "TypeError"


def test_imports_helpers_from_confined_code(runner: ConfinementRunner):
    source = (
        "imports = vm.copyToImports(vm.makeImports(), {'k': 1})\n"
        "[imports.k, 'Array' in imports]\n"
    )
    assert runner.confine(source).value == [1, True]
    assert runner.confine("vm.copyToImports(Math, {'k': 1})").error.kind == "TypeError"
    assert runner.confine("vm.copyToImports(vm.makeImports(), {'class': 1})").error.kind == "TypeError"


def test_runner_functions_need_a_runner():
    unbound = RunnerFunction("confine")
    with pytest.raises(HostTypeError, match="not available"):
        unbound.call(None, ("1",))
    with pytest.raises(ValueError):
        RunnerFunction("eval")
