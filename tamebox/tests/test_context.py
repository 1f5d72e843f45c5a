from __future__ import annotations

import logging
import threading

import pytest

import tamebox
from tamebox.runtime.config import RuntimeConfig
from tamebox.runtime.context import Baseline
from tamebox.runtime.errors import ConfigError, InitializationAborted, LifecycleError, UnsafeConfigError
from tamebox.runtime.graph import HostObject
from tamebox.runtime.registry import PatchCatalog, build_default_catalog
from tamebox.runtime.repair import RepairStatus
from tamebox.runtime.severity import Severity
from tamebox.utils.constants import BaselineState
from tamebox.utils.primordials import build_host_runtime
from tamebox.utils.whitelist import WHITELIST

RELAXED = RuntimeConfig.relaxed("UNSAFE_SPEC_VIOLATION")


def test_confine_before_initialization_is_a_lifecycle_error():
    baseline = Baseline(RuntimeConfig())
    assert baseline.state is BaselineState.UNINITIALIZED
    with pytest.raises(LifecycleError, match="initialize it first"):
        baseline.confine("1")


def test_default_host_aborts_under_strict_threshold():
    baseline = Baseline(RuntimeConfig())
    with pytest.raises(InitializationAborted) as info:
        baseline.initialize(build_host_runtime(), WHITELIST, build_default_catalog())

    assert info.value.worst is Severity.UNSAFE_SPEC_VIOLATION
    assert info.value.threshold is Severity.SAFE
    assert "Max severity Unsafe spec violation(2) exceeds accepted Safe(0)" in str(info.value)
    assert baseline.state is BaselineState.ABORTED
    assert baseline.ledger.closed
    with pytest.raises(LifecycleError, match="aborted"):
        baseline.confine("1")


def test_relaxed_threshold_reaches_ready():
    baseline = Baseline(RELAXED)
    report = baseline.initialize(build_host_runtime(), WHITELIST, build_default_catalog())

    assert baseline.ready
    assert report.accepted
    assert report.worst is Severity.UNSAFE_SPEC_VIOLATION
    assert [o.status for o in report.repair.outcomes] == [RepairStatus.REPAIRED] * 3
    assert report.taming.skipped == 0
    assert baseline.confine("x + y", {"x": 3, "y": 4}).value == 7
    assert "Max Severity" in report.summary()


def test_clean_host_is_accepted_strictly():
    baseline = Baseline(RuntimeConfig())
    report = baseline.initialize(
        build_host_runtime(extensions=False, defects=False),
        WHITELIST,
        build_default_catalog(),
    )
    assert report.worst is Severity.SAFE
    assert baseline.ready


def test_ledger_is_immutable_after_initialization():
    baseline = Baseline(RELAXED)
    baseline.initialize(build_host_runtime(), WHITELIST, build_default_catalog())
    with pytest.raises(LifecycleError):
        baseline.ledger.record(Severity.SAFE)


def test_initialization_runs_once():
    baseline = Baseline(RELAXED)
    baseline.initialize(build_host_runtime(), WHITELIST, build_default_catalog())
    with pytest.raises(LifecycleError, match="runs once"):
        baseline.initialize(build_host_runtime(), WHITELIST, build_default_catalog())


def test_host_graph_cannot_be_initialized_twice():
    root = build_host_runtime()
    Baseline(RELAXED).initialize(root, WHITELIST, build_default_catalog())
    with pytest.raises(LifecycleError, match="already initialized"):
        Baseline(RELAXED).initialize(root, WHITELIST, build_default_catalog())


def test_relaxed_threshold_without_opt_in_is_refused():
    baseline = Baseline(RuntimeConfig(max_severity=Severity.NEW_SYMPTOM))
    with pytest.raises(UnsafeConfigError):
        baseline.initialize(build_host_runtime(), WHITELIST)
    assert baseline.state is BaselineState.UNINITIALIZED


def test_unrepaired_defect_aborts_initialization():
    catalog = PatchCatalog()

    def broken_apply(root: HostObject) -> None:
        raise RuntimeError("boom")

    catalog.register("always", lambda root: True, broken_apply, Severity.NOT_ISOLATED)
    baseline = Baseline(RELAXED)
    with pytest.raises(InitializationAborted) as info:
        baseline.initialize(build_host_runtime(), WHITELIST, catalog)
    assert info.value.worst is Severity.NOT_ISOLATED
    assert baseline.state is BaselineState.ABORTED


def test_concurrent_initialization_admits_one_winner():
    baseline = Baseline(RELAXED)
    outcomes: list[str] = []
    lock = threading.Lock()

    def attempt():
        try:
            baseline.initialize(build_host_runtime(), WHITELIST, build_default_catalog())
            result = "ready"
        except LifecycleError:
            result = "refused"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ready", "refused", "refused", "refused"]
    assert baseline.ready


def test_process_wide_default_baseline():
    with pytest.raises(LifecycleError):
        tamebox.confine("1")

    report = tamebox.initialize(config=RELAXED)
    assert report.accepted
    assert tamebox.get_baseline().ready
    assert tamebox.confine("Math.max(2, 9)").value == 9

    with pytest.raises(LifecycleError):
        tamebox.initialize(config=RELAXED)


def test_stages_log_under_package_logger(caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.INFO, logger="tamebox")
    Baseline(RELAXED).initialize(build_host_runtime(), WHITELIST, build_default_catalog())

    messages = [r.getMessage() for r in caplog.records]
    assert "== Repair ==" in messages
    assert "== Taming ==" in messages
    assert any(m.startswith("Policy has ") for m in messages)
    assert any(m.startswith("Max severity Unsafe spec violation(2) accepted") for m in messages)


def test_custom_host_needs_its_own_policy():
    custom = HostObject(name="global")
    custom.set_own("answer", 42)

    with pytest.raises(ConfigError, match="given together"):
        tamebox.initialize(custom, config=RELAXED)
    assert tamebox.get_baseline().state is BaselineState.UNINITIALIZED

    report = tamebox.initialize(custom, {"answer": True}, config=RuntimeConfig())
    assert report.repair.outcomes == []
    assert report.worst is Severity.SAFE
    assert tamebox.confine("answer + 1").value == 43
