from __future__ import annotations

import threading
import weakref
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from tamebox.runtime.config import RuntimeConfig
from tamebox.runtime.errors import ConfigError, InitializationAborted, LifecycleError
from tamebox.runtime.graph import HostObject
from tamebox.runtime.realm import CompiledProgram, ConfinementRunner, EvaluationResult, Realm, RealmFactory
from tamebox.runtime.registry import PatchCatalog, build_default_catalog
from tamebox.runtime.repair import RepairReport
from tamebox.runtime.report import DispositionReport
from tamebox.runtime.schemas import PolicyNode, load_policy
from tamebox.runtime.severity import Severity, SeverityLedger
from tamebox.stages import accept_baseline, repair_primordials, tame_primordials
from tamebox.utils.constants import BaselineState

# Host graphs that already went through an initialization attempt.
_INITIALIZED_ROOTS: "weakref.WeakSet[HostObject]" = weakref.WeakSet()


@dataclass(frozen=True)
class InitializationReport:
    repair: RepairReport
    taming: DispositionReport
    worst: Severity
    threshold: Severity

    @property
    def accepted(self) -> bool:
        return self.worst <= self.threshold

    def summary(self) -> str:
        return "\n".join(
            [
                f"Max Severity: {self.worst.label}.",
                "-- repair --",
                self.repair.summary(),
                "-- taming --",
                self.taming.summary(),
            ]
        )


class Baseline:
    """
    The hardened primordial baseline and its lifecycle.

    UNINITIALIZED -> INITIALIZING -> READY | ABORTED. Initialization runs once;
    confinement is only available in READY.
    """

    def __init__(self, config: RuntimeConfig | None = None) -> None:
        self.config = config if config is not None else RuntimeConfig.from_env()
        self._state = BaselineState.UNINITIALIZED
        self._lock = threading.Lock()
        self._runner: ConfinementRunner | None = None
        self.ledger: SeverityLedger | None = None
        self.report: InitializationReport | None = None
        self.tamed_root: HostObject | None = None
        self.abort: InitializationAborted | None = None

    @property
    def state(self) -> BaselineState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is BaselineState.READY

    def initialize(
        self,
        host_root: HostObject,
        policy: PolicyNode | Mapping[str, Any] | str | Path,
        catalog: PatchCatalog | None = None,
    ) -> InitializationReport:
        """Repair, tame and accept `host_root`; raises `InitializationAborted` past the threshold."""
        self.config.validate()
        policy_root = policy if isinstance(policy, PolicyNode) else load_policy(policy)
        catalog = catalog if catalog is not None else PatchCatalog()

        with self._lock:
            if self._state is not BaselineState.UNINITIALIZED:
                raise LifecycleError(f"Baseline already {self._state.value}; initialization runs once")
            if host_root in _INITIALIZED_ROOTS:
                raise LifecycleError("Host graph was already initialized by another baseline")
            _INITIALIZED_ROOTS.add(host_root)
            self._state = BaselineState.INITIALIZING

        ledger = SeverityLedger()
        self.ledger = ledger
        try:
            repair = repair_primordials(host_root, catalog, ledger)
            taming = tame_primordials(
                host_root,
                policy_root,
                ledger,
                max_examples=self.config.diagnostic_examples,
            )
            report = InitializationReport(repair, taming, ledger.worst(), self.config.max_severity)
            self.report = report
            accept_baseline(ledger, self.config.max_severity, summary=report.summary())
        except InitializationAborted as exc:
            self.abort = exc
            self._state = BaselineState.ABORTED
            raise
        except Exception:
            ledger.close()
            self._state = BaselineState.ABORTED
            raise

        self.tamed_root = host_root
        self._runner = ConfinementRunner(RealmFactory(host_root))
        self._state = BaselineState.READY
        return report

    def _require_ready(self) -> ConfinementRunner:
        if self._state is BaselineState.READY and self._runner is not None:
            return self._runner
        if self._state is BaselineState.ABORTED:
            detail = f": {self.abort}" if self.abort is not None else ""
            raise LifecycleError(f"Baseline initialization aborted{detail}")
        raise LifecycleError(f"Baseline is {self._state.value}; initialize it first")

    def confine(self, source_text: str, external_bindings: Mapping[str, Any] | None = None) -> EvaluationResult:
        return self._require_ready().confine(source_text, external_bindings)

    def compile_expr(self, source_text: str) -> CompiledProgram:
        return self._require_ready().compile_expr(source_text)

    def create_realm(self, bindings: Mapping[str, Any] | None = None) -> Realm:
        return self._require_ready().factory.create_realm(bindings)


# -----------------------------
# Process-wide default baseline
# -----------------------------

_default: Baseline | None = None
_default_lock = threading.Lock()


def get_baseline() -> Baseline:
    global _default
    with _default_lock:
        if _default is None:
            _default = Baseline()
        return _default


def initialize(
    host_root: HostObject | None = None,
    policy: PolicyNode | Mapping[str, Any] | str | Path | None = None,
    catalog: PatchCatalog | None = None,
    *,
    config: RuntimeConfig | None = None,
) -> InitializationReport:
    """
    Initialize the process-wide baseline.

    Without `host_root` and `policy` the default host runtime, policy and patch
    catalog from `tamebox.utils` are used. A custom host needs its own policy;
    its catalog defaults to empty.
    """
    if (host_root is None) != (policy is None):
        raise ConfigError("host_root and policy must be given together")

    global _default
    with _default_lock:
        if _default is None:
            _default = Baseline(config)
        elif config is not None and _default.state is BaselineState.UNINITIALIZED:
            _default.config = config
        baseline = _default

    if host_root is None:
        # Import lazily: the default host is configuration, not core.
        from tamebox.utils.primordials import build_host_runtime
        from tamebox.utils.whitelist import WHITELIST

        host_root = build_host_runtime()
        policy = WHITELIST
        if catalog is None:
            catalog = build_default_catalog()

    return baseline.initialize(host_root, policy, catalog)


def confine(source_text: str, external_bindings: Mapping[str, Any] | None = None) -> EvaluationResult:
    return get_baseline().confine(source_text, external_bindings)


def reset_default_baseline() -> None:
    """Forget the process-wide baseline (tests and embedding hosts that rebuild)."""
    global _default
    with _default_lock:
        _default = None
