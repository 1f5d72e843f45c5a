from __future__ import annotations

import pytest

from tamebox.runtime.context import reset_default_baseline
from tamebox.runtime.graph import HostObject
from tamebox.runtime.realm import ConfinementRunner, RealmFactory
from tamebox.runtime.registry import build_default_catalog
from tamebox.runtime.repair import RepairEngine
from tamebox.runtime.schemas import load_policy
from tamebox.runtime.severity import SeverityLedger
from tamebox.runtime.walker import tame
from tamebox.utils.primordials import build_host_runtime
from tamebox.utils.whitelist import WHITELIST


@pytest.fixture(scope="session")
def tamed_root() -> HostObject:
    """The default host, repaired and tamed once; frozen, so safe to share."""
    root = build_host_runtime()
    ledger = SeverityLedger()
    RepairEngine(build_default_catalog()).run(root, ledger)
    tame(root, load_policy(WHITELIST), ledger)
    return root


@pytest.fixture()
def runner(tamed_root: HostObject) -> ConfinementRunner:
    return ConfinementRunner(RealmFactory(tamed_root))


@pytest.fixture(autouse=True)
def _fresh_default_baseline():
    reset_default_baseline()
    yield
    reset_default_baseline()
