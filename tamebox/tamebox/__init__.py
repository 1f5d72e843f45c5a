"""
tamebox: repair, tame and harden a host runtime, then evaluate untrusted
source in fresh confined realms that share the hardened primordials.

    import tamebox
    from tamebox.runtime.config import RuntimeConfig

    tamebox.initialize(config=RuntimeConfig.relaxed("UNSAFE_SPEC_VIOLATION"))
    tamebox.confine("x + y", {"x": 3, "y": 4}).value  # 7
"""

from tamebox.runtime.config import RuntimeConfig
from tamebox.runtime.context import (
    Baseline,
    InitializationReport,
    confine,
    get_baseline,
    initialize,
    reset_default_baseline,
)
from tamebox.runtime.errors import (
    ConfigError,
    EvaluationError,
    InitializationAborted,
    LifecycleError,
    PolicyError,
    TameboxError,
    UnsafeConfigError,
)
from tamebox.runtime.graph import HostFunction, HostObject, PropertyDescriptor, harden
from tamebox.runtime.realm import EvaluationResult
from tamebox.runtime.schemas import load_policy
from tamebox.runtime.severity import Severity, SeverityLedger
from tamebox.runtime.walker import tame

__all__ = [
    "Baseline",
    "ConfigError",
    "EvaluationError",
    "EvaluationResult",
    "HostFunction",
    "HostObject",
    "InitializationAborted",
    "InitializationReport",
    "LifecycleError",
    "PolicyError",
    "PropertyDescriptor",
    "RuntimeConfig",
    "Severity",
    "SeverityLedger",
    "TameboxError",
    "UnsafeConfigError",
    "confine",
    "get_baseline",
    "harden",
    "initialize",
    "load_policy",
    "reset_default_baseline",
    "tame",
]
