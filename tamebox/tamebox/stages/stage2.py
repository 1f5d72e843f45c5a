from tamebox.runtime.graph import HostObject
from tamebox.runtime.report import DispositionReport
from tamebox.runtime.schemas import PolicyNode, count_entries
from tamebox.runtime.severity import SeverityLedger
from tamebox.runtime.walker import TamingWalker
from tamebox.utils.constants import Stage
from tamebox.utils.logger import Trace, logger

stage = Stage.TAMING


@Trace.section("Taming")
def tame_primordials(
    root: HostObject,
    policy: PolicyNode,
    ledger: SeverityLedger,
    *,
    max_examples: int = 10,
) -> DispositionReport:
    """
    Reduce every capability reachable from the root to what the policy permits.

    Returns:
        report (DispositionReport): disposition counts and the worst severity.
    """
    logger.info("Policy has %d entries", count_entries(policy))
    walker = TamingWalker(policy, ledger, max_examples=max_examples)
    report = walker.tame(root)
    Trace.report(stage.value, report.summary())
    return report
