from tamebox.runtime.graph import HostObject
from tamebox.runtime.registry import PatchCatalog
from tamebox.runtime.repair import RepairEngine, RepairReport
from tamebox.runtime.severity import SeverityLedger
from tamebox.utils.constants import Stage
from tamebox.utils.logger import Trace

stage = Stage.REPAIR


@Trace.section("Repair")
def repair_primordials(root: HostObject, catalog: PatchCatalog, ledger: SeverityLedger) -> RepairReport:
    """
    Neutralize known defects of the raw host graph before any policy applies.

    Updates:
        the host graph, in place, for every patch whose detector fires
        the ledger, once per patch

    Returns:
        report (RepairReport): one outcome per patch, in catalog order.
    """
    report = RepairEngine(catalog).run(root, ledger)
    Trace.report(stage.value, report.summary())
    return report
