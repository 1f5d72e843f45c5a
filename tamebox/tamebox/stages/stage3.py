from tamebox.runtime.errors import InitializationAborted
from tamebox.runtime.severity import Severity, SeverityLedger
from tamebox.utils.constants import Stage
from tamebox.utils.logger import Trace, logger

stage = Stage.ACCEPTANCE


@Trace.section("Acceptance")
def accept_baseline(ledger: SeverityLedger, threshold: Severity, *, summary: str = "") -> Severity:
    """
    Close the ledger and compare its worst severity with the threshold.

    Raises:
        InitializationAborted: the baseline deviates more than accepted.
    """
    ledger.close()
    worst = ledger.worst()
    if not ledger.accept(threshold):
        logger.error("Max severity %s exceeds accepted %s; baseline unusable", worst.label, threshold.label)
        raise InitializationAborted(worst, threshold, summary)

    logger.info("Max severity %s accepted (threshold %s)", worst.label, threshold.label)
    return worst
