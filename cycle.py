"""
Nest Trend Monitor - Poll Cycle

Runs one pass over a batch of readings: store, classify, react.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from detector import TrendClassifier, TrendVerdict
from dispatcher import ReactionDispatcher
from errors import MonitorError
from notifier import Severity
from poller import Reading
from store import SampleStore

logger = logging.getLogger(__name__)


@dataclass
class DeviceOutcome:
    """What happened to one device during a cycle."""
    device_id: str
    verdict: Optional[TrendVerdict] = None
    samples: int = 0
    actions: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CycleReport:
    outcomes: list[DeviceOutcome] = field(default_factory=list)

    @property
    def failed(self) -> list[DeviceOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def alerts(self) -> list[DeviceOutcome]:
        return [o for o in self.outcomes if o.verdict is not None and o.verdict.is_alert]

    def summary(self) -> str:
        return (
            f"{len(self.outcomes)} devices, {len(self.alerts)} trends, "
            f"{len(self.failed)} failed"
        )


class PollCycle:
    """
    One full pass over the devices in a batch.

    Devices are processed in order and independently: a failure on one
    (store unreachable, malformed reading) is logged, notified and
    recorded in the report, and the rest of the batch still runs.
    """

    def __init__(
        self,
        store: SampleStore,
        classifier: TrendClassifier,
        dispatcher: ReactionDispatcher,
        notifier,
    ):
        self.store = store
        self.classifier = classifier
        self.dispatcher = dispatcher
        self.notifier = notifier

    def run(self, readings: Iterable[Reading]) -> CycleReport:
        report = CycleReport()
        for reading in readings:
            report.outcomes.append(self._process(reading))

        if report.outcomes:
            logger.info(f"Poll cycle complete: {report.summary()}")
        else:
            logger.info("Poll cycle complete: no readings")
        return report

    def _process(self, reading: Reading) -> DeviceOutcome:
        device_id = getattr(reading, "device_id", None) or "N/A"
        outcome = DeviceOutcome(device_id=device_id)
        try:
            reading.validate()
            self.store.push(reading.device_id, reading)
            history = self.store.recent(reading.device_id)
            outcome.samples = len(history)
            if outcome.samples < self.classifier.window:
                logger.debug(f"{device_id}: {outcome.samples} samples, waiting for more data")
            outcome.verdict = self.classifier.evaluate(history)
            outcome.actions = self.dispatcher.handle(reading.device_id, outcome.verdict)
        except MonitorError as e:
            outcome.error = f"{type(e).__name__}: {e}"
            logger.error(f"Skipping device {device_id} this cycle: {outcome.error}")
            self.notifier.notify(device_id, f"Processing error: {e}", Severity.INFORMATIONAL)
        except Exception as e:
            outcome.error = f"{type(e).__name__}: {e}"
            logger.exception(f"Unexpected error processing device {device_id}")
            self.notifier.notify(device_id, f"Unexpected processing error: {e}", Severity.INFORMATIONAL)
        return outcome
