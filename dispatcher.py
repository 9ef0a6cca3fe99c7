"""
Nest Trend Monitor - Reaction Dispatcher

Turns a trend verdict into notifications and, for runaway heating, the
remote safety command.
"""

import logging

from detector import Trend, TrendVerdict
from errors import ActuationFailure
from notifier import Severity

logger = logging.getLogger(__name__)


class ReactionDispatcher:
    """
    Stateless mapping of verdicts to side effects.

    Every qualifying verdict produces a fresh notification, each cycle;
    there is no deduplication or cooldown. Only HEATING_FALLING actuates:
    a room cooling while the heat runs points at a failure or an open
    window, while cooling that cannot keep up is merely wasteful.
    """

    def __init__(self, notifier, actuator):
        self.notifier = notifier
        self.actuator = actuator

    def handle(self, device_id: str, verdict: TrendVerdict) -> list[str]:
        """
        React to one verdict.

        Returns:
            Names of the actions taken, in order
        """
        actions = []
        if verdict.trend is Trend.NONE:
            return actions

        logger.warning(f"Trend detected on {device_id}: {verdict.trend.value} {verdict.ambients}")
        self.notifier.notify(device_id, verdict.describe(), Severity.ELEVATED)
        actions.append("notify")

        if verdict.trend is Trend.HEATING_FALLING:
            actions.append(self._disable(device_id))

        return actions

    def _disable(self, device_id: str) -> str:
        try:
            self.actuator.disable_heating_cooling(device_id)
        except ActuationFailure as e:
            logger.error(f"Failed to disable HVAC on {device_id}: {e.reason}")
            self.notifier.notify(device_id, f"failed to disable HVAC ({e.reason})", Severity.INFORMATIONAL)
            return "disable_failed"

        self.notifier.notify(device_id, "Thermostat turned off due to emergency alert", Severity.INFORMATIONAL)
        return "disable"
