"""
Nest Trend Monitor - Trend Detector

Classifies the most recent samples of a thermostat into a trend verdict.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from poller import HvacState, Reading

logger = logging.getLogger(__name__)

# Number of consecutive samples a trend must span. The history store trims
# each device's window to exactly this depth, so both import it from here.
TREND_WINDOW = 3


class Trend(Enum):
    """Abnormal patterns the monitor reacts to."""
    NONE = "none"
    COOLING_RISING = "cooling_rising"     # cooling, yet the room keeps warming
    HEATING_FALLING = "heating_falling"   # heating, yet the room keeps cooling


@dataclass(frozen=True)
class TrendVerdict:
    """Classification of one window, with the ambient values oldest→newest."""
    trend: Trend
    ambients: tuple[float, ...] = ()

    @property
    def is_alert(self) -> bool:
        return self.trend is not Trend.NONE

    def describe(self) -> str:
        """Format as a notification message."""
        if self.trend is Trend.COOLING_RISING:
            text = "ambient consistently rising while cooling"
        elif self.trend is Trend.HEATING_FALLING:
            text = "ambient consistently falling while heating"
        else:
            return "no trend"
        values = " → ".join(f"{a:.1f}" for a in self.ambients)
        return f"{text} ({values})"


NO_TREND = TrendVerdict(Trend.NONE)


class TrendClassifier:
    """
    Evaluates a newest-first window of readings.

    Only the first TREND_WINDOW readings are considered. All of them must
    share the same known HVAC state and the ambient must move strictly
    against that state's intent on every step; a plateau anywhere yields
    no verdict.
    """

    window = TREND_WINDOW

    def evaluate(self, readings: Sequence[Reading]) -> TrendVerdict:
        if len(readings) < self.window:
            return NO_TREND

        newest_first = readings[:self.window]
        states = {r.hvac_state for r in newest_first}
        if len(states) != 1:
            return NO_TREND
        state = states.pop()

        # oldest -> newest
        ambients = tuple(r.ambient for r in reversed(newest_first))
        steps = list(zip(ambients, ambients[1:]))

        if state is HvacState.COOLING and all(later > earlier for earlier, later in steps):
            return TrendVerdict(Trend.COOLING_RISING, ambients)

        if state is HvacState.HEATING and all(later < earlier for earlier, later in steps):
            return TrendVerdict(Trend.HEATING_FALLING, ambients)

        return NO_TREND
