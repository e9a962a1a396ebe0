"""
Common-coin threshold source.

One threshold is drawn per round and shared by every node that evaluates
that round. Nothing about it is known before the round's queries are
answered.
"""

import random
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import InvalidConfiguration


@dataclass(frozen=True)
class ThresholdDraw:
    """The round's shared threshold and ordering nonce."""
    round_number: int
    low: float
    high: float
    value: float
    nonce: int


class ThresholdSource:
    """Draws one uniform threshold in [low, high] per round and caches it."""

    def __init__(self, low: float = 0.3, high: float = 0.7):
        if not 0.0 <= low <= high <= 1.0:
            raise InvalidConfiguration(
                f"Threshold bounds must satisfy 0 <= low <= high <= 1, got [{low}, {high}]"
            )
        self.low = low
        self.high = high
        self._draws: Dict[int, ThresholdDraw] = {}

    def draw(self, round_number: int, rng: random.Random) -> ThresholdDraw:
        """
        Return the draw for a round.

        The first call for a round consumes randomness from `rng`; later calls
        for the same round return the cached draw.
        """
        cached = self._draws.get(round_number)
        if cached is not None:
            return cached

        draw = ThresholdDraw(
            round_number=round_number,
            low=self.low,
            high=self.high,
            value=rng.uniform(self.low, self.high),
            nonce=rng.getrandbits(32),
        )
        self._draws[round_number] = draw
        return draw

    def get(self, round_number: int) -> Optional[ThresholdDraw]:
        return self._draws.get(round_number)

    @property
    def history(self) -> List[ThresholdDraw]:
        return [self._draws[r] for r in sorted(self._draws)]


def threshold_rule(fraction: float, threshold: float, previous: int) -> int:
    """1 above the threshold, 0 below it, previous opinion on a tie."""
    if fraction > threshold:
        return 1
    if fraction < threshold:
        return 0
    return previous
