# tavern_slots/domain/machine/entities/pay_table.py
import logging
from decimal import Decimal
from typing import Dict, Any, Mapping, Union

Number = Union[int, float, str, Decimal]


# Credits paid per scoring payline, by run length
DEFAULT_PAYOUT_TIERS: Dict[int, int] = {
    3: 30,
    4: 60,
    5: 250,
}


def to_decimal(value: Number) -> Decimal:
    """Convert a config or command value to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class PayoutTiers:
    """
    Payout per scoring payline as a function of run length.

    Tiers must be strictly increasing in run length. The longest tier is
    expected to pay well above a linear extrapolation of the two below it;
    a flatter table is accepted but logged.
    """
    def __init__(self, tiers: Mapping[int, Number]):
        self.logger = logging.getLogger("domain.machine.pay_table")

        if not tiers:
            raise ValueError("Payout tiers must not be empty")

        parsed = {}
        for run_length, payout in tiers.items():
            run_length = int(run_length)
            payout = to_decimal(payout)
            if run_length < 1:
                raise ValueError(f"Invalid run length in payout tiers: {run_length}")
            if payout <= 0:
                raise ValueError(f"Payout for run length {run_length} must be positive, got {payout}")
            parsed[run_length] = payout

        self._tiers: Dict[int, Decimal] = dict(sorted(parsed.items()))

        lengths = list(self._tiers)
        for shorter, longer in zip(lengths, lengths[1:]):
            if self._tiers[longer] <= self._tiers[shorter]:
                raise ValueError(
                    f"Payout tiers must be strictly increasing: "
                    f"{shorter} -> {self._tiers[shorter]}, {longer} -> {self._tiers[longer]}"
                )

        if len(lengths) >= 3:
            a, b, c = (self._tiers[n] for n in lengths[-3:])
            if c <= b + (b - a):
                self.logger.warning(
                    f"Top payout tier {c} is not above the linear extrapolation {b + (b - a)}"
                )

    @classmethod
    def from_config(cls, config: Dict[Any, Number]) -> "PayoutTiers":
        return cls(config or DEFAULT_PAYOUT_TIERS)

    @property
    def min_run(self) -> int:
        return next(iter(self._tiers))

    @property
    def max_run(self) -> int:
        return next(reversed(self._tiers))

    def payout_for(self, run_length: int) -> Decimal:
        """
        Get the payout for a run.

        Args:
            run_length: Number of matching symbols, left-anchored

        Returns:
            Payout in credits; 0 below the lowest tier, capped at the highest tier
        """
        if run_length < self.min_run:
            return Decimal(0)
        if run_length >= self.max_run:
            return self._tiers[self.max_run]
        # Fall back to the nearest lower tier if the table has gaps
        while run_length not in self._tiers:
            run_length -= 1
        return self._tiers[run_length]

    def to_dict(self) -> Dict[int, Decimal]:
        return dict(self._tiers)
