# tavern_slots/domain/session/services/delay_policy.py
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from tavern_slots.domain.session.entities.session_context import AnimationSpeed


# speed -> (spin duration ms, auto-spin gap ms, reel scroll speed)
DEFAULT_SPEED_TABLE: Dict[AnimationSpeed, Tuple[int, int, int]] = {
    AnimationSpeed.VERY_SLOW: (2000, 400, 4),
    AnimationSpeed.SLOW: (1000, 300, 6),
    AnimationSpeed.NORMAL: (550, 150, 10),
    AnimationSpeed.FAST: (400, 70, 16),
    AnimationSpeed.VERY_FAST: (250, 50, 22),
}

# (minimum bet multiple, hold ms), checked from the top
DEFAULT_WIN_HOLD_BANDS: List[Tuple[int, int]] = [
    (50, 5000),
    (20, 4000),
    (10, 3000),
    (0, 2100),
]


@dataclass(frozen=True)
class DelayProfile:
    """Concrete durations for one speed setting."""
    speed: AnimationSpeed
    spin_duration_ms: int
    auto_spin_gap_ms: int
    scroll_speed: int
    win_hold_bands: Tuple[Tuple[Decimal, int], ...]

    def win_hold_ms(self, payout_multiplier: Union[int, float, Decimal]) -> int:
        """
        How long to hold the win display.

        Args:
            payout_multiplier: Win amount divided by the bet

        Returns:
            Hold time in milliseconds; larger wins are held longer
        """
        multiplier = Decimal(str(payout_multiplier))
        for threshold, hold_ms in self.win_hold_bands:
            if multiplier >= threshold:
                return hold_ms
        return self.win_hold_bands[-1][1]


class DelayPolicy:
    """
    Maps the animation-speed setting to spin, auto-spin and win-display
    durations. Holds no session state; callers resolve a fresh profile each
    time a timed operation starts, so a speed change only affects the next one.
    """

    def __init__(self, speed_table: Optional[Dict[AnimationSpeed, Tuple[int, int, int]]] = None,
                 win_hold_bands: Optional[List[Tuple[Any, int]]] = None):
        self.logger = logging.getLogger("domain.session.delay_policy")

        table = dict(DEFAULT_SPEED_TABLE)
        table.update(speed_table or {})
        for speed, (spin_ms, gap_ms, scroll) in table.items():
            if spin_ms < 0 or gap_ms < 0 or scroll <= 0:
                raise ValueError(f"Invalid delay row for {speed.value}: {(spin_ms, gap_ms, scroll)}")
        self._table = table

        bands = sorted(
            ((Decimal(str(threshold)), int(hold_ms)) for threshold, hold_ms in
             (win_hold_bands or DEFAULT_WIN_HOLD_BANDS)),
            key=lambda band: band[0],
            reverse=True,
        )
        if len(bands) < 3:
            raise ValueError("Win hold needs at least 3 payout-size bands")
        holds = [hold for _, hold in bands]
        if holds != sorted(holds, reverse=True):
            raise ValueError(f"Win hold must not shrink as the win grows: {bands}")
        self._win_hold_bands = tuple(bands)

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "DelayPolicy":
        """
        Build from the `delays` config section:

            delays:
              speeds:
                fast: {spin_ms: 400, auto_spin_gap_ms: 70, scroll_speed: 16}
              win_hold:
                - {min_multiplier: 50, hold_ms: 5000}
        """
        config = config or {}
        speed_table = {}
        for name, row in (config.get("speeds") or {}).items():
            speed = AnimationSpeed.parse(name)
            default_spin, default_gap, default_scroll = DEFAULT_SPEED_TABLE[speed]
            speed_table[speed] = (
                int(row.get("spin_ms", default_spin)),
                int(row.get("auto_spin_gap_ms", default_gap)),
                int(row.get("scroll_speed", default_scroll)),
            )

        bands = None
        if config.get("win_hold"):
            bands = [(band["min_multiplier"], band["hold_ms"]) for band in config["win_hold"]]

        return cls(speed_table, bands)

    def resolve(self, speed: AnimationSpeed,
                auto_spin_delay_override: Optional[int] = None) -> DelayProfile:
        """
        Resolve the durations for a speed setting.

        Args:
            speed: Current animation speed
            auto_spin_delay_override: Gap set through SET_AUTO_SPIN_DELAY, if any

        Returns:
            DelayProfile for the next timed operation
        """
        spin_ms, gap_ms, scroll = self._table[speed]
        if auto_spin_delay_override is not None:
            gap_ms = auto_spin_delay_override

        return DelayProfile(
            speed=speed,
            spin_duration_ms=spin_ms,
            auto_spin_gap_ms=gap_ms,
            scroll_speed=scroll,
            win_hold_bands=self._win_hold_bands,
        )
