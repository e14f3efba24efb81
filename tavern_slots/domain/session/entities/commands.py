# tavern_slots/domain/session/entities/commands.py
"""
Commands accepted by the session state machine.

The set is closed: every command the machine understands is one of the
frozen dataclasses below, and the machine's transition table is keyed on
their classes.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Sequence, Tuple

from tavern_slots.domain.machine.services.win_evaluation import WinInfo, WinningLine
from .session_context import AnimationSpeed, Phase


@dataclass(frozen=True)
class Command:
    """Base class of all commands."""

    @property
    def name(self) -> str:
        return COMMAND_NAMES.get(type(self), type(self).__name__)


@dataclass(frozen=True)
class Spin(Command):
    pass


@dataclass(frozen=True)
class InstantSpin(Command):
    pass


@dataclass(frozen=True)
class SetBet(Command):
    amount: Decimal = Decimal(0)


@dataclass(frozen=True)
class MaxBet(Command):
    pass


@dataclass(frozen=True)
class ToggleAutoSpin(Command):
    pass


@dataclass(frozen=True)
class StartAutoSpin(Command):
    count: int = 0
    is_infinite: bool = False


@dataclass(frozen=True)
class RequestAutoSpinStop(Command):
    pass


@dataclass(frozen=True)
class SpinComplete(Command):
    grid: Tuple[Tuple[int, ...], ...] = ()

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[int]]) -> "SpinComplete":
        return cls(grid=tuple(tuple(row) for row in rows))


@dataclass(frozen=True)
class WinCheckComplete(Command):
    """
    Result of evaluating the last grid. A non-empty `error` marks a failed
    evaluation; the machine treats it as a zero win.
    """
    amount: Decimal = Decimal(0)
    winning_positions: Tuple[WinningLine, ...] = ()
    representative_symbol: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def from_win_info(cls, win_info: WinInfo) -> "WinCheckComplete":
        return cls(
            amount=win_info.amount,
            winning_positions=win_info.winning_positions,
            representative_symbol=win_info.representative_symbol,
        )

    @classmethod
    def failed(cls, reason: str) -> "WinCheckComplete":
        return cls(error=reason)


@dataclass(frozen=True)
class WinAnimationComplete(Command):
    pass


@dataclass(frozen=True)
class SetAnimationSpeed(Command):
    speed: AnimationSpeed = AnimationSpeed.NORMAL


@dataclass(frozen=True)
class SetAutoSpinDelay(Command):
    ms: Optional[int] = None


@dataclass(frozen=True)
class EnableTurbo(Command):
    pass


@dataclass(frozen=True)
class DisableTurbo(Command):
    pass


@dataclass(frozen=True)
class Pause(Command):
    pass


@dataclass(frozen=True)
class Resume(Command):
    pass


@dataclass(frozen=True)
class TimerElapsed(Command):
    """Internal: a state-entry timer fired. Stale when `entry_serial` no longer matches."""
    phase: Phase = Phase.IDLE
    entry_serial: int = 0


COMMAND_NAMES = {
    Spin: "SPIN",
    InstantSpin: "INSTANT_SPIN",
    SetBet: "SET_BET",
    MaxBet: "MAX_BET",
    ToggleAutoSpin: "TOGGLE_AUTO_SPIN",
    StartAutoSpin: "START_AUTO_SPIN",
    RequestAutoSpinStop: "REQUEST_AUTO_SPIN_STOP",
    SpinComplete: "SPIN_COMPLETE",
    WinCheckComplete: "WIN_CHECK_COMPLETE",
    WinAnimationComplete: "WIN_ANIMATION_COMPLETE",
    SetAnimationSpeed: "SET_ANIMATION_SPEED",
    SetAutoSpinDelay: "SET_AUTO_SPIN_DELAY",
    EnableTurbo: "ENABLE_TURBO",
    DisableTurbo: "DISABLE_TURBO",
    Pause: "PAUSE",
    Resume: "RESUME",
    TimerElapsed: "TIMER_ELAPSED",
}


def parse_command(name: str, **payload: Any) -> Command:
    """
    Build a command from its wire name, e.g. parse_command("SET_BET", amount=20).

    Raises:
        ValueError: If the name is unknown or internal
    """
    lookup = {value: key for key, value in COMMAND_NAMES.items() if key is not TimerElapsed}
    command_class = lookup.get(name.upper())
    if command_class is None:
        raise ValueError(f"Unknown command: {name}")

    if command_class is SetBet:
        payload["amount"] = Decimal(str(payload.get("amount", 0)))
    elif command_class is SetAnimationSpeed:
        payload["speed"] = AnimationSpeed.parse(payload.get("speed", "normal"))
    elif command_class is SpinComplete:
        return SpinComplete.from_rows(payload.get("grid", ()))

    return command_class(**payload)
