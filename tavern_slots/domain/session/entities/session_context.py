# tavern_slots/domain/session/entities/session_context.py
import copy
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from tavern_slots.domain.machine.services.win_evaluation import WinInfo, get_win_tier


class Phase(Enum):
    """Named states of the session state machine."""
    IDLE = "idle"
    SPINNING = "spinning"
    CHECKING_WIN = "checkingWin"
    EVALUATING_WIN = "evaluatingWin"
    SHOWING_WIN = "showingWin"
    COLLECTING_WIN = "collectingWin"
    CHECKING_AUTO_SPIN = "checkingAutoSpin"
    AUTO_SPIN_DELAY = "autoSpinDelay"
    CHECKING_AUTO_SPIN_CONTINUE = "checkingAutoSpinContinue"
    PAUSED = "paused"


# Phases left immediately through an unconditional guard chain
TRANSIENT_PHASES = frozenset({
    Phase.EVALUATING_WIN,
    Phase.COLLECTING_WIN,
    Phase.CHECKING_AUTO_SPIN,
    Phase.CHECKING_AUTO_SPIN_CONTINUE,
})

# Phases a PAUSE may interrupt (and RESUME may return to)
PAUSABLE_PHASES = frozenset({Phase.IDLE, Phase.SPINNING, Phase.AUTO_SPIN_DELAY})


class AnimationSpeed(Enum):
    VERY_SLOW = "very-slow"
    SLOW = "slow"
    NORMAL = "normal"
    FAST = "fast"
    VERY_FAST = "very-fast"

    @classmethod
    def parse(cls, value: Any) -> "AnimationSpeed":
        """Accept an AnimationSpeed, its value ("very-fast") or its name ("VERY_FAST")."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        try:
            return cls(text.lower().replace("_", "-"))
        except ValueError:
            pass
        try:
            return cls[text.upper().replace("-", "_")]
        except KeyError:
            raise ValueError(f"Unknown animation speed: {value!r}") from None


@dataclass
class AutoSpinState:
    """Auto-spin run state. `remaining` only means something while `active`."""
    active: bool = False
    stop_requested: bool = False
    count: int = 0
    remaining: int = 0
    infinite: bool = False
    completed: int = 0

    def clear(self):
        """End the run; `completed` is kept so the last run can still be reported."""
        self.active = False
        self.stop_requested = False
        self.count = 0
        self.remaining = 0
        self.infinite = False

    def has_spins_left(self) -> bool:
        return self.infinite or self.remaining > 0


@dataclass
class SessionContext:
    """
    Mutable session record. Owned by the SessionStateMachine; everybody
    else only ever sees SessionSnapshot copies of it.
    """
    credits: Decimal
    bet_amount: Decimal
    max_bet: Decimal
    last_win: Decimal = Decimal(0)
    animation_speed: AnimationSpeed = AnimationSpeed.NORMAL
    auto_spin_delay_ms: Optional[int] = None
    instant_mode: bool = False
    auto_spin: AutoSpinState = field(default_factory=AutoSpinState)
    result_grid: Optional[Tuple[Tuple[int, ...], ...]] = None
    win_info: WinInfo = field(default_factory=WinInfo.empty)
    paused_from: Optional[Phase] = None
    resuming_from_pause: bool = False

    def can_afford_bet(self) -> bool:
        return self.credits >= self.bet_amount

    def clear_win(self):
        self.win_info = WinInfo.empty()
        self.last_win = Decimal(0)

    def copy(self) -> "SessionContext":
        return copy.deepcopy(self)


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session after a transition."""
    phase: Phase
    context: SessionContext
    sequence: int = 0

    @property
    def is_spinning(self) -> bool:
        return self.phase is Phase.SPINNING

    def to_dict(self, win_tiers: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        ctx = self.context
        tier = get_win_tier(ctx.win_info.amount, ctx.bet_amount, win_tiers)
        return {
            "sequence": self.sequence,
            "phase": self.phase.value,
            "credits": str(ctx.credits),
            "bet_amount": str(ctx.bet_amount),
            "max_bet": str(ctx.max_bet),
            "last_win": str(ctx.last_win),
            "is_spinning": self.is_spinning,
            "is_auto_spinning": ctx.auto_spin.active,
            "stop_auto_spin_after_round": ctx.auto_spin.stop_requested,
            "auto_spin_count": ctx.auto_spin.count,
            "auto_spin_remaining": None if ctx.auto_spin.infinite else ctx.auto_spin.remaining,
            "is_infinite_auto_spin": ctx.auto_spin.infinite,
            "spins_completed": ctx.auto_spin.completed,
            "animation_speed": ctx.animation_speed.value,
            "auto_spin_delay_ms": ctx.auto_spin_delay_ms,
            "instant_mode": ctx.instant_mode,
            "result_grid": [list(row) for row in ctx.result_grid] if ctx.result_grid else None,
            "win": ctx.win_info.to_dict(),
            "win_tier": tier.value if tier else None,
            "paused_from": ctx.paused_from.value if ctx.paused_from else None,
            "resuming_from_pause": ctx.resuming_from_pause,
        }
