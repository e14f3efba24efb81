# tavern_slots/domain/events/session_events.py
from enum import Enum, auto
from dataclasses import dataclass
from typing import Optional

from .event_types import DomainEvent


class SessionEventType(Enum):
    """Event types published while a game session runs."""
    STATE_CHANGED = auto()      # phase change or context change; carries a snapshot
    SPIN_REQUESTED = auto()     # renderer was asked for a new grid
    REEL_STOPPED = auto()       # one renderer column came to rest
    WIN_EVALUATED = auto()      # evaluator produced a WinInfo for the last grid
    SESSION_STARTED = auto()
    SESSION_ENDED = auto()


@dataclass
class SessionEvent(DomainEvent):
    """Event representing something that happened during a game session."""
    session_id: str = ""
    snapshot: Optional[object] = None

    def __post_init__(self):
        super().__post_init__()
        self.data["session_id"] = self.session_id

    def __str__(self) -> str:
        phase = getattr(getattr(self.snapshot, "phase", None), "value", None)
        suffix = f", phase={phase}" if phase else ""
        return f"SessionEvent(type={self.type.name}, session={self.session_id}{suffix})"
