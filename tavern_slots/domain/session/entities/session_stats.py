# tavern_slots/domain/session/entities/session_stats.py
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from tavern_slots.domain.machine.services.win_evaluation import WinTier

# Wins kept in the recent-win history, newest first
MAX_WIN_HISTORY = 6


@dataclass
class WinRecord:
    """One paying spin, as shown on the win history board."""
    amount: Decimal
    bet_amount: Decimal
    symbol: Optional[int] = None
    tier: Optional[WinTier] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def multiplier(self) -> float:
        return float(self.amount / self.bet_amount) if self.bet_amount else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": str(self.amount),
            "bet_amount": str(self.bet_amount),
            "multiplier": round(self.multiplier, 2),
            "symbol": self.symbol,
            "tier": self.tier.value if self.tier else None,
            "timestamp": self.timestamp.strftime('%Y-%m-%d %H:%M:%S'),
        }


@dataclass
class SessionStats:
    """Running totals for one game session."""
    session_id: str
    start_credits: Decimal = Decimal(0)
    end_credits: Decimal = Decimal(0)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    total_spins: int = 0
    win_count: int = 0
    total_bet: Decimal = Decimal(0)
    total_win: Decimal = Decimal(0)
    biggest_win: Decimal = Decimal(0)
    failed_win_checks: int = 0
    tier_counts: Dict[str, int] = field(default_factory=lambda: {tier.value: 0 for tier in WinTier})
    recent_wins: List[WinRecord] = field(default_factory=list)
    max_history: int = MAX_WIN_HISTORY

    def record_spin(self, bet_amount: Decimal):
        self.total_spins += 1
        self.total_bet += bet_amount

    def record_win(self, win_amount: Decimal, tier: Optional[WinTier] = None,
                   bet_amount: Optional[Decimal] = None, symbol: Optional[int] = None):
        """
        Count a paying spin and push it onto the recent-win history.

        Args:
            win_amount: Total payout of the spin; zero or less is ignored
            tier: Win tier reached, if any
            bet_amount: Bet that produced the win
            symbol: Representative symbol of the win
        """
        if win_amount <= 0:
            return
        self.win_count += 1
        self.total_win += win_amount
        self.biggest_win = max(self.biggest_win, win_amount)
        if tier is not None:
            self.tier_counts[tier.value] += 1

        self.recent_wins.insert(0, WinRecord(
            amount=win_amount,
            bet_amount=bet_amount if bet_amount is not None else Decimal(0),
            symbol=symbol,
            tier=tier,
        ))
        del self.recent_wins[self.max_history:]

    def clear_win_history(self):
        self.recent_wins.clear()

    @property
    def win_rate(self) -> float:
        return self.win_count / self.total_spins if self.total_spins else 0.0

    @property
    def return_to_player(self) -> float:
        return float(self.total_win / self.total_bet) if self.total_bet else 0.0

    @property
    def net_result(self) -> Decimal:
        return self.total_win - self.total_bet

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at.strftime('%Y-%m-%d %H:%M:%S') if self.started_at else None,
            "ended_at": self.ended_at.strftime('%Y-%m-%d %H:%M:%S') if self.ended_at else None,
            "start_credits": str(self.start_credits),
            "end_credits": str(self.end_credits),
            "total_spins": self.total_spins,
            "win_count": self.win_count,
            "win_rate": round(self.win_rate, 4),
            "total_bet": str(self.total_bet),
            "total_win": str(self.total_win),
            "net_result": str(self.net_result),
            "return_to_player": round(self.return_to_player, 4),
            "biggest_win": str(self.biggest_win),
            "failed_win_checks": self.failed_win_checks,
            "tier_counts": dict(self.tier_counts),
            "recent_wins": [record.to_dict() for record in self.recent_wins],
        }
