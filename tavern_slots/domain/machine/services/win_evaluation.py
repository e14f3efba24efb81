# tavern_slots/domain/machine/services/win_evaluation.py
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..entities.payline_table import Cell, PaylineTable
from ..entities.pay_table import PayoutTiers, Number, to_decimal

Grid = Tuple[Tuple[int, ...], ...]

MIN_RUN_LENGTH = 3


@dataclass(frozen=True)
class WinningLine:
    """A scoring payline and the cells of its matched run."""
    payline_index: int
    cells: Tuple[Cell, ...]
    symbol: int
    run_length: int
    payout: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payline_index": self.payline_index,
            "cells": [list(cell) for cell in self.cells],
            "symbol": self.symbol,
            "run_length": self.run_length,
            "payout": str(self.payout),
        }


@dataclass(frozen=True)
class WinInfo:
    """Outcome of evaluating one grid."""
    amount: Decimal = Decimal(0)
    winning_positions: Tuple[WinningLine, ...] = field(default_factory=tuple)
    representative_symbol: Optional[int] = None

    @classmethod
    def empty(cls) -> "WinInfo":
        return cls()

    @property
    def is_win(self) -> bool:
        return self.amount > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": str(self.amount),
            "winning_positions": [line.to_dict() for line in self.winning_positions],
            "representative_symbol": self.representative_symbol,
        }


class WinTier(Enum):
    BIG = "big"
    MEGA = "mega"
    EPIC = "epic"


DEFAULT_WIN_TIERS: Dict[str, int] = {"big": 10, "mega": 20, "epic": 50}


def get_win_tier(amount: Number, bet: Number,
                 thresholds: Optional[Dict[str, Number]] = None) -> Optional[WinTier]:
    """
    Classify a win by its multiple of the bet.

    Args:
        amount: Win amount
        bet: Bet that produced it
        thresholds: Optional {"big", "mega", "epic"} bet multiples

    Returns:
        The highest tier reached, or None for an ordinary (or no) win
    """
    bet = to_decimal(bet)
    if bet <= 0:
        return None

    thresholds = thresholds or DEFAULT_WIN_TIERS
    multiplier = to_decimal(amount) / bet

    if multiplier >= to_decimal(thresholds["epic"]):
        return WinTier.EPIC
    if multiplier >= to_decimal(thresholds["mega"]):
        return WinTier.MEGA
    if multiplier >= to_decimal(thresholds["big"]):
        return WinTier.BIG
    return None


class WinEvaluator:
    """
    Scores a completed reel grid against a payline table.

    For every payline the run of identical symbols is counted from the
    first cell, left to right, up to the first mismatch. Runs of at least
    three symbols pay according to the payout tiers; the total is the sum
    over all scoring paylines. The representative symbol is the symbol of
    the first scoring payline in table order.

    Evaluation is pure: the same grid always yields the same WinInfo.
    """

    def __init__(self, paylines: PaylineTable, payout_tiers: PayoutTiers,
                 min_run: int = MIN_RUN_LENGTH):
        self._paylines = paylines
        self._payout_tiers = payout_tiers
        self._min_run = min_run

        self.logger = logging.getLogger("domain.machine.win_evaluator")

    @property
    def paylines(self) -> PaylineTable:
        return self._paylines

    @property
    def payout_tiers(self) -> PayoutTiers:
        return self._payout_tiers

    def evaluate(self, grid: Sequence[Sequence[int]]) -> WinInfo:
        """
        Evaluate a grid.

        Args:
            grid: rows x columns matrix of symbol ids

        Returns:
            WinInfo with total payout, winning lines and representative symbol

        Raises:
            ValueError: If the grid does not match the payline table's shape
        """
        grid = self._normalize_grid(grid)

        total = Decimal(0)
        winning_lines: List[WinningLine] = []
        representative = None

        for index, payline in enumerate(self._paylines):
            line = self._evaluate_line(grid, index, payline)
            if line is None:
                continue

            winning_lines.append(line)
            total += line.payout
            if representative is None:
                representative = line.symbol

        if winning_lines:
            self.logger.debug(
                f"Grid scored {total} on {len(winning_lines)} paylines, "
                f"representative symbol {representative}"
            )

        return WinInfo(
            amount=total,
            winning_positions=tuple(winning_lines),
            representative_symbol=representative,
        )

    def _evaluate_line(self, grid: Grid, index: int,
                       payline: Tuple[Cell, ...]) -> Optional[WinningLine]:
        first_row, first_col = payline[0]
        symbol = grid[first_row][first_col]

        run_length = 1
        for row, col in payline[1:]:
            if grid[row][col] != symbol:
                break
            run_length += 1

        if run_length < self._min_run:
            return None

        payout = self._payout_tiers.payout_for(run_length)
        if payout <= 0:
            return None

        return WinningLine(
            payline_index=index,
            cells=tuple(payline[:run_length]),
            symbol=symbol,
            run_length=run_length,
            payout=payout,
        )

    def _normalize_grid(self, grid: Sequence[Sequence[int]]) -> Grid:
        rows, columns = self._paylines.rows, self._paylines.columns

        if grid is None or len(grid) != rows:
            error_msg = f"Invalid grid: expected {rows} rows, got {grid!r}"
            self.logger.error(error_msg)
            raise ValueError(error_msg)

        normalized = []
        for row_index, row in enumerate(grid):
            if len(row) != columns:
                error_msg = f"Invalid grid row {row_index}: expected {columns} cells, got {len(row)}"
                self.logger.error(error_msg)
                raise ValueError(error_msg)
            for cell in row:
                if isinstance(cell, bool) or not isinstance(cell, int):
                    error_msg = f"Invalid symbol id in grid row {row_index}: {cell!r}"
                    self.logger.error(error_msg)
                    raise ValueError(error_msg)
            normalized.append(tuple(row))

        return tuple(normalized)
