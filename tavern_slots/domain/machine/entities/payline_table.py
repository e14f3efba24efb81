# tavern_slots/domain/machine/entities/payline_table.py
import logging
from typing import Iterator, List, Sequence, Tuple

Cell = Tuple[int, int]  # (row, col)
Payline = Tuple[Cell, ...]

GRID_ROWS = 3
GRID_COLUMNS = 5


# 20 paylines over a 3x5 grid, in evaluation order
DEFAULT_PAYLINES: List[List[List[int]]] = [
    [[0, 0], [0, 1], [0, 2], [0, 3], [0, 4]],  # top row
    [[1, 0], [1, 1], [1, 2], [1, 3], [1, 4]],  # middle row
    [[2, 0], [2, 1], [2, 2], [2, 3], [2, 4]],  # bottom row
    [[0, 0], [1, 1], [2, 2], [1, 3], [0, 4]],  # V
    [[2, 0], [1, 1], [0, 2], [1, 3], [2, 4]],  # inverted V
    [[0, 0], [0, 1], [1, 2], [2, 3], [2, 4]],  # W
    [[2, 0], [2, 1], [1, 2], [0, 3], [0, 4]],  # M
    [[1, 0], [0, 1], [1, 2], [2, 3], [1, 4]],  # zigzag up
    [[1, 0], [2, 1], [1, 2], [0, 3], [1, 4]],  # zigzag down
    [[2, 0], [1, 1], [1, 2], [1, 3], [0, 4]],  # steps up
    [[0, 0], [1, 1], [1, 2], [1, 3], [2, 4]],  # steps down
    [[1, 0], [0, 1], [0, 2], [0, 3], [1, 4]],  # mountain
    [[1, 0], [2, 1], [2, 2], [2, 3], [1, 4]],  # valley
    [[2, 0], [2, 1], [1, 2], [1, 3], [0, 4]],  # lightning up
    [[0, 0], [0, 1], [1, 2], [1, 3], [2, 4]],  # lightning down
    [[0, 0], [2, 1], [1, 2], [2, 3], [0, 4]],  # bat wings
    [[2, 0], [0, 1], [1, 2], [0, 3], [2, 4]],  # inverted bat wings
    [[1, 0], [0, 1], [2, 2], [0, 3], [2, 4]],  # snake up
    [[1, 0], [2, 1], [0, 2], [2, 3], [0, 4]],  # snake down
    [[0, 0], [0, 1], [0, 2], [1, 3], [2, 4]],  # crown
]


class PaylineTable:
    """
    Immutable, ordered list of paylines over a 3x5 grid.

    Each payline holds exactly one (row, col) cell per column, in column
    order. Table order is significant: it is the tie-break order used when
    several paylines score on the same grid.
    """
    def __init__(self, paylines: Sequence[Sequence[Sequence[int]]],
                 rows: int = GRID_ROWS, columns: int = GRID_COLUMNS):
        """
        Build and validate the table.

        Args:
            paylines: Sequence of paylines, each a sequence of [row, col] pairs
            rows: Number of grid rows
            columns: Number of grid columns (= cells per payline)

        Raises:
            ValueError: If the table is empty or any payline is malformed
        """
        self.logger = logging.getLogger("domain.machine.paylines")
        self._rows = rows
        self._columns = columns

        if not paylines:
            raise ValueError("Payline table must contain at least one payline")

        self._paylines: Tuple[Payline, ...] = tuple(
            self._validate(index, payline) for index, payline in enumerate(paylines)
        )

        seen = {}
        for index, payline in enumerate(self._paylines):
            if payline in seen:
                self.logger.warning(
                    f"Payline {index} duplicates payline {seen[payline]}: {list(payline)}"
                )
            else:
                seen[payline] = index

        self.logger.debug(f"Loaded {len(self._paylines)} paylines")

    def _validate(self, index: int, payline: Sequence[Sequence[int]]) -> Payline:
        if len(payline) != self._columns:
            raise ValueError(
                f"Payline {index} must have exactly {self._columns} cells, got {len(payline)}"
            )

        cells = []
        for col, cell in enumerate(payline):
            if len(cell) != 2:
                raise ValueError(f"Payline {index}: cell {cell!r} is not a (row, col) pair")
            row, cell_col = int(cell[0]), int(cell[1])
            if cell_col != col:
                raise ValueError(
                    f"Payline {index}: cell {col} must be in column {col}, got column {cell_col}"
                )
            if not 0 <= row < self._rows:
                raise ValueError(f"Payline {index}: row {row} out of range 0..{self._rows - 1}")
            cells.append((row, cell_col))

        return tuple(cells)

    @classmethod
    def default(cls) -> "PaylineTable":
        return cls(DEFAULT_PAYLINES)

    @classmethod
    def from_config(cls, paylines_config: List[List[List[int]]]) -> "PaylineTable":
        """Build a table from the `paylines` config section, or the default table if empty."""
        if not paylines_config:
            return cls.default()
        return cls(paylines_config)

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def columns(self) -> int:
        return self._columns

    def __len__(self) -> int:
        return len(self._paylines)

    def __iter__(self) -> Iterator[Payline]:
        return iter(self._paylines)

    def __getitem__(self, index: int) -> Payline:
        return self._paylines[index]

    def __repr__(self) -> str:
        return f"PaylineTable({len(self._paylines)} paylines, {self._rows}x{self._columns})"
