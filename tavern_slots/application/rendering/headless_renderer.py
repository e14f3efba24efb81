# tavern_slots/application/rendering/headless_renderer.py
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from tavern_slots.domain.events.event_dispatcher import EventDispatcher
from tavern_slots.domain.events.session_events import SessionEvent, SessionEventType
from tavern_slots.infrastructure.rng.strategies.rng_strategy import RNGStrategy
from tavern_slots.infrastructure.timing.timer_scheduler import TimerHandle, TimerScheduler

Grid = Tuple[Tuple[int, ...], ...]


class HeadlessReelRenderer:
    """
    Reel renderer without graphics.

    Draws every cell independently and uniformly from the symbol alphabet,
    stops the columns left to right over the requested duration and hands
    the finished grid to the completion callback exactly once per spin.
    Column stops are published as REEL_STOPPED events for audio sync.
    """
    def __init__(self, rng: RNGStrategy, symbols: Sequence[int], scheduler: TimerScheduler,
                 rows: int = 3, columns: int = 5,
                 event_dispatcher: Optional[EventDispatcher] = None, session_id: str = ""):
        self.logger = logging.getLogger("application.rendering.headless")
        self.rng = rng
        self.symbols = list(symbols)
        self.scheduler = scheduler
        self.rows = rows
        self.columns = columns
        self.event_dispatcher = event_dispatcher
        self.session_id = session_id

        self._column_timers: List[TimerHandle] = []
        self.spins_rendered = 0

    @property
    def is_spinning(self) -> bool:
        return any(timer.active for timer in self._column_timers)

    def draw_grid(self) -> Grid:
        """Draw a rows x columns grid."""
        cells = self.rng.draw_symbols(self.symbols, self.rows * self.columns)
        return tuple(
            tuple(cells[row * self.columns:(row + 1) * self.columns]) for row in range(self.rows)
        )

    def spin(self, duration_ms: int, scroll_speed: int,
             on_complete: Callable[[Grid], None]) -> Optional[Grid]:
        """
        Start a spin.

        Args:
            duration_ms: Time until the last column stops
            scroll_speed: Reel scroll speed (recorded for presentation only)
            on_complete: Called with the final grid when the last column stops

        Returns:
            The grid that will be reported on completion, or None if a spin is already in flight
        """
        if self.is_spinning:
            self.logger.warning("Spin requested while a spin is in flight; ignoring")
            return None

        grid = self.draw_grid()
        self.spins_rendered += 1
        self.logger.debug(f"Spin #{self.spins_rendered}: {duration_ms}ms at scroll speed {scroll_speed}")

        self._column_timers = []
        for column in range(self.columns):
            stop_at = duration_ms * (column + 1) / self.columns
            last = column == self.columns - 1
            self._column_timers.append(self.scheduler.schedule(
                stop_at,
                self._make_stop_callback(column, grid, on_complete if last else None),
                name=f"reel-{column}",
            ))
        return grid

    def cancel(self):
        """Abandon the current spin without reporting a grid (session teardown)."""
        for timer in self._column_timers:
            timer.cancel()
        self._column_timers = []

    def _make_stop_callback(self, column: int, grid: Grid,
                            on_complete: Optional[Callable[[Grid], None]]) -> Callable[[], None]:
        def stop():
            if self.event_dispatcher:
                self.event_dispatcher.dispatch(SessionEvent(
                    type=SessionEventType.REEL_STOPPED,
                    session_id=self.session_id,
                    data={"column": column, "symbols": [row[column] for row in grid]},
                ))
            if on_complete:
                on_complete(grid)
        return stop
