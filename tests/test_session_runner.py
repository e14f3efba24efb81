# tests/test_session_runner.py
import unittest
import sys
import os
from decimal import Decimal
from typing import List, Sequence

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from tavern_slots.application.rendering.headless_renderer import HeadlessReelRenderer
from tavern_slots.application.simulation.session_runner import GameSessionRunner
from tavern_slots.domain.events.event_dispatcher import EventDispatcher
from tavern_slots.domain.events.session_events import SessionEvent, SessionEventType
from tavern_slots.domain.machine.entities.pay_table import PayoutTiers
from tavern_slots.domain.machine.entities.payline_table import PaylineTable
from tavern_slots.domain.machine.entities.symbols import DEFAULT_SYMBOLS, load_symbol_ids
from tavern_slots.domain.machine.services.win_evaluation import WinEvaluator, WinTier
from tavern_slots.domain.session.entities.session_context import AnimationSpeed, Phase, SessionContext
from tavern_slots.domain.session.entities.session_stats import MAX_WIN_HISTORY, SessionStats
from tavern_slots.domain.session.state_machine.session_state_machine import SessionStateMachine
from tavern_slots.infrastructure.timing.timer_scheduler import ManualTimerScheduler, ThreadingTimerScheduler

TOP_ROW = [[0, 0], [0, 1], [0, 2], [0, 3], [0, 4]]
BOTTOM_ROW = [[2, 0], [2, 1], [2, 2], [2, 3], [2, 4]]

LOSE_GRID = (
    (0, 1, 2, 3, 4),
    (1, 2, 3, 4, 5),
    (2, 3, 4, 5, 0),
)
WIN_GRID = (
    (0, 0, 0, 3, 2),
    (4, 1, 2, 5, 3),
    (3, 2, 4, 1, 5),
)
SPIN_MS = 550


class ScriptedRNG:
    """Hands out predetermined grids; repeats the last one when the script runs out."""

    def __init__(self, grids: Sequence[Sequence[Sequence[int]]]):
        self.grids = list(grids)
        self.draws = 0

    def get_random_int(self, min_val: int, max_val: int) -> int:
        return min_val

    def draw_symbols(self, symbols: Sequence[int], count: int) -> List[int]:
        grid = self.grids[min(self.draws, len(self.grids) - 1)]
        self.draws += 1
        cells = [cell for row in grid for cell in row]
        assert len(cells) == count
        return cells

    def seed(self, seed_value: int) -> None:
        pass


class BrokenEvaluator:
    def evaluate(self, grid):
        raise RuntimeError("pay table unavailable")


class SessionRunnerTestCase(unittest.TestCase):

    def make_runner(self, grids, credits=100, evaluator=None, scheduler=None):
        self.scheduler = scheduler or ManualTimerScheduler()
        self.dispatcher = EventDispatcher()
        self.events = []
        self.dispatcher.register_for_class(SessionEvent, self.events.append)

        context = SessionContext(credits=Decimal(credits), bet_amount=Decimal(10), max_bet=Decimal(100))
        machine = SessionStateMachine(context, self.scheduler, event_dispatcher=self.dispatcher, session_id="t1")
        self.renderer = HeadlessReelRenderer(
            ScriptedRNG(grids), load_symbol_ids(DEFAULT_SYMBOLS), self.scheduler,
            event_dispatcher=self.dispatcher, session_id="t1",
        )
        evaluator = evaluator or WinEvaluator(PaylineTable([TOP_ROW, BOTTOM_ROW]), PayoutTiers({3: 30, 4: 60, 5: 250}))
        self.runner = GameSessionRunner("t1", machine, self.renderer, evaluator, self.scheduler, self.dispatcher)
        self.runner.start()
        return self.runner

    def event_types(self):
        return [event.type for event in self.events]

    @property
    def phase(self):
        return self.runner.snapshot.phase


class TestManualPlay(SessionRunnerTestCase):

    def test_losing_spin(self):
        self.make_runner([LOSE_GRID])
        self.runner.spin()

        self.assertEqual(self.phase, Phase.SPINNING)
        self.assertTrue(self.renderer.is_spinning)

        self.scheduler.advance(SPIN_MS)

        self.assertEqual(self.phase, Phase.IDLE)
        self.assertEqual(self.runner.snapshot.context.result_grid, LOSE_GRID)
        self.assertEqual(self.runner.stats.total_spins, 1)
        self.assertEqual(self.runner.stats.total_bet, Decimal(10))
        self.assertEqual(self.event_types().count(SessionEventType.REEL_STOPPED), 5)
        self.assertIn(SessionEventType.SPIN_REQUESTED, self.event_types())
        self.assertIn(SessionEventType.WIN_EVALUATED, self.event_types())

    def test_reels_stop_left_to_right(self):
        self.make_runner([LOSE_GRID])
        self.runner.spin()
        self.scheduler.advance(SPIN_MS)

        columns = [event.data["column"] for event in self.events
                   if event.type is SessionEventType.REEL_STOPPED]
        self.assertEqual(columns, [0, 1, 2, 3, 4])

    def test_winning_spin(self):
        self.make_runner([WIN_GRID])
        self.runner.spin()
        self.scheduler.advance(SPIN_MS)

        snapshot = self.runner.snapshot
        self.assertEqual(snapshot.phase, Phase.SHOWING_WIN)
        self.assertEqual(snapshot.context.last_win, Decimal(30))
        self.assertEqual(snapshot.context.win_info.representative_symbol, 0)

        self.scheduler.run_until_idle()
        self.assertEqual(self.phase, Phase.IDLE)
        self.assertEqual(self.runner.snapshot.context.credits, Decimal(120))
        self.assertEqual(self.runner.stats.total_win, Decimal(30))
        self.assertEqual(self.runner.stats.win_count, 1)

    def test_failed_evaluation_does_not_stall(self):
        self.make_runner([WIN_GRID], evaluator=BrokenEvaluator())
        self.runner.spin()
        self.scheduler.advance(SPIN_MS)

        self.assertEqual(self.phase, Phase.IDLE)
        self.assertEqual(self.runner.snapshot.context.credits, Decimal(90))
        self.assertEqual(self.runner.stats.failed_win_checks, 1)

    def test_ui_settings(self):
        self.make_runner([LOSE_GRID])
        self.runner.set_bet(20)
        self.runner.set_animation_speed("fast")
        self.runner.set_turbo(True)
        self.runner.set_auto_spin_delay(300)

        ctx = self.runner.snapshot.context
        self.assertEqual(ctx.bet_amount, Decimal(20))
        self.assertEqual(ctx.animation_speed, AnimationSpeed.FAST)
        self.assertTrue(ctx.instant_mode)
        self.assertEqual(ctx.auto_spin_delay_ms, 300)

        self.runner.max_bet()
        self.assertEqual(self.runner.snapshot.context.bet_amount, Decimal(100))

    def test_skip_win_animation_collects_early(self):
        self.make_runner([WIN_GRID])
        self.runner.spin()
        self.scheduler.advance(SPIN_MS)
        self.assertEqual(self.phase, Phase.SHOWING_WIN)

        self.runner.skip_win_animation()

        self.assertEqual(self.phase, Phase.IDLE)
        self.assertEqual(self.runner.snapshot.context.credits, Decimal(120))
        self.assertEqual(self.scheduler.pending_count, 0)

    def test_refused_spin_is_logged(self):
        self.make_runner([LOSE_GRID])
        self.renderer.spin(SPIN_MS, 10, lambda grid: None)

        with self.assertLogs("application.session_runner.t1", level="WARNING"):
            self.runner.spin()
        self.assertEqual(self.phase, Phase.SPINNING)

    def test_spin_duration_follows_speed(self):
        self.make_runner([LOSE_GRID])
        self.runner.set_animation_speed(AnimationSpeed.VERY_SLOW)
        self.runner.spin()

        self.scheduler.advance(1999)
        self.assertEqual(self.phase, Phase.SPINNING)
        self.scheduler.advance(1)
        self.assertEqual(self.phase, Phase.IDLE)


class TestAutoPlay(SessionRunnerTestCase):

    def test_fixed_count_run(self):
        self.make_runner([LOSE_GRID])
        stats = self.runner.run_auto_spin(count=3)

        self.assertEqual(self.phase, Phase.IDLE)
        self.assertEqual(stats.total_spins, 3)
        self.assertEqual(self.runner.snapshot.context.credits, Decimal(70))
        self.assertFalse(self.runner.snapshot.context.auto_spin.active)
        self.assertEqual(self.renderer.spins_rendered, 3)

    def test_run_with_a_win(self):
        self.make_runner([WIN_GRID, LOSE_GRID])
        stats = self.runner.run_auto_spin(count=2)

        self.assertEqual(stats.total_spins, 2)
        self.assertEqual(stats.total_win, Decimal(30))
        self.assertEqual(self.runner.snapshot.context.credits, Decimal(110))

    def test_infinite_run_with_spin_limit(self):
        self.make_runner([LOSE_GRID])
        stats = self.runner.run_auto_spin(infinite=True, max_spins=5)

        self.assertEqual(self.phase, Phase.IDLE)
        self.assertEqual(stats.total_spins, 5)
        self.assertEqual(self.runner.snapshot.context.credits, Decimal(50))

    def test_infinite_run_ends_when_credits_run_out(self):
        self.make_runner([LOSE_GRID], credits=40)
        stats = self.runner.run_auto_spin(infinite=True)

        self.assertEqual(stats.total_spins, 4)
        self.assertEqual(self.runner.snapshot.context.credits, Decimal(0))
        self.assertEqual(self.phase, Phase.IDLE)

    def test_unaffordable_run_is_not_started(self):
        self.make_runner([LOSE_GRID], credits=5)
        stats = self.runner.run_auto_spin(count=3)

        self.assertEqual(stats.total_spins, 0)
        self.assertEqual(self.phase, Phase.IDLE)

    def test_stop_ends_session(self):
        self.make_runner([LOSE_GRID])
        self.runner.run_auto_spin(count=2)
        stats = self.runner.stop()

        self.assertFalse(self.runner.active)
        self.assertEqual(stats.start_credits, Decimal(100))
        self.assertEqual(stats.end_credits, Decimal(80))
        self.assertEqual(stats.net_result, Decimal(-20))
        self.assertEqual(self.event_types()[-1], SessionEventType.SESSION_ENDED)
        self.assertIn(SessionEventType.SESSION_STARTED, self.event_types())

    def test_stop_mid_spin_cancels_everything(self):
        self.make_runner([LOSE_GRID])
        self.runner.start_auto_spin(count=5)
        self.runner.stop()

        self.assertEqual(self.scheduler.pending_count, 0)
        self.assertFalse(self.renderer.is_spinning)


class TestWinHistory(SessionRunnerTestCase):

    def test_history_is_capped_newest_first(self):
        stats = SessionStats(session_id="h1")
        for amount in range(1, MAX_WIN_HISTORY + 3):
            stats.record_win(Decimal(amount), bet_amount=Decimal(1), symbol=amount % 6)
        stats.record_win(Decimal(0), bet_amount=Decimal(1))

        self.assertEqual(len(stats.recent_wins), MAX_WIN_HISTORY)
        self.assertEqual([r.amount for r in stats.recent_wins],
                         [Decimal(a) for a in range(MAX_WIN_HISTORY + 2, 2, -1)])
        self.assertEqual(stats.win_count, MAX_WIN_HISTORY + 2)

        stats.clear_win_history()
        self.assertEqual(stats.recent_wins, [])

    def test_records_tier_and_multiplier(self):
        stats = SessionStats(session_id="h2")
        stats.record_win(Decimal(500), WinTier.EPIC, bet_amount=Decimal(10), symbol=5)

        record = stats.to_dict()["recent_wins"][0]
        self.assertEqual(record["amount"], "500")
        self.assertEqual(record["multiplier"], 50.0)
        self.assertEqual(record["tier"], "epic")
        self.assertEqual(record["symbol"], 5)

    def test_runner_keeps_recent_wins(self):
        self.make_runner([WIN_GRID])
        self.runner.run_auto_spin(count=MAX_WIN_HISTORY + 2)

        history = self.runner.win_history
        self.assertEqual(self.runner.stats.win_count, MAX_WIN_HISTORY + 2)
        self.assertEqual(len(history), MAX_WIN_HISTORY)
        self.assertTrue(all(r.amount == Decimal(30) and r.bet_amount == Decimal(10) for r in history))
        self.assertTrue(all(r.symbol == 0 and r.tier is None for r in history))
        self.assertGreaterEqual(history[0].timestamp, history[-1].timestamp)


class TestVisibility(SessionRunnerTestCase):

    def test_hidden_during_spin_still_processes_result(self):
        self.make_runner([LOSE_GRID])
        self.runner.spin()
        self.runner.on_visibility_change(True)
        self.assertEqual(self.phase, Phase.PAUSED)

        self.scheduler.advance(SPIN_MS)
        self.assertEqual(self.phase, Phase.IDLE)

        self.runner.on_visibility_change(False)
        self.assertEqual(self.phase, Phase.IDLE)
        self.assertEqual(self.runner.stats.total_spins, 1)

    def test_resume_does_not_restart_reels(self):
        self.make_runner([LOSE_GRID])
        self.runner.spin()
        self.scheduler.advance(100)
        self.runner.on_visibility_change(True)
        self.runner.on_visibility_change(False)

        self.assertEqual(self.phase, Phase.SPINNING)
        self.assertEqual(self.renderer.spins_rendered, 1)
        self.assertEqual(self.runner.stats.total_spins, 1)

        self.scheduler.advance(SPIN_MS)
        self.assertEqual(self.phase, Phase.IDLE)

    def test_hidden_during_auto_spin_delay(self):
        self.make_runner([LOSE_GRID])
        self.runner.start_auto_spin(count=3)
        self.scheduler.advance(SPIN_MS)
        self.assertEqual(self.phase, Phase.AUTO_SPIN_DELAY)

        self.runner.on_visibility_change(True)
        self.scheduler.advance(60000)
        self.assertEqual(self.phase, Phase.PAUSED)

        self.runner.on_visibility_change(False)
        self.scheduler.run_until_idle()
        self.assertEqual(self.phase, Phase.IDLE)
        self.assertEqual(self.runner.stats.total_spins, 3)


class TestRealtime(SessionRunnerTestCase):

    def tearDown(self):
        self.scheduler.shutdown()

    def test_short_run_on_wall_clock(self):
        self.make_runner([LOSE_GRID], scheduler=ThreadingTimerScheduler())
        self.runner.set_animation_speed("very-fast")
        stats = self.runner.run_auto_spin(count=2, timeout_s=10)

        self.assertEqual(stats.total_spins, 2)
        self.assertEqual(self.phase, Phase.IDLE)
        self.runner.stop()


if __name__ == '__main__':
    unittest.main()
