# tavern_slots/application/simulation/session_runner.py
import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from tavern_slots.application.rendering.headless_renderer import HeadlessReelRenderer, Grid
from tavern_slots.domain.events.event_dispatcher import EventDispatcher
from tavern_slots.domain.events.session_events import SessionEvent, SessionEventType
from tavern_slots.domain.machine.services.win_evaluation import WinEvaluator, get_win_tier
from tavern_slots.domain.session.entities.commands import (
    Command, Spin, SetBet, MaxBet, ToggleAutoSpin, StartAutoSpin, RequestAutoSpinStop,
    SpinComplete, WinCheckComplete, WinAnimationComplete, SetAnimationSpeed,
    SetAutoSpinDelay, EnableTurbo, DisableTurbo, Pause, Resume,
)
from tavern_slots.domain.session.entities.session_context import (
    AnimationSpeed, Phase, SessionSnapshot,
)
from tavern_slots.domain.session.entities.session_stats import SessionStats, WinRecord
from tavern_slots.domain.session.state_machine.session_state_machine import SessionStateMachine
from tavern_slots.infrastructure.timing.timer_scheduler import ManualTimerScheduler, TimerScheduler

# Upper bound on timers one auto-spin round schedules (reel stops, win hold, gap)
TIMERS_PER_SPIN = 12


class GameSessionRunner:
    """
    Embeds a SessionStateMachine and connects it to its collaborators.

    Watches the machine's snapshots and
    - asks the renderer for a grid on every fresh entry into `spinning`,
    - runs the WinEvaluator on every entry into `checkingWin` and feeds the
      result back as WIN_CHECK_COMPLETE (a failed evaluation becomes a
      zero win so the machine can never stall),
    - turns visibility changes into PAUSE / RESUME,
    - keeps the session statistics.

    UI affordances are plain methods that send typed commands.
    """
    def __init__(self, session_id: str, machine: SessionStateMachine,
                 renderer: HeadlessReelRenderer, evaluator: WinEvaluator,
                 scheduler: TimerScheduler, event_dispatcher: Optional[EventDispatcher] = None,
                 win_tiers: Optional[Dict[str, Any]] = None):
        self.id = session_id
        self.logger = logging.getLogger(f"application.session_runner.{session_id}")
        self.machine = machine
        self.renderer = renderer
        self.evaluator = evaluator
        self.scheduler = scheduler
        self.event_dispatcher = event_dispatcher or machine.event_dispatcher
        self.win_tiers = win_tiers

        self.stats = SessionStats(session_id=session_id)
        self.active = False

        self._last_snapshot: Optional[SessionSnapshot] = None
        self._unsubscribe = None
        self._spin_limit: Optional[int] = None
        self._settled = threading.Event()

    # --- lifecycle -------------------------------------------------------------

    def start(self):
        if self.active:
            self.logger.warning("Session is already active")
            return

        self.active = True
        self._unsubscribe = self.machine.subscribe(self._on_snapshot)
        self.machine.start()

        snapshot = self.machine.snapshot
        self.stats.started_at = datetime.now()
        self.stats.start_credits = snapshot.context.credits
        self.logger.info(
            f"Session started - credits: {snapshot.context.credits}, bet: {snapshot.context.bet_amount}"
        )
        self._dispatch(SessionEventType.SESSION_STARTED, {
            "credits": str(snapshot.context.credits),
            "bet_amount": str(snapshot.context.bet_amount),
        })

    def stop(self) -> SessionStats:
        """Tear the session down: cancel timers and the in-flight spin, finalise stats."""
        if not self.active:
            self.logger.warning("Session is not active")
            return self.stats

        self.machine.shutdown()
        self.renderer.cancel()
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self.active = False

        self.stats.ended_at = datetime.now()
        self.stats.end_credits = self.machine.snapshot.context.credits
        self.logger.info(
            f"Session ended - spins: {self.stats.total_spins}, net: {self.stats.net_result}, "
            f"credits: {self.stats.end_credits}"
        )
        self._dispatch(SessionEventType.SESSION_ENDED, self.stats.to_dict())
        return self.stats

    @property
    def snapshot(self) -> SessionSnapshot:
        return self.machine.snapshot

    @property
    def win_history(self) -> List[WinRecord]:
        """Recent paying spins, newest first."""
        return list(self.stats.recent_wins)

    # --- UI affordances ----------------------------------------------------------

    def send(self, command: Command):
        self.machine.send(command)

    def spin(self):
        self.send(Spin())

    def set_bet(self, amount: Union[int, str, Decimal]):
        self.send(SetBet(amount=Decimal(str(amount))))

    def max_bet(self):
        self.send(MaxBet())

    def toggle_auto_spin(self):
        self.send(ToggleAutoSpin())

    def start_auto_spin(self, count: int = 0, infinite: bool = False):
        self.send(StartAutoSpin(count=count, is_infinite=infinite))

    def request_auto_spin_stop(self):
        self.send(RequestAutoSpinStop())

    def skip_win_animation(self):
        self.send(WinAnimationComplete())

    def set_animation_speed(self, speed: Union[str, AnimationSpeed]):
        self.send(SetAnimationSpeed(speed=AnimationSpeed.parse(speed)))

    def set_auto_spin_delay(self, ms: Optional[int]):
        self.send(SetAutoSpinDelay(ms=ms))

    def set_turbo(self, enabled: bool):
        self.send(EnableTurbo() if enabled else DisableTurbo())

    def on_visibility_change(self, hidden: bool):
        """Window hidden / blurred pauses the session; visible again resumes it."""
        self.send(Pause() if hidden else Resume())

    # --- simulation helpers --------------------------------------------------------

    def run_auto_spin(self, count: int = 0, infinite: bool = False,
                      max_spins: Optional[int] = None, timeout_s: Optional[float] = None) -> SessionStats:
        """
        Play an auto-spin run until the machine settles back in `idle`.

        On a ManualTimerScheduler the virtual clock is driven to completion;
        on a real-time scheduler this blocks until the run ends or times out.

        Args:
            count: Number of auto-spins (ignored when infinite)
            infinite: Spin until stopped or out of credits
            max_spins: Request stop-after-round once this many spins were played
            timeout_s: Real-time wait limit

        Returns:
            The session statistics
        """
        self._spin_limit = max_spins
        self._settled.clear()
        self.start_auto_spin(count, infinite)

        if self.machine.phase is Phase.IDLE and not self.machine.snapshot.context.auto_spin.active:
            self.logger.warning("Auto-spin was not started (unaffordable or already running)")
            self._spin_limit = None
            return self.stats

        if isinstance(self.scheduler, ManualTimerScheduler):
            bound = max_spins if max_spins is not None else (None if infinite else count)
            budget = TIMERS_PER_SPIN * bound + 100 if bound is not None else 100000
            self.scheduler.run_until_idle(max_timers=budget)
            if self.scheduler.pending_count:
                self.logger.warning(f"Timer budget of {budget} exhausted; stopping after this round")
                self.request_auto_spin_stop()
                self.scheduler.run_until_idle()
        elif not self._settled.wait(timeout_s):
            self.logger.warning(f"Auto-spin run did not settle within {timeout_s}s; requesting stop")
            self.request_auto_spin_stop()

        self._spin_limit = None
        return self.stats

    # --- snapshot handling -----------------------------------------------------------

    def _on_snapshot(self, snapshot: SessionSnapshot):
        previous = self._last_snapshot
        self._last_snapshot = snapshot
        entered = previous is None or previous.phase is not snapshot.phase

        if not entered:
            return

        if snapshot.phase is Phase.SPINNING:
            self._settled.clear()
            self._request_spin(snapshot)
        elif snapshot.phase is Phase.CHECKING_WIN:
            self._check_win(snapshot)
        elif snapshot.phase is Phase.IDLE and not snapshot.context.auto_spin.active:
            self._settled.set()

    def _request_spin(self, snapshot: SessionSnapshot):
        ctx = snapshot.context
        if ctx.resuming_from_pause:
            self.logger.debug("Resumed into an in-flight spin; not restarting the reels")
            return

        self.stats.record_spin(ctx.bet_amount)
        if self._spin_limit is not None and self.stats.total_spins >= self._spin_limit:
            self.request_auto_spin_stop()

        profile = self.machine.delay_policy.resolve(ctx.animation_speed, ctx.auto_spin_delay_ms)
        self._dispatch(SessionEventType.SPIN_REQUESTED, {
            "duration_ms": profile.spin_duration_ms,
            "scroll_speed": profile.scroll_speed,
        })
        if self.renderer.spin(profile.spin_duration_ms, profile.scroll_speed, self._on_spin_complete) is None:
            self.logger.warning("Renderer refused the spin request; session may stay in spinning")

    def _on_spin_complete(self, grid: Grid):
        self.send(SpinComplete.from_rows(grid))

    def _check_win(self, snapshot: SessionSnapshot):
        ctx = snapshot.context
        try:
            if ctx.result_grid is None:
                raise ValueError("No result grid to evaluate")
            win_info = self.evaluator.evaluate(ctx.result_grid)
        except Exception as e:
            self.logger.error(f"Win evaluation failed: {str(e)}")
            self.stats.failed_win_checks += 1
            self.send(WinCheckComplete.failed(str(e)))
            return

        tier = get_win_tier(win_info.amount, ctx.bet_amount, self.win_tiers)
        self.stats.record_win(win_info.amount, tier, bet_amount=ctx.bet_amount,
                              symbol=win_info.representative_symbol)
        if win_info.is_win:
            self.logger.debug(
                f"Win {win_info.amount} on {len(win_info.winning_positions)} paylines"
                + (f" ({tier.value})" if tier else "")
            )

        self._dispatch(SessionEventType.WIN_EVALUATED,
                       dict(win_info.to_dict(), tier=tier.value if tier else None))
        self.send(WinCheckComplete.from_win_info(win_info))

    def _dispatch(self, event_type: SessionEventType, data: Dict[str, Any]):
        if self.event_dispatcher:
            self.event_dispatcher.dispatch(SessionEvent(
                type=event_type, session_id=self.id, snapshot=self._last_snapshot, data=data,
            ))
