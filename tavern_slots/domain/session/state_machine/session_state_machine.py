# tavern_slots/domain/session/state_machine/session_state_machine.py
import logging
import threading
from collections import deque
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Deque, Dict, List, Optional, Tuple, Type

from tavern_slots.domain.events.event_dispatcher import EventDispatcher
from tavern_slots.domain.events.session_events import SessionEvent, SessionEventType
from tavern_slots.domain.machine.services.win_evaluation import WinInfo
from tavern_slots.domain.session.entities.commands import (
    Command, Spin, InstantSpin, SetBet, MaxBet, ToggleAutoSpin, StartAutoSpin,
    RequestAutoSpinStop, SpinComplete, WinCheckComplete, WinAnimationComplete,
    SetAnimationSpeed, SetAutoSpinDelay, EnableTurbo, DisableTurbo, Pause, Resume,
    TimerElapsed,
)
from tavern_slots.domain.session.entities.session_context import (
    Phase, SessionContext, SessionSnapshot, TRANSIENT_PHASES, PAUSABLE_PHASES,
)
from tavern_slots.domain.session.services.delay_policy import DelayPolicy
from tavern_slots.infrastructure.timing.timer_scheduler import TimerHandle, TimerScheduler

Guard = Callable[[SessionContext, Command], bool]
Action = Callable[[SessionContext, Command], None]


def _always(ctx: SessionContext, cmd: Command) -> bool:
    return True


def _no_action(ctx: SessionContext, cmd: Command) -> None:
    pass


@dataclass(frozen=True)
class TransitionRule:
    """
    One candidate transition. `target=None` is an internal transition:
    the action runs but the phase is neither exited nor re-entered.
    """
    target: Optional[Phase]
    guard: Guard = _always
    action: Action = _no_action
    description: str = ""


# --- guards -----------------------------------------------------------------

def has_credits(ctx: SessionContext, cmd: Command) -> bool:
    return ctx.can_afford_bet()


def can_set_bet(ctx: SessionContext, cmd: SetBet) -> bool:
    return Decimal(0) < cmd.amount <= ctx.max_bet and ctx.credits >= cmd.amount


def can_max_bet(ctx: SessionContext, cmd: Command) -> bool:
    return ctx.credits >= ctx.max_bet


def auto_spin_stoppable(ctx: SessionContext, cmd: Command) -> bool:
    return ctx.auto_spin.active and not ctx.auto_spin.stop_requested


def can_start_auto_spin(ctx: SessionContext, cmd: StartAutoSpin) -> bool:
    return (not ctx.auto_spin.active
            and ctx.can_afford_bet()
            and (cmd.is_infinite or cmd.count > 0))


def valid_auto_spin_delay(ctx: SessionContext, cmd: SetAutoSpinDelay) -> bool:
    return cmd.ms is None or cmd.ms >= 0


def stop_requested(ctx: SessionContext, cmd: Command) -> bool:
    return ctx.auto_spin.stop_requested


def auto_spins_exhausted(ctx: SessionContext, cmd: Command) -> bool:
    auto = ctx.auto_spin
    return auto.active and not auto.infinite and auto.remaining <= 0


def auto_spin_can_continue(ctx: SessionContext, cmd: Command) -> bool:
    auto = ctx.auto_spin
    return auto.active and ctx.can_afford_bet() and auto.has_spins_left()


def out_of_credits(ctx: SessionContext, cmd: Command) -> bool:
    return not ctx.can_afford_bet()


def _paused_from(phase: Phase) -> Guard:
    return lambda ctx, cmd: ctx.paused_from is phase


# --- actions ----------------------------------------------------------------

def commit_spin(ctx: SessionContext, cmd: Command) -> None:
    """Deduct the bet and clear the previous win."""
    ctx.credits -= ctx.bet_amount
    ctx.clear_win()


def set_bet(ctx: SessionContext, cmd: SetBet) -> None:
    ctx.bet_amount = cmd.amount


def set_max_bet(ctx: SessionContext, cmd: Command) -> None:
    ctx.bet_amount = ctx.max_bet


def request_auto_spin_stop(ctx: SessionContext, cmd: Command) -> None:
    ctx.auto_spin.stop_requested = True


def clear_auto_spin(ctx: SessionContext, cmd: Command) -> None:
    ctx.auto_spin.clear()


def start_auto_spin(ctx: SessionContext, cmd: StartAutoSpin) -> None:
    auto = ctx.auto_spin
    auto.active = True
    auto.stop_requested = False
    auto.completed = 0
    auto.infinite = cmd.is_infinite
    auto.count = 0 if cmd.is_infinite else cmd.count
    auto.remaining = 0 if cmd.is_infinite else cmd.count
    commit_spin(ctx, cmd)


def store_grid(ctx: SessionContext, cmd: SpinComplete) -> None:
    ctx.result_grid = tuple(tuple(row) for row in cmd.grid)


def set_animation_speed(ctx: SessionContext, cmd: SetAnimationSpeed) -> None:
    ctx.animation_speed = cmd.speed


def set_auto_spin_delay(ctx: SessionContext, cmd: SetAutoSpinDelay) -> None:
    ctx.auto_spin_delay_ms = cmd.ms


def enable_turbo(ctx: SessionContext, cmd: Command) -> None:
    ctx.instant_mode = True


def disable_turbo(ctx: SessionContext, cmd: Command) -> None:
    ctx.instant_mode = False


def mark_resuming(ctx: SessionContext, cmd: Command) -> None:
    ctx.resuming_from_pause = True


def _record_pause(phase: Phase) -> Action:
    def action(ctx: SessionContext, cmd: Command) -> None:
        ctx.paused_from = phase
    return action


def _chain(*actions: Action) -> Action:
    def action(ctx: SessionContext, cmd: Command) -> None:
        for step in actions:
            step(ctx, cmd)
    return action


class SessionStateMachine:
    """
    Game session controller.

    Holds the SessionContext and drives it through
    spin -> win check -> win display -> auto-spin continuation -> idle,
    with pause/resume. Transitions are an explicit table keyed by
    (phase, command class); the first rule whose guard passes wins and a
    command with no passing rule is ignored.

    Commands go through a mailbox: each one is processed to completion,
    including the unconditional chains of transient phases, before the next
    is taken. Commands sent while a command is being processed (for example
    by a snapshot subscriber) are queued. `send` never raises.

    `showingWin` and `autoSpinDelay` start a timer on entry. Timers are
    tagged with the entry serial and cancelled on exit, so a timer from an
    earlier visit can never move the machine.
    """

    MAX_TRANSIENT_STEPS = 16

    def __init__(self, context: SessionContext, scheduler: TimerScheduler,
                 delay_policy: Optional[DelayPolicy] = None,
                 event_dispatcher: Optional[EventDispatcher] = None,
                 session_id: str = "session"):
        """
        Initialize the machine in `idle`.

        Args:
            context: Initial session context (taken over by the machine)
            scheduler: Source of cancellable timers
            delay_policy: Durations per animation speed
            event_dispatcher: Receives a STATE_CHANGED event after every change
            session_id: Identifier used in logs and events
        """
        self.session_id = session_id
        self.logger = logging.getLogger(f"domain.session.machine.{session_id}")

        self._context = context
        self._phase = Phase.IDLE
        self._scheduler = scheduler
        self._delay_policy = delay_policy or DelayPolicy()
        self.event_dispatcher = event_dispatcher or EventDispatcher()

        self._mailbox: Deque[Command] = deque()
        self._lock = threading.Lock()
        self._draining = False
        self._shutdown_requested = False

        self._entry_serial = 0
        self._timer: Optional[TimerHandle] = None
        self._sequence = 0

        self._transitions = self._build_transitions()
        self._always = self._build_always()

    # --- transition table ----------------------------------------------------

    def _build_transitions(self) -> Dict[Tuple[Phase, Type[Command]], List[TransitionRule]]:
        stop_request = [TransitionRule(None, auto_spin_stoppable, request_auto_spin_stop,
                                       "record stop-after-round")]

        table = {
            (Phase.IDLE, Spin): [TransitionRule(Phase.SPINNING, has_credits, commit_spin, "spin")],
            (Phase.IDLE, InstantSpin): [TransitionRule(Phase.SPINNING, has_credits, commit_spin, "instant spin")],
            (Phase.IDLE, SetBet): [TransitionRule(None, can_set_bet, set_bet, "set bet")],
            (Phase.IDLE, MaxBet): [TransitionRule(None, can_max_bet, set_max_bet, "max bet")],
            (Phase.IDLE, ToggleAutoSpin): [
                TransitionRule(None, auto_spin_stoppable, request_auto_spin_stop, "stop after round"),
            ],
            (Phase.IDLE, StartAutoSpin): [
                TransitionRule(Phase.SPINNING, can_start_auto_spin, start_auto_spin, "start auto-spin"),
            ],
            (Phase.IDLE, RequestAutoSpinStop): stop_request,

            (Phase.SPINNING, SpinComplete): [TransitionRule(Phase.CHECKING_WIN, action=store_grid)],
            (Phase.SPINNING, RequestAutoSpinStop): stop_request,

            (Phase.CHECKING_WIN, WinCheckComplete): [
                TransitionRule(Phase.EVALUATING_WIN, action=self._store_win_info),
            ],
            (Phase.CHECKING_WIN, RequestAutoSpinStop): stop_request,

            (Phase.SHOWING_WIN, TimerElapsed): [TransitionRule(Phase.COLLECTING_WIN, description="hold elapsed")],
            (Phase.SHOWING_WIN, Spin): [TransitionRule(Phase.COLLECTING_WIN, description="skip win display")],
            (Phase.SHOWING_WIN, WinAnimationComplete): [TransitionRule(Phase.COLLECTING_WIN)],
            (Phase.SHOWING_WIN, RequestAutoSpinStop): stop_request,

            (Phase.AUTO_SPIN_DELAY, TimerElapsed): [TransitionRule(Phase.CHECKING_AUTO_SPIN_CONTINUE)],
            (Phase.AUTO_SPIN_DELAY, ToggleAutoSpin): [
                TransitionRule(Phase.IDLE, action=clear_auto_spin, description="hard stop"),
            ],
            (Phase.AUTO_SPIN_DELAY, RequestAutoSpinStop): stop_request,
            (Phase.AUTO_SPIN_DELAY, Spin): [
                TransitionRule(Phase.SPINNING, has_credits, commit_spin, "manual spin override"),
            ],

            (Phase.PAUSED, Resume): [
                TransitionRule(Phase.AUTO_SPIN_DELAY, _paused_from(Phase.AUTO_SPIN_DELAY)),
                TransitionRule(Phase.SPINNING, _paused_from(Phase.SPINNING), mark_resuming),
                TransitionRule(Phase.IDLE),
            ],
            (Phase.PAUSED, SpinComplete): [
                TransitionRule(Phase.CHECKING_WIN, action=store_grid, description="late spin result"),
            ],
            (Phase.PAUSED, ToggleAutoSpin): [TransitionRule(Phase.IDLE, action=clear_auto_spin)],
        }

        for phase in PAUSABLE_PHASES:
            table[(phase, Pause)] = [TransitionRule(Phase.PAUSED, action=_record_pause(phase))]

        settings = [
            (SetAnimationSpeed, TransitionRule(None, action=set_animation_speed)),
            (SetAutoSpinDelay, TransitionRule(None, valid_auto_spin_delay, set_auto_spin_delay)),
            (EnableTurbo, TransitionRule(None, action=enable_turbo)),
            (DisableTurbo, TransitionRule(None, action=disable_turbo)),
        ]
        for phase in (Phase.IDLE, Phase.SPINNING, Phase.SHOWING_WIN, Phase.AUTO_SPIN_DELAY, Phase.PAUSED):
            for command_class, rule in settings:
                table[(phase, command_class)] = [rule]

        return table

    def _build_always(self) -> Dict[Phase, List[TransitionRule]]:
        def auto_spin_chain(target: Phase, action: Action) -> List[TransitionRule]:
            return [
                TransitionRule(Phase.IDLE, stop_requested, clear_auto_spin, "stop requested"),
                TransitionRule(Phase.IDLE, auto_spins_exhausted, clear_auto_spin, "auto-spins exhausted"),
                TransitionRule(target, auto_spin_can_continue, action, "continue auto-spin"),
                TransitionRule(Phase.IDLE, out_of_credits, clear_auto_spin, "out of credits"),
                TransitionRule(Phase.IDLE, action=clear_auto_spin, description="default"),
            ]

        return {
            Phase.EVALUATING_WIN: [
                TransitionRule(Phase.SHOWING_WIN, lambda ctx, cmd: ctx.win_info.amount > 0, description="win"),
                TransitionRule(Phase.CHECKING_AUTO_SPIN, description="no win"),
            ],
            Phase.COLLECTING_WIN: [TransitionRule(Phase.CHECKING_AUTO_SPIN)],
            Phase.CHECKING_AUTO_SPIN: auto_spin_chain(Phase.AUTO_SPIN_DELAY, _no_action),
            Phase.CHECKING_AUTO_SPIN_CONTINUE: auto_spin_chain(Phase.SPINNING, commit_spin),
        }

    # --- entry / exit ----------------------------------------------------------

    def _on_entry(self, ctx: SessionContext, phase: Phase) -> None:
        if phase is Phase.SPINNING:
            if ctx.resuming_from_pause:
                # The renderer is still running the spin that was interrupted
                return
            auto = ctx.auto_spin
            if auto.active:
                auto.completed += 1
                if not auto.infinite:
                    auto.remaining = max(0, auto.remaining - 1)
        elif phase is Phase.COLLECTING_WIN:
            ctx.credits += ctx.win_info.amount

    def _on_exit(self, ctx: SessionContext, phase: Phase) -> None:
        if phase is Phase.SPINNING:
            ctx.resuming_from_pause = False
        elif phase is Phase.PAUSED:
            ctx.paused_from = None

    def _store_win_info(self, ctx: SessionContext, cmd: WinCheckComplete) -> None:
        if cmd.error:
            self.logger.warning(f"Win check failed ({cmd.error}); treating spin as a zero win")
            ctx.win_info = WinInfo.empty()
            ctx.last_win = Decimal(0)
            return

        try:
            amount = Decimal(str(cmd.amount))
        except (InvalidOperation, ValueError, TypeError):
            amount = None

        if amount is None or not amount.is_finite() or amount < 0:
            self.logger.warning(f"Malformed win amount {cmd.amount!r}; treating spin as a zero win")
            ctx.win_info = WinInfo.empty()
            ctx.last_win = Decimal(0)
            return

        ctx.win_info = WinInfo(
            amount=amount,
            winning_positions=tuple(cmd.winning_positions or ()),
            representative_symbol=cmd.representative_symbol if amount > 0 else None,
        )
        ctx.last_win = amount

    # --- public API ------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(self._phase, self._context.copy(), self._sequence)

    @property
    def delay_policy(self) -> DelayPolicy:
        return self._delay_policy

    def subscribe(self, handler: Callable[[SessionSnapshot], None]) -> Callable[[], None]:
        """
        Call `handler` with every snapshot.

        Returns:
            Function that removes the subscription
        """
        def on_event(event: SessionEvent):
            if event.session_id == self.session_id:
                handler(event.snapshot)

        self.event_dispatcher.register(SessionEventType.STATE_CHANGED, on_event)
        return lambda: self.event_dispatcher.unregister(SessionEventType.STATE_CHANGED, on_event)

    def start(self):
        """Publish the initial snapshot."""
        self._publish([(self._phase, self._context.copy())], "START")

    def accepts(self, command: Command) -> bool:
        """Whether `command` would currently pass a guard (for enabling UI affordances)."""
        rules = self._transitions.get((self._phase, type(command)), [])
        return any(rule.guard(self._context, command) for rule in rules)

    def send(self, command: Command) -> None:
        """
        Queue a command and, unless another caller is already draining the
        mailbox, process queued commands in arrival order.
        """
        with self._lock:
            self._mailbox.append(command)
            if self._draining:
                return
            self._draining = True
        self._drain()

    def shutdown(self):
        """
        Cancel the pending timer; further timer events are dropped.

        If another thread is draining the mailbox, that thread performs the
        teardown once the command it is processing has finished.
        """
        with self._lock:
            self._shutdown_requested = True
            if self._draining:
                return
            self._draining = True
        self._drain()

    def _drain(self) -> None:
        try:
            while True:
                with self._lock:
                    teardown = self._shutdown_requested
                    self._shutdown_requested = False
                    next_command = None
                    if not teardown:
                        if not self._mailbox:
                            self._draining = False
                            return
                        next_command = self._mailbox.popleft()
                if teardown:
                    self._cancel_timer()
                    self._entry_serial += 1
                else:
                    self._process(next_command)
        except BaseException:
            with self._lock:
                self._draining = False
            raise

    def _cancel_timer(self) -> None:
        if self._timer:
            self._timer.cancel()
            self._timer = None

    # --- processing -------------------------------------------------------------

    def _process(self, command: Command) -> None:
        if isinstance(command, TimerElapsed):
            if command.entry_serial != self._entry_serial or command.phase is not self._phase:
                self.logger.debug(f"Dropping stale timer for {command.phase.value}")
                return

        rules = self._transitions.get((self._phase, type(command)))
        if not rules:
            self.logger.debug(f"Ignoring {command.name} in {self._phase.value}")
            return

        try:
            working = self._context.copy()
            rule = next((r for r in rules if r.guard(working, command)), None)
            if rule is None:
                self.logger.debug(f"Guard rejected {command.name} in {self._phase.value}")
                return

            rule.action(working, command)

            if rule.target is None:
                self._context = working
                self._publish([(self._phase, working.copy())], command.name)
                return

            entered = self._run_transition(working, rule.target, command)
        except Exception:
            self.logger.exception(
                f"Transition for {command.name} in {self._phase.value} failed; state left unchanged"
            )
            return

        try:
            self._commit(working, entered, command)
        except Exception:
            self.logger.exception(f"Committing {command.name} into {entered[-1][0].value} failed")

    def _run_transition(self, ctx: SessionContext, target: Phase,
                        command: Command) -> List[Tuple[Phase, SessionContext]]:
        """Exit the current phase, enter `target` and follow transient chains."""
        entered = []
        current = self._phase

        for _ in range(self.MAX_TRANSIENT_STEPS):
            self._on_exit(ctx, current)
            self._on_entry(ctx, target)
            entered.append((target, ctx.copy()))
            self.logger.debug(f"{current.value} -> {target.value} ({command.name})")

            if target not in TRANSIENT_PHASES:
                return entered

            rule = next(r for r in self._always[target] if r.guard(ctx, command))
            rule.action(ctx, command)
            current, target = target, rule.target

        raise RuntimeError(f"Transient chain did not settle after {self.MAX_TRANSIENT_STEPS} steps")

    def _commit(self, ctx: SessionContext, entered: List[Tuple[Phase, SessionContext]],
                command: Command) -> None:
        self._cancel_timer()

        self._context = ctx
        self._phase = entered[-1][0]
        self._entry_serial += 1

        if self._phase in (Phase.SHOWING_WIN, Phase.AUTO_SPIN_DELAY):
            self._start_timer(self._phase)

        self._publish(entered, command.name)

    def _start_timer(self, phase: Phase) -> None:
        ctx = self._context
        profile = self._delay_policy.resolve(ctx.animation_speed, ctx.auto_spin_delay_ms)

        if phase is Phase.SHOWING_WIN:
            multiplier = ctx.win_info.amount / ctx.bet_amount if ctx.bet_amount > 0 else Decimal(0)
            delay_ms = profile.win_hold_ms(multiplier)
        else:
            delay_ms = profile.auto_spin_gap_ms

        elapsed = TimerElapsed(phase=phase, entry_serial=self._entry_serial)
        self._timer = self._scheduler.schedule(delay_ms, lambda: self.send(elapsed), name=phase.value)
        self.logger.debug(f"{phase.value} timer set for {delay_ms}ms")

    def _publish(self, entered: List[Tuple[Phase, SessionContext]], cause: str) -> None:
        for phase, ctx in entered:
            self._sequence += 1
            snapshot = SessionSnapshot(phase, ctx, self._sequence)
            self.event_dispatcher.dispatch(SessionEvent(
                type=SessionEventType.STATE_CHANGED,
                session_id=self.session_id,
                snapshot=snapshot,
                data={"phase": phase.value, "cause": cause},
            ))
