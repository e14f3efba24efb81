# tavern_slots/domain/session/factories/session_factory.py
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

from tavern_slots.application.rendering.headless_renderer import HeadlessReelRenderer
from tavern_slots.application.simulation.session_runner import GameSessionRunner
from tavern_slots.domain.events.event_dispatcher import EventDispatcher
from tavern_slots.domain.machine.entities.pay_table import PayoutTiers, to_decimal
from tavern_slots.domain.machine.entities.payline_table import PaylineTable
from tavern_slots.domain.machine.entities.symbols import DEFAULT_SYMBOLS, load_symbol_ids
from tavern_slots.domain.machine.services.win_evaluation import DEFAULT_WIN_TIERS, WinEvaluator
from tavern_slots.domain.session.entities.session_context import AnimationSpeed, SessionContext
from tavern_slots.domain.session.services.delay_policy import DelayPolicy
from tavern_slots.domain.session.state_machine.session_state_machine import SessionStateMachine
from tavern_slots.infrastructure.rng.rng_provider import RNGProvider
from tavern_slots.infrastructure.rng.strategies.rng_strategy import RNGStrategy
from tavern_slots.infrastructure.timing.timer_scheduler import TimerScheduler, create_scheduler


DEFAULT_SESSION_SETTINGS: Dict[str, Any] = {
    "initial_credits": 1000,
    "bet_amount": 10,
    "max_bet": 100,
    "animation_speed": "normal",
}


class SessionFactory:
    """
    Builds fully wired game sessions from a session configuration.

    The payline table, payout tiers, evaluator and delay policy are built
    once per factory and shared by every session it creates; they hold no
    per-session state. Each session gets its own context, state machine,
    timer scheduler, RNG and renderer.
    """
    def __init__(self, config: Dict[str, Any], rng_provider: Optional[RNGProvider] = None,
                 event_dispatcher: Optional[EventDispatcher] = None):
        """
        Args:
            config: Session configuration (see default_session.yaml)
            rng_provider: Source of RNG strategies
            event_dispatcher: Shared dispatcher; each session gets its own when omitted

        Raises:
            ValueError: If the symbol, payline, payout or delay data is invalid
        """
        self.logger = logging.getLogger("domain.session.factory")
        self.config = config or {}
        self.rng_provider = rng_provider or RNGProvider()
        self.event_dispatcher = event_dispatcher

        self.settings = dict(DEFAULT_SESSION_SETTINGS)
        self.settings.update(self.config.get("session") or {})

        self.symbols = load_symbol_ids(self.config.get("symbols") or DEFAULT_SYMBOLS)
        self.paylines = PaylineTable.from_config(self.config.get("paylines"))
        self.payout_tiers = PayoutTiers.from_config(self.config.get("payout_tiers"))
        self.evaluator = WinEvaluator(self.paylines, self.payout_tiers)
        self.delay_policy = DelayPolicy.from_config(self.config.get("delays"))
        self.win_tiers = dict(DEFAULT_WIN_TIERS)
        self.win_tiers.update(self.config.get("win_tiers") or {})

        self._validate_settings()
        self.logger.debug(
            f"Factory ready: {len(self.symbols)} symbols, {len(self.paylines)} paylines, "
            f"payout tiers {self.payout_tiers.to_dict()}"
        )

    def _validate_settings(self):
        credits = to_decimal(self.settings["initial_credits"])
        bet = to_decimal(self.settings["bet_amount"])
        max_bet = to_decimal(self.settings["max_bet"])

        if credits < 0:
            raise ValueError(f"Initial credits must not be negative, got {credits}")
        if bet <= 0 or max_bet <= 0:
            raise ValueError(f"Bet and max bet must be positive, got {bet} / {max_bet}")
        if bet > max_bet:
            raise ValueError(f"Bet {bet} exceeds max bet {max_bet}")
        AnimationSpeed.parse(self.settings["animation_speed"])

    def create_context(self, overrides: Optional[Dict[str, Any]] = None) -> SessionContext:
        """Initial SessionContext from the `session` settings, with optional overrides."""
        settings = dict(self.settings)
        settings.update(overrides or {})
        return SessionContext(
            credits=to_decimal(settings["initial_credits"]),
            bet_amount=to_decimal(settings["bet_amount"]),
            max_bet=to_decimal(settings["max_bet"]),
            last_win=Decimal(0),
            animation_speed=AnimationSpeed.parse(settings["animation_speed"]),
        )

    def create_session(self, session_id: Optional[str] = None, realtime: bool = False,
                       scheduler: Optional[TimerScheduler] = None, rng: Optional[RNGStrategy] = None,
                       seed: Optional[int] = None,
                       context_overrides: Optional[Dict[str, Any]] = None) -> GameSessionRunner:
        """
        Create a new session.

        Args:
            session_id: Optional id (generated if not provided)
            realtime: Use wall-clock timers instead of a virtual clock
            scheduler: Explicit timer scheduler, overrides `realtime`
            rng: Explicit RNG strategy for the renderer
            seed: Seed for a fresh RNG from the `renderer` config section
            context_overrides: Values replacing the `session` settings

        Returns:
            A GameSessionRunner that has not been started yet
        """
        session_id = session_id or f"session_{uuid.uuid4().hex[:8]}"
        scheduler = scheduler or create_scheduler(realtime)
        dispatcher = self.event_dispatcher or EventDispatcher()

        if rng is None:
            rng_config = dict(self.config.get("renderer") or {})
            if seed is not None:
                rng_config["seed"] = seed
            rng = self.rng_provider.create_from_config(rng_config)

        machine = SessionStateMachine(
            context=self.create_context(context_overrides),
            scheduler=scheduler,
            delay_policy=self.delay_policy,
            event_dispatcher=dispatcher,
            session_id=session_id,
        )
        renderer = HeadlessReelRenderer(
            rng=rng,
            symbols=self.symbols,
            scheduler=scheduler,
            rows=self.paylines.rows,
            columns=self.paylines.columns,
            event_dispatcher=dispatcher,
            session_id=session_id,
        )

        self.logger.info(f"Creating session {session_id} ({'real-time' if realtime else 'virtual clock'})")
        return GameSessionRunner(
            session_id=session_id,
            machine=machine,
            renderer=renderer,
            evaluator=self.evaluator,
            scheduler=scheduler,
            event_dispatcher=dispatcher,
            win_tiers=self.win_tiers,
        )
