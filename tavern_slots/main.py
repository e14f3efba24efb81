# tavern_slots/main.py
import argparse
import logging
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from decimal import Decimal
from typing import Any, Dict, List, Optional

from tqdm import tqdm

from tavern_slots.domain.session.entities.session_context import AnimationSpeed
from tavern_slots.domain.session.entities.session_stats import SessionStats
from tavern_slots.domain.session.factories.session_factory import SessionFactory
from tavern_slots.infrastructure.config.loaders.yaml_loader import ConfigError, YamlConfigLoader
from tavern_slots.infrastructure.config.validators.schema_validator import SchemaValidator
from tavern_slots.infrastructure.logging.log_manager import LOG_MODES, apply_log_mode, initialize_logging
from tavern_slots.infrastructure.rng.rng_provider import RNGProvider

PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_CONFIG_PATH = os.path.join(PACKAGE_DIR, "application", "config", "sessions", "default_session.yaml")
SCHEMA_PATH = os.path.join(PACKAGE_DIR, "application", "config", "schemas", "session_schema.json")

# Safety cap for --infinite runs on the virtual clock
DEFAULT_INFINITE_SPIN_CAP = 1000


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Tavern Slots headless session player")

    parser.add_argument(
        "-c", "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Path to session configuration file"
    )
    parser.add_argument(
        "-n", "--spins",
        type=int,
        default=100,
        help="Auto-spins per session"
    )
    parser.add_argument(
        "--infinite",
        action="store_true",
        help="Infinite auto-spin (stops when credits run out or at --max-spins)"
    )
    parser.add_argument(
        "--max-spins",
        type=int,
        default=None,
        help=f"Stop-after-round limit for infinite runs (default {DEFAULT_INFINITE_SPIN_CAP})"
    )
    parser.add_argument(
        "-s", "--sessions",
        type=int,
        default=1,
        help="Number of sessions to play"
    )
    parser.add_argument(
        "-w", "--workers",
        type=int,
        default=1,
        help="Sessions played concurrently"
    )
    parser.add_argument(
        "--speed",
        choices=[speed.value for speed in AnimationSpeed],
        default=None,
        help="Animation speed (overrides the config)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Renderer RNG seed; session i uses seed + i"
    )
    parser.add_argument(
        "--realtime",
        action="store_true",
        help="Use wall-clock timers instead of the virtual clock"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument(
        "--log-mode",
        choices=sorted(LOG_MODES),
        default=None,
        help="Select logging mode: 'all'=verbose, 'app'=application only, 'domain'=domain only, 'none'=minimal"
    )

    return parser.parse_args(argv)


def load_config(path: str) -> Dict[str, Any]:
    """Load and validate a session configuration file."""
    loader = YamlConfigLoader(SchemaValidator())
    return loader.load_file(path, SCHEMA_PATH)


def play_session(factory: SessionFactory, index: int, args) -> SessionStats:
    """Play one auto-spin session to completion and return its statistics."""
    seed = args.seed + index if args.seed is not None else None
    overrides = {"animation_speed": args.speed} if args.speed else None
    runner = factory.create_session(
        session_id=f"session_{index + 1:03d}",
        realtime=args.realtime,
        seed=seed,
        context_overrides=overrides,
    )

    max_spins = args.max_spins
    if args.infinite and max_spins is None:
        max_spins = DEFAULT_INFINITE_SPIN_CAP

    runner.start()
    try:
        runner.run_auto_spin(count=args.spins, infinite=args.infinite, max_spins=max_spins)
    finally:
        stats = runner.stop()
        runner.scheduler.shutdown()
    return stats


def summarize(results: List[SessionStats]) -> Dict[str, Any]:
    total_spins = sum(s.total_spins for s in results)
    total_bet = sum((s.total_bet for s in results), Decimal(0))
    total_win = sum((s.total_win for s in results), Decimal(0))
    return {
        "sessions": len(results),
        "total_spins": total_spins,
        "total_bet": total_bet,
        "total_win": total_win,
        "net_result": total_win - total_bet,
        "rtp": float(total_win / total_bet) if total_bet else 0.0,
        "failed_win_checks": sum(s.failed_win_checks for s in results),
    }


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the headless session player."""
    args = parse_arguments(argv)
    start_time = time.time()

    try:
        config = load_config(args.config)
        print(f"Loaded configuration from {args.config}")
    except ConfigError as e:
        print(f"Error loading configuration: {str(e)}")
        return 1

    initialize_logging(apply_log_mode(config.get("logging", {}), args.log_mode, args.verbose))
    logger = logging.getLogger("main")

    if args.spins < 0 or args.sessions < 1 or args.workers < 1:
        logger.error("--spins must be >= 0, --sessions and --workers must be >= 1")
        return 1

    try:
        factory = SessionFactory(config, rng_provider=RNGProvider())
    except ValueError as e:
        logger.error(f"Invalid session configuration: {e}")
        return 1

    logger.info(
        f"Playing {args.sessions} session(s) of "
        f"{'infinite' if args.infinite else args.spins} auto-spins "
        f"({'real-time' if args.realtime else 'virtual clock'}, {args.workers} worker(s))"
    )

    results: List[SessionStats] = []
    try:
        with tqdm(total=args.sessions, desc="Sessions", unit="session") as pbar:
            if args.workers == 1:
                for index in range(args.sessions):
                    results.append(play_session(factory, index, args))
                    pbar.update(1)
            else:
                with ThreadPoolExecutor(max_workers=args.workers) as executor:
                    futures = [executor.submit(play_session, factory, index, args)
                               for index in range(args.sessions)]
                    for future in as_completed(futures):
                        results.append(future.result())
                        pbar.update(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Session play failed: {e}")
        if args.verbose:
            logger.exception("Traceback:")
        return 1

    results.sort(key=lambda s: s.session_id)
    for stats in results:
        tqdm.write(
            f"{stats.session_id}: spins={stats.total_spins} wins={stats.win_count} "
            f"bet={stats.total_bet} won={stats.total_win} credits {stats.start_credits} -> {stats.end_credits} "
            f"biggest={stats.biggest_win} tiers={stats.tier_counts}"
        )

    summary = summarize(results)
    tqdm.write("=" * 60)
    tqdm.write(f"Sessions: {summary['sessions']}  Spins: {summary['total_spins']:,}")
    tqdm.write(f"Total bet: {summary['total_bet']}  Total win: {summary['total_win']}  "
               f"Net: {summary['net_result']}")
    tqdm.write(f"RTP: {summary['rtp']:.4f} ({summary['rtp'] * 100:.2f}%)")
    if summary["failed_win_checks"]:
        tqdm.write(f"Failed win checks: {summary['failed_win_checks']}")
    tqdm.write(f"Runtime: {time.time() - start_time:.2f} seconds")
    return 0


if __name__ == "__main__":
    sys.exit(main())
