# src/dinarlive/app.py
"""
Application Entry Point - Engine Initialization and Startup

This module serves as the composition root for the DinarLive rate engine.
It wires the store, provider client and engine, then keeps the engine
running and logs every published state until interrupted.

Usage:
    dinarlive            run the engine (periodic refresh + cooldown tick)
    dinarlive --once     run a single refresh cycle and exit
    dinarlive --health   print a health report as JSON and exit

Files that USE this module:
- pyproject.toml console script (dinarlive = dinarlive.app:main)

Files that this module USES:
- dinarlive.shared.logging_conf (setup_logging for logging configuration)
- dinarlive.config (settings for configuration management)
- dinarlive.adapters.ai.provider_client (ProviderClient)
- dinarlive.adapters.persistence.file_store (FileStore)
- dinarlive.application.orchestrator (RateEngine)
- dinarlive.application.health (HealthChecker)
"""

from __future__ import annotations

import argparse
import asyncio
import atexit
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from dinarlive.adapters.ai.provider_client import ProviderClient
from dinarlive.adapters.persistence.file_store import FileStore
from dinarlive.application.health import HealthChecker
from dinarlive.application.orchestrator import RateEngine
from dinarlive.config import settings
from dinarlive.domain.models import EngineState
from dinarlive.shared.logging_conf import setup_logging

logger = logging.getLogger(__name__)


def _get_pid_file() -> Path:
    """Get PID file path from environment or the data directory."""
    pid_file = os.environ.get("DINARLIVE_PID_FILE")
    if pid_file:
        return Path(pid_file)
    return settings.data_dir / "dinarlive.pid"


def _check_existing_instance() -> None:
    """
    Check if another engine instance is already running.

    Raises RuntimeError if PID file exists and process is still running.
    """
    pid_file = _get_pid_file()
    if pid_file.exists():
        try:
            old_pid = int(pid_file.read_text().strip())
        except (ValueError, OSError):
            pid_file.unlink(missing_ok=True)
            return

        try:
            os.kill(old_pid, 0)  # Signal 0 doesn't kill, just checks if process exists
        except ProcessLookupError:
            # Stale PID file
            pid_file.unlink(missing_ok=True)
            return
        except PermissionError:
            pass
        raise RuntimeError(
            f"Another engine instance is already running (PID: {old_pid}).\n"
            f"Please stop it first with: kill {old_pid}"
        )


def _create_pid_file() -> None:
    pid_file = _get_pid_file()
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(os.getpid()))


def _remove_pid_file() -> None:
    try:
        _get_pid_file().unlink(missing_ok=True)
    except OSError:
        pass


def _log_state(state: EngineState) -> None:
    """Log published states that carry news (cooldown ticks are debug only)."""
    if state.is_loading:
        logger.info("Fetching rates (status=%s, attempt=%d)", state.status.value, state.attempt)
        return
    if state.error:
        logger.warning(
            "Rate refresh failed: %s (reason=%s), showing %s",
            state.error,
            state.last_failure_reason.value if state.last_failure_reason else "unknown",
            f"cached rate from {state.rate.updated.isoformat()}" if state.rate else "no data",
        )
        return
    if state.rate:
        rate = state.rate
        logger.debug(
            "IQD/USD=%.2f EUR=%s TRY=%s GBP=%s IRT=%s updated=%s sources=%d history=%d cooldown=%ds",
            rate.iqd,
            rate.eur_per_usd or "n/a",
            rate.try_per_usd or "n/a",
            rate.gbp_per_usd or "n/a",
            rate.irt_per_usd or "n/a",
            rate.updated.isoformat(),
            len(state.sources),
            len(state.history),
            state.cooldown_remaining,
        )


def build_engine() -> tuple[RateEngine, ProviderClient, FileStore]:
    store = FileStore(settings.data_dir)
    provider = ProviderClient()
    engine = RateEngine(provider, store)
    return engine, provider, store


async def _run(engine: RateEngine, once: bool) -> int:
    engine.subscribe(_log_state)

    if once:
        ok = await engine.refresh()
        state = engine.get_state()
        if state.rate:
            logger.info("Current IQD/USD rate: %.2f (updated %s)", state.rate.iqd, state.rate.updated.isoformat())
        return 0 if ok else 1

    async with engine:
        logger.info("Engine running, press Ctrl+C to stop")
        await asyncio.Event().wait()
    return 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="dinarlive", description="IQD exchange rate engine")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="run one refresh cycle and exit")
    mode.add_argument("--health", action="store_true", help="print a health report and exit")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Initialize and run the rate engine.

    This function:
    1. Sets up logging
    2. Acquires the single-instance PID lock (long-running mode only)
    3. Wires store, provider client and engine
    4. Runs the engine until interrupted (or a single cycle / health check)
    """
    args = parse_args(argv)

    setup_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        log_dir=settings.log_dir,
        log_stdout=settings.log_stdout,
        max_bytes=settings.log_max_bytes,
        backup_count=settings.log_backup_count,
    )
    logger.info("Working directory: %s, data directory: %s", os.getcwd(), settings.data_dir)

    engine, provider, store = build_engine()

    if args.health:
        report = HealthChecker(provider, store, engine).get_overall_health()
        print(json.dumps(report, indent=2, ensure_ascii=False))
        return 0 if report["overall_healthy"] else 1

    if not args.once:
        try:
            _check_existing_instance()
            _create_pid_file()
            atexit.register(_remove_pid_file)
            logger.info("Engine instance lock acquired (PID: %d)", os.getpid())
        except RuntimeError as e:
            logger.error(str(e))
            return 1

    try:
        return asyncio.run(_run(engine, once=args.once))
    except KeyboardInterrupt:
        logger.info("Engine stopped by user (KeyboardInterrupt)")
        return 0


if __name__ == "__main__":
    sys.exit(main())
