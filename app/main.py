"""
Cashbook scheduler service.

Runs the recurring schedule engine on its polling interval until the process
is interrupted. The chat-command layer embeds the same components through
``create_app_components`` and does not need this entrypoint.

Usage:
    python -m app.main          # poll until SIGINT/SIGTERM
    python -m app.main --once   # single pass, then exit
"""

import asyncio
import signal
import sys

import structlog

from cashbook.audit import configure_logging
from cashbook.config import get_settings, validate_all_settings
from cashbook.orchestrator import create_app_components


logger = structlog.get_logger("cashbook.app")


def report_settings() -> None:
    """Log which configuration sections loaded."""
    status = validate_all_settings()
    for key in ("ledger", "scheduler", "google_sheets", "app"):
        if status.get(key, False):
            logger.info("settings_loaded", section=key)
        else:
            logger.warning("settings_unavailable", section=key, error=status.get(f"{key}_error"))


async def run(once: bool = False) -> None:
    """Build the components and drive the scheduler."""
    app = create_app_components(use_sheets_audit=True)

    if once:
        summary = await app.scheduler.run_once()
        logger.info("single_pass_complete", **summary.model_dump(mode="json", exclude={"errors"}))
        return

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    app.scheduler.start()
    try:
        await stop.wait()
    finally:
        await app.scheduler.stop()


def main() -> None:
    """Main application entry point."""
    configure_logging(get_settings().app.log_level)
    report_settings()
    asyncio.run(run(once="--once" in sys.argv[1:]))


if __name__ == "__main__":
    main()
