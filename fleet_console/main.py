"""Headless fleet monitor.

Restores the stored session, opens a mission monitor and logs a fleet
summary on every change until interrupted.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING

from fleet_console.config import get_settings
from fleet_console.console import FleetConsole
from fleet_console.logging import setup_logging
from fleet_console.view.projections import get_fleet_summary

if TYPE_CHECKING:
    from fleet_console.config import Settings
    from fleet_console.view.models import FleetSnapshot

logger = logging.getLogger(__name__)


def _log_summary(snapshot: FleetSnapshot) -> None:
    summary = get_fleet_summary(snapshot)
    logger.info(
        "Fleet: %d drones (%d available, %d in mission, %d maintenance), "
        "%d active missions, %d recently completed",
        summary.total_drones,
        summary.available_drones,
        summary.in_mission_drones,
        summary.maintenance_drones,
        summary.active_missions,
        summary.completed_missions,
    )


async def run_monitor(settings: Settings) -> bool:
    """Run the monitor until SIGINT or SIGTERM.

    Args:
        settings: Client configuration.

    Returns:
        False if the stored session could not be resumed.
    """
    console = FleetConsole(settings)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()

    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        stop_event.set()

    for signal_name in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signal_name, signal_handler)

    try:
        profile = await console.restore_session()
        if profile is None:
            logger.error("Could not resume the session stored at %s", settings.token_path)
            return False

        remove_observer = console.store.observe(_log_summary)
        try:
            await console.open_monitor()
            await stop_event.wait()
        finally:
            remove_observer()
    finally:
        await console.close()
    return True


def main() -> None:
    """CLI entry point: load settings and run the async event loop."""
    settings = get_settings()
    setup_logging()

    logger.info(
        "Starting fleet monitor (environment=%s, registry=%s)",
        settings.environment,
        settings.api_base_url,
    )

    if not asyncio.run(run_monitor(settings)):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
