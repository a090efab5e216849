"""Daemon process: always-on sync agent.

Usage: python -m thyro serve

Manages:
- Initial load of the session owner's records
- Network monitor (drains the offline queue when the backend is reachable)
- PID file (prevent two agents sharing one outbox)
- Graceful shutdown (SIGTERM/SIGINT) with pending writes flushed
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from thyro.config import ThyroConfig, load_config
from thyro.core import Thyro

logger = logging.getLogger(__name__)


class ThyroDaemon:
    """Always-on daemon process."""

    def __init__(self, config: ThyroConfig | None = None) -> None:
        self.config = config or load_config()
        self._shutdown_event = asyncio.Event()

    # ── PID file management ──────────────────────────────────

    def _write_pid(self) -> None:
        self.config.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self.config.pid_file.write_text(str(os.getpid()))
        logger.info("PID file written: %s (pid=%d)", self.config.pid_file, os.getpid())

    def _remove_pid(self) -> None:
        if self.config.pid_file.exists():
            self.config.pid_file.unlink()

    def _check_existing(self) -> None:
        if not self.config.pid_file.exists():
            return
        try:
            pid = int(self.config.pid_file.read_text().strip())
            os.kill(pid, 0)  # Check if process exists
            print(f"Thyro daemon already running (pid={pid}). Exiting.", file=sys.stderr)
            sys.exit(1)
        except (ProcessLookupError, ValueError):
            # Stale PID file
            self._remove_pid()

    # ── Signal handling ──────────────────────────────────────

    def _setup_signals(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self._shutdown_event.set()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    # ── Main run loop ────────────────────────────────────────

    async def run(self) -> None:
        self._check_existing()
        self._write_pid()
        self._setup_signals()

        thyro = Thyro(self.config)
        logger.info(
            "Thyro daemon starting (remote=%s, data=%s)",
            self.config.remote.url or "disabled",
            self.config.data_dir,
        )

        try:
            owner_id = await thyro.load_for_owner()
            if owner_id:
                logger.info("Loaded records for %s", owner_id)
            await thyro.start(self._shutdown_event)
        except asyncio.CancelledError:
            pass
        finally:
            await thyro.stop()
            self._remove_pid()
            logger.info("Thyro daemon stopped.")
