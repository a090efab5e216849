"""Offline task queue: ordered remote writes, drained when the network is up.

Tasks are plain data (see ``thyro.sync.tasks``) and the queue is written to
``outbox.jsonl`` after every change, so pending writes survive a restart.
A failed task keeps its place with exponential backoff; once it has used up
its attempts it moves to ``dead_letter.jsonl`` and every registered failure
sink is told about it. Each task carries a whole record, so at most one task
per remote row is ever queued: the newest one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from thyro.sync.tasks import SyncTask, TaskKind

if TYPE_CHECKING:
    from thyro.persistence.local_store import LocalStore
    from thyro.sync.reachability import ReachabilityProbe

logger = logging.getLogger(__name__)

OUTBOX = "outbox"
DEAD_LETTER = "dead_letter"

# Returns True when the remote accepted the write.
TaskHandler = Callable[[SyncTask], Awaitable[bool]]
FailureSink = Callable[[SyncTask], None]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0

    def delay_for(self, attempts: int) -> float:
        """Backoff before the next try, given how many attempts have failed."""
        return min(self.base_delay * 2 ** max(attempts - 1, 0), self.max_delay)


def _latest_per_row(tasks: list[SyncTask]) -> list[SyncTask]:
    """Drop every task that a later task for the same row supersedes."""
    last = {t.record_key: t for t in tasks}
    return [t for t in tasks if last[t.record_key] is t]


class OfflineTaskQueue:
    """FIFO of pending remote writes with network-gated draining."""

    def __init__(
        self,
        store: LocalStore,
        policy: RetryPolicy | None = None,
        probe: ReachabilityProbe | None = None,
        poll_interval: float = 15.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self.policy = policy or RetryPolicy()
        self._probe = probe
        self.poll_interval = poll_interval
        self._clock = clock
        self._handlers: dict[TaskKind, TaskHandler] = {}
        self._failure_sinks: list[FailureSink] = []
        self._lock = asyncio.Lock()
        self._reachable = False
        self._retry_handle: asyncio.TimerHandle | None = None
        self._retry_task: asyncio.Task | None = None
        self._tasks = _latest_per_row(self._load(OUTBOX))
        self._dead = self._load(DEAD_LETTER)
        if self._tasks:
            logger.info("Restored %d pending tasks from disk", len(self._tasks))

    # ── Persistence ───────────────────────────────────────────

    def _load(self, name: str) -> list[SyncTask]:
        tasks = []
        for entry in self._store.read_entries(name):
            try:
                tasks.append(SyncTask.from_dict(entry))
            except ValueError as e:
                logger.warning("Dropping unreadable task in %s: %s", name, e)
        return tasks

    def _save(self) -> None:
        self._store.replace_entries(OUTBOX, [t.to_dict() for t in self._tasks])

    def _save_dead(self) -> None:
        self._store.replace_entries(DEAD_LETTER, [t.to_dict() for t in self._dead])

    # ── Registration ──────────────────────────────────────────

    def register_handler(self, kind: TaskKind, handler: TaskHandler) -> None:
        self._handlers[kind] = handler

    def add_failure_sink(self, sink: FailureSink) -> None:
        self._failure_sinks.append(sink)

    # ── Inspection ────────────────────────────────────────────

    @property
    def reachable(self) -> bool:
        return self._reachable

    @property
    def pending(self) -> list[SyncTask]:
        return list(self._tasks)

    @property
    def dead_letters(self) -> list[SyncTask]:
        return list(self._dead)

    def has_pending(self, kind: TaskKind, owner_id: str) -> bool:
        """True when a write to ``owner_id``'s row of ``kind`` has not been sent yet."""
        return any(t.record_key == (kind, owner_id) for t in self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    # ── Queue operations ──────────────────────────────────────

    async def enqueue(self, task: SyncTask) -> None:
        """Append a task; drain straight away if the network is up.

        Pushes replace the whole remote row, so any pending or dead-lettered
        task for the same row is superseded and dropped. An older write can
        never land after a newer one.
        """
        key = task.record_key
        async with self._lock:
            superseded = [t.id for t in self._tasks + self._dead if t.record_key == key]
            if superseded:
                logger.info("Task %s supersedes %s", task.id, ", ".join(superseded))
                self._tasks = [t for t in self._tasks if t.record_key != key]
                if any(t.record_key == key for t in self._dead):
                    self._dead = [t for t in self._dead if t.record_key != key]
                    self._save_dead()
            self._tasks.append(task)
            self._save()
        logger.info("Queued %s (%s), queue size %d", task.kind.value, task.id, len(self._tasks))
        if self._reachable:
            await self.drain()

    async def drain(self) -> int:
        """Run every due task in enqueue order. Returns how many succeeded."""
        async with self._lock:
            snapshot, self._tasks = self._tasks, []
            if not snapshot:
                return 0

            logger.info("Draining %d tasks", len(snapshot))
            now = self._clock()
            retained: list[SyncTask] = []
            succeeded = 0
            dead_changed = False

            for task in snapshot:
                if task.next_attempt_at > now:
                    retained.append(task)
                    continue
                if await self._execute(task):
                    succeeded += 1
                    continue
                task.attempts += 1
                if task.attempts >= self.policy.max_attempts:
                    self._dead.append(task)
                    dead_changed = True
                    self._report_failure(task)
                else:
                    delay = self.policy.delay_for(task.attempts)
                    task.next_attempt_at = now + delay
                    retained.append(task)
                    logger.warning(
                        "Task %s failed (attempt %d/%d), retrying in %.1fs: %s",
                        task.id,
                        task.attempts,
                        self.policy.max_attempts,
                        delay,
                        task.last_error,
                    )

            self._tasks = retained + self._tasks
            self._save()
            if dead_changed:
                self._save_dead()

        self._arm_retry()
        return succeeded

    async def _execute(self, task: SyncTask) -> bool:
        handler = self._handlers.get(task.kind)
        if handler is None:
            task.last_error = f"no handler for {task.kind.value}"
            return False
        try:
            ok = await handler(task)
        except Exception as e:
            task.last_error = f"{type(e).__name__}: {e}"
            return False
        if not ok:
            task.last_error = "rejected by remote"
        return bool(ok)

    def _report_failure(self, task: SyncTask) -> None:
        logger.error(
            "Task %s (%s) dead-lettered after %d attempts: %s",
            task.id,
            task.kind.value,
            task.attempts,
            task.last_error,
        )
        for sink in self._failure_sinks:
            try:
                sink(task)
            except Exception as e:
                logger.error("Failure sink error: %s", e)

    async def requeue_dead(self) -> int:
        """Give every dead-lettered task a fresh set of attempts.

        A dead task whose row already has a newer pending write stays dropped.
        """
        async with self._lock:
            pending_keys = {t.record_key for t in self._tasks}
            revived = [t for t in self._dead if t.record_key not in pending_keys]
            self._dead = []
            for task in revived:
                task.attempts = 0
                task.next_attempt_at = 0.0
                task.last_error = None
            self._tasks.extend(revived)
            self._save()
            self._save_dead()
        if revived and self._reachable:
            await self.drain()
        return len(revived)

    async def clear(self) -> None:
        """Forget pending and dead-lettered tasks (account reset)."""
        self._cancel_retry()
        async with self._lock:
            self._tasks = []
            self._dead = []
            self._save()
            self._save_dead()

    # ── Retry timer ───────────────────────────────────────────

    def _arm_retry(self) -> None:
        self._cancel_retry()
        if not self._reachable or not self._tasks:
            return
        earliest = min(t.next_attempt_at for t in self._tasks)
        delay = max(earliest - self._clock(), 0.0)
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(delay, self._on_retry_timer)

    def _on_retry_timer(self) -> None:
        self._retry_handle = None
        self._retry_task = asyncio.ensure_future(self.drain())

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    # ── Network monitor ───────────────────────────────────────

    async def set_reachable(self, reachable: bool) -> None:
        """Feed an edge-triggered reachability signal. Going online drains."""
        was = self._reachable
        self._reachable = reachable
        if reachable and not was:
            logger.info("Network reachable, %d tasks pending", len(self._tasks))
            await self.drain()
        elif was and not reachable:
            logger.info("Network unreachable, pausing queue")
            self._cancel_retry()

    def _has_due(self) -> bool:
        now = self._clock()
        return any(t.next_attempt_at <= now for t in self._tasks)

    async def run(self, shutdown_event: asyncio.Event | None = None) -> None:
        """Poll the reachability probe until shutdown_event is set."""
        if self._probe is None:
            logger.info("No reachability probe configured, network monitor idle")
            return
        logger.info("Network monitor started (poll every %.0fs)", self.poll_interval)
        while True:
            if shutdown_event and shutdown_event.is_set():
                break
            try:
                reachable = await self._probe.check()
                if reachable and self._reachable and self._has_due():
                    await self.drain()
                else:
                    await self.set_reachable(reachable)
            except Exception as e:
                logger.error("Network monitor error: %s", e)
            if shutdown_event:
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=self.poll_interval)
                    break
                except asyncio.TimeoutError:
                    pass
            else:
                await asyncio.sleep(self.poll_interval)
        logger.info("Network monitor stopped.")

    async def close(self) -> None:
        self._cancel_retry()
        if self._retry_task and not self._retry_task.done():
            self._retry_task.cancel()
            try:
                await self._retry_task
            except asyncio.CancelledError:
                pass
