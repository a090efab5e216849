"""Reactive entity store: the in-memory authority for one record kind.

Composes the local store, the remote gateway and the offline queue:

    set(entity) ──► value slot ──► listeners
                        │
                   debounce timer (cancel + reschedule on every set)
                        │ settle
                        ▼
                 local save + enqueue push

All mutation happens on the event loop, which is the store's serial
context. Remote pulls are awaited; a pull whose result arrives after the
store was written to, cleared, or claimed by another owner is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

from thyro.models import ENTITY_TYPES, EntityKind, decode_entity
from thyro.sync.gateway import PullStatus
from thyro.sync.tasks import PUSH_TASK_FOR, push_task

if TYPE_CHECKING:
    from thyro.models import Patch
    from thyro.persistence.local_store import LocalStore
    from thyro.sync.gateway import SyncGateway
    from thyro.sync.queue import OfflineTaskQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DEBOUNCE = 0.5


class StoreState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


@dataclass(frozen=True)
class StoreChange(Generic[T]):
    """Snapshot delivered to listeners after an accepted mutation."""

    kind: EntityKind
    owner_id: str | None
    value: T | None
    reason: str  # "set" | "load" | "clear"


Listener = Callable[[StoreChange], None]


class EntityStore(Generic[T]):
    """One owner-scoped record with debounced persistence and sync."""

    def __init__(
        self,
        kind: EntityKind,
        local: LocalStore,
        gateway: SyncGateway,
        queue: OfflineTaskQueue,
        debounce: float = DEFAULT_DEBOUNCE,
    ) -> None:
        self.kind = kind
        self._local = local
        self._gateway = gateway
        self._queue = queue
        self._debounce = debounce
        self._owner_id: str | None = None
        self._value: T | None = None
        self._epoch = 0  # bumped on every accepted mutation
        self._listeners: list[Listener] = []
        self._notifying = False
        self._timer: asyncio.TimerHandle | None = None
        self._inflight: set[asyncio.Task] = set()

    # ── Snapshot ──────────────────────────────────────────────

    @property
    def state(self) -> StoreState:
        return StoreState.UNINITIALIZED if self._owner_id is None else StoreState.READY

    @property
    def owner_id(self) -> str | None:
        return self._owner_id

    @property
    def value(self) -> T | None:
        return self._value

    @property
    def settle_pending(self) -> bool:
        return self._timer is not None

    # ── Subscription ──────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, reason: str) -> None:
        change = StoreChange(self.kind, self._owner_id, self._value, reason)
        self._notifying = True
        try:
            for listener in list(self._listeners):
                try:
                    listener(change)
                except Exception as e:
                    logger.error("%s listener failed: %s", self.kind.value, e)
        finally:
            self._notifying = False

    def _defer(self, method: Callable, *args) -> None:
        logger.debug("Deferring re-entrant %s.%s", self.kind.value, method.__name__)
        asyncio.get_running_loop().call_soon(method, *args)

    # ── Mutation ──────────────────────────────────────────────

    def set(self, entity: T) -> bool:
        """Replace the value if ``entity`` belongs to this store's owner.

        Returns True when the write was applied. A call made from inside a
        change listener is scheduled for the next loop iteration and returns
        False.
        """
        expected = ENTITY_TYPES[self.kind]
        if not isinstance(entity, expected):
            raise TypeError(f"{self.kind.value} store expects {expected.__name__}")
        if self._notifying:
            self._defer(self.set, entity)
            return False

        owner_id = entity.owner_id
        if self._owner_id is None:
            self._owner_id = owner_id
            logger.info("%s store adopted owner %s", self.kind.value, owner_id)
        elif owner_id != self._owner_id:
            logger.warning(
                "Rejected %s write for owner %s (store owned by %s)",
                self.kind.value,
                owner_id,
                self._owner_id,
            )
            return False

        self._value = entity
        self._epoch += 1
        self._schedule_settle()
        self._notify("set")
        return True

    def patch(self, patch: Patch) -> bool:
        """Apply a field patch to the current value through ``set``."""
        if self._value is None:
            logger.warning("Cannot patch %s: no current value", self.kind.value)
            return False
        return self.set(patch.apply(self._value))

    def clear(self) -> None:
        """Drop value and owner, delete the local record, return to Uninitialized."""
        if self._notifying:
            self._defer(self.clear)
            return
        self._cancel_timer()
        previous = self._owner_id
        self._owner_id = None
        self._value = None
        self._epoch += 1
        self._local.delete(self.kind)
        logger.info("%s store cleared (was owner %s)", self.kind.value, previous)
        self._notify("clear")

    # ── Debounced side effect ─────────────────────────────────

    def _schedule_settle(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce, self._on_settle)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_settle(self) -> None:
        self._timer = None
        if self._value is None:
            return
        task = asyncio.ensure_future(self._persist_and_push(self._value))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _persist_and_push(self, value: T) -> None:
        if value.owner_id != self._owner_id:
            logger.debug("Skipping settle for superseded %s owner %s", self.kind.value, value.owner_id)
            return
        self._local.save(self.kind, value)
        await self._queue.enqueue(push_task(self.kind, value.to_record()))

    async def flush(self) -> None:
        """Settle any pending write now and wait for in-flight settles."""
        if self._timer is not None:
            self._cancel_timer()
            if self._value is not None:
                await self._persist_and_push(self._value)
        if self._inflight:
            await asyncio.gather(*list(self._inflight))

    # ── Loading ───────────────────────────────────────────────

    async def load_for_owner(self, owner_id: str) -> T | None:
        """Pull the owner's record, falling back to the local copy.

        An edit that has not settled yet wins over the remote copy. Returns
        the value the store holds afterwards.
        """
        if self._owner_id is not None and self._owner_id != owner_id:
            logger.warning(
                "Ignoring load of %s for %s: store owned by %s",
                self.kind.value,
                owner_id,
                self._owner_id,
            )
            return self._value
        if self._timer is not None and self._value is not None:
            logger.info(
                "Keeping unsettled %s edit for %s over the remote copy", self.kind.value, owner_id
            )
            return self._value

        epoch = self._epoch
        result = await self._gateway.pull(self.kind, owner_id)
        if self._epoch != epoch:
            logger.info("Discarding superseded %s pull for %s", self.kind.value, owner_id)
            return self._value
        if self._owner_id is not None and self._owner_id != owner_id:
            return self._value

        value: T | None = None
        local_ahead = self._queue.has_pending(PUSH_TASK_FOR[self.kind], owner_id)
        if result.found and local_ahead:
            logger.info("Local %s for %s has an unsent push, keeping it", self.kind.value, owner_id)
        elif result.found:
            try:
                value = decode_entity(self.kind, result.record)
            except ValueError as e:
                logger.warning("Remote %s record unreadable: %s", self.kind.value, e)
            if value is not None and value.owner_id != owner_id:
                logger.warning("Remote %s belongs to %s, ignoring", self.kind.value, value.owner_id)
                value = None
            if value is not None:
                self._local.save(self.kind, value)

        if value is None:
            local = self._local.load(self.kind)
            if local is not None and local.owner_id == owner_id:
                value = local
                logger.info("Loaded %s for %s from local store", self.kind.value, owner_id)
                if result.status is PullStatus.NOT_FOUND:
                    # Remote never saw this record; send it up.
                    await self._queue.enqueue(push_task(self.kind, local.to_record()))
            elif self._value is not None and self._owner_id == owner_id:
                value = self._value

        if self._epoch != epoch:
            return self._value
        self._owner_id = owner_id
        self._value = value
        self._epoch += 1
        self._notify("load")
        return value

    async def close(self) -> None:
        await self.flush()
