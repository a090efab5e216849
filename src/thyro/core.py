"""Thyro composition root. Builds every service once and wires them together.

Responsibilities:
1. Construct the local store, remote gateway, offline queue and both entity stores
2. Register push handlers on the queue for each record kind
3. Keep the dashboard card list in step with the stores and the symptom log
4. Expose the entry points the presentation layer calls
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from thyro.activity import AppointmentBook, SymptomLog
from thyro.cards import CardBoard, CardDescriptor
from thyro.config import ThyroConfig
from thyro.models import EntityKind, Profile, UserConfig
from thyro.persistence.local_store import LocalStore
from thyro.stores.entity_store import EntityStore
from thyro.sync.gateway import GatewayError, SupabaseGateway
from thyro.sync.queue import OfflineTaskQueue, RetryPolicy
from thyro.sync.reachability import TcpProbe
from thyro.sync.tasks import PUSH_TASK_FOR

if TYPE_CHECKING:
    from thyro.models import ConfigPatch, ProfilePatch
    from thyro.sync.gateway import SyncGateway
    from thyro.sync.queue import TaskHandler
    from thyro.sync.reachability import ReachabilityProbe
    from thyro.sync.tasks import SyncTask

logger = logging.getLogger(__name__)


class Thyro:
    """Local-first sync for the profile and config records."""

    def __init__(
        self,
        config: ThyroConfig,
        gateway: SyncGateway | None = None,
        probe: ReachabilityProbe | None = None,
    ) -> None:
        self.config = config
        self.local = LocalStore(config.data_dir)
        self.gateway = gateway or SupabaseGateway(config.remote, self.local)
        if probe is None and config.remote.enabled:
            probe = TcpProbe.for_url(config.remote.url)

        sync = config.sync
        self.queue = OfflineTaskQueue(
            self.local,
            RetryPolicy(
                max_attempts=sync.max_attempts,
                base_delay=sync.retry_base_delay,
                max_delay=sync.retry_max_delay,
            ),
            probe=probe,
            poll_interval=sync.poll_interval,
        )
        self.failed_pushes: list[SyncTask] = []
        for kind, task_kind in PUSH_TASK_FOR.items():
            self.queue.register_handler(task_kind, self._push_handler(kind))
        self.queue.add_failure_sink(self.failed_pushes.append)

        self.profiles: EntityStore[Profile] = EntityStore(
            EntityKind.PROFILE, self.local, self.gateway, self.queue, sync.debounce_seconds
        )
        self.configs: EntityStore[UserConfig] = EntityStore(
            EntityKind.CONFIG, self.local, self.gateway, self.queue, sync.debounce_seconds
        )
        self.symptoms = SymptomLog(self.local)
        self.appointments = AppointmentBook(self.local)
        self.board = CardBoard(self.profiles, self.configs, self.symptoms)

    def _push_handler(self, kind: EntityKind) -> TaskHandler:
        async def handler(task: SyncTask) -> bool:
            return await self.gateway.push(kind, task.payload)

        return handler

    # ── Loading ───────────────────────────────────────────────

    def _cached_owner(self) -> str | None:
        for kind in (EntityKind.PROFILE, EntityKind.CONFIG):
            entity = self.local.load(kind)
            if entity is not None:
                return entity.owner_id
        return None

    async def load_for_owner(self, owner_id: str | None = None) -> str | None:
        """Load both records for ``owner_id`` (default: the session's owner).

        Returns the owner id that was loaded, or None when no identity is
        available at all.
        """
        if owner_id is None:
            try:
                owner_id = await self.gateway.ensure_session()
            except GatewayError as e:
                owner_id = self._cached_owner()
                logger.warning("No remote session (%s), using cached owner %s", e, owner_id)
                if owner_id is None:
                    return None
        await asyncio.gather(
            self.profiles.load_for_owner(owner_id),
            self.configs.load_for_owner(owner_id),
        )
        return owner_id

    # ── Presentation entry points ─────────────────────────────

    def set_profile(self, profile: Profile) -> bool:
        return self.profiles.set(profile)

    def set_config(self, config: UserConfig) -> bool:
        return self.configs.set(config)

    def patch_profile(self, patch: ProfilePatch) -> bool:
        return self.profiles.patch(patch)

    def patch_config(self, patch: ConfigPatch) -> bool:
        return self.configs.patch(patch)

    def clear_profile(self) -> None:
        self.profiles.clear()

    def clear_config(self) -> None:
        self.configs.clear()

    @property
    def cards(self) -> list[CardDescriptor]:
        return self.board.cards

    async def reset_account(self) -> None:
        """Delete all local data and forget the anonymous identity."""
        self.profiles.clear()
        self.configs.clear()
        self.symptoms.clear()
        self.appointments.clear()
        await self.queue.clear()
        self.gateway.reset_session()
        self.local.purge()
        logger.info("Account data reset")

    # ── Lifecycle ─────────────────────────────────────────────

    async def sync_once(self) -> int:
        """Load from the remote and push everything pending. Returns tasks pushed."""
        await self.load_for_owner()
        return await self.queue.drain()

    async def start(self, shutdown_event: asyncio.Event) -> None:
        """Run the network monitor until shutdown_event is set."""
        await self.queue.run(shutdown_event)
        # The monitor returns at once when there is no probe (offline-only).
        await shutdown_event.wait()

    async def stop(self) -> None:
        """Settle pending writes, then close the queue and the gateway."""
        await self.profiles.flush()
        await self.configs.flush()
        await self.queue.close()
        await self.gateway.close()
