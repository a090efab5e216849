"""Shared fixtures for the test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from thyro.models import Condition, EntityKind, Profile, Stage, UserConfig
from thyro.persistence.local_store import LocalStore
from thyro.sync.gateway import PullResult, PullStatus
from thyro.sync.queue import OfflineTaskQueue


# ---------------------------------------------------------------------------
# Fake remote backend (no network needed)
# ---------------------------------------------------------------------------

class FakeGateway:
    """In-memory stand-in for SupabaseGateway."""

    def __init__(self, owner_id: str = "owner-a") -> None:
        self.owner_id = owner_id
        self.tables: dict[EntityKind, dict[str, dict[str, Any]]] = {
            EntityKind.PROFILE: {},
            EntityKind.CONFIG: {},
        }
        self.pushes: list[tuple[EntityKind, dict[str, Any]]] = []
        self.pulls: list[tuple[EntityKind, str]] = []
        self.fail_pull = False
        self.fail_push = False
        self.session_resets = 0
        self.closed = False

    async def push(self, kind, record) -> bool:
        self.pushes.append((kind, record))
        if self.fail_push:
            return False
        self.tables[kind][record["user_id"]] = dict(record)
        return True

    async def pull(self, kind, owner_id) -> PullResult:
        self.pulls.append((kind, owner_id))
        if self.fail_pull:
            return PullResult.failed("offline")
        record = self.tables[kind].get(owner_id)
        if record is None:
            return PullResult(PullStatus.NOT_FOUND)
        return PullResult(PullStatus.FOUND, record=dict(record))

    async def ensure_session(self) -> str:
        return self.owner_id

    def reset_session(self) -> None:
        self.session_resets += 1

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def local(tmp_path: Path) -> LocalStore:
    return LocalStore(tmp_path / "data")


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def queue(local: LocalStore) -> OfflineTaskQueue:
    """A queue that stays offline unless a test flips it."""
    return OfflineTaskQueue(local)


def make_profile(
    owner_id: str = "owner-a",
    condition: Condition = Condition.HYPO,
    stage: Stage = Stage.DX,
    on_medication: bool = False,
    on_lid: bool = False,
) -> Profile:
    return Profile(
        owner_id=owner_id,
        condition=condition,
        stage=stage,
        on_medication=on_medication,
        on_lid=on_lid,
    )


def make_config(owner_id: str = "owner-a", **overrides: Any) -> UserConfig:
    fields: dict[str, Any] = {
        "log_symptoms": False,
        "track_appointments": False,
        "manage_medications": False,
    }
    fields.update(overrides)
    return UserConfig(owner_id=owner_id, **fields)
