"""Serializable descriptors for queued remote writes."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from thyro.models import EntityKind


class TaskKind(str, Enum):
    PUSH_PROFILE = "push_profile"
    PUSH_CONFIG = "push_config"


PUSH_TASK_FOR: dict[EntityKind, TaskKind] = {
    EntityKind.PROFILE: TaskKind.PUSH_PROFILE,
    EntityKind.CONFIG: TaskKind.PUSH_CONFIG,
}


@dataclass
class SyncTask:
    """One pending remote operation. Plain data so it can be written to disk."""

    kind: TaskKind
    payload: dict[str, Any]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    attempts: int = 0
    next_attempt_at: float = 0.0  # wall clock, seconds since epoch
    last_error: str | None = None

    @property
    def record_key(self) -> tuple[TaskKind, Any]:
        """Identifies the remote row this task overwrites."""
        return self.kind, self.payload.get("user_id")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "payload": self.payload,
            "attempts": self.attempts,
            "next_attempt_at": self.next_attempt_at,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncTask:
        try:
            return cls(
                id=str(data["id"]),
                kind=TaskKind(data["kind"]),
                payload=dict(data["payload"]),
                attempts=int(data.get("attempts", 0)),
                next_attempt_at=float(data.get("next_attempt_at", 0.0)),
                last_error=data.get("last_error"),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed task: {e}") from e


def push_task(kind: EntityKind, record: dict[str, Any]) -> SyncTask:
    """Build the push task for a record of ``kind``."""
    return SyncTask(kind=PUSH_TASK_FOR[kind], payload=record)
