"""Owner-scoped records synchronised between memory, disk and the remote backend.

Both records encode to flat snake_case dicts whose keys mirror the remote
table columns. The same encoding is used for the local frontmatter files and
the queued push payloads, so a record read from any tier decodes the same way.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


class EntityKind(str, Enum):
    PROFILE = "profile"
    CONFIG = "config"


class Condition(str, Enum):
    HYPO = "hypo"
    CANCER = "cancer"
    HYPER = "hyper"


class Stage(str, Enum):
    """Treatment stage. Compared by equality only; declaration order is not a ranking."""

    DX = "dx"
    MED_TITRATION = "medTitration"
    PRE_SURGERY = "preSurgery"
    POST_SURGERY_NO_MEDS = "postSurgeryNoMeds"
    POST_SURGERY_ON_MEDS = "postSurgeryOnMeds"
    RAI_PREP = "raiPrep"
    RAI_ISOLATION = "raiIsolation"
    SURVEILLANCE = "surveillance"


def _require(data: dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ValueError(f"record is missing '{key}'")
    return data[key]


def _as_bool(value: Any, key: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' must be a boolean, got {type(value).__name__}")
    return value


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"unsupported timestamp value: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Medication:
    name: str
    dose: float
    unit: str  # "mcg", "mg", ...
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_record(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "dose": self.dose, "unit": self.unit}

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Medication:
        try:
            return cls(
                id=str(data.get("id") or uuid.uuid4()),
                name=str(_require(data, "name")),
                dose=float(_require(data, "dose")),
                unit=str(_require(data, "unit")),
            )
        except (TypeError, AttributeError) as e:
            raise ValueError(f"malformed medication: {e}") from e


@dataclass(frozen=True)
class Profile:
    """Where the user is in their treatment journey."""

    owner_id: str
    condition: Condition
    stage: Stage
    on_medication: bool = False
    on_lid: bool = False

    def to_record(self) -> dict[str, Any]:
        return {
            "user_id": self.owner_id,
            "condition": self.condition.value,
            "stage": self.stage.value,
            "on_medication": self.on_medication,
            "on_lid": self.on_lid,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Profile:
        if not isinstance(data, dict):
            raise ValueError("profile record must be a mapping")
        return cls(
            owner_id=str(_require(data, "user_id")),
            condition=Condition(_require(data, "condition")),
            stage=Stage(_require(data, "stage")),
            on_medication=_as_bool(data.get("on_medication", False), "on_medication"),
            on_lid=_as_bool(data.get("on_lid", False), "on_lid"),
        )


@dataclass(frozen=True)
class UserConfig:
    """Which optional features the user has switched on."""

    owner_id: str
    log_symptoms: bool = True
    track_appointments: bool = True
    manage_medications: bool = True
    next_important_date: datetime | None = None
    medications: tuple[Medication, ...] = ()

    def to_record(self) -> dict[str, Any]:
        return {
            "user_id": self.owner_id,
            "log_symptoms": self.log_symptoms,
            "track_appointments": self.track_appointments,
            "manage_medications": self.manage_medications,
            "next_important_date": (
                self.next_important_date.isoformat() if self.next_important_date else None
            ),
            "meds": [m.to_record() for m in self.medications],
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> UserConfig:
        if not isinstance(data, dict):
            raise ValueError("config record must be a mapping")
        meds = data.get("meds") or []
        if not isinstance(meds, list):
            raise ValueError("'meds' must be a list")
        return cls(
            owner_id=str(_require(data, "user_id")),
            log_symptoms=_as_bool(data.get("log_symptoms", True), "log_symptoms"),
            track_appointments=_as_bool(data.get("track_appointments", True), "track_appointments"),
            manage_medications=_as_bool(data.get("manage_medications", True), "manage_medications"),
            next_important_date=_parse_timestamp(data.get("next_important_date")),
            medications=tuple(Medication.from_record(m) for m in meds),
        )


Entity = Union[Profile, UserConfig]

ENTITY_TYPES: dict[EntityKind, type] = {
    EntityKind.PROFILE: Profile,
    EntityKind.CONFIG: UserConfig,
}


def decode_entity(kind: EntityKind, record: dict[str, Any]) -> Entity:
    """Decode a record for ``kind``. Raises ValueError on malformed input."""
    return ENTITY_TYPES[kind].from_record(record)


# ── Patches ──────────────────────────────────────────────────


@dataclass(frozen=True)
class ProfilePatch:
    """Fields to change on a Profile. ``None`` leaves a field untouched."""

    condition: Condition | None = None
    stage: Stage | None = None
    on_medication: bool | None = None
    on_lid: bool | None = None

    def apply(self, profile: Profile) -> Profile:
        changes: dict[str, Any] = {}
        if self.condition is not None:
            changes["condition"] = self.condition
        if self.stage is not None:
            changes["stage"] = self.stage
        if self.on_medication is not None:
            changes["on_medication"] = self.on_medication
        if self.on_lid is not None:
            changes["on_lid"] = self.on_lid
        return replace(profile, **changes)


@dataclass(frozen=True)
class ConfigPatch:
    """Fields to change on a UserConfig. ``None`` leaves a field untouched."""

    log_symptoms: bool | None = None
    track_appointments: bool | None = None
    manage_medications: bool | None = None
    next_important_date: datetime | None = None
    clear_next_important_date: bool = False
    medications: tuple[Medication, ...] | None = None

    def apply(self, config: UserConfig) -> UserConfig:
        changes: dict[str, Any] = {}
        if self.log_symptoms is not None:
            changes["log_symptoms"] = self.log_symptoms
        if self.track_appointments is not None:
            changes["track_appointments"] = self.track_appointments
        if self.manage_medications is not None:
            changes["manage_medications"] = self.manage_medications
        if self.clear_next_important_date:
            changes["next_important_date"] = None
        elif self.next_important_date is not None:
            changes["next_important_date"] = self.next_important_date
        if self.medications is not None:
            changes["medications"] = tuple(self.medications)
        return replace(config, **changes)


Patch = Union[ProfilePatch, ConfigPatch]
