"""Auxiliary lists: symptom log (source of the "logged today" signal) and appointments.

Both live in the local store as append-only JSONL lists and are never pushed
to the remote backend.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from thyro.persistence.local_store import LocalStore

logger = logging.getLogger(__name__)

SYMPTOM_LOG = "symptom_log"
APPOINTMENTS = "appointments"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_dt(value: Any) -> datetime:
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def local_day(moment: datetime) -> date:
    """Calendar day of ``moment`` in the machine's local timezone."""
    return moment.astimezone().date()


# ── Symptoms ─────────────────────────────────────────────────


@dataclass(frozen=True)
class SymptomEntry:
    date: datetime
    mood_score: int
    symptoms: tuple[str, ...] = ()
    notes: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "mood_score": self.mood_score,
            "symptoms": list(self.symptoms),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SymptomEntry:
        try:
            return cls(
                id=str(data["id"]),
                date=_parse_dt(data["date"]),
                mood_score=int(data["mood_score"]),
                symptoms=tuple(data.get("symptoms") or ()),
                notes=data.get("notes"),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed symptom entry: {e}") from e


class SymptomLog:
    """Symptom history, newest first."""

    def __init__(
        self,
        store: LocalStore,
        today: Callable[[], date] = date.today,
        day_of: Callable[[datetime], date] = local_day,
    ) -> None:
        self._store = store
        self._today = today
        self._day_of = day_of
        self._listeners: list[Callable[[], None]] = []
        self.entries: list[SymptomEntry] = self._load()

    def _load(self) -> list[SymptomEntry]:
        entries = []
        for raw in self._store.read_entries(SYMPTOM_LOG):
            try:
                entries.append(SymptomEntry.from_dict(raw))
            except ValueError as e:
                logger.warning("Skipping symptom entry: %s", e)
        entries.sort(key=lambda e: e.date, reverse=True)
        return entries

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error("Symptom log listener failed: %s", e)

    def add(self, entry: SymptomEntry) -> None:
        self.entries.append(entry)
        self.entries.sort(key=lambda e: e.date, reverse=True)
        self._store.append_entry(SYMPTOM_LOG, entry.to_dict())
        logger.info("Logged symptoms, history size %d", len(self.entries))
        self._notify()

    def logged_today(self) -> bool:
        today = self._today()
        return any(self._day_of(e.date) == today for e in self.entries)

    def refresh(self) -> None:
        """Re-evaluate after a day boundary passes."""
        self._notify()

    def clear(self) -> None:
        self.entries = []
        self._store.delete_entries(SYMPTOM_LOG)
        self._notify()


# ── Appointments ─────────────────────────────────────────────


class AppointmentType(str, Enum):
    DOCTOR_VISIT = "Doctor Visit"
    BLOOD_TEST = "Blood Test"
    IMAGING_SCAN = "Imaging/Scan"
    PROCEDURE = "Procedure"
    OTHER = "Other"


@dataclass(frozen=True)
class Appointment:
    title: str
    date: datetime
    type: AppointmentType = AppointmentType.DOCTOR_VISIT
    doctor_name: str | None = None
    location: str | None = None
    notes: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date.isoformat(),
            "type": self.type.value,
            "doctor_name": self.doctor_name,
            "location": self.location,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Appointment:
        try:
            return cls(
                id=str(data["id"]),
                title=str(data["title"]),
                date=_parse_dt(data["date"]),
                type=AppointmentType(data.get("type", AppointmentType.DOCTOR_VISIT.value)),
                doctor_name=data.get("doctor_name"),
                location=data.get("location"),
                notes=data.get("notes"),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed appointment: {e}") from e


def sort_appointments(items: list[Appointment], now: datetime) -> list[Appointment]:
    """Upcoming first (soonest first), then past ones (most recent first)."""
    upcoming = sorted((a for a in items if a.date >= now), key=lambda a: a.date)
    past = sorted((a for a in items if a.date < now), key=lambda a: a.date, reverse=True)
    return upcoming + past


class AppointmentBook:
    def __init__(self, store: LocalStore, now: Callable[[], datetime] = _now) -> None:
        self._store = store
        self._now = now
        self._items: list[Appointment] = []
        for raw in store.read_entries(APPOINTMENTS):
            try:
                self._items.append(Appointment.from_dict(raw))
            except ValueError as e:
                logger.warning("Skipping appointment: %s", e)

    @property
    def appointments(self) -> list[Appointment]:
        return sort_appointments(self._items, self._now())

    def upcoming(self) -> list[Appointment]:
        now = self._now()
        return [a for a in self.appointments if a.date >= now]

    def add(self, appointment: Appointment) -> None:
        self._items.append(appointment)
        self._store.append_entry(APPOINTMENTS, appointment.to_dict())

    def update(self, appointment: Appointment) -> bool:
        for i, existing in enumerate(self._items):
            if existing.id == appointment.id:
                self._items[i] = appointment
                self._save()
                return True
        return False

    def reschedule(self, appointment_id: str, when: datetime) -> bool:
        for existing in self._items:
            if existing.id == appointment_id:
                return self.update(replace(existing, date=when))
        return False

    def remove(self, appointment_id: str) -> bool:
        before = len(self._items)
        self._items = [a for a in self._items if a.id != appointment_id]
        if len(self._items) == before:
            return False
        self._save()
        return True

    def clear(self) -> None:
        self._items = []
        self._store.delete_entries(APPOINTMENTS)

    def _save(self) -> None:
        self._store.replace_entries(APPOINTMENTS, [a.to_dict() for a in self._items])
