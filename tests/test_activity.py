"""Tests for the symptom log and appointment book."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from thyro.activity import (
    APPOINTMENTS,
    Appointment,
    AppointmentBook,
    AppointmentType,
    SymptomEntry,
    SymptomLog,
    sort_appointments,
)
from thyro.persistence.local_store import LocalStore

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def utc_day(moment: datetime) -> date:
    return moment.astimezone(timezone.utc).date()


class TestSymptomLog:
    def test_logged_today(self, local: LocalStore):
        day = {"today": date(2026, 10, 19)}
        log = SymptomLog(local, today=lambda: day["today"], day_of=utc_day)
        assert log.logged_today() is False

        log.add(SymptomEntry(date=NOW, mood_score=2, symptoms=("fatigue",)))
        assert log.logged_today() is True

        day["today"] = date(2026, 10, 20)
        assert log.logged_today() is False

    def test_newest_first_and_persisted(self, local: LocalStore):
        log = SymptomLog(local)
        older = SymptomEntry(date=NOW - timedelta(days=2), mood_score=4, id="old")
        newer = SymptomEntry(date=NOW, mood_score=1, notes="rough day", id="new")
        log.add(older)
        log.add(newer)
        assert [e.id for e in log.entries] == ["new", "old"]

        reopened = SymptomLog(local)
        assert reopened.entries == [newer, older]

    def test_listeners(self, local: LocalStore):
        log = SymptomLog(local)
        calls: list[str] = []
        unsubscribe = log.subscribe(lambda: calls.append("changed"))
        log.add(SymptomEntry(date=NOW, mood_score=3))
        log.refresh()
        unsubscribe()
        log.clear()
        assert calls == ["changed", "changed"]

    def test_clear(self, local: LocalStore):
        log = SymptomLog(local)
        log.add(SymptomEntry(date=NOW, mood_score=3))
        log.clear()
        assert log.entries == []
        assert SymptomLog(local).entries == []

    def test_malformed_entry_skipped(self, local: LocalStore):
        local.append_entry("symptom_log", {"id": "x"})
        local.append_entry("symptom_log", SymptomEntry(date=NOW, mood_score=5, id="ok").to_dict())
        assert [e.id for e in SymptomLog(local).entries] == ["ok"]


class TestAppointments:
    def test_sort_upcoming_then_past(self):
        items = [
            Appointment("past-far", NOW - timedelta(days=30), id="p2"),
            Appointment("soon", NOW + timedelta(days=1), id="u1"),
            Appointment("past-near", NOW - timedelta(days=1), id="p1"),
            Appointment("later", NOW + timedelta(days=10), id="u2"),
        ]
        assert [a.id for a in sort_appointments(items, NOW)] == ["u1", "u2", "p1", "p2"]

    def test_add_and_reload(self, local: LocalStore):
        book = AppointmentBook(local, now=lambda: NOW)
        visit = Appointment(
            "Endo follow-up",
            NOW + timedelta(days=7),
            type=AppointmentType.BLOOD_TEST,
            doctor_name="Dr. Ruiz",
            id="a1",
        )
        book.add(visit)
        assert AppointmentBook(local, now=lambda: NOW).appointments == [visit]

    def test_upcoming(self, local: LocalStore):
        book = AppointmentBook(local, now=lambda: NOW)
        book.add(Appointment("done", NOW - timedelta(hours=1), id="a1"))
        book.add(Appointment("next", NOW + timedelta(hours=1), id="a2"))
        assert [a.id for a in book.upcoming()] == ["a2"]

    def test_reschedule_and_remove(self, local: LocalStore):
        book = AppointmentBook(local, now=lambda: NOW)
        book.add(Appointment("scan", NOW + timedelta(days=3), type=AppointmentType.IMAGING_SCAN, id="a1"))
        book.add(Appointment("visit", NOW + timedelta(days=5), id="a2"))

        assert book.reschedule("a1", NOW + timedelta(days=9)) is True
        assert [a.id for a in book.appointments] == ["a2", "a1"]

        assert book.remove("a2") is True
        assert book.remove("a2") is False
        assert book.reschedule("missing", NOW) is False
        assert [e["id"] for e in local.read_entries(APPOINTMENTS)] == ["a1"]

    def test_update_unknown(self, local: LocalStore):
        book = AppointmentBook(local)
        assert book.update(Appointment("ghost", NOW, id="nope")) is False

    def test_zulu_dates_decode(self):
        appt = Appointment.from_dict({"id": "a", "title": "t", "date": "2026-10-19T12:00:00Z"})
        assert appt.date == NOW
        assert appt.type is AppointmentType.DOCTOR_VISIT
