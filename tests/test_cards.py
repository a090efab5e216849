"""Tests for dashboard card derivation."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from thyro.activity import SymptomEntry, SymptomLog
from thyro.cards import CardBoard, CardDescriptor, CardType, build_cards, enabled_cards, order_cards
from thyro.models import Condition, EntityKind, Stage
from thyro.persistence.local_store import LocalStore
from thyro.stores.entity_store import EntityStore
from thyro.sync.queue import OfflineTaskQueue
from tests.conftest import FakeGateway, make_config, make_profile

TODAY = date(2026, 10, 19)


def fixed_day(moment: datetime) -> date:
    return moment.date()


class TestRules:
    def test_cancer_surveillance(self):
        profile = make_profile(condition=Condition.CANCER, stage=Stage.SURVEILLANCE)
        config = make_config(track_appointments=True, log_symptoms=False)
        assert enabled_cards(profile, config) == {CardType.TG_TREND, CardType.APPOINTMENTS}

    def test_rai_prep_enables_both_rai_cards(self):
        enabled = enabled_cards(make_profile(stage=Stage.RAI_PREP), make_config(log_symptoms=True))
        assert {CardType.LID_COUNTDOWN, CardType.RAI_PRECAUTIONS} <= enabled

    def test_isolation_has_precautions_only(self):
        enabled = enabled_cards(make_profile(stage=Stage.RAI_ISOLATION), make_config())
        assert enabled == {CardType.RAI_PRECAUTIONS}

    def test_tg_trend_needs_cancer(self):
        profile = make_profile(condition=Condition.HYPO, stage=Stage.SURVEILLANCE)
        assert CardType.TG_TREND not in enabled_cards(profile, make_config())

    def test_hyper_gets_heart_rate(self):
        enabled = enabled_cards(make_profile(condition=Condition.HYPER), make_config())
        assert enabled == {CardType.HEART_RATE_LOG}

    def test_medication_reminder(self):
        enabled = enabled_cards(make_profile(on_medication=True), make_config())
        assert enabled == {CardType.MEDICATION_REMINDER}

    def test_missing_records(self):
        assert enabled_cards(None, None) == frozenset()
        assert enabled_cards(None, make_config(log_symptoms=True)) == {CardType.SYMPTOM_LOG}
        assert enabled_cards(make_profile(stage=Stage.RAI_PREP), None) == {
            CardType.LID_COUNTDOWN,
            CardType.RAI_PRECAUTIONS,
        }


class TestOrdering:
    def test_rai_cards_lead(self):
        profile = make_profile(stage=Stage.RAI_PREP, on_medication=True)
        enabled = enabled_cards(profile, make_config(log_symptoms=True))
        assert order_cards(enabled, logged_today=True) == [
            CardType.LID_COUNTDOWN,
            CardType.RAI_PRECAUTIONS,
            CardType.MEDICATION_REMINDER,
            CardType.SYMPTOM_LOG,
        ]

    def test_unlogged_symptom_card_first(self):
        profile = make_profile(stage=Stage.RAI_PREP)
        enabled = enabled_cards(profile, make_config(log_symptoms=True))
        ordered = order_cards(enabled, logged_today=False)
        assert ordered[0] is CardType.SYMPTOM_LOG
        assert ordered[1:] == [CardType.LID_COUNTDOWN, CardType.RAI_PRECAUTIONS]

    def test_logged_symptom_card_last(self):
        profile = make_profile(condition=Condition.HYPER)
        config = make_config(log_symptoms=True, track_appointments=True)
        assert order_cards(enabled_cards(profile, config), logged_today=True) == [
            CardType.APPOINTMENTS,
            CardType.HEART_RATE_LOG,
            CardType.SYMPTOM_LOG,
        ]

    def test_rest_sorted_by_tag(self):
        enabled = {CardType.TG_TREND, CardType.APPOINTMENTS, CardType.MEDICATION_REMINDER}
        assert [c.tag for c in order_cards(enabled, logged_today=False)] == [
            "appointments",
            "medicationReminder",
            "tgTrend",
        ]

    def test_deterministic(self):
        profile = make_profile(condition=Condition.CANCER, stage=Stage.SURVEILLANCE, on_medication=True)
        config = make_config(log_symptoms=True, track_appointments=True)
        first = build_cards(profile, config, logged_today=False)
        for _ in range(5):
            assert build_cards(profile, config, logged_today=False) == first

    def test_positions(self):
        profile = make_profile(stage=Stage.RAI_ISOLATION)
        cards = build_cards(profile, make_config(log_symptoms=True), logged_today=False)
        assert cards == [
            CardDescriptor(CardType.SYMPTOM_LOG, True, 0),
            CardDescriptor(CardType.RAI_PRECAUTIONS, True, 1),
        ]


@pytest.fixture
def symptoms(local: LocalStore) -> SymptomLog:
    return SymptomLog(local, today=lambda: TODAY, day_of=fixed_day)


@pytest.fixture
def board(local: LocalStore, gateway: FakeGateway, queue: OfflineTaskQueue, symptoms: SymptomLog):
    profiles = EntityStore(EntityKind.PROFILE, local, gateway, queue, debounce=60.0)
    configs = EntityStore(EntityKind.CONFIG, local, gateway, queue, debounce=60.0)
    return CardBoard(profiles, configs, symptoms), profiles, configs


class TestCardBoard:
    @pytest.mark.asyncio
    async def test_starts_empty(self, board):
        cards, _, _ = board
        assert cards.cards == []

    @pytest.mark.asyncio
    async def test_follows_store_changes(self, board):
        cards, profiles, configs = board
        published: list[list[CardDescriptor]] = []
        cards.subscribe(published.append)

        profiles.set(make_profile(stage=Stage.PRE_SURGERY))
        assert published == []  # no card enabled yet, list unchanged

        profiles.set(make_profile(stage=Stage.RAI_PREP))
        configs.set(make_config(log_symptoms=True))
        assert [c.type for c in cards.cards] == [
            CardType.SYMPTOM_LOG,
            CardType.LID_COUNTDOWN,
            CardType.RAI_PRECAUTIONS,
        ]
        assert len(published) == 2

        profiles.clear()
        assert [c.type for c in cards.cards] == [CardType.SYMPTOM_LOG]

    @pytest.mark.asyncio
    async def test_logging_symptoms_moves_card(self, board, symptoms: SymptomLog):
        cards, profiles, configs = board
        configs.set(make_config(log_symptoms=True, track_appointments=True))
        assert cards.cards[0].type is CardType.SYMPTOM_LOG

        symptoms.add(SymptomEntry(date=datetime(2026, 10, 19, 8, tzinfo=timezone.utc), mood_score=3))
        assert [c.type for c in cards.cards] == [CardType.APPOINTMENTS, CardType.SYMPTOM_LOG]

    @pytest.mark.asyncio
    async def test_yesterday_entry_does_not_count(self, board, symptoms: SymptomLog):
        cards, _, configs = board
        configs.set(make_config(log_symptoms=True, track_appointments=True))
        symptoms.add(SymptomEntry(date=datetime(2026, 10, 18, 23, tzinfo=timezone.utc), mood_score=4))
        assert cards.cards[0].type is CardType.SYMPTOM_LOG

    @pytest.mark.asyncio
    async def test_detach(self, board):
        cards, profiles, _ = board
        cards.detach()
        profiles.set(make_profile(condition=Condition.HYPER))
        assert cards.cards == []
