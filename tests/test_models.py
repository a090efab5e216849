"""Tests for record encoding and patch objects."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from thyro.models import (
    Condition,
    ConfigPatch,
    EntityKind,
    Medication,
    Profile,
    ProfilePatch,
    Stage,
    UserConfig,
    decode_entity,
)
from tests.conftest import make_config, make_profile


class TestProfileRecord:
    def test_snake_case_columns(self):
        profile = make_profile(condition=Condition.CANCER, stage=Stage.RAI_PREP, on_lid=True)
        assert profile.to_record() == {
            "user_id": "owner-a",
            "condition": "cancer",
            "stage": "raiPrep",
            "on_medication": False,
            "on_lid": True,
        }

    def test_decode(self):
        record = {
            "user_id": "u1",
            "condition": "hyper",
            "stage": "medTitration",
            "on_medication": True,
            "on_lid": False,
            "created_at": "2026-01-01T00:00:00Z",  # extra server columns are ignored
        }
        profile = Profile.from_record(record)
        assert profile.condition is Condition.HYPER
        assert profile.stage is Stage.MED_TITRATION
        assert profile.on_medication is True

    def test_unknown_stage_rejected(self):
        with pytest.raises(ValueError):
            Profile.from_record({"user_id": "u1", "condition": "hypo", "stage": "later"})

    def test_missing_owner_rejected(self):
        with pytest.raises(ValueError, match="user_id"):
            Profile.from_record({"condition": "hypo", "stage": "dx"})

    def test_non_bool_flag_rejected(self):
        with pytest.raises(ValueError, match="on_lid"):
            Profile.from_record(
                {"user_id": "u1", "condition": "hypo", "stage": "dx", "on_lid": "yes"}
            )


class TestConfigRecord:
    def test_medications_and_date(self):
        when = datetime(2026, 11, 2, 9, 30, tzinfo=timezone.utc)
        config = UserConfig(
            owner_id="u1",
            next_important_date=when,
            medications=(Medication(name="Levothyroxine", dose=100, unit="mcg", id="m1"),),
        )
        record = config.to_record()
        assert record["next_important_date"] == "2026-11-02T09:30:00+00:00"
        assert record["meds"] == [{"id": "m1", "name": "Levothyroxine", "dose": 100, "unit": "mcg"}]
        assert UserConfig.from_record(record) == config

    def test_zulu_timestamp(self):
        config = UserConfig.from_record(
            {"user_id": "u1", "next_important_date": "2026-11-02T09:30:00Z", "meds": []}
        )
        assert config.next_important_date == datetime(2026, 11, 2, 9, 30, tzinfo=timezone.utc)

    def test_defaults_when_columns_missing(self):
        config = UserConfig.from_record({"user_id": "u1"})
        assert config.log_symptoms is True
        assert config.medications == ()
        assert config.next_important_date is None

    def test_meds_must_be_list(self):
        with pytest.raises(ValueError, match="meds"):
            UserConfig.from_record({"user_id": "u1", "meds": "none"})

    def test_decode_entity_dispatch(self):
        entity = decode_entity(EntityKind.CONFIG, {"user_id": "u1"})
        assert isinstance(entity, UserConfig)


class TestPatches:
    def test_profile_patch_changes_only_given_fields(self):
        profile = make_profile(condition=Condition.CANCER, stage=Stage.PRE_SURGERY)
        patched = ProfilePatch(stage=Stage.RAI_PREP, on_lid=True).apply(profile)
        assert patched.stage is Stage.RAI_PREP
        assert patched.on_lid is True
        assert patched.condition is Condition.CANCER
        assert patched.owner_id == profile.owner_id
        assert profile.stage is Stage.PRE_SURGERY  # original untouched

    def test_config_patch_can_unset_date(self):
        config = make_config(next_important_date=datetime(2026, 1, 1, tzinfo=timezone.utc))
        patched = ConfigPatch(clear_next_important_date=True, log_symptoms=True).apply(config)
        assert patched.next_important_date is None
        assert patched.log_symptoms is True

    def test_config_patch_replaces_medications(self):
        config = make_config()
        meds = (Medication(name="Liothyronine", dose=5, unit="mcg"),)
        assert ConfigPatch(medications=meds).apply(config).medications == meds
