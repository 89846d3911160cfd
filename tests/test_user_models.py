"""Tests for the rules that fold observations into user records."""

from datetime import timedelta

import pytest

from support import T0, make_member, make_user
from warden.models.users import (
    PLACEHOLDER_DISCRIMINATOR,
    PLACEHOLDER_USERNAME,
    UserObservation,
    UserRecord,
    merge_observation,
    new_record,
    observation_from_discord,
)

T1 = T0 + timedelta(minutes=5)


def _record(**overrides) -> UserRecord:
    values = dict(
        id=42,
        username="Ann",
        discriminator="1234",
        nickname="Annie",
        first_seen=T0,
        last_seen=T0,
    )
    values.update(overrides)
    return UserRecord(**values)


class TestNewRecord:
    def test_complete_observation(self):
        record = new_record(
            UserObservation(id=42, username="Ann", discriminator=7), now=T0
        )
        assert record == UserRecord(
            id=42,
            username="Ann",
            discriminator="0007",
            nickname=None,
            first_seen=T0,
            last_seen=T0,
        )

    def test_placeholders_fill_missing_fields(self):
        record = new_record(UserObservation(id=42), now=T0)
        assert record.username == PLACEHOLDER_USERNAME
        assert record.discriminator == PLACEHOLDER_DISCRIMINATOR

    def test_empty_username_uses_placeholder(self):
        record = new_record(UserObservation(id=42, username=""), now=T0)
        assert record.username == PLACEHOLDER_USERNAME

    def test_nickname_only_from_guild_scope(self):
        global_record = new_record(UserObservation(id=42, nickname="A."), now=T0)
        guild_record = new_record(
            UserObservation(id=42, guild_scoped=True, guild_id=1, nickname="A."), now=T0
        )
        assert global_record.nickname is None
        assert guild_record.nickname == "A."


class TestMergeObservation:
    def test_absent_username_does_not_clobber(self):
        merged = merge_observation(_record(), UserObservation(id=42), now=T1)
        assert merged.username == "Ann"

    def test_empty_username_does_not_clobber(self):
        merged = merge_observation(_record(), UserObservation(id=42, username=""), now=T1)
        assert merged.username == "Ann"

    def test_new_username_overwrites(self):
        merged = merge_observation(_record(), UserObservation(id=42, username="Bea"), now=T1)
        assert merged.username == "Bea"

    @pytest.mark.parametrize("discriminator", [0, -1, 10000])
    def test_invalid_discriminator_does_not_clobber(self, discriminator):
        merged = merge_observation(
            _record(), UserObservation(id=42, discriminator=discriminator), now=T1
        )
        assert merged.discriminator == "1234"

    def test_known_discriminator_overwrites(self):
        merged = merge_observation(
            _record(discriminator=PLACEHOLDER_DISCRIMINATOR),
            UserObservation(id=42, discriminator=1),
            now=T1,
        )
        assert merged.discriminator == "0001"

    def test_global_observation_keeps_nickname(self):
        merged = merge_observation(
            _record(), UserObservation(id=42, username="Ann", nickname="ignored"), now=T1
        )
        assert merged.nickname == "Annie"

    def test_guild_observation_sets_nickname(self):
        merged = merge_observation(
            _record(), UserObservation(id=42, guild_scoped=True, nickname="A."), now=T1
        )
        assert merged.nickname == "A."

    @pytest.mark.parametrize("nickname", [None, ""])
    def test_guild_observation_clears_nickname(self, nickname):
        merged = merge_observation(
            _record(), UserObservation(id=42, guild_scoped=True, nickname=nickname), now=T1
        )
        assert merged.nickname == nickname

    def test_first_seen_is_preserved(self):
        merged = merge_observation(
            _record(), UserObservation(id=42, username="Bea", discriminator=9), now=T1
        )
        assert merged.first_seen == T0
        assert merged.last_seen == T1

    def test_last_seen_advances_when_clock_does_not(self):
        existing = _record(last_seen=T1)
        merged = merge_observation(existing, UserObservation(id=42), now=T0)
        assert merged.last_seen > existing.last_seen

    def test_merge_returns_new_value(self):
        existing = _record()
        merged = merge_observation(existing, UserObservation(id=42, username="Bea"), now=T1)
        assert existing.username == "Ann"
        assert merged is not existing

    def test_mismatched_id_is_rejected(self):
        with pytest.raises(ValueError):
            merge_observation(_record(), UserObservation(id=7), now=T1)


class TestObservationFromDiscord:
    def test_plain_user_is_global(self):
        observation = observation_from_discord(make_user(42, name="Ann", discriminator="1234"))
        assert observation == UserObservation(id=42, username="Ann", discriminator=1234)

    def test_migrated_discriminator_is_unknown(self):
        observation = observation_from_discord(make_user(42, discriminator="0"))
        assert observation.discriminator == 0

    def test_member_is_guild_scoped(self):
        observation = observation_from_discord(make_member(42, guild_id=9, nick="A."))
        assert observation.guild_scoped
        assert observation.guild_id == 9
        assert observation.nickname == "A."

    def test_member_without_nickname(self):
        observation = observation_from_discord(make_member(42, guild_id=9, nick=None))
        assert observation.guild_scoped
        assert observation.nickname is None
