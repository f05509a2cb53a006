# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the sweep data model.
"""

import dataclasses

import pytest

from onboarding_janitor.models import SweepSnapshot


class TestOnboardingChannel:
    def test_last_message(self, make_channel, make_message):
        first, second = make_message("100", 2000), make_message("900", 1000)
        channel = make_channel(messages=[first, second])

        assert channel.last_message == second
        assert channel.message_count == 2

    def test_empty_channel_has_no_last_message(self, make_channel):
        assert make_channel().last_message is None

    def test_with_messages_returns_copy(self, make_channel, make_message):
        channel = make_channel()
        updated = channel.with_messages([make_message("100")])

        assert channel.message_count == 0
        assert updated.message_count == 1
        assert updated.id == channel.id

    def test_frozen(self, make_channel):
        with pytest.raises(dataclasses.FrozenInstanceError):
            make_channel().name = "renamed"


class TestMember:
    def test_confirmed_is_inverse(self, make_member):
        assert make_member(unconfirmed=False).confirmed
        assert not make_member(unconfirmed=True).confirmed

    def test_mention(self, make_member):
        assert make_member("42").mention == "<@42>"


class TestSweepSnapshot:
    def test_owner_lookup(self, make_member, make_channel, now):
        member = make_member("1")
        channel = make_channel("1")
        orphan = make_channel("2")
        snapshot = SweepSnapshot.build([member], [channel, orphan], now)

        assert snapshot.owner_of(channel) == member
        assert snapshot.owner_of(orphan) is None
        assert snapshot.channel_count == 2
        assert snapshot.has_channel("1")
        assert snapshot.channel_owner_ids() == frozenset({"1", "2"})

    def test_unresolvable_owner(self, make_channel, now):
        channel = make_channel(owner_id=None, channel_id="c-x")
        snapshot = SweepSnapshot.build([], [channel], now)

        assert snapshot.owner_of(channel) is None
        assert snapshot.channel_owner_ids() == frozenset()

    def test_members_read_only(self, make_member, now):
        snapshot = SweepSnapshot.build([make_member("1")], [], now)

        with pytest.raises(TypeError):
            snapshot.members["2"] = make_member("2")

    def test_snapshot_isolated_from_source(self, make_member, now):
        source = {"1": make_member("1")}
        snapshot = SweepSnapshot(members=source, channels=(), taken_at=now)
        source["2"] = make_member("2")

        assert "2" not in snapshot.members
