# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Root pytest configuration with shared fixtures and markers.

Provides:
- A fixed sweep time
- Factories for members, channels and messages
- FakePlatform, an in-memory implementation of every sweep collaborator
"""

import itertools
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from onboarding_janitor.models import Member, Message, OnboardingChannel

NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
BOT_ID = "900"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: Mark test as integration test (cross-component)",
    )
    config.addinivalue_line(
        "markers",
        "slow: Mark test as slow-running (may be skipped in quick runs)",
    )


class FakePlatform:
    """In-memory server implementing every sweep collaborator."""

    def __init__(self, now: datetime = NOW, bot_id: str = BOT_ID):
        self.now = now
        self.bot_id = bot_id
        self.members = {}
        self.channels = {}
        self.unconfirmed = set()

        self.kicked: List[tuple] = []
        self.deleted: List[tuple] = []
        self.sent: List[tuple] = []
        self.reprocessed: List[tuple] = []
        self.calls: List[str] = []

        self.fail_fetch = set()
        self.fail_delete = set()
        self.fail_kick = set()
        self.fail_members = False
        self._ids = itertools.count(1)

    def add_member(self, member: Member) -> Member:
        self.members[member.id] = member
        if member.unconfirmed:
            self.unconfirmed.add(member.id)
        else:
            self.unconfirmed.discard(member.id)
        return member

    def add_channel(self, channel: OnboardingChannel) -> OnboardingChannel:
        self.channels[channel.id] = channel
        return channel

    # MembershipRegistry
    async def fetch_all_members(self) -> List[Member]:
        self.calls.append("fetch_all_members")
        if self.fail_members:
            raise ConnectionError("members unavailable")
        return list(self.members.values())

    async def kick(self, member: Member, reason: str) -> None:
        self.calls.append(f"kick:{member.id}")
        if member.id in self.fail_kick:
            raise RuntimeError(f"cannot kick {member.id}")
        self.kicked.append((member.id, reason))
        self.members.pop(member.id, None)

    # ChannelGateway
    async def list_welcome_channels(self) -> List[OnboardingChannel]:
        self.calls.append("list_welcome_channels")
        return list(self.channels.values())

    async def fetch_messages(self, channel: OnboardingChannel) -> List[Message]:
        if channel.id in self.fail_fetch:
            raise ConnectionError(f"history unavailable for {channel.id}")
        return list(self.channels[channel.id].messages)

    async def send(self, channel: OnboardingChannel, text: str) -> None:
        self.sent.append((channel.id, text))
        stored = self.channels[channel.id]
        bot_message = Message(
            id=f"bot-{next(self._ids)}",
            author_id=self.bot_id,
            content=text,
            created_at=self.now,
            author_is_bot=True,
        )
        self.channels[channel.id] = stored.with_messages(stored.messages + (bot_message,))

    async def delete_channel(self, channel: OnboardingChannel, reason: str) -> None:
        self.calls.append(f"delete:{channel.id}")
        if channel.id in self.fail_delete:
            raise RuntimeError(f"cannot delete {channel.id}")
        self.deleted.append((channel.id, reason))
        self.channels.pop(channel.id, None)

    # ConfirmationOracle / OwnershipResolver
    def is_unconfirmed(self, member_id: str) -> bool:
        return member_id in self.unconfirmed

    def owner_of(self, channel: OnboardingChannel) -> Optional[str]:
        return channel.owner_id

    # MessageReprocessor
    async def handle(self, channel: OnboardingChannel, message: Message) -> None:
        self.reprocessed.append((channel.id, message.id))


@pytest.fixture
def now():
    """Fixed sweep time."""
    return NOW


@pytest.fixture
def bot_id():
    return BOT_ID


@pytest.fixture
def make_member():
    """Factory for members; joined_minutes_ago=None means unknown join time."""

    def _make(
        member_id: str = "100",
        unconfirmed: bool = True,
        joined_minutes_ago: Optional[float] = 60,
        name: Optional[str] = None,
    ) -> Member:
        joined_at = None
        if joined_minutes_ago is not None:
            joined_at = NOW - timedelta(minutes=joined_minutes_ago)
        return Member(
            id=member_id,
            display_name=name or f"member-{member_id}",
            joined_at=joined_at,
            unconfirmed=unconfirmed,
        )

    return _make


@pytest.fixture
def make_message():
    """Factory for messages posted a number of milliseconds before NOW."""
    counter = itertools.count(1)

    def _make(
        author_id: str,
        ms_ago: float = 0,
        content: str = "hello",
        author_is_bot: Optional[bool] = None,
    ) -> Message:
        if author_is_bot is None:
            author_is_bot = author_id == BOT_ID
        return Message(
            id=f"m{next(counter)}",
            author_id=author_id,
            content=content,
            created_at=NOW - timedelta(milliseconds=ms_ago),
            author_is_bot=author_is_bot,
        )

    return _make


@pytest.fixture
def make_channel():
    """Factory for welcome channels created a number of minutes before NOW."""

    def _make(
        owner_id: Optional[str] = "100",
        messages=(),
        channel_id: Optional[str] = None,
        created_minutes_ago: float = 60,
    ) -> OnboardingChannel:
        channel_id = channel_id or f"c{owner_id}"
        return OnboardingChannel(
            id=channel_id,
            name=f"welcome-{owner_id}",
            owner_id=owner_id,
            created_at=NOW - timedelta(minutes=created_minutes_ago),
            messages=tuple(messages),
        )

    return _make


@pytest.fixture
def platform():
    """Empty in-memory platform."""
    return FakePlatform()
