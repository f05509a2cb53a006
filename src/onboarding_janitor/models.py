# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Data model for onboarding sweeps.

Platform-agnostic, immutable views of the members, welcome channels and
messages a sweep reasons about. Platform adapters convert their native
objects to these types; the policy evaluator only ever sees these.

A SweepSnapshot is taken once at the start of every sweep and every decision
of that sweep is made against it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Member:
    """
    A member of the community server.

    Attributes:
        id: Platform user identifier
        display_name: Name shown in audit entries
        joined_at: When the member joined (None if the platform did not say)
        unconfirmed: Whether the member has not completed onboarding yet
        avatar_url: Avatar image for audit entries (optional)
    """

    id: str
    display_name: str
    joined_at: Optional[datetime] = None
    unconfirmed: bool = True
    avatar_url: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return not self.unconfirmed

    @property
    def mention(self) -> str:
        return f"<@{self.id}>"


@dataclass(frozen=True)
class Message:
    """
    A message posted in a welcome channel.

    Attributes:
        id: Platform message identifier
        author_id: Who posted it
        content: Message text
        created_at: When it was posted
        author_is_bot: Whether a bot (normally this service) posted it
    """

    id: str
    author_id: str
    content: str
    created_at: datetime
    author_is_bot: bool = False


@dataclass(frozen=True)
class OnboardingChannel:
    """
    A temporary welcome channel bound to one member.

    Attributes:
        id: Platform channel identifier
        name: Channel name
        owner_id: Member the channel was created for (None if unresolvable)
        created_at: When the channel was created
        messages: Messages in arrival order
    """

    id: str
    name: str
    owner_id: Optional[str]
    created_at: datetime
    messages: Tuple[Message, ...] = ()

    @property
    def last_message(self) -> Optional[Message]:
        """Most recently arrived message, if any."""
        return self.messages[-1] if self.messages else None

    @property
    def message_count(self) -> int:
        return len(self.messages)

    def with_messages(self, messages: Iterable[Message]) -> "OnboardingChannel":
        """Return a copy of this channel carrying the given messages."""
        return OnboardingChannel(
            id=self.id,
            name=self.name,
            owner_id=self.owner_id,
            created_at=self.created_at,
            messages=tuple(messages),
        )


@dataclass(frozen=True)
class SweepSnapshot:
    """
    Point-in-time view of all members and welcome channels.

    Attributes:
        members: Members keyed by id (read-only)
        channels: Welcome channels known at snapshot time
        taken_at: When the snapshot was taken; the sweep's notion of "now"
        bot_user_id: The service's own user id, if known
    """

    members: Mapping[str, Member]
    channels: Tuple[OnboardingChannel, ...]
    taken_at: datetime
    bot_user_id: Optional[str] = None
    _owner_ids: frozenset = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        # Freeze the member mapping so no evaluation can mutate it
        object.__setattr__(self, "members", MappingProxyType(dict(self.members)))
        object.__setattr__(self, "channels", tuple(self.channels))
        object.__setattr__(
            self,
            "_owner_ids",
            frozenset(c.owner_id for c in self.channels if c.owner_id is not None),
        )

    @classmethod
    def build(
        cls,
        members: Iterable[Member],
        channels: Iterable[OnboardingChannel],
        taken_at: datetime,
        bot_user_id: Optional[str] = None,
    ) -> "SweepSnapshot":
        """Build a snapshot from flat member and channel listings."""
        return cls(
            members={m.id: m for m in members},
            channels=tuple(channels),
            taken_at=taken_at,
            bot_user_id=bot_user_id,
        )

    @property
    def channel_count(self) -> int:
        return len(self.channels)

    def member(self, member_id: Optional[str]) -> Optional[Member]:
        if member_id is None:
            return None
        return self.members.get(member_id)

    def owner_of(self, channel: OnboardingChannel) -> Optional[Member]:
        """Resolve the member a channel belongs to, if they are still here."""
        return self.member(channel.owner_id)

    def channel_owner_ids(self) -> frozenset:
        """Ids of every member that currently has a welcome channel."""
        return self._owner_ids

    def has_channel(self, member_id: str) -> bool:
        return member_id in self._owner_ids
