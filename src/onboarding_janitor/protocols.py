# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Collaborator protocols for the onboarding sweep.

The sweep core only decides; these collaborators read platform state and
carry out the actions it requests. Platform adapters (see
onboarding_janitor.adapters) implement them, and tests mock them.

Design Principles:
1. Composition over inheritance - no base classes to subclass
2. Every mutating call must be safe to repeat (deleting a deleted channel,
   kicking a member who already left)
3. Protocols can be mocked in tests without a live platform connection
"""

from typing import List, Optional, Protocol, runtime_checkable

from onboarding_janitor.audit import AuditEvent
from onboarding_janitor.models import Member, Message, OnboardingChannel


@runtime_checkable
class MembershipRegistry(Protocol):
    """Source of truth for who is in the server."""

    async def fetch_all_members(self) -> List[Member]:
        """
        Fetch every member of the server.

        Called once per sweep, before any evaluation, to build the snapshot.
        """
        ...

    async def kick(self, member: Member, reason: str) -> None:
        """
        Remove a member from the server.

        Kicking a member who is no longer present must not raise.
        """
        ...


@runtime_checkable
class ChannelGateway(Protocol):
    """Access to welcome channels and their messages."""

    async def list_welcome_channels(self) -> List[OnboardingChannel]:
        """List every onboarding channel currently open."""
        ...

    async def fetch_messages(self, channel: OnboardingChannel) -> List[Message]:
        """
        Fetch the channel's messages in arrival order.

        This is a best-effort read; callers fall back to the messages the
        listing carried when it fails.
        """
        ...

    async def send(self, channel: OnboardingChannel, text: str) -> None:
        """Post a message to the channel."""
        ...

    async def delete_channel(self, channel: OnboardingChannel, reason: str) -> None:
        """
        Delete the channel.

        Deleting a channel that is already gone must not raise.
        """
        ...


@runtime_checkable
class ConfirmationOracle(Protocol):
    """Decides whether a member has completed onboarding."""

    def is_unconfirmed(self, member_id: str) -> bool:
        ...


@runtime_checkable
class OwnershipResolver(Protocol):
    """Maps a welcome channel to the member it was created for."""

    def owner_of(self, channel: OnboardingChannel) -> Optional[str]:
        ...


@runtime_checkable
class MessageReprocessor(Protocol):
    """Content-level onboarding logic, invoked for messages the bot missed."""

    async def handle(self, channel: OnboardingChannel, message: Message) -> None:
        ...


@runtime_checkable
class AuditSink(Protocol):
    """Destination for audit records of kicks and deletions."""

    async def record(self, event: AuditEvent) -> None:
        ...
