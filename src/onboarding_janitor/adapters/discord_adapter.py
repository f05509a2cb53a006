# Copyright 2024-2025 Amiable Development
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Discord adapter for the onboarding janitor.

Implements every sweep collaborator over a discord.py Guild:
- MembershipRegistry: member listing and kicks
- ChannelGateway: welcome channel listing, history, sending, deleting
- ConfirmationOracle: the unconfirmed role
- OwnershipResolver: the member id recorded in the channel topic
- MessageReprocessor: re-dispatching missed messages to on_message handlers

Welcome channels are the text channels of the welcome category whose topic
carries `New Member ID: "<id>"`.

Design:
- Thin adapter; all decisions stay in the sweep core
- Deleting a missing channel or kicking a missing member is a no-op
- Raw discord.py objects are cached so actions can find them again
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import discord

from onboarding_janitor.audit import AuditAction, AuditEvent
from onboarding_janitor.config import DiscordSettings, SweepSettings
from onboarding_janitor.models import Member, Message, OnboardingChannel

logger = logging.getLogger(__name__)

MEMBER_ID_PATTERN = re.compile(r'New Member ID: "(?P<member_id>\d+)"')


def member_id_from_topic(topic: Optional[str]) -> Optional[str]:
    """Extract the owning member's id from a welcome channel topic."""
    if not topic:
        return None
    match = MEMBER_ID_PATTERN.search(topic)
    return match.group("member_id") if match else None


def welcome_topic(member_id: str) -> str:
    """Topic written on a welcome channel created for a member."""
    return f'Welcome channel for new members (New Member ID: "{member_id}")'


def create_client() -> discord.Client:
    """Create a Discord client with the intents the janitor needs."""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    intents.guild_messages = True
    intents.message_content = True
    return discord.Client(intents=intents)


def parse_message(discord_msg: Any) -> Message:
    """Parse a discord.py message to a Message."""
    return Message(
        id=str(discord_msg.id),
        author_id=str(discord_msg.author.id),
        content=discord_msg.content or "",
        created_at=_utc(discord_msg.created_at),
        author_is_bot=bool(getattr(discord_msg.author, "bot", False)),
    )


def parse_channel(
    discord_channel: Any,
    messages: Optional[List[Message]] = None,
) -> OnboardingChannel:
    """Parse a discord.py text channel to an OnboardingChannel."""
    return OnboardingChannel(
        id=str(discord_channel.id),
        name=discord_channel.name,
        owner_id=member_id_from_topic(getattr(discord_channel, "topic", None)),
        created_at=_utc(discord_channel.created_at),
        messages=tuple(messages or ()),
    )


def parse_member(discord_member: Any, unconfirmed_role: str) -> Member:
    """Parse a discord.py member to a Member."""
    avatar = getattr(discord_member, "display_avatar", None)
    return Member(
        id=str(discord_member.id),
        display_name=discord_member.display_name,
        joined_at=_utc(discord_member.joined_at) if discord_member.joined_at else None,
        unconfirmed=has_role(discord_member, unconfirmed_role),
        avatar_url=str(avatar.url) if avatar is not None else None,
    )


def has_role(discord_member: Any, role_name: str) -> bool:
    return any(role.name == role_name for role in getattr(discord_member, "roles", []))


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DiscordOnboardingAdapter:
    """
    Sweep collaborators backed by one Discord guild.

    Example:
        client = create_client()
        # after the client is ready:
        adapter = DiscordOnboardingAdapter(client, client.get_guild(guild_id), settings)
        orchestrator = SweepOrchestrator(
            registry=adapter, gateway=adapter, oracle=adapter,
            resolver=adapter, reprocessor=adapter, audit=audit_sink,
            bot_user_id=adapter.bot_user_id,
        )
    """

    def __init__(
        self,
        client: Any,
        guild: Any,
        settings: Optional[DiscordSettings] = None,
        sweep_settings: Optional[SweepSettings] = None,
    ):
        """
        Initialize the adapter.

        Args:
            client: Connected discord.Client
            guild: Guild to sweep
            settings: Category, role and log channel names
            sweep_settings: Sweep settings (history limit)
        """
        self.client = client
        self.guild = guild
        self.settings = settings or DiscordSettings()
        self.sweep_settings = sweep_settings or SweepSettings()

        self._members: Dict[str, Any] = {}
        self._channels: Dict[str, Any] = {}
        self._raw_messages: Dict[str, Dict[str, Any]] = {}
        self._message_cache: Dict[str, List[Message]] = {}

    @property
    def platform(self) -> str:
        """Return platform identifier."""
        return "discord"

    @property
    def bot_user_id(self) -> Optional[str]:
        user = getattr(self.client, "user", None)
        return str(user.id) if user is not None else None

    # =========================================================================
    # MembershipRegistry
    # =========================================================================

    async def fetch_all_members(self) -> List[Member]:
        """Fetch every guild member, refreshing the member cache."""
        members: Dict[str, Any] = {}
        async for discord_member in self.guild.fetch_members(limit=None):
            members[str(discord_member.id)] = discord_member
        self._members = members
        return [parse_member(m, self.settings.unconfirmed_role) for m in members.values()]

    async def kick(self, member: Member, reason: str) -> None:
        discord_member = self._members.get(member.id) or self.guild.get_member(int(member.id))
        if discord_member is None:
            logger.info(f"Member {member.id} already gone, nothing to kick")
            return
        try:
            await discord_member.kick(reason=reason)
        except discord.NotFound:
            logger.info(f"Member {member.id} left before the kick")

    # =========================================================================
    # ConfirmationOracle / OwnershipResolver
    # =========================================================================

    def is_unconfirmed(self, member_id: str) -> bool:
        discord_member = self._members.get(member_id) or self.guild.get_member(int(member_id))
        if discord_member is None:
            return False
        return has_role(discord_member, self.settings.unconfirmed_role)

    def owner_of(self, channel: OnboardingChannel) -> Optional[str]:
        discord_channel = self._channels.get(channel.id)
        if discord_channel is None:
            return channel.owner_id
        return member_id_from_topic(getattr(discord_channel, "topic", None))

    # =========================================================================
    # ChannelGateway
    # =========================================================================

    def _welcome_category(self) -> Any:
        return discord.utils.get(self.guild.categories, name=self.settings.welcome_category)

    async def list_welcome_channels(self) -> List[OnboardingChannel]:
        """List welcome channels, carrying the last messages fetched for each."""
        category = self._welcome_category()
        if category is None:
            logger.warning(f"Welcome category '{self.settings.welcome_category}' not found")
            self._channels = {}
            return []

        channels: Dict[str, Any] = {}
        for discord_channel in category.text_channels:
            if member_id_from_topic(getattr(discord_channel, "topic", None)) is None:
                # Rules, intro and other fixed channels of the category
                if not discord_channel.name.startswith("welcome-"):
                    continue
            channels[str(discord_channel.id)] = discord_channel

        self._channels = channels
        self._message_cache = {
            k: v for k, v in self._message_cache.items() if k in channels
        }
        self._raw_messages = {
            k: v for k, v in self._raw_messages.items() if k in channels
        }
        return [
            parse_channel(c, self._message_cache.get(channel_id))
            for channel_id, c in channels.items()
        ]

    async def fetch_messages(self, channel: OnboardingChannel) -> List[Message]:
        """Fetch the channel's newest messages, oldest first."""
        discord_channel = self._require_channel(channel)
        raw = [
            m
            async for m in discord_channel.history(
                limit=self.sweep_settings.history_limit, oldest_first=False
            )
        ]
        raw.reverse()

        self._raw_messages[channel.id] = {str(m.id): m for m in raw}
        messages = [parse_message(m) for m in raw]
        self._message_cache[channel.id] = messages
        return messages

    async def send(self, channel: OnboardingChannel, text: str) -> None:
        discord_channel = self._require_channel(channel)
        await discord_channel.send(text)

    async def delete_channel(self, channel: OnboardingChannel, reason: str) -> None:
        discord_channel = self._channels.pop(channel.id, None)
        self._message_cache.pop(channel.id, None)
        self._raw_messages.pop(channel.id, None)
        if discord_channel is None:
            discord_channel = self.guild.get_channel(int(channel.id))
        if discord_channel is None:
            logger.info(f"Channel {channel.id} already gone, nothing to delete")
            return
        try:
            await discord_channel.delete(reason=reason)
        except discord.NotFound:
            logger.info(f"Channel {channel.id} was deleted before we got to it")

    def _require_channel(self, channel: OnboardingChannel) -> Any:
        discord_channel = self._channels.get(channel.id) or self.guild.get_channel(int(channel.id))
        if discord_channel is None:
            raise LookupError(f"Welcome channel {channel.id} not found in guild")
        return discord_channel

    # =========================================================================
    # MessageReprocessor
    # =========================================================================

    async def handle(self, channel: OnboardingChannel, message: Message) -> None:
        """Re-dispatch a missed message through the client's on_message handlers."""
        raw = self._raw_messages.get(channel.id, {}).get(message.id)
        if raw is None:
            raw = await self._require_channel(channel).fetch_message(int(message.id))
        self.client.dispatch("message", raw)


class DiscordAuditSink:
    """
    Audit sink posting an embed per event to the bot log channel.

    Posting is best effort: a missing channel or a failed post is logged and
    does not block the action being audited.
    """

    KICK_COLOR = 0xBE643C
    DELETE_COLOR = 0xDC9656

    def __init__(self, guild: Any, channel_name: Optional[str]):
        self.guild = guild
        self.channel_name = channel_name

    def _log_channel(self) -> Any:
        if not self.channel_name:
            return None
        return discord.utils.get(self.guild.text_channels, name=self.channel_name)

    def build_embed(self, event: AuditEvent) -> discord.Embed:
        color = self.KICK_COLOR if event.action == AuditAction.KICK_MEMBER else self.DELETE_COLOR
        embed = discord.Embed(
            title=event.title,
            description=event.description or event.reason,
            color=color,
            timestamp=event.occurred_at,
        )
        if event.member_name:
            embed.set_author(
                name=event.member_name,
                url=event.member_link,
                icon_url=event.avatar_url,
            )
        embed.add_field(name="Reason", value=event.reason, inline=False)
        if event.cause:
            embed.add_field(name="Cause", value=event.cause, inline=False)
        if event.action == AuditAction.DELETE_CHANNEL and event.target_name:
            embed.add_field(name="Channel", value=event.target_name, inline=False)
        return embed

    async def record(self, event: AuditEvent) -> None:
        channel = self._log_channel()
        if channel is None:
            return
        try:
            await channel.send(embed=self.build_embed(event))
        except discord.HTTPException as e:
            logger.warning(f"Failed to post audit entry to #{self.channel_name}: {e}")
