# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Sweep orchestration for onboarding channels.

One sweep:
1. Lists the welcome channels and sizes the idle window to how full the
   category is
2. Takes a single SweepSnapshot of members and channels
3. Concurrently evaluates every channel and kicks every homeless member
4. Collects the outcome of each operation into a SweepResult

A failing channel or kick does not hide the others; failures are gathered
and reported together. Nothing is rolled back, and every action is safe to
repeat on the next sweep.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Set

from onboarding_janitor.audit import AuditAction, AuditEvent, member_link
from onboarding_janitor.config import SweepSettings
from onboarding_janitor.models import Member, OnboardingChannel, SweepSnapshot
from onboarding_janitor.protocols import (
    AuditSink,
    ChannelGateway,
    ConfirmationOracle,
    MembershipRegistry,
    MessageReprocessor,
    OwnershipResolver,
)
from onboarding_janitor.sweep.policy import (
    ActionKind,
    ChannelAction,
    ChannelPolicyEvaluator,
)
from onboarding_janitor.sweep.timing import max_waiting_time_ms

logger = logging.getLogger(__name__)

KICK_REASON = "unconfirmed member with no welcome channel"
KICK_CAUSE = (
    "This can happen if onboarding times out and the channel is deleted "
    "but there's an error kicking the member."
)


class SweepError(Exception):
    """Raised when a sweep finished with failed operations."""

    def __init__(self, result: "SweepResult"):
        self.result = result
        super().__init__(
            f"Sweep finished with {len(result.failures)} failed operation(s): "
            + "; ".join(str(f) for f in result.failures)
        )


@dataclass
class SweepFailure:
    """
    One operation of a sweep that raised.

    Attributes:
        target_id: Channel or member the operation was for
        operation: "channel" or "kick"
        error: The exception raised
    """

    target_id: str
    operation: str
    error: BaseException

    def __str__(self) -> str:
        return f"{self.operation} {self.target_id}: {type(self.error).__name__}: {self.error}"


@dataclass
class SweepResult:
    """Outcome of one sweep.

    Attributes:
        started_at: Snapshot time
        max_waiting_time_ms: Idle window used for the sweep
        actions: Action taken for every channel that completed
        kicked: Ids of members kicked
        failures: Operations that raised
        duration_ms: Wall time of the sweep
    """

    started_at: datetime
    max_waiting_time_ms: float
    actions: List[ChannelAction] = field(default_factory=list)
    kicked: List[str] = field(default_factory=list)
    failures: List[SweepFailure] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.failures

    def count(self, kind: ActionKind) -> int:
        return sum(1 for a in self.actions if a.kind == kind)

    @property
    def channels_evaluated(self) -> int:
        return len(self.actions) + sum(1 for f in self.failures if f.operation == "channel")

    @property
    def deleted(self) -> List[str]:
        return [a.channel.id for a in self.actions if a.kind == ActionKind.DELETE]

    def raise_for_failures(self) -> None:
        """Raise SweepError if any operation failed."""
        if self.failures:
            raise SweepError(self)

    def summary(self) -> str:
        return (
            f"channels={self.channels_evaluated} "
            f"deleted={self.count(ActionKind.DELETE)} "
            f"warned={self.count(ActionKind.SEND_WARNING)} "
            f"reprocessed={self.count(ActionKind.REPROCESS)} "
            f"kicked={len(self.kicked)} "
            f"failures={len(self.failures)} "
            f"window_ms={self.max_waiting_time_ms:.0f} "
            f"duration_ms={self.duration_ms:.1f}"
        )


def select_homeless_members(
    snapshot: SweepSnapshot,
    now: datetime,
    grace_minutes: float = 10,
) -> List[Member]:
    """Find unconfirmed members who joined a while ago but have no channel.

    Members whose join time is unknown are treated as having joined long ago.

    Args:
        snapshot: Sweep snapshot.
        now: Reference time.
        grace_minutes: How long after joining a member may lack a channel.

    Returns:
        Members to kick, in snapshot order.
    """
    cutoff = now - timedelta(minutes=grace_minutes)
    homeless = []
    for member in snapshot.members.values():
        if not member.unconfirmed:
            continue
        joined_at = member.joined_at
        if joined_at is not None:
            if joined_at.tzinfo is None:
                joined_at = joined_at.replace(tzinfo=timezone.utc)
            if joined_at >= cutoff:
                continue
        if snapshot.has_channel(member.id):
            continue
        homeless.append(member)
    return homeless


class SweepOrchestrator:
    """Runs onboarding sweeps against a set of collaborators.

    Attributes:
        registry: Member listing and kicking.
        gateway: Welcome channel listing, messages, sending and deleting.
        oracle: Confirmation status of members.
        resolver: Channel to owner mapping.
        reprocessor: Handler for member messages the bot never answered.
        audit: Where kicks and deletions are recorded.
        settings: Sweep thresholds.
        evaluator: Channel policy.

    Example:
        >>> orchestrator = SweepOrchestrator(registry, gateway, oracle,
        ...                                  resolver, reprocessor, audit)
        >>> result = await orchestrator.run_sweep()
        >>> result.raise_for_failures()
    """

    def __init__(
        self,
        registry: MembershipRegistry,
        gateway: ChannelGateway,
        oracle: ConfirmationOracle,
        resolver: OwnershipResolver,
        reprocessor: MessageReprocessor,
        audit: AuditSink,
        settings: Optional[SweepSettings] = None,
        evaluator: Optional[ChannelPolicyEvaluator] = None,
        metrics=None,
        bot_user_id: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.registry = registry
        self.gateway = gateway
        self.oracle = oracle
        self.resolver = resolver
        self.reprocessor = reprocessor
        self.audit = audit
        self.settings = settings or SweepSettings()
        self.evaluator = evaluator or ChannelPolicyEvaluator(self.settings)
        self.metrics = metrics
        self.bot_user_id = bot_user_id
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        # Channels whose deletion succeeded; never evaluated again
        self._deleted: Set[str] = set()

    def waiting_time_ms(self, channel_count: int) -> float:
        s = self.settings
        return max_waiting_time_ms(
            channel_count,
            min_minutes=s.min_minutes,
            max_minutes=s.max_minutes,
            capacity=s.channel_capacity,
        )

    async def take_snapshot(self) -> SweepSnapshot:
        """List channels and members once and freeze them into a snapshot."""
        listed = await self.gateway.list_welcome_channels()
        listed_ids = {c.id for c in listed}
        # Forget deletions the platform has caught up with
        self._deleted &= listed_ids

        channels = [
            replace(c, owner_id=self.resolver.owner_of(c))
            for c in listed
            if c.id not in self._deleted
        ]

        members = [
            replace(m, unconfirmed=self.oracle.is_unconfirmed(m.id))
            for m in await self.registry.fetch_all_members()
        ]

        return SweepSnapshot.build(
            members=members,
            channels=channels,
            taken_at=self._clock(),
            bot_user_id=self.bot_user_id,
        )

    async def run_sweep(self) -> SweepResult:
        """Perform one reconciliation pass.

        Returns:
            SweepResult once every evaluation and kick has settled.
        """
        start = time.perf_counter()
        snapshot = await self.take_snapshot()
        window = self.waiting_time_ms(snapshot.channel_count)
        result = SweepResult(started_at=snapshot.taken_at, max_waiting_time_ms=window)

        homeless = select_homeless_members(
            snapshot, snapshot.taken_at, self.settings.homeless_grace_minutes
        )

        logger.debug(
            f"Sweep: {snapshot.channel_count} channels, {len(homeless)} homeless "
            f"members, window {window:.0f}ms"
        )

        channel_ops = [self._sweep_channel(c, snapshot, window) for c in snapshot.channels]
        kick_ops = [self._kick_homeless(m) for m in homeless]

        outcomes = await asyncio.gather(*channel_ops, *kick_ops, return_exceptions=True)

        channel_outcomes = outcomes[: len(channel_ops)]
        kick_outcomes = outcomes[len(channel_ops):]

        for channel, outcome in zip(snapshot.channels, channel_outcomes):
            if isinstance(outcome, BaseException):
                self._record_failure(result, channel.id, "channel", outcome)
            else:
                result.actions.append(outcome)

        for member, outcome in zip(homeless, kick_outcomes):
            if isinstance(outcome, BaseException):
                self._record_failure(result, member.id, "kick", outcome)
            else:
                result.kicked.append(member.id)

        result.duration_ms = (time.perf_counter() - start) * 1000

        if result.ok:
            logger.info(f"Sweep finished: {result.summary()}")
        else:
            logger.warning(f"Sweep finished with failures: {result.summary()}")

        if self.metrics is not None:
            self.metrics.record_sweep(result)

        return result

    def _record_failure(
        self, result: SweepResult, target_id: str, operation: str, error: BaseException
    ) -> None:
        if isinstance(error, asyncio.CancelledError):
            raise error
        logger.warning(f"Sweep {operation} {target_id} failed: {error}")
        result.failures.append(SweepFailure(target_id, operation, error))

    async def _sweep_channel(
        self,
        channel: OnboardingChannel,
        snapshot: SweepSnapshot,
        window: float,
    ) -> ChannelAction:
        try:
            messages = await self.gateway.fetch_messages(channel)
        except Exception as e:
            logger.warning(f"Could not refresh messages for {channel.id}, using cached: {e}")
        else:
            channel = channel.with_messages(messages)

        member = snapshot.owner_of(channel)
        action = self.evaluator.evaluate(
            channel,
            member,
            window,
            snapshot.taken_at,
            bot_user_id=snapshot.bot_user_id,
        )
        logger.debug(f"Channel {channel.id}: {action.kind.value} {action.reason or ''}")

        await self._apply(action, member)
        return action

    async def _apply(self, action: ChannelAction, member: Optional[Member]) -> None:
        channel = action.channel

        if action.kind == ActionKind.DELETE:
            await self.audit.record(
                AuditEvent(
                    action=AuditAction.DELETE_CHANNEL,
                    target_id=channel.id,
                    target_name=channel.name,
                    reason=action.reason,
                    member_id=channel.owner_id,
                    member_name=member.display_name if member else None,
                    member_link=member_link(channel.owner_id) if channel.owner_id else None,
                    avatar_url=member.avatar_url if member else None,
                )
            )
            await self.gateway.delete_channel(channel, action.reason)
            self._deleted.add(channel.id)
            logger.info(f"Deleted welcome channel {channel.name} ({channel.id}): {action.reason}")

        elif action.kind == ActionKind.SEND_WARNING:
            await self.gateway.send(channel, action.text)
            logger.info(f"Sent {action.warning.value} warning in {channel.name} ({channel.id})")

        elif action.kind == ActionKind.REPROCESS:
            await self.reprocessor.handle(channel, action.message)
            logger.info(f"Reprocessed message {action.message.id} in {channel.name}")

    async def _kick_homeless(self, member: Member) -> None:
        await self.audit.record(
            AuditEvent(
                action=AuditAction.KICK_MEMBER,
                target_id=member.id,
                target_name=member.display_name,
                reason=KICK_REASON,
                member_id=member.id,
                member_name=member.display_name,
                member_link=member_link(member.id),
                avatar_url=member.avatar_url,
                description=f"{member.mention} is unconfirmed and has no welcome channel.",
                cause=KICK_CAUSE,
            )
        )
        await self.registry.kick(member, KICK_REASON)
        logger.info(f"Kicked homeless unconfirmed member {member.display_name} ({member.id})")
