# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Audit records for destructive janitor actions.

Every channel deletion and every member kick is recorded here before the
action is issued, so a crash between the two still leaves evidence.

Sinks:
- LoggingAuditSink: writes structured entries to the audit logger
- InMemoryAuditSink: keeps entries in a list (tests, dry runs)
- CompositeAuditSink: fans one record out to several sinks

The Discord sink that posts embeds to the bot log channel lives in
onboarding_janitor.adapters.discord_adapter.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

JANITOR_ACTOR = "onboarding-janitor"


class AuditAction(str, Enum):
    """Destructive actions the janitor can take."""

    KICK_MEMBER = "kick_member"
    DELETE_CHANNEL = "delete_channel"


def member_link(member_id: str) -> str:
    """Return a display link to a member's profile."""
    return f"https://discord.com/users/{member_id}"


class AuditEvent(BaseModel):
    """A single audited janitor action."""

    action: AuditAction = Field(..., description="What the janitor is about to do")
    actor: str = Field(default=JANITOR_ACTOR, description="Who is doing it")
    target_id: str = Field(..., description="Member or channel acted upon")
    target_name: str = Field(default="", description="Display name of the target")
    reason: str = Field(..., description="Human-readable reason")
    member_id: Optional[str] = Field(default=None, description="Member involved, if any")
    member_name: Optional[str] = Field(default=None, description="Member display name")
    member_link: Optional[str] = Field(default=None, description="Link to the member")
    avatar_url: Optional[str] = Field(default=None, description="Member avatar")
    description: Optional[str] = Field(default=None, description="Longer explanation")
    cause: Optional[str] = Field(default=None, description="How this situation can arise")
    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event was recorded",
    )

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("reason must not be blank")
        return v

    @property
    def title(self) -> str:
        if self.action == AuditAction.KICK_MEMBER:
            return "✌️ Kicking member"
        return "🗑️ Deleting welcome channel"

    def summary(self) -> str:
        """One-line summary for log output."""
        who = f" member={self.member_id}" if self.member_id else ""
        return (
            f"{self.action.value} target={self.target_id}{who} "
            f"actor={self.actor} reason={self.reason!r}"
        )


class LoggingAuditSink:
    """Audit sink writing to the standard logging system."""

    def __init__(self, audit_logger: Optional[logging.Logger] = None):
        self._logger = audit_logger or logger

    async def record(self, event: AuditEvent) -> None:
        self._logger.info(f"AUDIT {event.summary()}")


class InMemoryAuditSink:
    """Audit sink that keeps every event in memory."""

    def __init__(self):
        self.events: List[AuditEvent] = []

    async def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def by_action(self, action: AuditAction) -> List[AuditEvent]:
        return [e for e in self.events if e.action == action]

    def clear(self) -> None:
        self.events.clear()


class CompositeAuditSink:
    """Record each event to every wrapped sink, in order."""

    def __init__(self, sinks: Sequence):
        self.sinks = list(sinks)

    async def record(self, event: AuditEvent) -> None:
        for sink in self.sinks:
            await sink.record(event)
