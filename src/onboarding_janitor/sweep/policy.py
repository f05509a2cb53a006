# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Channel policy evaluation for onboarding sweeps.

Decides, for one welcome channel, the single action the sweep should take.
The evaluator is a pure function of the channel, its owner, the idle window
and the sweep time: it reads nothing else and changes nothing. Carrying out
the action is the orchestrator's job.

Rules, first match wins:
1. Owner gone or channel empty       -> delete ("member no longer present")
2. More than too_many_messages       -> delete ("too many messages")
3. Past half of that, not yet warned -> spam warning
4. Member spoke last, grace passed   -> reprocess their last message
5. Bot spoke last                    -> timeout delete / timeout warning / no-op

Warnings are never stored. Whether a channel has been warned is derived from
its message history each time, so a restart simply re-derives it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from onboarding_janitor.config import SweepSettings
from onboarding_janitor.models import Member, Message, OnboardingChannel
from onboarding_janitor.sweep.timing import elapsed_ms, most_recent_index_by

logger = logging.getLogger(__name__)

REASON_MEMBER_GONE = "member no longer present"
REASON_TOO_MANY_MESSAGES = "too many messages"
REASON_TIMED_OUT = "onboarding timed out"

SPAM_WARNING_TEXT = (
    "you're sending a lot of messages, this channel will get deleted "
    "automatically if you send too many."
)
TIMEOUT_WARNING_TEMPLATE = (
    "it's been a while and I haven't heard from you. This channel will get "
    "automatically deleted and you'll be removed from the server after a "
    "while. Don't worry though, you can always try again later when you have "
    "time to finish: {url}"
)
# The part of the timeout warning that does not depend on the onboarding URL
TIMEOUT_WARNING_MARKER = TIMEOUT_WARNING_TEMPLATE.split("{url}")[0]


class ActionKind(str, Enum):
    """What the sweep should do with a channel."""

    NOOP = "noop"
    SEND_WARNING = "send_warning"
    REPROCESS = "reprocess"
    DELETE = "delete"


class WarningKind(str, Enum):
    SPAM = "spam"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ChannelAction:
    """
    The single action requested for a channel.

    Attributes:
        kind: Action to take
        channel: Channel the action applies to
        reason: Why (deletions only)
        text: Message to post (warnings only)
        warning: Which warning is being sent (warnings only)
        message: Message to replay (reprocessing only)
    """

    kind: ActionKind
    channel: OnboardingChannel
    reason: Optional[str] = None
    text: Optional[str] = None
    warning: Optional[WarningKind] = None
    message: Optional[Message] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind == ActionKind.DELETE


@dataclass(frozen=True)
class ChannelState:
    """
    Warning state of a channel, derived from its messages.

    Attributes:
        spam_warned: The bot has posted the spam warning at some point
        timeout_warned: The bot has posted the timeout warning since the
            member last spoke
        last_member_message: The member's most recent message, if any
        last_interaction_at: That message's time, or channel creation
    """

    spam_warned: bool
    timeout_warned: bool
    last_member_message: Optional[Message]
    last_interaction_at: datetime

    @classmethod
    def derive(
        cls,
        channel: OnboardingChannel,
        member_id: str,
        bot_user_id: Optional[str] = None,
    ) -> "ChannelState":
        messages = channel.messages
        # Only warnings posted after the member last spoke still count
        since = most_recent_index_by(messages, member_id)
        last_member_message = messages[since] if since >= 0 else None

        spam_warned = False
        timeout_warned = False
        for index, message in enumerate(messages):
            if not _from_service(message, bot_user_id):
                continue
            if SPAM_WARNING_TEXT in message.content:
                spam_warned = True
            if index > since and TIMEOUT_WARNING_MARKER in message.content:
                timeout_warned = True

        if last_member_message is not None:
            last_interaction_at = last_member_message.created_at
        else:
            last_interaction_at = channel.created_at

        return cls(
            spam_warned=spam_warned,
            timeout_warned=timeout_warned,
            last_member_message=last_member_message,
            last_interaction_at=last_interaction_at,
        )


def _from_service(message: Message, bot_user_id: Optional[str]) -> bool:
    if bot_user_id is not None:
        return message.author_id == bot_user_id
    return message.author_is_bot


class ChannelPolicyEvaluator:
    """Decides what to do with one welcome channel.

    Attributes:
        settings: Thresholds to apply.
        timeout_text: The timeout warning body sent to idle members.

    Example:
        >>> evaluator = ChannelPolicyEvaluator(SweepSettings())
        >>> action = evaluator.evaluate(channel, member, max_wait_ms, now)
        >>> action.kind
        <ActionKind.NOOP: 'noop'>
    """

    def __init__(
        self,
        settings: Optional[SweepSettings] = None,
        onboarding_url: str = "https://kcd.im/discord",
    ):
        self.settings = settings or SweepSettings()
        self.timeout_text = TIMEOUT_WARNING_TEMPLATE.format(url=onboarding_url)

    def spam_warning_for(self, member: Member) -> str:
        return f"Whoa {member.mention}, {SPAM_WARNING_TEXT}"

    def timeout_warning_for(self, member: Member) -> str:
        return f"Hi {member.mention}, {self.timeout_text}"

    def evaluate(
        self,
        channel: OnboardingChannel,
        member: Optional[Member],
        max_waiting_time_ms: float,
        now: datetime,
        bot_user_id: Optional[str] = None,
    ) -> ChannelAction:
        """Decide the action for a channel.

        Args:
            channel: The channel, with its messages in arrival order.
            member: The channel's owner, or None if they are not in the server.
            max_waiting_time_ms: Idle window for this sweep.
            now: The sweep's reference time.
            bot_user_id: The service's user id, for recognising its own warnings.

        Returns:
            Exactly one ChannelAction.
        """
        s = self.settings
        last_message = channel.last_message

        # somehow the member is gone (maybe they left the server?)
        if member is None or last_message is None:
            return ChannelAction(ActionKind.DELETE, channel, reason=REASON_MEMBER_GONE)

        count = channel.message_count
        if count > s.too_many_messages:
            return ChannelAction(ActionKind.DELETE, channel, reason=REASON_TOO_MANY_MESSAGES)

        state = ChannelState.derive(channel, member.id, bot_user_id)

        if count > s.too_many_messages * s.spam_warning_ratio and not state.spam_warned:
            return ChannelAction(
                ActionKind.SEND_WARNING,
                channel,
                text=self.spam_warning_for(member),
                warning=WarningKind.SPAM,
            )

        if last_message.author_id == member.id:
            # the bot went down before answering them (normally a redeploy)
            if elapsed_ms(last_message.created_at, now) > s.catch_up_grace_ms:
                return ChannelAction(ActionKind.REPROCESS, channel, message=last_message)
            return ChannelAction(ActionKind.NOOP, channel)

        idle = elapsed_ms(state.last_interaction_at, now)

        if idle > max_waiting_time_ms and (member.confirmed or state.timeout_warned):
            return ChannelAction(ActionKind.DELETE, channel, reason=REASON_TIMED_OUT)

        if (
            idle > max_waiting_time_ms * s.timeout_warning_ratio
            and member.unconfirmed
            and not state.timeout_warned
        ):
            return ChannelAction(
                ActionKind.SEND_WARNING,
                channel,
                text=self.timeout_warning_for(member),
                warning=WarningKind.TIMEOUT,
            )

        if idle > max_waiting_time_ms * s.safety_net_multiplier:
            # Expected to be unreachable: every path above should have
            # caught this channel long ago. Kept until proven unnecessary.
            logger.warning(
                f"Channel {channel.id} idle {idle:.0f}ms hit the safety net"
            )
            return ChannelAction(ActionKind.DELETE, channel, reason=REASON_TIMED_OUT)

        return ChannelAction(ActionKind.NOOP, channel)
