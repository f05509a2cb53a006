# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Timing windows for onboarding sweeps.

The idle window starts at max_minutes and is reduced by the open channels'
share of the min to max spread, taken in milliseconds. It never drops
below min_minutes.
"""

from datetime import datetime, timezone
from typing import Sequence

from onboarding_janitor.models import Message

MS_PER_MINUTE = 60_000

DEFAULT_MIN_MINUTES = 3
DEFAULT_MAX_MINUTES = 20
# 50 channels per category, two of which are always taken
DEFAULT_CHANNEL_CAPACITY = 48


def max_waiting_time_ms(
    channel_count: int,
    min_minutes: float = DEFAULT_MIN_MINUTES,
    max_minutes: float = DEFAULT_MAX_MINUTES,
    capacity: int = DEFAULT_CHANNEL_CAPACITY,
) -> float:
    """Calculate how long a member may stay idle before timing out.

    Args:
        channel_count: Number of welcome channels currently open.
        min_minutes: Floor of the window, in minutes.
        max_minutes: Window with no channels open, in minutes.
        capacity: Channel count at which the whole spread is subtracted.

    Returns:
        The idle window in milliseconds, never below min_minutes.
    """
    alteration = (max(channel_count, 0) / capacity) * (max_minutes - min_minutes)
    waiting = max_minutes * MS_PER_MINUTE - alteration
    return max(waiting, min_minutes * MS_PER_MINUTE)


def elapsed_ms(since: datetime, now: datetime) -> float:
    """Milliseconds between two instants, treating naive values as UTC."""
    return (_aware(now) - _aware(since)).total_seconds() * 1000


def most_recent_index_by(messages: Sequence[Message], author_id: str) -> int:
    """Return the position of the newest message by an author, or -1.

    Newest means latest created_at; equal timestamps are broken by arrival
    order, the later arrival winning.
    """
    best_index = -1
    for index, message in enumerate(messages):
        if message.author_id != author_id:
            continue
        if best_index < 0 or (_aware(message.created_at), index) >= (
            _aware(messages[best_index].created_at),
            best_index,
        ):
            best_index = index
    return best_index


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
