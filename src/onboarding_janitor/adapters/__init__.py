# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Platform adapters implementing the sweep collaborators."""

from onboarding_janitor.adapters.discord_adapter import (
    DiscordAuditSink,
    DiscordOnboardingAdapter,
    create_client,
    member_id_from_topic,
)

__all__ = [
    "DiscordAuditSink",
    "DiscordOnboardingAdapter",
    "create_client",
    "member_id_from_topic",
]
