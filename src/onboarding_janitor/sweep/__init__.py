# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Onboarding sweep: policy, orchestration and scheduling.

Provides:
- max_waiting_time_ms: idle window sized to category occupancy
- ChannelPolicyEvaluator: one action per welcome channel
- SweepOrchestrator: snapshot, fan-out and result collection
- SweepScheduler: periodic, non-overlapping sweeps
"""

from onboarding_janitor.sweep.orchestrator import (
    SweepError,
    SweepFailure,
    SweepOrchestrator,
    SweepResult,
    select_homeless_members,
)
from onboarding_janitor.sweep.policy import (
    ActionKind,
    ChannelAction,
    ChannelPolicyEvaluator,
    ChannelState,
    WarningKind,
)
from onboarding_janitor.sweep.scheduler import SweepScheduler
from onboarding_janitor.sweep.timing import max_waiting_time_ms

__all__ = [
    "ActionKind",
    "ChannelAction",
    "ChannelPolicyEvaluator",
    "ChannelState",
    "SweepError",
    "SweepFailure",
    "SweepOrchestrator",
    "SweepResult",
    "SweepScheduler",
    "WarningKind",
    "max_waiting_time_ms",
    "select_homeless_members",
]
