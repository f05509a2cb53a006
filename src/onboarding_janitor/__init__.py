"""Onboarding Janitor - welcome channel reconciliation for community servers.

Periodically sweeps the onboarding ("welcome") channels created for new,
unconfirmed members: warns idle or noisy members, replays messages the bot
missed while it was down, deletes channels that timed out, and removes
unconfirmed members who no longer have a welcome channel.

Usage:
    # Run sweeps forever against the configured guild
    onboarding-janitor run

    # Run a single sweep and print the summary
    onboarding-janitor sweep-once
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
