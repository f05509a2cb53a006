# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Configuration parsing for the onboarding janitor.

This module provides:
- SweepSettings dataclass for the sweep's thresholds and cadence
- DiscordSettings dataclass for locating welcome channels in a guild
- load_config() to parse janitor.yaml

The bot token is read from the DISCORD_BOT_TOKEN environment variable and is
never taken from the config file.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

TOKEN_ENV_VAR = "DISCORD_BOT_TOKEN"
DEFAULT_CONFIG_PATH = "janitor.yaml"

# Hard limits; values outside these are clamped, not rejected
MIN_INTERVAL_SECONDS = 5
MAX_INTERVAL_SECONDS = 3600
MAX_HISTORY_LIMIT = 1000


class ConfigError(Exception):
    """Raised when the configuration file cannot be parsed."""

    def __init__(self, path: Union[str, Path], detail: str):
        self.path = str(path)
        super().__init__(f"Invalid config file '{path}': {detail}")


@dataclass
class SweepSettings:
    """Thresholds and cadence for onboarding sweeps.

    Attributes:
        interval_seconds: Seconds between scheduled sweeps
        min_minutes: Floor of the idle window
        max_minutes: Longest idle window, used when no channels are open
        channel_capacity: Welcome channels the category can hold
        homeless_grace_minutes: How long an unconfirmed member may go without a channel
        too_many_messages: Message count at which a channel is deleted as spam
        spam_warning_ratio: Share of too_many_messages at which to warn
        catch_up_grace_ms: How long the bot gets to answer before a message is replayed
        timeout_warning_ratio: Share of the idle window at which to warn
        safety_net_multiplier: Idle windows after which a channel is always deleted
        history_limit: Messages fetched per channel
    """

    interval_seconds: int = 60
    min_minutes: float = 3
    max_minutes: float = 20
    channel_capacity: int = 48
    homeless_grace_minutes: float = 10
    too_many_messages: int = 100
    spam_warning_ratio: float = 0.5
    catch_up_grace_ms: int = 2000
    timeout_warning_ratio: float = 0.7
    safety_net_multiplier: float = 10
    history_limit: int = 200


@dataclass
class DiscordSettings:
    """Where the janitor finds things in the guild.

    Attributes:
        guild_id: Guild to sweep
        welcome_category: Category holding the welcome channels
        unconfirmed_role: Role carried by members who have not finished onboarding
        bot_log_channel: Channel receiving audit embeds (None disables it)
        onboarding_url: Link offered to members in the timeout warning
    """

    guild_id: Optional[str] = None
    welcome_category: str = "Welcome!"
    unconfirmed_role: str = "Unconfirmed Member"
    bot_log_channel: Optional[str] = "bot-logs"
    onboarding_url: str = "https://kcd.im/discord"


@dataclass
class JanitorConfig:
    """Top-level janitor configuration."""

    sweep: SweepSettings = field(default_factory=SweepSettings)
    discord: DiscordSettings = field(default_factory=DiscordSettings)
    token: Optional[str] = None

    def redacted(self) -> Dict[str, Any]:
        """Return the configuration as a dict with the token hidden."""
        return {
            "sweep": dict(vars(self.sweep)),
            "discord": dict(vars(self.discord)),
            "token": "***" if self.token else None,
        }


def _number(raw: Any, default: float, low: float, high: float) -> float:
    """Coerce a config value to a number clamped into [low, high]."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return default
    return max(low, min(raw, high))


def _string(raw: Any, default: Optional[str]) -> Optional[str]:
    if raw is None:
        return default
    if isinstance(raw, (str, int)) and not isinstance(raw, bool):
        return str(raw)
    return default


def _parse_sweep(data: Dict[str, Any]) -> SweepSettings:
    defaults = SweepSettings()

    min_minutes = _number(data.get("min_minutes"), defaults.min_minutes, 0.5, 24 * 60)
    max_minutes = _number(data.get("max_minutes"), defaults.max_minutes, 0.5, 24 * 60)
    if min_minutes > max_minutes:
        min_minutes, max_minutes = max_minutes, min_minutes

    return SweepSettings(
        interval_seconds=int(
            _number(
                data.get("interval_seconds"),
                defaults.interval_seconds,
                MIN_INTERVAL_SECONDS,
                MAX_INTERVAL_SECONDS,
            )
        ),
        min_minutes=min_minutes,
        max_minutes=max_minutes,
        channel_capacity=int(
            _number(data.get("channel_capacity"), defaults.channel_capacity, 1, 500)
        ),
        homeless_grace_minutes=_number(
            data.get("homeless_grace_minutes"), defaults.homeless_grace_minutes, 0, 24 * 60
        ),
        too_many_messages=int(
            _number(data.get("too_many_messages"), defaults.too_many_messages, 1, 10000)
        ),
        spam_warning_ratio=_number(
            data.get("spam_warning_ratio"), defaults.spam_warning_ratio, 0.0, 1.0
        ),
        catch_up_grace_ms=int(
            _number(data.get("catch_up_grace_ms"), defaults.catch_up_grace_ms, 0, 60_000)
        ),
        timeout_warning_ratio=_number(
            data.get("timeout_warning_ratio"), defaults.timeout_warning_ratio, 0.0, 1.0
        ),
        safety_net_multiplier=_number(
            data.get("safety_net_multiplier"), defaults.safety_net_multiplier, 1, 1000
        ),
        history_limit=int(
            _number(data.get("history_limit"), defaults.history_limit, 1, MAX_HISTORY_LIMIT)
        ),
    )


def _parse_discord(data: Dict[str, Any]) -> DiscordSettings:
    defaults = DiscordSettings()
    return DiscordSettings(
        guild_id=_string(data.get("guild_id"), defaults.guild_id),
        welcome_category=_string(data.get("welcome_category"), defaults.welcome_category),
        unconfirmed_role=_string(data.get("unconfirmed_role"), defaults.unconfirmed_role),
        bot_log_channel=_string(
            data.get("bot_log_channel", defaults.bot_log_channel), None
        ),
        onboarding_url=_string(data.get("onboarding_url"), defaults.onboarding_url),
    )


def load_config(
    path: Union[str, Path] = DEFAULT_CONFIG_PATH,
    environ: Optional[Dict[str, str]] = None,
) -> JanitorConfig:
    """Load janitor configuration from a YAML file.

    Args:
        path: Path to the config file; a missing file yields defaults
        environ: Environment to read the token from (defaults to os.environ)

    Returns:
        JanitorConfig with settings from the file or defaults

    Raises:
        ConfigError: If the file exists but is not valid YAML or not a mapping
    """
    env = os.environ if environ is None else environ
    token = env.get(TOKEN_ENV_VAR) or None

    config_path = Path(path)
    if not config_path.exists():
        return JanitorConfig(token=token)

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(config_path, str(e)) from e

    if not isinstance(data, dict):
        raise ConfigError(config_path, "top level must be a mapping")

    sweep = data.get("sweep") or {}
    discord = data.get("discord") or {}
    if not isinstance(sweep, dict):
        sweep = {}
    if not isinstance(discord, dict):
        discord = {}

    return JanitorConfig(
        sweep=_parse_sweep(sweep),
        discord=_parse_discord(discord),
        token=token,
    )
