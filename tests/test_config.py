# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Tests for janitor configuration parsing.
"""

from pathlib import Path

import pytest

from onboarding_janitor.config import (
    MAX_HISTORY_LIMIT,
    MIN_INTERVAL_SECONDS,
    TOKEN_ENV_VAR,
    ConfigError,
    DiscordSettings,
    JanitorConfig,
    SweepSettings,
    load_config,
)


def write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "janitor.yaml"
    path.write_text(text)
    return path


class TestDefaults:
    """Tests for default settings."""

    def test_sweep_defaults(self):
        s = SweepSettings()
        assert s.min_minutes == 3
        assert s.max_minutes == 20
        assert s.channel_capacity == 48
        assert s.homeless_grace_minutes == 10
        assert s.too_many_messages == 100
        assert s.spam_warning_ratio == 0.5
        assert s.catch_up_grace_ms == 2000
        assert s.timeout_warning_ratio == 0.7
        assert s.safety_net_multiplier == 10

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml", environ={})
        assert config.sweep == SweepSettings()
        assert config.discord == DiscordSettings()
        assert config.token is None


class TestLoadConfig:
    """Tests for load_config."""

    def test_reads_values(self, tmp_path):
        path = write(
            tmp_path,
            """
sweep:
  interval_seconds: 30
  max_minutes: 30
  too_many_messages: 80
discord:
  guild_id: 1234
  welcome_category: "Onboarding"
  bot_log_channel: "audit"
""",
        )
        config = load_config(path, environ={})

        assert config.sweep.interval_seconds == 30
        assert config.sweep.max_minutes == 30
        assert config.sweep.too_many_messages == 80
        assert config.discord.guild_id == "1234"
        assert config.discord.welcome_category == "Onboarding"
        assert config.discord.bot_log_channel == "audit"

    def test_token_from_environment(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml", environ={TOKEN_ENV_VAR: "secret"})
        assert config.token == "secret"

    def test_token_in_file_ignored(self, tmp_path):
        path = write(tmp_path, "token: from-file\n")
        assert load_config(path, environ={}).token is None

    def test_values_clamped(self, tmp_path):
        path = write(
            tmp_path,
            """
sweep:
  interval_seconds: 1
  history_limit: 100000
  spam_warning_ratio: 3
""",
        )
        config = load_config(path, environ={})

        assert config.sweep.interval_seconds == MIN_INTERVAL_SECONDS
        assert config.sweep.history_limit == MAX_HISTORY_LIMIT
        assert config.sweep.spam_warning_ratio == 1.0

    def test_wrong_types_fall_back(self, tmp_path):
        path = write(
            tmp_path,
            """
sweep:
  too_many_messages: "lots"
  catch_up_grace_ms: true
discord:
  welcome_category: [1, 2]
""",
        )
        config = load_config(path, environ={})

        assert config.sweep.too_many_messages == 100
        assert config.sweep.catch_up_grace_ms == 2000
        assert config.discord.welcome_category == "Welcome!"

    def test_min_max_swapped_into_order(self, tmp_path):
        path = write(tmp_path, "sweep:\n  min_minutes: 25\n  max_minutes: 5\n")
        config = load_config(path, environ={})

        assert config.sweep.min_minutes == 5
        assert config.sweep.max_minutes == 25

    def test_bot_log_channel_can_be_disabled(self, tmp_path):
        path = write(tmp_path, "discord:\n  bot_log_channel: null\n")
        assert load_config(path, environ={}).discord.bot_log_channel is None

    def test_empty_file_gives_defaults(self, tmp_path):
        path = write(tmp_path, "")
        assert load_config(path, environ={}).sweep == SweepSettings()

    def test_malformed_yaml_raises(self, tmp_path):
        path = write(tmp_path, "sweep: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(path, environ={})

    def test_non_mapping_raises(self, tmp_path):
        path = write(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigError):
            load_config(path, environ={})


class TestRedacted:
    def test_token_hidden(self):
        config = JanitorConfig(token="secret")
        data = config.redacted()
        assert data["token"] == "***"
        assert "secret" not in str(data)
        assert data["sweep"]["too_many_messages"] == 100
