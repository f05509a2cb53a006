# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the onboarding-janitor command line.

Nothing here connects to Discord; only argument handling, config output and
wiring are exercised.
"""

import os
from unittest.mock import MagicMock, patch

import pytest
import yaml

from onboarding_janitor import __version__
from onboarding_janitor.adapters.discord_adapter import DiscordOnboardingAdapter
from onboarding_janitor.cli import build_orchestrator, build_parser, main
from onboarding_janitor.config import TOKEN_ENV_VAR, JanitorConfig
from onboarding_janitor.sweep.orchestrator import SweepOrchestrator


def write_config(tmp_path, text):
    path = tmp_path / "janitor.yaml"
    path.write_text(text)
    return str(path)


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args(["run"])
        assert args.command == "run"
        assert args.config == "janitor.yaml"
        assert not args.verbose

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestMain:
    """Tests for main() exit codes and output."""

    def test_show_config_redacts_token(self, tmp_path, capsys):
        path = write_config(tmp_path, "discord:\n  guild_id: 42\n")

        with patch.dict(os.environ, {TOKEN_ENV_VAR: "secret"}):
            main(["--config", path, "show-config"])

        out = capsys.readouterr().out
        data = yaml.safe_load(out)
        assert data["token"] == "***"
        assert data["discord"]["guild_id"] == "42"
        assert "secret" not in out

    def test_malformed_config_exits_2(self, tmp_path):
        path = write_config(tmp_path, "sweep: [unclosed\n")

        with pytest.raises(SystemExit) as exc_info:
            main(["--config", path, "show-config"])

        assert exc_info.value.code == 2

    def test_missing_token_exits_2(self, tmp_path, capsys):
        path = write_config(tmp_path, "discord:\n  guild_id: 42\n")

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(SystemExit) as exc_info:
                main(["--config", path, "sweep-once"])

        assert exc_info.value.code == 2
        assert TOKEN_ENV_VAR in capsys.readouterr().err

    def test_missing_guild_exits_2(self, tmp_path, capsys):
        path = write_config(tmp_path, "sweep:\n  interval_seconds: 30\n")

        with patch.dict(os.environ, {TOKEN_ENV_VAR: "secret"}):
            with pytest.raises(SystemExit) as exc_info:
                main(["--config", path, "run"])

        assert exc_info.value.code == 2
        assert "guild_id" in capsys.readouterr().err

    def test_no_command_prints_help(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(tmp_path / "absent.yaml")])

        assert exc_info.value.code == 2
        assert "sweep-once" in capsys.readouterr().out


class TestBuildOrchestrator:
    def test_wires_adapter_into_every_seam(self):
        client = MagicMock()
        client.user.id = 900
        config = JanitorConfig()

        orchestrator = build_orchestrator(client, MagicMock(), config)

        assert isinstance(orchestrator, SweepOrchestrator)
        assert isinstance(orchestrator.gateway, DiscordOnboardingAdapter)
        assert orchestrator.registry is orchestrator.gateway
        assert orchestrator.reprocessor is orchestrator.gateway
        assert orchestrator.bot_user_id == "900"
        assert orchestrator.settings is config.sweep
