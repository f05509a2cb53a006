"""CLI entry point for onboarding-janitor.

Usage:
    onboarding-janitor run            # Sweep welcome channels forever
    onboarding-janitor sweep-once     # Run one sweep and print the summary
    onboarding-janitor show-config    # Print the effective configuration
    onboarding-janitor --version      # Show version

The bot token is read from DISCORD_BOT_TOKEN.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

import yaml

from onboarding_janitor import __version__
from onboarding_janitor.config import (
    DEFAULT_CONFIG_PATH,
    TOKEN_ENV_VAR,
    ConfigError,
    JanitorConfig,
    load_config,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="onboarding-janitor",
        description="Onboarding Janitor - welcome channel reconciliation for Discord",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to the YAML config file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log per-channel decisions",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Connect and sweep welcome channels forever")
    subparsers.add_parser("sweep-once", help="Connect, run one sweep and exit")
    subparsers.add_parser("show-config", help="Print the effective configuration")

    return parser


def main(argv: Optional[list] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    if args.command == "show-config":
        show_config(config)
    elif args.command == "run":
        _check_connectable(config)
        asyncio.run(run_discord(config, once=False))
    elif args.command == "sweep-once":
        _check_connectable(config)
        ok = asyncio.run(run_discord(config, once=True))
        sys.exit(0 if ok else 1)
    else:
        parser.print_help()
        sys.exit(2)


def show_config(config: JanitorConfig) -> None:
    """Print the configuration as YAML with the token redacted."""
    print(yaml.safe_dump(config.redacted(), sort_keys=False), end="")


def _check_connectable(config: JanitorConfig) -> None:
    if not config.token:
        print(f"Error: {TOKEN_ENV_VAR} is not set.", file=sys.stderr)
        sys.exit(2)
    if not config.discord.guild_id:
        print("Error: discord.guild_id is not configured.", file=sys.stderr)
        sys.exit(2)


def build_orchestrator(client, guild, config: JanitorConfig, metrics=None):
    """Wire the sweep core to a Discord guild."""
    from onboarding_janitor.adapters.discord_adapter import (
        DiscordAuditSink,
        DiscordOnboardingAdapter,
    )
    from onboarding_janitor.audit import CompositeAuditSink, LoggingAuditSink
    from onboarding_janitor.sweep.orchestrator import SweepOrchestrator
    from onboarding_janitor.sweep.policy import ChannelPolicyEvaluator

    adapter = DiscordOnboardingAdapter(client, guild, config.discord, config.sweep)
    audit = CompositeAuditSink(
        [LoggingAuditSink(), DiscordAuditSink(guild, config.discord.bot_log_channel)]
    )
    return SweepOrchestrator(
        registry=adapter,
        gateway=adapter,
        oracle=adapter,
        resolver=adapter,
        reprocessor=adapter,
        audit=audit,
        settings=config.sweep,
        evaluator=ChannelPolicyEvaluator(config.sweep, config.discord.onboarding_url),
        metrics=metrics,
        bot_user_id=adapter.bot_user_id,
    )


async def run_discord(config: JanitorConfig, once: bool = False) -> bool:
    """Connect to Discord and run one sweep or sweep forever.

    Returns:
        True if every sweep that ran finished without failures.
    """
    from onboarding_janitor.adapters.discord_adapter import create_client
    from onboarding_janitor.metrics import SweepMetrics
    from onboarding_janitor.sweep.scheduler import SweepScheduler

    client = create_client()
    ready = asyncio.Event()

    @client.event
    async def on_ready():
        logger.info(f"Connected to Discord as {client.user}")
        ready.set()

    async with client:
        await client.login(config.token)
        connection = asyncio.create_task(client.connect())
        waiter = asyncio.create_task(ready.wait())
        done, _ = await asyncio.wait({connection, waiter}, return_when=asyncio.FIRST_COMPLETED)
        if connection in done:
            waiter.cancel()
            # Surfaces the connection error
            connection.result()
            return False

        guild = client.get_guild(int(config.discord.guild_id))
        if guild is None:
            logger.error(f"Guild {config.discord.guild_id} is not visible to the bot")
            return False

        metrics = SweepMetrics()
        orchestrator = build_orchestrator(client, guild, config, metrics)
        scheduler = SweepScheduler(orchestrator, config.sweep.interval_seconds)

        try:
            if once:
                result = await scheduler.run_once()
                if result is not None:
                    print(result.summary())
                    for failure in result.failures:
                        print(f"  failed: {failure}", file=sys.stderr)
                return result is not None and result.ok

            stop = asyncio.Event()
            _install_signal_handlers(stop)
            await scheduler.run_forever(stop)
            logger.info(f"Totals: {metrics.get_totals()}")
            return metrics.get_totals()["failures"] == 0
        finally:
            connection.cancel()


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Not supported on Windows event loops; Ctrl+C still interrupts
            pass


if __name__ == "__main__":
    main()
