"""
marketlive-listen: run the configured adapters until interrupted.

    marketlive-listen -c realtime.yaml
    marketlive-listen -c realtime.yaml --check     # validate config and exit
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog
import yaml
from pydantic import ValidationError

from live_shared.log import LOG_FORMATS, configure_logging

from .config import ClientConfig, load_config
from .runtime import RealtimeClient


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="marketlive-listen",
        description="Subscribe to marketplace hub topics and track chat, live-stream "
        "and notification state.",
    )
    parser.add_argument("-c", "--config", default="realtime.yaml", help="YAML config file")
    parser.add_argument("--log-level", help="Override logging.level from the config")
    parser.add_argument("--log-format", choices=LOG_FORMATS, help="Override logging.format")
    parser.add_argument(
        "--check", action="store_true", help="Validate the config, print a summary and exit"
    )
    return parser.parse_args(argv)


def _summary(config: ClientConfig) -> str:
    parts = [f"hub={config.hub.url}"]
    if config.notifications.enabled:
        parts.append(f"notifications=user/{config.user_id}")
    if config.chat.conversations:
        parts.append("conversations=" + ",".join(map(str, config.chat.conversations)))
    if config.live_streams.streams:
        parts.append("streams=" + ",".join(map(str, config.live_streams.streams)))
    parts.append(f"api={config.api.url or 'none'}")
    return " ".join(parts)


def run(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)

    try:
        config = load_config(args.config)
    except FileNotFoundError as exc:
        sys.exit(f"Error: {exc}")
    except (ValidationError, ValueError, yaml.YAMLError) as exc:
        sys.exit(f"Configuration error in {args.config}:\n{exc}")

    if args.check:
        print(f"{args.config}: OK ({_summary(config)})")
        return

    configure_logging(
        args.log_level or config.logging.level,
        args.log_format or config.logging.format,
        service="listener",
    )
    structlog.get_logger().info("client.config_loaded", config_path=args.config)

    client = RealtimeClient(config)
    try:
        asyncio.run(client.run_forever())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
