"""Entry point for running the context engine as a local background process.

Starts window capture, file watching, the health reporter and periodic
retention cleanup, and stops them cleanly on SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from contextlens.config import ConfigManager, get_settings
from contextlens.engine import ContextEngine
from contextlens.platform import get_platform

logger = logging.getLogger("contextlens")


def _build_config_manager(config_path: str | None) -> ConfigManager:
    try:
        cache_path = get_platform().get_data_dir() / "config_cache.json"
    except RuntimeError:
        cache_path = None
    if config_path:
        return ConfigManager.from_yaml(config_path, cache_path=cache_path)
    manager = ConfigManager(get_settings(), cache_path=cache_path)
    manager.load_cached()
    return manager


async def main(config_path: str | None = None, log_level: str | None = None) -> None:
    """Start the engine and run until a shutdown signal arrives."""
    shutdown_event = asyncio.Event()

    def handle_signal() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal)

    config_manager = _build_config_manager(config_path)
    logging.getLogger().setLevel((log_level or config_manager.config.log_level).upper())
    engine = ContextEngine(config_manager=config_manager)

    logger.info(
        "ContextLens starting (interval=%dms, file_watch=%s, db=%s)",
        config_manager.config.capture_interval_ms,
        config_manager.config.file_watch_enabled,
        engine.store.db_path,
    )

    try:
        await engine.run(shutdown_event)
    except Exception:
        logger.exception("Engine error")
    finally:
        await engine.close()
        logger.info("ContextLens stopped")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="contextlens", description="Local activity context engine")
    parser.add_argument("--config", help="YAML config file", default=None)
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Overrides the configured log level",
    )
    return parser


def run() -> None:
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    asyncio.run(main(args.config, args.log_level))


if __name__ == "__main__":
    run()
