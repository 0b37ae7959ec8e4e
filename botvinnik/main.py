"""Main entry point for botvinnik.

Parses the command line, initializes logging in two phases (defaults
then config-driven), builds the MatrixBot with its plugins and runs it
until it stops. SIGTERM/SIGINT request a graceful stop; a second signal
cancels the bot immediately.

Key functions:
    main: Async entry point returning the process exit code.
    run: Synchronous wrapper for the ``botvinnik`` console script.
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from . import __version__
from .logging_config import setup_logging

# Process exit codes
RC_OK = 0
RC_CONFIGURATION_ERROR = 2
RC_REGISTRATION_ERROR = 3
RC_STARTUP_ERROR = 4
RC_FAILURE_LIMIT = 5


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="botvinnik",
        description="Command bot for Matrix rooms.",
    )
    parser.add_argument(
        "-c", "--conf",
        metavar="DIR",
        type=Path,
        help="directory containing settings.yaml (and optionally .env). If "
             "omitted, the bot searches some predefined locations.",
    )
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"botvinnik, version {__version__}",
    )
    return parser.parse_args(argv)


async def main(config_dir: Optional[Path] = None) -> int:
    """Main async entry point."""
    # Phase 1: console only, cache_logger_on_first_use=False
    setup_logging()
    logger = structlog.get_logger("botvinnik")

    logger.info("botvinnik_starting", version=__version__)

    # Import here to ensure logging is configured first
    from .bot import MatrixBot
    from .config import Config
    from .exceptions import ConfigurationError, RegistrationError, StartupError
    from .matrix.client import MatrixClient
    from .plugin_loader import PluginLoader

    try:
        config = Config(config_dir)
        config.validate()
    except ConfigurationError as e:
        logger.error("configuration_error", error=str(e))
        return RC_CONFIGURATION_ERROR

    # Phase 2: reconfigure with real config, cache_logger_on_first_use=True
    setup_logging(config)

    client = MatrixClient(
        homeserver=config.homeserver,
        user_id=config.user_id,
        password=config.password,
        sync_timeout_ms=config.sync_timeout_ms,
        request_timeout=config.request_timeout,
    )
    plugin_loader = PluginLoader(
        plugins_dir=config.plugins_dir,
        settings=config.settings,
        send_message=client.send_message,
        data_dir=config.data_dir / "plugins",
    )
    bot = MatrixBot(config, client=client, plugin_loader=plugin_loader)

    try:
        bot.setup()
    except RegistrationError as e:
        logger.error("registration_error", error=str(e))
        await client.close()
        return RC_REGISTRATION_ERROR

    loop = asyncio.get_running_loop()
    bot_task = asyncio.create_task(bot.run())

    def handle_shutdown(sig):
        if bot.stop_requested:
            logger.warning("shutdown_forced", signal=sig.name)
            bot_task.cancel()
            return
        logger.info("shutdown_signal_received", signal=sig.name)
        bot.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_shutdown, sig)
        except NotImplementedError:
            # Windows: add_signal_handler not supported.
            # Fall back to signal.signal for SIGINT (Ctrl+C).
            if sig == signal.SIGINT:
                signal.signal(
                    signal.SIGINT,
                    lambda s, f: loop.call_soon_threadsafe(
                        handle_shutdown, signal.SIGINT
                    ),
                )

    try:
        stopped_on_request = await bot_task
    except StartupError as e:
        logger.error("startup_error", error=str(e))
        return RC_STARTUP_ERROR
    except asyncio.CancelledError:
        logger.warning("bot_cancelled")
        return RC_OK
    finally:
        logger.info("botvinnik_stopped")

    return RC_OK if stopped_on_request else RC_FAILURE_LIMIT


def run(argv: Optional[List[str]] = None):
    """Synchronous entry point for the ``botvinnik`` console script."""
    args = parse_args(argv)
    try:
        code = asyncio.run(main(args.conf))
    except KeyboardInterrupt:
        code = RC_OK
    sys.exit(code)


if __name__ == "__main__":
    run()
