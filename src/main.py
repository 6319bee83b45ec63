"""Relay bot entry point - wires config, registry, tmux and the Telegram bot."""

import asyncio
import logging
import signal
import sys

from .config import ConfigError, configure_logging, load_config
from .session_registry import SessionRegistry
from .telegram_bot import TelegramBot
from .tmux_controller import TmuxController

logger = logging.getLogger(__name__)


def setup_signal_handlers(bot: TelegramBot):
    """Stop taking new updates on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()

    def signal_handler(sig):
        logger.info(f"Received signal {sig.name}, shutting down...")
        bot.stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)


async def main() -> int:
    """Main entry point."""
    try:
        config = load_config()
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    configure_logging(config.logs_path, console=True)

    tmux = TmuxController()
    registry = SessionRegistry(str(config.sessions_path), is_alive=tmux.session_exists)
    bot = TelegramBot(config, registry, tmux)
    setup_signal_handlers(bot)

    logger.info("claude-tg bot is running. Waiting for messages...")
    exit_code = await bot.run()
    logger.info("bot shutting down")
    return exit_code


def run():
    """Entry point for console script."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
