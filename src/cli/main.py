"""Main entry point for the claude-tg launcher."""

import argparse
import sys
from typing import Optional

from ..config import ConfigError, configure_logging, load_config
from . import commands


def parse_args(argv: list[str]) -> tuple[Optional[str], list[str]]:
    """Split launcher options from the arguments passed through to claude.

    Only ``--name`` belongs to the launcher; everything else, including
    ``--help``, goes to claude unchanged.
    """
    parser = argparse.ArgumentParser(
        prog="claude-tg",
        description="Run Claude Code in tmux, controllable from Telegram",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("--name", help="Session name (letters, numbers, hyphens)")

    # Stop at "--" so claude's own "--" separator survives
    if "--" in argv:
        split = argv.index("--")
        known, rest = parser.parse_known_args(argv[:split])
        rest.extend(argv[split:])
    else:
        known, rest = parser.parse_known_args(argv)
    return known.name, rest


def main(argv: Optional[list[str]] = None):
    """Main entry point for claude-tg."""
    argv = sys.argv[1:] if argv is None else argv
    name, claude_args = parse_args(argv)

    try:
        config = load_config()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(config.logs_path)
    sys.exit(commands.cmd_launch(config, name, claude_args))


if __name__ == "__main__":
    main()
