"""Recover dialogs, responses and menu options from captured tmux pane text.

Everything here is a pure function over strings: no tmux calls, no I/O.
Matching works one line at a time against a few Claude Code glyphs.
"""

import re
from typing import Optional

from .models import MenuOption

# Horizontal rule glyphs drawn above dialogs and around the input box
RULE_CHARS = "─━╌╍┄┅┈┉"
# Heavy/light solid rules that close a response block
RESPONSE_RULE_CHARS = "─━"
# Marks the start of an agent response
BULLET_CHAR = "●"
# Marks the user input prompt
PROMPT_CHAR = "❯"

DIALOG_RULE_MIN = 5
RESPONSE_RULE_MIN = 10
DIALOG_FALLBACK_LINES = 15
MESSAGE_FALLBACK_LINES = 10

# "1. Yes", "❯ 2. No, and tell Claude what to do differently"
OPTION_RE = re.compile(r'^\s*(?:[❯›>]\s*)?(\d+)\.\s+(.+)$')

PLAN_PATH_RE = re.compile(r'~/\.claude/plans/\S+?\.md')

# Regex to match ANSI escape codes (comprehensive)
ANSI_ESCAPE_RE = re.compile(
    r'\x1b\[[0-9;?]*[a-zA-Z]|'  # CSI sequences (including private modes like ?2026h)
    r'\x1b\][^\x07]*\x07|'       # OSC sequences (title, etc.)
    r'\x1b[PX^_].*?\x1b\\|'      # DCS, SOS, PM, APC sequences
    r'\x1b[\(\)][AB012]|'        # Character set selection
    r'\x1b[=>78DMEHc]|'          # Keypad modes, cursor save/restore, single-char commands
    r'[\x00-\x08\x0b\x0c\x0e-\x1f]'  # Other control characters
)


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes and control characters from text."""
    return ANSI_ESCAPE_RE.sub('', text)


def is_rule_line(line: str, min_length: int, chars: str = RULE_CHARS) -> bool:
    """True if the stripped line starts with at least ``min_length`` rule glyphs."""
    stripped = line.strip()
    run = len(stripped) - len(stripped.lstrip(chars))
    return run >= min_length


def starts_with_glyph(line: str, glyph: str) -> bool:
    """True if the first non-whitespace character of the line is ``glyph``."""
    return line.lstrip().startswith(glyph)


def _tail_non_empty(lines: list[str], count: int) -> str:
    """Last ``count`` non-blank lines, in their original order."""
    tail: list[str] = []
    for line in reversed(lines):
        if len(tail) >= count:
            break
        if line.strip():
            tail.append(line)
    return '\n'.join(reversed(tail))


def extract_permission_dialog(screen: str) -> str:
    """
    Extract the dialog at the bottom of the screen.

    The dialog is everything below the last horizontal rule. Without a rule,
    or with nothing below it, the last 15 non-empty lines are returned.
    """
    lines = screen.split('\n')

    for i in range(len(lines) - 1, -1, -1):
        if is_rule_line(lines[i], DIALOG_RULE_MIN):
            text = '\n'.join(lines[i + 1:]).strip()
            if text:
                return text
            break

    return _tail_non_empty(lines, DIALOG_FALLBACK_LINES)


def extract_last_message(screen: str) -> str:
    """
    Extract the last agent response block (starting with the bullet glyph).

    The block ends before the next prompt line or a long solid rule. Without
    any bullet line, the last 10 non-empty lines are returned.
    """
    lines = screen.split('\n')

    start = -1
    for i in range(len(lines) - 1, -1, -1):
        if starts_with_glyph(lines[i], BULLET_CHAR):
            start = i
            break

    if start == -1:
        return _tail_non_empty(lines, MESSAGE_FALLBACK_LINES)

    block: list[str] = []
    for k in range(start, len(lines)):
        line = lines[k]
        if k > start and starts_with_glyph(line, PROMPT_CHAR):
            break
        if is_rule_line(line, RESPONSE_RULE_MIN, RESPONSE_RULE_CHARS):
            break
        block.append(line)

    return '\n'.join(block).strip()


def extract_options(text: str) -> list[MenuOption]:
    """Numbered options found in ``text``, ordered by number (duplicates kept)."""
    options = []
    for line in text.split('\n'):
        m = OPTION_RE.match(line)
        if m:
            options.append(MenuOption(number=int(m.group(1)), label=m.group(2).strip()))
    return sorted(options, key=lambda o: o.number)


def extract_prompt_draft(screen: str) -> str:
    """
    Text the user has typed after the prompt glyph on the last prompt line.

    Returns an empty string if there is no prompt line or it is empty.
    """
    for line in reversed(screen.split('\n')):
        if starts_with_glyph(line, PROMPT_CHAR):
            draft = line.lstrip()[len(PROMPT_CHAR):]
            return draft.replace('\xa0', ' ').strip()
    return ''


def find_plan_path(screen: str) -> Optional[str]:
    """First ``~/.claude/plans/*.md`` path referenced on screen."""
    m = PLAN_PATH_RE.search(screen)
    return m.group(0) if m else None
