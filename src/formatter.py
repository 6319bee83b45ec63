"""Telegram HTML formatting for notifications and relay replies."""

from typing import Optional

from .models import HookEvent, NotificationKind
from .screen_parser import extract_last_message, extract_options, extract_permission_dialog

NOTIFICATION_MAX_CHARS = 3200
TRUNCATION_MARKER = "...\n"

HINT_FOOTER = "<i>Tip: /stop to interrupt, /help for commands</i>"

_HEADERS = {
    NotificationKind.PERMISSION: ("\U0001F510", "Permission needed"),
    NotificationKind.ELICITATION: ("❓", "Question for you"),
}
_DEFAULT_HEADER = ("⏳", "Waiting for input")


def escape_html(text: Optional[str]) -> str:
    """Escape the characters Telegram's HTML parse mode treats as markup."""
    if not text:
        return ""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def truncate_tail(text: str, limit: int) -> str:
    """Keep the last ``limit`` characters, prefixed with an ellipsis marker."""
    if len(text) <= limit:
        return text
    return f"{TRUNCATION_MARKER}{text[-limit:]}"


def chunk_lines(text: str, limit: int) -> list[str]:
    """Split text on line boundaries into chunks of at most ``limit`` characters.

    A single line longer than ``limit`` becomes its own chunk.
    """
    chunks: list[str] = []
    current = ""
    for line in text.split("\n"):
        if current and len(current) + len(line) + 1 > limit:
            chunks.append(current)
            current = line
        else:
            current = f"{current}\n{line}" if current else line
    if current:
        chunks.append(current)
    return chunks


def format_notification(
    event: HookEvent,
    session_name: Optional[str],
    screen_content: Optional[str] = None,
    show_hint: bool = False,
    is_already_structured: bool = False,
) -> str:
    """
    Format a lifecycle hook event as a Telegram HTML message.

    Args:
        event: Hook payload (kind, title, message)
        session_name: Session tag shown in the header, if known
        screen_content: Captured pane text or transcript text
        show_hint: Replace the call-to-action with the interrupt tip
        is_already_structured: ``screen_content`` is already clean text
            (e.g. from the transcript) and is shown verbatim

    Returns:
        HTML message text
    """
    kind = event.kind
    icon, header = _HEADERS.get(kind, _DEFAULT_HEADER)
    session_tag = f"[{escape_html(session_name)}] " if session_name else ""

    parts = [f"{icon} {session_tag}<b>{escape_html(header)}</b>"]
    if event.title:
        parts.append(f"<b>{escape_html(event.title)}</b>")
    if event.message:
        parts.append(escape_html(event.message))

    options = []
    if screen_content:
        if is_already_structured:
            display_text = screen_content
        elif kind.is_dialog:
            display_text = extract_permission_dialog(screen_content)
        else:
            display_text = extract_last_message(screen_content)

        if display_text:
            if kind.is_dialog:
                options = extract_options(display_text)
            parts.append("")
            parts.append(f"<pre>{escape_html(truncate_tail(display_text, NOTIFICATION_MAX_CHARS))}</pre>")

    parts.append("")
    if show_hint:
        parts.append(HINT_FOOTER)
    elif options:
        choices = ", ".join(f"/{n}" for n in dict.fromkeys(o.number for o in options))
        parts.append(f"<i>Reply {choices} to choose an option</i>")
    elif kind == NotificationKind.PERMISSION:
        parts.append("<i>/allow to approve, /deny to reject</i>")
    else:
        parts.append("<i>Reply here to send input</i>")

    return "\n".join(parts)
