"""Read the last assistant message from a Claude Code JSONL transcript."""

import json
import logging
import re
from pathlib import Path
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

QUESTION_TOOL = "AskUserQuestion"

_QUESTION_LINE_RE = re.compile(r'\?($|\s)|^\d+\.')


def _assistant_entries(transcript_path: Optional[str]) -> Iterator[list]:
    """Yield content block lists of assistant entries, newest first."""
    if not transcript_path:
        return
    path = Path(transcript_path)
    if not path.exists():
        return

    try:
        lines = path.read_text(encoding="utf-8").strip().split("\n")
    except OSError as e:
        logger.warning(f"Could not read transcript {transcript_path}: {e}")
        return

    for line in reversed(lines):
        try:
            entry = json.loads(line)
        except ValueError:
            continue
        if not isinstance(entry, dict) or entry.get("type") != "assistant":
            continue
        content = (entry.get("message") or {}).get("content")
        if isinstance(content, list):
            yield content


def _render_questions(block: dict) -> list[str]:
    texts = []
    for question in (block.get("input") or {}).get("questions") or []:
        texts.append(question.get("question", ""))
        for idx, option in enumerate(question.get("options") or [], start=1):
            texts.append(f"{idx}. {option.get('label', '')}")
    return texts


def get_last_assistant_message(transcript_path: Optional[str]) -> Optional[str]:
    """
    Text of the last assistant message that has any.

    Questions asked through the AskUserQuestion tool are rendered as the
    question text followed by ``N. label`` option lines; when a question is
    present, leading narration before it is dropped.

    Returns:
        Message text, or None if the transcript has no usable entry
    """
    for content in _assistant_entries(transcript_path):
        texts: list[str] = []
        has_question = False

        for block in content:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "text" and block.get("text"):
                texts.append(block["text"])
            elif block.get("type") == "tool_use" and block.get("name") == QUESTION_TOOL:
                has_question = True
                texts.extend(_render_questions(block))

        if has_question and len(texts) > 1:
            start = next((i for i, t in enumerate(texts) if _QUESTION_LINE_RE.search(t)), -1)
            if start > 0:
                texts = texts[start:]

        if texts:
            return "\n".join(texts)

    return None

