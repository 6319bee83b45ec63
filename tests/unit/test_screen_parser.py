"""Unit tests for screen text extraction."""

from src.models import MenuOption
from src.screen_parser import (
    extract_last_message,
    extract_options,
    extract_permission_dialog,
    extract_prompt_draft,
    find_plan_path,
    is_rule_line,
    strip_ansi,
)


class TestIsRuleLine:
    def test_long_rule(self):
        assert is_rule_line("─" * 20, 5)

    def test_too_short(self):
        assert not is_rule_line("────", 5)

    def test_dashed_glyphs_count_for_dialogs(self):
        assert is_rule_line("  ╌╌╌╌╌╌  ", 5)

    def test_dashed_glyphs_do_not_close_responses(self):
        from src.screen_parser import RESPONSE_RULE_CHARS
        assert not is_rule_line("╌" * 20, 10, RESPONSE_RULE_CHARS)

    def test_text_line(self):
        assert not is_rule_line("hello world", 5)


class TestExtractPermissionDialog:
    def test_text_below_last_rule(self):
        screen = (
            "Some earlier output\n"
            "● Working on something\n"
            "──────────────────────\n"
            "Allow this action?\n"
            "Tool: Bash(rm -rf /)"
        )
        assert extract_permission_dialog(screen) == "Allow this action?\nTool: Bash(rm -rf /)"

    def test_uses_bottom_most_rule(self):
        screen = "─────\nold dialog\n─────\nnew dialog"
        assert extract_permission_dialog(screen) == "new dialog"

    def test_fallback_last_15_non_empty_lines(self):
        screen = "\n".join(f"line {i}" for i in range(20))
        expected = "\n".join(f"line {i}" for i in range(5, 20))
        assert extract_permission_dialog(screen) == expected

    def test_fallback_skips_blank_lines(self):
        screen = "a\n\n\nb\n   \nc"
        assert extract_permission_dialog(screen) == "a\nb\nc"

    def test_empty_below_rule_falls_back(self):
        screen = "question\nmore\n──────────\n\n   \n"
        assert extract_permission_dialog(screen) == "question\nmore\n──────────"

    def test_empty_screen(self):
        assert extract_permission_dialog("") == ""


class TestExtractLastMessage:
    def test_last_bullet_block(self):
        screen = "● First response\nsome text\n\n● Second response\nmore text here\nand more"
        assert extract_last_message(screen) == "● Second response\nmore text here\nand more"

    def test_stops_before_prompt(self):
        screen = "● Response text\ndetails here\n  ❯ waiting for input"
        assert extract_last_message(screen) == "● Response text\ndetails here"

    def test_stops_at_long_rule(self):
        screen = "● Done.\nAll tests pass.\n" + "─" * 40 + "\n❯ \n" + "─" * 40
        assert extract_last_message(screen) == "● Done.\nAll tests pass."

    def test_short_rule_is_content(self):
        screen = "● Table\n─────\nrow"
        assert extract_last_message(screen) == "● Table\n─────\nrow"

    def test_fallback_last_10_non_empty_lines(self):
        screen = "\n".join(f"line {i}" for i in range(12))
        assert extract_last_message(screen) == "\n".join(f"line {i}" for i in range(2, 12))

    def test_indented_bullet(self):
        screen = "noise\n  ● indented\nbody"
        assert extract_last_message(screen) == "● indented\nbody"


class TestExtractOptions:
    def test_plain_and_marked_options(self):
        text = "Do you want to proceed?\n❯ 1. Yes\n  2. Yes, and don't ask again\n  3. No"
        assert extract_options(text) == [
            MenuOption(1, "Yes"),
            MenuOption(2, "Yes, and don't ask again"),
            MenuOption(3, "No"),
        ]

    def test_ordered_by_number_not_position(self):
        text = "3. three\n1. one\n2. two"
        assert [o.number for o in extract_options(text)] == [1, 2, 3]

    def test_duplicates_kept(self):
        text = "1. first\n1. again"
        assert len(extract_options(text)) == 2

    def test_non_option_lines_ignored(self):
        assert extract_options("Version 1.2 released\nno options here") == []

    def test_requires_whitespace_after_period(self):
        assert extract_options("1.Yes") == []


class TestExtractPromptDraft:
    def test_draft_after_prompt(self):
        screen = "● Done\n" + "─" * 20 + "\n❯ fix the tests\n" + "─" * 20
        assert extract_prompt_draft(screen) == "fix the tests"

    def test_empty_prompt(self):
        assert extract_prompt_draft("● Done\n❯ \n") == ""

    def test_nbsp_prompt_is_empty(self):
        assert extract_prompt_draft("❯\xa0") == ""

    def test_no_prompt(self):
        assert extract_prompt_draft("just output") == ""

    def test_uses_last_prompt_line(self):
        assert extract_prompt_draft("❯ old\n● reply\n❯ new draft") == "new draft"


class TestHelpers:
    def test_strip_ansi(self):
        assert strip_ansi("\x1b[1;32mgreen\x1b[0m text\x07") == "green text"

    def test_strip_ansi_keeps_newlines(self):
        assert strip_ansi("a\nb\tc") == "a\nb\tc"

    def test_find_plan_path(self):
        screen = "Plan saved to ~/.claude/plans/brave-otter.md for review"
        assert find_plan_path(screen) == "~/.claude/plans/brave-otter.md"

    def test_find_plan_path_none(self):
        assert find_plan_path("nothing here") is None
