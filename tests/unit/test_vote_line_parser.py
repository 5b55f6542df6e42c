"""
Vote line parser unit tests.
"""

import pytest

from votes.parser import ParserOptions, VoteLineParser
from votes.vote_line import MarkerType, VoteLine, balance_markup


@pytest.mark.unit
class TestVoteLineParser:
    def setup_method(self):
        self.parser = VoteLineParser()

    def test_simple_vote(self):
        line = self.parser.parse_line("[x] A normal vote line")
        assert line == VoteLine(0, MarkerType.VOTE, "x", "A normal vote line")

    def test_prefix_depth(self):
        line = self.parser.parse_line("- - - [x] A normal vote line")
        assert line.prefix_depth == 3
        assert line.content == "A normal vote line"

    def test_mixed_dash_prefix(self):
        line = self.parser.parse_line("-–—[X] Deep")
        assert line.prefix_depth == 3

    def test_task(self):
        line = self.parser.parse_line("[X][Tasky] A normal vote line")
        assert line.task == "Tasky"
        assert line.content == "A normal vote line"

    def test_task_after_space_and_markup(self):
        line = self.parser.parse_line("[X]『i』『b』[Shopping]『/b』『/i』 Shopping 1")
        assert line.task == "Shopping"
        assert line.content == "Shopping 1"

    def test_empty_task(self):
        line = self.parser.parse_line("[X][] A normal vote line")
        assert line.task == ""

    def test_task_markup_removed(self):
        line = self.parser.parse_line("[X][『b』Tasky『/b』] Content")
        assert line.task == "Tasky"

    def test_leading_markup_skipped(self):
        line = self.parser.parse_line("『b』[X] Bold vote『/b』")
        assert line.content == "Bold vote"
        assert line.clean_content == "Bold vote"

    def test_third_bracket_folds_into_content(self):
        line = self.parser.parse_line("[X][Task][Extra] Content")
        assert line.task == "Task"
        assert line.content == "[Extra] Content"

    @pytest.mark.parametrize(
        "marker, marker_type",
        [
            ("x", MarkerType.VOTE),
            ("✓", MarkerType.VOTE),
            ("☒", MarkerType.VOTE),
            ("#1", MarkerType.RANK),
            ("1", MarkerType.RANK),
            ("75%", MarkerType.SCORE),
            ("+", MarkerType.APPROVAL),
            ("-", MarkerType.APPROVAL),
            ("x1", MarkerType.VOTE),
        ],
    )
    def test_marker_types(self, marker, marker_type):
        line = self.parser.parse_line(f"[{marker}] Content")
        assert line.marker_type == marker_type

    def test_unbracketed_checkbox(self):
        line = self.parser.parse_line("☑ Content")
        assert line.marker_type == MarkerType.VOTE
        assert line.content == "Content"

    @pytest.mark.parametrize(
        "text",
        [
            "[] Forgot the marker",
            "{x] Wrong bracket",
            "[[x] Double bracket",
            "[-x] Dash in marker",
            "~~[x] Strikethrough prefix",
            "[-2] Negative rank",
            "--*[2] Star prefix",
            "[JK] A joke vote",
            "[X][Unclosed task Content",
            "[X]   ",
            "Just talking about [x] votes",
            "",
        ],
    )
    def test_not_a_vote(self, text):
        assert self.parser.parse_line(text) is None

    def test_plan_label_line(self):
        line = self.parser.parse_line("[Scout Ahead]")
        assert line.marker_type == MarkerType.PLAN
        assert line.content == "Scout Ahead"

    def test_typographic_quotes_folded(self):
        line = self.parser.parse_line("[X] “Don’t panic”")
        assert line.content == "\"Don't panic\""

    def test_trailing_nbsp_kept(self):
        line = self.parser.parse_line("[X] Attack\u00a0")
        assert line.content == "Attack\u00a0"

    def test_control_characters_removed(self):
        line = self.parser.parse_line("[X] Att\x07ack")
        assert line.content == "Attack"

    def test_forced_rank_category(self):
        parser = VoteLineParser(ParserOptions(forced_category=MarkerType.RANK))
        assert parser.parse_line("[x1] Content").marker_type == MarkerType.RANK

    def test_forced_score_category(self):
        parser = VoteLineParser(ParserOptions(forced_category=MarkerType.SCORE))
        line = parser.parse_line("[80] Content")
        assert line.marker_type == MarkerType.SCORE
        assert line.numeric_value == 80

    def test_parse_post_keeps_order_and_post_number(self):
        text = "Some chatter first.\n[X] First\n-[X] Nested\nMore chatter\n[X] Second"
        lines = self.parser.parse_post(text, post_number=7)
        assert [line.content for line in lines] == ["First", "Nested", "Second"]
        assert all(line.originating_post_number == 7 for line in lines)


@pytest.mark.unit
class TestVoteLineValues:
    @pytest.mark.parametrize(
        "marker_type, marker, expected",
        [
            (MarkerType.VOTE, "X", 100),
            (MarkerType.RANK, "#3", 3),
            (MarkerType.RANK, "0", 1),
            (MarkerType.RANK, "150", 99),
            (MarkerType.SCORE, "150%", 100),
            (MarkerType.APPROVAL, "+", 80),
            (MarkerType.APPROVAL, "-", 20),
        ],
    )
    def test_numeric_value(self, marker_type, marker, expected):
        assert VoteLine(0, marker_type, marker, "Content").numeric_value == expected

    def test_to_text(self):
        line = VoteLine(2, MarkerType.VOTE, "X", "Content", "Task")
        assert line.to_text() == "--[X][Task] Content"
        assert line.to_text(include_marker=False) == "--[][Task] Content"

    def test_balance_markup(self):
        assert balance_markup("『/i』text『b』bold") == "text『b』bold『/b』"
