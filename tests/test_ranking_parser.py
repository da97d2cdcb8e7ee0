"""
Tests for the ranking parser in engine/parsers.py.

The ranking parser extracts structured rankings from model evaluation text.
These tests cover various edge cases and formats that models might produce.
"""

from deliberation.engine.parsers import parse_ranking_from_text


class TestParseRankingFromText:
    """Tests for parse_ranking_from_text function."""

    def test_standard_format(self, sample_ranking_text):
        """Test parsing standard FINAL RANKING format."""
        result = parse_ranking_from_text(sample_ranking_text)
        assert result == ["Response A", "Response C", "Response B"]

    def test_no_spaces_after_number(self):
        """Test parsing when there's no space after the period."""
        text = """
FINAL RANKING:
1.Response A
2.Response B
3.Response C
"""
        result = parse_ranking_from_text(text)
        assert result == ["Response A", "Response B", "Response C"]

    def test_extra_whitespace(self):
        text = """
FINAL RANKING:
1.   Response A
2.    Response B
3.  Response C
"""
        result = parse_ranking_from_text(text)
        assert result == ["Response A", "Response B", "Response C"]

    def test_five_responses(self):
        text = """
FINAL RANKING:
1. Response A
2. Response D
3. Response B
4. Response E
5. Response C
"""
        result = parse_ranking_from_text(text)
        assert result == ["Response A", "Response D", "Response B", "Response E", "Response C"]

    def test_lowercase_header_falls_back_to_whole_text(self):
        """Lowercase 'final ranking' is not the marker; labels are taken from anywhere."""
        text = """
Response B was weaker.
final ranking:
1. Response A
2. Response B
"""
        result = parse_ranking_from_text(text)
        assert result == ["Response B", "Response A"]

    def test_no_header_fallback(self, sample_ranking_text_no_header):
        """Fallback extracts Response X patterns in order of appearance."""
        result = parse_ranking_from_text(sample_ranking_text_no_header)
        assert result == ["Response A", "Response C", "Response B"]

    def test_text_after_ranking(self):
        text = """
FINAL RANKING:
1. Response B
2. Response A
3. Response C

Note: This was a difficult decision.
"""
        result = parse_ranking_from_text(text)
        assert result == ["Response B", "Response A", "Response C"]

    def test_response_mentioned_in_evaluation(self):
        """Response mentions in evaluation text don't pollute the ranking."""
        text = """
Response A provides excellent detail on the topic.
Response B is lacking in depth but is accurate.
Response C offers a balanced view.

FINAL RANKING:
1. Response C
2. Response A
3. Response B
"""
        result = parse_ranking_from_text(text)
        assert result == ["Response C", "Response A", "Response B"]

    def test_empty_text(self):
        assert parse_ranking_from_text("") == []

    def test_no_responses_mentioned(self):
        text = "This is just some random text without any rankings."
        assert parse_ranking_from_text(text) == []

    def test_bullet_format_fallback(self):
        """Non-numbered lists after the marker keep their order."""
        text = """
FINAL RANKING:
- Response B
- Response A
- Response C
"""
        result = parse_ranking_from_text(text)
        assert result == ["Response B", "Response A", "Response C"]

    def test_marker_without_labels_returns_empty(self):
        """Labels before the marker are ignored once the marker is present."""
        text = "Response A is great.\n\nFINAL RANKING:\nI could not decide."
        assert parse_ranking_from_text(text) == []

    def test_mixed_case_response(self):
        """Response must have a capital R and a single capital letter."""
        text = """
FINAL RANKING:
1. response A
2. Response B
3. RESPONSE C
"""
        assert parse_ranking_from_text(text) == ["Response B"]

    def test_duplicates_keep_first_position(self):
        text = """
FINAL RANKING:
1. Response B
2. Response A
3. Response B
"""
        assert parse_ranking_from_text(text) == ["Response B", "Response A"]

    def test_splits_at_first_marker_only(self):
        text = """
FINAL RANKING:
1. Response C
2. Response A

FINAL RANKING:
1. Response A
"""
        assert parse_ranking_from_text(text) == ["Response C", "Response A"]

    def test_unknown_labels_dropped_with_valid_labels(self):
        text = """
FINAL RANKING:
1. Response D
2. Response B
3. Response A
"""
        result = parse_ranking_from_text(text, valid_labels={"Response A", "Response B"})
        assert result == ["Response B", "Response A"]

    def test_numbered_list_of_unknown_labels_does_not_fall_back(self):
        text = """
FINAL RANKING:
Response A is mentioned in passing.
1. Response Q
2. Response R
"""
        assert parse_ranking_from_text(text, valid_labels={"Response A", "Response B"}) == []

    def test_numbered_list_preferred_over_loose_mentions(self):
        text = """
FINAL RANKING:
Response C was close, but:
1. Response A
2. Response B
"""
        assert parse_ranking_from_text(text) == ["Response A", "Response B"]

    def test_round_trip_of_formatted_ranking(self):
        order = ["Response D", "Response A", "Response C", "Response B"]
        text = "Some evaluation.\n\nFINAL RANKING:\n" + "\n".join(
            f"{i}. {label}" for i, label in enumerate(order, 1)
        )
        assert parse_ranking_from_text(text) == order
