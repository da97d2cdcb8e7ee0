"""
Text parsing utilities for council responses.

Extraction of peer rankings from free-form evaluation text. Models do not
always follow the requested format, so parsing degrades through several
fallbacks instead of discarding an evaluation.
"""

import re
from collections.abc import Collection, Iterable

RANKING_MARKER = "FINAL RANKING:"

_LABEL_PATTERN = re.compile(r"Response [A-Z]")
_NUMBERED_PATTERN = re.compile(r"\d+\.\s*(Response [A-Z])")


def _unique(labels: Iterable[str], valid_labels: Collection[str] | None) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for label in labels:
        if label in seen:
            continue
        if valid_labels is not None and label not in valid_labels:
            continue
        seen.add(label)
        ordered.append(label)
    return ordered


def parse_ranking_from_text(
    ranking_text: str, valid_labels: Collection[str] | None = None
) -> list[str]:
    """
    Parse the FINAL RANKING section from the model's response.

    Args:
        ranking_text: The full text response from the model
        valid_labels: If given, labels outside this set are dropped

    Returns:
        List of response labels in ranked order, without duplicates.
        Empty if nothing recognisable was found.
    """
    if not ranking_text:
        return []

    # Look for "FINAL RANKING:" section
    if RANKING_MARKER in ranking_text:
        # Extract everything after the first "FINAL RANKING:"
        ranking_section = ranking_text.split(RANKING_MARKER, 1)[1]

        # Try to extract numbered list format (e.g., "1. Response A")
        numbered = _NUMBERED_PATTERN.findall(ranking_section)
        if numbered:
            return _unique(numbered, valid_labels)

        # Fallback: Extract all "Response X" patterns in order
        return _unique(_LABEL_PATTERN.findall(ranking_section), valid_labels)

    # Fallback: try to find any "Response X" patterns in order
    return _unique(_LABEL_PATTERN.findall(ranking_text), valid_labels)
