"""
Tolerant parsers for generated text.
"""

from epic_bot.parsing.review_parser import (
    extract_review_issues,
    find_referenced_story,
    parse_issue_selection,
    select_issues,
)
from epic_bot.parsing.story_parser import parse_single_story, parse_stories

__all__ = [
    "extract_review_issues",
    "find_referenced_story",
    "parse_issue_selection",
    "parse_single_story",
    "parse_stories",
    "select_issues",
]
