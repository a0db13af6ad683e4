"""
Extraction of numbered issues from a review response, and the helpers used
to select issues and match them to stories.
"""

import re
from typing import Iterable, Optional

from epic_bot.core.constants import ALL_KEYWORD
from epic_bot.core.logging import get_logger
from epic_bot.domain.session import ReviewIssue
from epic_bot.domain.story import Story

logger = get_logger(__name__)

ISSUES_LABEL_RE = re.compile(r"^[^\w]*issues\b", re.IGNORECASE)
NUMBERED_RE = re.compile(r"^\s*\*{0,2}(\d+)[.)]\*{0,2}\s+(.+)")
BULLET_RE = re.compile(r"^\s*[-*•]\s+(.+)")
SELECTION_RE = re.compile(r"^\d+(?:\s*,\s*\d+)*$")
STORY_ID_REF_RE = re.compile(r"\bstory-(\d{1,4})\b", re.IGNORECASE)
STORY_NUMBER_REF_RE = re.compile(r"\bstory\s*#?\s*(\d+)\b", re.IGNORECASE)


def extract_review_issues(text: str) -> list[ReviewIssue]:
    """
    Pull the "Issues" section out of a review.

    Numbered lines keep their literal number; bullet lines are numbered
    1, 2, ... in the order they are met. Indented lines directly after an
    item are folded into it. The section ends at the first line that is
    neither an item nor such a continuation.

    Returns:
        Issues in review order, empty when no section is found
    """
    issues: list[ReviewIssue] = []
    in_section = False
    bullet_number = 0

    for line in text.splitlines():
        stripped = line.strip()

        if not in_section:
            if ISSUES_LABEL_RE.match(stripped):
                in_section = True
            continue

        if not stripped:
            continue

        numbered = NUMBERED_RE.match(line)
        if numbered:
            issues.append(ReviewIssue(number=int(numbered.group(1)), text=numbered.group(2).strip()))
            continue

        bullet = BULLET_RE.match(line)
        if bullet:
            bullet_number += 1
            issues.append(ReviewIssue(number=bullet_number, text=bullet.group(1).strip()))
            continue

        if issues and line[:1].isspace():
            issues[-1].text += " " + stripped
            continue

        break

    logger.debug("Review issues extracted", count=len(issues))
    return issues


def parse_issue_selection(text: str) -> Optional[set[int] | str]:
    """
    Interpret a reply as an issue selection.

    Returns:
        "all", a set of issue numbers, or None when the reply is not a
        selection at all
    """
    cleaned = text.strip().lower()
    if cleaned == ALL_KEYWORD:
        return ALL_KEYWORD
    if SELECTION_RE.match(cleaned):
        return {int(part) for part in cleaned.split(",")}
    return None


def select_issues(issues: Iterable[ReviewIssue], selection: set[int] | str) -> list[ReviewIssue]:
    """Issues matching a parsed selection, in review order."""
    if selection == ALL_KEYWORD:
        return list(issues)
    return [issue for issue in issues if issue.number in selection]


def find_referenced_story(text: str, stories: list[Story]) -> Optional[int]:
    """
    Find the single story an issue talks about.

    Recognises story ids (``story-003``) and 1-based mentions (``Story 3``,
    ``story #3``).

    Returns:
        0-based index into stories, or None when no story or more than one
        story is referenced
    """
    indices: set[int] = set()

    for match in STORY_ID_REF_RE.finditer(text):
        number = int(match.group(1))
        for index, story in enumerate(stories):
            if story.id.lower() == f"story-{number:03d}" or story.id.lower() == match.group(0).lower():
                indices.add(index)

    for match in STORY_NUMBER_REF_RE.finditer(text):
        index = int(match.group(1)) - 1
        if 0 <= index < len(stories):
            indices.add(index)

    if len(indices) == 1:
        return indices.pop()
    return None
