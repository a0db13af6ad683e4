"""
Line-oriented parser that turns generated text into Story records.

The generation backend is asked for a numbered list::

    1. [Title]
       As a [user], I want to [action] so that [benefit]
       - [acceptance criterion]

but nothing guarantees the shape of the reply, so parsing is best effort:

- a numbered heading (``1. Title``, ``**1. Title**``, ``## 1. Title``,
  ``[1. Title]``) starts a new story and flushes the previous one
- a line starting with "As a"/"As an" starts the narrative; following
  non-empty lines are appended with a single space until a criteria marker,
  an "Acceptance" header or the next heading
- a dash line, optionally with a ``[ ]`` checkbox, is an acceptance criterion
- anything else is dropped

Zero detected stories yields an empty list, never an error.
"""

import re

from epic_bot.core.logging import get_logger
from epic_bot.domain.story import Story, StoryDraft, story_id_for

logger = get_logger(__name__)

HEADING_RE = re.compile(r"^(?:#{1,6}\s*)?\*{0,2}\[?(\d+)\.\s*\]?\*{0,2}(.+)")
CRITERION_RE = re.compile(r"^\s*-\s*(?:\[\s*[xX]?\s*\]\s*)?(.+)")
TITLE_FIELD_RE = re.compile(r"^\s*(?:\*\*)?Title:(?:\*\*)?\s*(.+)", re.IGNORECASE)
STORY_FIELD_RE = re.compile(r"^\s*(?:\*\*)?Story:(?:\*\*)?\s*(.+)", re.IGNORECASE)
CRITERIA_HEADER_RE = re.compile(r"^\s*(?:#{1,6}\s*)?(?:\*\*)?Acceptance Criteria:?", re.IGNORECASE)


def _clean_title(raw: str) -> str:
    title = raw.replace("**", "").strip()
    return title.strip("[]").strip()


def _is_narrative_start(stripped: str) -> bool:
    return stripped.startswith("As a")


def _continues_narrative(stripped: str) -> bool:
    return bool(stripped) and "acceptance" not in stripped.lower() and not stripped.startswith("-")


def parse_stories(text: str) -> list[Story]:
    """
    Parse a multi-story generation response.

    Args:
        text: Full text of one generation call

    Returns:
        Stories in the order they appear, ids derived from their numbers
    """
    stories: list[Story] = []
    current: Story | None = None
    collecting_narrative = False

    for line in text.splitlines():
        stripped = line.strip()

        heading = HEADING_RE.match(line)
        if heading:
            if current is not None:
                stories.append(current)
            current = Story(
                id=story_id_for(int(heading.group(1))),
                title=_clean_title(heading.group(2)),
            )
            collecting_narrative = False
            continue

        if current is None:
            continue

        if _is_narrative_start(stripped):
            current.story = stripped
            collecting_narrative = True
            continue

        if collecting_narrative and _continues_narrative(stripped):
            current.story += " " + stripped
            continue

        if "acceptance" in stripped.lower() and not stripped.startswith("-"):
            collecting_narrative = False
            continue

        criterion = CRITERION_RE.match(line)
        if criterion:
            collecting_narrative = False
            current.acceptance_criteria.append(criterion.group(1).strip())

    if current is not None:
        stories.append(current)

    if not stories:
        logger.warning("No stories parsed from generated text", preview=text[:1000])
    else:
        logger.debug("Parsed stories", count=len(stories))

    return stories


def parse_single_story(text: str) -> StoryDraft:
    """
    Parse a single-story refinement response with labeled fields.

    Expected shape::

        Title: ...
        Story: As a ...
        Acceptance Criteria:
        - ...
    """
    draft = StoryDraft()
    in_criteria = False
    collecting_narrative = False

    for line in text.splitlines():
        stripped = line.strip()

        title = TITLE_FIELD_RE.match(line)
        if title:
            draft.title = _clean_title(title.group(1))
            continue

        narrative = STORY_FIELD_RE.match(line)
        if narrative:
            draft.story = narrative.group(1).strip()
            collecting_narrative = True
            continue

        if _is_narrative_start(stripped):
            draft.story = stripped
            collecting_narrative = True
            continue

        if collecting_narrative and _continues_narrative(stripped):
            draft.story += " " + stripped
            continue

        if CRITERIA_HEADER_RE.match(line):
            in_criteria = True
            collecting_narrative = False
            continue

        if in_criteria:
            criterion = CRITERION_RE.match(line)
            if criterion:
                draft.acceptance_criteria.append(criterion.group(1).strip())

    return draft
