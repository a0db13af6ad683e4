"""
Conversion between epics/stories and GitHub milestone and issue fields.

The milestone description carries a human-readable overview followed by a
hidden HTML comment holding the structured metadata as JSON, so an epic can
be rebuilt from the tracker alone. Descriptions written before the comment
existed are parsed from the visible fields instead.
"""

import json
import re
from typing import Any, Optional

from epic_bot.core.constants import METADATA_MARKER
from epic_bot.core.logging import get_logger
from epic_bot.domain.story import Story, story_id_for

logger = get_logger(__name__)

METADATA_RE = re.compile(rf"<!--\s*{METADATA_MARKER}\s*\n(.*?)\n\s*-->", re.DOTALL)
USERS_RE = re.compile(r"\*\*Users:\*\*[ \t]*(.*)")
TECH_STACK_RE = re.compile(r"\*\*Tech Stack:\*\*[ \t]*(.*)")
PROBLEM_RE = re.compile(r"## Overview[ \t]*\n(.*?)(?=\n\*\*Users:\*\*)", re.DOTALL)
ISSUE_TITLE_RE = re.compile(r"^(story-\d+):\s*(.+)", re.IGNORECASE)
CRITERIA_SECTION_RE = re.compile(r"## Acceptance Criteria[ \t]*\n(.*?)(?=\n##|\Z)", re.DOTALL)
CHECKBOX_RE = re.compile(r"^\s*- \[[ xX]\]\s*(.+)$", re.MULTILINE)
EPIC_TITLE_RE = re.compile(r"^(epic-[\w-]+):\s*(.*)$")


def format_milestone_description(users: str, problem: str, tech_stack: str) -> str:
    metadata = json.dumps(
        {"users": users, "problem": problem, "tech_stack": tech_stack},
        ensure_ascii=False,
    )
    return (
        f"## Overview\n{problem}\n\n"
        f"**Users:** {users}\n"
        f"**Tech Stack:** {tech_stack}\n\n"
        f"---\n*Created with Epic Bot*\n\n"
        f"<!-- {METADATA_MARKER}\n{metadata}\n-->"
    )


def parse_milestone_description(description: Optional[str]) -> dict[str, str]:
    """
    Recover {users, problem, tech_stack} from a milestone description.

    The embedded JSON comment wins; otherwise the visible layout is scraped.
    Missing fields come back as empty strings.
    """
    empty = {"users": "", "problem": "", "tech_stack": ""}
    if not description:
        return empty

    match = METADATA_RE.search(description)
    if match:
        try:
            parsed = json.loads(match.group(1))
            return {key: str(parsed.get(key) or "") for key in empty}
        except (json.JSONDecodeError, AttributeError) as e:
            logger.warning("Invalid embedded metadata, using legacy parse", error=str(e))

    users = USERS_RE.search(description)
    tech_stack = TECH_STACK_RE.search(description)
    problem = PROBLEM_RE.search(description)
    return {
        "users": users.group(1).strip() if users else "",
        "problem": problem.group(1).strip() if problem else "",
        "tech_stack": tech_stack.group(1).strip() if tech_stack else "",
    }


def format_issue_title(story: Story) -> str:
    return f"{story.id}: {story.title}"


def format_issue_body(story: Story) -> str:
    criteria = "\n".join(f"- [ ] {c}" for c in story.acceptance_criteria)
    return f"{story.story}\n\n## Acceptance Criteria\n{criteria}"


def parse_issue_to_story(issue: dict[str, Any]) -> Story:
    """Rebuild a Story from an issue, keeping the issue linkage."""
    body = issue.get("body") or ""
    raw_title = issue.get("title") or ""

    title_match = ISSUE_TITLE_RE.match(raw_title)
    if title_match:
        story_id, title = title_match.group(1).lower(), title_match.group(2).strip()
    else:
        story_id, title = story_id_for(issue["number"]), raw_title

    heading = body.find("\n##")
    if body.startswith("##"):
        narrative = ""
    else:
        narrative = (body if heading == -1 else body[:heading]).strip()

    criteria: list[str] = []
    section = CRITERIA_SECTION_RE.search(body)
    if section:
        criteria = [m.group(1).strip() for m in CHECKBOX_RE.finditer(section.group(1))]

    return Story(
        id=story_id,
        title=title,
        story=narrative,
        acceptance_criteria=criteria,
        github_issue_number=issue["number"],
        github_issue_url=issue.get("html_url"),
    )


def split_milestone_title(title: str) -> tuple[Optional[str], str]:
    """Split ``epic-...: Title`` into (epic id, title); id is None if absent."""
    match = EPIC_TITLE_RE.match(title or "")
    if match:
        return match.group(1), match.group(2).strip()
    return None, title or ""


def story_sort_key(story: Story) -> tuple[int, int]:
    match = re.match(r"story-(\d+)$", story.id)
    number = int(match.group(1)) if match else 10**6
    return number, story.github_issue_number or 0
