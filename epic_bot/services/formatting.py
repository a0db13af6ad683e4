"""
Plain-text rendering of stories, menus and publish results for chat replies.
"""

from typing import Optional

from epic_bot.domain.story import Story
from epic_bot.tracker.models import GroupingSummary, ItemRef, PublishResult, TrackerIssue


def format_story(story: Story, number: int) -> str:
    criteria = "\n".join(f"   - {c}" for c in story.acceptance_criteria)
    text = f"{number}. {story.title}\n   {story.story}"
    return f"{text}\n{criteria}" if criteria else text


def format_stories(stories: list[Story]) -> str:
    return "\n\n".join(format_story(story, number) for number, story in enumerate(stories, start=1))


def approval_prompt() -> str:
    return (
        "Look good? Reply `Y` to publish to GitHub, `review` for an AI review, "
        "`refine` to edit stories one by one, or tell me what to change."
    )


def review_approval_prompt(published: bool, has_issues: bool) -> str:
    action = "Update GitHub issues" if published else "Create GitHub issues"
    parts = [f"{action}? [Y/n]"]
    if has_issues:
        parts.append("Reply with issue numbers to fix (e.g. `1,3` or `all`).")
    parts.append("Reply `refine` to edit stories one by one.")
    return "\n".join(parts)


def interactive_menu(stories: list[Story]) -> str:
    lines = ["✏️ *Interactive editing*", ""]
    lines.extend(f"{number}. {story.title}" for number, story in enumerate(stories, start=1))
    lines.extend(
        [
            "",
            f"Reply with a story number (1-{len(stories)}) to edit it, "
            "`overview` to see all stories, or `done` to finish.",
        ]
    )
    return "\n".join(lines)


def focused_story(story: Story, index: int, total: int) -> str:
    """Story card shown while a single story is focused."""
    criteria = "\n".join(f"- {c}" for c in story.acceptance_criteria) or "- (none)"
    link = f"\nGitHub: #{story.github_issue_number}" if story.is_published else ""
    return (
        f"📌 *Story {index + 1} of {total}* ({story.id})\n"
        f"*{story.title}*\n{story.story}\n\n"
        f"Acceptance Criteria:\n{criteria}{link}\n\n"
        "Describe a change to apply to this story, or reply `next`, `prev` or `back`."
    )


def publish_summary(result: PublishResult, created: bool) -> str:
    verb = "Created" if created else "Updated"
    story_list = "\n".join(f"- #{child.number}: {child.title}" for child in result.children)
    url = f"\n{result.grouping.url}" if result.grouping.url else ""
    return (
        f"✅ {verb} epic #{result.grouping.number}: {result.grouping.title}{url}\n\n"
        f"Stories:\n{story_list or '(none)'}\n\nDone! 🎉"
    )


def single_update_summary(ref: ItemRef) -> str:
    url = f"\n{ref.url}" if ref.url else ""
    return f"✅ Updated story issue #{ref.number}: {ref.title}{url}\n\nDone! 🎉"


def delete_confirmation(number: int, title: str, open_children: list[TrackerIssue]) -> str:
    story_list = "\n".join(f"- #{issue.number}: {issue.title}" for issue in open_children)
    return (
        f"⚠️ Confirm deletion of epic #{number}: {title}\n\n"
        f"*Stories to be closed ({len(open_children)}):*\n{story_list or '(none)'}\n\n"
        "Type `Y` to confirm deletion, or anything else to cancel."
    )


def question_prompt(prompt: str, cached_value: Optional[str]) -> str:
    if not cached_value:
        return prompt
    return f'{prompt}\n\n_Last time you said: "{cached_value}". Reply `same` to reuse it._'


def picker_options(groupings: list[GroupingSummary]) -> list[dict]:
    """Static-select options for the review picker (Slack caps labels at 75 chars)."""
    return [
        {
            "text": {"type": "plain_text", "text": f"#{g.number}: {g.title}"[:75]},
            "value": str(g.number),
        }
        for g in groupings[:100]
    ]
