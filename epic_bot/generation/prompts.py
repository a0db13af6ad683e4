"""
Prompt templates for story generation, refinement and review.
"""

import json
from dataclasses import dataclass
from typing import Optional

from epic_bot.domain.epic import Epic
from epic_bot.domain.story import Story


@dataclass
class StoryContext:
    """Everything the text model needs to know about the epic being written."""

    description: str
    users: str
    problem: str
    tech_stack: str
    repo_context: Optional[str] = None


STORY_FORMAT = """1. [Title]
   As a [user], I want to [action] so that [benefit]
   - [acceptance criterion 1]
   - [acceptance criterion 2]"""

PROMPTS = {
    "generate": """You are helping students create user stories for their project.

Epic: {description}
Users: {users}
Problem: {problem}
Tech Stack: {tech_stack}{repo_section}

Generate 4-6 user stories that break down this epic. Use the repository context above to ensure stories align with the existing project structure, conventions, and goals.

Format each story exactly like this:
{story_format}

2. [Next story...]

Keep stories small with 1-2 suggested acceptance criteria each. Make acceptance criteria specific and testable. Students will add more criteria later.""",

    "refine": """You previously generated these stories:

{existing_stories}

The user wants changes: "{feedback}"

Generate the updated list of stories in the same format:
{story_format}
   - [acceptance criterion 3]
   - [acceptance criterion 4]

Keep stories small with 3-4 suggested acceptance criteria each. Make sure stories are focused, testable, and address all the requested changes.""",

    "review": """Review this epic for quality. Keep feedback brief and actionable.

Epic: {epic_json}

Check:
1. Are stories small and focused?
2. Do stories have clear user value? ("so that" clause)
3. Are there obvious missing stories? (error handling, edge cases)
4. Are the suggested acceptance criteria (1-2 per story) specific and testable?

Format your response as:
✅ Good:
- [what's good]

⚠️ Issues:
1. [issue 1]
2. [issue 2]
3. [issue 3]

IMPORTANT: Number the issues (1, 2, 3, etc.) instead of using bullet points (-).
When an issue is about one specific story, mention it by id (e.g. story-002).

Keep it under 10 lines total.""",

    "refine_one": """You are helping refine a user story.

Epic context: {description}
Users: {users}
Problem: {problem}
Tech Stack: {tech_stack}

Current story:
Title: {title}
Story: {story}
Acceptance Criteria:
{criteria}

User request: "{instruction}"

Provide the updated story in this exact format:
Title: [updated title]
Story: [As a user, I want to... so that...]
Acceptance Criteria:
- [criterion 1]
- [criterion 2]
- [criterion 3]

Keep it focused and testable.""",
}


def _render_stories(stories: list[Story]) -> str:
    blocks = []
    for number, story in enumerate(stories, start=1):
        criteria = "\n".join(f"   - {c}" for c in story.acceptance_criteria)
        blocks.append(f"{number}. {story.title}\n   {story.story}\n   Acceptance Criteria:\n{criteria}")
    return "\n\n".join(blocks)


def story_generation_prompt(context: StoryContext, excerpt_chars: int = 3000) -> str:
    repo_section = ""
    if context.repo_context:
        repo_section = (
            f"\n\nRepository Context (from README.md):\n{context.repo_context[:excerpt_chars]}\n"
        )
    return PROMPTS["generate"].format(
        description=context.description,
        users=context.users,
        problem=context.problem,
        tech_stack=context.tech_stack,
        repo_section=repo_section,
        story_format=STORY_FORMAT,
    )


def story_refinement_prompt(stories: list[Story], feedback: str) -> str:
    return PROMPTS["refine"].format(
        existing_stories=_render_stories(stories),
        feedback=feedback,
        story_format=STORY_FORMAT,
    )


def review_prompt(epic: Epic) -> str:
    """Review prompt embedding the epic document as indented JSON."""
    epic_json = json.dumps(epic.to_document(), indent=2, ensure_ascii=False)
    return PROMPTS["review"].format(epic_json=epic_json)


def single_story_prompt(story: Story, instruction: str, context: StoryContext) -> str:
    return PROMPTS["refine_one"].format(
        description=context.description,
        users=context.users,
        problem=context.problem,
        tech_stack=context.tech_stack,
        title=story.title,
        story=story.story,
        criteria="\n".join(f"- {c}" for c in story.acceptance_criteria),
        instruction=instruction,
    )
