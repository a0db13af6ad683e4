"""
Generation Gateway: the four text-model operations the conversation needs.
"""

from epic_bot.core.config import AnthropicSettings
from epic_bot.core.logging import get_logger
from epic_bot.domain.epic import Epic
from epic_bot.domain.story import Story, StoryDraft
from epic_bot.generation.client import AnthropicClient
from epic_bot.generation.prompts import (
    StoryContext,
    review_prompt,
    single_story_prompt,
    story_generation_prompt,
    story_refinement_prompt,
)
from epic_bot.parsing import parse_single_story, parse_stories

logger = get_logger(__name__)


class GenerationGateway:
    """
    Builds prompts, calls the text model and structures the replies.

    Failures surface as GenerationError from the client.
    """

    def __init__(
        self,
        client: AnthropicClient,
        config: AnthropicSettings,
        excerpt_chars: int = 3000,
    ) -> None:
        self.client = client
        self.config = config
        self.excerpt_chars = excerpt_chars

    async def _stories_from(self, prompt: str, operation: str) -> list[Story]:
        attempts = 1 + max(self.config.empty_result_retries, 0)
        stories: list[Story] = []
        for attempt in range(1, attempts + 1):
            text = await self.client.complete(prompt, max_tokens=self.config.max_tokens)
            stories = parse_stories(text)
            if stories:
                break
            logger.warning(
                "No stories parsed from response",
                operation=operation,
                attempt=attempt,
                attempts=attempts,
            )
        logger.info("Stories produced", operation=operation, count=len(stories))
        return stories

    async def generate_stories(self, context: StoryContext) -> list[Story]:
        """
        Generate a fresh set of stories for an epic.

        Returns:
            Parsed stories; may be empty when the reply could not be parsed
            even after the configured extra attempts
        """
        prompt = story_generation_prompt(context, excerpt_chars=self.excerpt_chars)
        return await self._stories_from(prompt, "generate")

    async def refine_stories(
        self,
        context: StoryContext,
        stories: list[Story],
        feedback: str,
    ) -> list[Story]:
        """Regenerate the whole story set applying free-text feedback."""
        logger.debug("Refining stories", count=len(stories), feedback_chars=len(feedback))
        prompt = story_refinement_prompt(stories, feedback)
        return await self._stories_from(prompt, "refine")

    async def review_epic(self, epic: Epic) -> str:
        """Return the raw review text for an epic."""
        return await self.client.complete(review_prompt(epic), max_tokens=self.config.review_max_tokens)

    async def refine_one_story(
        self,
        story: Story,
        instruction: str,
        context: StoryContext,
    ) -> StoryDraft:
        text = await self.client.complete(
            single_story_prompt(story, instruction, context),
            max_tokens=self.config.review_max_tokens,
        )
        draft = parse_single_story(text)
        logger.info(
            "Story refined",
            story_id=story.id,
            criteria=len(draft.acceptance_criteria),
        )
        return draft

    async def close(self) -> None:
        await self.client.close()

