"""
Unit tests for the story parsers.
"""

from epic_bot.parsing import parse_single_story, parse_stories

from tests.conftest import GENERATED_TEXT


class TestParseStories:
    """Tests for multi-story parsing."""

    def test_numbered_headings_yield_ordered_ids(self) -> None:
        text = (
            "1. Alpha\n"
            "As a user, I want alpha so that it works\n"
            "- alpha works\n"
            "2. Beta\n"
            "As a user, I want beta so that it works\n"
            "- beta works\n"
        )

        stories = parse_stories(text)

        assert [s.id for s in stories] == ["story-001", "story-002"]
        assert [s.title for s in stories] == ["Alpha", "Beta"]
        assert stories[0].acceptance_criteria == ["alpha works"]

    def test_narrative_continuation_joined_with_space(self) -> None:
        stories = parse_stories(GENERATED_TEXT)

        assert len(stories) == 2
        assert stories[0].story == (
            "As a student, I want to log in with my school account so that I can see my courses"
        )
        assert stories[0].acceptance_criteria == [
            "Login succeeds with valid credentials",
            "Error shown for invalid credentials",
        ]

    def test_markdown_heading_variants(self) -> None:
        text = (
            "**1. Bold title**\n"
            "As an admin, I want control\n"
            "## 2. Hash title\n"
            "As a guest, I want access\n"
            "[3. Bracket title]\n"
            "As a user, I want things\n"
        )

        stories = parse_stories(text)

        assert [s.title for s in stories] == ["Bold title", "Hash title", "Bracket title"]
        assert stories[0].story == "As an admin, I want control"

    def test_checkbox_criteria_after_acceptance_header(self) -> None:
        text = (
            "1. Export\n"
            "As a teacher, I want to export grades\n"
            "Acceptance Criteria:\n"
            "- [ ] CSV download works\n"
            "- [x] Includes all students\n"
        )

        story = parse_stories(text)[0]

        assert story.story == "As a teacher, I want to export grades"
        assert story.acceptance_criteria == ["CSV download works", "Includes all students"]

    def test_ids_follow_detected_numbers(self) -> None:
        stories = parse_stories("4. Later\nAs a user, I want it\n- ok\n")

        assert stories[0].id == "story-004"

    def test_unrecognised_text_yields_empty_list(self) -> None:
        assert parse_stories("I could not come up with any stories, sorry.") == []

    def test_story_without_narrative_kept(self) -> None:
        story = parse_stories("1. Bare title\n- only a criterion\n")[0]

        assert story.story == ""
        assert story.acceptance_criteria == ["only a criterion"]


class TestParseSingleStory:
    """Tests for labeled single-story parsing."""

    def test_labeled_fields(self) -> None:
        text = (
            "Title: Reset password\n"
            "Story: As a user, I want to reset my password\n"
            "so that I can get back in\n"
            "Acceptance Criteria:\n"
            "- Email is sent\n"
            "- Link expires after an hour\n"
        )

        draft = parse_single_story(text)

        assert draft.title == "Reset password"
        assert draft.story == "As a user, I want to reset my password so that I can get back in"
        assert draft.acceptance_criteria == ["Email is sent", "Link expires after an hour"]

    def test_dash_lines_before_header_ignored(self) -> None:
        text = "Title: X\n- stray line\nAcceptance Criteria:\n- kept\n"

        assert parse_single_story(text).acceptance_criteria == ["kept"]

    def test_empty_response(self) -> None:
        draft = parse_single_story("")

        assert draft.title == ""
        assert draft.acceptance_criteria == []
