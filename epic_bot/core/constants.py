"""
System-wide constants for Epic Bot.
"""

from enum import Enum


# =============================================================================
# Enums
# =============================================================================


class ConversationState(str, Enum):
    """Nodes of the conversation state machine."""

    Q1 = "Q1"
    Q2 = "Q2"
    Q3 = "Q3"
    GENERATING = "GENERATING"
    APPROVAL = "APPROVAL"
    REFINING = "REFINING"
    REVIEWING = "REVIEWING"
    REVIEW_APPROVAL = "REVIEW_APPROVAL"
    INTERACTIVE_MODE = "INTERACTIVE_MODE"
    STORY_FOCUSED = "STORY_FOCUSED"
    DELETE_CONFIRMATION = "DELETE_CONFIRMATION"


class AnswerSlot(str, Enum):
    """The three intake questions."""

    USERS = "users"
    PROBLEM = "problem"
    TECH_STACK = "tech_stack"


# =============================================================================
# API Constants
# =============================================================================

API_VERSION = "v1"
API_PREFIX = f"/api/{API_VERSION}"
SLACK_PREFIX = "/slack"

# Slash commands
COMMAND_START_EPIC = "/story"
COMMAND_DELETE_EPIC = "/delete-epic"
COMMAND_REVIEW_EPIC = "/review-epic"

# Interactive picker
REVIEW_PICKER_ACTION_ID = "review_epic_select"

# Message subtypes that still carry a user reply
HANDLED_MESSAGE_SUBTYPES = frozenset({"thread_broadcast"})

# =============================================================================
# Conversation Constants
# =============================================================================

QUESTION_ORDER = {
    ConversationState.Q1: AnswerSlot.USERS,
    ConversationState.Q2: AnswerSlot.PROBLEM,
    ConversationState.Q3: AnswerSlot.TECH_STACK,
}

QUESTION_PROMPTS = {
    AnswerSlot.USERS: 'Q1: Who is this for? (e.g., "students", "instructors and students")',
    AnswerSlot.PROBLEM: "Q2: What problem does it solve?",
    AnswerSlot.TECH_STACK: 'Q3: Tech stack? (e.g., "React, Node, Postgres")',
}

SAME_KEYWORD = "same"
REVIEW_KEYWORD = "review"
REFINE_KEYWORD = "refine"
EXIT_KEYWORD = "exit"
DONE_KEYWORD = "done"
OVERVIEW_KEYWORD = "overview"
NEXT_KEYWORD = "next"
PREV_KEYWORD = "prev"
BACK_KEYWORD = "back"
ALL_KEYWORD = "all"
FORCED_APPROVAL = "Y"

BARE_REJECTIONS = frozenset({"n", "no", "nope", "nah"})

# =============================================================================
# Identifier formats
# =============================================================================

STORY_ID_FORMAT = "story-{number:03d}"
EPIC_ID_PREFIX = "epic-"

# =============================================================================
# Tracker Constants
# =============================================================================

METADATA_MARKER = "epic-bot-metadata"
MAX_TRACKER_PAGE_SIZE = 100

# =============================================================================
# Cache Keys
# =============================================================================

CACHE_PREFIX = "epic_bot"
ANSWERS_CACHE_KEY = f"{CACHE_PREFIX}:answers:{{user_id}}"
