"""
Transition table of the conversation.

``decide`` maps (session, event) to a Transition: the effects to run and the
state to land in. It never mutates the session and performs no I/O, so every
row of the table can be asserted without a chat transport or any backend.
The Conversation Engine runs the effects and commits the state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from epic_bot.core.constants import (
    BACK_KEYWORD,
    DONE_KEYWORD,
    EXIT_KEYWORD,
    FORCED_APPROVAL,
    NEXT_KEYWORD,
    OVERVIEW_KEYWORD,
    PREV_KEYWORD,
    QUESTION_ORDER,
    REFINE_KEYWORD,
    REVIEW_KEYWORD,
    SAME_KEYWORD,
    AnswerSlot,
    ConversationState,
)
from epic_bot.domain.session import Answers, Session
from epic_bot.parsing import find_referenced_story, parse_issue_selection, select_issues

State = ConversationState


class EffectKind(str, Enum):
    """Side effects requested by a transition, run in order by the engine."""

    REPLY = "reply"
    STORE_ANSWER = "store_answer"
    ASK_QUESTION = "ask_question"
    CACHE_ANSWERS = "cache_answers"
    GENERATE = "generate"
    SAVE_EPIC = "save_epic"
    PUBLISH_CREATE = "publish_create"
    PUBLISH_UPDATE_ALL = "publish_update_all"
    PUBLISH_UPDATE_ONE = "publish_update_one"
    RUN_REVIEW = "run_review"
    RECORD_FEEDBACK = "record_feedback"
    COUNT_REFINEMENT = "count_refinement"
    REFINE_ALL = "refine_all"
    REFINE_ONE = "refine_one"
    SHOW_MENU = "show_menu"
    SHOW_OVERVIEW = "show_overview"
    FOCUS = "focus"
    MOVE_CURSOR = "move_cursor"
    CLOSE_GROUPING = "close_grouping"
    FORCE = "force"


@dataclass(frozen=True)
class Effect:
    kind: EffectKind
    payload: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.payload[key]


def effect(kind: EffectKind, **payload: Any) -> Effect:
    return Effect(kind=kind, payload=payload)


@dataclass(frozen=True)
class UserInput:
    """Free text typed by the user in the thread."""

    text: str


@dataclass(frozen=True)
class ForcedInput:
    """Input injected by the engine itself, never typed by a user."""

    text: str = FORCED_APPROVAL


Event = Union[UserInput, ForcedInput]


@dataclass
class Transition:
    """
    Outcome of one decision.

    Attributes:
        trigger: Short label used in logs
        effects: Effects to run, in order
        next_state: State after all effects succeed; None keeps the current one
        interim_state: State held while the effects run
        on_error_state: State after a failed effect; None restores the
            state the session was in before the transition
        end: Remove the session once the effects succeed
        end_on_error: Remove the session even when an effect fails
    """

    trigger: str
    effects: list[Effect] = field(default_factory=list)
    next_state: Optional[ConversationState] = None
    interim_state: Optional[ConversationState] = None
    on_error_state: Optional[ConversationState] = None
    end: bool = False
    end_on_error: bool = False

    @property
    def forces(self) -> bool:
        return any(e.kind == EffectKind.FORCE for e in self.effects)


# =============================================================================
# Replies that need no data from the engine
# =============================================================================

MSG_WHAT_TO_CHANGE = "What would you like to change?"
MSG_WHAT_TO_FIX = "What should I fix?"
MSG_MAX_REFINEMENTS = "Maximum refinements reached. Proceeding with current stories..."
MSG_DELETE_CANCELLED = "❌ Deletion cancelled."
MSG_EXIT_UNPUBLISHED = "👋 Finished without publishing. The epic is still saved locally."
MSG_NO_MATCHING_ISSUES = (
    "No review issues match that selection. Reply with issue numbers from the "
    "review (e.g. `1,3`) or `all`."
)
MSG_INVALID_COMMAND = (
    "Invalid command. Reply with a story number, `overview` to see all stories, "
    "or `done` to finish."
)
MSG_FIRST_STORY = "Already at the first story."
MSG_LAST_STORY = "Already at the last story."
MSG_PUBLISH_OR_EXIT = (
    "This epic has not been published yet. Reply `Y` to publish it to GitHub or "
    "`exit` to finish without publishing."
)
MSG_REVIEW_OR_PUBLISH = (
    "Done editing. Reply `review` for an AI review first, or `Y` to publish to GitHub now."
)


def _is_yes(text: str) -> bool:
    return text.startswith("y")


def _publish_effects(session: Session) -> list[Effect]:
    """Create on first publish; update one or all issues afterwards."""
    if not session.is_published:
        return [effect(EffectKind.SAVE_EPIC), effect(EffectKind.PUBLISH_CREATE)]
    modified = session.modified_story_indices or set()
    if len(modified) == 1:
        (index,) = modified
        return [effect(EffectKind.SAVE_EPIC), effect(EffectKind.PUBLISH_UPDATE_ONE, index=index)]
    return [effect(EffectKind.SAVE_EPIC), effect(EffectKind.PUBLISH_UPDATE_ALL)]


# =============================================================================
# Per-state rules
# =============================================================================


def _question(session: Session, text: str, raw: str, cached: Optional[Answers]) -> Transition:
    slot: AnswerSlot = QUESTION_ORDER[session.state]
    cached_value = cached.get(slot) if cached else None

    if text == SAME_KEYWORD and cached_value is not None:
        value, trigger = cached_value, f"{slot.value}:same"
    else:
        value, trigger = raw, f"{slot.value}:answer"

    store = effect(EffectKind.STORE_ANSWER, slot=slot, value=value)

    if session.state == State.Q1:
        return Transition(trigger, [store, effect(EffectKind.ASK_QUESTION, slot=AnswerSlot.PROBLEM)], State.Q2)
    if session.state == State.Q2:
        return Transition(trigger, [store, effect(EffectKind.ASK_QUESTION, slot=AnswerSlot.TECH_STACK)], State.Q3)
    return Transition(
        trigger,
        [store, effect(EffectKind.CACHE_ANSWERS), effect(EffectKind.GENERATE)],
        next_state=State.APPROVAL,
        interim_state=State.GENERATING,
        on_error_state=State.GENERATING,
    )


def _generating(session: Session) -> Transition:
    return Transition(
        "retry_generation",
        [effect(EffectKind.GENERATE)],
        next_state=State.APPROVAL,
        on_error_state=State.GENERATING,
    )


def _approval(session: Session, text: str, raw: str) -> Transition:
    if _is_yes(text):
        return Transition("approve", _publish_effects(session), end=True)
    if text == REVIEW_KEYWORD:
        return Transition(
            "review",
            [effect(EffectKind.SAVE_EPIC), effect(EffectKind.RUN_REVIEW)],
            next_state=State.REVIEW_APPROVAL,
            interim_state=State.REVIEWING,
        )
    if text == REFINE_KEYWORD:
        return Transition(
            "interactive",
            [effect(EffectKind.SAVE_EPIC), effect(EffectKind.SHOW_MENU)],
            next_state=State.INTERACTIVE_MODE,
        )
    if text == EXIT_KEYWORD:
        return Transition(
            "exit",
            [effect(EffectKind.SAVE_EPIC), effect(EffectKind.REPLY, text=MSG_EXIT_UNPUBLISHED)],
            end=True,
        )
    return Transition(
        "reject",
        [
            effect(EffectKind.RECORD_FEEDBACK, text=raw),
            effect(EffectKind.REPLY, text=MSG_WHAT_TO_CHANGE),
        ],
        next_state=State.REFINING,
    )


def _refining(session: Session, raw: str) -> Transition:
    return Transition(
        "feedback",
        [effect(EffectKind.REFINE_ALL, feedback=raw, combine_pending=True)],
        next_state=State.APPROVAL,
        interim_state=State.GENERATING,
    )


def _reviewing(session: Session) -> Transition:
    return Transition(
        "retry_review",
        [effect(EffectKind.SAVE_EPIC), effect(EffectKind.RUN_REVIEW)],
        next_state=State.REVIEW_APPROVAL,
    )


def _review_approval(session: Session, text: str, raw: str, max_refinements: int) -> Transition:
    selection = parse_issue_selection(text)
    if selection is not None:
        selected = select_issues(session.review_issues, selection)
        if not selected:
            return Transition("select:none", [effect(EffectKind.REPLY, text=MSG_NO_MATCHING_ISSUES)])

        if len(selected) == 1:
            index = find_referenced_story(selected[0].text, session.stories)
            if index is not None:
                return Transition(
                    "select:one_story",
                    [effect(EffectKind.REFINE_ONE, index=index, instruction=selected[0].text, track=True)],
                    next_state=State.REVIEW_APPROVAL,
                )

        feedback = "Address these review issues:\n" + "\n".join(
            f"{issue.number}. {issue.text}" for issue in selected
        )
        return Transition(
            "select:bulk",
            [effect(EffectKind.REFINE_ALL, feedback=feedback, combine_pending=False)],
            next_state=State.REVIEW_APPROVAL,
        )

    if _is_yes(text):
        return Transition("approve", _publish_effects(session), end=True)

    if text == REFINE_KEYWORD:
        return Transition("interactive", [effect(EffectKind.SHOW_MENU)], next_state=State.INTERACTIVE_MODE)

    if session.refinement_count >= max_refinements:
        return Transition(
            "max_refinements",
            [effect(EffectKind.REPLY, text=MSG_MAX_REFINEMENTS), effect(EffectKind.FORCE)],
            next_state=State.REVIEW_APPROVAL,
        )
    return Transition(
        "reject",
        [
            effect(EffectKind.COUNT_REFINEMENT),
            effect(EffectKind.RECORD_FEEDBACK, text=raw),
            effect(EffectKind.REPLY, text=MSG_WHAT_TO_FIX),
        ],
        next_state=State.REFINING,
    )


def _interactive(session: Session, text: str) -> Transition:
    if text == DONE_KEYWORD:
        if session.is_existing_epic and session.is_published:
            return Transition("done:update", _publish_effects(session), end=True)
        if session.is_existing_epic:
            return Transition(
                "done:unpublished",
                [effect(EffectKind.SAVE_EPIC), effect(EffectKind.REPLY, text=MSG_PUBLISH_OR_EXIT)],
                next_state=State.APPROVAL,
            )
        if session.has_been_reviewed:
            return Transition("done:publish", _publish_effects(session), end=True)
        return Transition(
            "done:offer_review",
            [effect(EffectKind.SAVE_EPIC), effect(EffectKind.REPLY, text=MSG_REVIEW_OR_PUBLISH)],
            next_state=State.APPROVAL,
        )

    if text == OVERVIEW_KEYWORD:
        return Transition("overview", [effect(EffectKind.SHOW_OVERVIEW), effect(EffectKind.SHOW_MENU)])

    if text.isdigit():
        number = int(text)
        if 1 <= number <= len(session.stories):
            return Transition("focus", [effect(EffectKind.FOCUS, index=number - 1)], State.STORY_FOCUSED)

    return Transition("invalid", [effect(EffectKind.REPLY, text=MSG_INVALID_COMMAND)])


def _story_focused(session: Session, text: str, raw: str) -> Transition:
    index = session.current_story_index or 0

    if text == NEXT_KEYWORD:
        if index + 1 >= len(session.stories):
            return Transition("next:boundary", [effect(EffectKind.REPLY, text=MSG_LAST_STORY)])
        return Transition("next", [effect(EffectKind.MOVE_CURSOR, delta=1)])

    if text == PREV_KEYWORD:
        if index <= 0:
            return Transition("prev:boundary", [effect(EffectKind.REPLY, text=MSG_FIRST_STORY)])
        return Transition("prev", [effect(EffectKind.MOVE_CURSOR, delta=-1)])

    if text == BACK_KEYWORD:
        return Transition("back", [effect(EffectKind.SHOW_MENU)], next_state=State.INTERACTIVE_MODE)

    return Transition(
        "refine_story",
        [effect(EffectKind.REFINE_ONE, index=index, instruction=raw, track=True)],
    )


def _delete_confirmation(session: Session, text: str) -> Transition:
    if _is_yes(text):
        return Transition(
            "confirm_delete",
            [effect(EffectKind.CLOSE_GROUPING, number=session.delete_milestone_number)],
            end=True,
            end_on_error=True,
        )
    return Transition("cancel_delete", [effect(EffectKind.REPLY, text=MSG_DELETE_CANCELLED)], end=True)


def decide(
    session: Session,
    event: Event,
    cached: Optional[Answers] = None,
    max_refinements: int = 2,
) -> Transition:
    """
    Decide what an input does in the session's current state.

    Args:
        session: Session as it is before the input
        event: User input, or a forced input raised by a FORCE effect
        cached: The user's previously cached answers, if any
        max_refinements: Rejections allowed in REVIEW_APPROVAL before
            publishing is forced

    Returns:
        Transition to apply
    """
    raw = event.text.strip()
    text = raw.lower()
    state = session.state

    if isinstance(event, ForcedInput):
        if state != State.REVIEW_APPROVAL:
            raise ValueError(f"Forced input is only valid in {State.REVIEW_APPROVAL.value}, not {state.value}")
        return Transition("forced_approve", _publish_effects(session), end=True)

    if state in QUESTION_ORDER:
        return _question(session, text, raw, cached)
    if state == State.GENERATING:
        return _generating(session)
    if state == State.APPROVAL:
        return _approval(session, text, raw)
    if state == State.REFINING:
        return _refining(session, raw)
    if state == State.REVIEWING:
        return _reviewing(session)
    if state == State.REVIEW_APPROVAL:
        return _review_approval(session, text, raw, max_refinements)
    if state == State.INTERACTIVE_MODE:
        return _interactive(session, text)
    if state == State.STORY_FOCUSED:
        return _story_focused(session, text, raw)
    if state == State.DELETE_CONFIRMATION:
        return _delete_confirmation(session, text)

    raise ValueError(f"Unhandled state: {state}")
