"""
Conversation Engine: owns the session registry and drives every conversation
through the transition table.

Each inbound turn for a session runs under that session's lock, so two quick
replies in one thread are handled one after the other while other threads
proceed independently. Failures inside a turn are reported back to the
thread and never propagate to the transport.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol

from epic_bot.core.config import SessionSettings
from epic_bot.core.constants import BARE_REJECTIONS, QUESTION_PROMPTS, AnswerSlot, ConversationState
from epic_bot.core.exceptions import EpicBotError, InvalidCommandError
from epic_bot.core.logging import LogContext, get_logger
from epic_bot.domain.epic import Epic, generate_epic_id
from epic_bot.domain.session import Answers, Session, utcnow
from epic_bot.domain.story import Story
from epic_bot.generation.gateway import GenerationGateway
from epic_bot.generation.prompts import StoryContext
from epic_bot.orchestration.state_machine import (
    Effect,
    EffectKind,
    Event,
    ForcedInput,
    Transition,
    UserInput,
    decide,
)
from epic_bot.parsing import extract_review_issues
from epic_bot.repositories.cache_repo import AnswerCache
from epic_bot.repositories.epic_repo import FileEpicRepository
from epic_bot.repositories.session_repo import InMemorySessionRepository
from epic_bot.services import formatting
from epic_bot.tracker.formatting import split_milestone_title
from epic_bot.tracker.gateway import TrackerGateway
from epic_bot.tracker.models import GroupingSummary, TrackerGrouping

logger = get_logger(__name__)

State = ConversationState


class ChatPort(Protocol):
    """What the engine needs from the chat platform."""

    async def post_message(self, channel: str, text: str, thread_ts: Optional[str] = None) -> str:
        ...

    async def post_ephemeral(self, channel: str, user: str, text: str) -> None:
        ...


class ConversationEngine:
    """
    Session registry plus the effect runner behind ``decide``.
    """

    def __init__(
        self,
        chat: ChatPort,
        generation: GenerationGateway,
        tracker: TrackerGateway,
        epic_repo: FileEpicRepository,
        sessions: Optional[InMemorySessionRepository] = None,
        answer_cache: Optional[AnswerCache] = None,
        config: Optional[SessionSettings] = None,
    ) -> None:
        self.chat = chat
        self.generation = generation
        self.tracker = tracker
        self.epic_repo = epic_repo
        self.sessions = sessions if sessions is not None else InMemorySessionRepository()
        self.answer_cache = answer_cache if answer_cache is not None else AnswerCache()
        self.config = config or SessionSettings()

        self._locks: dict[str, asyncio.Lock] = {}

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def _register(self, session: Session) -> Session:
        await self.sessions.create(session)
        logger.info(
            "Session started",
            session_id=session.id,
            state=session.state.value,
            user_id=session.user_id,
        )
        return session

    async def _end(self, session: Session) -> None:
        await self.sessions.delete(session.id)
        self._locks.pop(session.id, None)
        logger.info("Session ended", session_id=session.id, state=session.state.value)

    async def get_session(self, session_id: str) -> Optional[Session]:
        return await self.sessions.get(session_id)

    async def active_session_count(self) -> int:
        return len(self.sessions)

    async def sweep_stale_sessions(self, now: Optional[datetime] = None) -> int:
        """
        Evict sessions idle for longer than the retention window.

        Sessions whose turn is in progress are skipped and looked at again on
        the next sweep.

        Returns:
            Number of sessions removed
        """
        now = now or utcnow()
        cutoff = now - timedelta(seconds=self.config.retention_seconds)
        removed = 0

        for session_id in await self.sessions.find_stale(cutoff):
            lock = self._locks.get(session_id)
            if lock is not None and lock.locked():
                logger.debug("Skipping busy session", session_id=session_id)
                continue

            session = await self.sessions.get(session_id)
            if session is None or session.last_activity >= cutoff:
                continue

            if await self.sessions.delete(session_id):
                self._locks.pop(session_id, None)
                removed += 1
                logger.info(
                    "Cleaning up stale session",
                    session_id=session_id,
                    state=session.state.value,
                    last_activity=session.last_activity.isoformat(),
                )

        return removed

    # =========================================================================
    # Commands
    # =========================================================================

    async def start_epic(self, description: str, user_id: str, channel_id: str) -> Session:
        """
        Open a new epic conversation in its own thread and ask Q1.

        Raises:
            InvalidCommandError: If the description is empty
        """
        description = description.strip()
        if not description:
            raise InvalidCommandError(
                "Please provide a description: `/story Build a student dashboard`",
                command="/story",
            )

        root_ts = await self.chat.post_message(
            channel_id,
            f'📝 Creating epic: "{description}"\n\nI\'ll ask 3 quick questions.',
        )
        session = await self._register(
            Session(
                id=root_ts,
                state=State.Q1,
                description=description,
                user_id=user_id,
                channel_id=channel_id,
            )
        )
        async with self._lock_for(session.id):
            await self._ask(session, AnswerSlot.USERS)
        return session

    async def start_delete(self, milestone_number: int, user_id: str, channel_id: str) -> Optional[Session]:
        """
        Ask for confirmation before closing an epic on the tracker.

        Returns:
            The confirmation session, or None if the epic could not be fetched
        """
        try:
            grouping = await self.tracker.fetch_grouping_with_children(milestone_number)
        except EpicBotError as e:
            logger.warning("Epic fetch failed", milestone=milestone_number, error=str(e))
            await self.chat.post_ephemeral(
                channel_id, user_id, f"❌ Error fetching epic #{milestone_number}: {e.message}"
            )
            return None

        confirmation_ts = await self.chat.post_message(
            channel_id,
            formatting.delete_confirmation(grouping.number, grouping.title, grouping.open_children),
        )
        return await self._register(
            Session(
                id=confirmation_ts,
                state=State.DELETE_CONFIRMATION,
                description=grouping.title,
                user_id=user_id,
                channel_id=channel_id,
                delete_milestone_number=grouping.number,
                delete_milestone_title=grouping.title,
            )
        )

    async def _epic_for_grouping(self, grouping: TrackerGrouping, user_id: str) -> Epic:
        epic_id, _ = split_milestone_title(grouping.title)
        if epic_id is not None:
            local = await self.epic_repo.get(epic_id)
            if local is not None:
                if not local.is_published:
                    local.link(grouping.number, grouping.url)
                logger.info("Using local epic document", epic_id=local.id, milestone=grouping.number)
                return local
        return self.tracker.epic_from_grouping(grouping, created_by=user_id)

    async def start_review(self, milestone_number: int, user_id: str, channel_id: str) -> Optional[Session]:
        """
        Load a published epic and run a review on it in a new thread.

        Returns:
            The review session, or None if the epic could not be loaded
        """
        try:
            grouping = await self.tracker.fetch_grouping_with_children(milestone_number)
            epic = await self._epic_for_grouping(grouping, user_id)
            await self.epic_repo.save(epic)
        except EpicBotError as e:
            logger.warning("Epic load failed", milestone=milestone_number, error=str(e))
            await self.chat.post_ephemeral(
                channel_id, user_id, f"❌ Error loading epic #{milestone_number}: {e.message}"
            )
            return None

        root_ts = await self.chat.post_message(
            channel_id,
            f"🔍 Reviewing epic #{grouping.number}: {epic.title} ({len(epic.stories)} stories)",
        )
        session = await self._register(
            Session(
                id=root_ts,
                state=State.REVIEWING,
                description=epic.title,
                user_id=user_id,
                channel_id=channel_id,
                answers=Answers(users=epic.users, problem=epic.problem, tech_stack=epic.tech_stack),
                stories=epic.stories,
                epic=epic,
                is_existing_epic=True,
            )
        )
        session.epic.stories = session.stories

        async with self._lock_for(session.id):
            with LogContext(session_id=session.id, user_id=user_id):
                await self._process(session, UserInput(text=""))
        return session

    async def list_open_epics(self) -> list[GroupingSummary]:
        return await self.tracker.list_open_groupings()

    # =========================================================================
    # Inbound messages
    # =========================================================================

    async def handle_message(
        self,
        text: str,
        thread_id: Optional[str],
        user_id: str,
        is_bot: bool = False,
        message_id: Optional[str] = None,
    ) -> bool:
        """
        Route one chat message to its conversation.

        Args:
            text: Message text
            thread_id: Thread the message was posted in, if any
            user_id: Author
            is_bot: True for messages posted by bots (ignored)
            message_id: The message's own id

        Returns:
            True if the message belonged to an active conversation
        """
        if is_bot or not text or not text.strip():
            return False

        key = thread_id or message_id
        if not key or not await self.sessions.exists(key):
            return False

        async with self._lock_for(key):
            session = await self.sessions.get(key)
            if session is None:
                logger.debug("Session vanished before turn", session_id=key)
                return False

            with LogContext(session_id=key, user_id=user_id):
                session.touch()
                try:
                    await self._process(session, UserInput(text=text))
                except Exception as e:
                    logger.exception("Unhandled error in conversation turn", error=str(e))
                    await self._safe_reply(session, f"❌ Error: {e}")
        return True

    # =========================================================================
    # Turn processing
    # =========================================================================

    async def _process(self, session: Session, event: Event) -> None:
        cached = None
        if session.state in (State.Q1, State.Q2, State.Q3):
            cached = await self.answer_cache.get_answers(session.user_id)

        transition = decide(
            session,
            event,
            cached=cached,
            max_refinements=self.config.max_refinements,
        )
        previous = session.state
        target = transition.next_state or previous
        logger.info(
            f"{previous.value} -> {'END' if transition.end else target.value} ({transition.trigger})",
            from_state=previous.value,
            to_state=None if transition.end else target.value,
            trigger=transition.trigger,
        )

        if transition.interim_state is not None:
            session.state = transition.interim_state

        try:
            for item in transition.effects:
                await self._apply(session, item, transition)
        except Exception as e:
            logger.exception(
                "Transition failed",
                trigger=transition.trigger,
                state=previous.value,
                error=str(e),
            )
            await self._safe_reply(session, f"❌ Error: {e}")
            if transition.end_on_error:
                await self._end(session)
                return
            session.state = transition.on_error_state or previous
            await self.sessions.save(session)
            return

        if transition.end:
            await self._end(session)
            return

        session.state = target
        await self.sessions.save(session)

        if transition.forces:
            await self._process(session, ForcedInput())

    async def _apply(self, session: Session, item: Effect, transition: Transition) -> None:
        handler = self._handlers().get(item.kind)
        if handler is None:
            raise ValueError(f"No handler for effect {item.kind}")
        await handler(session, item, transition)

    def _handlers(self) -> dict[EffectKind, Any]:
        return {
            EffectKind.REPLY: self._on_reply,
            EffectKind.STORE_ANSWER: self._on_store_answer,
            EffectKind.ASK_QUESTION: self._on_ask_question,
            EffectKind.CACHE_ANSWERS: self._on_cache_answers,
            EffectKind.GENERATE: self._on_generate,
            EffectKind.SAVE_EPIC: self._on_save_epic,
            EffectKind.PUBLISH_CREATE: self._on_publish_create,
            EffectKind.PUBLISH_UPDATE_ALL: self._on_publish_update_all,
            EffectKind.PUBLISH_UPDATE_ONE: self._on_publish_update_one,
            EffectKind.RUN_REVIEW: self._on_run_review,
            EffectKind.RECORD_FEEDBACK: self._on_record_feedback,
            EffectKind.COUNT_REFINEMENT: self._on_count_refinement,
            EffectKind.REFINE_ALL: self._on_refine_all,
            EffectKind.REFINE_ONE: self._on_refine_one,
            EffectKind.SHOW_MENU: self._on_show_menu,
            EffectKind.SHOW_OVERVIEW: self._on_show_overview,
            EffectKind.FOCUS: self._on_focus,
            EffectKind.MOVE_CURSOR: self._on_move_cursor,
            EffectKind.CLOSE_GROUPING: self._on_close_grouping,
            EffectKind.FORCE: self._on_force,
        }

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _reply(self, session: Session, text: str) -> None:
        await self.chat.post_message(session.channel_id, text, thread_ts=session.id)

    async def _safe_reply(self, session: Session, text: str) -> None:
        try:
            await self._reply(session, text)
        except Exception as e:
            logger.error("Could not deliver reply", session_id=session.id, error=str(e))

    async def _ask(self, session: Session, slot: AnswerSlot) -> None:
        cached = await self.answer_cache.get_answers(session.user_id)
        cached_value = cached.get(slot) if cached else None
        await self._reply(session, formatting.question_prompt(QUESTION_PROMPTS[slot], cached_value))

    def _context(self, session: Session) -> StoryContext:
        return StoryContext(
            description=session.description,
            users=session.answers.users or "",
            problem=session.answers.problem or "",
            tech_stack=session.answers.tech_stack or "",
            repo_context=session.repo_context,
        )

    async def _persist_epic(self, session: Session) -> None:
        if session.epic is not None:
            session.epic.stories = session.stories
            await self.epic_repo.save(session.epic)

    def _followup(self, session: Session, transition: Transition) -> str:
        """Prompt matching the state a refinement lands in."""
        target = transition.next_state or session.state
        if target == State.APPROVAL:
            return formatting.approval_prompt()
        if target == State.REVIEW_APPROVAL:
            return formatting.review_approval_prompt(session.is_published, bool(session.review_issues))
        return ""

    @staticmethod
    def _carry_linkage(previous: list[Story], refined: list[Story]) -> None:
        """Keep tracker issue links on regenerated stories that kept their id."""
        links = {s.id: s for s in previous if s.is_published}
        for story in refined:
            old = links.get(story.id)
            if old is not None and not story.is_published:
                story.link(old.github_issue_number, old.github_issue_url)

    # =========================================================================
    # Effect handlers
    # =========================================================================

    async def _on_reply(self, session: Session, item: Effect, transition: Transition) -> None:
        await self._reply(session, item["text"])

    async def _on_store_answer(self, session: Session, item: Effect, transition: Transition) -> None:
        session.answers.set(item["slot"], item["value"])

    async def _on_ask_question(self, session: Session, item: Effect, transition: Transition) -> None:
        await self._ask(session, item["slot"])

    async def _on_cache_answers(self, session: Session, item: Effect, transition: Transition) -> None:
        await self.answer_cache.remember(session.user_id, session.answers)

    async def _on_generate(self, session: Session, item: Effect, transition: Transition) -> None:
        await self._reply(session, "Generating stories...")

        try:
            session.repo_context = await self.tracker.fetch_readme()
        except Exception as e:
            logger.warning("README fetch failed, continuing without it", error=str(e))
            session.repo_context = None

        stories = await self.generation.generate_stories(self._context(session))
        session.stories = stories
        await self._persist_epic(session)

        body = formatting.format_stories(stories)
        header = f"✅ Generated {len(stories)} stories:"
        text = f"{header}\n\n{body}\n\n" if body else f"{header}\n\n"
        await self._reply(session, text + formatting.approval_prompt())

    async def _on_save_epic(self, session: Session, item: Effect, transition: Transition) -> None:
        if session.epic is None:
            session.epic = Epic(
                id=await self.epic_repo.allocate_id(generate_epic_id()),
                title=session.description,
                created_by=session.user_id,
                users=session.answers.users or "",
                problem=session.answers.problem or "",
                tech_stack=session.answers.tech_stack or "",
            )
            await self._persist_epic(session)
            logger.info("Epic saved", epic_id=session.epic.id, stories=len(session.stories))
            await self._reply(
                session,
                f"✅ Epic saved to {self.epic_repo.directory.name}/{session.epic.id}.json",
            )
            return
        await self._persist_epic(session)

    async def _on_publish_create(self, session: Session, item: Effect, transition: Transition) -> None:
        await self._reply(session, "Creating GitHub issues...")
        result = await self.tracker.create(session.epic)
        await self._reply(session, formatting.publish_summary(result, created=True))

    async def _on_publish_update_all(self, session: Session, item: Effect, transition: Transition) -> None:
        await self._reply(session, "Updating GitHub issues...")
        result = await self.tracker.update(session.epic)
        await self._persist_epic(session)
        await self._reply(session, formatting.publish_summary(result, created=False))

    async def _on_publish_update_one(self, session: Session, item: Effect, transition: Transition) -> None:
        story = session.stories[item["index"]]
        await self._reply(session, f"Updating GitHub issue for {story.id}...")
        ref = await self.tracker.update_one(story)
        await self._persist_epic(session)
        await self._reply(session, formatting.single_update_summary(ref))

    async def _on_run_review(self, session: Session, item: Effect, transition: Transition) -> None:
        await self._reply(session, "Running review...")
        published = session.is_published

        try:
            review = await self.generation.review_epic(session.epic)
        except Exception as e:
            logger.exception("Review failed", epic_id=session.epic.id, error=str(e))
            action = "Update GitHub issues" if published else "Create GitHub issues"
            await self._reply(session, f"❌ Review error: {e}\n\n{action} anyway? [Y/n]")
            return

        session.review_issues = extract_review_issues(review)
        session.has_been_reviewed = True
        logger.info("Review complete", epic_id=session.epic.id, issues=len(session.review_issues))
        await self._reply(
            session,
            f"🔍 Review complete!\n\n{review}\n\n"
            + formatting.review_approval_prompt(published, bool(session.review_issues)),
        )

    async def _on_record_feedback(self, session: Session, item: Effect, transition: Transition) -> None:
        session.pending_feedback = item["text"]

    async def _on_count_refinement(self, session: Session, item: Effect, transition: Transition) -> None:
        session.refinement_count += 1
        logger.debug("Refinement counted", refinement_count=session.refinement_count)

    async def _on_refine_all(self, session: Session, item: Effect, transition: Transition) -> None:
        feedback = item["feedback"]
        pending = session.pending_feedback
        if item["combine_pending"] and pending and pending.strip().lower() not in BARE_REJECTIONS:
            feedback = f"{pending}\n{feedback}"

        await self._reply(session, "Regenerating stories...")
        refined = await self.generation.refine_stories(self._context(session), session.stories, feedback)
        session.pending_feedback = None

        if not refined:
            await self._reply(
                session,
                "⚠️ Could not read any stories from the refined response; keeping the current ones.\n\n"
                + self._followup(session, transition),
            )
            return

        self._carry_linkage(session.stories, refined)
        session.stories = refined
        session.modified_story_indices = None
        await self._persist_epic(session)

        await self._reply(
            session,
            f"✅ Updated stories:\n\n{formatting.format_stories(refined)}\n\n"
            + self._followup(session, transition),
        )

    async def _on_refine_one(self, session: Session, item: Effect, transition: Transition) -> None:
        index = item["index"]
        story = session.stories[index]
        await self._reply(session, f"Refining {story.id}...")

        draft = await self.generation.refine_one_story(story, item["instruction"], self._context(session))
        if draft.is_empty:
            logger.warning("Refined story could not be parsed", story_id=story.id)
            if (transition.next_state or session.state) == State.STORY_FOCUSED:
                followup = formatting.focused_story(story, index, len(session.stories))
            else:
                followup = self._followup(session, transition)
            await self._reply(
                session,
                f"⚠️ Could not read a story from the refined response; keeping {story.id} as it was.\n\n"
                + followup,
            )
            return

        story.apply_draft(draft)
        if item.payload.get("track"):
            if session.modified_story_indices is None:
                session.modified_story_indices = set()
            session.modified_story_indices.add(index)
        await self._persist_epic(session)

        if (transition.next_state or session.state) == State.STORY_FOCUSED:
            await self._reply(session, formatting.focused_story(story, index, len(session.stories)))
            return
        await self._reply(
            session,
            f"✅ Updated {story.id}:\n\n{formatting.format_story(story, index + 1)}\n\n"
            + self._followup(session, transition),
        )

    async def _on_show_menu(self, session: Session, item: Effect, transition: Transition) -> None:
        session.current_story_index = None
        await self._reply(session, formatting.interactive_menu(session.stories))

    async def _on_show_overview(self, session: Session, item: Effect, transition: Transition) -> None:
        await self._reply(session, formatting.format_stories(session.stories) or "(no stories)")

    async def _on_focus(self, session: Session, item: Effect, transition: Transition) -> None:
        session.current_story_index = item["index"]
        await self._reply(
            session,
            formatting.focused_story(session.focused_story, item["index"], len(session.stories)),
        )

    async def _on_move_cursor(self, session: Session, item: Effect, transition: Transition) -> None:
        index = (session.current_story_index or 0) + item["delta"]
        session.current_story_index = index
        await self._reply(session, formatting.focused_story(session.stories[index], index, len(session.stories)))

    async def _on_close_grouping(self, session: Session, item: Effect, transition: Transition) -> None:
        number = item["number"]
        await self._reply(session, f"Deleting epic #{number}...")
        closed = await self.tracker.close(number)
        await self._reply(session, f"✅ Deleted epic #{number} and closed {closed} story issues.")

    async def _on_force(self, session: Session, item: Effect, transition: Transition) -> None:
        logger.info("Forcing approval", refinement_count=session.refinement_count)

