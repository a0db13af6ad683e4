"""
Tests for the Slack webhook endpoints.
"""

import json
import time
from unittest.mock import AsyncMock
from urllib.parse import urlencode

import pytest
from httpx import AsyncClient

from epic_bot.core.constants import ConversationState, REVIEW_PICKER_ACTION_ID
from epic_bot.core.security import compute_signature
from epic_bot.domain.epic import Epic
from epic_bot.services.conversation_engine import ConversationEngine
from epic_bot.tracker.models import GroupingSummary, TrackerGrouping

from tests.conftest import SIGNING_SECRET, make_stories


def signed_headers(body: bytes, secret: str = SIGNING_SECRET, content_type: str = "application/x-www-form-urlencoded") -> dict[str, str]:
    timestamp = str(int(time.time()))
    return {
        "X-Slack-Request-Timestamp": timestamp,
        "X-Slack-Signature": compute_signature(secret, timestamp, body),
        "Content-Type": content_type,
    }


async def post_command(client: AsyncClient, command: str, text: str = "") -> dict:
    body = urlencode({"command": command, "text": text, "user_id": "U1", "channel_id": "C1"}).encode()
    response = await client.post("/slack/commands", content=body, headers=signed_headers(body))
    assert response.status_code == 200
    return response.json()


async def post_event(client: AsyncClient, payload: dict, **extra_headers: str):
    body = json.dumps(payload).encode()
    headers = signed_headers(body, content_type="application/json")
    headers.update(extra_headers)
    return await client.post("/slack/events", content=body, headers=headers)


class TestSignature:
    """Tests for request verification."""

    @pytest.mark.asyncio
    async def test_bad_signature_is_rejected(self, async_client: AsyncClient, engine: ConversationEngine) -> None:
        body = urlencode({"command": "/story", "text": "x"}).encode()

        response = await async_client.post(
            "/slack/commands", content=body, headers=signed_headers(body, secret="wrong-secret")
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_SIGNATURE"
        assert await engine.active_session_count() == 0

    @pytest.mark.asyncio
    async def test_missing_headers_are_rejected(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/slack/events", content=b"{}")

        assert response.status_code == 401


class TestSlashCommands:
    """Tests for POST /slack/commands."""

    @pytest.mark.asyncio
    async def test_story_acknowledges_and_starts(
        self, async_client: AsyncClient, engine: ConversationEngine, chat: AsyncMock
    ) -> None:
        data = await post_command(async_client, "/story", "Student dashboard")

        assert data == {"response_type": "ephemeral", "text": 'Starting epic "Student dashboard"...'}
        assert await engine.active_session_count() == 1
        assert chat.post_message.await_args_list[0].args[0] == "C1"

    @pytest.mark.asyncio
    async def test_story_without_description(self, async_client: AsyncClient, engine: ConversationEngine) -> None:
        data = await post_command(async_client, "/story", "   ")

        assert data["text"].startswith("Please provide a description")
        assert await engine.active_session_count() == 0

    @pytest.mark.asyncio
    async def test_delete_needs_a_number(self, async_client: AsyncClient, tracker: AsyncMock) -> None:
        data = await post_command(async_client, "/delete-epic", "latest")

        assert data["text"] == "Please provide an epic milestone number: `/delete-epic 42`"
        tracker.fetch_grouping_with_children.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_looks_up_epic(
        self, async_client: AsyncClient, engine: ConversationEngine, tracker: AsyncMock
    ) -> None:
        tracker.fetch_grouping_with_children.return_value = TrackerGrouping(number=7, title="epic-1: Dashboard")

        data = await post_command(async_client, "/delete-epic", "#7")

        assert data["text"] == "Looking up epic #7..."
        tracker.fetch_grouping_with_children.assert_awaited_once_with(7)
        sessions = await engine.sessions.list()
        assert sessions[0].state == ConversationState.DELETE_CONFIRMATION

    @pytest.mark.asyncio
    async def test_review_without_argument_posts_picker(
        self, async_client: AsyncClient, chat: AsyncMock, tracker: AsyncMock
    ) -> None:
        tracker.list_open_groupings.return_value = [GroupingSummary(number=7, title="epic-1: Dashboard")]

        data = await post_command(async_client, "/review-epic")

        assert data["text"] == "Fetching open epics..."
        channel, _, blocks = chat.post_blocks.await_args.args
        assert channel == "C1"
        accessory = blocks[0]["accessory"]
        assert accessory["action_id"] == REVIEW_PICKER_ACTION_ID
        assert accessory["options"][0]["value"] == "7"

    @pytest.mark.asyncio
    async def test_review_picker_without_epics(
        self, async_client: AsyncClient, chat: AsyncMock, tracker: AsyncMock
    ) -> None:
        tracker.list_open_groupings.return_value = []

        await post_command(async_client, "/review-epic")

        chat.post_ephemeral.assert_awaited_once_with("C1", "U1", "No open epics found.")
        chat.post_blocks.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_command(self, async_client: AsyncClient) -> None:
        data = await post_command(async_client, "/standup")

        assert data["text"] == "Unknown command: /standup"


class TestEvents:
    """Tests for POST /slack/events."""

    @pytest.mark.asyncio
    async def test_url_verification(self, async_client: AsyncClient) -> None:
        response = await post_event(async_client, {"type": "url_verification", "challenge": "abc123"})

        assert response.json() == {"challenge": "abc123"}

    @pytest.mark.asyncio
    async def test_thread_reply_reaches_engine(self, async_client: AsyncClient, engine: ConversationEngine) -> None:
        session = await engine.start_epic("Student dashboard", "U1", "C1")

        response = await post_event(
            async_client,
            {
                "type": "event_callback",
                "event": {
                    "type": "message",
                    "text": "students",
                    "user": "U1",
                    "ts": "1700000000.000099",
                    "thread_ts": session.id,
                },
            },
        )

        assert response.json() == {"ok": True}
        assert (await engine.get_session(session.id)).state == ConversationState.Q2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "event",
        [
            {"type": "message", "text": "students", "bot_id": "B1"},
            {"type": "message", "subtype": "message_changed", "text": "students"},
            {"type": "app_mention", "text": "students"},
        ],
    )
    async def test_other_events_are_ignored(
        self, async_client: AsyncClient, engine: ConversationEngine, event: dict
    ) -> None:
        session = await engine.start_epic("Student dashboard", "U1", "C1")
        event = {**event, "thread_ts": session.id, "user": "U1"}

        await post_event(async_client, {"type": "event_callback", "event": event})

        assert (await engine.get_session(session.id)).state == ConversationState.Q1

    @pytest.mark.asyncio
    async def test_thread_broadcast_reply_reaches_engine(
        self, async_client: AsyncClient, engine: ConversationEngine
    ) -> None:
        session = await engine.start_epic("Student dashboard", "U1", "C1")
        event = {
            "type": "message",
            "subtype": "thread_broadcast",
            "text": "students",
            "user": "U1",
            "thread_ts": session.id,
        }

        await post_event(async_client, {"type": "event_callback", "event": event})

        assert (await engine.get_session(session.id)).state == ConversationState.Q2

    @pytest.mark.asyncio
    async def test_slack_retries_are_dropped(self, async_client: AsyncClient, engine: ConversationEngine) -> None:
        session = await engine.start_epic("Student dashboard", "U1", "C1")
        payload = {
            "type": "event_callback",
            "event": {"type": "message", "text": "students", "user": "U1", "thread_ts": session.id},
        }

        response = await post_event(async_client, payload, **{"X-Slack-Retry-Num": "1"})

        assert response.json() == {"ok": True}
        assert (await engine.get_session(session.id)).state == ConversationState.Q1


class TestInteractions:
    """Tests for POST /slack/interactions."""

    @pytest.mark.asyncio
    async def test_picker_selection_starts_review(
        self, async_client: AsyncClient, engine: ConversationEngine, tracker: AsyncMock
    ) -> None:
        tracker.fetch_grouping_with_children.return_value = TrackerGrouping(number=7, title="Dashboard")
        rebuilt = Epic(id="epic-2025-01-01T00-00-00", title="Dashboard", stories=make_stories(2))
        rebuilt.link(7, None)
        tracker.epic_from_grouping.return_value = rebuilt
        payload = {
            "type": "block_actions",
            "user": {"id": "U1"},
            "channel": {"id": "C1"},
            "actions": [{"action_id": REVIEW_PICKER_ACTION_ID, "selected_option": {"value": "7"}}],
        }
        body = urlencode({"payload": json.dumps(payload)}).encode()

        response = await async_client.post("/slack/interactions", content=body, headers=signed_headers(body))

        assert response.status_code == 200
        tracker.fetch_grouping_with_children.assert_awaited_once_with(7)
        sessions = await engine.sessions.list()
        assert sessions[0].state == ConversationState.REVIEW_APPROVAL
