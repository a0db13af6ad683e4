"""
Slack webhook endpoints: slash commands, message events and interactions.

Slack expects an answer within three seconds, so every endpoint verifies the
request, acknowledges it and leaves the actual work to a background task.
"""

import json
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qs

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from epic_bot.api.deps import get_engine, get_slack_client, get_slack_settings
from epic_bot.api.slack_client import SlackClient
from epic_bot.core.config import SlackSettings
from epic_bot.core.constants import (
    COMMAND_DELETE_EPIC,
    COMMAND_REVIEW_EPIC,
    COMMAND_START_EPIC,
    HANDLED_MESSAGE_SUBTYPES,
    REVIEW_PICKER_ACTION_ID,
)
from epic_bot.core.exceptions import InvalidCommandError
from epic_bot.core.logging import get_logger
from epic_bot.core.security import verify_slack_signature
from epic_bot.services import formatting
from epic_bot.services.conversation_engine import ConversationEngine

logger = get_logger(__name__)

router = APIRouter()


async def verified_body(
    request: Request,
    slack_settings: SlackSettings = Depends(get_slack_settings),
) -> bytes:
    """Raw request body, after checking the Slack signature."""
    body = await request.body()
    verify_slack_signature(
        slack_settings.signing_secret,
        body,
        request.headers.get("X-Slack-Request-Timestamp"),
        request.headers.get("X-Slack-Signature"),
        max_age_seconds=slack_settings.request_max_age_seconds,
    )
    return body


def _form(body: bytes) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(body.decode("utf-8")).items()}


def _ephemeral(text: str) -> dict[str, str]:
    return {"response_type": "ephemeral", "text": text}


def parse_milestone_number(text: str, command: str) -> int:
    """
    Parse the numeric argument of /delete-epic and /review-epic.

    Raises:
        InvalidCommandError: If the argument is not a positive integer
    """
    value = text.strip().lstrip("#")
    if not value.isdigit() or int(value) <= 0:
        raise InvalidCommandError(
            f"Please provide an epic milestone number: `{command} 42`",
            command=command,
        )
    return int(value)


async def run_safely(func: Callable[..., Awaitable[Any]], *args: Any) -> None:
    """Run background work; failures are logged, never raised."""
    try:
        await func(*args)
    except Exception as e:
        logger.exception("Background task failed", task=getattr(func, "__name__", str(func)), error=str(e))


async def post_review_picker(
    engine: ConversationEngine,
    slack: SlackClient,
    user_id: str,
    channel_id: str,
) -> None:
    groupings = await engine.list_open_epics()
    if not groupings:
        await slack.post_ephemeral(channel_id, user_id, "No open epics found.")
        return

    blocks = [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": "Select an epic to review:"},
            "accessory": {
                "type": "static_select",
                "action_id": REVIEW_PICKER_ACTION_ID,
                "placeholder": {"type": "plain_text", "text": "Choose an epic"},
                "options": formatting.picker_options(groupings),
            },
        }
    ]
    await slack.post_blocks(channel_id, "Select an epic to review", blocks)
    logger.info("Review picker posted", options=len(groupings))


@router.post("/commands")
async def slash_command(
    background_tasks: BackgroundTasks,
    body: bytes = Depends(verified_body),
    engine: ConversationEngine = Depends(get_engine),
    slack: SlackClient = Depends(get_slack_client),
) -> dict[str, str]:
    """
    Acknowledge a slash command and schedule its work.
    """
    form = _form(body)
    command = form.get("command", "")
    text = form.get("text", "").strip()
    user_id = form.get("user_id", "")
    channel_id = form.get("channel_id", "")

    logger.info("Slash command received", command=command, user_id=user_id, channel_id=channel_id)

    try:
        if command == COMMAND_START_EPIC:
            if not text:
                raise InvalidCommandError(
                    "Please provide a description: `/story Build a student dashboard`",
                    command=command,
                )
            background_tasks.add_task(run_safely, engine.start_epic, text, user_id, channel_id)
            return _ephemeral(f'Starting epic "{text}"...')

        if command == COMMAND_DELETE_EPIC:
            number = parse_milestone_number(text, command)
            background_tasks.add_task(run_safely, engine.start_delete, number, user_id, channel_id)
            return _ephemeral(f"Looking up epic #{number}...")

        if command == COMMAND_REVIEW_EPIC:
            if not text:
                background_tasks.add_task(run_safely, post_review_picker, engine, slack, user_id, channel_id)
                return _ephemeral("Fetching open epics...")
            number = parse_milestone_number(text, command)
            background_tasks.add_task(run_safely, engine.start_review, number, user_id, channel_id)
            return _ephemeral(f"Loading epic #{number} for review...")

    except InvalidCommandError as e:
        logger.info("Invalid slash command", command=command, error=e.message)
        return _ephemeral(e.message)

    return _ephemeral(f"Unknown command: {command}")


@router.post("/events")
async def events(
    request: Request,
    background_tasks: BackgroundTasks,
    body: bytes = Depends(verified_body),
    engine: ConversationEngine = Depends(get_engine),
) -> dict[str, Any]:
    """
    Events API endpoint: URL verification and message events.
    """
    if request.headers.get("X-Slack-Retry-Num"):
        logger.debug("Dropping Slack retry", retry=request.headers.get("X-Slack-Retry-Num"))
        return {"ok": True}

    payload = json.loads(body or b"{}")

    if payload.get("type") == "url_verification":
        return {"challenge": payload.get("challenge", "")}

    if payload.get("type") != "event_callback":
        return {"ok": True}

    event = payload.get("event") or {}
    subtype = event.get("subtype")
    if event.get("type") != "message" or (subtype and subtype not in HANDLED_MESSAGE_SUBTYPES):
        return {"ok": True}

    is_bot = bool(event.get("bot_id"))
    if is_bot:
        return {"ok": True}

    background_tasks.add_task(
        run_safely,
        engine.handle_message,
        event.get("text") or "",
        event.get("thread_ts"),
        event.get("user", ""),
        is_bot,
        event.get("ts"),
    )
    return {"ok": True}


@router.post("/interactions")
async def interactions(
    background_tasks: BackgroundTasks,
    body: bytes = Depends(verified_body),
    engine: ConversationEngine = Depends(get_engine),
) -> dict[str, Any]:
    """
    Block Kit interactions: the epic picker posted by /review-epic.
    """
    payload = json.loads(_form(body).get("payload", "{}"))
    if payload.get("type") != "block_actions":
        return {}

    user_id = (payload.get("user") or {}).get("id", "")
    channel_id = (payload.get("channel") or {}).get("id", "")

    for action in payload.get("actions") or []:
        if action.get("action_id") != REVIEW_PICKER_ACTION_ID:
            continue
        value = (action.get("selected_option") or {}).get("value", "")
        if not value.isdigit():
            continue
        logger.info("Epic picked for review", milestone=value, user_id=user_id)
        background_tasks.add_task(run_safely, engine.start_review, int(value), user_id, channel_id)

    return {}
