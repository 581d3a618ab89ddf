"""
Sequence Console - Chainlit Entry Point
=======================================
Main application file that bridges the console session with Chainlit UI.
Handles:
- Chat session initialization (API client, pollers, welcome message)
- User command routing into the console session
- Draft cards with save/discard action buttons
- Notification toasts from the background poller
- Teardown of in-flight requests and pollers when the chat ends
"""

import logging

import chainlit as cl

from config.settings import CONSOLE_USER, UI, get_author
from orchestration.console import ConsoleSession, Reply, parse_command
from orchestration.error_handler import ConsoleError, describe_error
from sequences.state import PreconditionError
from ui.cards import (
    display_draft_card,
    display_reply,
    display_system_message,
    generation_step,
)
from ui.toasts import show_toasts

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ============================================================
# Chat Lifecycle Hooks
# ============================================================


@cl.on_chat_start
async def on_chat_start():
    """Initialize a new chat session."""
    logger.info("New console session starting...")

    session = ConsoleSession(
        on_toast=show_toasts,
        user_role=CONSOLE_USER["role"],
    )
    cl.user_session.set("console", session)

    # Polls run as background tasks bound to this chat's context
    session.start()

    await cl.Message(
        content=UI["welcome_message"],
        author=get_author("console"),
    ).send()


@cl.on_chat_end
async def on_chat_end():
    """Clean up when chat session ends."""
    session: ConsoleSession = cl.user_session.get("console")
    if session is not None:
        await session.close()


# ============================================================
# Message Handler
# ============================================================


@cl.on_message
async def on_message(message: cl.Message):
    """Handle incoming console commands."""
    await _run_command(message.content)


async def _run_command(text: str) -> None:
    session: ConsoleSession = cl.user_session.get("console")
    if session is None:
        await display_system_message("Session not initialized. Please refresh the page.")
        return

    try:
        command, rest = parse_command(text)
        if command in ("convert", "retry"):
            label = f"ticket {rest}" if command == "convert" else "the last ticket"
            async with generation_step(label) as step:
                reply = await session.execute(text)
                step.output = "Draft ready" if reply.draft else "No draft"
        else:
            reply = await session.execute(text)
        await _show_reply(reply)

    except (ConsoleError, PreconditionError) as e:
        await display_system_message(describe_error(e))

    except Exception as e:
        logger.error(f"Error processing command: {e}", exc_info=True)
        await display_system_message(
            f"An error occurred while processing your request. Please try again.\n\n*Error: {str(e)}*"
        )


async def _show_reply(reply: Reply) -> None:
    if not reply.content:
        return
    if reply.draft:
        await display_draft_card(reply.content)
    else:
        await display_reply(reply.content)


# ============================================================
# Action Callbacks (for cl.Action buttons)
# ============================================================


@cl.action_callback("save_sequence")
async def on_save_sequence(action: cl.Action):
    """Handle the 'Save Sequence' action button."""
    await _run_command("save")


@cl.action_callback("discard_draft")
async def on_discard_draft(action: cl.Action):
    """Handle the 'Discard' action button."""
    await action.remove()
    await _run_command("cancel")
