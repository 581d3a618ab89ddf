"""
UI Cards
========
Chainlit-specific card builders that create rich interactive displays.
These extend the formatting_tools with Chainlit-specific elements.
"""

import chainlit as cl

from config.settings import get_author


async def display_draft_card(card: str) -> None:
    """
    Display a draft sequence card with save and discard buttons.
    The buttons run the same operations as the `save` and `cancel` commands.
    """
    actions = [
        cl.Action(
            name="save_sequence",
            payload={"action": "save"},
            label="Save Sequence",
            description="Validate and save this draft",
        ),
        cl.Action(
            name="discard_draft",
            payload={"action": "cancel"},
            label="Discard",
            description="Throw this draft away",
        ),
    ]

    await cl.Message(
        content=card,
        author=get_author("console"),
        actions=actions,
    ).send()


async def display_reply(content: str) -> None:
    """Display a plain console reply."""
    await cl.Message(content=content, author=get_author("console")).send()


async def display_system_message(content: str) -> None:
    """Display a failure or refusal; the console stays interactive."""
    await cl.Message(content=content, author=get_author("system")).send()


def generation_step(ticket_label: str) -> cl.Step:
    """Collapsible loading indicator shown while a draft is generated."""
    return cl.Step(name=f"Generating draft from {ticket_label}", type="tool")
