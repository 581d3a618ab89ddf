"""
Console Session
===============
One console session: the API client, the conversion lifecycle for the
current draft, and the two pollers. Text commands from the chat are parsed
here and each one runs a single draft, lifecycle or notification operation.

Handlers return a Reply with markdown for the console author. Refusals and
failures are raised (PreconditionError / ConsoleError) and rendered by the
caller as system messages; the session stays usable afterwards.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from config.settings import ACTIVE_SEQUENCE_ROLES, SEQUENCE, UI
from orchestration.error_handler import ConsoleError
from orchestration.lifecycle import ConversionLifecycle
from orchestration.state import GenerationStatus
from sequences.draft import SequenceDraftModel
from sequences.state import PreconditionError
from services.active_sequences import ActiveSequencesPoller
from services.api_client import ConsoleApiClient
from services.notifications import Clock, Notification, NotificationPoller
from tools.formatting_tools import (
    badge_label,
    format_draft_card,
    format_handoff_targets,
    format_notification_list,
    format_validation_issues,
)

logger = logging.getLogger(__name__)

SavedHook = Callable[[str], Awaitable[None]]
ToastHook = Callable[[list[Notification], Optional[str]], Awaitable[None]]

STALE_NOTIFICATIONS = "The server did not respond. Notifications will refresh on the next poll."

# Multi-word commands first so "remove step" wins over "remove"
COMMANDS = [
    "remove keyword",
    "remove trigger",
    "remove step",
    "remove tool",
    "remove part",
    "remove url",
    "clear handoff",
    "toggle step",
    "move step",
    "add step",
    "add tool",
    "add part",
    "add url",
    "tool step",
    "part step",
    "read all",
    "convert",
    "retry",
    "name",
    "description",
    "category",
    "type",
    "keyword",
    "message",
    "doc",
    "trigger",
    "handoff",
    "active",
    "targets",
    "show",
    "save",
    "cancel",
    "notifications",
    "read",
    "tickets",
    "help",
]


@dataclass
class Reply:
    content: str
    # True when content is a draft card that should carry save/discard actions
    draft: bool = False


def parse_command(text: str) -> tuple[str, str]:
    """
    Split a chat message into (command, argument text).

    Returns:
        ("", original text) when no command matches
    """
    stripped = (text or "").strip()
    words = stripped.split()
    lowered = [w.lower() for w in words]
    for command in COMMANDS:
        parts = command.split()
        if lowered[: len(parts)] == parts:
            pieces = stripped.split(None, len(parts))
            return command, pieces[len(parts)].strip() if len(pieces) > len(parts) else ""
    return "", stripped


def can_view_active_sequences(role: Optional[str]) -> bool:
    """Role gate for the active-sequence badge. No role means a local operator."""
    return role is None or role in ACTIVE_SEQUENCE_ROLES


def _number(value: str, label: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise PreconditionError(f"{label} must be a number, got '{value}'") from None


def _split(rest: str, count: int, usage: str) -> list[str]:
    """Split into exactly `count` fields; the last one keeps its spaces."""
    fields = rest.split(None, count - 1)
    if len(fields) < count or not all(fields):
        raise PreconditionError(f"Usage: {usage}")
    return fields


class ConsoleSession:
    """Everything one chat session needs to author sequences."""

    def __init__(
        self,
        client: Optional[ConsoleApiClient] = None,
        on_toast: Optional[ToastHook] = None,
        on_saved: Optional[SavedHook] = None,
        user_role: Optional[str] = None,
        min_loading_seconds: Optional[float] = None,
        notification_interval: Optional[float] = None,
        active_sequences_interval: Optional[float] = None,
        clock: Optional[Clock] = None,
    ):
        self.client = client or ConsoleApiClient()
        self._on_saved = on_saved
        self._on_toast = on_toast
        self.lifecycle = ConversionLifecycle(
            self.client,
            on_saved=self._handle_saved,
            min_loading_seconds=min_loading_seconds,
        )
        self.notifications = NotificationPoller(
            self.client,
            on_new=self._handle_new,
            interval_seconds=notification_interval,
            clock=clock,
        )
        self.active_sequences = ActiveSequencesPoller(
            self.client,
            can_view=lambda: can_view_active_sequences(user_role),
            interval_seconds=active_sequences_interval,
        )

        self._handlers = {
            "convert": self._convert,
            "retry": self._retry,
            "name": self._name,
            "description": self._description,
            "category": self._category,
            "type": self._type,
            "keyword": self._keyword,
            "remove keyword": self._remove_keyword,
            "add step": self._add_step,
            "remove step": self._remove_step,
            "move step": self._move_step,
            "toggle step": self._toggle_step,
            "message": self._message,
            "doc": self._doc,
            "trigger": self._trigger,
            "remove trigger": self._remove_trigger,
            "handoff": self._handoff,
            "clear handoff": self._clear_handoff,
            "add tool": self._add_tool,
            "add part": self._add_part,
            "add url": self._add_url,
            "tool step": self._tool_step,
            "part step": self._part_step,
            "remove tool": self._remove_tool,
            "remove part": self._remove_part,
            "remove url": self._remove_url,
            "active": self._active,
            "targets": self._targets,
            "show": self._show,
            "save": self._save,
            "cancel": self._cancel,
            "notifications": self._notifications,
            "read": self._read,
            "read all": self._read_all,
            "tickets": self._tickets,
            "help": self._help,
        }

    # ============================================================
    # Session lifecycle
    # ============================================================

    def start(self) -> None:
        """Start both pollers; each polls immediately, then on its interval."""
        self.notifications.start()
        self.active_sequences.start()

    async def close(self) -> None:
        """Cancel in-flight requests, stop polling and release the client."""
        await self.lifecycle.close()
        await self.notifications.stop()
        await self.active_sequences.stop()
        await self.client.aclose()
        logger.info("Console session closed")

    @property
    def model(self) -> Optional[SequenceDraftModel]:
        return self.lifecycle.model

    @property
    def badge(self) -> Optional[str]:
        return badge_label(self.notifications.tracker.unread_count)

    async def execute(self, text: str) -> Reply:
        """Run one chat command."""
        command, rest = parse_command(text)
        if not command:
            first = rest.split()[0] if rest else ""
            raise ConsoleError(f"Unknown command '{first}'. Type `help` to see the commands.")
        logger.debug(f"Running command '{command}'")
        return await self._handlers[command](rest)

    async def _handle_saved(self, sequence_key: str) -> None:
        await self.active_sequences.refresh()
        if self._on_saved is not None:
            await self._on_saved(sequence_key)

    async def _handle_new(self, arrived: list[Notification]) -> None:
        if self._on_toast is not None:
            await self._on_toast(arrived, self.badge)

    def _draft(self) -> SequenceDraftModel:
        if self.lifecycle.model is None:
            raise PreconditionError("There is no draft yet. Use `convert <ticket id>` first.")
        return self.lifecycle.model

    # ============================================================
    # Generation and save
    # ============================================================

    async def _convert(self, rest: str) -> Reply:
        ticket_id = _number(rest, "Ticket id")
        return self._generation_reply(await self.lifecycle.generate(ticket_id))

    async def _retry(self, rest: str) -> Reply:
        return self._generation_reply(await self.lifecycle.retry())

    def _generation_reply(self, model: Optional[SequenceDraftModel]) -> Reply:
        if model is not None:
            return Reply(format_draft_card(model), draft=True)
        if self.lifecycle.status == GenerationStatus.FAILED:
            raise ConsoleError(f"{self.lifecycle.error}\n\nType `retry` to try again.")
        # Superseded by a newer request; that one reports
        return Reply("")

    async def _save(self, rest: str) -> Reply:
        sequence_key = await self.lifecycle.save(self._draft())
        if sequence_key is not None:
            return Reply(f"✅ Saved sequence `{sequence_key}`.")
        if self.lifecycle.validation_issues:
            raise ConsoleError(format_validation_issues(self.lifecycle.validation_issues))
        if self.lifecycle.error:
            raise ConsoleError(self.lifecycle.error)
        return Reply("")

    async def _cancel(self, rest: str) -> Reply:
        await self.lifecycle.discard()
        return Reply("Draft discarded.")

    async def _show(self, rest: str) -> Reply:
        return Reply(format_draft_card(self._draft()), draft=True)

    # ============================================================
    # Header fields and keywords
    # ============================================================

    async def _name(self, rest: str) -> Reply:
        model = self._draft()
        model.set_name(rest)
        return Reply(f"Name set. Sequence key: `{model.sequence_key or '(invalid)'}`")

    async def _description(self, rest: str) -> Reply:
        self._draft().set_description(rest)
        return Reply("Description updated.")

    async def _category(self, rest: str) -> Reply:
        matches = [c for c in SEQUENCE["categories"] if c.lower() == rest.lower()]
        self._draft().set_category(matches[0] if matches else rest)
        return Reply(f"Category set to {self._draft().draft.category}.")

    async def _type(self, rest: str) -> Reply:
        model = self._draft()
        model.set_sequence_type(rest.lower())
        if rest.lower() == "linear":
            return Reply("Sequence is now linear. Success triggers were cleared from every step.")
        return Reply(f"Sequence is now {rest.lower()}.")

    async def _keyword(self, rest: str) -> Reply:
        if self._draft().add_keyword(rest):
            return Reply(f"Keyword '{rest.strip()}' added.")
        return Reply("Keyword not added: it is blank or already present.")

    async def _remove_keyword(self, rest: str) -> Reply:
        removed = self._draft().remove_keyword(_number(rest, "Keyword position") - 1)
        return Reply(f"Keyword '{removed}' removed.")

    async def _active(self, rest: str) -> Reply:
        value = rest.lower()
        if value not in ("on", "off"):
            raise PreconditionError("Usage: active on|off")
        self._draft().set_active(value == "on")
        return Reply(f"The sequence will be saved as {'active' if value == 'on' else 'inactive'}.")

    # ============================================================
    # Steps
    # ============================================================

    async def _add_step(self, rest: str) -> Reply:
        return Reply(f"Added step {self._draft().add_step()}.")

    async def _remove_step(self, rest: str) -> Reply:
        number = _number(rest, "Step number")
        model = self._draft()
        model.remove_step(number)
        return Reply(f"Removed step {number}. The sequence now has {model.step_count} steps.")

    async def _move_step(self, rest: str) -> Reply:
        number, direction = _split(rest, 2, "move step <n> up|down")
        number = _number(number, "Step number")
        target = self._draft().move_step(number, direction.lower())
        if target == number:
            return Reply(f"Step {number} is already at the {'top' if direction.lower() == 'up' else 'bottom'}.")
        return Reply(f"Step {number} is now step {target}.")

    async def _toggle_step(self, rest: str) -> Reply:
        number = _number(rest, "Step number")
        expanded = self._draft().toggle_step(number)
        return Reply(f"Step {number} {'expanded' if expanded else 'collapsed'}.")

    async def _message(self, rest: str) -> Reply:
        number, text = _split(rest, 2, "message <n> <text>")
        self._draft().update_step(_number(number, "Step number"), "message_template", text)
        return Reply(f"Step {number} message updated.")

    async def _doc(self, rest: str) -> Reply:
        fields = _split(rest, 2, "doc <n> <url> [title]")
        number = _number(fields[0], "Step number")
        url, _, title = fields[1].partition(" ")
        model = self._draft()
        model.update_step(number, "doc_url", url)
        model.update_step(number, "doc_title", title.strip())
        return Reply(f"Step {number} documentation set.")

    async def _trigger(self, rest: str) -> Reply:
        number, kind, text = _split(rest, 3, "trigger <n> success|failure <text>")
        number = _number(number, "Step number")
        if self._draft().add_trigger(number, kind.lower(), text):
            return Reply(f"Added {kind.lower()} trigger to step {number}.")
        return Reply("Trigger not added: it is blank.")

    async def _remove_trigger(self, rest: str) -> Reply:
        number, kind, index = _split(rest, 3, "remove trigger <n> success|failure <index>")
        number = _number(number, "Step number")
        removed = self._draft().remove_trigger(
            number, kind.lower(), _number(index, "Trigger position") - 1
        )
        return Reply(f"Removed trigger '{removed}' from step {number}.")

    async def _handoff(self, rest: str) -> Reply:
        fields = _split(rest, 2, "handoff <n> <trigger> <sequence key>")
        number = _number(fields[0], "Step number")
        trigger, _, target_key = fields[1].rpartition(" ")
        self._draft().set_handoff(number, trigger, target_key)

        known = {key for key, _ in self.active_sequences.handoff_targets()}
        reply = f'Step {number} hands off to `{target_key}` on "{trigger.strip()}".'
        if known and target_key not in known:
            reply += f"\n\n⚠️ `{target_key}` is not an active sequence. Type `targets` to list them."
        return Reply(reply)

    async def _clear_handoff(self, rest: str) -> Reply:
        number = _number(rest, "Step number")
        self._draft().clear_handoff(number)
        return Reply(f"Step {number} handoff cleared.")

    async def _targets(self, rest: str) -> Reply:
        exclude = self.model.sequence_key if self.model is not None else None
        return Reply(format_handoff_targets(self.active_sequences.handoff_targets(exclude)))

    # ============================================================
    # Tools, parts, URLs
    # ============================================================

    async def _add_tool(self, rest: str) -> Reply:
        identity = self._draft().add_tool(tool_name=rest)
        return Reply(f"Added tool `{identity}`.")

    async def _add_part(self, rest: str) -> Reply:
        identity = self._draft().add_part(part_name=rest)
        return Reply(f"Added part `{identity}`.")

    async def _add_url(self, rest: str) -> Reply:
        url, _, title = _split(rest, 1, "add url <url> [title]")[0].partition(" ")
        identity = self._draft().add_url(url=url, title=title.strip())
        return Reply(f"Added reference URL `{identity}`.")

    @staticmethod
    def _step_value(value: str) -> Optional[int]:
        return None if value.lower() == "all" else _number(value, "Step number")

    async def _tool_step(self, rest: str) -> Reply:
        identity, step = _split(rest, 2, "tool step <id> <n|all>")
        self._draft().update_tool(identity, "step_num", self._step_value(step))
        return Reply(f"Tool `{identity}` applies to {'all steps' if step.lower() == 'all' else f'step {step}'}.")

    async def _part_step(self, rest: str) -> Reply:
        identity, step = _split(rest, 2, "part step <id> <n|all>")
        self._draft().update_part(identity, "step_num", self._step_value(step))
        return Reply(f"Part `{identity}` applies to {'all steps' if step.lower() == 'all' else f'step {step}'}.")

    async def _remove_tool(self, rest: str) -> Reply:
        self._draft().remove_tool(rest)
        return Reply(f"Removed tool `{rest}`.")

    async def _remove_part(self, rest: str) -> Reply:
        self._draft().remove_part(rest)
        return Reply(f"Removed part `{rest}`.")

    async def _remove_url(self, rest: str) -> Reply:
        self._draft().remove_url(rest)
        return Reply(f"Removed reference URL `{rest}`.")

    # ============================================================
    # Notifications
    # ============================================================

    async def _notifications(self, rest: str) -> Reply:
        await self.notifications.refetch()
        return Reply(format_notification_list(self.notifications.tracker.notifications, self.badge))

    async def _read(self, rest: str) -> Reply:
        matches = [n for n in self.notifications.tracker.notifications if str(n.id) == rest]
        if not matches:
            raise PreconditionError(f"No unread notification with id {rest}")
        if not await self.notifications.mark_as_read(matches[0].id):
            return Reply(STALE_NOTIFICATIONS)
        return Reply(f"Notification {rest} marked as read.")

    async def _read_all(self, rest: str) -> Reply:
        if not await self.notifications.mark_all_as_read():
            return Reply(STALE_NOTIFICATIONS)
        return Reply("All notifications marked as read.")

    async def _tickets(self, rest: str) -> Reply:
        self.notifications.dismiss_all()
        return Reply("Notifications dismissed. Only new arrivals will be shown.")

    async def _help(self, rest: str) -> Reply:
        return Reply(UI["welcome_message"])
