"""
Formatting Tools
================
Markdown card builders and formatters for rich Chainlit display.
Generates draft sequence cards, step details, notification toasts,
badge labels and validation summaries.
"""

from datetime import datetime, timezone
from typing import Optional

from config.settings import TOASTS
from sequences.draft import SequenceDraftModel
from sequences.state import Step
from sequences.validation import ValidationIssue


def badge_label(count: int) -> Optional[str]:
    """Badge text for a count: None when zero, '9+' above the cap."""
    if count <= 0:
        return None
    cap = TOASTS["badge_cap"]
    return f"{cap}+" if count > cap else str(count)


def relative_time(moment: datetime, now: Optional[datetime] = None) -> str:
    """'Just now', '5m ago', '3h ago', else the date."""
    now = now or datetime.now(timezone.utc)
    minutes = int((now - moment).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return moment.strftime("%b %d, %Y")


def format_step(number: int, step: Step, expanded: bool = True) -> str:
    """Format one step; collapsed steps show only the first line of the message."""
    handoff = ""
    if step.has_handoff:
        handoff = f' | ↪ If "{step.handoff_trigger}" → `{step.handoff_sequence_key}`'

    message = step.message_template.strip() or "*No message yet*"
    if not expanded:
        first_line = message.splitlines()[0]
        return f"**Step {number}** ▸ {first_line[:80]}{'...' if len(first_line) > 80 else ''}{handoff}\n"

    quoted = message.replace("\n", "\n> ")
    text = f"**Step {number}**{handoff}\n> {quoted}\n"
    if step.success_triggers:
        text += f"- ✅ Success: {', '.join(f'`{t}`' for t in step.success_triggers)}\n"
    if step.failure_triggers:
        text += f"- ❌ Failure: {', '.join(f'`{t}`' for t in step.failure_triggers)}\n"
    if step.doc_url:
        text += f"- 📄 [{step.doc_title or step.doc_url}]({step.doc_url})\n"
    return text


def format_draft_card(model: SequenceDraftModel) -> str:
    """Build a rich markdown card for a draft sequence."""
    draft = model.draft
    key = model.sequence_key or "(invalid name)"
    status = "🟢 Active on save" if draft.is_active else "⚪ Inactive on save"

    card = f"""## Draft Sequence: {draft.name or 'Untitled'}

| Field | Details |
|-------|---------|
| **Key** | `{key}` |
| **Source Ticket** | {draft.ticket_id if draft.ticket_id is not None else 'N/A'} |
| **Category** | {draft.category} |
| **Type** | {draft.sequence_type.title()} |
| **Status** | {status} |
| **Keywords** | {', '.join(draft.keywords) if draft.keywords else '-'} |

{draft.description or '*No description provided.*'}

### Steps ({model.step_count})

"""

    expanded = model.expanded_steps()
    for number, step in model.numbered_steps():
        card += format_step(number, step, expanded.get(number, False)) + "\n"

    if draft.tools:
        card += "### Tools\n\n"
        card += "| ID | Name | Required | Step | Link |\n"
        card += "|----|------|----------|------|------|\n"
        for tool in draft.tools:
            step_ref = model.step_ref(tool)
            card += (
                f"| {tool.identity} | {tool.tool_name or '*unnamed*'} "
                f"| {'Yes' if tool.is_required else 'No'} "
                f"| {step_ref if step_ref is not None else 'All'} "
                f"| {tool.tool_link or '-'} |\n"
            )
        card += "\n"

    if draft.parts:
        card += "### Parts\n\n"
        card += "| ID | Name | Part # | Est. Price | Required | Step |\n"
        card += "|----|------|--------|------------|----------|------|\n"
        for part in draft.parts:
            step_ref = model.step_ref(part)
            price = f"${part.estimated_price}" if part.estimated_price else "-"
            card += (
                f"| {part.identity} | {part.part_name or '*unnamed*'} "
                f"| {part.part_number or '-'} | {price} "
                f"| {'Yes' if part.is_required else 'No'} "
                f"| {step_ref if step_ref is not None else 'All'} |\n"
            )
        card += "\n"

    if draft.urls:
        card += "### Reference URLs\n\n"
        for url in draft.urls:
            card += f"- `{url.identity}` [{url.category}] {url.title or url.url}: {url.url}\n"

    return card


def format_validation_issues(issues: list[ValidationIssue]) -> str:
    """Format pre-save validation issues as a bullet list."""
    if not issues:
        return "*No problems found.*"
    lines = ["**The draft can't be saved yet:**", ""]
    lines += [f"- {issue.message}" for issue in issues]
    return "\n".join(lines)


def format_notification(body: str, created_at: datetime, now: Optional[datetime] = None) -> str:
    """Format a notification for a toast or the notification list."""
    return f"🔔 {body} *({relative_time(created_at, now)})*"


def format_toast(notification, badge: Optional[str]) -> str:
    """Toast text with the session unread badge."""
    text = format_notification(notification.body, notification.created_at)
    return f"{text}\n\n*Unread: {badge}*" if badge else text


def format_notification_list(
    notifications: list, badge: Optional[str], now: Optional[datetime] = None
) -> str:
    """Format the session's unread notifications under their badge label."""
    if not notifications:
        return "*No new notifications.*"
    text = f"### Notifications ({badge or len(notifications)})\n\n"
    for n in notifications:
        text += f"- `{n.id}` {format_notification(n.body, n.created_at, now)}\n"
    return text


def format_handoff_targets(targets: list[tuple[str, str]]) -> str:
    """Format active sequences that a step can hand off to."""
    if not targets:
        return "*No active sequences found.*"
    text = f"### Active Sequences ({len(targets)})\n\n"
    text += "| Key | Name |\n"
    text += "|-----|------|\n"
    for key, name in targets:
        text += f"| `{key}` | {name} |\n"
    return text
