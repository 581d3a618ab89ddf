"""
Validation Gate
===============
Checks a draft before it is sent to the save endpoint. Any issue blocks
the save; nothing here touches the network.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from config.settings import SEQUENCE
from sequences.draft import SequenceDraftModel
from sequences.keys import is_valid_key

INVALID_KEY_MESSAGE = (
    "Invalid sequence name. Please use letters, numbers, and hyphens only."
)


@dataclass
class ValidationIssue:
    field: str
    message: str


def is_valid_url(value: str) -> bool:
    """Absolute http(s) URL with a host. Rejects javascript: and friends."""
    try:
        parts = urlsplit(value.strip())
    except ValueError:
        return False
    if parts.scheme.lower() not in SEQUENCE["allowed_url_schemes"] or not parts.netloc:
        return False
    # Hosts never contain spaces or control characters
    return not any(ch.isspace() or not ch.isprintable() for ch in parts.netloc)


def _check_url(issues: list, field: str, label: str, value: Optional[str]) -> None:
    if value and value.strip() and not is_valid_url(value):
        issues.append(
            ValidationIssue(
                field=field,
                message=f"{label} must be a valid http:// or https:// URL",
            )
        )


def validate_draft(model: SequenceDraftModel) -> list[ValidationIssue]:
    """
    Run every pre-save check.

    Returns:
        Issues in display order; empty when the draft may be saved.
    """
    issues: list[ValidationIssue] = []
    draft = model.draft

    if not is_valid_key(model.sequence_key):
        issues.append(ValidationIssue(field="name", message=INVALID_KEY_MESSAGE))

    for number, step in model.numbered_steps():
        _check_url(issues, f"steps.{number}.doc_url", f"Step {number} documentation URL", step.doc_url)
        if (step.handoff_trigger is None) != (step.handoff_sequence_key is None):
            issues.append(
                ValidationIssue(
                    field=f"steps.{number}.handoff",
                    message=f"Step {number} handoff needs both a trigger and a target sequence",
                )
            )

    for index, url in enumerate(draft.urls, start=1):
        _check_url(issues, f"urls.{url.identity}", f"Reference URL {index}", url.url)

    for index, tool in enumerate(draft.tools, start=1):
        label = f"Tool '{tool.tool_name}' link" if tool.tool_name else f"Tool {index} link"
        _check_url(issues, f"tools.{tool.identity}", label, tool.tool_link)

    for index, part in enumerate(draft.parts, start=1):
        label = f"Part '{part.part_name}' link" if part.part_name else f"Part {index} link"
        _check_url(issues, f"parts.{part.identity}", label, part.part_link)

    for item in [*draft.tools, *draft.parts]:
        if item.step_id is not None and model.step_ref(item) is None:
            issues.append(
                ValidationIssue(
                    field=f"{item.identity}.step_num",
                    message=f"{item.identity} references a step that no longer exists",
                )
            )

    return issues
