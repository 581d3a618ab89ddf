"""
Sequence Draft Model
====================
Structural edit operations on a SequenceDraft. Every operation leaves the
draft's invariants intact:

- steps are numbered 1..N by position, with no gaps or duplicates
- a tool or part either applies to all steps or references a step that
  exists in the draft
- expansion state only mentions steps that exist
- a step handoff is configured as a unit (trigger and target together)

Operations address steps by their current number, and tools, parts and
URLs by identity.
"""

import logging
from dataclasses import fields
from typing import Any, Literal, Optional, Union

from config.settings import SEQUENCE
from sequences.identity import IdentityAllocator, get_allocator
from sequences.keys import generate_key
from sequences.state import (
    Part,
    PreconditionError,
    ReferenceUrl,
    SequenceDraft,
    SequenceType,
    Step,
    Tool,
    TriggerKind,
)
from sequences.triggers import TriggerListEditor

logger = logging.getLogger(__name__)

# Step fields that update_step() may set directly
EDITABLE_STEP_FIELDS = {
    "message_template",
    "doc_url",
    "doc_title",
    "success_triggers",
    "failure_triggers",
}
HANDOFF_FIELDS = {"handoff_trigger", "handoff_sequence_key"}


def _editable_fields(entity_type: type) -> set[str]:
    return {f.name for f in fields(entity_type)} - {"identity", "step_id"}


class SequenceDraftModel:
    """Owns one SequenceDraft and applies edits to it."""

    def __init__(
        self,
        draft: Optional[SequenceDraft] = None,
        allocator: Optional[IdentityAllocator] = None,
    ):
        self._draft = draft if draft is not None else SequenceDraft()
        self._allocator = allocator or get_allocator()
        self._triggers = TriggerListEditor(self._step_at)

    @property
    def draft(self) -> SequenceDraft:
        return self._draft

    @property
    def allocator(self) -> IdentityAllocator:
        return self._allocator

    @property
    def sequence_key(self) -> str:
        return generate_key(self._draft.name)

    # =========================================================================
    # Step lookup
    # =========================================================================

    @property
    def step_count(self) -> int:
        return len(self._draft.steps)

    def step(self, number: int) -> Step:
        """The step currently at a 1-based number."""
        return self._step_at(number)

    def numbered_steps(self) -> list[tuple[int, Step]]:
        return [(index + 1, step) for index, step in enumerate(self._draft.steps)]

    def step_number_of(self, step_id: Optional[str]) -> Optional[int]:
        """Current number of the step with this identity, or None."""
        if step_id is None:
            return None
        for index, step in enumerate(self._draft.steps):
            if step.identity == step_id:
                return index + 1
        return None

    def step_ref(self, item: Union[Tool, Part]) -> Optional[int]:
        """The step number a tool or part applies to; None means all steps."""
        return self.step_number_of(item.step_id)

    def _step_at(self, number: int) -> Step:
        if not isinstance(number, int) or not 1 <= number <= len(self._draft.steps):
            raise PreconditionError(f"Step {number} does not exist")
        return self._draft.steps[number - 1]

    # =========================================================================
    # Header fields
    # =========================================================================

    def set_name(self, name: str) -> None:
        self._draft.name = name

    def set_description(self, description: str) -> None:
        self._draft.description = description

    def set_category(self, category: str) -> None:
        if category not in SEQUENCE["categories"]:
            raise PreconditionError(
                f"Unknown category '{category}'. "
                f"Choose one of: {', '.join(SEQUENCE['categories'])}"
            )
        self._draft.category = category

    def set_active(self, is_active: bool) -> None:
        self._draft.is_active = bool(is_active)

    def set_sequence_type(self, sequence_type: SequenceType) -> None:
        """
        Change the sequence type.

        Linear sequences auto-advance, so switching to linear clears the
        success triggers of every step. Switching back does not restore them.
        """
        if sequence_type not in SEQUENCE["sequence_types"]:
            raise PreconditionError(f"Unknown sequence type '{sequence_type}'")
        if sequence_type == "linear":
            for step in self._draft.steps:
                step.success_triggers = []
        self._draft.sequence_type = sequence_type

    # =========================================================================
    # Keywords
    # =========================================================================

    def add_keyword(self, text: str) -> bool:
        """Add a keyword unless blank or already present (case-insensitive)."""
        keyword = (text or "").strip()
        if not keyword:
            return False
        existing = {k.casefold() for k in self._draft.keywords}
        if keyword.casefold() in existing:
            return False
        self._draft.keywords.append(keyword)
        return True

    def remove_keyword(self, index: int) -> str:
        if not 0 <= index < len(self._draft.keywords):
            raise PreconditionError(f"No keyword at position {index}")
        return self._draft.keywords.pop(index)

    # =========================================================================
    # Steps
    # =========================================================================

    def add_step(self) -> int:
        """Append an empty, expanded step and return its number."""
        step = Step(identity=self._allocator.allocate("step"))
        self._draft.steps.append(step)
        self._draft.expanded[step.identity] = True
        return len(self._draft.steps)

    def remove_step(self, number: int) -> Step:
        """
        Remove a step; later steps move up by one.

        Tools and parts attached to the removed step are kept and now apply
        to all steps. The last remaining step cannot be removed.
        """
        step = self._step_at(number)
        if len(self._draft.steps) == 1:
            raise PreconditionError("A sequence must keep at least one step")

        self._draft.steps.remove(step)
        for item in [*self._draft.tools, *self._draft.parts]:
            if item.step_id == step.identity:
                item.step_id = None
        self._draft.expanded.pop(step.identity, None)

        logger.debug(f"Removed step {number}; {len(self._draft.steps)} steps remain")
        return step

    def move_step(self, number: int, direction: Literal["up", "down"]) -> int:
        """Swap a step with its neighbour. Returns the step's new number."""
        self._step_at(number)
        if direction not in ("up", "down"):
            raise PreconditionError(f"Unknown direction '{direction}'")
        target = number - 1 if direction == "up" else number + 1
        if not 1 <= target <= len(self._draft.steps):
            return number
        steps = self._draft.steps
        steps[number - 1], steps[target - 1] = steps[target - 1], steps[number - 1]
        return target

    def update_step(self, number: int, field_name: str, value: Any) -> None:
        """Set one field of a step in place."""
        if field_name in HANDOFF_FIELDS:
            raise PreconditionError(
                "Handoff trigger and target are set together; use set_handoff()"
            )
        if field_name not in EDITABLE_STEP_FIELDS:
            raise PreconditionError(f"Step has no editable field '{field_name}'")
        step = self._step_at(number)
        if field_name.endswith("_triggers"):
            value = [str(t) for t in value]
        setattr(step, field_name, value)

    def set_handoff(self, number: int, trigger: str, target_key: str) -> None:
        """Hand the conversation to another sequence when the trigger matches."""
        trigger = (trigger or "").strip()
        target_key = (target_key or "").strip()
        if not trigger or not target_key:
            raise PreconditionError("A handoff needs both a trigger and a target sequence")
        step = self._step_at(number)
        step.handoff_trigger = trigger
        step.handoff_sequence_key = target_key

    def clear_handoff(self, number: int) -> None:
        step = self._step_at(number)
        step.handoff_trigger = None
        step.handoff_sequence_key = None

    # =========================================================================
    # Expansion (view state)
    # =========================================================================

    def toggle_step(self, number: int) -> bool:
        step = self._step_at(number)
        expanded = not self._draft.expanded.get(step.identity, False)
        self._draft.expanded[step.identity] = expanded
        return expanded

    def expanded_steps(self) -> dict[int, bool]:
        """Expansion state keyed by current step number."""
        result = {}
        for number, step in self.numbered_steps():
            if step.identity in self._draft.expanded:
                result[number] = self._draft.expanded[step.identity]
        return result

    # =========================================================================
    # Triggers
    # =========================================================================

    def add_trigger(self, number: int, kind: TriggerKind, text: str) -> bool:
        return self._triggers.add_trigger(number, kind, text)

    def remove_trigger(self, number: int, kind: TriggerKind, index: int) -> str:
        return self._triggers.remove_trigger(number, kind, index)

    def triggers(self, number: int, kind: TriggerKind) -> list[str]:
        return self._triggers.triggers(number, kind)

    # =========================================================================
    # Tools, parts, URLs
    # =========================================================================

    def add_tool(self, **values: Any) -> str:
        tool = Tool(identity=self._allocator.allocate("tool"))
        self._apply(tool, values)
        self._draft.tools.append(tool)
        return tool.identity

    def add_part(self, **values: Any) -> str:
        part = Part(identity=self._allocator.allocate("part"))
        self._apply(part, values)
        self._draft.parts.append(part)
        return part.identity

    def add_url(self, **values: Any) -> str:
        url = ReferenceUrl(identity=self._allocator.allocate("url"))
        self._apply(url, values)
        self._draft.urls.append(url)
        return url.identity

    def update_tool(self, identity: str, field_name: str, value: Any) -> None:
        self._apply(self._find(self._draft.tools, identity, "tool"), {field_name: value})

    def update_part(self, identity: str, field_name: str, value: Any) -> None:
        self._apply(self._find(self._draft.parts, identity, "part"), {field_name: value})

    def update_url(self, identity: str, field_name: str, value: Any) -> None:
        self._apply(self._find(self._draft.urls, identity, "url"), {field_name: value})

    def remove_tool(self, identity: str) -> Tool:
        tool = self._find(self._draft.tools, identity, "tool")
        self._draft.tools.remove(tool)
        return tool

    def remove_part(self, identity: str) -> Part:
        part = self._find(self._draft.parts, identity, "part")
        self._draft.parts.remove(part)
        return part

    def remove_url(self, identity: str) -> ReferenceUrl:
        url = self._find(self._draft.urls, identity, "url")
        self._draft.urls.remove(url)
        return url

    @staticmethod
    def _find(items: list, identity: str, kind: str):
        for item in items:
            if item.identity == identity:
                return item
        raise PreconditionError(f"No {kind} with identity {identity}")

    def _apply(self, entity: Union[Tool, Part, ReferenceUrl], values: dict) -> None:
        allowed = _editable_fields(type(entity))
        for field_name, value in values.items():
            if field_name == "step_num" and not isinstance(entity, ReferenceUrl):
                # Assigned by number, stored by identity
                entity.step_id = None if value is None else self._step_at(value).identity
            elif field_name == "is_required":
                entity.is_required = bool(value)
            elif field_name == "category" and isinstance(entity, ReferenceUrl):
                if value not in SEQUENCE["url_categories"]:
                    raise PreconditionError(f"Unknown URL category '{value}'")
                entity.category = value
            elif field_name in allowed:
                setattr(entity, field_name, "" if value is None else str(value))
            else:
                raise PreconditionError(
                    f"{type(entity).__name__} has no editable field '{field_name}'"
                )
