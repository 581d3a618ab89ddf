"""
Trigger-List Editor
===================
Per-step success/failure trigger phrases. Lists keep insertion order and
allow duplicates: editing is positional, so two identical phrases are two
separate entries.
"""

from typing import Callable

from sequences.state import PreconditionError, Step, TriggerKind

TRIGGER_FIELDS = {
    "success": "success_triggers",
    "failure": "failure_triggers",
}


def _field_for(kind: str) -> str:
    field_name = TRIGGER_FIELDS.get(kind)
    if field_name is None:
        raise PreconditionError(
            f"Unknown trigger kind '{kind}'. Use 'success' or 'failure'."
        )
    return field_name


class TriggerListEditor:
    """Edits the trigger lists of steps looked up by step number."""

    def __init__(self, resolve_step: Callable[[int], Step]):
        self._resolve_step = resolve_step

    def triggers(self, step_number: int, kind: TriggerKind) -> list[str]:
        step = self._resolve_step(step_number)
        return list(getattr(step, _field_for(kind)))

    def add_trigger(self, step_number: int, kind: TriggerKind, text: str) -> bool:
        """
        Append a trigger phrase to a step.

        Returns:
            False if the text was blank and nothing was added.
        """
        field_name = _field_for(kind)
        phrase = (text or "").strip()
        if not phrase:
            return False
        step = self._resolve_step(step_number)
        getattr(step, field_name).append(phrase)
        return True

    def remove_trigger(self, step_number: int, kind: TriggerKind, index: int) -> str:
        """Remove the trigger at a position and return it."""
        field_name = _field_for(kind)
        step = self._resolve_step(step_number)
        triggers = getattr(step, field_name)
        if not 0 <= index < len(triggers):
            raise PreconditionError(
                f"Step {step_number} has no {kind} trigger at position {index}"
            )
        return triggers.pop(index)
