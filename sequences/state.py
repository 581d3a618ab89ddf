"""
Sequence Draft State
====================
Data model for the in-memory sequence draft: the root aggregate and the
steps, tools, parts and reference URLs attached to it.

Steps are held in display order and carry a stable identity. Step numbers
are positional (1..N) and are only computed when presenting or serialising
the draft. Tools and parts reference a step by its identity, so reordering
or removing other steps never requires repairing those references.
"""

from dataclasses import dataclass, field
from typing import Literal, Optional

SequenceType = Literal["troubleshooting", "linear"]
TriggerKind = Literal["success", "failure"]
UrlCategory = Literal["tool", "video", "documentation"]


class PreconditionError(Exception):
    """An edit operation was invoked in a state where it must refuse."""
    pass


# ==============================
# Sub-entities
# ==============================

@dataclass
class Step:
    identity: str
    message_template: str = ""
    success_triggers: list[str] = field(default_factory=list)
    failure_triggers: list[str] = field(default_factory=list)
    doc_url: str = ""
    doc_title: str = ""
    # Both set or both None
    handoff_trigger: Optional[str] = None
    handoff_sequence_key: Optional[str] = None

    @property
    def has_handoff(self) -> bool:
        return self.handoff_trigger is not None


@dataclass
class Tool:
    identity: str
    tool_name: str = ""
    tool_description: str = ""
    tool_link: str = ""
    is_required: bool = True
    step_id: Optional[str] = None           # None = applies to all steps


@dataclass
class Part:
    identity: str
    part_name: str = ""
    part_number: str = ""
    part_description: str = ""
    part_link: str = ""
    estimated_price: str = ""               # Kept as typed text until save
    is_required: bool = True
    step_id: Optional[str] = None           # None = applies to all steps


@dataclass
class ReferenceUrl:
    identity: str
    title: str = ""
    url: str = ""
    category: UrlCategory = "documentation"


# ==============================
# Root aggregate
# ==============================

@dataclass
class SequenceDraft:
    ticket_id: Optional[int] = None
    name: str = ""
    description: str = ""
    category: str = "Other"
    sequence_type: SequenceType = "troubleshooting"
    is_active: bool = False
    keywords: list[str] = field(default_factory=list)
    steps: list[Step] = field(default_factory=list)
    tools: list[Tool] = field(default_factory=list)
    parts: list[Part] = field(default_factory=list)
    urls: list[ReferenceUrl] = field(default_factory=list)
    # View state: step identity -> expanded
    expanded: dict[str, bool] = field(default_factory=dict)
