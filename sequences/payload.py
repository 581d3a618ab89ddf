"""
Wire Payloads
=============
Conversion between the draft model and the backend's JSON shapes:

- generation response -> SequenceDraft (fresh identities for every entity)
- SequenceDraft -> POST /sequences/from-ticket body (identities stripped,
  step references rendered as contiguous step numbers)
"""

import logging
from typing import Any, Optional

from config.settings import SEQUENCE
from sequences.draft import SequenceDraftModel
from sequences.identity import IdentityAllocator, get_allocator
from sequences.state import Part, ReferenceUrl, SequenceDraft, Step, Tool

logger = logging.getLogger(__name__)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _triggers(value: Any) -> list[str]:
    return [str(t) for t in (value or []) if str(t).strip()]


def _step_num(raw: dict) -> Optional[int]:
    try:
        number = int(raw.get("step_num") or 0)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def draft_from_generated(
    data: dict,
    ticket_id: Optional[int] = None,
    allocator: Optional[IdentityAllocator] = None,
) -> SequenceDraftModel:
    """
    Build a fresh draft from a generate-sequence response.

    Args:
        data: Response body ({sequence_name, description, category, keywords,
              steps, urls, tools, parts})
        ticket_id: Source ticket the draft was generated from
        allocator: Identity source (defaults to the process-wide allocator)

    Returns:
        A SequenceDraftModel wrapping the new draft
    """
    allocator = allocator or get_allocator()

    category = data.get("category") or SEQUENCE["default_category"]
    if category not in SEQUENCE["categories"]:
        logger.warning(f"Unknown generated category '{category}', using default")
        category = SEQUENCE["default_category"]

    sequence_type = data.get("sequence_type") or SEQUENCE["default_sequence_type"]
    if sequence_type not in SEQUENCE["sequence_types"]:
        sequence_type = SEQUENCE["default_sequence_type"]

    draft = SequenceDraft(
        ticket_id=ticket_id,
        name=_text(data.get("sequence_name")),
        description=_text(data.get("description")),
        category=category,
        sequence_type=sequence_type,
    )
    model = SequenceDraftModel(draft, allocator=allocator)

    for keyword in data.get("keywords") or []:
        model.add_keyword(_text(keyword))

    # Server step numbers -> new step identities
    raw_steps = sorted(
        enumerate(data.get("steps") or []),
        key=lambda pair: (_step_num(pair[1]) or pair[0] + 1, pair[0]),
    )
    step_ids: dict[int, str] = {}
    for _, raw in raw_steps:
        step = Step(
            identity=allocator.allocate("step"),
            message_template=_text(raw.get("message_template")),
            success_triggers=_triggers(raw.get("success_triggers")),
            failure_triggers=_triggers(raw.get("failure_triggers")),
            doc_url=_text(raw.get("doc_url")),
            doc_title=_text(raw.get("doc_title")),
        )
        if raw.get("handoff_trigger") and raw.get("handoff_sequence_key"):
            step.handoff_trigger = _text(raw["handoff_trigger"])
            step.handoff_sequence_key = _text(raw["handoff_sequence_key"])
        if _step_num(raw):
            step_ids.setdefault(_step_num(raw), step.identity)
        draft.steps.append(step)

    if draft.sequence_type == "linear":
        for step in draft.steps:
            step.success_triggers = []

    def resolve_step(raw_item: dict) -> Optional[str]:
        step_num = _step_num(raw_item)
        if not step_num:
            return None
        if step_num not in step_ids:
            logger.warning(f"Generated item references missing step {step_num}; applying to all steps")
            return None
        return step_ids[step_num]

    for raw in data.get("urls") or []:
        url_category = raw.get("category") or SEQUENCE["default_url_category"]
        if url_category not in SEQUENCE["url_categories"]:
            url_category = SEQUENCE["default_url_category"]
        draft.urls.append(
            ReferenceUrl(
                identity=allocator.allocate("url"),
                title=_text(raw.get("title")),
                url=_text(raw.get("url")),
                category=url_category,
            )
        )

    for raw in data.get("tools") or []:
        draft.tools.append(
            Tool(
                identity=allocator.allocate("tool"),
                tool_name=_text(raw.get("tool_name")),
                tool_description=_text(raw.get("tool_description")),
                tool_link=_text(raw.get("tool_link")),
                is_required=raw.get("is_required") is not False,
                step_id=resolve_step(raw),
            )
        )

    for raw in data.get("parts") or []:
        price = raw.get("estimated_price")
        draft.parts.append(
            Part(
                identity=allocator.allocate("part"),
                part_name=_text(raw.get("part_name")),
                part_number=_text(raw.get("part_number")),
                part_description=_text(raw.get("part_description")),
                part_link=_text(raw.get("part_link")),
                estimated_price="" if price is None else str(price),
                is_required=raw.get("is_required") is not False,
                step_id=resolve_step(raw),
            )
        )

    if draft.steps:
        draft.expanded = {draft.steps[0].identity: True}

    return model


def parse_price(text: str) -> Optional[float]:
    """'$1,249.99' -> 1249.99; blank or unparseable -> None."""
    cleaned = (text or "").strip().replace("$", "").replace(",", "")
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def build_save_payload(model: SequenceDraftModel) -> dict:
    """Body for POST /sequences/from-ticket."""
    draft = model.draft

    steps = []
    for number, step in model.numbered_steps():
        steps.append(
            {
                "step_num": number,
                "message_template": step.message_template,
                "success_triggers": list(step.success_triggers),
                "failure_triggers": list(step.failure_triggers),
                "doc_url": step.doc_url.strip(),
                "doc_title": step.doc_title,
                "handoff_trigger": step.handoff_trigger,
                "handoff_sequence_key": step.handoff_sequence_key,
            }
        )

    tools = [
        {
            "tool_name": tool.tool_name.strip(),
            "tool_description": tool.tool_description,
            "tool_link": tool.tool_link.strip(),
            "is_required": tool.is_required,
            "step_num": model.step_ref(tool),
        }
        for tool in draft.tools
        if tool.tool_name.strip()
    ]

    parts = [
        {
            "part_name": part.part_name.strip(),
            "part_number": part.part_number,
            "part_description": part.part_description,
            "part_link": part.part_link.strip(),
            "estimated_price": parse_price(part.estimated_price),
            "is_required": part.is_required,
            "step_num": model.step_ref(part),
        }
        for part in draft.parts
        if part.part_name.strip()
    ]

    urls = [
        {"title": url.title, "url": url.url.strip(), "category": url.category}
        for url in draft.urls
    ]

    return {
        "ticket_id": draft.ticket_id,
        "sequence_key": model.sequence_key,
        "display_name": draft.name,
        "description": draft.description,
        "category": draft.category,
        "sequence_type": draft.sequence_type,
        "is_active": draft.is_active,
        "steps": steps,
        "urls": urls,
        "keywords": list(draft.keywords),
        "tools": tools,
        "parts": parts,
    }
