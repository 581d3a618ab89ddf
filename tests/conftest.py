"""Pytest configuration and fixtures."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from sequences.draft import SequenceDraftModel
from sequences.identity import IdentityAllocator
from services.api_client import ConsoleApiClient

SESSION_START = datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc)


# Controllable time source
class FakeClock:
    def __init__(self, now: datetime = SESSION_START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeApiClient:
    """
    Stand-in for ConsoleApiClient.

    Generation calls can be held open per ticket with an asyncio.Event so
    tests decide the order in which responses arrive.
    """

    def __init__(self):
        self.generated: dict[int, dict] = {}
        self.generate_gates: dict[int, asyncio.Event] = {}
        self.generate_errors: dict[int, Exception] = {}
        self.generate_calls: list[int] = []
        self.saved_payloads: list[dict] = []
        self.save_gate: asyncio.Event | None = None
        self.save_error: Exception | None = None
        self.unread: list[dict] | dict = []
        self.unread_error: Exception | None = None
        self.active: list[dict] = []
        self.active_error: Exception | None = None
        self.read_ids: list = []
        self.read_all_calls = 0
        self.mark_error: Exception | None = None
        self.closed = False

    async def generate_sequence(self, ticket_id: int) -> dict:
        self.generate_calls.append(ticket_id)
        gate = self.generate_gates.get(ticket_id)
        if gate is not None:
            await gate.wait()
        if ticket_id in self.generate_errors:
            raise self.generate_errors[ticket_id]
        return self.generated[ticket_id]

    async def create_sequence_from_ticket(self, payload: dict) -> dict:
        self.saved_payloads.append(payload)
        if self.save_gate is not None:
            await self.save_gate.wait()
        if self.save_error is not None:
            raise self.save_error
        return {"sequence_key": payload["sequence_key"]}

    async def get_unread_notifications(self) -> list[dict]:
        if self.unread_error is not None:
            raise self.unread_error
        return list(self.unread) if isinstance(self.unread, list) else self.unread

    async def mark_notification_read(self, notification_id) -> None:
        if self.mark_error is not None:
            raise self.mark_error
        self.read_ids.append(notification_id)

    async def mark_all_notifications_read(self) -> None:
        if self.mark_error is not None:
            raise self.mark_error
        self.read_all_calls += 1

    async def get_active_sequences(self) -> list[dict]:
        if self.active_error is not None:
            raise self.active_error
        return list(self.active)

    async def aclose(self) -> None:
        self.closed = True


def notification(notification_id, created_at: datetime, body: str = "Ticket updated") -> dict:
    """Unread notification as the backend returns it."""
    return {
        "id": notification_id,
        "created_at": created_at.isoformat().replace("+00:00", "Z"),
        "message_body": body,
        "ticket_id": 42,
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def allocator() -> IdentityAllocator:
    return IdentityAllocator()


@pytest.fixture
def fake_client() -> FakeApiClient:
    return FakeApiClient()


@pytest.fixture
def mock_transport_client():
    """
    Factory for a ConsoleApiClient backed by httpx.MockTransport.

    The handler receives each httpx.Request and returns an httpx.Response.
    """

    def create(handler) -> ConsoleApiClient:
        transport = httpx.MockTransport(handler)
        return ConsoleApiClient(
            client=httpx.AsyncClient(transport=transport, base_url="http://test/api")
        )

    return create


@pytest.fixture
def json_response():
    def create(status_code: int, body) -> httpx.Response:
        return httpx.Response(
            status_code,
            content=json.dumps(body).encode(),
            headers={"content-type": "application/json"},
        )

    return create


@pytest.fixture
def model_with_steps(allocator):
    """Factory for a draft with `count` steps, messages 'Step 1'..'Step N'."""

    def create(count: int = 3) -> SequenceDraftModel:
        model = SequenceDraftModel(allocator=allocator)
        model.set_name("Breaker keeps tripping")
        for number in range(1, count + 1):
            model.add_step()
            model.update_step(number, "message_template", f"Step {number}")
        return model

    return create


# Sample generate-sequence response
@pytest.fixture
def generated_payload() -> dict:
    return {
        "sequence_name": "GFCI Outlet Reset",
        "description": "Walk the resident through resetting a tripped GFCI outlet.",
        "category": "Electrical",
        "keywords": ["gfci", "outlet", "GFCI", "no power"],
        "steps": [
            {
                "step_num": 2,
                "message_template": "Press the RESET button firmly. Does the outlet have power now?",
                "success_triggers": ["yes", "works"],
                "failure_triggers": ["no"],
                "doc_url": "https://example.com/gfci",
                "doc_title": "GFCI guide",
            },
            {
                "step_num": 1,
                "message_template": "Find the outlet with TEST and RESET buttons.",
                "success_triggers": ["found it"],
                "failure_triggers": ["can't find"],
            },
            {
                "step_num": 3,
                "message_template": "Check the breaker panel.",
                "success_triggers": [],
                "failure_triggers": ["still no power"],
                "handoff_trigger": "panel",
                "handoff_sequence_key": "breaker-panel-reset",
            },
        ],
        "urls": [
            {"title": "Video", "url": "https://example.com/video", "category": "video"},
            {"title": "Manual", "url": "https://example.com/manual"},
        ],
        "tools": [
            {"tool_name": "Flashlight", "tool_description": "", "tool_link": "", "step_num": 1},
            {"tool_name": "Outlet tester", "is_required": False, "step_num": None},
        ],
        "parts": [
            {
                "part_name": "GFCI outlet",
                "part_number": "GF-15A",
                "estimated_price": 18.5,
                "step_num": 2,
            },
            {"part_name": "Breaker", "step_num": 7},
        ],
    }


@pytest.fixture
def make_notification():
    return notification
