"""Unit tests for the generate/save conversion lifecycle."""

import asyncio

import pytest

from orchestration.error_handler import TransportFailure
from orchestration.lifecycle import ConversionLifecycle
from orchestration.state import GenerationStatus
from sequences.state import PreconditionError
from sequences.validation import INVALID_KEY_MESSAGE


def make_lifecycle(client, allocator, **kwargs) -> ConversionLifecycle:
    kwargs.setdefault("min_loading_seconds", 0)
    return ConversionLifecycle(client, allocator=allocator, **kwargs)


class TestGenerate:
    """Test suite for draft generation."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_generate_populates_draft(self, fake_client, allocator, generated_payload):
        """Test a successful generation builds the draft and marks it ready."""
        fake_client.generated[42] = generated_payload
        lifecycle = make_lifecycle(fake_client, allocator)

        model = await lifecycle.generate(42)

        assert model is lifecycle.model
        assert model.draft.name == "GFCI Outlet Reset"
        assert model.draft.ticket_id == 42
        assert lifecycle.status == GenerationStatus.READY
        assert lifecycle.error is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_newer_generation_wins(self, fake_client, allocator, generated_payload):
        """Test a superseded generation never writes state."""
        fake_client.generated[1] = {**generated_payload, "sequence_name": "Stale"}
        fake_client.generated[2] = {**generated_payload, "sequence_name": "Fresh"}
        fake_client.generate_gates[1] = asyncio.Event()
        fake_client.generate_gates[2] = asyncio.Event()
        lifecycle = make_lifecycle(fake_client, allocator)

        first = asyncio.create_task(lifecycle.generate(1))
        await asyncio.sleep(0)
        second = asyncio.create_task(lifecycle.generate(2))
        await asyncio.sleep(0)

        fake_client.generate_gates[1].set()
        assert await first is None
        assert lifecycle.model is None
        assert lifecycle.status == GenerationStatus.LOADING
        assert lifecycle.error is None

        fake_client.generate_gates[2].set()
        model = await second

        assert model.draft.name == "Fresh"
        assert lifecycle.model is model
        assert lifecycle.status == GenerationStatus.READY
        assert lifecycle.errors == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_minimum_loading_time(self, fake_client, allocator, generated_payload):
        """Test a fast backend still waits for the minimum loading time."""
        fake_client.generated[42] = generated_payload
        lifecycle = make_lifecycle(fake_client, allocator, min_loading_seconds=0.05)
        loop = asyncio.get_running_loop()

        started = loop.time()
        await lifecycle.generate(42)

        assert loop.time() - started >= 0.045

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure_then_retry(self, fake_client, allocator, generated_payload):
        """Test a transport failure is surfaced and retry reissues the request."""
        fake_client.generate_errors[42] = TransportFailure("Ticket not found", status_code=404)
        lifecycle = make_lifecycle(fake_client, allocator)

        assert await lifecycle.generate(42) is None
        assert lifecycle.status == GenerationStatus.FAILED
        assert lifecycle.error == "Ticket not found"
        assert lifecycle.errors[0]["source"] == "generate"
        assert lifecycle.errors[0]["recoverable"] is True

        del fake_client.generate_errors[42]
        fake_client.generated[42] = generated_payload
        model = await lifecycle.retry()

        assert model is not None
        assert lifecycle.status == GenerationStatus.READY
        assert lifecycle.error is None
        assert fake_client.generate_calls == [42, 42]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unexpected_error_fails_generation(self, fake_client, allocator):
        """Test an unexpected exception is reported as a failure, not raised."""
        lifecycle = make_lifecycle(fake_client, allocator)

        assert await lifecycle.generate(7) is None
        assert lifecycle.status == GenerationStatus.FAILED
        assert lifecycle.error.startswith("Unexpected error")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retry_without_generation(self, fake_client, allocator):
        """Test retry refuses when nothing was generated yet."""
        lifecycle = make_lifecycle(fake_client, allocator)

        with pytest.raises(PreconditionError):
            await lifecycle.retry()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self, fake_client, allocator, generated_payload):
        """Test cancelling the caller cancels the request too."""
        fake_client.generated[42] = generated_payload
        fake_client.generate_gates[42] = asyncio.Event()
        lifecycle = make_lifecycle(fake_client, allocator)

        caller = asyncio.create_task(lifecycle.generate(42))
        await asyncio.sleep(0)
        caller.cancel()

        with pytest.raises(asyncio.CancelledError):
            await caller
        assert lifecycle.model is None
        assert lifecycle.status == GenerationStatus.IDLE

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_caller_cancellation_keeps_previous_draft_ready(
        self, fake_client, allocator, generated_payload
    ):
        """Test a cancelled regeneration leaves the earlier draft ready."""
        fake_client.generated[42] = generated_payload
        fake_client.generated[43] = generated_payload
        lifecycle = make_lifecycle(fake_client, allocator)
        model = await lifecycle.generate(42)
        fake_client.generate_gates[43] = asyncio.Event()

        caller = asyncio.create_task(lifecycle.generate(43))
        await asyncio.sleep(0)
        caller.cancel()

        with pytest.raises(asyncio.CancelledError):
            await caller
        assert lifecycle.model is model
        assert lifecycle.status == GenerationStatus.READY

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"sequence_name": "X", "steps": ["not a dict"]},
            ["not", "a", "draft"],
        ],
    )
    async def test_unreadable_draft_fails_generation(self, fake_client, allocator, generated_payload, body):
        """Test a malformed success body is a retryable transport failure."""
        fake_client.generated[5] = body
        lifecycle = make_lifecycle(fake_client, allocator)

        assert await lifecycle.generate(5) is None
        assert lifecycle.status == GenerationStatus.FAILED
        assert "unreadable draft" in lifecycle.error
        assert lifecycle.errors[0]["error_type"] == "TransportFailure"
        assert lifecycle.errors[0]["recoverable"] is True

        fake_client.generated[5] = generated_payload
        assert await lifecycle.retry() is not None
        assert lifecycle.status == GenerationStatus.READY


class TestSave:
    """Test suite for saving a draft."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_save_calls_completion_callback(self, fake_client, allocator, generated_payload):
        """Test a successful save reports the key to the callback."""
        saved = []
        fake_client.generated[42] = generated_payload
        lifecycle = make_lifecycle(fake_client, allocator, on_saved=saved.append)
        await lifecycle.generate(42)

        key = await lifecycle.save()

        assert key == "gfci-outlet-reset"
        assert saved == ["gfci-outlet-reset"]
        assert lifecycle.saving is False
        assert fake_client.saved_payloads[0]["sequence_key"] == "gfci-outlet-reset"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_async_completion_callback(self, fake_client, allocator, model_with_steps):
        """Test an async callback is awaited."""
        saved = []

        async def on_saved(key):
            saved.append(key)

        lifecycle = make_lifecycle(fake_client, allocator, on_saved=on_saved)

        await lifecycle.save(model_with_steps(1))

        assert saved == ["breaker-keeps-tripping"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_validation_blocks_network(self, fake_client, allocator, model_with_steps):
        """Test an invalid draft is rejected before any request is sent."""
        model = model_with_steps(1)
        model.set_name("???")
        lifecycle = make_lifecycle(fake_client, allocator)

        assert await lifecycle.save(model) is None

        assert fake_client.saved_payloads == []
        assert lifecycle.error == INVALID_KEY_MESSAGE
        assert lifecycle.validation_issues[0].field == "name"
        assert lifecycle.saving is False
        assert lifecycle.errors[0]["error_type"] == "ValidationFailure"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_save_failure_keeps_draft(self, fake_client, allocator, generated_payload):
        """Test a failed save surfaces the server message and keeps the draft."""
        fake_client.generated[42] = generated_payload
        fake_client.save_error = TransportFailure("Sequence key already exists", status_code=409)
        lifecycle = make_lifecycle(fake_client, allocator)
        model = await lifecycle.generate(42)

        assert await lifecycle.save() is None

        assert lifecycle.error == "Sequence key already exists"
        assert lifecycle.model is model
        assert lifecycle.saving is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_newer_save_wins(self, fake_client, allocator, model_with_steps):
        """Test a superseded save does not report completion."""
        saved = []
        fake_client.save_gate = asyncio.Event()
        lifecycle = make_lifecycle(fake_client, allocator, on_saved=saved.append)
        model = model_with_steps(1)

        first = asyncio.create_task(lifecycle.save(model))
        await asyncio.sleep(0)
        second = asyncio.create_task(lifecycle.save(model))
        await asyncio.sleep(0)
        fake_client.save_gate.set()

        assert await first is None
        assert await second == "breaker-keeps-tripping"
        assert saved == ["breaker-keeps-tripping"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_save_without_draft(self, fake_client, allocator):
        """Test save refuses when there is no draft."""
        lifecycle = make_lifecycle(fake_client, allocator)

        with pytest.raises(PreconditionError):
            await lifecycle.save()


class TestTeardown:
    """Test suite for discarding drafts and closing the session."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_close_cancels_in_flight_generation(self, fake_client, allocator, generated_payload):
        """Test nothing is written after close."""
        fake_client.generated[42] = generated_payload
        fake_client.generate_gates[42] = asyncio.Event()
        lifecycle = make_lifecycle(fake_client, allocator)

        pending = asyncio.create_task(lifecycle.generate(42))
        await asyncio.sleep(0)
        await lifecycle.close()

        assert await pending is None
        assert lifecycle.model is None
        assert lifecycle.errors == []
        with pytest.raises(PreconditionError):
            await lifecycle.generate(42)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_discard_resets_state(self, fake_client, allocator, generated_payload):
        """Test discard drops the draft and returns to idle."""
        fake_client.generated[42] = generated_payload
        lifecycle = make_lifecycle(fake_client, allocator)
        await lifecycle.generate(42)

        await lifecycle.discard()

        assert lifecycle.model is None
        assert lifecycle.status == GenerationStatus.IDLE
        assert lifecycle.closed is False
