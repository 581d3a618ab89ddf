"""
Conversion Lifecycle
====================
Runs the two network operations of a ticket-to-sequence conversion:
generating a draft from a ticket and saving the edited draft.

At most one generation and one save are current at any time. Starting a
new one cancels the previous one (last caller wins), and a cancelled or
superseded request never writes state. Generation also waits for a
minimum loading time so a fast backend still shows a loading state.

Generation status: IDLE -> LOADING -> READY | FAILED, and any state can
go back to LOADING when a new generation starts.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from config.settings import LIFECYCLE
from orchestration.error_handler import (
    TransportFailure,
    ValidationFailure,
    create_error_record,
    describe_error,
)
from orchestration.state import ErrorRecord, GenerationStatus
from sequences.draft import SequenceDraftModel
from sequences.identity import IdentityAllocator
from sequences.payload import build_save_payload, draft_from_generated
from sequences.state import PreconditionError
from sequences.validation import ValidationIssue, validate_draft
from services.api_client import ConsoleApiClient

logger = logging.getLogger(__name__)

SavedCallback = Callable[[str], Union[None, Awaitable[None]]]


class ConversionLifecycle:
    """Owns the draft of one editing session and the requests that feed it."""

    def __init__(
        self,
        client: ConsoleApiClient,
        on_saved: Optional[SavedCallback] = None,
        min_loading_seconds: Optional[float] = None,
        allocator: Optional[IdentityAllocator] = None,
    ):
        self._client = client
        self._on_saved = on_saved
        self._min_loading_seconds = (
            LIFECYCLE["min_loading_seconds"]
            if min_loading_seconds is None
            else min_loading_seconds
        )
        self._allocator = allocator

        self.status = GenerationStatus.IDLE
        self.error: Optional[str] = None
        self.validation_issues: list[ValidationIssue] = []
        self.saving = False
        self.model: Optional[SequenceDraftModel] = None
        self.ticket_id: Optional[int] = None
        self.errors: list[ErrorRecord] = []

        self._generate_task: Optional[asyncio.Task] = None
        self._save_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # Generation
    # =========================================================================

    async def generate(self, ticket_id: int) -> Optional[SequenceDraftModel]:
        """
        Generate a draft for a ticket, replacing any previous draft.

        Returns:
            The new draft model, or None if the request failed, was
            superseded by a newer generate() call, or the session ended.
        """
        self._ensure_open()
        self._cancel(self._generate_task)

        self.ticket_id = ticket_id
        self.status = GenerationStatus.LOADING
        self.error = None

        task = asyncio.create_task(self._fetch_generated(ticket_id))
        self._generate_task = task
        try:
            await self._settle(task)
        except asyncio.CancelledError:
            if task is self._generate_task and not self._closed:
                self.status = (
                    GenerationStatus.READY if self.model is not None else GenerationStatus.IDLE
                )
            raise

        if not self._owns(task, self._generate_task):
            logger.debug(f"Generation for ticket {ticket_id} was superseded")
            return None

        failure = task.exception()
        if failure is None:
            try:
                model = draft_from_generated(
                    task.result(), ticket_id=ticket_id, allocator=self._allocator
                )
            except (AttributeError, TypeError, ValueError) as e:
                logger.debug(f"Unreadable draft for ticket {ticket_id}: {e}")
                failure = TransportFailure(
                    "Failed to generate sequence: the server returned an unreadable draft"
                )
        if failure is not None:
            self.status = GenerationStatus.FAILED
            self._record_failure("generate", failure)
            return None

        self.model = model
        self.validation_issues = []
        self.status = GenerationStatus.READY
        logger.info(
            f"Generated draft for ticket {ticket_id}: "
            f"{self.model.step_count} steps, {len(self.model.draft.tools)} tools, "
            f"{len(self.model.draft.parts)} parts"
        )
        return self.model

    async def retry(self) -> Optional[SequenceDraftModel]:
        """Reissue the last generation request."""
        if self.ticket_id is None:
            raise PreconditionError("There is no generation to retry")
        return await self.generate(self.ticket_id)

    async def _fetch_generated(self, ticket_id: int) -> dict:
        data, _ = await asyncio.gather(
            self._client.generate_sequence(ticket_id),
            asyncio.sleep(self._min_loading_seconds),
        )
        return data

    # =========================================================================
    # Save
    # =========================================================================

    async def save(self, model: Optional[SequenceDraftModel] = None) -> Optional[str]:
        """
        Validate and persist the draft.

        Returns:
            The saved sequence key, or None if validation or the request
            failed (see self.error), or the save was superseded.
        """
        self._ensure_open()
        self._cancel(self._save_task)

        model = model or self.model
        if model is None:
            raise PreconditionError("There is no draft to save")

        self.saving = True
        self.error = None
        self.validation_issues = []

        issues = validate_draft(model)
        if issues:
            self.validation_issues = issues
            self.saving = False
            self._record_failure("save", ValidationFailure(issues))
            return None

        sequence_key = model.sequence_key
        payload = build_save_payload(model)
        task = asyncio.create_task(self._client.create_sequence_from_ticket(payload))
        self._save_task = task
        try:
            await self._settle(task)
        except asyncio.CancelledError:
            if task is self._save_task and not self._closed:
                self.saving = False
            raise

        if not self._owns(task, self._save_task):
            logger.debug(f"Save of '{sequence_key}' was superseded")
            return None

        failure = task.exception()
        if failure is not None:
            self.saving = False
            self._record_failure("save", failure)
            return None

        self.saving = False
        logger.info(f"Saved sequence '{sequence_key}' from ticket {model.draft.ticket_id}")
        if self._on_saved is not None:
            result = self._on_saved(sequence_key)
            if inspect.isawaitable(result):
                await result
        return sequence_key

    # =========================================================================
    # Teardown
    # =========================================================================

    async def discard(self) -> None:
        """Drop the draft and cancel anything in flight (user cancelled)."""
        await self._cancel_all()
        self.model = None
        self.status = GenerationStatus.IDLE
        self.error = None
        self.validation_issues = []
        self.saving = False

    async def close(self) -> None:
        """End the session. No state is written after this returns."""
        self._closed = True
        await self._cancel_all()

    async def _cancel_all(self) -> None:
        pending = [
            task
            for task in (self._generate_task, self._save_task)
            if task is not None and not task.done()
        ]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _ensure_open(self) -> None:
        if self._closed:
            raise PreconditionError("This editing session has ended")

    def _owns(self, task: asyncio.Task, current: Optional[asyncio.Task]) -> bool:
        """True if a finished task may still write state."""
        return not task.cancelled() and task is current and not self._closed

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()

    @staticmethod
    async def _settle(task: asyncio.Task) -> None:
        """Wait for a task without raising if it was cancelled by supersession."""
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            # The caller itself was cancelled
            task.cancel()
            raise
        if not task.cancelled():
            # Mark the outcome retrieved even when superseded
            task.exception()

    def _record_failure(self, source: str, failure: BaseException) -> None:
        self.error = describe_error(failure)
        self.errors.append(create_error_record(source, failure))
        if isinstance(failure, (TransportFailure, ValidationFailure)):
            logger.warning(f"{source} failed: {self.error}")
        else:
            logger.error(f"{source} failed unexpectedly: {failure}", exc_info=failure)
