"""
Console API Client
==================
Async httpx wrapper for the support-automation backend endpoints the
console consumes: sequence generation and save, unread notifications and
the active sequence list.

Every failure surfaces as TransportFailure. Cancellation is never caught
here, so a cancelled caller stops the request immediately.
"""

import logging
from typing import Any, Optional

import httpx

from config.settings import API, get_api_url
from orchestration.error_handler import TransportFailure, error_message_from_response

logger = logging.getLogger(__name__)


class ConsoleApiClient:
    """Thin async client for the console's REST collaborators."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client or self._build_client()

    @staticmethod
    def _build_client() -> httpx.AsyncClient:
        kwargs: dict[str, Any] = {"base_url": get_api_url("")}
        if API["session_cookie"]:
            kwargs["cookies"] = {API["session_cookie_name"]: API["session_cookie"]}
        if API["timeout_seconds"] is not None:
            kwargs["timeout"] = API["timeout_seconds"]
        return httpx.AsyncClient(**kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        default_error: str,
        json: Optional[dict] = None,
    ) -> Any:
        """
        Send a request and decode its JSON body.

        Args:
            method: HTTP method
            path: Path below the API prefix (e.g. '/notifications/unread')
            default_error: Message used when the server gives no usable error
            json: Optional JSON body

        Returns:
            Decoded JSON body, or None for an empty body
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise TransportFailure(f"{default_error}: {e}") from e

        if not response.is_success:
            message = error_message_from_response(response, default_error)
            logger.error(f"{method} {path} returned {response.status_code}: {message}")
            raise TransportFailure(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportFailure(
                f"{default_error}: the server returned an unreadable response",
                status_code=response.status_code,
            ) from e

    # ============================================================
    # Sequences
    # ============================================================

    async def generate_sequence(self, ticket_id: int) -> dict:
        """POST /tickets/{id}/generate-sequence"""
        data = await self._request(
            "POST",
            f"/tickets/{ticket_id}/generate-sequence",
            "Failed to generate sequence",
        )
        if not isinstance(data, dict):
            raise TransportFailure(
                "Failed to generate sequence: the server returned an unreadable response"
            )
        return data

    async def create_sequence_from_ticket(self, payload: dict) -> dict:
        """POST /sequences/from-ticket"""
        data = await self._request(
            "POST",
            "/sequences/from-ticket",
            "Failed to create sequence",
            json=payload,
        )
        return data or {}

    async def get_active_sequences(self) -> list[dict]:
        """GET /sequences/active"""
        data = await self._request(
            "GET", "/sequences/active", "Failed to load active sequences"
        )
        return data or []

    # ============================================================
    # Notifications
    # ============================================================

    async def get_unread_notifications(self) -> list[dict]:
        """GET /notifications/unread"""
        data = await self._request(
            "GET", "/notifications/unread", "Failed to load notifications"
        )
        return data or []

    async def mark_notification_read(self, notification_id: Any) -> None:
        """POST /notifications/{id}/read"""
        await self._request(
            "POST",
            f"/notifications/{notification_id}/read",
            "Failed to mark notification as read",
        )

    async def mark_all_notifications_read(self) -> None:
        """POST /notifications/read-all"""
        await self._request(
            "POST",
            "/notifications/read-all",
            "Failed to mark notifications as read",
        )

