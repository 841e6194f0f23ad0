from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from state.models import NotificationMessage


EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"

logger = logging.getLogger(__name__)


class PushError(RuntimeError):
    """The push gateway rejected or never received a batch."""


class ExpoPushClient:
    """
    Expo push gateway client.

    A batch is always one POST with a JSON array body. Failures are raised as
    `PushError`; retrying is the caller's decision (the jobs never retry).
    """

    def __init__(
        self,
        *,
        url: str = EXPO_PUSH_URL,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._url = url
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ExpoPushClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def send(self, messages: Sequence[NotificationMessage]) -> List[Dict[str, Any]]:
        """POST the batch; returns the gateway's ticket list (may be empty)."""
        body = [m.to_payload() for m in messages]
        try:
            resp = self._client.post(
                self._url,
                json=body,
                headers={"Accept": "application/json", "Content-Type": "application/json"},
            )
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise PushError(f"Push gateway unreachable: {exc}") from exc

        if resp.status_code // 100 != 2:
            raise PushError(f"HTTP {resp.status_code} from push gateway: {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise PushError("Failed to parse JSON from push gateway") from exc

        tickets = data.get("data") if isinstance(data, dict) else None
        return tickets if isinstance(tickets, list) else []


def dispatch(push: ExpoPushClient, messages: Sequence[NotificationMessage]) -> int:
    """Send `messages` as one batch. Returns how many the gateway accepted.

    Gateway errors are logged and swallowed: a failed batch reports 0.
    """
    if not messages:
        logger.info("No notifications to send")
        return 0

    logger.info("Sending %d notification(s)", len(messages))
    try:
        tickets = push.send(messages)
    except PushError as exc:
        logger.error("Push batch of %d failed: %s", len(messages), exc)
        return 0

    rejected = 0
    for ticket in tickets:
        if isinstance(ticket, dict) and ticket.get("status") == "error":
            rejected += 1
            logger.warning("Push ticket error: %s", ticket.get("message") or ticket)
    return len(messages) - rejected


__all__ = ["EXPO_PUSH_URL", "ExpoPushClient", "PushError", "dispatch"]
