"""Owner notifications for automatic resolutions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import requests


class NotificationError(RuntimeError):
    """Raised when the webhook rejects a notification."""


class NullNotifier:
    """Used when no webhook is configured."""

    def notify(self, title: str, content: str) -> None:
        return None


class WebhookNotifier:
    """Posts a small JSON message to a chat webhook."""

    def __init__(self, url: str, session: Optional[requests.Session] = None, timeout: float = 5) -> None:
        if not url:
            raise ValueError("A webhook URL must be supplied")
        self._url = url
        self._session = session or requests.Session()
        self._timeout = timeout

    def notify(self, title: str, content: str) -> None:
        payload = {
            "title": title,
            "text": content,
            "ts": int(datetime.now(timezone.utc).timestamp()),
        }
        response = self._session.post(self._url, json=payload, timeout=self._timeout)
        if response.status_code >= 300:
            raise NotificationError(
                f"Webhook rejected notification with status {response.status_code}"
            )
