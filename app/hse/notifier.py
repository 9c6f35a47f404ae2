"""
Fire-and-forget notifications (new inbox items, signature requests, distribution deadlines).

Delivery itself (WhatsApp gateway, push, email) lives outside this service; a failed
notification is logged and never fails the operation that triggered it.
"""
from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    user_id: int
    subject: str
    body: str
    kind: str = "info"  # e.g. "approval.inbox", "distribution.deadline"
    data: dict[str, Any] = field(default_factory=dict)


class Notifier:
    def send(self, notification: Notification) -> None:
        raise NotImplementedError

    def notify(self, notification: Notification) -> bool:
        try:
            self.send(notification)
            return True
        except Exception as e:
            logger.warning(
                "Notification delivery failed (kind=%s user_id=%s): %s",
                notification.kind,
                notification.user_id,
                e,
            )
            return False

    def notify_many(self, notifications: list[Notification]) -> int:
        return sum(1 for n in notifications if self.notify(n))


class LogNotifier(Notifier):
    def send(self, notification: Notification) -> None:
        logger.info(
            "NOTIFY user_id=%s kind=%s subject=%s",
            notification.user_id,
            notification.kind,
            notification.subject,
        )


@dataclass(frozen=True)
class WebhookNotifier(Notifier):
    url: str
    timeout_seconds: int = 10

    def send(self, notification: Notification) -> None:
        payload = json.dumps(
            {
                "user_id": notification.user_id,
                "kind": notification.kind,
                "subject": notification.subject,
                "body": notification.body,
                "data": notification.data,
            },
            default=str,
        ).encode("utf-8")
        req = urllib.request.Request(self.url, data=payload, method="POST")
        req.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                resp.read()
        except urllib.error.HTTPError as e:
            raise RuntimeError(f"HTTP {e.code} from notification gateway") from e


@dataclass
class RecordingNotifier(Notifier):
    """Keeps notifications in memory; used by the sweep's --dry-run and by tests."""

    sent: list[Notification] = field(default_factory=list)

    def send(self, notification: Notification) -> None:
        self.sent.append(notification)


def notifier_from_config(config: dict) -> Notifier:
    backend = (config.get("NOTIFIER_BACKEND") or "log").strip().lower()
    if backend == "webhook":
        url = (config.get("NOTIFIER_WEBHOOK_URL") or "").strip()
        if not url:
            logger.error("NOTIFIER_BACKEND=webhook but NOTIFIER_WEBHOOK_URL is empty; falling back to log notifier")
            return LogNotifier()
        return WebhookNotifier(url=url)
    return LogNotifier()
