"""Webhook notifications for payment events.

Delivery is best-effort: components emit events through `EventEmitter`, which
logs and discards any delivery failure so scheduling never depends on it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol, Sequence

import requests

logger = logging.getLogger(__name__)

EVENT_TYPES = ("info", "success", "warning", "error")


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class DeliveryError(RuntimeError):
    pass


@dataclass(frozen=True)
class NotificationEvent:
    type: str
    title: str
    message: str
    payment_id: Optional[int] = None
    payment_ids: Optional[tuple[int, ...]] = None
    recipient: Optional[str] = None
    amount: Optional[Decimal] = None
    transaction_hash: Optional[str] = None
    error: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utcnow_iso)

    def __post_init__(self) -> None:
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unknown notification type: {self.type}")
        if self.payment_ids is not None and not isinstance(self.payment_ids, tuple):
            object.__setattr__(self, "payment_ids", tuple(self.payment_ids))

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.type,
            "title": self.title,
            "message": self.message,
        }
        if self.payment_id is not None:
            payload["paymentId"] = str(self.payment_id)
        if self.payment_ids is not None:
            payload["paymentIds"] = [str(item) for item in self.payment_ids]
        if self.recipient is not None:
            payload["recipient"] = self.recipient
        if self.amount is not None:
            payload["amount"] = str(self.amount)
        if self.transaction_hash is not None:
            payload["transactionHash"] = self.transaction_hash
        if self.error is not None:
            payload["error"] = self.error
        for key, value in self.extra.items():
            payload.setdefault(key, str(value) if isinstance(value, Decimal) else value)
        payload["timestamp"] = self.timestamp
        return payload


class Notifier(Protocol):
    def send(self, event: NotificationEvent) -> None: ...


class NullNotifier:
    """Used when no webhook URL is configured."""

    def send(self, event: NotificationEvent) -> None:
        logger.debug("Notifications disabled; dropping %s event %r", event.type, event.title)


class WebhookNotifier:
    def __init__(
        self,
        url: str,
        *,
        secret: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self._http = session or requests.Session()

    def send(self, event: NotificationEvent) -> None:
        params = {"key": self.secret} if self.secret else None
        try:
            response = self._http.post(
                self.url,
                json=event.to_payload(),
                params=params,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise DeliveryError(f"Webhook delivery failed for {event.title!r}: {exc}") from exc
        logger.info("Webhook notification sent: %s", event.title)


class EventEmitter:
    """Single emit capability shared by every component."""

    def __init__(self, notifier: Notifier) -> None:
        self.notifier = notifier

    def emit(self, event: NotificationEvent) -> None:
        try:
            self.notifier.send(event)
        except DeliveryError as exc:
            logger.error("%s", exc)
        except Exception as exc:  # notifier bugs must not leak into scheduling
            logger.exception("Unexpected notifier failure for %r: %s", event.title, exc)

    def info(self, title: str, message: str, **fields: Any) -> None:
        self.emit(NotificationEvent("info", title, message, **fields))

    def success(self, title: str, message: str, **fields: Any) -> None:
        self.emit(NotificationEvent("success", title, message, **fields))

    def warning(self, title: str, message: str, **fields: Any) -> None:
        self.emit(NotificationEvent("warning", title, message, **fields))

    def error(self, title: str, message: str, **fields: Any) -> None:
        self.emit(NotificationEvent("error", title, message, **fields))


def build_notifier(url: Optional[str], *, secret: Optional[str] = None, timeout: float = 10.0) -> Notifier:
    if not url:
        return NullNotifier()
    return WebhookNotifier(url, secret=secret, timeout=timeout)


def ids_label(payment_ids: Sequence[int]) -> str:
    return ", ".join(f"#{item}" for item in payment_ids)
