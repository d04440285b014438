from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from payroll_agent.notifier import (
    DeliveryError,
    EventEmitter,
    NotificationEvent,
    NullNotifier,
    WebhookNotifier,
    build_notifier,
)


def test_payload_uses_webhook_field_names():
    event = NotificationEvent(
        "success",
        "Batch Payments Processed",
        "Successfully processed 2 payments in a batch.",
        payment_ids=[1, 2],
        amount=Decimal("0.5"),
        transaction_hash="0xabc",
        timestamp="2024-01-01T00:00:00Z",
    )

    assert event.to_payload() == {
        "type": "success",
        "title": "Batch Payments Processed",
        "message": "Successfully processed 2 payments in a batch.",
        "paymentIds": ["1", "2"],
        "amount": "0.5",
        "transactionHash": "0xabc",
        "timestamp": "2024-01-01T00:00:00Z",
    }


def test_unknown_event_type_rejected():
    with pytest.raises(ValueError):
        NotificationEvent("debug", "title", "message")


def test_timestamp_defaults_to_utc_iso():
    event = NotificationEvent("info", "t", "m", payment_id=3)

    assert event.timestamp.endswith("Z")
    assert event.to_payload()["paymentId"] == "3"


def test_webhook_posts_json_with_secret():
    session = MagicMock()
    notifier = WebhookNotifier("http://hooks.local/webhook", secret="s3cret", timeout=2.5, session=session)
    event = NotificationEvent("warning", "Low Balance Alert", "due", payment_id=4)

    notifier.send(event)

    _, kwargs = session.post.call_args
    assert session.post.call_args[0][0] == "http://hooks.local/webhook"
    assert kwargs["json"]["paymentId"] == "4"
    assert kwargs["params"] == {"key": "s3cret"}
    assert kwargs["timeout"] == 2.5
    session.post.return_value.raise_for_status.assert_called_once()


def test_webhook_http_error_raises_delivery_error():
    session = MagicMock()
    session.post.return_value.raise_for_status.side_effect = requests.HTTPError("401")
    notifier = WebhookNotifier("http://hooks.local/webhook", session=session)

    with pytest.raises(DeliveryError):
        notifier.send(NotificationEvent("info", "t", "m"))


def test_webhook_connection_error_raises_delivery_error():
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("refused")
    notifier = WebhookNotifier("http://hooks.local/webhook", session=session)

    with pytest.raises(DeliveryError):
        notifier.send(NotificationEvent("info", "t", "m"))


def test_emitter_swallows_delivery_failures():
    notifier = MagicMock()
    notifier.send.side_effect = DeliveryError("down")
    emitter = EventEmitter(notifier)

    emitter.error("Payment Failed", "gave up", payment_id=1)

    notifier.send.assert_called_once()
    sent = notifier.send.call_args[0][0]
    assert sent.type == "error"


def test_emitter_swallows_unexpected_notifier_errors():
    notifier = MagicMock()
    notifier.send.side_effect = KeyError("bug")

    EventEmitter(notifier).info("t", "m")


def test_build_notifier_without_url_is_null():
    assert isinstance(build_notifier(None), NullNotifier)
    assert isinstance(build_notifier("http://hooks.local"), WebhookNotifier)
