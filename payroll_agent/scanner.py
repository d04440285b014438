"""Per-tick discovery of due payments."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from .dispatcher import DispatchOutcome, DispatchPolicy
from .gateway import GatewayError, LedgerGateway, unix_now
from .notifier import EventEmitter

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    processable: list[int] = field(default_factory=list)
    not_yet_due: Dict[int, int] = field(default_factory=dict)
    blocked: list[int] = field(default_factory=list)
    inactive: list[int] = field(default_factory=list)
    errored: list[int] = field(default_factory=list)
    dispatch: Optional[DispatchOutcome] = None


class PaymentScanner:
    """Lists active payments, partitions them and hands the due ones to dispatch.

    Only one scan runs at a time. A tick that finds another scan in progress
    returns ``None`` without touching the gateway; it is not queued.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        dispatcher: DispatchPolicy,
        emitter: EventEmitter,
        clock: Callable[[], int] = unix_now,
    ) -> None:
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.emitter = emitter
        self.clock = clock
        self._guard = threading.Lock()

    @property
    def is_processing(self) -> bool:
        return self._guard.locked()

    def run_once(self) -> Optional[ScanResult]:
        if not self._guard.acquire(blocking=False):
            logger.info("Already processing payments, skipping check")
            return None
        result = ScanResult()
        try:
            self._scan(result)
        except Exception as exc:
            logger.exception("Error in payment scan: %s", exc)
        finally:
            self._guard.release()
        return result

    def _scan(self, result: ScanResult) -> None:
        logger.info("Checking for payments to process...")
        try:
            payment_ids = self.gateway.list_active_payment_ids()
        except GatewayError as exc:
            logger.error("Could not list active payments: %s", exc)
            return

        logger.info("Found %s active payments", len(payment_ids))
        if not payment_ids:
            return

        now = int(self.clock())
        for payment_id in payment_ids:
            try:
                self._classify(int(payment_id), now, result)
            except GatewayError as exc:
                logger.error("Error checking payment %s: %s", payment_id, exc)
                result.errored.append(int(payment_id))

        if result.processable:
            result.dispatch = self.dispatcher.dispatch(result.processable)

    def _classify(self, payment_id: int, now: int, result: ScanResult) -> None:
        if self.gateway.is_eligible(payment_id):
            result.processable.append(payment_id)
            return

        record = self.gateway.get_payment(payment_id)
        if not record.is_active:
            logger.debug("Payment #%s: Inactive", payment_id)
            result.inactive.append(payment_id)
            return

        if not record.is_due(now):
            remaining = record.seconds_until_due(now)
            logger.info("Payment #%s: Not due yet (%s seconds remaining)", payment_id, remaining)
            result.not_yet_due[payment_id] = remaining
            return

        logger.warning("Payment #%s: Can't process - Likely insufficient balance", payment_id)
        result.blocked.append(payment_id)
        self.emitter.warning(
            "Low Balance Alert",
            f"Payment #{payment_id} is due but cannot be processed due to insufficient balance.",
            payment_id=payment_id,
            recipient=record.recipient,
            amount=record.amount,
        )
