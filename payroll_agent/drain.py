"""Periodic resubmission of payments parked in the retry queue."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .dispatcher import DispatchPolicy
from .gateway import GatewayError, LedgerGateway
from .notifier import EventEmitter
from .retry_queue import RetryQueue

logger = logging.getLogger(__name__)


@dataclass
class DrainReport:
    attempted: list[int] = field(default_factory=list)
    succeeded: list[int] = field(default_factory=list)
    deferred: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    dropped: list[int] = field(default_factory=list)


class RetryDrainer:
    def __init__(
        self,
        gateway: LedgerGateway,
        dispatcher: DispatchPolicy,
        retry_queue: RetryQueue,
        emitter: EventEmitter,
    ) -> None:
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.retry_queue = retry_queue
        self.emitter = emitter

    def run_once(self) -> DrainReport:
        report = DrainReport()
        entries = self.retry_queue.snapshot()
        if not entries:
            return report

        logger.info("Processing retry queue with %s payments", len(entries))
        for key, stored_count in entries.items():
            payment_id = int(key)
            try:
                self._retry(payment_id, stored_count, report)
            except Exception as exc:  # pragma: no cover - per-entry guard
                logger.exception("Retry of payment #%s failed unexpectedly: %s", payment_id, exc)
        return report

    def _retry(self, payment_id: int, stored_count: int, report: DrainReport) -> None:
        logger.info(
            "Retrying payment #%s (attempt %s/%s)",
            payment_id,
            stored_count,
            self.retry_queue.max_retries,
        )
        try:
            eligible = self.gateway.is_eligible(payment_id)
        except GatewayError as exc:
            logger.error("Eligibility check for retry of payment #%s failed: %s", payment_id, exc)
            report.deferred.append(payment_id)
            return
        if not eligible:
            logger.info("Payment #%s cannot be processed yet, keeping in retry queue", payment_id)
            report.deferred.append(payment_id)
            return

        report.attempted.append(payment_id)
        record = self.dispatcher.read_record(payment_id)
        self.dispatcher.announce_processing(payment_id, record)
        try:
            handle, receipt = self.dispatcher.attempt_submission(payment_id)
        except Exception as exc:
            logger.error("Error retrying payment #%s: %s", payment_id, exc)
            result = self.retry_queue.record_failure(payment_id)
            if not result.exhausted:
                report.failed.append(payment_id)
                return
            report.dropped.append(payment_id)
            logger.warning(
                "Payment #%s failed after %s attempts, removing from queue",
                payment_id,
                self.retry_queue.max_retries,
            )
            self.emitter.error(
                "Retry Payment Failed",
                f"Payment #{payment_id} failed after {self.retry_queue.max_retries} retry attempts.",
                **self.dispatcher.payment_fields(payment_id, record),
                error=str(exc),
            )
            return

        logger.info("Payment #%s processed successfully in retry tx %s", payment_id, receipt.tx_hash)
        report.succeeded.append(payment_id)
        self.retry_queue.remove(payment_id)
        self.emitter.success(
            "Retry Payment Successful",
            f"Retry payment #{payment_id} has been processed successfully.",
            **self.dispatcher.payment_fields(payment_id, record),
            transaction_hash=handle.tx_hash,
        )
