"""Submission policy for due payments: one batch transaction or one per payment."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from .gateway import GatewayError, LedgerGateway, PaymentRecord, Receipt, TransactionHandle
from .notifier import EventEmitter, ids_label
from .retry_queue import RetryQueue

logger = logging.getLogger(__name__)

DEFAULT_BATCH_THRESHOLD = 3


@dataclass
class DispatchOutcome:
    mode: str
    succeeded: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    exhausted: list[int] = field(default_factory=list)
    batch_tx_hash: Optional[str] = None


class DispatchPolicy:
    def __init__(
        self,
        gateway: LedgerGateway,
        retry_queue: RetryQueue,
        emitter: EventEmitter,
        batch_threshold: int = DEFAULT_BATCH_THRESHOLD,
    ) -> None:
        if batch_threshold <= 0:
            raise ValueError("batch_threshold must be positive")
        self.gateway = gateway
        self.retry_queue = retry_queue
        self.emitter = emitter
        self.batch_threshold = batch_threshold

    def should_batch(self, count: int) -> bool:
        return count > self.batch_threshold

    def dispatch(self, payment_ids: Sequence[int]) -> DispatchOutcome:
        """Submit due payments. Never raises; per-payment results land in the outcome."""
        ids = [int(item) for item in payment_ids]
        if not ids:
            return DispatchOutcome(mode="none")

        logger.info("Processing %s payments: %s", len(ids), ", ".join(str(item) for item in ids))
        if self.should_batch(len(ids)):
            return self.process_batch(ids)

        outcome = DispatchOutcome(mode="single")
        for payment_id in ids:
            self._process_single(payment_id, outcome)
        return outcome

    def process_batch(self, payment_ids: Sequence[int]) -> DispatchOutcome:
        ids = [int(item) for item in payment_ids]
        outcome = DispatchOutcome(mode="batch")
        logger.info("Processing batch of %s payments...", len(ids))
        try:
            handle, receipt = self._submit_and_confirm(ids)
        except Exception as exc:
            logger.error("Error processing batch payments: %s", exc)
            logger.info("Falling back to individual payment processing...")
            outcome.mode = "fallback"
            for payment_id in ids:
                self._process_single(payment_id, outcome)
            return outcome

        logger.info("Batch processed successfully in tx %s (block %s)", handle.tx_hash, receipt.block_number)
        outcome.batch_tx_hash = handle.tx_hash
        outcome.succeeded.extend(ids)
        self.retry_queue.remove_many(ids)
        self.emitter.success(
            "Batch Payments Processed",
            f"Successfully processed {len(ids)} payments in a batch.",
            payment_ids=tuple(ids),
            transaction_hash=handle.tx_hash,
        )
        return outcome

    def process_single(self, payment_id: int) -> bool:
        outcome = DispatchOutcome(mode="single")
        self._process_single(int(payment_id), outcome)
        return bool(outcome.succeeded)

    def _process_single(self, payment_id: int, outcome: DispatchOutcome) -> None:
        logger.info("Processing payment #%s...", payment_id)
        record = self.read_record(payment_id)
        self.announce_processing(payment_id, record)

        try:
            handle, receipt = self.attempt_submission(payment_id)
        except Exception as exc:
            logger.error("Error processing payment #%s: %s", payment_id, exc)
            self._handle_failure(payment_id, record, exc, outcome)
            return

        logger.info("Payment #%s processed successfully in tx %s", payment_id, receipt.tx_hash)
        outcome.succeeded.append(payment_id)
        self.retry_queue.remove(payment_id)
        self.emitter.success(
            "Payment Successful",
            f"Payment #{payment_id} has been processed successfully.",
            **self.payment_fields(payment_id, record),
            transaction_hash=handle.tx_hash,
        )

    def _handle_failure(
        self,
        payment_id: int,
        record: Optional[PaymentRecord],
        exc: Exception,
        outcome: DispatchOutcome,
    ) -> None:
        result = self.retry_queue.record_failure(payment_id)
        if not result.exhausted:
            outcome.failed.append(payment_id)
            logger.info(
                "Added payment #%s to retry queue (attempt %s/%s)",
                payment_id,
                result.attempts,
                self.retry_queue.max_retries,
            )
            return

        outcome.exhausted.append(payment_id)
        logger.warning("Payment #%s failed after %s attempts", payment_id, self.retry_queue.max_retries)
        self.emitter.error(
            "Payment Failed",
            f"Payment #{payment_id} could not be processed after multiple attempts.",
            **self.payment_fields(payment_id, record),
            error=str(exc),
        )

    def attempt_submission(self, payment_id: int) -> tuple[TransactionHandle, Receipt]:
        """Submit one payment and block until it is confirmed."""
        handle = self.gateway.submit_single(payment_id)
        logger.info("Transaction submitted: %s", handle.tx_hash)
        receipt = self.gateway.await_confirmation(handle)
        return handle, receipt

    def _submit_and_confirm(self, payment_ids: list[int]) -> tuple[TransactionHandle, Receipt]:
        handle = self.gateway.submit_batch(payment_ids)
        logger.info("Batch transaction submitted for %s: %s", ids_label(payment_ids), handle.tx_hash)
        receipt = self.gateway.await_confirmation(handle)
        return handle, receipt

    def read_record(self, payment_id: int) -> Optional[PaymentRecord]:
        try:
            return self.gateway.get_payment(payment_id)
        except GatewayError as exc:
            logger.warning("Could not read payment #%s for notification details: %s", payment_id, exc)
            return None

    def announce_processing(self, payment_id: int, record: Optional[PaymentRecord]) -> None:
        self.emitter.info(
            "Processing Payment",
            f"Payment #{payment_id} is being processed.",
            **self.payment_fields(payment_id, record),
        )

    @staticmethod
    def payment_fields(payment_id: int, record: Optional[PaymentRecord]) -> dict:
        fields: dict = {"payment_id": payment_id}
        if record is not None:
            fields["recipient"] = record.recipient
            fields["amount"] = record.amount
        return fields
