"""Wires the payroll components together and registers their schedules."""
from __future__ import annotations

import logging
from typing import Optional

from .analyzer import PatternAnalyzer, PatternReport
from .balance_monitor import BalanceMonitor, BalanceReport
from .config import AgentSettings
from .dispatcher import DispatchPolicy
from .drain import DrainReport, RetryDrainer
from .gateway import LedgerGateway, PayrollContractGateway
from .notifier import EventEmitter, Notifier, build_notifier
from .retry_queue import RetryQueue
from .scanner import PaymentScanner, ScanResult
from .scheduler import Scheduler
from .signer import signer_from_private_key

logger = logging.getLogger(__name__)


class PaymentAgent:
    def __init__(
        self,
        settings: AgentSettings,
        gateway: LedgerGateway,
        notifier: Notifier,
        retry_queue: Optional[RetryQueue] = None,
    ) -> None:
        self.settings = settings
        self.gateway = gateway
        self.emitter = EventEmitter(notifier)
        if retry_queue is None:
            retry_queue = RetryQueue(max_retries=settings.retry_limit, path=settings.retry_queue_path)
        self.retry_queue = retry_queue
        self.dispatcher = DispatchPolicy(
            gateway,
            self.retry_queue,
            self.emitter,
            batch_threshold=settings.batch_processing_threshold,
        )
        self.scanner = PaymentScanner(gateway, self.dispatcher, self.emitter)
        self.drainer = RetryDrainer(gateway, self.dispatcher, self.retry_queue, self.emitter)
        self.balance_monitor = BalanceMonitor(
            gateway,
            self.emitter,
            settings.low_balance_threshold,
            upcoming_window_seconds=settings.upcoming_window_seconds,
        )
        self.analyzer = PatternAnalyzer(gateway)
        self.scheduler = Scheduler()

    @classmethod
    def from_settings(cls, settings: AgentSettings) -> "PaymentAgent":
        signer = signer_from_private_key(settings.agent_private_key)
        gateway = PayrollContractGateway(
            settings.rpc_url,
            settings.contract_address,
            signer,
            chain_id=settings.chain_id,
            gas_limit_buffer=settings.gas_limit_buffer,
            receipt_timeout_seconds=settings.receipt_timeout_seconds,
        )
        notifier = build_notifier(
            settings.webhook_url,
            secret=settings.webhook_secret,
            timeout=settings.webhook_timeout_seconds,
        )
        logger.info("Payment Agent initialized with wallet %s", signer.address)
        return cls(settings, gateway, notifier)

    def check_and_process_payments(self) -> Optional[ScanResult]:
        return self.scanner.run_once()

    def process_retry_queue(self) -> DrainReport:
        return self.drainer.run_once()

    def check_balance(self) -> BalanceReport:
        return self.balance_monitor.run_once()

    def analyze_payment_patterns(self) -> PatternReport:
        return self.analyzer.run_once()

    def start(self) -> None:
        settings = self.settings
        self.scheduler.every("payment-scan", settings.check_interval_seconds, self.check_and_process_payments)
        self.scheduler.every(
            "retry-drain",
            settings.retry_interval_seconds,
            self.process_retry_queue,
            initial_delay=settings.retry_interval_seconds,
        )
        self.scheduler.every("balance-check", settings.balance_check_interval_seconds, self.check_balance)
        self.scheduler.daily_at_midnight("pattern-analysis", self.analyze_payment_patterns)
        self.scheduler.start()
        logger.info("Payment Agent started")

    def stop(self, timeout: Optional[float] = None) -> None:
        self.scheduler.stop(timeout)
        logger.info("Payment Agent stopped")
