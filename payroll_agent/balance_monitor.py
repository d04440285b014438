"""Hourly check of wallet and contract funds against upcoming obligations."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, Optional

from .gateway import GatewayError, LedgerGateway, unix_now
from .notifier import EventEmitter

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600
DEFAULT_UPCOMING_WINDOW = 24 * SECONDS_PER_HOUR


@dataclass
class BalanceReport:
    wallet_balance: Optional[Decimal] = None
    contract_balance: Optional[Decimal] = None
    wallet_low: bool = False
    underfunded: Dict[int, int] = field(default_factory=dict)
    completed: bool = False


class BalanceMonitor:
    def __init__(
        self,
        gateway: LedgerGateway,
        emitter: EventEmitter,
        low_balance_threshold: Decimal,
        upcoming_window_seconds: int = DEFAULT_UPCOMING_WINDOW,
        clock: Callable[[], int] = unix_now,
    ) -> None:
        self.gateway = gateway
        self.emitter = emitter
        self.low_balance_threshold = Decimal(low_balance_threshold)
        self.upcoming_window_seconds = upcoming_window_seconds
        self.clock = clock

    def run_once(self) -> BalanceReport:
        report = BalanceReport()
        try:
            self._check(report)
        except GatewayError as exc:
            logger.error("Error checking balances: %s", exc)
            return report
        report.completed = True
        return report

    def _check(self, report: BalanceReport) -> None:
        logger.info("Checking wallet balance...")
        wallet_balance = self.gateway.get_wallet_balance()
        report.wallet_balance = wallet_balance
        logger.info("Wallet balance: %s ETH", wallet_balance)

        if wallet_balance < self.low_balance_threshold:
            report.wallet_low = True
            logger.warning("Wallet balance is low (%s < %s)", wallet_balance, self.low_balance_threshold)
            self.emitter.warning(
                "Agent Wallet Low Balance",
                "The payment agent wallet balance is running low.",
                extra={
                    "walletAddress": getattr(self.gateway, "wallet_address", None),
                    "balance": wallet_balance,
                    "threshold": self.low_balance_threshold,
                },
            )

        contract_balance = self.gateway.get_contract_balance()
        report.contract_balance = contract_balance
        logger.info("Contract balance: %s ETH", contract_balance)

        now = int(self.clock())
        for payment_id in self.gateway.list_active_payment_ids():
            record = self.gateway.get_payment(payment_id)
            if not record.is_active:
                continue
            remaining = record.seconds_until_due(now)
            if not 0 < remaining <= self.upcoming_window_seconds:
                continue
            if record.amount <= contract_balance:
                continue

            hours = remaining // SECONDS_PER_HOUR
            report.underfunded[record.payment_id] = hours
            logger.warning(
                "Payment #%s due in %s seconds but contract has insufficient balance",
                record.payment_id,
                remaining,
            )
            self.emitter.warning(
                "Upcoming Payment - Insufficient Balance",
                f"Payment #{record.payment_id} is due in {hours} hours but the contract has insufficient balance.",
                payment_id=record.payment_id,
                recipient=record.recipient,
                amount=record.amount,
                extra={"contractBalance": contract_balance, "dueIn": f"{hours} hours"},
            )
