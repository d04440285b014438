"""Daily, read-only grouping of payments by interval."""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict

from .gateway import GatewayError, LedgerGateway

logger = logging.getLogger(__name__)


@dataclass
class PatternReport:
    groups: Dict[int, list[int]] = field(default_factory=dict)
    recommended_intervals: list[int] = field(default_factory=list)


class PatternAnalyzer:
    def __init__(self, gateway: LedgerGateway, batch_threshold: int = 3) -> None:
        self.gateway = gateway
        self.batch_threshold = batch_threshold

    def run_once(self) -> PatternReport:
        report = PatternReport()
        logger.info("Analyzing payment patterns...")
        try:
            payment_ids = self.gateway.list_active_payment_ids()
            groups: Dict[int, list[int]] = defaultdict(list)
            for payment_id in payment_ids:
                record = self.gateway.get_payment(payment_id)
                groups[record.interval].append(record.payment_id)
        except GatewayError as exc:
            logger.error("Error analyzing payment patterns: %s", exc)
            return report

        report.groups = dict(groups)
        logger.info("Payment patterns by interval:")
        for interval, ids in report.groups.items():
            logger.info("- Interval %s seconds: %s payments", interval, len(ids))

        for interval, ids in report.groups.items():
            if len(ids) > self.batch_threshold:
                report.recommended_intervals.append(interval)
                logger.info(
                    "Recommendation: Process interval %s payments in batches for gas efficiency",
                    interval,
                )
        return report
