"""CLI entrypoint for the payroll payment agent."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import Optional, Sequence

from pydantic import ValidationError

from .agent import PaymentAgent
from .config import load_settings
from .gateway import GatewayError, PayrollContractGateway
from .signer import SignerError

ONE_SHOT_TASKS = ("scan", "retry", "balance", "analyze")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s:%(lineno)d | %(message)s",
        stream=sys.stdout,
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Automates recurring payroll contract payments")
    parser.add_argument(
        "--once",
        choices=ONE_SHOT_TASKS,
        default=None,
        help="Run a single tick of one task and exit",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    return parser.parse_args(argv)


def _install_signal_handlers(agent: PaymentAgent, logger: logging.Logger) -> None:
    def _shutdown(signum, _frame) -> None:
        logger.info("Shutting down Payment Agent (signal %s)...", signum)
        agent.scheduler.stop(timeout=0)
        sys.exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)


def run_once(agent: PaymentAgent, task: str) -> None:
    if task == "scan":
        agent.check_and_process_payments()
    elif task == "retry":
        agent.process_retry_queue()
    elif task == "balance":
        agent.check_balance()
    elif task == "analyze":
        agent.analyze_payment_patterns()
    else:
        raise ValueError(f"Unknown task: {task}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level or "INFO")
    logger = logging.getLogger(__name__)
    logger.info("Starting payroll payment agent...")

    try:
        settings = load_settings()
    except ValidationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1
    if not args.log_level:
        logging.getLogger().setLevel(settings.log_level)

    logger.info("Contract address: %s", settings.contract_address)
    logger.info("RPC URL: %s", settings.rpc_url)

    try:
        agent = PaymentAgent.from_settings(settings)
        if isinstance(agent.gateway, PayrollContractGateway):
            agent.gateway.check_connection()
    except (GatewayError, SignerError) as exc:
        logger.error("Startup failed: %s", exc)
        return 1

    if args.once:
        run_once(agent, args.once)
        return 0

    _install_signal_handlers(agent, logger)
    agent.start()
    logger.info("Payment Agent is running and monitoring payments")
    logger.info("Press Ctrl+C to stop the agent")
    agent.scheduler.wait()
    return 0


if __name__ == "__main__":
    sys.exit(main())
