"""Payroll contract gateway built on web3.py.

The scheduling engine only talks to the contract through the `LedgerGateway`
protocol below. `PayrollContractGateway` is the production implementation:
it reads payment records, checks eligibility and submits single or batched
`processRecurringPayment` transactions signed by the agent wallet.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence

from web3 import Web3
from web3.middleware.proof_of_authority import ExtraDataToPOAMiddleware

from .signer import Signer

logger = logging.getLogger(__name__)

WEI_PER_ETH = Decimal(10) ** 18

SINGLE_PAYMENT_GAS_LIMIT = 3_000_000
BATCH_PAYMENT_GAS_LIMIT = 6_000_000


class GatewayError(RuntimeError):
    """A contract read failed (RPC/network error or unknown payment)."""


class SubmissionError(RuntimeError):
    """A payment transaction could not be built, signed or broadcast."""


class ConfirmationError(RuntimeError):
    """A submitted transaction was not confirmed (timeout or revert)."""


PAYROLL_ABI: list[dict[str, Any]] = [
    {
        "inputs": [],
        "name": "getActivePaymentIds",
        "outputs": [{"internalType": "uint256[]", "name": "", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "paymentId", "type": "uint256"}],
        "name": "canProcessPayment",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "name": "recurringPayments",
        "outputs": [
            {"internalType": "address", "name": "recipient", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
            {"internalType": "uint256", "name": "interval", "type": "uint256"},
            {"internalType": "uint256", "name": "lastPayment", "type": "uint256"},
            {"internalType": "bool", "name": "isActive", "type": "bool"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "paymentId", "type": "uint256"}],
        "name": "processRecurringPayment",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256[]", "name": "paymentIds", "type": "uint256[]"}],
        "name": "processMultiplePayments",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getContractBalance",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


def wei_to_eth(value_wei: int) -> Decimal:
    return Decimal(int(value_wei)) / WEI_PER_ETH


def unix_now() -> int:
    return int(time.time())


@dataclass(frozen=True)
class PaymentRecord:
    payment_id: int
    recipient: str
    amount_wei: int
    interval: int
    last_payment: int
    is_active: bool

    @property
    def amount(self) -> Decimal:
        return wei_to_eth(self.amount_wei)

    @property
    def next_payment_time(self) -> int:
        return self.last_payment + self.interval

    def seconds_until_due(self, now: int) -> int:
        return self.next_payment_time - int(now)

    def is_due(self, now: int) -> bool:
        return self.is_active and int(now) >= self.next_payment_time


@dataclass(frozen=True)
class TransactionHandle:
    tx_hash: str
    payment_ids: tuple[int, ...]


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    block_number: Optional[int]
    status: int
    gas_used: Optional[int] = None


class LedgerGateway(Protocol):
    def list_active_payment_ids(self) -> list[int]: ...

    def is_eligible(self, payment_id: int) -> bool: ...

    def get_payment(self, payment_id: int) -> PaymentRecord: ...

    def submit_single(self, payment_id: int) -> TransactionHandle: ...

    def submit_batch(self, payment_ids: Sequence[int]) -> TransactionHandle: ...

    def await_confirmation(self, handle: TransactionHandle) -> Receipt: ...

    def get_wallet_balance(self) -> Decimal: ...

    def get_contract_balance(self) -> Decimal: ...


def _hex(value: Any) -> str:
    text = value.hex() if hasattr(value, "hex") else str(value)
    return text if text.startswith("0x") else "0x" + text


class PayrollContractGateway:
    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        signer: Signer,
        *,
        chain_id: Optional[int] = None,
        gas_limit_buffer: float = 1.2,
        receipt_timeout_seconds: int = 300,
        web3: Optional[Web3] = None,
    ) -> None:
        if web3 is None:
            web3 = Web3(Web3.HTTPProvider(rpc_url))
            # Rollups with Clique-style extraData need the POA middleware
            web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        self.web3 = web3
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.contract = self.web3.eth.contract(address=self.contract_address, abi=PAYROLL_ABI)
        self.signer = signer
        self.gas_limit_buffer = gas_limit_buffer
        self.receipt_timeout_seconds = receipt_timeout_seconds
        self._chain_id = chain_id

    @property
    def wallet_address(self) -> str:
        return self.signer.address

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(self.web3.eth.chain_id)
        return self._chain_id

    def check_connection(self) -> None:
        """Fail fast when the RPC endpoint or the payroll contract is unreachable."""
        try:
            if not self.web3.is_connected():
                raise GatewayError("RPC endpoint is not reachable")
            code = self.web3.eth.get_code(self.contract_address)
            chain_id = self.chain_id
        except GatewayError:
            raise
        except Exception as exc:
            raise GatewayError(f"Connectivity check failed: {exc}") from exc
        if not code:
            raise GatewayError(f"No contract deployed at {self.contract_address}")
        logger.info(
            "Connected to chain %s; payroll contract %s; agent wallet %s",
            chain_id,
            self.contract_address,
            self.wallet_address,
        )

    def list_active_payment_ids(self) -> list[int]:
        try:
            raw = self.contract.functions.getActivePaymentIds().call()
        except Exception as exc:
            raise GatewayError(f"getActivePaymentIds failed: {exc}") from exc
        return [int(item) for item in raw]

    def is_eligible(self, payment_id: int) -> bool:
        try:
            return bool(self.contract.functions.canProcessPayment(int(payment_id)).call())
        except Exception as exc:
            raise GatewayError(f"canProcessPayment({payment_id}) failed: {exc}") from exc

    def get_payment(self, payment_id: int) -> PaymentRecord:
        try:
            recipient, amount, interval, last_payment, is_active = (
                self.contract.functions.recurringPayments(int(payment_id)).call()
            )
        except Exception as exc:
            raise GatewayError(f"recurringPayments({payment_id}) failed: {exc}") from exc
        if not recipient or int(str(recipient), 16) == 0:
            raise GatewayError(f"Payment #{payment_id} not found")
        return PaymentRecord(
            payment_id=int(payment_id),
            recipient=Web3.to_checksum_address(recipient),
            amount_wei=int(amount),
            interval=int(interval),
            last_payment=int(last_payment),
            is_active=bool(is_active),
        )

    def get_wallet_balance(self) -> Decimal:
        try:
            return wei_to_eth(self.web3.eth.get_balance(self.wallet_address))
        except Exception as exc:
            raise GatewayError(f"Wallet balance read failed: {exc}") from exc

    def get_contract_balance(self) -> Decimal:
        try:
            return wei_to_eth(self.contract.functions.getContractBalance().call())
        except Exception as exc:
            raise GatewayError(f"getContractBalance failed: {exc}") from exc

    def submit_single(self, payment_id: int) -> TransactionHandle:
        fn = self.contract.functions.processRecurringPayment(int(payment_id))
        tx_hash = self._send(fn, SINGLE_PAYMENT_GAS_LIMIT, label=f"payment #{payment_id}")
        return TransactionHandle(tx_hash=tx_hash, payment_ids=(int(payment_id),))

    def submit_batch(self, payment_ids: Sequence[int]) -> TransactionHandle:
        ids = [int(item) for item in payment_ids]
        if not ids:
            raise SubmissionError("Cannot submit an empty payment batch")
        fn = self.contract.functions.processMultiplePayments(ids)
        tx_hash = self._send(fn, BATCH_PAYMENT_GAS_LIMIT, label=f"batch of {len(ids)} payments")
        return TransactionHandle(tx_hash=tx_hash, payment_ids=tuple(ids))

    def await_confirmation(self, handle: TransactionHandle) -> Receipt:
        try:
            raw = self.web3.eth.wait_for_transaction_receipt(
                handle.tx_hash, timeout=self.receipt_timeout_seconds
            )
        except Exception as exc:
            raise ConfirmationError(f"No receipt for tx {handle.tx_hash}: {exc}") from exc

        raw_status = getattr(raw, "status", None)
        if raw_status is None and isinstance(raw, dict):
            raw_status = raw.get("status")
        status = 1 if raw_status is None else int(raw_status)
        block_number = getattr(raw, "blockNumber", None)
        gas_used = getattr(raw, "gasUsed", None)
        if status != 1:
            raise ConfirmationError(
                f"Transaction {handle.tx_hash} reverted (status={status} block={block_number})"
            )
        return Receipt(
            tx_hash=handle.tx_hash,
            block_number=None if block_number is None else int(block_number),
            status=status,
            gas_used=None if gas_used is None else int(gas_used),
        )

    def _gas_limit(self, fn, sender: str, ceiling: int) -> int:
        try:
            estimate = int(fn.estimate_gas({"from": sender}))
        except Exception as exc:  # estimation failures fall back to the fixed ceiling
            logger.debug("Gas estimation failed, using %s: %s", ceiling, exc)
            return ceiling
        return int(estimate * self.gas_limit_buffer)

    def _send(self, fn, gas_ceiling: int, *, label: str) -> str:
        sender = self.wallet_address
        try:
            gas_price = self.web3.eth.gas_price
            nonce = self.web3.eth.get_transaction_count(sender, block_identifier="pending")
            tx: dict[str, Any] = {
                "from": sender,
                "chainId": self.chain_id,
                "nonce": nonce,
                "gas": self._gas_limit(fn, sender, gas_ceiling),
            }

            try:
                priority_fee = int(self.web3.eth.max_priority_fee)
            except Exception:  # pragma: no cover - legacy nodes without EIP-1559
                priority_fee = None
            if priority_fee is not None:
                tx["maxPriorityFeePerGas"] = priority_fee
                tx["maxFeePerGas"] = max(gas_price, priority_fee) * 2
            else:
                tx["gasPrice"] = gas_price * 2

            built = fn.build_transaction(tx)
            raw_tx = self.signer.sign_transaction(built)
            tx_hash = self.web3.eth.send_raw_transaction(raw_tx)
        except Exception as exc:
            raise SubmissionError(f"Submitting {label} failed: {exc}") from exc

        tx_hex = _hex(tx_hash)
        logger.info("Transaction submitted for %s: %s", label, tx_hex)
        return tx_hex
