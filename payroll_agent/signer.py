"""Signing helpers for the agent wallet."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from eth_account import Account
from eth_account.signers.local import LocalAccount


class SignerError(RuntimeError):
    pass


class Signer(Protocol):
    @property
    def address(self) -> str: ...

    def sign_transaction(self, tx: dict[str, Any]) -> bytes: ...


@dataclass(frozen=True)
class LocalSigner:
    account: LocalAccount

    @property
    def address(self) -> str:
        return self.account.address

    def sign_transaction(self, tx: dict[str, Any]) -> bytes:
        signed = Account.sign_transaction(tx, self.account.key)
        raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction", None)
        if raw is None:  # pragma: no cover - defensive
            raise SignerError("Signed transaction missing raw bytes")
        return bytes(raw)


def normalize_private_key(raw: str) -> str:
    """Strip whitespace and quotes from a key pasted into `.env` and add the 0x prefix."""
    candidate = raw.strip().strip("\"'").strip()
    if candidate[:2].lower() != "0x":
        candidate = "0x" + candidate
    return candidate


def signer_from_private_key(private_key: str) -> LocalSigner:
    try:
        account = Account.from_key(normalize_private_key(private_key))
    except (ValueError, TypeError) as exc:
        raise SignerError(f"Invalid agent private key: {exc}") from exc
    return LocalSigner(account)
