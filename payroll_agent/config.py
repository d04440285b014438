"""Settings loader for the payroll payment agent."""
from __future__ import annotations

import re
from decimal import Decimal
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .signer import normalize_private_key

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_PRIVATE_KEY_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")


class AgentSettings(BaseSettings):
    rpc_url: str = Field(default="http://localhost:8545", validation_alias="RPC_URL")
    chain_id: Optional[int] = Field(default=None, validation_alias="CHAIN_ID")
    contract_address: str = Field(validation_alias="CONTRACT_ADDRESS")
    agent_private_key: str = Field(validation_alias="AGENT_PRIVATE_KEY", repr=False)

    webhook_url: Optional[str] = Field(default=None, validation_alias="WEBHOOK_URL")
    webhook_secret: Optional[str] = Field(default=None, validation_alias="WEBHOOK_SECRET", repr=False)
    webhook_timeout_seconds: float = Field(default=10.0, validation_alias="WEBHOOK_TIMEOUT_SECONDS")

    low_balance_threshold: Decimal = Field(default=Decimal("0.1"), validation_alias="LOW_BALANCE_THRESHOLD")

    check_interval_seconds: int = Field(default=60, validation_alias="CHECK_INTERVAL")
    retry_interval_seconds: int = Field(default=300, validation_alias="RETRY_INTERVAL")
    balance_check_interval_seconds: int = Field(default=3600, validation_alias="BALANCE_CHECK_INTERVAL")

    retry_limit: int = Field(default=3, validation_alias="RETRY_LIMIT")
    gas_limit_buffer: float = Field(default=1.2, validation_alias="GAS_LIMIT_BUFFER")
    batch_processing_threshold: int = Field(default=3, validation_alias="BATCH_PROCESSING_THRESHOLD")
    receipt_timeout_seconds: int = Field(default=300, validation_alias="RECEIPT_TIMEOUT_SECONDS")
    upcoming_window_seconds: int = Field(default=86400, validation_alias="UPCOMING_WINDOW_SECONDS")

    retry_queue_path: Optional[Path] = Field(default=None, validation_alias="RETRY_QUEUE_PATH")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("contract_address")
    @classmethod
    def validate_contract_address(cls, value: str) -> str:
        candidate = value.strip()
        if not _ADDRESS_RE.match(candidate):
            raise ValueError("CONTRACT_ADDRESS must be a 42-character hex string")
        return candidate

    @field_validator("agent_private_key", mode="before")
    @classmethod
    def normalize_key(cls, value):  # type: ignore[override]
        if not isinstance(value, str):
            raise ValueError("AGENT_PRIVATE_KEY must be a string")
        candidate = normalize_private_key(value)
        if not _PRIVATE_KEY_RE.match(candidate):
            raise ValueError("AGENT_PRIVATE_KEY must be 32 bytes of hex")
        return candidate

    @field_validator("webhook_url", "webhook_secret", mode="before")
    @classmethod
    def blank_to_none(cls, value):  # type: ignore[override]
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("low_balance_threshold", mode="before")
    @classmethod
    def coerce_decimal(cls, value):  # type: ignore[override]
        if isinstance(value, Decimal):
            return value
        try:
            return Decimal(str(value).strip())
        except Exception as exc:
            raise ValueError(f"Invalid decimal value: {value}") from exc

    @field_validator("low_balance_threshold")
    @classmethod
    def validate_non_negative(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("LOW_BALANCE_THRESHOLD must not be negative")
        return value

    @field_validator(
        "check_interval_seconds",
        "retry_interval_seconds",
        "balance_check_interval_seconds",
        "retry_limit",
        "batch_processing_threshold",
        "receipt_timeout_seconds",
        "upcoming_window_seconds",
    )
    @classmethod
    def validate_positive_int(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @field_validator("webhook_timeout_seconds")
    @classmethod
    def validate_positive_float(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @field_validator("gas_limit_buffer")
    @classmethod
    def validate_gas_buffer(cls, value: float) -> float:
        if value < 1.0:
            raise ValueError("GAS_LIMIT_BUFFER must be at least 1.0")
        return value

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @model_validator(mode="after")
    def validate_webhook_secret(self) -> "AgentSettings":
        if self.webhook_secret and not self.webhook_url:
            raise ValueError("WEBHOOK_SECRET is set but WEBHOOK_URL is empty")
        return self


def load_settings(**overrides) -> AgentSettings:
    """Build settings from the environment (and `.env`), applying overrides."""
    return AgentSettings(**overrides)
