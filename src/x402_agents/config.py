"""
Configuration for x402 agent servers and clients.

Values come from the process environment, optionally layered on top of a
``.env`` file loaded with python-dotenv. Explicit overrides always win.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import dotenv_values
from eth_utils import is_hex_address, to_checksum_address

from x402_agents.errors import ConfigError

__all__ = [
    "AppConfig",
    "load_config",
]

DEFAULT_ADDRESS = "0x1234567890123456789012345678901234567890"
DEFAULT_USDC_BASE_SEPOLIA = "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"


def _normalize_address(raw_address: str, field_name: str) -> str:
    value = raw_address.strip()
    if not value:
        raise ConfigError(f"{field_name} must not be empty")
    if not value.startswith("0x"):
        value = "0x" + value
    if not is_hex_address(value):
        raise ConfigError(f"{field_name} is not a valid EVM address")
    return to_checksum_address(value)


def _as_int(values: Mapping[str, str], key: str, default: str) -> int:
    raw = values.get(key, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got '{raw}'") from exc


def _as_float(values: Mapping[str, str], key: str, default: str) -> float:
    raw = values.get(key, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number, got '{raw}'") from exc


@dataclass(frozen=True)
class AppConfig:
    port: int
    server_address: str
    rpc_url: str
    chain_id: int
    network: str
    usdc_contract_address: str
    agent_private_key: Optional[str]
    agent_address: Optional[str]
    confirmation_interval: float = 2.0
    confirmation_attempts: int = 30

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> "AppConfig":
        confirmation_interval = _as_float(values, "X402_CONFIRMATION_INTERVAL", "2")
        if confirmation_interval < 0:
            raise ConfigError("X402_CONFIRMATION_INTERVAL must not be negative")
        confirmation_attempts = _as_int(values, "X402_CONFIRMATION_ATTEMPTS", "30")
        if confirmation_attempts < 1:
            raise ConfigError("X402_CONFIRMATION_ATTEMPTS must be at least 1")

        private_key = values.get("AGENT_PRIVATE_KEY") or None
        if private_key is not None:
            private_key = private_key.strip()
            if not private_key.startswith("0x"):
                private_key = "0x" + private_key
            if len(private_key) != 66:
                raise ConfigError("AGENT_PRIVATE_KEY must be 32 bytes (64 hex chars)")

        return cls(
            port=_as_int(values, "PORT", "3000"),
            server_address=_normalize_address(
                values.get("SERVER_ADDRESS", DEFAULT_ADDRESS), "SERVER_ADDRESS"
            ),
            rpc_url=values.get("RPC_URL", "https://sepolia.base.org"),
            chain_id=_as_int(values, "CHAIN_ID", "84532"),
            network=values.get("NETWORK", "base-sepolia"),
            usdc_contract_address=_normalize_address(
                values.get("USDC_CONTRACT_ADDRESS", DEFAULT_USDC_BASE_SEPOLIA),
                "USDC_CONTRACT_ADDRESS",
            ),
            agent_private_key=private_key,
            agent_address=(
                _normalize_address(values["AGENT_ADDRESS"], "AGENT_ADDRESS")
                if "AGENT_ADDRESS" in values
                else None
            ),
            confirmation_interval=confirmation_interval,
            confirmation_attempts=confirmation_attempts,
        )

    @classmethod
    def from_env(
        cls,
        *,
        env_file: Optional[str] = ".env",
        base: Optional[Mapping[str, str]] = None,
        overrides: Optional[Mapping[str, str]] = None,
    ) -> "AppConfig":
        """
        Build the configuration from ``base`` (defaults to :data:`os.environ`),
        filling gaps from ``env_file``. Set ``env_file`` to ``None`` to skip
        file loading entirely.
        """
        merged = dict(base if base is not None else os.environ)
        if env_file is not None:
            for key, value in dotenv_values(env_file).items():
                if value is not None:
                    merged.setdefault(key, value)
        if overrides:
            merged.update(overrides)
        return cls.from_mapping(merged)


def load_config(**kwargs) -> AppConfig:
    """Convenience wrapper that mirrors :meth:`AppConfig.from_env`."""
    return AppConfig.from_env(**kwargs)
