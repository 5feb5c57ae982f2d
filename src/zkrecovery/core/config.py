"""
zkrecovery Configuration

Supports testnet and mainnet with separate configurations.

SECURITY NOTICE:
- The development proving key is for local testing only
- Mainnet requires the external proof verifier to be configured
- Never commit secrets to version control
"""

from __future__ import annotations

import logging
import os
import secrets as secrets_module
from enum import Enum

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    TESTNET = "testnet"
    MAINNET = "mainnet"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _get_required_secret(env_var: str, network: str) -> str:
    """Get a required secret from environment, with mainnet enforcement.

    On mainnet, missing secrets raise ConfigurationError.
    On testnet, missing secrets generate a random value with a warning.
    """
    value = os.getenv(env_var, "").strip()
    if value:
        return value

    if network.lower() == "mainnet":
        raise ConfigurationError(
            f"CRITICAL: {env_var} environment variable required for mainnet. "
            f"Generate a secure secret: python -c \"import secrets; print(secrets.token_hex(32))\""
        )

    generated = secrets_module.token_hex(32)
    logger.warning(
        "Security: %s not set, using generated value for testnet. "
        "Set this environment variable for production.",
        env_var,
        extra={"event": "config.secret_generated", "env_var": env_var}
    )
    return generated


# Get network type from environment variable
NETWORK = os.getenv("ZKR_NETWORK", "testnet")  # Default to testnet for safety

# Proof verification backend: "barretenberg" shells out to `bb verify`,
# "dev" uses the local HMAC development verifier.
PROOF_BACKEND = os.getenv("ZKR_PROOF_BACKEND", "dev").strip().lower()
BB_BINARY = os.getenv("ZKR_BB_BINARY", "bb").strip()
BB_VERIFICATION_KEY = os.getenv("ZKR_BB_VERIFICATION_KEY", "").strip()
BB_TIMEOUT_SECONDS = float(os.getenv("ZKR_BB_TIMEOUT_SECONDS", "60"))

# Gas accounting (simulated EntryPoint)
BASE_FEE_PER_GAS = int(os.getenv("ZKR_BASE_FEE_PER_GAS", "0"))
VERIFICATION_GAS_COST = int(os.getenv("ZKR_VERIFICATION_GAS_COST", "35000"))
CALL_BASE_GAS = int(os.getenv("ZKR_CALL_BASE_GAS", "21000"))
CALLDATA_BYTE_GAS = int(os.getenv("ZKR_CALLDATA_BYTE_GAS", "16"))
ACCOUNT_CREATION_GAS = int(os.getenv("ZKR_ACCOUNT_CREATION_GAS", "50000"))
PAYMASTER_VALIDATION_GAS = int(os.getenv("ZKR_PAYMASTER_VALIDATION_GAS", "50000"))

LOG_LEVEL = os.getenv("ZKR_LOG_LEVEL", "WARNING").strip().upper()
LOG_FILE = os.getenv("ZKR_LOG_FILE", "").strip()


class TestnetConfig:
    """Testnet Configuration (for local testing before mainnet)"""

    NETWORK_TYPE = NetworkType.TESTNET
    CHAIN_ID = int(os.getenv("ZKR_CHAIN_ID", "84532"))  # Base Sepolia

    # Canonical ERC-4337 v0.7 EntryPoint address
    ENTRY_POINT_ADDRESS = os.getenv(
        "ZKR_ENTRY_POINT_ADDRESS", "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
    )

    PROOF_BACKEND = PROOF_BACKEND
    DEV_PROVING_KEY = _get_required_secret("ZKR_DEV_PROVING_KEY", NETWORK) if PROOF_BACKEND == "dev" else ""
    BB_BINARY = BB_BINARY
    BB_VERIFICATION_KEY = BB_VERIFICATION_KEY
    BB_TIMEOUT_SECONDS = BB_TIMEOUT_SECONDS

    BASE_FEE_PER_GAS = BASE_FEE_PER_GAS
    VERIFICATION_GAS_COST = VERIFICATION_GAS_COST
    CALL_BASE_GAS = CALL_BASE_GAS
    CALLDATA_BYTE_GAS = CALLDATA_BYTE_GAS
    ACCOUNT_CREATION_GAS = ACCOUNT_CREATION_GAS
    PAYMASTER_VALIDATION_GAS = PAYMASTER_VALIDATION_GAS

    LOG_LEVEL = LOG_LEVEL
    LOG_FILE = LOG_FILE


class MainnetConfig:
    """Mainnet Configuration (production)"""

    NETWORK_TYPE = NetworkType.MAINNET
    CHAIN_ID = int(os.getenv("ZKR_CHAIN_ID", "8453"))  # Base

    ENTRY_POINT_ADDRESS = os.getenv(
        "ZKR_ENTRY_POINT_ADDRESS", "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
    )

    # Mainnet never runs the development verifier
    PROOF_BACKEND = "barretenberg"
    DEV_PROVING_KEY = ""
    BB_BINARY = BB_BINARY
    BB_VERIFICATION_KEY = BB_VERIFICATION_KEY
    BB_TIMEOUT_SECONDS = BB_TIMEOUT_SECONDS

    BASE_FEE_PER_GAS = BASE_FEE_PER_GAS
    VERIFICATION_GAS_COST = VERIFICATION_GAS_COST
    CALL_BASE_GAS = CALL_BASE_GAS
    CALLDATA_BYTE_GAS = CALLDATA_BYTE_GAS
    ACCOUNT_CREATION_GAS = ACCOUNT_CREATION_GAS
    PAYMASTER_VALIDATION_GAS = PAYMASTER_VALIDATION_GAS

    LOG_LEVEL = LOG_LEVEL
    LOG_FILE = LOG_FILE


if NETWORK.lower() == "mainnet":
    Config = MainnetConfig
    if not BB_VERIFICATION_KEY:
        raise ConfigurationError(
            "CRITICAL: ZKR_BB_VERIFICATION_KEY must point to the circuit verification key on mainnet."
        )
else:
    Config = TestnetConfig


__all__ = [
    "Config",
    "ConfigurationError",
    "NetworkType",
    "TestnetConfig",
    "MainnetConfig",
    "NETWORK",
]
