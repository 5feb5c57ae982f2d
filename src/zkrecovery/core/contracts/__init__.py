"""
zkrecovery smart contracts.

This module provides:
- Social recovery: guardian commitment and guardian signature recovery
- Account Abstraction: ERC-4337 UserOperations, EntryPoint, smart accounts
- Paymasters and the deterministic account factory
"""

from .account_abstraction import (
    AccountFactory,
    EntryPoint,
    OpResult,
    OpStatus,
    Paymaster,
    SmartAccount,
    UserOperation,
)
from .social_recovery import (
    RecoveryCoordinator,
    RecoveryRequest,
    SignatureRecoveryRequest,
    ZkRecoveryRequest,
)

__all__ = [
    "AccountFactory",
    "EntryPoint",
    "OpResult",
    "OpStatus",
    "Paymaster",
    "SmartAccount",
    "UserOperation",
    "RecoveryCoordinator",
    "RecoveryRequest",
    "SignatureRecoveryRequest",
    "ZkRecoveryRequest",
]
