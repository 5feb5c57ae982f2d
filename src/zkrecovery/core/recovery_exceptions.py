"""
Exception hierarchy for account recovery and UserOperation execution.

Every failure carries a stable ``kind`` so callers can tell retryable
problems (nonce, prefund) apart from terminal ones (nullifier reuse,
invalid proof).
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class RecoveryError(Exception):
    """Base exception for all recovery and execution errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether resubmitting (with corrected inputs) can succeed
    """

    kind = "RecoveryError"
    recoverable_default = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = self.recoverable_default if recoverable is None else recoverable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# ==================== Authorization Errors ====================


class UnauthorizedError(RecoveryError):
    """Raised when the caller lacks the required role (not the owner)."""

    kind = "Unauthorized"


class UnauthorizedSignerError(RecoveryError):
    """Raised when a UserOperation signature does not recover to the current owner."""

    kind = "UnauthorizedSigner"


# ==================== Recovery Errors ====================


class StaleOwnerMismatchError(RecoveryError):
    """Raised when a recovery request was built against an owner that is no longer current."""

    kind = "StaleOwnerMismatch"


class CommitmentNotSetError(RecoveryError):
    """Raised when ZK recovery is attempted on an account with no guardian commitment."""

    kind = "CommitmentNotSet"


class NullifierReusedError(RecoveryError):
    """Raised on replay: the nullifier was already consumed for this account.

    Never retryable with the same nullifier.
    """

    kind = "NullifierReused"


class InvalidProofError(RecoveryError):
    """Raised when the proof verifier rejects the proof."""

    kind = "InvalidProof"


class InvalidSignatureError(RecoveryError):
    """Raised when a guardian signature is malformed or not from the guardian."""

    kind = "InvalidSignature"


class InvalidRecoveryTargetError(RecoveryError):
    """Raised when the requested new owner is the zero address or malformed."""

    kind = "InvalidRecoveryTarget"


# ==================== Execution Errors ====================


class NonceMismatchError(RecoveryError):
    """Raised when an operation or recovery nonce is stale or out of order."""

    kind = "NonceMismatch"
    recoverable_default = True


class InsufficientPrefundError(RecoveryError):
    """Raised when the deposit cannot cover the operation's maximum gas cost."""

    kind = "InsufficientPrefund"
    recoverable_default = True


class AccountNotFoundError(RecoveryError):
    """Raised when an operation targets an account that does not exist."""

    kind = "AccountNotFound"


class AccountCreationError(RecoveryError):
    """Raised when initCode cannot deploy the operation's sender."""

    kind = "AccountCreationFailed"


class PaymasterRejectedError(RecoveryError):
    """Raised when a paymaster is unknown or refuses to sponsor an operation."""

    kind = "PaymasterRejected"
    recoverable_default = True


class InvalidUserOperationError(RecoveryError):
    """Raised when a UserOperation is structurally invalid (bad address, oversized gas field)."""

    kind = "InvalidUserOperation"


class ExecutionRevertedError(RecoveryError):
    """Raised when an account call reverts during execution."""

    kind = "ExecutionReverted"


class InsufficientBalanceError(ExecutionRevertedError):
    """Raised when a value transfer or withdrawal exceeds the available balance."""

    kind = "InsufficientBalance"


# ==================== Infrastructure Errors ====================


class ProofVerifierUnavailable(RecoveryError):
    """Raised when the external proof verifier cannot be run at all."""

    kind = "ProofVerifierUnavailable"
    recoverable_default = True


class WitnessError(RecoveryError):
    """Raised when a recovery witness does not satisfy the circuit relation."""

    kind = "WitnessError"
