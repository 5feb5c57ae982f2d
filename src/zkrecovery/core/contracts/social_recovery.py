"""
Guardian-based account recovery.

Two authorization strategies share one ``recover`` entry point:

- ``ZkCommitmentMode``: the owner stores a guardian commitment
  ``H(secret_key, secret_answer)``. Anyone holding a valid proof for a
  specific ``(new_owner, current_owner)`` transition may submit it; the
  proof's nullifier is consumed so the same transition authorization can
  never be replayed.
- ``SignatureMode``: the owner designates a guardian key, which signs an
  EIP-712 ``Recover(currentOwner, newOwner, nonce)`` message.

Every recovery runs inside ``LedgerStore.atomic``: state is re-read at
validation time and the owner change, nullifier consumption and recovery
nonce bump commit together or not at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from ..crypto_utils import (
    ZERO_ADDRESS,
    normalize_address,
    recover_recovery_signer,
    same_address,
)
from ..field_hash import FieldElement, FieldLike
from ..ledger import AccountState, LedgerStore, SignatureMode, ZkCommitmentMode
from ..proof_verifier import ProofVerifier, encode_public_inputs
from ..recovery_exceptions import (
    CommitmentNotSetError,
    InvalidProofError,
    InvalidRecoveryTargetError,
    InvalidSignatureError,
    NonceMismatchError,
    NullifierReusedError,
    StaleOwnerMismatchError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ZkRecoveryRequest:
    """
    Proof-based recovery request.

    ``nonce`` is the account's recovery nonce when the request was built; it
    is checked only when supplied.
    """

    new_owner: str
    current_owner: str
    nullifier_hash: FieldLike
    proof: bytes
    nonce: Optional[int] = None


@dataclass(frozen=True)
class SignatureRecoveryRequest:
    """Guardian-signature recovery request (65-byte EIP-712 signature)."""

    new_owner: str
    nonce: int
    signature: bytes


RecoveryRequest = Union[ZkRecoveryRequest, SignatureRecoveryRequest]


class RecoveryCoordinator:
    """Validates recovery requests and commits ownership transitions."""

    def __init__(
        self,
        ledger: LedgerStore,
        verifier: ProofVerifier,
        chain_id: int,
    ) -> None:
        self.ledger = ledger
        self.verifier = verifier
        self.chain_id = chain_id

    # ==================== Guardian Management ====================

    def set_guardian_commitment(self, account: str, caller: str, commitment: FieldLike) -> None:
        """
        Store the guardian commitment, replacing any previous recovery mode.

        Proofs built for the previous commitment stop verifying immediately.
        """
        commitment = FieldElement(commitment)
        with self.ledger.atomic():
            state = self.ledger.get_account(account)
            self._require_owner_or_self(state, caller)
            self.ledger.set_recovery_mode(account, ZkCommitmentMode(commitment))

        logger.info(
            "Guardian commitment set",
            extra={
                "event": "recovery.commitment_set",
                "account": state.address[:10],
                "commitment": commitment.hex()[:18],
            }
        )

    def set_guardian(self, account: str, caller: str, guardian: str) -> None:
        """Designate a guardian signing key, replacing any previous recovery mode."""
        guardian = normalize_address(guardian)
        if guardian == ZERO_ADDRESS:
            raise InvalidRecoveryTargetError("Guardian cannot be the zero address")
        with self.ledger.atomic():
            state = self.ledger.get_account(account)
            self._require_owner_or_self(state, caller)
            if same_address(guardian, state.owner):
                raise InvalidRecoveryTargetError("Owner cannot be their own guardian")
            self.ledger.set_recovery_mode(account, SignatureMode(guardian))

        logger.info(
            "Guardian set",
            extra={"event": "recovery.guardian_set", "account": state.address[:10], "guardian": guardian[:10]}
        )

    def clear_guardian(self, account: str, caller: str) -> None:
        """Disable recovery for the account."""
        with self.ledger.atomic():
            state = self.ledger.get_account(account)
            self._require_owner_or_self(state, caller)
            self.ledger.set_recovery_mode(account, None)

    def get_guardian_commitment(self, account: str) -> Optional[FieldElement]:
        return self.ledger.get_guardian_commitment(account)

    # ==================== Recovery ====================

    def recover(self, account: str, request: RecoveryRequest) -> None:
        """
        Transfer ownership of ``account`` if ``request`` is authorized.

        Raises:
            CommitmentNotSetError, NullifierReusedError, StaleOwnerMismatchError,
            NonceMismatchError, InvalidProofError, InvalidSignatureError,
            InvalidRecoveryTargetError: No state is changed on any failure.
        """
        if isinstance(request, ZkRecoveryRequest):
            self._recover_with_proof(account, request)
        elif isinstance(request, SignatureRecoveryRequest):
            self._recover_with_signature(account, request)
        else:
            raise TypeError(f"Unsupported recovery request: {type(request).__name__}")

    def _recover_with_proof(self, account: str, request: ZkRecoveryRequest) -> None:
        with self.ledger.atomic():
            state = self.ledger.get_account(account)
            mode = state.recovery_mode
            if not isinstance(mode, ZkCommitmentMode):
                self._log_rejected(state, "commitment_not_set")
                raise CommitmentNotSetError(
                    f"No guardian commitment set for account {state.address}",
                    details={"account": state.address},
                )

            try:
                nullifier = FieldElement(request.nullifier_hash)
            except (TypeError, ValueError) as e:
                self._log_rejected(state, "malformed_nullifier")
                raise InvalidProofError(
                    f"Nullifier is not a field element: {e}",
                    details={"account": state.address},
                ) from e
            if int(nullifier) in state.nullifiers:
                self._log_rejected(state, "nullifier_reused")
                raise NullifierReusedError(
                    "Nullifier already consumed",
                    details={"account": state.address, "nullifier": nullifier.hex()},
                )

            current_owner = state.owner
            if not same_address(request.current_owner, current_owner):
                self._log_rejected(state, "stale_owner")
                raise StaleOwnerMismatchError(
                    "Recovery request was built for a different owner",
                    details={"expected": current_owner, "got": request.current_owner},
                    recoverable=True,
                )

            if request.nonce is not None and request.nonce != state.recovery_nonce:
                self._log_rejected(state, "nonce_mismatch")
                raise NonceMismatchError(
                    "Recovery nonce mismatch",
                    details={"expected": state.recovery_nonce, "got": request.nonce},
                )

            new_owner = self._validate_new_owner(state, request.new_owner)

            public_inputs = encode_public_inputs(nullifier, mode.commitment, new_owner, current_owner)
            if not self.verifier.verify(bytes(request.proof), public_inputs):
                self._log_rejected(state, "invalid_proof")
                raise InvalidProofError(
                    "Recovery proof rejected by verifier",
                    details={"account": state.address, "nullifier": nullifier.hex()},
                )

            self.ledger.consume_nullifier(account, nullifier)
            self._transfer_ownership(state, new_owner, mode="zk")

    def _recover_with_signature(self, account: str, request: SignatureRecoveryRequest) -> None:
        with self.ledger.atomic():
            state = self.ledger.get_account(account)
            if request.nonce != state.recovery_nonce:
                self._log_rejected(state, "nonce_mismatch")
                raise NonceMismatchError(
                    "Recovery nonce mismatch",
                    details={"expected": state.recovery_nonce, "got": request.nonce},
                )

            guardian = state.guardian
            if guardian is None:
                self._log_rejected(state, "guardian_not_set")
                raise InvalidSignatureError(
                    f"No guardian key set for account {state.address}",
                    details={"account": state.address},
                )

            new_owner = self._validate_new_owner(state, request.new_owner)

            try:
                signer = recover_recovery_signer(
                    bytes(request.signature),
                    state.address,
                    self.chain_id,
                    state.owner,
                    new_owner,
                    request.nonce,
                )
            except ValueError as e:
                self._log_rejected(state, "malformed_signature")
                raise InvalidSignatureError(f"Malformed guardian signature: {e}") from e

            if not same_address(signer, guardian):
                self._log_rejected(state, "wrong_signer")
                raise InvalidSignatureError(
                    "Signature is not from the account guardian",
                    details={"account": state.address, "signer": signer},
                )

            self._transfer_ownership(state, new_owner, mode="signature")

    # ==================== Internal ====================

    def _transfer_ownership(self, state: AccountState, new_owner: str, mode: str) -> None:
        old_owner = state.owner
        self.ledger.set_owner(state.address, new_owner)
        self.ledger.increment_recovery_nonce(state.address)

        logger.info(
            "Account recovered",
            extra={
                "event": "recovery.completed",
                "account": state.address[:10],
                "old_owner": old_owner[:10],
                "new_owner": new_owner[:10],
                "mode": mode,
            }
        )

    def _validate_new_owner(self, state: AccountState, new_owner: str) -> str:
        try:
            new_owner = normalize_address(new_owner)
        except ValueError as e:
            raise InvalidRecoveryTargetError(str(e)) from e
        if new_owner == ZERO_ADDRESS:
            raise InvalidRecoveryTargetError("New owner cannot be the zero address")
        if same_address(new_owner, state.owner):
            raise InvalidRecoveryTargetError("New owner is already the owner")
        return new_owner

    def _require_owner_or_self(self, state: AccountState, caller: str) -> None:
        if not (same_address(caller, state.owner) or same_address(caller, state.address)):
            raise UnauthorizedError(
                "Caller is not owner",
                details={"account": state.address, "caller": caller},
            )

    def _log_rejected(self, state: AccountState, reason: str) -> None:
        logger.warning(
            "Recovery rejected",
            extra={"event": "recovery.rejected", "account": state.address[:10], "reason": reason}
        )
