"""
Recovery circuit relation and a local development proof system.

The deployed circuit proves knowledge of ``(secret_key, secret_answer)`` with

    commitment == H(secret_key, secret_answer)
    nullifier  == H(secret_key, H(secret_answer), new_owner, current_owner)

:class:`RecoveryCircuit` evaluates that relation in the clear. The
``DevProver``/``DevVerifier`` pair issues HMAC tags over the public inputs for
satisfying witnesses only. They let the full recovery flow run without the
Noir toolchain; they are not zero-knowledge and must never back a mainnet
deployment.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from .field_hash import (
    FieldElement,
    FieldHasher,
    compute_commitment,
    compute_nullifier,
)
from .proof_verifier import encode_public_inputs, validate_public_inputs
from .recovery_exceptions import WitnessError

logger = logging.getLogger(__name__)

DEV_PROOF_HEADER = b"ZKRDEV1"


@dataclass(frozen=True)
class RecoveryWitness:
    """Private guardian inputs plus the transition being authorized."""

    secret_key: Union[int, str]
    secret_answer: Union[int, str]
    new_owner: str
    current_owner: str


@dataclass(frozen=True)
class RecoveryPublicInputs:
    nullifier_hash: FieldElement
    guardian_commitment: FieldElement
    new_owner: str
    current_owner: str

    def encode(self) -> List[bytes]:
        return encode_public_inputs(
            self.nullifier_hash,
            self.guardian_commitment,
            self.new_owner,
            self.current_owner,
        )


class RecoveryCircuit:
    """Evaluates the recovery relation for a witness."""

    def __init__(self, hasher: Optional[FieldHasher] = None) -> None:
        self.hasher = hasher

    def public_inputs(self, witness: RecoveryWitness) -> RecoveryPublicInputs:
        """Derive the public inputs a satisfying proof for ``witness`` exposes."""
        try:
            commitment = compute_commitment(witness.secret_key, witness.secret_answer, self.hasher)
            nullifier = compute_nullifier(
                witness.secret_key,
                witness.secret_answer,
                witness.new_owner,
                witness.current_owner,
                self.hasher,
            )
        except (TypeError, ValueError) as e:
            raise WitnessError(f"Malformed recovery witness: {e}") from e
        return RecoveryPublicInputs(
            nullifier_hash=nullifier,
            guardian_commitment=commitment,
            new_owner=witness.new_owner,
            current_owner=witness.current_owner,
        )

    def check(self, witness: RecoveryWitness, public: RecoveryPublicInputs) -> None:
        """
        Assert the witness satisfies the relation for ``public``.

        Raises:
            WitnessError: If any constraint fails.
        """
        derived = self.public_inputs(witness)
        if derived.encode() == public.encode():
            return
        failed = []
        if derived.guardian_commitment != public.guardian_commitment:
            failed.append("commitment")
        if derived.nullifier_hash != public.nullifier_hash:
            failed.append("nullifier")
        if derived.encode()[2:] != public.encode()[2:]:
            failed.append("owners")
        raise WitnessError(
            "Witness does not satisfy recovery circuit",
            details={"failed_constraints": failed},
        )


def _dev_tag(key: bytes, public_inputs: Sequence[bytes]) -> bytes:
    return hmac.new(key, DEV_PROOF_HEADER + b"".join(public_inputs), hashlib.sha3_256).digest()


def _key_bytes(proving_key: Union[str, bytes]) -> bytes:
    if isinstance(proving_key, bytes):
        key = proving_key
    else:
        key = proving_key.encode("utf-8")
    if len(key) < 16:
        raise ValueError("Development proving key must be at least 16 bytes")
    return key


class DevProver:
    """Issues development proofs for witnesses that satisfy the circuit."""

    def __init__(self, proving_key: Union[str, bytes], hasher: Optional[FieldHasher] = None) -> None:
        self._key = _key_bytes(proving_key)
        self.circuit = RecoveryCircuit(hasher)

    def prove(
        self,
        witness: RecoveryWitness,
        public: Optional[RecoveryPublicInputs] = None,
    ) -> tuple[bytes, RecoveryPublicInputs]:
        """
        Prove ``witness`` against ``public`` (derived from the witness if omitted).

        Returns:
            ``(proof, public_inputs)``

        Raises:
            WitnessError: If the witness does not satisfy the relation.
        """
        if public is None:
            public = self.circuit.public_inputs(witness)
        else:
            self.circuit.check(witness, public)

        proof = DEV_PROOF_HEADER + _dev_tag(self._key, public.encode())
        logger.debug(
            "Development proof generated",
            extra={"event": "dev_prover.proof_generated", "nullifier": public.nullifier_hash.hex()[:18]}
        )
        return proof, public


class DevVerifier:
    """Verifies :class:`DevProver` proofs."""

    def __init__(self, proving_key: Union[str, bytes]) -> None:
        self._key = _key_bytes(proving_key)

    def verify(self, proof: bytes, public_inputs: Sequence[bytes]) -> bool:
        validate_public_inputs(public_inputs)
        if not proof.startswith(DEV_PROOF_HEADER):
            return False
        expected = _dev_tag(self._key, public_inputs)
        return hmac.compare_digest(proof[len(DEV_PROOF_HEADER):], expected)
