"""
Proof verifier adapters.

The recovery protocol treats the verifier as an oracle: it hands over the
opaque proof bytes and the public inputs and gets accept/reject back. The
public-input layout is a wire contract with the prover and must match it bit
for bit:

    [nullifier_hash, guardian_commitment, new_owner, current_owner]

each a 32-byte big-endian word, addresses zero-padded in the high bytes.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from .field_hash import FieldElement, FieldLike, address_to_bytes32, FIELD_BYTES
from .recovery_exceptions import ProofVerifierUnavailable

logger = logging.getLogger(__name__)

PUBLIC_INPUT_COUNT = 4


class ProofVerifier(Protocol):
    """Accepts or rejects an opaque proof for the given public inputs."""

    def verify(self, proof: bytes, public_inputs: Sequence[bytes]) -> bool:
        ...


def encode_public_inputs(
    nullifier_hash: FieldLike,
    guardian_commitment: FieldLike,
    new_owner: str,
    current_owner: str,
) -> List[bytes]:
    """Assemble the four public inputs in circuit order."""
    return [
        FieldElement(nullifier_hash).to_bytes32(),
        FieldElement(guardian_commitment).to_bytes32(),
        address_to_bytes32(new_owner),
        address_to_bytes32(current_owner),
    ]


def validate_public_inputs(public_inputs: Sequence[bytes]) -> None:
    if len(public_inputs) != PUBLIC_INPUT_COUNT:
        raise ValueError(f"Expected {PUBLIC_INPUT_COUNT} public inputs, got {len(public_inputs)}")
    for index, word in enumerate(public_inputs):
        if len(word) != FIELD_BYTES:
            raise ValueError(f"Public input {index} must be {FIELD_BYTES} bytes, got {len(word)}")


class BarretenbergVerifier:
    """
    Verifies UltraHonk proofs by running the Barretenberg ``bb`` binary.

    Proof and public inputs are written to a private temporary directory and
    checked with ``bb verify``. Exit status 0 means the proof is valid; any
    other status is a rejection. Failing to run the binary at all raises
    :class:`ProofVerifierUnavailable` instead of rejecting, so callers never
    mistake an outage for a bad proof.
    """

    def __init__(
        self,
        verification_key_path: str,
        binary: str = "bb",
        timeout: float = 60.0,
        oracle_hash: Optional[str] = "keccak",
    ) -> None:
        self.verification_key_path = Path(verification_key_path)
        self.binary = binary
        self.timeout = timeout
        self.oracle_hash = oracle_hash

    def _command(self, proof_path: Path, inputs_path: Path) -> List[str]:
        cmd = [
            self.binary,
            "verify",
            "-k", str(self.verification_key_path),
            "-p", str(proof_path),
            "-i", str(inputs_path),
        ]
        if self.oracle_hash:
            cmd += ["--oracle_hash", self.oracle_hash]
        return cmd

    def verify(self, proof: bytes, public_inputs: Sequence[bytes]) -> bool:
        validate_public_inputs(public_inputs)
        if not proof:
            return False
        if not self.verification_key_path.exists():
            raise ProofVerifierUnavailable(
                f"Verification key not found: {self.verification_key_path}",
                details={"verification_key": str(self.verification_key_path)},
            )

        with tempfile.TemporaryDirectory(prefix="zkrecovery-bb-") as workdir:
            proof_path = Path(workdir) / "proof"
            inputs_path = Path(workdir) / "public_inputs"
            proof_path.write_bytes(proof)
            inputs_path.write_bytes(b"".join(public_inputs))

            cmd = self._command(proof_path, inputs_path)
            try:
                result = subprocess.run(
                    cmd, capture_output=True, text=True, timeout=self.timeout
                )
            except FileNotFoundError as e:
                raise ProofVerifierUnavailable(
                    f"Proof verifier binary not found: {self.binary}",
                    details={"binary": self.binary},
                ) from e
            except subprocess.TimeoutExpired as e:
                raise ProofVerifierUnavailable(
                    f"Proof verification timed out after {self.timeout}s",
                    details={"timeout": self.timeout},
                ) from e

        if result.returncode != 0:
            logger.info(
                "Proof rejected by verifier",
                extra={
                    "event": "proof_verifier.rejected",
                    "returncode": result.returncode,
                    "stderr": result.stderr[-500:] if result.stderr else "",
                }
            )
            return False

        logger.debug(
            "Proof accepted by verifier",
            extra={"event": "proof_verifier.accepted", "proof_bytes": len(proof)}
        )
        return True


def build_proof_verifier(config=None) -> ProofVerifier:
    """Create the verifier selected by configuration."""
    if config is None:
        from .config import Config as config  # noqa: N813

    if config.PROOF_BACKEND == "barretenberg":
        return BarretenbergVerifier(
            verification_key_path=config.BB_VERIFICATION_KEY,
            binary=config.BB_BINARY,
            timeout=config.BB_TIMEOUT_SECONDS,
        )
    if config.PROOF_BACKEND == "dev":
        from .circuit import DevVerifier

        return DevVerifier(config.DEV_PROVING_KEY)
    raise ValueError(f"Unknown proof backend: {config.PROOF_BACKEND}")
