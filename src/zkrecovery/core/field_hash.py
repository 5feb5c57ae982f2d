"""
Field arithmetic helpers and the commitment/nullifier hash.

All values exchanged with the recovery circuit are elements of the BN254
scalar field. Addresses enter the field as 32-byte words with the 20 address
bytes in the low-order positions (``bytes32(uint256(uint160(addr)))``).

The hash is pluggable through :class:`FieldHasher`. The default
:class:`Sha3FieldHasher` is a domain-separated SHA3-256 reduced into the
field; a Poseidon2 backend matching a deployed circuit can be swapped in by
passing any object with a compatible ``hash`` method.
"""

from __future__ import annotations

import hashlib
from typing import Optional, Protocol, Union

from eth_utils import is_address, to_canonical_address

# BN254 scalar field (the Noir / Barretenberg native field)
FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617
FIELD_BYTES = 32
ADDRESS_BYTES = 20

_HASH_DOMAIN = b"zkrecovery.field_hash.v1"


class FieldElement(int):
    """Integer constrained to ``[0, FIELD_MODULUS)``."""

    def __new__(cls, value: int) -> "FieldElement":
        value = int(value)
        if not 0 <= value < FIELD_MODULUS:
            raise ValueError(f"Value is not a field element: {value}")
        return super().__new__(cls, value)

    @classmethod
    def from_bytes32(cls, data: bytes) -> "FieldElement":
        if len(data) != FIELD_BYTES:
            raise ValueError(f"Field element must be {FIELD_BYTES} bytes, got {len(data)}")
        return cls(int.from_bytes(data, "big"))

    @classmethod
    def from_hex(cls, value: str) -> "FieldElement":
        text = value[2:] if value.lower().startswith("0x") else value
        if not text or len(text) > FIELD_BYTES * 2:
            raise ValueError(f"Invalid field element hex: {value!r}")
        return cls(int(text, 16))

    def to_bytes32(self) -> bytes:
        return int(self).to_bytes(FIELD_BYTES, "big")

    def hex(self) -> str:
        return "0x" + self.to_bytes32().hex()

    def __repr__(self) -> str:
        return f"FieldElement({self.hex()})"


FieldLike = Union[FieldElement, int]


class FieldHasher(Protocol):
    """Collision-resistant hash from field elements to a field element."""

    def hash(self, *inputs: FieldLike) -> FieldElement:
        ...


class Sha3FieldHasher:
    """
    SHA3-256 based field hash.

    Inputs are serialized as 32-byte big-endian words behind a domain tag and
    the input count, so ``H(a)`` and ``H(a, 0)`` never collide by construction.
    """

    def __init__(self, domain: bytes = _HASH_DOMAIN) -> None:
        self.domain = domain

    def hash(self, *inputs: FieldLike) -> FieldElement:
        if not inputs:
            raise ValueError("FieldHash requires at least one input")
        if len(inputs) > 255:
            raise ValueError("FieldHash supports at most 255 inputs")

        hasher = hashlib.sha3_256()
        hasher.update(self.domain)
        hasher.update(len(inputs).to_bytes(1, "big"))
        for value in inputs:
            hasher.update(FieldElement(value).to_bytes32())
        return FieldElement(int.from_bytes(hasher.digest(), "big") % FIELD_MODULUS)


DEFAULT_HASHER: FieldHasher = Sha3FieldHasher()


def field_hash(*inputs: FieldLike, hasher: Optional[FieldHasher] = None) -> FieldElement:
    """Hash field elements with the given (or default) hasher."""
    return (hasher or DEFAULT_HASHER).hash(*inputs)


# ==================== Encodings ====================

def address_to_field(address: str) -> FieldElement:
    """
    Encode a 20-byte address as a field element.

    The address occupies the low-order 20 bytes of the 32-byte word; the
    high 12 bytes are zero.
    """
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return FieldElement(int.from_bytes(to_canonical_address(address), "big"))


def address_to_bytes32(address: str) -> bytes:
    return address_to_field(address).to_bytes32()


def word_to_field(word: str) -> FieldElement:
    """
    Encode a secret-answer word: its UTF-8 bytes read as a big-endian integer.

    ``"mango"`` becomes ``0x6d616e676f``. Words too long to fit the field are
    rejected rather than silently reduced.
    """
    if not word:
        raise ValueError("Secret answer word must not be empty")
    value = int.from_bytes(word.encode("utf-8"), "big")
    if value >= FIELD_MODULUS:
        raise ValueError("Secret answer word is too long to encode as a field element")
    return FieldElement(value)


def secret_to_field(value: Union[int, str]) -> FieldElement:
    """
    Coerce a guardian secret into the field.

    Integers, decimal strings and 0x-hex strings are reduced modulo the field
    prime; any other string is treated as a word (see :func:`word_to_field`).
    """
    if isinstance(value, bool):
        raise TypeError("Secret must be an int or str, not bool")
    if isinstance(value, int):
        return FieldElement(value % FIELD_MODULUS)
    if not isinstance(value, str):
        raise TypeError(f"Secret must be an int or str, got {type(value).__name__}")

    text = value.strip()
    if text.isdigit():
        return FieldElement(int(text) % FIELD_MODULUS)
    if text.lower().startswith("0x"):
        try:
            return FieldElement(int(text, 16) % FIELD_MODULUS)
        except ValueError:
            pass
    return word_to_field(text)


# ==================== Commitment / Nullifier ====================

def compute_commitment(
    secret_key: Union[int, str],
    secret_answer: Union[int, str],
    hasher: Optional[FieldHasher] = None,
) -> FieldElement:
    """Guardian commitment: ``H(secret_key, secret_answer)``."""
    return field_hash(secret_to_field(secret_key), secret_to_field(secret_answer), hasher=hasher)


def compute_nullifier(
    secret_key: Union[int, str],
    secret_answer: Union[int, str],
    new_owner: str,
    current_owner: str,
    hasher: Optional[FieldHasher] = None,
) -> FieldElement:
    """
    Recovery nullifier: ``H(secret_key, H(secret_answer), new_owner, current_owner)``.

    Binds one proof to exactly one ownership transition.
    """
    hashed_answer = field_hash(secret_to_field(secret_answer), hasher=hasher)
    return field_hash(
        secret_to_field(secret_key),
        hashed_answer,
        address_to_field(new_owner),
        address_to_field(current_owner),
        hasher=hasher,
    )
