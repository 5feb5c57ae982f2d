"""Minimal ABI helpers for account calldata."""

from __future__ import annotations

from typing import Any, List, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import function_signature_to_4byte_selector

from ..recovery_exceptions import ExecutionRevertedError

SELECTOR_BYTES = 4


def argument_types(signature: str) -> List[str]:
    """``"execute(address,uint256,bytes)"`` -> ``["address", "uint256", "bytes"]``."""
    inner = signature[signature.index("(") + 1:signature.rindex(")")]
    return [t for t in inner.split(",") if t]


def selector(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature)


def encode_call(signature: str, *args: Any) -> bytes:
    """ABI-encode a function call (selector followed by arguments)."""
    return selector(signature) + encode(argument_types(signature), list(args))


def decode_args(signature: str, data: bytes) -> Tuple[Any, ...]:
    """
    Decode the arguments of ``data`` (selector included) for ``signature``.

    Raises:
        ExecutionRevertedError: If the calldata does not match the signature.
    """
    if data[:SELECTOR_BYTES] != selector(signature):
        raise ExecutionRevertedError(f"Calldata is not a call to {signature}")
    try:
        return tuple(decode(argument_types(signature), data[SELECTOR_BYTES:]))
    except (DecodingError, EncodingError, ValueError) as e:
        raise ExecutionRevertedError(f"Malformed calldata for {signature}: {e}") from e


def encode_return(types: List[str], values: List[Any]) -> bytes:
    return encode(types, values)
