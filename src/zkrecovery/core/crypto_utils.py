"""Utility helpers for secp256k1 owner/guardian keys and signatures."""

from __future__ import annotations

from typing import Any, Dict

from eth_account import Account
from eth_account.messages import SignableMessage, encode_defunct, encode_typed_data
from eth_keys.exceptions import BadSignature, ValidationError as KeyValidationError
from eth_utils import is_address, to_checksum_address

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
SIGNATURE_LENGTH = 65

RECOVERY_DOMAIN_NAME = "SmartAccount"
RECOVERY_DOMAIN_VERSION = "1"

_RECOVER_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Recover": [
        {"name": "currentOwner", "type": "address"},
        {"name": "newOwner", "type": "address"},
        {"name": "nonce", "type": "uint256"},
    ],
}


def normalize_address(address: str) -> str:
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return to_checksum_address(address)


def is_zero_address(address: str) -> bool:
    return normalize_address(address) == ZERO_ADDRESS


def same_address(a: str, b: str) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


def generate_keypair() -> tuple[str, str]:
    """Return ``(private_key_hex, checksum_address)`` for a fresh key."""
    acct = Account.create()
    return "0x" + bytes(acct.key).hex(), acct.address


def address_from_private_key(private_key: str) -> str:
    return Account.from_key(private_key).address


def _recover(message: SignableMessage, signature: bytes) -> str:
    if len(signature) != SIGNATURE_LENGTH:
        raise ValueError(f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(signature)}")
    try:
        return Account.recover_message(message, signature=signature)
    except (BadSignature, KeyValidationError, ValueError) as e:
        raise ValueError(f"Signature recovery failed: {e}") from e


# ==================== UserOperation signatures (EIP-191) ====================

def sign_user_op_hash(private_key: str, user_op_hash: bytes) -> bytes:
    """Personal-sign the raw 32-byte userOp hash, as wallets do for ERC-4337."""
    signed = Account.sign_message(encode_defunct(primitive=user_op_hash), private_key)
    return bytes(signed.signature)


def recover_user_op_signer(user_op_hash: bytes, signature: bytes) -> str:
    """
    Recover the address that personal-signed ``user_op_hash``.

    Raises:
        ValueError: If the signature is malformed or unrecoverable.
    """
    return _recover(encode_defunct(primitive=user_op_hash), signature)


# ==================== Guardian recovery signatures (EIP-712) ====================

def recovery_typed_data(
    account: str,
    chain_id: int,
    current_owner: str,
    new_owner: str,
    nonce: int,
) -> Dict[str, Any]:
    """Build the EIP-712 ``Recover`` message a guardian signs."""
    return {
        "types": _RECOVER_TYPES,
        "primaryType": "Recover",
        "domain": {
            "name": RECOVERY_DOMAIN_NAME,
            "version": RECOVERY_DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": normalize_address(account),
        },
        "message": {
            "currentOwner": normalize_address(current_owner),
            "newOwner": normalize_address(new_owner),
            "nonce": nonce,
        },
    }


def sign_recovery(
    private_key: str,
    account: str,
    chain_id: int,
    current_owner: str,
    new_owner: str,
    nonce: int,
) -> bytes:
    typed = recovery_typed_data(account, chain_id, current_owner, new_owner, nonce)
    signed = Account.sign_message(encode_typed_data(full_message=typed), private_key)
    return bytes(signed.signature)


def recover_recovery_signer(
    signature: bytes,
    account: str,
    chain_id: int,
    current_owner: str,
    new_owner: str,
    nonce: int,
) -> str:
    """
    Recover the guardian address from a ``Recover`` signature.

    Raises:
        ValueError: If the signature is malformed or unrecoverable.
    """
    typed = recovery_typed_data(account, chain_id, current_owner, new_owner, nonce)
    return _recover(encode_typed_data(full_message=typed), signature)
