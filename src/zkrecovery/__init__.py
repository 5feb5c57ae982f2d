"""
zkrecovery - Guardian account recovery for smart accounts

Owners of an ERC-4337 style smart account can regain control after losing
their signing key, either with a zero-knowledge proof of a guardian secret
or with an EIP-712 signature from a designated guardian key.

Main Components:
- Field hashing: commitment and nullifier derivation
- Proof verification: Barretenberg and development backends
- Social recovery: commitment/nullifier and signature recovery modes
- Account abstraction: UserOperations, EntryPoint, smart accounts, paymasters
"""

__version__ = "0.1.0"
__author__ = "zkrecovery Development Team"

__all__ = []
