"""
Shared fixtures for recovery and account abstraction tests.

Every test gets an isolated ledger with an entry point, a factory, and one
deployed account owned by a fresh key.
"""

from dataclasses import dataclass
from typing import List

import pytest

from zkrecovery.core.circuit import DevProver, DevVerifier, RecoveryWitness
from zkrecovery.core.contracts.account_abstraction import (
    AccountFactory,
    EntryPoint,
    SmartAccount,
    UserOperation,
)
from zkrecovery.core.contracts.social_recovery import RecoveryCoordinator
from zkrecovery.core.crypto_utils import generate_keypair, sign_user_op_hash
from zkrecovery.core.ledger import LedgerStore

DEV_KEY = "zkrecovery-test-proving-key-0001"
CHAIN_ID = 84532
ENTRY_POINT_ADDRESS = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
BENEFICIARY = "0x000000000000000000000000000000000000beef"
INITIAL_DEPOSIT = 10 ** 18

SECRET_KEY = 123456789
SECRET_ANSWER = "mango"


@dataclass
class Key:
    private_key: str
    address: str


class RejectingVerifier:
    """Verifier stub that rejects every proof and records its calls."""

    def __init__(self):
        self.calls: List[tuple] = []

    def verify(self, proof, public_inputs):
        self.calls.append((proof, list(public_inputs)))
        return False


def new_key() -> Key:
    return Key(*generate_keypair())


@pytest.fixture
def ledger():
    return LedgerStore()


@pytest.fixture
def prover():
    return DevProver(DEV_KEY)


@pytest.fixture
def verifier():
    return DevVerifier(DEV_KEY)


@pytest.fixture
def coordinator(ledger, verifier):
    return RecoveryCoordinator(ledger, verifier, chain_id=CHAIN_ID)


@pytest.fixture
def entry_point(ledger):
    return EntryPoint(
        ledger=ledger,
        address=ENTRY_POINT_ADDRESS,
        chain_id=CHAIN_ID,
        base_fee_per_gas=0,
        verification_gas_cost=35_000,
        call_base_gas=21_000,
        calldata_byte_gas=16,
        account_creation_gas=50_000,
        paymaster_validation_gas=50_000,
    )


@pytest.fixture
def factory(ledger, coordinator, entry_point):
    return AccountFactory(ledger=ledger, recovery=coordinator, entry_point=entry_point.address)


@pytest.fixture
def owner():
    return new_key()


@pytest.fixture
def account(factory, entry_point, owner) -> SmartAccount:
    account = factory.create_account(owner.address, salt=0)
    entry_point.deposit_to(account.address, INITIAL_DEPOSIT)
    return account


@pytest.fixture
def make_witness():
    def _make(new_owner, current_owner, secret_key=SECRET_KEY, secret_answer=SECRET_ANSWER):
        return RecoveryWitness(
            secret_key=secret_key,
            secret_answer=secret_answer,
            new_owner=new_owner,
            current_owner=current_owner,
        )
    return _make


@pytest.fixture
def signed_op(entry_point):
    """Build a UserOperation and sign it with ``key``."""

    def _sign(key: Key, sender: str, call_data: bytes = b"", nonce=None, **fields) -> UserOperation:
        if nonce is None:
            nonce = entry_point.get_nonce(sender)
        op = UserOperation(sender=sender, nonce=nonce, call_data=call_data, **fields)
        op.signature = sign_user_op_hash(key.private_key, entry_point.get_user_op_hash(op))
        return op

    return _sign


@pytest.fixture
def key_factory():
    return new_key


@pytest.fixture
def new_owner():
    return new_key()


@pytest.fixture
def guardian():
    return new_key()


@pytest.fixture
def beneficiary():
    return BENEFICIARY


@pytest.fixture
def rejecting_verifier():
    return RejectingVerifier()
