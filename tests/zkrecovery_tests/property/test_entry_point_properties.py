"""
Property-based tests for EntryPoint nonce and accounting invariants.

Each example builds a fresh ledger, so no pytest fixtures are shared
across Hypothesis examples.
"""

from hypothesis import given, settings, strategies as st

from zkrecovery.core.circuit import DevVerifier
from zkrecovery.core.contracts.abi import encode_call
from zkrecovery.core.contracts.account_abstraction import (
    EXECUTE,
    AccountFactory,
    EntryPoint,
    OpStatus,
    UserOperation,
)
from zkrecovery.core.contracts.social_recovery import RecoveryCoordinator
from zkrecovery.core.crypto_utils import generate_keypair, sign_user_op_hash
from zkrecovery.core.ledger import LedgerStore

ENTRY_POINT_ADDRESS = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
BENEFICIARY = "0x000000000000000000000000000000000000beef"
RECIPIENT = "0x000000000000000000000000000000000000dEaD"
DEPOSIT = 10 ** 18
BALANCE = 1_000

OWNER_KEY, OWNER = generate_keypair()
STRANGER_KEY, _ = generate_keypair()


def build():
    ledger = LedgerStore()
    entry_point = EntryPoint(
        ledger=ledger,
        address=ENTRY_POINT_ADDRESS,
        chain_id=84532,
        base_fee_per_gas=0,
        verification_gas_cost=35_000,
        call_base_gas=21_000,
        calldata_byte_gas=16,
        account_creation_gas=50_000,
        paymaster_validation_gas=50_000,
    )
    coordinator = RecoveryCoordinator(ledger, DevVerifier("zkrecovery-test-proving-key-0001"), chain_id=84532)
    factory = AccountFactory(ledger=ledger, recovery=coordinator, entry_point=entry_point.address)
    account = factory.create_account(OWNER, 0)
    entry_point.deposit_to(account.address, DEPOSIT)
    ledger.credit(account.address, BALANCE)
    return ledger, entry_point, account


# (signed by owner, nonce offset from expected, transfer amount)
op_plans = st.lists(
    st.tuples(st.booleans(), st.sampled_from([0, 0, 0, -1, 1]), st.integers(min_value=0, max_value=600)),
    min_size=1,
    max_size=6,
)


@given(plans=op_plans)
@settings(max_examples=20, deadline=None)
def test_nonce_advances_once_per_validated_op(plans):
    ledger, entry_point, account = build()

    ops = []
    expected_nonce = 0
    for by_owner, offset, amount in plans:
        nonce = max(expected_nonce + offset, 0)
        op = UserOperation(
            sender=account.address,
            nonce=nonce,
            call_data=encode_call(EXECUTE, RECIPIENT, amount, b""),
        )
        op.signature = sign_user_op_hash(OWNER_KEY if by_owner else STRANGER_KEY, entry_point.get_user_op_hash(op))
        ops.append(op)
        if by_owner and nonce == expected_nonce:
            expected_nonce += 1

    results = entry_point.handle_ops(ops, BENEFICIARY)

    validated = [r for r in results if r.status != OpStatus.REJECTED]
    assert len(validated) == expected_nonce
    assert entry_point.get_nonce(account.address) == expected_nonce

    # Value is conserved across account and recipient
    assert ledger.balance(account.address) + ledger.balance(RECIPIENT) == BALANCE

    # Gas paid to the beneficiary is exactly what left the deposit
    charged = sum(r.actual_gas_cost for r in results)
    assert ledger.balance(BENEFICIARY) == charged
    assert entry_point.balance_of(account.address) == DEPOSIT - charged

    # Rejected ops never cost anything
    assert all(r.actual_gas_cost == 0 for r in results if r.status == OpStatus.REJECTED)
