"""
Tests for ledger state, atomic commits and message calls.
"""

import pytest

from zkrecovery.core.ledger import CallResult, LedgerStore, MAX_CALL_DEPTH, ZkCommitmentMode
from zkrecovery.core.field_hash import FieldElement
from zkrecovery.core.recovery_exceptions import (
    AccountNotFoundError,
    ExecutionRevertedError,
    InsufficientBalanceError,
    InsufficientPrefundError,
    InvalidRecoveryTargetError,
    RecoveryError,
)

ACCOUNT = "0x1111111111111111111111111111111111111111"
OWNER = "0x2222222222222222222222222222222222222222"
OTHER = "0x3333333333333333333333333333333333333333"


class Counter:
    """Call target that counts calls in ledger storage and can be told to revert."""

    def __init__(self, address):
        self.address = address

    def handle_call(self, ctx):
        storage = ctx.ledger.storage_of(self.address)
        storage["calls"] = storage.get("calls", 0) + 1
        if ctx.data == b"revert":
            raise ExecutionRevertedError("told to revert")
        if ctx.data == b"recurse":
            return ctx.ledger.call(self.address, self.address, 0, b"recurse", ctx.depth + 1)
        return CallResult(return_data=b"ok", gas_used=100)


@pytest.fixture
def ledger():
    ledger = LedgerStore()
    ledger.create_account(ACCOUNT, OWNER)
    return ledger


class TestAccounts:
    def test_new_account_state(self, ledger):
        state = ledger.get_account(ACCOUNT)
        assert state.owner == OWNER
        assert state.execution_nonce == 0
        assert state.recovery_nonce == 0
        assert state.recoverable is False

    def test_duplicate_account_rejected(self, ledger):
        with pytest.raises(RecoveryError):
            ledger.create_account(ACCOUNT, OTHER)

    def test_zero_owner_rejected(self):
        with pytest.raises(InvalidRecoveryTargetError):
            LedgerStore().create_account(ACCOUNT, "0x" + "00" * 20)

    def test_unknown_account(self, ledger):
        with pytest.raises(AccountNotFoundError):
            ledger.get_owner(OTHER)

    def test_recovery_mode(self, ledger):
        ledger.set_recovery_mode(ACCOUNT, ZkCommitmentMode(FieldElement(7)))
        assert ledger.get_guardian_commitment(ACCOUNT) == 7
        assert ledger.get_guardian(ACCOUNT) is None

    def test_nullifiers(self, ledger):
        assert ledger.is_nullifier_used(ACCOUNT, 5) is False
        ledger.consume_nullifier(ACCOUNT, 5)
        assert ledger.is_nullifier_used(ACCOUNT, 5) is True


class TestAtomic:
    def test_rollback_on_error(self, ledger):
        ledger.deposit_to(ACCOUNT, 100)
        with pytest.raises(RuntimeError):
            with ledger.atomic():
                ledger.set_owner(ACCOUNT, OTHER)
                ledger.consume_nullifier(ACCOUNT, 9)
                ledger.increment_execution_nonce(ACCOUNT)
                ledger.debit_deposit(ACCOUNT, 60)
                raise RuntimeError("boom")

        assert ledger.get_owner(ACCOUNT) == OWNER
        assert ledger.is_nullifier_used(ACCOUNT, 9) is False
        assert ledger.get_execution_nonce(ACCOUNT) == 0
        assert ledger.balance_of(ACCOUNT) == 100

    def test_commit_on_success(self, ledger):
        with ledger.atomic():
            ledger.set_owner(ACCOUNT, OTHER)
        assert ledger.get_owner(ACCOUNT) == OTHER

    def test_nested_rollback_keeps_outer_changes(self, ledger):
        with ledger.atomic():
            ledger.increment_execution_nonce(ACCOUNT)
            with pytest.raises(RuntimeError):
                with ledger.atomic():
                    ledger.increment_execution_nonce(ACCOUNT)
                    raise RuntimeError("inner")
        assert ledger.get_execution_nonce(ACCOUNT) == 1

    def test_rollback_restores_held_state_in_place(self, ledger):
        state = ledger.get_account(ACCOUNT)
        with pytest.raises(RuntimeError):
            with ledger.atomic():
                ledger.set_owner(ACCOUNT, OTHER)
                ledger.consume_nullifier(ACCOUNT, 9)
                raise RuntimeError("boom")

        assert state is ledger.get_account(ACCOUNT)
        assert state.owner == OWNER
        assert 9 not in state.nullifiers

        ledger.increment_execution_nonce(ACCOUNT)
        assert state.execution_nonce == 1

    def test_outer_rollback_undoes_committed_inner_block(self, ledger):
        with pytest.raises(RuntimeError):
            with ledger.atomic():
                with ledger.atomic():
                    ledger.increment_recovery_nonce(ACCOUNT)
                    ledger.create_account(OTHER, OWNER)
                raise RuntimeError("outer")

        assert ledger.get_recovery_nonce(ACCOUNT) == 0
        assert ledger.has_account(OTHER) is False

    def test_consuming_known_nullifier_survives_rollback(self, ledger):
        ledger.consume_nullifier(ACCOUNT, 5)
        with pytest.raises(RuntimeError):
            with ledger.atomic():
                ledger.consume_nullifier(ACCOUNT, 5)
                raise RuntimeError("boom")
        assert ledger.is_nullifier_used(ACCOUNT, 5) is True


class TestBalances:
    def test_debit_deposit_insufficient(self, ledger):
        ledger.deposit_to(ACCOUNT, 10)
        with pytest.raises(InsufficientPrefundError):
            ledger.debit_deposit(ACCOUNT, 11)
        assert ledger.balance_of(ACCOUNT) == 10

    def test_negative_amounts_rejected(self, ledger):
        with pytest.raises(ValueError):
            ledger.deposit_to(ACCOUNT, -1)
        with pytest.raises(ValueError):
            ledger.credit(ACCOUNT, -1)

    def test_transfer(self, ledger):
        ledger.credit(ACCOUNT, 50)
        ledger.transfer(ACCOUNT, OTHER, 20)
        assert ledger.balance(ACCOUNT) == 30
        assert ledger.balance(OTHER) == 20
        with pytest.raises(InsufficientBalanceError):
            ledger.transfer(ACCOUNT, OTHER, 31)


class TestCalls:
    def test_call_without_code_is_transfer(self, ledger):
        ledger.credit(ACCOUNT, 5)
        result = ledger.call(ACCOUNT, OTHER, 5)
        assert result.return_data == b""
        assert ledger.balance(OTHER) == 5

    def test_call_dispatches_to_code(self, ledger):
        ledger.register_code(OTHER, Counter(OTHER))
        result = ledger.call(ACCOUNT, OTHER, 0, b"hello")
        assert result.return_data == b"ok"
        assert result.gas_used == 100
        assert ledger.storage_of(OTHER)["calls"] == 1

    def test_revert_undoes_value_and_storage(self, ledger):
        ledger.credit(ACCOUNT, 5)
        ledger.register_code(OTHER, Counter(OTHER))
        with pytest.raises(ExecutionRevertedError):
            ledger.call(ACCOUNT, OTHER, 5, b"revert")
        assert ledger.balance(ACCOUNT) == 5
        assert ledger.balance(OTHER) == 0
        assert "calls" not in ledger.storage_of(OTHER)

    def test_call_depth_limit(self, ledger):
        ledger.register_code(OTHER, Counter(OTHER))
        with pytest.raises(ExecutionRevertedError):
            ledger.call(ACCOUNT, OTHER, 0, b"recurse")
        assert "calls" not in ledger.storage_of(OTHER)
        assert MAX_CALL_DEPTH == 64
