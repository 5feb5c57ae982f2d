"""
Shared ledger state for accounts, deposits and call targets.

The ledger is the single serializing commit point: every recovery and every
UserOperation runs inside :meth:`LedgerStore.atomic`, which holds the ledger
lock and restores the previous state if the block raises. Components receive
the store explicitly, so tests build an isolated ledger per case.

Consumed nullifiers are kept per account and never removed. The set grows
with every successful ZK recovery; that storage cost is what buys
at-most-once recovery per nullifier.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, Set, Union

from .crypto_utils import ZERO_ADDRESS, normalize_address
from .field_hash import FieldElement
from .recovery_exceptions import (
    AccountNotFoundError,
    ExecutionRevertedError,
    InsufficientBalanceError,
    InsufficientPrefundError,
    InvalidRecoveryTargetError,
    RecoveryError,
)

logger = logging.getLogger(__name__)

MAX_CALL_DEPTH = 64


# ==================== Recovery Modes ====================

@dataclass(frozen=True)
class SignatureMode:
    """Recovery authorized by an EIP-712 signature from a guardian key."""
    guardian: str


@dataclass(frozen=True)
class ZkCommitmentMode:
    """Recovery authorized by a proof of knowledge of the committed secret."""
    commitment: FieldElement


RecoveryMode = Union[SignatureMode, ZkCommitmentMode]


# ==================== Account State ====================

@dataclass
class AccountState:
    """Per-account record: owner, nonces, recovery configuration and consumed nullifiers."""

    address: str
    owner: str
    execution_nonce: int = 0
    recovery_nonce: int = 0
    recovery_mode: Optional[RecoveryMode] = None
    nullifiers: Set[int] = field(default_factory=set)
    created_at: float = field(default_factory=time.time)

    @property
    def guardian_commitment(self) -> Optional[FieldElement]:
        if isinstance(self.recovery_mode, ZkCommitmentMode):
            return self.recovery_mode.commitment
        return None

    @property
    def guardian(self) -> Optional[str]:
        if isinstance(self.recovery_mode, SignatureMode):
            return self.recovery_mode.guardian
        return None

    @property
    def recoverable(self) -> bool:
        return self.recovery_mode is not None


# ==================== Calls ====================

@dataclass
class CallContext:
    """One message call: who is calling which target with what."""
    ledger: "LedgerStore"
    caller: str
    target: str
    value: int
    data: bytes
    depth: int = 0


@dataclass
class CallResult:
    return_data: bytes = b""
    gas_used: int = 0


class CallTarget(Protocol):
    """Code registered at an address. Persistent state lives in ``ledger.storage``."""

    def handle_call(self, ctx: CallContext) -> CallResult:
        ...


def _key(address: str) -> str:
    return normalize_address(address).lower()


class LedgerStore:
    """In-memory world state shared by the recovery coordinator and the entry point."""

    def __init__(self) -> None:
        self.accounts: Dict[str, AccountState] = {}
        self.deposits: Dict[str, int] = {}
        self.balances: Dict[str, int] = {}
        self.storage: Dict[str, Dict[str, Any]] = {}
        self.code: Dict[str, CallTarget] = {}
        self._lock = threading.RLock()
        self._journals: List[List[Callable[[], None]]] = []

    # ==================== Atomicity ====================

    def _record(self, undo: Callable[[], None]) -> None:
        if self._journals:
            self._journals[-1].append(undo)

    def _set_field(self, state: AccountState, name: str, value: Any) -> None:
        old = getattr(state, name)
        setattr(state, name, value)
        self._record(lambda: setattr(state, name, old))

    def _set_item(self, mapping: Dict[str, Any], key: str, value: Any) -> None:
        if key in mapping:
            old = mapping[key]
            self._record(lambda: mapping.__setitem__(key, old))
        else:
            self._record(lambda: mapping.pop(key, None))
        mapping[key] = value

    @contextmanager
    def atomic(self) -> Iterator["LedgerStore"]:
        """
        Serialize a state transition; roll it back entirely if it raises.

        Each mutation inside the block records how to undo itself. Rollback
        replays those records in reverse and restores values in place, so
        ``AccountState`` objects already handed out stay attached to the
        ledger. A committed nested block hands its records to the enclosing
        one.
        """
        with self._lock:
            journal: List[Callable[[], None]] = []
            self._journals.append(journal)
            try:
                yield self
            except BaseException:
                self._journals.pop()
                for undo in reversed(journal):
                    undo()
                raise
            self._journals.pop()
            if self._journals:
                self._journals[-1].extend(journal)

    # ==================== Accounts ====================

    def create_account(self, address: str, owner: str) -> AccountState:
        key = _key(address)
        owner = normalize_address(owner)
        if owner == ZERO_ADDRESS:
            raise InvalidRecoveryTargetError("Account owner cannot be the zero address")
        with self._lock:
            if key in self.accounts:
                raise RecoveryError(f"Account {address} already exists", details={"account": address})
            state = AccountState(address=normalize_address(address), owner=owner)
            self._set_item(self.accounts, key, state)
        logger.info(
            "Account created",
            extra={"event": "ledger.account_created", "account": state.address[:10], "owner": owner[:10]}
        )
        return state

    def has_account(self, address: str) -> bool:
        return _key(address) in self.accounts

    def get_account(self, address: str) -> AccountState:
        state = self.accounts.get(_key(address))
        if state is None:
            raise AccountNotFoundError(f"Account {address} not found", details={"account": address})
        return state

    def get_owner(self, address: str) -> str:
        return self.get_account(address).owner

    def get_execution_nonce(self, address: str) -> int:
        return self.get_account(address).execution_nonce

    def get_recovery_nonce(self, address: str) -> int:
        return self.get_account(address).recovery_nonce

    def get_guardian_commitment(self, address: str) -> Optional[FieldElement]:
        return self.get_account(address).guardian_commitment

    def get_guardian(self, address: str) -> Optional[str]:
        return self.get_account(address).guardian

    def is_nullifier_used(self, address: str, nullifier: int) -> bool:
        return int(nullifier) in self.get_account(address).nullifiers

    def set_owner(self, address: str, new_owner: str) -> None:
        new_owner = normalize_address(new_owner)
        if new_owner == ZERO_ADDRESS:
            raise InvalidRecoveryTargetError("Owner cannot be the zero address")
        with self._lock:
            self._set_field(self.get_account(address), "owner", new_owner)

    def set_recovery_mode(self, address: str, mode: Optional[RecoveryMode]) -> None:
        with self._lock:
            self._set_field(self.get_account(address), "recovery_mode", mode)

    def consume_nullifier(self, address: str, nullifier: int) -> None:
        value = int(nullifier)
        with self._lock:
            nullifiers = self.get_account(address).nullifiers
            if value in nullifiers:
                return
            nullifiers.add(value)
            self._record(lambda: nullifiers.discard(value))

    def increment_execution_nonce(self, address: str) -> int:
        with self._lock:
            state = self.get_account(address)
            self._set_field(state, "execution_nonce", state.execution_nonce + 1)
            return state.execution_nonce

    def increment_recovery_nonce(self, address: str) -> int:
        with self._lock:
            state = self.get_account(address)
            self._set_field(state, "recovery_nonce", state.recovery_nonce + 1)
            return state.recovery_nonce

    # ==================== Entry Point Deposits ====================

    def deposit_to(self, address: str, amount: int) -> int:
        if amount < 0:
            raise ValueError("Deposit amount must be non-negative")
        key = _key(address)
        with self._lock:
            self._set_item(self.deposits, key, self.deposits.get(key, 0) + amount)
            return self.deposits[key]

    def balance_of(self, address: str) -> int:
        return self.deposits.get(_key(address), 0)

    def debit_deposit(self, address: str, amount: int) -> None:
        key = _key(address)
        with self._lock:
            current = self.deposits.get(key, 0)
            if amount > current:
                raise InsufficientPrefundError(
                    f"Deposit of {address} cannot cover prefund",
                    details={"account": address, "required": amount, "available": current},
                )
            self._set_item(self.deposits, key, current - amount)

    # ==================== Native Balances ====================

    def balance(self, address: str) -> int:
        return self.balances.get(_key(address), 0)

    def credit(self, address: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Credit amount must be non-negative")
        key = _key(address)
        with self._lock:
            self._set_item(self.balances, key, self.balances.get(key, 0) + amount)

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Transfer amount must be non-negative")
        if amount == 0:
            return
        sender_key = _key(sender)
        with self._lock:
            available = self.balances.get(sender_key, 0)
            if amount > available:
                raise InsufficientBalanceError(
                    f"Insufficient balance for transfer from {sender}",
                    details={"from": sender, "amount": amount, "available": available},
                )
            self._set_item(self.balances, sender_key, available - amount)
            self.credit(recipient, amount)

    # ==================== Code and Calls ====================

    def register_code(self, address: str, target: CallTarget) -> None:
        with self._lock:
            self._set_item(self.code, _key(address), target)

    def get_code(self, address: str) -> Optional[CallTarget]:
        return self.code.get(_key(address))

    def storage_of(self, address: str) -> Dict[str, Any]:
        """
        Live storage of a call target.

        Inside an atomic block the returned dict is journaled as a whole,
        since callers write to it directly.
        """
        key = _key(address)
        with self._lock:
            if key not in self.storage:
                self._set_item(self.storage, key, {})
            store = self.storage[key]
            if self._journals:
                saved = copy.deepcopy(store)

                def _restore_storage() -> None:
                    store.clear()
                    store.update(saved)

                self._record(_restore_storage)
            return store

    def call(
        self,
        caller: str,
        target: str,
        value: int = 0,
        data: bytes = b"",
        depth: int = 0,
    ) -> CallResult:
        """
        Perform a message call with value transfer.

        The call is atomic: a revert anywhere inside undoes its transfers and
        storage writes. Calls to addresses without code are plain transfers.

        Raises:
            ExecutionRevertedError: If the call (or a nested call) reverts.
        """
        if depth > MAX_CALL_DEPTH:
            raise ExecutionRevertedError("Max call depth exceeded", details={"depth": depth})

        with self.atomic():
            self.transfer(caller, target, value)
            code = self.get_code(target)
            if code is None:
                return CallResult()
            return code.handle_call(CallContext(
                ledger=self,
                caller=normalize_address(caller),
                target=normalize_address(target),
                value=value,
                data=bytes(data),
                depth=depth,
            ))
