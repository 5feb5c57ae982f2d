"""
Account Abstraction Implementation (ERC-4337 Style).

Provides recoverable smart contract wallets:
- UserOperation: Struct representing user intent
- EntryPoint: Singleton handling batches of UserOps
- SmartAccount: Owner-controlled wallet with guardian recovery
- Paymaster: Optional sponsor for gas fees
- AccountFactory: Deterministic account deployment

Security features:
- Strictly sequential per-account nonces, consumed before execution
- Owner signature checked against the owner read at validation time,
  so a recovery earlier in the same batch is honored immediately
- Prefund debited before any call is made
- Per-operation atomicity without cross-operation rollback
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_utils import keccak, to_canonical_address

from ..config import Config
from ..crypto_utils import (
    ZERO_ADDRESS,
    normalize_address,
    recover_user_op_signer,
    same_address,
)
from ..field_hash import FieldElement
from ..ledger import CallContext, CallResult, LedgerStore
from ..recovery_exceptions import (
    AccountCreationError,
    AccountNotFoundError,
    ExecutionRevertedError,
    InsufficientBalanceError,
    InvalidUserOperationError,
    NonceMismatchError,
    PaymasterRejectedError,
    RecoveryError,
    UnauthorizedError,
    UnauthorizedSignerError,
)
from .abi import decode_args, encode_call, encode_return, selector
from .social_recovery import (
    RecoveryCoordinator,
    SignatureRecoveryRequest,
    ZkRecoveryRequest,
)

logger = logging.getLogger(__name__)

UINT128_MAX = 2 ** 128 - 1
UINT256_MAX = 2 ** 256 - 1
ADDRESS_BYTES = 20

# Account functions reachable through callData
EXECUTE = "execute(address,uint256,bytes)"
EXECUTE_BATCH = "executeBatch(address[],uint256[],bytes[])"
SET_GUARDIAN_COMMITMENT = "setGuardianCommitment(bytes32)"
SET_GUARDIAN = "setGuardian(address)"
RECOVER_ACCOUNT = "recoverAccount(address,address,uint256,bytes32,bytes)"
RECOVER_ACCOUNT_WITH_SIGNATURE = "recoverAccountWithSignature(address,uint256,bytes)"
OWNER = "owner()"
GET_GUARDIAN_COMMITMENT = "getGuardianCommitment()"
GET_RECOVERY_NONCE = "getRecoveryNonce()"

CREATE_ACCOUNT = "createAccount(address,uint256)"


@dataclass
class UserOperation:
    """
    ERC-4337 UserOperation struct.

    Represents a user's intent to execute a call through their account.
    Gas limits and fees are packed into 32-byte words for hashing the way
    the v0.7 EntryPoint packs ``accountGasLimits`` and ``gasFees``.
    """

    sender: str  # Smart account address
    nonce: int  # Replay protection
    init_code: bytes = b""  # Factory address + factory calldata
    call_data: bytes = b""  # What to execute
    verification_gas_limit: int = 100_000
    call_gas_limit: int = 200_000
    pre_verification_gas: int = 50_000
    max_fee_per_gas: int = 1_000_000_000  # 1 Gwei
    max_priority_fee_per_gas: int = 1_000_000_000
    paymaster_and_data: bytes = b""  # Paymaster address + data
    signature: bytes = b""  # Owner signature

    @property
    def account_gas_limits(self) -> bytes:
        return _pack_uint128_pair(self.verification_gas_limit, self.call_gas_limit)

    @property
    def gas_fees(self) -> bytes:
        return _pack_uint128_pair(self.max_priority_fee_per_gas, self.max_fee_per_gas)

    @property
    def paymaster(self) -> Optional[str]:
        if not self.paymaster_and_data:
            return None
        if len(self.paymaster_and_data) < ADDRESS_BYTES:
            raise InvalidUserOperationError("paymasterAndData shorter than an address")
        return normalize_address("0x" + self.paymaster_and_data[:ADDRESS_BYTES].hex())

    @property
    def factory(self) -> Optional[str]:
        if not self.init_code:
            return None
        if len(self.init_code) < ADDRESS_BYTES:
            raise InvalidUserOperationError("initCode shorter than an address")
        return normalize_address("0x" + self.init_code[:ADDRESS_BYTES].hex())

    def max_gas(self) -> int:
        return self.pre_verification_gas + self.verification_gas_limit + self.call_gas_limit

    def required_prefund(self) -> int:
        """Maximum cost of the operation at its declared limits and fee cap."""
        return self.max_gas() * self.max_fee_per_gas

    def gas_price(self, base_fee_per_gas: int) -> int:
        return min(self.max_fee_per_gas, base_fee_per_gas + self.max_priority_fee_per_gas)

    def pack(self) -> bytes:
        """Pack UserOp for hashing (without signature)."""
        _check_uint256("nonce", self.nonce)
        _check_uint256("preVerificationGas", self.pre_verification_gas)
        return encode(
            ["address", "uint256", "bytes32", "bytes32", "bytes32", "uint256", "bytes32", "bytes32"],
            [
                normalize_address(self.sender),
                self.nonce,
                keccak(self.init_code),
                keccak(self.call_data),
                self.account_gas_limits,
                self.pre_verification_gas,
                self.gas_fees,
                keccak(self.paymaster_and_data),
            ],
        )

    def hash(self, entry_point: str, chain_id: int) -> bytes:
        """
        Get UserOp hash for signing.

        Args:
            entry_point: EntryPoint address
            chain_id: Chain ID for replay protection

        Returns:
            Hash to be signed
        """
        return keccak(encode(
            ["bytes32", "address", "uint256"],
            [keccak(self.pack()), normalize_address(entry_point), chain_id],
        ))


def _pack_uint128_pair(high: int, low: int) -> bytes:
    for value in (high, low):
        if not 0 <= value <= UINT128_MAX:
            raise InvalidUserOperationError(f"Gas value out of uint128 range: {value}")
    return ((high << 128) | low).to_bytes(32, "big")


def _check_uint256(name: str, value: int) -> None:
    if not isinstance(value, int) or not 0 <= value <= UINT256_MAX:
        raise InvalidUserOperationError(f"{name} out of uint256 range: {value!r}")


class OpStatus(Enum):
    """Outcome of one UserOperation in a batch."""
    EXECUTED = "executed"  # validated, call succeeded
    REVERTED = "reverted"  # validated and paid, call reverted; nonce still consumed
    REJECTED = "rejected"  # failed validation; no state change


@dataclass
class OpResult:
    """Result of one UserOp in ``handle_ops``."""
    sender: str
    nonce: int
    status: OpStatus
    actual_gas_used: int = 0
    actual_gas_cost: int = 0
    return_data: bytes = b""
    error_kind: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == OpStatus.EXECUTED


@dataclass
class SmartAccount:
    """
    Recoverable smart account.

    The account is code registered at ``address``; its owner and nonces live
    in the shared ledger. Owner signatures are EIP-191 personal signatures
    over the userOp hash.
    """

    address: str
    ledger: LedgerStore
    recovery: RecoveryCoordinator
    entry_point: str

    def __post_init__(self) -> None:
        self.address = normalize_address(self.address)
        self.entry_point = normalize_address(self.entry_point)
        self._handlers: Dict[bytes, Tuple[str, Callable[..., CallResult]]] = {
            selector(sig): (sig, handler)
            for sig, handler in (
                (EXECUTE, self._execute),
                (EXECUTE_BATCH, self._execute_batch),
                (SET_GUARDIAN_COMMITMENT, self._set_guardian_commitment),
                (SET_GUARDIAN, self._set_guardian),
                (RECOVER_ACCOUNT, self._recover_account),
                (RECOVER_ACCOUNT_WITH_SIGNATURE, self._recover_account_with_signature),
                (OWNER, self._owner),
                (GET_GUARDIAN_COMMITMENT, self._get_guardian_commitment),
                (GET_RECOVERY_NONCE, self._get_recovery_nonce),
            )
        }

    @property
    def owner(self) -> str:
        return self.ledger.get_owner(self.address)

    @property
    def nonce(self) -> int:
        return self.ledger.get_execution_nonce(self.address)

    # ==================== IAccount Interface (ERC-4337) ====================

    def validate_user_op(self, user_op: UserOperation, user_op_hash: bytes) -> None:
        """
        Check that the current owner signed ``user_op_hash``.

        Raises:
            UnauthorizedSignerError: If the signature is malformed or from another key.
        """
        try:
            signer = recover_user_op_signer(user_op_hash, bytes(user_op.signature))
        except ValueError as e:
            logger.warning(
                "Signature validation failed: malformed signature",
                extra={
                    "event": "account.signature_validation_failed",
                    "account": self.address[:16],
                    "reason": "malformed_signature",
                }
            )
            raise UnauthorizedSignerError(f"Malformed signature: {e}") from e

        owner = self.owner
        if not same_address(signer, owner):
            logger.warning(
                "Signature validation failed: signer is not owner",
                extra={
                    "event": "account.signature_validation_failed",
                    "account": self.address[:16],
                    "reason": "wrong_signer",
                }
            )
            raise UnauthorizedSignerError(
                f"Signature does not match owner of account {self.address[:16]}",
                details={"account": self.address, "signer": signer},
            )

    # ==================== Call Dispatch ====================

    def handle_call(self, ctx: CallContext) -> CallResult:
        if not ctx.data:
            # Plain value transfer into the account
            return CallResult()

        entry = self._handlers.get(ctx.data[:4])
        if entry is None:
            raise ExecutionRevertedError(
                "Unknown account function",
                details={"selector": ctx.data[:4].hex()},
            )
        signature, handler = entry
        args = decode_args(signature, ctx.data)
        return handler(ctx, *args)

    def _execute(self, ctx: CallContext, dest: str, value: int, data: bytes) -> CallResult:
        self._require_from_entry_point_or_owner(ctx.caller)

        logger.debug(
            "Account executing call",
            extra={
                "event": "account.execute",
                "account": self.address[:10],
                "dest": dest[:10],
                "value": value,
            }
        )
        return self.ledger.call(self.address, dest, value, data, ctx.depth + 1)

    def _execute_batch(
        self,
        ctx: CallContext,
        dests: List[str],
        values: List[int],
        datas: List[bytes],
    ) -> CallResult:
        self._require_from_entry_point_or_owner(ctx.caller)

        if len(dests) != len(datas) or (values and len(values) != len(dests)):
            raise ExecutionRevertedError("Batch arrays length mismatch")

        gas_used = 0
        return_data = []
        for i, dest in enumerate(dests):
            value = values[i] if values else 0
            result = self.ledger.call(self.address, dest, value, datas[i], ctx.depth + 1)
            gas_used += result.gas_used
            return_data.append(result.return_data)

        return CallResult(return_data=encode_return(["bytes[]"], [return_data]), gas_used=gas_used)

    def _set_guardian_commitment(self, ctx: CallContext, commitment: bytes) -> CallResult:
        self._require_from_entry_point_or_owner(ctx.caller)
        self.recovery.set_guardian_commitment(self.address, self.address, FieldElement.from_bytes32(commitment))
        return CallResult()

    def _set_guardian(self, ctx: CallContext, guardian: str) -> CallResult:
        self._require_from_entry_point_or_owner(ctx.caller)
        self.recovery.set_guardian(self.address, self.address, guardian)
        return CallResult()

    def _recover_account(
        self,
        ctx: CallContext,
        new_owner: str,
        current_owner: str,
        nonce: int,
        nullifier_hash: bytes,
        proof: bytes,
    ) -> CallResult:
        # Permissionless: the proof authorizes the transition, not the caller
        self.recovery.recover(self.address, ZkRecoveryRequest(
            new_owner=new_owner,
            current_owner=current_owner,
            nullifier_hash=FieldElement.from_bytes32(nullifier_hash),
            proof=proof,
            nonce=nonce,
        ))
        return CallResult()

    def _recover_account_with_signature(
        self,
        ctx: CallContext,
        new_owner: str,
        nonce: int,
        signature: bytes,
    ) -> CallResult:
        self.recovery.recover(self.address, SignatureRecoveryRequest(
            new_owner=new_owner,
            nonce=nonce,
            signature=signature,
        ))
        return CallResult()

    def _owner(self, ctx: CallContext) -> CallResult:
        return CallResult(return_data=encode_return(["address"], [self.owner]))

    def _get_guardian_commitment(self, ctx: CallContext) -> CallResult:
        commitment = self.ledger.get_guardian_commitment(self.address)
        word = commitment.to_bytes32() if commitment is not None else bytes(32)
        return CallResult(return_data=encode_return(["bytes32"], [word]))

    def _get_recovery_nonce(self, ctx: CallContext) -> CallResult:
        return CallResult(return_data=encode_return(
            ["uint256"], [self.ledger.get_recovery_nonce(self.address)]
        ))

    # ==================== Internal ====================

    def _require_from_entry_point_or_owner(self, caller: str) -> None:
        if not any(same_address(caller, allowed) for allowed in (self.entry_point, self.owner, self.address)):
            raise UnauthorizedError(
                "Caller is not entry point or owner",
                details={"account": self.address, "caller": caller},
            )


@dataclass
class Paymaster:
    """
    ERC-4337 Paymaster.

    Sponsors gas for UserOperations from its own EntryPoint deposit.
    An empty whitelist sponsors every account.
    """

    address: str
    owner: str

    # Sponsored accounts (whitelist mode)
    sponsored_accounts: Dict[str, bool] = field(default_factory=dict)

    # Statistics
    total_sponsored: int = 0
    gas_sponsored: int = 0

    def __post_init__(self) -> None:
        self.address = normalize_address(self.address)
        self.owner = normalize_address(self.owner)

    # ==================== IPaymaster Interface ====================

    def validate_paymaster_user_op(
        self,
        user_op: UserOperation,
        user_op_hash: bytes,
        max_cost: int,
    ) -> bytes:
        """
        Validate UserOp and agree to pay.

        Returns:
            Context passed back to ``post_op``

        Raises:
            PaymasterRejectedError: If the sender is not sponsored.
        """
        if not self._should_sponsor(user_op.sender):
            raise PaymasterRejectedError(
                "Account not sponsored",
                details={"paymaster": self.address, "sender": user_op.sender},
            )

        logger.debug(
            "Paymaster validating",
            extra={
                "event": "paymaster.validate",
                "sender": user_op.sender[:10],
                "max_cost": max_cost,
            }
        )
        return to_canonical_address(user_op.sender)

    def post_op(
        self,
        mode: int,  # 0 = success, 1 = user op reverted
        context: bytes,
        actual_gas_cost: int,
    ) -> None:
        """Called after UserOp execution with the final charged cost."""
        self.total_sponsored += 1
        self.gas_sponsored += actual_gas_cost

        logger.info(
            "Paymaster post-op",
            extra={
                "event": "paymaster.post_op",
                "mode": mode,
                "gas_cost": actual_gas_cost,
            }
        )

    # ==================== Management ====================

    def add_sponsored_account(self, caller: str, account: str) -> None:
        self._require_owner(caller)
        self.sponsored_accounts[account.lower()] = True

    def remove_sponsored_account(self, caller: str, account: str) -> None:
        self._require_owner(caller)
        self.sponsored_accounts[account.lower()] = False

    def _should_sponsor(self, sender: str) -> bool:
        if not self.sponsored_accounts:
            return True
        return self.sponsored_accounts.get(sender.lower(), False)

    def _require_owner(self, caller: str) -> None:
        if not same_address(caller, self.owner):
            raise UnauthorizedError("Caller is not owner")


@dataclass
class _Prefunded:
    """Validation-phase outcome carried into execution and settlement."""
    payer: str
    prefund: int
    verification_gas: int
    paymaster: Optional[Paymaster] = None
    paymaster_context: bytes = b""


@dataclass
class EntryPoint:
    """
    ERC-4337 EntryPoint.

    Receives batches of UserOperations from bundlers and, for each op in
    array order:

    1. Validates nonce, owner signature and (optional) paymaster
    2. Debits the prefund and consumes the nonce
    3. Executes the callData against the sender account
    4. Refunds unused prefund and pays the beneficiary

    Validation failures reject only that op. A reverted call still consumes
    the nonce and pays for the gas it used.
    """

    ledger: LedgerStore
    address: str = ""
    chain_id: int = 0

    # Gas model
    base_fee_per_gas: int = -1
    verification_gas_cost: int = -1
    call_base_gas: int = -1
    calldata_byte_gas: int = -1
    account_creation_gas: int = -1
    paymaster_validation_gas: int = -1

    # Registry of known paymasters
    paymasters: Dict[str, Paymaster] = field(default_factory=dict)

    # Statistics
    total_ops_processed: int = 0
    total_gas_used: int = 0

    def __post_init__(self) -> None:
        self.address = normalize_address(self.address or Config.ENTRY_POINT_ADDRESS)
        self.chain_id = self.chain_id or Config.CHAIN_ID
        defaults = {
            "base_fee_per_gas": Config.BASE_FEE_PER_GAS,
            "verification_gas_cost": Config.VERIFICATION_GAS_COST,
            "call_base_gas": Config.CALL_BASE_GAS,
            "calldata_byte_gas": Config.CALLDATA_BYTE_GAS,
            "account_creation_gas": Config.ACCOUNT_CREATION_GAS,
            "paymaster_validation_gas": Config.PAYMASTER_VALIDATION_GAS,
        }
        for name, default in defaults.items():
            if getattr(self, name) < 0:
                setattr(self, name, default)

    # ==================== Main Entry Point ====================

    def handle_ops(
        self,
        ops: List[UserOperation],
        beneficiary: str,
    ) -> List[OpResult]:
        """
        Handle a batch of UserOperations strictly in array order.

        Args:
            ops: List of UserOperations
            beneficiary: Address to receive gas payment

        Returns:
            One OpResult per op, in the same order
        """
        beneficiary = normalize_address(beneficiary)
        results = []

        for op in ops:
            results.append(self._handle_single_op(op, beneficiary))

        self.total_ops_processed += len(ops)
        return results

    def _handle_single_op(self, op: UserOperation, beneficiary: str) -> OpResult:
        try:
            prefunded = self._validate_and_prefund(op)
        except (RecoveryError, EncodingError, ValueError) as e:
            error = e if isinstance(e, RecoveryError) else InvalidUserOperationError(str(e))
            logger.warning(
                "UserOp rejected",
                extra={
                    "event": "entrypoint.op_rejected",
                    "sender": str(op.sender)[:16],
                    "reason": error.kind,
                    "error": str(error),
                }
            )
            return OpResult(
                sender=op.sender,
                nonce=op.nonce,
                status=OpStatus.REJECTED,
                error_kind=error.kind,
                error=str(error),
            )

        success, call_gas, return_data, error = self._execute(op)

        gas_used = (
            op.pre_verification_gas
            + min(prefunded.verification_gas, op.verification_gas_limit)
            + call_gas
        )
        gas_cost = gas_used * op.gas_price(self.base_fee_per_gas)
        self._settle(op, prefunded, success, gas_cost, beneficiary)

        self.total_gas_used += gas_used

        logger.info(
            "UserOp processed",
            extra={
                "event": "entrypoint.op_processed",
                "sender": op.sender[:10],
                "nonce": op.nonce,
                "success": success,
                "gas_used": gas_used,
            }
        )

        return OpResult(
            sender=op.sender,
            nonce=op.nonce,
            status=OpStatus.EXECUTED if success else OpStatus.REVERTED,
            actual_gas_used=gas_used,
            actual_gas_cost=gas_cost,
            return_data=return_data,
            error_kind=error.kind if error else None,
            error=str(error) if error else None,
        )

    def _validate_and_prefund(self, op: UserOperation) -> _Prefunded:
        """
        Validation phase: runs atomically, so a rejected op leaves no trace
        (including accounts deployed by its initCode).
        """
        verification_gas = 0
        with self.ledger.atomic():
            if op.init_code:
                self._create_account(op)
                verification_gas += self.account_creation_gas

            account = self._get_account(op.sender)

            expected_nonce = self.ledger.get_execution_nonce(op.sender)
            if op.nonce != expected_nonce:
                raise NonceMismatchError(
                    "UserOp nonce mismatch",
                    details={"sender": op.sender, "expected": expected_nonce, "got": op.nonce},
                )

            op_hash = self.get_user_op_hash(op)
            account.validate_user_op(op, op_hash)
            verification_gas += self.verification_gas_cost

            prefund = op.required_prefund()
            payer = account.address
            paymaster = None
            context = b""
            if op.paymaster_and_data:
                paymaster = self._get_paymaster(op)
                context = paymaster.validate_paymaster_user_op(op, op_hash, prefund)
                payer = paymaster.address
                verification_gas += self.paymaster_validation_gas

            self.ledger.debit_deposit(payer, prefund)

            # Consumed before execution so a reentrant call cannot reuse it
            self.ledger.increment_execution_nonce(op.sender)

        return _Prefunded(
            payer=payer,
            prefund=prefund,
            verification_gas=verification_gas,
            paymaster=paymaster,
            paymaster_context=context,
        )

    def _execute(self, op: UserOperation) -> Tuple[bool, int, bytes, Optional[RecoveryError]]:
        """Execution phase: returns ``(success, call_gas, return_data, error)``."""
        if not op.call_data:
            return True, 0, b"", None

        call_gas = self.call_base_gas + self.calldata_byte_gas * len(op.call_data)
        try:
            with self.ledger.atomic():
                result = self.ledger.call(self.address, op.sender, 0, op.call_data)
                call_gas += result.gas_used
                if call_gas > op.call_gas_limit:
                    raise ExecutionRevertedError(
                        "Call exceeded callGasLimit",
                        details={"gas": call_gas, "limit": op.call_gas_limit},
                    )
            return True, call_gas, result.return_data, None
        except (RecoveryError, EncodingError, ValueError) as e:
            error = e if isinstance(e, RecoveryError) else ExecutionRevertedError(str(e))
            logger.warning(
                "UserOp execution reverted",
                extra={
                    "event": "entrypoint.op_reverted",
                    "sender": op.sender[:16],
                    "error": str(error),
                    "error_type": error.kind,
                }
            )
            return False, min(call_gas, op.call_gas_limit), b"", error

    def _settle(
        self,
        op: UserOperation,
        prefunded: _Prefunded,
        success: bool,
        gas_cost: int,
        beneficiary: str,
    ) -> None:
        with self.ledger.atomic():
            self.ledger.deposit_to(prefunded.payer, prefunded.prefund - gas_cost)
            self.ledger.credit(beneficiary, gas_cost)

        if prefunded.paymaster is not None:
            prefunded.paymaster.post_op(
                0 if success else 1,
                prefunded.paymaster_context,
                gas_cost,
            )

    def _get_account(self, sender: str) -> SmartAccount:
        code = self.ledger.get_code(sender)
        if not isinstance(code, SmartAccount) or not self.ledger.has_account(sender):
            raise AccountNotFoundError(f"Account {sender} not found", details={"sender": sender})
        return code

    def _get_paymaster(self, op: UserOperation) -> Paymaster:
        address = op.paymaster
        paymaster = self.paymasters.get(address.lower())
        if paymaster is None:
            raise PaymasterRejectedError(f"Paymaster {address} not found", details={"paymaster": address})
        return paymaster

    def _create_account(self, op: UserOperation) -> None:
        """Deploy ``op.sender`` through the factory named in ``op.init_code``."""
        if self.ledger.has_account(op.sender):
            raise AccountCreationError("Sender already constructed", details={"sender": op.sender})

        factory = op.factory
        try:
            result = self.ledger.call(self.address, factory, 0, op.init_code[ADDRESS_BYTES:])
        except RecoveryError as e:
            raise AccountCreationError(
                f"Account factory call failed: {e}",
                details={"factory": factory, "cause": e.kind},
            ) from e

        created = "0x" + result.return_data[-ADDRESS_BYTES:].hex() if result.return_data else ZERO_ADDRESS
        if not same_address(created, op.sender) or not self.ledger.has_account(op.sender):
            raise AccountCreationError(
                "initCode did not deploy the sender",
                details={"sender": op.sender, "created": created},
            )

    # ==================== Deposit Management ====================

    def deposit_to(self, account: str, amount: int) -> int:
        """Deposit funds for an account (or paymaster)."""
        return self.ledger.deposit_to(account, amount)

    def withdraw_to(
        self,
        caller: str,
        withdraw_address: str,
        amount: int,
    ) -> None:
        """Withdraw from the caller's deposit to a native balance."""
        with self.ledger.atomic():
            current = self.ledger.balance_of(caller)
            if amount > current:
                raise InsufficientBalanceError(
                    "Insufficient deposit",
                    details={"caller": caller, "amount": amount, "available": current},
                )
            self.ledger.debit_deposit(caller, amount)
            self.ledger.credit(withdraw_address, amount)

    def balance_of(self, account: str) -> int:
        """Get account deposit balance."""
        return self.ledger.balance_of(account)

    def get_nonce(self, sender: str) -> int:
        """Get the next valid execution nonce for ``sender`` (0 if undeployed)."""
        if not self.ledger.has_account(sender):
            return 0
        return self.ledger.get_execution_nonce(sender)

    def get_user_op_hash(self, op: UserOperation) -> bytes:
        return op.hash(self.address, self.chain_id)

    # ==================== Registration ====================

    def register_paymaster(self, paymaster: Paymaster) -> None:
        self.paymasters[paymaster.address.lower()] = paymaster

    # ==================== Stats ====================

    def get_stats(self) -> Dict:
        return {
            "total_ops_processed": self.total_ops_processed,
            "total_gas_used": self.total_gas_used,
            "accounts_registered": len(self.ledger.accounts),
            "paymasters_registered": len(self.paymasters),
        }


@dataclass
class AccountFactory:
    """
    Factory for deploying smart accounts.

    Provides deterministic addresses for counterfactual deployment, and is
    itself callable through ``initCode`` via ``createAccount(address,uint256)``.
    """

    ledger: LedgerStore
    recovery: RecoveryCoordinator
    entry_point: str
    address: str = ""

    def __post_init__(self) -> None:
        self.entry_point = normalize_address(self.entry_point)
        if not self.address:
            addr_hash = keccak(b"zkrecovery.account_factory" + to_canonical_address(self.entry_point))
            self.address = "0x" + addr_hash[-ADDRESS_BYTES:].hex()
        self.address = normalize_address(self.address)
        self.ledger.register_code(self.address, self)

    def get_address(self, owner: str, salt: int) -> str:
        """
        Get deterministic address without deploying.

        Useful for counterfactual deployment.
        """
        addr_hash = keccak(
            to_canonical_address(self.address)
            + to_canonical_address(owner)
            + salt.to_bytes(32, "big")
        )
        return normalize_address("0x" + addr_hash[-ADDRESS_BYTES:].hex())

    def create_account(self, owner: str, salt: int) -> SmartAccount:
        """
        Create a smart account owned by ``owner``.

        Returns the existing account when it was already deployed.
        """
        address = self.get_address(owner, salt)
        existing = self.ledger.get_code(address)
        if isinstance(existing, SmartAccount):
            return existing

        with self.ledger.atomic():
            self.ledger.create_account(address, owner)
            account = SmartAccount(
                address=address,
                ledger=self.ledger,
                recovery=self.recovery,
                entry_point=self.entry_point,
            )
            self.ledger.register_code(address, account)

        logger.info(
            "Account created",
            extra={
                "event": "factory.account_created",
                "owner": owner[:10],
                "address": address[:10],
            }
        )
        return account

    def init_code(self, owner: str, salt: int) -> bytes:
        """initCode that deploys ``get_address(owner, salt)`` through this factory."""
        return to_canonical_address(self.address) + encode_call(CREATE_ACCOUNT, normalize_address(owner), salt)

    def handle_call(self, ctx: CallContext) -> CallResult:
        owner, salt = decode_args(CREATE_ACCOUNT, ctx.data)
        account = self.create_account(owner, salt)
        return CallResult(return_data=encode_return(["address"], [account.address]))
