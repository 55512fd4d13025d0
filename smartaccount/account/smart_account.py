# MIT License
# Copyright (c) 2025 Hashborn

"""
Programmable account.

An orchestrator drives each request through validate -> settle -> execute,
one external call per phase. Owners may also self-submit through
submit_directly(), which validates and executes back-to-back in one call.

Every entry point runs inside ledger.atomic(): a phase either commits all of
its effects or none. The account does not remember which phase a request is
in; keeping the phases in order is the orchestrator's side of the contract.
"""
from dataclasses import dataclass
from typing import Optional
import logging

from ..host.ledger import LedgerState
from ..host.system import NonceHolder
from ..protocol.types.request import Request, UNSIGNED_FIELDS
from ..protocol.types.common import (
    CallerPolicy, ReplayMode, SignatureCheck, ProtocolError, ValidationError,
    InsufficientFunds, InvalidSignature, SettlementError, FailedToPay,
    ExecutionError, ExecutionFailed,
)
from ..protocol.crypto.hash import sha256
from ..protocol.crypto.addresses import contract_address
from ..protocol.config.params import ProtocolConfig, CURRENT_PROFILE, SMART_ACCOUNT_CODE
from .auth import CallerAuthorizationGate
from .dispatch import ActionDispatcher
from .events import AccountEvent, EventBus, event_bus
from .fees import FeeSettlement
from .ownership import Ownership
from .replay import ReplayGuard, LocalReplayGuard, DelegatedReplayGuard
from .signature import SignatureValidator

logger = logging.getLogger(__name__)

VALIDATION_SUCCESS_MAGIC = sha256(b"validate(Request)")[:4]
VALIDATION_FAILED_MAGIC = b"\x00\x00\x00\x00"


@dataclass(frozen=True)
class ValidationOutcome:
    """
    Result of the validation phase.

    Attributes:
        magic: VALIDATION_SUCCESS_MAGIC when accepted, VALIDATION_FAILED_MAGIC otherwise
        signature_check: How the signature compared against the owner
        validation_data: Opaque extra constraints (time bounds etc.); 0 when unused
    """
    magic: bytes
    signature_check: SignatureCheck
    validation_data: int = 0

    @property
    def accepted(self) -> bool:
        return self.magic == VALIDATION_SUCCESS_MAGIC


class SmartAccount:
    def __init__(self, address: str, ledger: LedgerState, config: ProtocolConfig,
                 replay_guard: ReplayGuard,
                 events: Optional[EventBus] = None,
                 signature_validator: Optional[SignatureValidator] = None,
                 dispatcher: Optional[ActionDispatcher] = None,
                 fees: Optional[FeeSettlement] = None):
        self.address = address
        self.ledger = ledger
        self.config = config
        self.replay_guard = replay_guard
        self.events = events if events is not None else event_bus
        self.ownership = Ownership(ledger, address, self.events)
        self.gate = CallerAuthorizationGate(config.orchestrator, self.ownership.current_owner)
        self.signatures = signature_validator or SignatureValidator(config.digest_scheme)
        self.dispatcher = dispatcher or ActionDispatcher(ledger, config.system_targets)
        self.fees = fees or FeeSettlement(ledger)

    @property
    def owner(self) -> Optional[str]:
        return self.ownership.current_owner()

    @property
    def balance(self) -> int:
        return self.ledger.balance_of(self.address)

    def expected_nonce(self, lane_key: int = 0) -> int:
        return self.replay_guard.current(self.address, lane_key)

    # --- Entry points ---
    def validate(self, caller: str, request: Request) -> ValidationOutcome:
        """
        Validation phase (orchestrator only).

        Advances the replay sequence, checks the balance covers value plus fee
        budget, then checks the signature against the owner. A signature that
        does not match is a normal negative result: the failure marker is
        returned and no state changes. Every other problem raises.
        """
        self.gate.authorize(caller, CallerPolicy.ORCHESTRATOR_ONLY)
        try:
            with self.ledger.atomic():
                outcome = self._validate(request)
        except ProtocolError as e:
            self._failed("validate", e)
            raise

        self._record_validation(request, outcome)
        return outcome

    def settle(self, caller: str, amount_owed: int) -> None:
        """Fee phase (orchestrator only): pays the orchestrator what it is owed."""
        self.gate.authorize(caller, CallerPolicy.ORCHESTRATOR_ONLY)
        try:
            with self.ledger.atomic():
                try:
                    self.fees.settle(self.address, self.config.orchestrator, amount_owed)
                except SettlementError as e:
                    raise FailedToPay(f"Failed to pay the orchestrator: {e}", e.return_data) from e
        except ProtocolError as e:
            self._failed("settle", e)
            raise

        if amount_owed:
            self.events.emit(AccountEvent.FEE_SETTLED, account=self.address,
                             payee=self.config.orchestrator, amount=amount_owed)

    def execute(self, caller: str, request: Request) -> bytes:
        """Execution phase (orchestrator or owner). Returns the callee's return data."""
        self.gate.authorize(caller, CallerPolicy.ORCHESTRATOR_OR_OWNER)
        try:
            with self.ledger.atomic():
                return_data = self._execute(request)
        except ProtocolError as e:
            self._failed("execute", e)
            raise

        self.events.emit(AccountEvent.REQUEST_EXECUTED, account=self.address, nonce=request.nonce,
                         target=request.target, return_data=return_data)
        return return_data

    def submit_directly(self, request: Request) -> bytes:
        """
        Self-submission without an orchestrator: validation, then execution only
        if the signature was accepted. Fee settlement is left to whoever wraps
        this call.
        """
        try:
            with self.ledger.atomic():
                outcome = self._validate(request)
                if outcome.accepted:
                    return_data = self._execute(request)
        except ProtocolError as e:
            self._failed("submit_directly", e)
            raise

        self._record_validation(request, outcome)
        if not outcome.accepted:
            raise InvalidSignature(
                f"Request {request.nonce_key}:{request.nonce} not signed by the owner "
                f"({outcome.signature_check.value})"
            )

        self.events.emit(AccountEvent.REQUEST_EXECUTED, account=self.address, nonce=request.nonce,
                         target=request.target, return_data=return_data)
        return return_data

    def prepare_for_extension(self) -> None:
        """Reserved for fee sponsorship; intentionally does nothing."""
        logger.debug(f"prepare_for_extension called on {self.address}")

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        with self.ledger.atomic():
            self.ownership.transfer_ownership(caller, new_owner)

    # --- Phases ---
    def _check_request(self, request: Request) -> None:
        if request.sender != self.address:
            raise ValidationError(f"Request sender {request.sender} is not account {self.address}")

        # Request.model_construct() skips field validation
        negative = [name for name in UNSIGNED_FIELDS if getattr(request, name) < 0]
        if negative:
            raise ValidationError(f"Request fields must be non-negative: {', '.join(negative)}")

    def _validate(self, request: Request) -> ValidationOutcome:
        self._check_request(request)
        snapshot = self.ledger.checkpoint()

        # 1. Replay sequence
        self.replay_guard.try_advance(self.address, request.nonce_key, request.nonce)

        # 2. Funds for value + fee budget
        need = request.required_balance()
        have = self.balance
        if have < need:
            raise InsufficientFunds(have, need)

        # 3. Signature
        digest = self.signatures.message_digest(request, self.config.chain_id)
        check = self.signatures.check(digest, request.signature, self.owner)
        if check != SignatureCheck.VALID:
            # Rejected requests leave no trace, the nonce included
            self.ledger.restore(snapshot)
            return ValidationOutcome(VALIDATION_FAILED_MAGIC, check)

        return ValidationOutcome(VALIDATION_SUCCESS_MAGIC, check)

    def _execute(self, request: Request) -> bytes:
        self._check_request(request)

        try:
            return self.dispatcher.dispatch(
                self.address, request.target, request.value, request.payload,
                gas_budget=request.gas_limit or None,
                call_gas=request.effective_call_gas() or None,
            )
        except ExecutionError as e:
            raise ExecutionFailed(f"Execution failed: {e}", e.return_data) from e

    def _record_validation(self, request: Request, outcome: ValidationOutcome) -> None:
        if outcome.accepted:
            logger.info(f"Request {request.nonce_key}:{request.nonce} validated for {self.address}")
            self.events.emit(AccountEvent.REQUEST_VALIDATED, account=self.address,
                             nonce_key=request.nonce_key, nonce=request.nonce)
        else:
            logger.warning(f"Request {request.nonce_key}:{request.nonce} rejected for {self.address}: "
                           f"{outcome.signature_check.value}")
            self.events.emit(AccountEvent.REQUEST_REJECTED, account=self.address, nonce_key=request.nonce_key,
                             nonce=request.nonce, reason=outcome.signature_check.value)

    def _failed(self, phase: str, error: ProtocolError) -> None:
        self.events.emit(AccountEvent.REQUEST_FAILED, account=self.address, phase=phase,
                         error=f"{type(error).__name__}: {error}")


def create_account(ledger: LedgerState, owner: str, config: ProtocolConfig = None,
                   salt: int = 0, events: Optional[EventBus] = None) -> SmartAccount:
    """
    Deploys account code at an address derived from (owner, salt), records the
    owner and wires the replay guard chosen by config.replay_mode.
    """
    config = config or CURRENT_PROFILE
    address = contract_address(owner, salt)

    with ledger.atomic():
        if ledger.has_code(address):
            raise ValidationError(f"Account {address} already deployed")
        ledger.set_code(address, SMART_ACCOUNT_CODE)

        if config.replay_mode == ReplayMode.LOCAL:
            guard: ReplayGuard = LocalReplayGuard(ledger, address)
        else:
            guard = DelegatedReplayGuard(NonceHolder(ledger, config.nonce_holder))

        account = SmartAccount(address, ledger, config, guard, events=events)
        account.ownership.initialize(owner)

    logger.info(f"Created account {address} owned by {owner} ({config.profile_id})")
    return account
