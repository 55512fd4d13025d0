# MIT License
# Copyright (c) 2025 Hashborn

"""
In-memory host ledger.

Stands in for the host chain the accounts run on: balances, code, per-address
storage, ordinary calls, value transfers and the privileged system-call path.
Every call runs under one re-entrant lock, and ``atomic()`` gives callers an
all-or-nothing section by checkpointing the account table.
"""
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
import logging
import threading

from pydantic import BaseModel, Field

from ..protocol.types.common import SystemCallError
from ..protocol.config.params import TRANSFER_STIPEND

logger = logging.getLogger(__name__)


class Account(BaseModel):
    address: str
    balance: int = 0
    deploy_nonce: int = 0  # number of contracts this address has deployed
    code: bytes = b""
    storage: Dict[str, Any] = Field(default_factory=dict)


class CallReverted(Exception):
    """Raised by a callee to fail the call; return_data is handed back to the caller."""

    def __init__(self, return_data: bytes = b""):
        self.return_data = return_data
        super().__init__(return_data.decode("utf-8", errors="replace"))


class OutOfGas(CallReverted):
    def __init__(self, needed: int, available: int):
        self.needed = needed
        self.available = available
        super().__init__(f"out of gas: need {needed}, have {available}".encode("utf-8"))


@dataclass
class CallContext:
    """
    What a callee sees while running.

    Attributes:
        ledger: Ledger the call runs on (callees may make nested calls)
        caller: Address that initiated the call
        target: Address being called
        value: Value moved from caller to target before the callee ran
        payload: Opaque call data
        gas: Gas forwarded, or None for unlimited
        is_system: True when invoked through the privileged path
    """
    ledger: 'LedgerState'
    caller: str
    target: str
    value: int
    payload: bytes
    gas: Optional[int]
    is_system: bool = False

    def require_gas(self, needed: int) -> None:
        if self.gas is not None and self.gas < needed:
            raise OutOfGas(needed, self.gas)


@dataclass
class CallResult:
    success: bool
    return_data: bytes = b""


Handler = Callable[[CallContext], Optional[bytes]]


class LedgerState:
    def __init__(self, accounts: Dict[str, Account] = None,
                 transfer_stipend: int = TRANSFER_STIPEND):
        self._accounts: Dict[str, Account] = accounts if accounts is not None else {}
        # Behaviour attached to code-bearing addresses; not part of the checkpointed state
        self._handlers: Dict[str, Handler] = {}
        self._system: Dict[str, Handler] = {}
        self.transfer_stipend = transfer_stipend
        self.lock = threading.RLock()

    # --- Accounts ---
    def get_account(self, address: str) -> Account:
        if address in self._accounts:
            return self._accounts[address]
        # Return generic new account
        return Account(address=address)

    def set_account(self, account: Account):
        """Updates account in the table."""
        self._accounts[account.address] = account

    def balance_of(self, address: str) -> int:
        return self.get_account(address).balance

    def credit(self, address: str, amount: int):
        """Mints `amount` to `address` (genesis allocation, test funding)."""
        if amount < 0:
            raise ValueError("credit amount must be non-negative")
        with self.lock:
            acc = self.get_account(address)
            acc.balance += amount
            self.set_account(acc)

    def move_value(self, sender: str, recipient: str, amount: int):
        if amount < 0:
            raise ValueError("value must be non-negative")
        if amount == 0:
            return
        with self.lock:
            src = self.get_account(sender)
            if src.balance < amount:
                raise CallReverted(f"insufficient balance: have {src.balance}, need {amount}".encode("utf-8"))
            src.balance -= amount
            self.set_account(src)
            dst = self.get_account(recipient)
            dst.balance += amount
            self.set_account(dst)

    # --- Storage ---
    def get_storage(self, address: str, key: str, default: Any = None) -> Any:
        return self.get_account(address).storage.get(key, default)

    def set_storage(self, address: str, key: str, value: Any):
        with self.lock:
            acc = self.get_account(address)
            acc.storage[key] = value
            self.set_account(acc)

    # --- Code ---
    def set_code(self, address: str, code: bytes, handler: Optional[Handler] = None):
        with self.lock:
            acc = self.get_account(address)
            acc.code = code
            self.set_account(acc)
            if handler is not None:
                self._handlers[address] = handler

    def register_handler(self, address: str, handler: Handler):
        """Attaches callable behaviour to an address (test doubles, payees with receive logic)."""
        self._handlers[address] = handler

    def register_system(self, address: str, handler: Handler):
        self._system[address] = handler

    def has_code(self, address: str) -> bool:
        return bool(self.get_account(address).code) or address in self._handlers

    # --- Atomicity ---
    def checkpoint(self) -> Dict[str, Account]:
        return {k: v.model_copy(deep=True) for k, v in self._accounts.items()}

    def restore(self, snapshot: Dict[str, Account]):
        self._accounts = snapshot

    @contextmanager
    def atomic(self):
        """Runs the block under the ledger lock; any exception restores the state seen on entry."""
        with self.lock:
            snapshot = self.checkpoint()
            try:
                yield self
            except Exception:
                self.restore(snapshot)
                raise

    # --- Calls ---
    def _invoke(self, handler: Optional[Handler], ctx: CallContext) -> bytes:
        self.move_value(ctx.caller, ctx.target, ctx.value)
        if handler is None:
            return b""
        return handler(ctx) or b""

    def call(self, caller: str, target: str, value: int = 0, payload: bytes = b"",
             gas: Optional[int] = None) -> CallResult:
        """
        Ordinary call. Moves `value`, runs the target's handler if any.
        A failing callee is rolled back and reported, not raised.
        """
        ctx = CallContext(self, caller, target, value, payload, gas)
        with self.lock:
            snapshot = self.checkpoint()
            try:
                return_data = self._invoke(self._handlers.get(target), ctx)
            except CallReverted as e:
                self.restore(snapshot)
                logger.debug(f"Call {caller[:12]}... -> {target[:12]}... reverted: {e}")
                return CallResult(False, e.return_data)
        return CallResult(True, return_data)

    def transfer(self, sender: str, recipient: str, amount: int, unlimited_gas: bool = False) -> CallResult:
        """Plain value transfer; forwards only the stipend unless `unlimited_gas` is set."""
        gas = None if unlimited_gas else self.transfer_stipend
        return self.call(sender, recipient, amount, b"", gas)

    def call_privileged(self, budget: Optional[int], caller: str, target: str,
                        value: int = 0, payload: bytes = b"") -> bytes:
        """
        Privileged system call. Failures raise SystemCallError instead of
        returning a result, so the enclosing request aborts.
        """
        handler = self._system.get(target)
        if handler is None:
            raise SystemCallError(f"{target} is not a system target")

        ctx = CallContext(self, caller, target, value, payload, budget, is_system=True)
        with self.lock:
            snapshot = self.checkpoint()
            try:
                return self._invoke(handler, ctx)
            except CallReverted as e:
                self.restore(snapshot)
                logger.warning(f"System call {caller[:12]}... -> {target[:12]}... failed: {e}")
                raise SystemCallError(f"System call to {target} failed: {e}", e.return_data) from e
