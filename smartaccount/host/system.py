# MIT License
# Copyright (c) 2025 Hashborn

"""
System contracts living at reserved addresses.

NonceHolder keeps per-account, per-lane sequence numbers for accounts that
delegate replay protection. ContractDeployer is the privileged deployment
target reached through LedgerState.call_privileged().
"""
from typing import Tuple
import logging

from .ledger import LedgerState, CallContext, CallReverted
from ..protocol.types.common import ReplaySequenceError
from ..protocol.crypto.addresses import contract_address
from ..protocol.config.params import ProtocolConfig

logger = logging.getLogger(__name__)

NONCE_HOLDER_CODE = b"system:nonce_holder"
CONTRACT_DEPLOYER_CODE = b"system:contract_deployer"


class NonceHolder:
    def __init__(self, ledger: LedgerState, address: str):
        self.ledger = ledger
        self.address = address

    @staticmethod
    def _slot(account_id: str, key: int) -> str:
        return f"{account_id}:{key}"

    def get_nonce(self, account_id: str, key: int = 0) -> int:
        return self.ledger.get_storage(self.address, self._slot(account_id, key), 0)

    def increment_if_equals(self, account_id: str, expected: int, key: int = 0) -> None:
        """Advances the (account, lane) counter by one iff it currently equals `expected`."""
        slot = self._slot(account_id, key)
        with self.ledger.lock:
            current = self.ledger.get_storage(self.address, slot, 0)
            if current != expected:
                raise ReplaySequenceError(current, expected)
            self.ledger.set_storage(self.address, slot, current + 1)


class ContractDeployer:
    """Payload is the contract code; returns the new address as utf-8 bytes."""

    def __init__(self, ledger: LedgerState, address: str):
        self.ledger = ledger
        self.address = address

    def __call__(self, ctx: CallContext) -> bytes:
        if not ctx.payload:
            raise CallReverted(b"empty bytecode")

        creator = self.ledger.get_account(ctx.caller)
        new_address = contract_address(ctx.caller, creator.deploy_nonce)
        if self.ledger.has_code(new_address):
            raise CallReverted(b"address already in use")

        creator.deploy_nonce += 1
        self.ledger.set_account(creator)
        self.ledger.set_code(new_address, ctx.payload)
        # Value arrived at the deployer; hand it to the new contract
        self.ledger.move_value(self.address, new_address, ctx.value)

        logger.info(f"Deployed contract {new_address} for {ctx.caller}")
        return new_address.encode("utf-8")


def install_system_contracts(ledger: LedgerState, config: ProtocolConfig) -> Tuple[NonceHolder, ContractDeployer]:
    """Places the system contracts at their reserved addresses."""
    nonce_holder = NonceHolder(ledger, config.nonce_holder)
    deployer = ContractDeployer(ledger, config.contract_deployer)

    ledger.set_code(nonce_holder.address, NONCE_HOLDER_CODE)
    ledger.set_code(deployer.address, CONTRACT_DEPLOYER_CODE)
    ledger.register_system(deployer.address, deployer)
    return nonce_holder, deployer


def create_host(config: ProtocolConfig) -> LedgerState:
    """Fresh ledger using the profile's transfer stipend, with the system contracts installed."""
    ledger = LedgerState(transfer_stipend=config.transfer_stipend)
    install_system_contracts(ledger, config)
    return ledger
