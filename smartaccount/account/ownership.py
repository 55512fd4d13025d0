import logging
from typing import Optional

from ..host.ledger import LedgerState
from ..protocol.types.common import NotAuthorized, ValidationError
from ..protocol.crypto.addresses import is_valid_address
from .events import AccountEvent, EventBus

logger = logging.getLogger(__name__)

OWNER_SLOT = "owner"


class Ownership:
    """Single-owner record kept in the account's storage."""

    def __init__(self, ledger: LedgerState, account_address: str, events: Optional[EventBus] = None):
        self.ledger = ledger
        self.account_address = account_address
        self.events = events

    def current_owner(self) -> Optional[str]:
        return self.ledger.get_storage(self.account_address, OWNER_SLOT)

    def initialize(self, owner: str) -> None:
        if self.current_owner() is not None:
            raise ValidationError(f"Account {self.account_address} already has an owner")
        self._set(owner)

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        previous = self.current_owner()
        if caller != previous:
            raise NotAuthorized(caller, f"Only the owner can transfer ownership (caller {caller})")
        self._set(new_owner)

        logger.info(f"Ownership of {self.account_address} transferred: {previous} -> {new_owner}")
        if self.events:
            self.events.emit(AccountEvent.OWNERSHIP_TRANSFERRED, account=self.account_address,
                             previous_owner=previous, new_owner=new_owner)

    def _set(self, owner: str) -> None:
        if not is_valid_address(owner):
            raise ValidationError(f"Invalid owner address: {owner}")
        self.ledger.set_storage(self.account_address, OWNER_SLOT, owner)
