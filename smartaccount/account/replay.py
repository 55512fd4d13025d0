# MIT License
# Copyright (c) 2025 Hashborn

"""
Replay protection.

A ReplayGuard holds, per (account, lane), the next acceptable sequence
number. try_advance() accepts exactly that number and moves the counter one
step; anything else raises ReplaySequenceError and leaves it untouched.
Counters live in ledger storage, so they roll back with the rest of the
request when a later phase fails.
"""
from abc import ABC, abstractmethod
import logging

from ..host.ledger import LedgerState
from ..host.system import NonceHolder
from ..protocol.types.common import ReplaySequenceError, ValidationError
from ..observability.metrics import replay_rejections_total

logger = logging.getLogger(__name__)


class ReplayGuard(ABC):
    @abstractmethod
    def try_advance(self, account_id: str, lane_key: int, presented: int) -> None:
        ...

    @abstractmethod
    def current(self, account_id: str, lane_key: int = 0) -> int:
        ...


class LocalReplayGuard(ReplayGuard):
    """Counter kept in the account's own storage."""

    def __init__(self, ledger: LedgerState, account_address: str):
        self.ledger = ledger
        self.account_address = account_address

    @staticmethod
    def _slot(lane_key: int) -> str:
        return f"nonce:{lane_key}"

    def current(self, account_id: str, lane_key: int = 0) -> int:
        return self.ledger.get_storage(account_id, self._slot(lane_key), 0)

    def try_advance(self, account_id: str, lane_key: int, presented: int) -> None:
        if account_id != self.account_address:
            raise ValidationError(f"Local replay guard of {self.account_address} asked about {account_id}")

        with self.ledger.lock:
            expected = self.current(account_id, lane_key)
            if presented != expected:
                replay_rejections_total.inc()
                logger.warning(f"Replay guard rejected {account_id} lane {lane_key}: expected {expected}, got {presented}")
                raise ReplaySequenceError(expected, presented)
            self.ledger.set_storage(account_id, self._slot(lane_key), expected + 1)


class DelegatedReplayGuard(ReplayGuard):
    """Consults the NonceHolder system contract; the account keeps no counter."""

    def __init__(self, nonce_holder: NonceHolder):
        self.nonce_holder = nonce_holder

    def current(self, account_id: str, lane_key: int = 0) -> int:
        return self.nonce_holder.get_nonce(account_id, lane_key)

    def try_advance(self, account_id: str, lane_key: int, presented: int) -> None:
        try:
            self.nonce_holder.increment_if_equals(account_id, presented, key=lane_key)
        except ReplaySequenceError as e:
            replay_rejections_total.inc()
            logger.warning(f"Nonce holder rejected {account_id} lane {lane_key}: {e}")
            raise
