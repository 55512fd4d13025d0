# MIT License
# Copyright (c) 2025 Hashborn

import logging

from ..host.ledger import LedgerState
from ..protocol.types.common import InsufficientFunds, SettlementError, ValidationError
from ..observability.metrics import settlements_total, fees_settled_total

logger = logging.getLogger(__name__)


class FeeSettlement:
    def __init__(self, ledger: LedgerState):
        self.ledger = ledger

    def settle(self, account: str, payee: str, amount_owed: int) -> None:
        """
        Pays `amount_owed` from `account` to `payee`.

        The balance is checked before anything moves. The transfer forwards
        unlimited gas; a payee that still refuses it surfaces as SettlementError.
        """
        if amount_owed < 0:
            raise ValidationError(f"amount owed must be non-negative, got {amount_owed}")
        if amount_owed == 0:
            return

        with self.ledger.lock:
            balance = self.ledger.balance_of(account)
            if balance < amount_owed:
                settlements_total.labels(status="insufficient_funds").inc()
                raise InsufficientFunds(balance, amount_owed)

            result = self.ledger.transfer(account, payee, amount_owed, unlimited_gas=True)

        if not result.success:
            settlements_total.labels(status="failed").inc()
            logger.warning(f"Fee transfer {account} -> {payee} failed: {result.return_data!r}")
            raise SettlementError(f"Fee transfer to {payee} failed", result.return_data)

        settlements_total.labels(status="paid").inc()
        fees_settled_total.inc(amount_owed)
        logger.info(f"Settled fee {amount_owed} from {account} to {payee}")
