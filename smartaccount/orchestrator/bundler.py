# MIT License
# Copyright (c) 2025 Hashborn

"""
Reference orchestrator.

Drives one request through an account's phases in the order the account
expects: validate, settle the fee budget, execute. It never retries; a
failed request must be re-submitted with the account's current nonce.
"""
from typing import Optional
import logging

from ..account.smart_account import SmartAccount
from ..protocol.types.request import Request
from ..protocol.types.common import ProtocolError
from .receipts import RequestReceipt, RequestReceiptStore

logger = logging.getLogger(__name__)


class Bundler:
    def __init__(self, address: str, receipts: Optional[RequestReceiptStore] = None):
        self.address = address
        self.receipts = receipts if receipts is not None else RequestReceiptStore()

    def handle_request(self, account: SmartAccount, request: Request) -> RequestReceipt:
        request_id = request.struct_hash(account.config.chain_id).hex()
        self.receipts.add_pending(request_id, account.address)

        # 1. Validate
        try:
            outcome = account.validate(self.address, request)
        except ProtocolError as e:
            logger.warning(f"Request {request_id[:8]} failed validation: {e}")
            return self.receipts.mark_failed(request_id, account.address, f"{type(e).__name__}: {e}")

        if not outcome.accepted:
            return self.receipts.mark_rejected(request_id, account.address, outcome.signature_check.value)

        # 2. Settle the fee budget
        fee = request.max_fee()
        try:
            account.settle(self.address, fee)
        except ProtocolError as e:
            logger.warning(f"Request {request_id[:8]} could not pay: {e}")
            return self.receipts.mark_failed(request_id, account.address, f"{type(e).__name__}: {e}")

        # 3. Execute
        try:
            return_data = account.execute(self.address, request)
        except ProtocolError as e:
            logger.warning(f"Request {request_id[:8]} execution failed: {e}")
            return self.receipts.mark_failed(request_id, account.address,
                                             f"{type(e).__name__}: {e}", fee_paid=fee)

        logger.info(f"Request {request_id[:8]} executed for {account.address}")
        return self.receipts.mark_executed(request_id, account.address, fee, return_data)
