"""
Request receipt tracking.

Stores the lifecycle status of requests driven by an orchestrator.
"""
from dataclasses import dataclass
from typing import Optional, Dict
import time
import logging
from threading import RLock

logger = logging.getLogger(__name__)

PENDING = 'pending'
EXECUTED = 'executed'
REJECTED = 'rejected'
FAILED = 'failed'


@dataclass
class RequestReceipt:
    """
    Request receipt.

    Attributes:
        request_id: Hex struct hash of the request
        account: Smart account the request acted for
        status: 'pending', 'executed', 'rejected' (signature) or 'failed'
        fee_paid: Fee settled to the orchestrator
        return_data: Callee return data when executed
        error: Failure reason when failed/rejected
        timestamp: Last status change (unix timestamp)
    """
    request_id: str
    account: str
    status: str
    fee_paid: int = 0
    return_data: bytes = b""
    error: Optional[str] = None
    timestamp: int = 0

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = int(time.time())

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "account": self.account,
            "status": self.status,
            "fee_paid": self.fee_paid,
            "return_data": self.return_data.hex(),
            "error": self.error,
            "timestamp": self.timestamp,
        }


class RequestReceiptStore:
    """
    In-memory store for request receipts.

    Thread-safe storage with automatic cleanup of old receipts.
    """

    def __init__(self, max_receipts: int = 10000):
        self.receipts: Dict[str, RequestReceipt] = {}
        self.max_receipts = max_receipts
        self.lock = RLock()

    def add_pending(self, request_id: str, account: str) -> RequestReceipt:
        with self.lock:
            receipt = RequestReceipt(request_id=request_id, account=account, status=PENDING)
            self.receipts[request_id] = receipt

            if len(self.receipts) > self.max_receipts:
                self._cleanup_old_receipts()

            logger.debug(f"Added pending receipt: {request_id[:16]}...")
            return receipt

    def _update(self, request_id: str, account: str, status: str, **fields) -> RequestReceipt:
        with self.lock:
            receipt = self.receipts.get(request_id)
            if not receipt:
                # Request was never tracked as pending
                receipt = RequestReceipt(request_id=request_id, account=account, status=status)
                self.receipts[request_id] = receipt
            receipt.status = status
            receipt.timestamp = int(time.time())
            for name, value in fields.items():
                setattr(receipt, name, value)

            logger.debug(f"Marked {status}: {request_id[:16]}...")
            return receipt

    def mark_executed(self, request_id: str, account: str, fee_paid: int, return_data: bytes) -> RequestReceipt:
        return self._update(request_id, account, EXECUTED, fee_paid=fee_paid, return_data=return_data)

    def mark_rejected(self, request_id: str, account: str, reason: str) -> RequestReceipt:
        return self._update(request_id, account, REJECTED, error=reason)

    def mark_failed(self, request_id: str, account: str, error: str, fee_paid: int = 0) -> RequestReceipt:
        return self._update(request_id, account, FAILED, error=error, fee_paid=fee_paid)

    def get(self, request_id: str) -> Optional[RequestReceipt]:
        with self.lock:
            return self.receipts.get(request_id)

    def _cleanup_old_receipts(self) -> None:
        """Removes the oldest 10% of receipts."""
        num_to_remove = len(self.receipts) // 10

        sorted_receipts = sorted(
            self.receipts.items(),
            key=lambda x: x[1].timestamp
        )

        for request_id, _ in sorted_receipts[:num_to_remove]:
            del self.receipts[request_id]

        logger.info(f"Cleaned up {num_to_remove} old receipts (total: {len(self.receipts)})")

    def clear(self) -> None:
        """Clear all receipts (for testing)."""
        with self.lock:
            self.receipts.clear()
