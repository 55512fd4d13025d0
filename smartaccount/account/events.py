"""
Account lifecycle events.

Every phase outcome of a SmartAccount is published as one AccountEvent after
the phase has committed (or rolled back, for request_failed). The bus also
keeps the validation counters: a validation outcome is counted exactly when
its event is emitted.
"""
from enum import Enum
from typing import Dict, List, Callable, Any, Union
import logging

from ..observability.metrics import validations_total, request_failures_total

logger = logging.getLogger(__name__)


class AccountEvent(str, Enum):
    REQUEST_VALIDATED = "request_validated"          # account, nonce_key, nonce
    REQUEST_REJECTED = "request_rejected"            # account, nonce_key, nonce, reason
    REQUEST_FAILED = "request_failed"                # account, phase, error
    FEE_SETTLED = "fee_settled"                      # account, payee, amount
    REQUEST_EXECUTED = "request_executed"            # account, nonce, target, return_data
    OWNERSHIP_TRANSFERRED = "ownership_transferred"  # account, previous_owner, new_owner


def _resolve(event_type: Union[str, AccountEvent]) -> AccountEvent:
    try:
        return AccountEvent(event_type)
    except ValueError:
        raise ValueError(f"Unknown account event: {event_type!r}") from None


class EventBus:
    """
    Synchronous pub/sub for account events.

    Only AccountEvent names are accepted; subscribing to or emitting anything
    else is a programming error and raises ValueError.
    """

    def __init__(self):
        self.listeners: Dict[AccountEvent, List[Callable]] = {}

    def subscribe(self, event_type: Union[str, AccountEvent], callback: Callable) -> None:
        event = _resolve(event_type)
        self.listeners.setdefault(event, []).append(callback)
        logger.debug(f"Subscribed to event: {event.value}")

    def unsubscribe(self, event_type: Union[str, AccountEvent], callback: Callable) -> None:
        event = _resolve(event_type)
        try:
            self.listeners.get(event, []).remove(callback)
            logger.debug(f"Unsubscribed from event: {event.value}")
        except ValueError:
            logger.warning(f"Callback not found for event: {event.value}")

    def emit(self, event_type: Union[str, AccountEvent], **data: Any) -> None:
        """
        Records the outcome metric, then calls every subscriber. A failing
        listener is logged and does not affect the others or the emitter.
        """
        event = _resolve(event_type)
        self._record(event, data)

        listeners = self.listeners.get(event, [])
        if not listeners:
            return

        logger.debug(f"Emitting event: {event.value} to {len(listeners)} listener(s)")
        for callback in listeners:
            try:
                callback(**data)
            except Exception as e:
                logger.error(f"Error in event callback for {event.value}: {e}", exc_info=True)

    @staticmethod
    def _record(event: AccountEvent, data: Dict[str, Any]) -> None:
        if event == AccountEvent.REQUEST_VALIDATED:
            validations_total.labels(outcome="accepted").inc()
        elif event == AccountEvent.REQUEST_REJECTED:
            validations_total.labels(outcome="rejected").inc()
        elif event == AccountEvent.REQUEST_FAILED:
            phase = data.get("phase", "unknown")
            request_failures_total.labels(phase=phase).inc()
            if phase == "validate":
                validations_total.labels(outcome="error").inc()

    def clear(self, event_type: Union[str, AccountEvent] = None) -> None:
        """Clear listeners for one event type, or all listeners if no type specified."""
        if event_type:
            self.listeners.pop(_resolve(event_type), None)
        else:
            self.listeners.clear()
        logger.debug("Cleared event listeners")


# Global event bus instance
event_bus = EventBus()
