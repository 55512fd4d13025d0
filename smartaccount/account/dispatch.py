# MIT License
# Copyright (c) 2025 Hashborn

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional
import logging

from ..host.ledger import LedgerState
from ..protocol.types.common import ExecutionError, SystemCallError
from ..observability.metrics import executions_total

logger = logging.getLogger(__name__)


class PathKind(str, Enum):
    PRIVILEGED = "PRIVILEGED"
    ORDINARY = "ORDINARY"


@dataclass(frozen=True)
class DispatchPath:
    kind: PathKind
    target: str

    @classmethod
    def resolve(cls, target: str, system_targets: FrozenSet[str]) -> 'DispatchPath':
        kind = PathKind.PRIVILEGED if target in system_targets else PathKind.ORDINARY
        return cls(kind, target)

    @property
    def privileged(self) -> bool:
        return self.kind == PathKind.PRIVILEGED


class ActionDispatcher:
    """Carries out a requested action; never retries."""

    def __init__(self, ledger: LedgerState, system_targets: Iterable[str]):
        self.ledger = ledger
        self.system_targets = frozenset(system_targets)
        self.calls = 0

    def dispatch(self, sender: str, target: str, value: int, payload: bytes,
                 gas_budget: Optional[int] = None, call_gas: Optional[int] = None) -> bytes:
        """
        Args:
            sender: Account performing the action
            target: Callee address
            value: Value to forward
            payload: Call data
            gas_budget: Everything available to the request; forwarded whole on the privileged path
            call_gas: Gas for an ordinary call

        Returns:
            Callee return data

        Raises:
            SystemCallError: privileged call failed
            ExecutionError: ordinary call failed; carries the callee's return data
        """
        self.calls += 1
        path = DispatchPath.resolve(target, self.system_targets)

        if path.privileged:
            try:
                return_data = self.ledger.call_privileged(gas_budget, sender, path.target, value, payload)
            except SystemCallError:
                executions_total.labels(path="privileged", status="failed").inc()
                raise
            executions_total.labels(path="privileged", status="ok").inc()
            return return_data

        result = self.ledger.call(sender, path.target, value, payload, gas=call_gas)
        if not result.success:
            executions_total.labels(path="ordinary", status="failed").inc()
            logger.warning(f"Call {sender} -> {path.target} failed: {result.return_data!r}")
            raise ExecutionError(f"Call to {path.target} failed", result.return_data)

        executions_total.labels(path="ordinary", status="ok").inc()
        return result.return_data
