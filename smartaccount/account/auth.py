from typing import Callable

from ..protocol.types.common import CallerPolicy, NotAuthorized, NotOrchestrator


class CallerAuthorizationGate:
    """Decides which external identities may invoke each phase. Holds no mutable state."""

    def __init__(self, orchestrator: str, owner_lookup: Callable[[], str]):
        self.orchestrator = orchestrator
        self.owner_lookup = owner_lookup

    def authorize(self, caller: str, policy: CallerPolicy) -> None:
        if caller == self.orchestrator:
            return
        if policy == CallerPolicy.ORCHESTRATOR_ONLY:
            raise NotOrchestrator(caller)
        if policy == CallerPolicy.ORCHESTRATOR_OR_OWNER and caller == self.owner_lookup():
            return
        raise NotAuthorized(caller)
