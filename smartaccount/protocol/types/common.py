from enum import Enum

class DigestScheme(str, Enum):
    RAW = "RAW"             # sha256(chain_id || canonical request)
    PREFIXED = "PREFIXED"   # sha256(prefix || RAW)

class CallerPolicy(str, Enum):
    ORCHESTRATOR_ONLY = "ORCHESTRATOR_ONLY"
    ORCHESTRATOR_OR_OWNER = "ORCHESTRATOR_OR_OWNER"

class ReplayMode(str, Enum):
    LOCAL = "LOCAL"           # counter kept in the account's own storage
    DELEGATED = "DELEGATED"   # counter kept by the NonceHolder system contract

class SignatureCheck(str, Enum):
    VALID = "VALID"
    MISMATCH = "MISMATCH"     # recovered, but not the expected identity
    MALFORMED = "MALFORMED"   # nothing could be recovered

class ProtocolError(Exception):
    pass

class ValidationError(ProtocolError):
    pass

class NotAuthorized(ProtocolError):
    def __init__(self, caller: str, message: str = None):
        self.caller = caller
        super().__init__(message or f"Caller {caller} is not authorized")

class NotOrchestrator(NotAuthorized):
    def __init__(self, caller: str):
        super().__init__(caller, f"Caller {caller} is not the orchestrator")

class InsufficientFunds(ProtocolError):
    def __init__(self, have: int, need: int):
        self.have = have
        self.need = need
        super().__init__(f"Insufficient balance: have {have}, need {need}")

class ReplaySequenceError(ProtocolError):
    def __init__(self, expected: int, presented: int):
        self.expected = expected
        self.presented = presented
        super().__init__(f"Invalid nonce: expected {expected}, got {presented}")

class InvalidSignature(ProtocolError):
    pass

class RecoveryError(ProtocolError):
    pass

class SettlementError(ProtocolError):
    def __init__(self, message: str, return_data: bytes = b""):
        self.return_data = return_data
        super().__init__(message)

class FailedToPay(SettlementError):
    pass

class ExecutionError(ProtocolError):
    def __init__(self, message: str, return_data: bytes = b""):
        self.return_data = return_data
        super().__init__(message)

class ExecutionFailed(ExecutionError):
    pass

class SystemCallError(ExecutionError):
    pass
