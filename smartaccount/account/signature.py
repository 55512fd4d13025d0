import logging
from ..protocol.types.common import DigestScheme, SignatureCheck, RecoveryError
from ..protocol.types.request import Request
from ..protocol.crypto.keys import recover_public_key
from ..protocol.crypto.addresses import address_from_pubkey

logger = logging.getLogger(__name__)


class SignatureValidator:
    """
    Recovers the signer of a digest and compares it with an expected identity.

    The digest convention (raw or prefixed) is fixed at construction; the
    validator itself keeps no state, so repeated calls with the same inputs
    give the same answer.
    """

    def __init__(self, scheme: DigestScheme):
        self.scheme = scheme

    def message_digest(self, request: Request, chain_id: str) -> bytes:
        return request.signing_digest(self.scheme, chain_id)

    def recover(self, digest: bytes, signature: bytes) -> str:
        try:
            pub = recover_public_key(digest, signature)
        except ValueError as e:
            raise RecoveryError(str(e)) from e
        return address_from_pubkey(pub)

    def check(self, digest: bytes, signature: bytes, expected: str) -> SignatureCheck:
        try:
            recovered = self.recover(digest, signature)
        except RecoveryError as e:
            logger.debug(f"Signature recovery failed: {e}")
            return SignatureCheck.MALFORMED

        if recovered != expected:
            logger.debug(f"Signature by {recovered}, expected {expected}")
            return SignatureCheck.MISMATCH
        return SignatureCheck.VALID

    def validate(self, digest: bytes, signature: bytes, expected: str) -> bool:
        return self.check(digest, signature, expected) == SignatureCheck.VALID
