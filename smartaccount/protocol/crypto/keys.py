from ecdsa import SigningKey, VerifyingKey, SECP256k1 # type: ignore
from ecdsa.util import sigencode_string_canonize, sigdecode_string # type: ignore
import hashlib
import os

SIGNATURE_LENGTH = 65  # r (32) + s (32) + v (1)
CURVE_ORDER = SECP256k1.order

def generate_private_key() -> bytes:
    """Generates a random 32-byte private key."""
    return os.urandom(32)

def public_key_from_private(priv_bytes: bytes) -> bytes:
    """Returns compressed 33-byte public key from private key."""
    sk = SigningKey.from_string(priv_bytes, curve=SECP256k1)
    vk = sk.get_verifying_key()
    return vk.to_string("compressed")

def _candidate_keys(rs: bytes, message_hash: bytes):
    return VerifyingKey.from_public_key_recovery_with_digest(
        rs, message_hash, SECP256k1, hashfunc=hashlib.sha256, sigdecode=sigdecode_string
    )

def sign(message_hash: bytes, priv_bytes: bytes) -> bytes:
    """
    Signs a 32-byte message hash. Returns 65-byte recoverable signature r || s || v,
    with low-s and v in {27, 28}.
    """
    sk = SigningKey.from_string(priv_bytes, curve=SECP256k1)
    rs = sk.sign_digest_deterministic(message_hash, hashfunc=hashlib.sha256, sigencode=sigencode_string_canonize)

    own = sk.get_verifying_key().to_string("compressed")
    for recovery_id, candidate in enumerate(_candidate_keys(rs, message_hash)):
        if candidate.to_string("compressed") == own:
            return rs + bytes([27 + recovery_id])

    # Unreachable for a signature we just produced
    raise ValueError("Could not determine recovery id")

def recover_public_key(message_hash: bytes, signature: bytes) -> bytes:
    """
    Recovers the compressed public key that produced `signature` over `message_hash`.
    Raises ValueError on any malformed input.
    """
    if len(signature) != SIGNATURE_LENGTH:
        raise ValueError(f"signature must be {SIGNATURE_LENGTH} bytes, got {len(signature)}")

    rs, v = signature[:64], signature[64]
    recovery_id = v - 27 if v >= 27 else v
    if recovery_id not in (0, 1):
        raise ValueError(f"invalid recovery id {v}")

    r = int.from_bytes(rs[:32], 'big')
    s = int.from_bytes(rs[32:], 'big')
    if not (0 < r < CURVE_ORDER and 0 < s < CURVE_ORDER):
        raise ValueError("r or s out of range")

    try:
        candidates = _candidate_keys(rs, message_hash)
    except Exception as e:
        # r is not the x-coordinate of a curve point, or the digest is unusable
        raise ValueError(f"public key recovery failed: {e}") from e

    if recovery_id >= len(candidates):
        raise ValueError(f"no candidate key for recovery id {recovery_id}")
    return candidates[recovery_id].to_string("compressed")

def verify(message_hash: bytes, signature: bytes, pub_bytes: bytes) -> bool:
    """Verifies a 64-byte (r, s) or 65-byte recoverable ECDSA signature."""
    try:
        vk = VerifyingKey.from_string(pub_bytes, curve=SECP256k1)
        return vk.verify_digest(signature[:64], message_hash, sigdecode=sigdecode_string)
    except Exception:
        return False
