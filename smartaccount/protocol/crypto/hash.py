import hashlib

# Domain separation prefix for the PREFIXED digest convention
SIGNED_REQUEST_PREFIX = b"\x19Smart Account Signed Request:\n32"

def sha256(data: bytes) -> bytes:
    """Returns SHA256 hash of bytes."""
    return hashlib.sha256(data).digest()

def prefixed_digest(struct_hash: bytes) -> bytes:
    """Wraps a 32-byte structural hash with the signed-request prefix and hashes again."""
    if len(struct_hash) != 32:
        raise ValueError(f"struct hash must be 32 bytes, got {len(struct_hash)}")
    return sha256(SIGNED_REQUEST_PREFIX + struct_hash)
