from eth_utils import keccak, to_checksum_address, is_checksum_address # type: ignore
from ecdsa import VerifyingKey, SECP256k1 # type: ignore

def _to_address(h20: bytes) -> str:
    return to_checksum_address(h20)

def address_from_pubkey(pub_bytes: bytes) -> str:
    """Creates checksummed address: last 20 bytes of keccak256 over the uncompressed point (x || y)."""
    vk = VerifyingKey.from_string(pub_bytes, curve=SECP256k1)
    return _to_address(keccak(vk.to_string("raw"))[-20:])

def system_address(index: int) -> str:
    """Reserved address for a protocol-defined system target (e.g. 0x8006)."""
    return _to_address(index.to_bytes(20, "big"))

def contract_address(creator: str, creator_nonce: int) -> str:
    """Address of the contract deployed by `creator` at its `creator_nonce`-th deployment."""
    seed = decode_address(creator) + creator_nonce.to_bytes(32, "big")
    return _to_address(keccak(seed)[-20:])

def decode_address(addr: str) -> bytes:
    """Decodes a checksummed address to its 20 raw bytes."""
    if not is_valid_address(addr):
        raise ValueError(f"Invalid address: {addr}")
    return bytes.fromhex(addr[2:])

def is_valid_address(addr: str) -> bool:
    return isinstance(addr, str) and is_checksum_address(addr)
