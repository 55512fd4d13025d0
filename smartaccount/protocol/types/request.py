from pydantic import BaseModel, ConfigDict, Field
import json
from ..crypto.hash import sha256, prefixed_digest
from ..crypto.keys import sign as crypto_sign
from .common import DigestScheme

# Integer fields that must never be negative
UNSIGNED_FIELDS = ("value", "nonce", "nonce_key", "gas_limit", "call_gas_limit", "gas_price")

class Request(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    sender: str          # the smart account the request acts for
    target: str
    value: int = Field(default=0, ge=0)
    payload: bytes = b""
    nonce: int = Field(ge=0)           # sequence number within the lane
    nonce_key: int = Field(default=0, ge=0)   # lane
    gas_limit: int = Field(default=0, ge=0)
    call_gas_limit: int = Field(default=0, ge=0)  # 0 = forward gas_limit
    gas_price: int = Field(default=0, ge=0)
    signature: bytes = b""

    def encode(self) -> bytes:
        """Canonical encoding of every field except the signature."""
        fields = {
            "sender": self.sender,
            "target": self.target,
            "value": self.value,
            "payload": self.payload.hex(),
            "nonce": self.nonce,
            "nonce_key": self.nonce_key,
            "gas_limit": self.gas_limit,
            "call_gas_limit": self.call_gas_limit,
            "gas_price": self.gas_price,
        }
        return json.dumps(fields, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def struct_hash(self, chain_id: str) -> bytes:
        return sha256(chain_id.encode("utf-8") + b"\x00" + self.encode())

    def signing_digest(self, scheme: DigestScheme, chain_id: str) -> bytes:
        struct_hash = self.struct_hash(chain_id)
        if scheme == DigestScheme.PREFIXED:
            return prefixed_digest(struct_hash)
        return struct_hash

    def max_fee(self) -> int:
        return self.gas_limit * self.gas_price

    def required_balance(self) -> int:
        """Value to forward plus the full fee budget."""
        return self.value + self.max_fee()

    def effective_call_gas(self) -> int:
        return self.call_gas_limit or self.gas_limit

    def sign(self, priv_key_bytes: bytes, scheme: DigestScheme, chain_id: str):
        """Signs the request digest under the given convention."""
        self.signature = crypto_sign(self.signing_digest(scheme, chain_id), priv_key_bytes)
