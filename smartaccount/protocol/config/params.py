# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict, Iterable, Optional
from ..types.common import DigestScheme, ReplayMode
from ..crypto.addresses import system_address

# Reserved system indices
BOOTLOADER_INDEX = 0x8001
NONCE_HOLDER_INDEX = 0x8003
CONTRACT_DEPLOYER_INDEX = 0x8006
ENTRY_POINT_INDEX = 0x4337

# Gas forwarded with a plain value transfer when the sender does not override it
TRANSFER_STIPEND = 2_300

# Code stored at a smart account address by create_account()
SMART_ACCOUNT_CODE = b"smartaccount:v1"

class ProtocolConfig:
    def __init__(self,
                 profile_id: str,
                 chain_id: str,
                 orchestrator: str,
                 digest_scheme: DigestScheme,
                 replay_mode: ReplayMode = ReplayMode.DELEGATED,
                 system_targets: Optional[Iterable[str]] = None,
                 transfer_stipend: int = TRANSFER_STIPEND):
        self.profile_id = profile_id
        self.chain_id = chain_id
        self.orchestrator = orchestrator
        self.digest_scheme = digest_scheme
        self.replay_mode = replay_mode
        self.system_targets = frozenset(system_targets or ())
        self.transfer_stipend = transfer_stipend
        self.nonce_holder = system_address(NONCE_HOLDER_INDEX)
        self.contract_deployer = system_address(CONTRACT_DEPLOYER_INDEX)

    def with_overrides(self, **changes) -> 'ProtocolConfig':
        """Returns a copy with the given constructor arguments replaced (test fakes, custom wiring)."""
        params = {
            "profile_id": self.profile_id,
            "chain_id": self.chain_id,
            "orchestrator": self.orchestrator,
            "digest_scheme": self.digest_scheme,
            "replay_mode": self.replay_mode,
            "system_targets": self.system_targets,
            "transfer_stipend": self.transfer_stipend,
        }
        params.update(changes)
        return ProtocolConfig(**params)

PROFILES: Dict[str, ProtocolConfig] = {
    # Host-native flow: the bootloader drives the phases, nonces live in the
    # NonceHolder system contract and deployments go through the deployer.
    "native": ProtocolConfig(
        profile_id="native",
        chain_id="acct-devnet-1",
        orchestrator=system_address(BOOTLOADER_INDEX),
        digest_scheme=DigestScheme.RAW,
        replay_mode=ReplayMode.DELEGATED,
        system_targets=[system_address(CONTRACT_DEPLOYER_INDEX)],
    ),
    # Entry-point flow: a singleton entry point relays bundled requests,
    # signatures cover the prefixed digest.
    "entrypoint": ProtocolConfig(
        profile_id="entrypoint",
        chain_id="acct-devnet-1",
        orchestrator=system_address(ENTRY_POINT_INDEX),
        digest_scheme=DigestScheme.PREFIXED,
        replay_mode=ReplayMode.LOCAL,
    ),
}

CURRENT_PROFILE = PROFILES[os.environ.get("SMARTACCOUNT_PROFILE", "native")]
