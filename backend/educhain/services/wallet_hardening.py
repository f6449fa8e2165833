"""Multi-signature layout for hardened participant wallets.

A hardened account has its master key demoted to weight 0 and three auxiliary
ed25519 signers at weight 1: a device key held by the participant and two
recovery keys. With thresholds low=1, medium=2, high=2 the device key alone can
sign low-threshold operations, while payments, trustlines and option changes
need the device key plus a recovery key, or both recovery keys.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

from stellar_sdk import Keypair

MASTER_WEIGHT = 0
DEVICE_WEIGHT = 1
RECOVERY_WEIGHT = 1


@dataclass(frozen=True)
class Thresholds:
    low: int
    medium: int
    high: int


HARDENED_THRESHOLDS = Thresholds(low=1, medium=2, high=2)


@dataclass(frozen=True)
class HardenedKeys:
    """Auxiliary keys installed by hardening. Only the device secret leaves the server."""
    device: Keypair
    recovery_1: Keypair
    recovery_2: Keypair
    tx_hash: Optional[str] = None

    def signer_weights(self) -> Dict[str, int]:
        return {
            self.device.public_key: DEVICE_WEIGHT,
            self.recovery_1.public_key: RECOVERY_WEIGHT,
            self.recovery_2.public_key: RECOVERY_WEIGHT,
        }


def generate_hardening_keys() -> HardenedKeys:
    return HardenedKeys(
        device=Keypair.random(),
        recovery_1=Keypair.random(),
        recovery_2=Keypair.random(),
    )


def hardened_signers(master_public_key: str, keys: HardenedKeys) -> Dict[str, int]:
    """Signer weights of an account once hardening has been applied."""
    signers = {master_public_key: MASTER_WEIGHT}
    signers.update(keys.signer_weights())
    return signers


def signing_weight(signers: Mapping[str, int], public_keys: Iterable[str]) -> int:
    """Total weight contributed by the given keys; duplicates and strangers count 0."""
    return sum(signers.get(key, 0) for key in set(public_keys))


def authorizes(signers: Mapping[str, int], threshold: int, public_keys: Iterable[str]) -> bool:
    """Whether the keys reach `threshold`. A zero threshold still needs one weighted signer."""
    return signing_weight(signers, public_keys) >= max(threshold, 1)
