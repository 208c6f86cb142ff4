"""
key_type.py
Algorithm selector: which family a key belongs to plus that family's parameter.

Each variant knows its algorithm identifier (to_alg) and which provider generates it
(generate_plain). Adding a family means adding one variant class here.
"""

import abc
from dataclasses import dataclass
from typing import Optional, Tuple

from key_constants import DEFAULT_KEY_VERSION, DsaKeySize, ECCCurve, KeyVersion, PublicKeyAlgorithm
from secret_params import PlainSecretParams, S2kParams, SecretParams, protect
import crypto_utils as cu
import keygen_providers as kp


@dataclass(frozen=True)
class KeyType(abc.ABC):
    @abc.abstractmethod
    def to_alg(self) -> PublicKeyAlgorithm:
        ...

    @abc.abstractmethod
    def generate_plain(self, rng: cu.RandomSource) -> Tuple[kp.PublicParams, PlainSecretParams]:
        ...

    def generate(self, rng: cu.RandomSource, passphrase: Optional[cu.SecretBuffer], s2k: S2kParams,
                 version: KeyVersion = DEFAULT_KEY_VERSION) -> Tuple[kp.PublicParams, SecretParams]:
        """Generate key material and protect it when a passphrase is given."""
        public_params, plain = self.generate_plain(rng)
        return public_params, protect(plain, passphrase, s2k, version)


@dataclass(frozen=True)
class Rsa(KeyType):
    """Encryption and signing with RSA of the given bit size."""
    bit_size: int

    def to_alg(self) -> PublicKeyAlgorithm:
        return PublicKeyAlgorithm.RSA

    def generate_plain(self, rng):
        return kp.generate_rsa(rng, self.bit_size)


@dataclass(frozen=True)
class ECDH(KeyType):
    """Encryption with ECDH."""
    curve: ECCCurve

    def to_alg(self) -> PublicKeyAlgorithm:
        return PublicKeyAlgorithm.ECDH

    def generate_plain(self, rng):
        return kp.generate_ecdh(rng, self.curve)


@dataclass(frozen=True)
class EdDSALegacy(KeyType):
    """Signing with Ed25519 in the legacy (pre RFC 9580) EdDSA format."""

    def to_alg(self) -> PublicKeyAlgorithm:
        return PublicKeyAlgorithm.EdDSALegacy

    def generate_plain(self, rng):
        return kp.generate_eddsa_legacy(rng)


@dataclass(frozen=True)
class ECDSA(KeyType):
    """Signing with ECDSA."""
    curve: ECCCurve

    def to_alg(self) -> PublicKeyAlgorithm:
        return PublicKeyAlgorithm.ECDSA

    def generate_plain(self, rng):
        return kp.generate_ecdsa(rng, self.curve)


@dataclass(frozen=True)
class Dsa(KeyType):
    """Signing with DSA of the given parameter size."""
    key_size: DsaKeySize

    def to_alg(self) -> PublicKeyAlgorithm:
        return PublicKeyAlgorithm.DSA

    def generate_plain(self, rng):
        return kp.generate_dsa(rng, self.key_size)
