"""
keygen_providers.py
Default key-generation providers, one per algorithm family.

Every provider draws randomness only from the RandomSource it is given, so a seeded
source reproduces the same key material. RSA and DSA prime search is delegated to
pycryptodomex (its generators accept a `randfunc`); curve keys are derived from
drawn scalars/seeds with `cryptography` or pycryptodomex.

Each provider returns (public params, PlainSecretParams). Library failures surface
as GenerationFailure.
"""

import hashlib
from dataclasses import dataclass
from typing import Tuple, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, x25519
from Cryptodome.PublicKey import DSA, ECC, RSA
from Cryptodome.Math.Primality import PROBABLY_PRIME, test_probable_prime

from key_constants import (
    DsaKeySize,
    ECCCurve,
    HashAlgorithm,
    PublicKeyAlgorithm,
    SymmetricKeyAlgorithm,
)
from key_errors import GenerationFailure
from secret_params import PlainSecretParams
from crypto_utils import RandomSource, secure_zero

RSA_PUBLIC_EXPONENT = 65537

# Curves whose group order pycryptodomex knows; used for ECDSA and ECDH on NIST curves.
_CRYPTODOME_CURVES = {
    ECCCurve.P256: "P-256",
    ECCCurve.P384: "P-384",
    ECCCurve.P521: "P-521",
}
SECP256K1_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

ECDSA_CURVES = (ECCCurve.P256, ECCCurve.P384, ECCCurve.P521, ECCCurve.Secp256k1)

# KDF hash and key-wrap cipher advertised in ECDH public keys
ECDH_KDF_PARAMS = {
    ECCCurve.Curve25519: (HashAlgorithm.SHA256, SymmetricKeyAlgorithm.AES128),
    ECCCurve.P256: (HashAlgorithm.SHA256, SymmetricKeyAlgorithm.AES128),
    ECCCurve.P384: (HashAlgorithm.SHA384, SymmetricKeyAlgorithm.AES192),
    ECCCurve.P521: (HashAlgorithm.SHA512, SymmetricKeyAlgorithm.AES256),
}

NATIVE_POINT_PREFIX = b"\x40"
SEC1_UNCOMPRESSED_PREFIX = b"\x04"


# -------------------------
# Public parameter records
# -------------------------
@dataclass(frozen=True)
class RsaPublicParams:
    n: int
    e: int


@dataclass(frozen=True)
class DsaPublicParams:
    p: int
    q: int
    g: int
    y: int


@dataclass(frozen=True)
class EcdsaPublicParams:
    curve: ECCCurve
    p: bytes  # SEC1 uncompressed point


@dataclass(frozen=True)
class EcdhPublicParams:
    curve: ECCCurve
    p: bytes
    hash: HashAlgorithm
    alg_sym: SymmetricKeyAlgorithm


@dataclass(frozen=True)
class EddsaLegacyPublicParams:
    curve: ECCCurve
    q: bytes  # 0x40 || native point


PublicParams = Union[RsaPublicParams, DsaPublicParams, EcdsaPublicParams, EcdhPublicParams, EddsaLegacyPublicParams]


# -------------------------
# RSA
# -------------------------
def generate_rsa(rng: RandomSource, bit_size: int) -> Tuple[RsaPublicParams, PlainSecretParams]:
    try:
        key = RSA.generate(bit_size, randfunc=rng.read, e=RSA_PUBLIC_EXPONENT)
    except ValueError as e:
        raise GenerationFailure(f"RSA key generation failed: {e}") from e

    p, q = key.p, key.q
    if p > q:
        p, q = q, p
    u = pow(p, -1, q)
    secret = PlainSecretParams.from_mpis(PublicKeyAlgorithm.RSA, [key.d, p, q, u])
    return RsaPublicParams(n=key.n, e=key.e), secret


# -------------------------
# DSA
# -------------------------
def _dsa_domain(l_bits: int, n_bits: int, rng: RandomSource) -> Tuple[int, int, int]:
    """Probable-prime domain parameters (p, q, g) for (L, N), SHA-256 based (FIPS 186-4 A.1.1.2, A.2.3)."""
    outlen = 256
    n = (l_bits + outlen - 1) // outlen - 1
    b = l_bits - 1 - n * outlen
    seedlen = n_bits // 8
    seed_mod = 1 << (seedlen * 8)

    def sha256_int(data: bytes) -> int:
        return int.from_bytes(hashlib.sha256(data).digest(), "big")

    while True:
        seed = rng.read(seedlen)
        u = sha256_int(seed) % (1 << (n_bits - 1))
        q = (1 << (n_bits - 1)) + u + 1 - (u % 2)
        if test_probable_prime(q, rng.read) != PROBABLY_PRIME:
            continue

        seed_int = int.from_bytes(seed, "big")
        offset = 1
        for _ in range(4 * l_bits):
            v = [sha256_int(((seed_int + offset + j) % seed_mod).to_bytes(seedlen, "big"))
                 for j in range(n + 1)]
            w = sum(v[j] << (j * outlen) for j in range(n)) + ((v[n] % (1 << b)) << (n * outlen))
            x = w + (1 << (l_bits - 1))
            p = x - (x % (2 * q) - 1)
            if p >= (1 << (l_bits - 1)) and test_probable_prime(p, rng.read) == PROBABLY_PRIME:
                return p, q, _dsa_generator(p, q, seed)
            offset += n + 1


def _dsa_generator(p: int, q: int, seed: bytes) -> int:
    e = (p - 1) // q
    count = 0
    while True:
        count += 1
        w = int.from_bytes(hashlib.sha256(seed + b"ggen" + b"\x01" + count.to_bytes(2, "big")).digest(), "big")
        g = pow(w, e, p)
        if g >= 2:
            return g


def generate_dsa(rng: RandomSource, key_size: DsaKeySize) -> Tuple[DsaPublicParams, PlainSecretParams]:
    p, q, g = _dsa_domain(key_size.l_bits, key_size.n_bits, rng)
    try:
        key = DSA.generate(key_size.l_bits, randfunc=rng.read, domain=(p, q, g))
    except ValueError as e:
        raise GenerationFailure(f"DSA key generation failed: {e}") from e

    secret = PlainSecretParams.from_mpis(PublicKeyAlgorithm.DSA, [key.x])
    return DsaPublicParams(p=key.p, q=key.q, g=key.g, y=key.y), secret


# -------------------------
# Elliptic curves
# -------------------------
def _weierstrass_keypair(rng: RandomSource, curve: ECCCurve) -> Tuple[bytes, int]:
    """SEC1 uncompressed public point and secret scalar for a short Weierstrass curve."""
    if curve in _CRYPTODOME_CURVES:
        key = ECC.generate(curve=_CRYPTODOME_CURVES[curve], randfunc=rng.read)
        d = int(key.d)
        x, y = int(key.pointQ.x), int(key.pointQ.y)
    elif curve is ECCCurve.Secp256k1:
        d = rng.randrange(1, SECP256K1_ORDER)
        try:
            numbers = ec.derive_private_key(d, ec.SECP256K1()).public_key().public_numbers()
        except (ValueError, UnsupportedAlgorithm) as e:
            raise GenerationFailure(f"secp256k1 key derivation failed: {e}") from e
        x, y = numbers.x, numbers.y
    else:
        raise GenerationFailure(f"Curve {curve.curve_name} is not supported for key generation")

    size = curve.field_bytes
    return SEC1_UNCOMPRESSED_PREFIX + x.to_bytes(size, "big") + y.to_bytes(size, "big"), d


def generate_ecdsa(rng: RandomSource, curve: ECCCurve) -> Tuple[EcdsaPublicParams, PlainSecretParams]:
    if curve not in ECDSA_CURVES:
        raise GenerationFailure(f"Curve {curve.curve_name} is not supported for ECDSA")
    point, d = _weierstrass_keypair(rng, curve)
    secret = PlainSecretParams.from_mpis(PublicKeyAlgorithm.ECDSA, [d])
    return EcdsaPublicParams(curve=curve, p=point), secret


def generate_ecdh(rng: RandomSource, curve: ECCCurve) -> Tuple[EcdhPublicParams, PlainSecretParams]:
    if curve not in ECDH_KDF_PARAMS:
        raise GenerationFailure(f"Curve {curve.curve_name} is not supported for ECDH")
    hash_alg, alg_sym = ECDH_KDF_PARAMS[curve]

    if curve is ECCCurve.Curve25519:
        scalar = bytearray(rng.read(32))
        try:
            scalar[0] &= 248
            scalar[31] &= 127
            scalar[31] |= 64
            try:
                public = x25519.X25519PrivateKey.from_private_bytes(bytes(scalar)).public_key()
            except (ValueError, UnsupportedAlgorithm) as e:
                raise GenerationFailure(f"X25519 key derivation failed: {e}") from e
            point = NATIVE_POINT_PREFIX + public.public_bytes_raw()
            # stored big-endian, i.e. the reverse of the native little-endian scalar
            secret = PlainSecretParams.from_mpis(PublicKeyAlgorithm.ECDH, [bytes(reversed(scalar))])
        finally:
            secure_zero(scalar)
    else:
        point, d = _weierstrass_keypair(rng, curve)
        secret = PlainSecretParams.from_mpis(PublicKeyAlgorithm.ECDH, [d])

    return EcdhPublicParams(curve=curve, p=point, hash=hash_alg, alg_sym=alg_sym), secret


def generate_eddsa_legacy(rng: RandomSource) -> Tuple[EddsaLegacyPublicParams, PlainSecretParams]:
    seed = bytearray(rng.read(32))
    try:
        try:
            public = ed25519.Ed25519PrivateKey.from_private_bytes(bytes(seed)).public_key()
        except (ValueError, UnsupportedAlgorithm) as e:
            raise GenerationFailure(f"Ed25519 key derivation failed: {e}") from e
        secret = PlainSecretParams.from_mpis(PublicKeyAlgorithm.EdDSALegacy, [bytes(seed)])
    finally:
        secure_zero(seed)
    return EddsaLegacyPublicParams(curve=ECCCurve.Ed25519, q=NATIVE_POINT_PREFIX + public.public_bytes_raw()), secret
