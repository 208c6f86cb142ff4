"""
secret_params.py
Secret key material, plain or passphrase-protected.

- PlainSecretParams owns the OpenPGP MPI encoding of the algorithm's secret values in a SecretBuffer.
- EncryptedSecretParams holds CFB ciphertext plus the S2K configuration needed to unlock it.
- protect() turns plain material into protected material when a passphrase is given.
"""

import hmac
from dataclasses import dataclass
from typing import List, Optional, Union

from key_config import KeygenConfig, get_config
from key_constants import (
    DEFAULT_KEY_VERSION,
    HashAlgorithm,
    KeyVersion,
    PublicKeyAlgorithm,
    S2KUsage,
    StringToKeyType,
    SymmetricKeyAlgorithm,
)
from key_errors import InvalidPassphrase, ProtectionFailure
import crypto_utils as cu

SHA1_SIZE = 20


@dataclass(frozen=True)
class S2kParams:
    """How a passphrase becomes the key that protects secret material."""
    sym_alg: SymmetricKeyAlgorithm
    s2k_type: StringToKeyType
    hash_alg: HashAlgorithm
    salt: bytes
    coded_count: Optional[int]
    iv: bytes
    usage: S2KUsage = S2KUsage.CFB

    @classmethod
    def new_default(cls, rng: cu.RandomSource, config: Optional[KeygenConfig] = None) -> "S2kParams":
        """Fresh IV and salt drawn from `rng`, cipher/hash/count from the configuration."""
        config = config or get_config()
        iv = rng.read(config.s2k_cipher.block_size)
        salt = rng.read(StringToKeyType.IteratedSalted.salt_length)
        return cls(
            sym_alg=config.s2k_cipher,
            s2k_type=StringToKeyType.IteratedSalted,
            hash_alg=config.s2k_hash,
            salt=salt,
            coded_count=config.s2k_count,
            iv=iv,
        )

    @property
    def count(self) -> Optional[int]:
        if self.coded_count is None:
            return None
        return cu.decode_s2k_count(self.coded_count)

    def derive_key(self, passphrase: cu.SecretBuffer) -> cu.SecretBuffer:
        try:
            return cu.derive_key_from_passphrase(
                passphrase.data,
                self.sym_alg.key_size,
                self.hash_alg,
                self.s2k_type,
                salt=self.salt,
                coded_count=self.coded_count,
            )
        except (ValueError, NotImplementedError) as e:
            raise ProtectionFailure(f"Key derivation failed: {e}") from e


def _sha1(data: bytearray) -> bytes:
    h = HashAlgorithm.SHA1.new()
    h.update(data)
    return h.finalize()


def _as_passphrase(passphrase: Union[str, cu.SecretBuffer]) -> cu.SecretBuffer:
    if isinstance(passphrase, cu.SecretBuffer):
        return passphrase
    return cu.SecretBuffer.from_str(passphrase)


class PlainSecretParams:
    """Unprotected secret values of one key, MPI encoded."""

    def __init__(self, algorithm: PublicKeyAlgorithm, material: cu.SecretBuffer):
        self.algorithm = algorithm
        self._material = material

    @classmethod
    def from_mpis(cls, algorithm: PublicKeyAlgorithm, values: List[Union[int, bytes]]) -> "PlainSecretParams":
        buf = bytearray()
        try:
            for value in values:
                if isinstance(value, int):
                    cu.mpi_encode(value, buf)
                else:
                    cu.mpi_encode_bytes(value, buf)
            return cls(algorithm, cu.SecretBuffer(buf))
        finally:
            cu.secure_zero(buf)

    @property
    def is_encrypted(self) -> bool:
        return False

    @property
    def data(self) -> bytearray:
        return self._material.data

    @property
    def wiped(self) -> bool:
        return self._material.wiped

    def mpis(self) -> List[int]:
        return cu.mpi_decode(self._material.data)

    def checksum(self) -> int:
        """Two-octet sum of the encoded secret values, as stored beside unprotected keys."""
        return sum(self._material.data) % 65536

    def copy(self) -> "PlainSecretParams":
        return PlainSecretParams(self.algorithm, self._material.copy())

    def wipe(self):
        self._material.wipe()

    def encrypt(self, passphrase: Union[str, cu.SecretBuffer], s2k: S2kParams,
                version: KeyVersion = DEFAULT_KEY_VERSION) -> "EncryptedSecretParams":
        if s2k.usage is not S2KUsage.CFB:
            raise ProtectionFailure(f"Unsupported S2K usage {s2k.usage.name}")
        if s2k.sym_alg is SymmetricKeyAlgorithm.Plaintext:
            raise ProtectionFailure("Cannot protect a key with the plaintext cipher")

        passphrase = _as_passphrase(passphrase)
        plaintext = bytearray(self._material.data)
        try:
            plaintext += _sha1(self._material.data)
            with s2k.derive_key(passphrase) as key:
                ciphertext = cu.cfb_encrypt(s2k.sym_alg, key.data, s2k.iv, plaintext)
        except (ValueError, NotImplementedError) as e:
            raise ProtectionFailure(f"Encrypting secret material failed: {e}") from e
        finally:
            cu.secure_zero(plaintext)

        return EncryptedSecretParams(
            algorithm=self.algorithm,
            ciphertext=ciphertext,
            s2k=s2k,
            version=version,
        )

    def __eq__(self, other):
        if not isinstance(other, PlainSecretParams):
            return NotImplemented
        return self.algorithm == other.algorithm and self._material == other._material

    __hash__ = None

    def __repr__(self):
        return f"PlainSecretParams(algorithm={self.algorithm.name}, material={self._material!r})"


@dataclass(frozen=True)
class EncryptedSecretParams:
    """Passphrase-protected secret values of one key."""
    algorithm: PublicKeyAlgorithm
    ciphertext: bytes
    s2k: S2kParams
    version: KeyVersion

    @property
    def is_encrypted(self) -> bool:
        return True

    def unlock(self, passphrase: Union[str, cu.SecretBuffer]) -> PlainSecretParams:
        """
        Decrypt with `passphrase` and return fresh plain material.
        Raises InvalidPassphrase when the integrity hash does not match.
        """
        owned = not isinstance(passphrase, cu.SecretBuffer)
        passphrase = _as_passphrase(passphrase)
        try:
            with self.s2k.derive_key(passphrase) as key:
                try:
                    plaintext = cu.cfb_decrypt(self.s2k.sym_alg, key.data, self.s2k.iv, self.ciphertext)
                except (ValueError, NotImplementedError) as e:
                    raise ProtectionFailure(f"Decrypting secret material failed: {e}") from e
        finally:
            if owned:
                passphrase.wipe()

        try:
            if len(plaintext) < SHA1_SIZE:
                raise InvalidPassphrase("Secret material too short")
            body = plaintext[:-SHA1_SIZE]
            check = bytes(plaintext[-SHA1_SIZE:])
            if not hmac.compare_digest(_sha1(body), check):
                cu.secure_zero(body)
                raise InvalidPassphrase("Incorrect passphrase or corrupted secret key")
            material = cu.SecretBuffer(body)
            cu.secure_zero(body)
            return PlainSecretParams(self.algorithm, material)
        finally:
            cu.secure_zero(plaintext)


SecretParams = Union[PlainSecretParams, EncryptedSecretParams]


def protect(plain: PlainSecretParams, passphrase: Optional[cu.SecretBuffer],
            s2k: Optional[S2kParams] = None, version: KeyVersion = DEFAULT_KEY_VERSION,
            rng: Optional[cu.RandomSource] = None) -> SecretParams:
    """
    Return `plain` unchanged when there is no passphrase, otherwise the protected form.
    A missing `s2k` is synthesized from `rng`. The plain material is wiped once protected.
    """
    if passphrase is None:
        return plain
    if s2k is None:
        if rng is None:
            raise ProtectionFailure("No derivation configuration and no randomness source to create one")
        s2k = S2kParams.new_default(rng)
    try:
        return plain.encrypt(passphrase, s2k, version)
    finally:
        plain.wipe()
