import abc
import hmac
import secrets
import hashlib
import threading
from contextlib import contextmanager
from typing import List, Optional, Union

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from key_constants import HashAlgorithm, StringToKeyType, SymmetricKeyAlgorithm
from key_errors import RngBusy


# -------------------------
# RNG
# -------------------------
def generate_random_bytes(n: int) -> bytes:
    """Cryptographically secure random bytes from the operating system."""
    return secrets.token_bytes(n)


class RandomSource(abc.ABC):
    """
    Sequential randomness source threaded through key generation.
    `read` has the `randfunc(n)` signature the pycryptodomex generators expect.
    One instance must only serve one generation call at a time; `exclusive()` enforces that.
    """

    def __init__(self):
        self._borrow_lock = threading.Lock()

    @abc.abstractmethod
    def read(self, n: int) -> bytes:
        ...

    def randbelow(self, upper: int) -> int:
        """Uniform integer in [0, upper) by rejection sampling."""
        if upper <= 0:
            raise ValueError("upper bound must be positive")
        bits = upper.bit_length()
        nbytes = (bits + 7) // 8
        mask = (1 << bits) - 1
        while True:
            candidate = int.from_bytes(self.read(nbytes), "big") & mask
            if candidate < upper:
                return candidate

    def randrange(self, lower: int, upper: int) -> int:
        """Uniform integer in [lower, upper)."""
        return lower + self.randbelow(upper - lower)

    @contextmanager
    def exclusive(self):
        if not self._borrow_lock.acquire(blocking=False):
            raise RngBusy("randomness source is already in use by another generation call")
        try:
            yield self
        finally:
            self._borrow_lock.release()

    @property
    def in_use(self) -> bool:
        return self._borrow_lock.locked()


class OsRng(RandomSource):
    def read(self, n: int) -> bytes:
        return generate_random_bytes(n)


class SeededRng(RandomSource):
    """
    Deterministic CSPRNG: the ChaCha20 keystream under a key derived from the seed.
    Identical seeds always yield identical byte sequences, which is what tests rely on.
    """

    def __init__(self, seed: Union[int, bytes]):
        super().__init__()
        if isinstance(seed, int):
            if seed < 0:
                raise ValueError("seed must be non-negative")
            seed = seed.to_bytes(max(8, (seed.bit_length() + 7) // 8), "big")
        key = hashlib.sha256(bytes(seed)).digest()
        self._stream = Cipher(algorithms.ChaCha20(key, bytes(16)), mode=None).encryptor()

    def read(self, n: int) -> bytes:
        return self._stream.update(bytes(n))


# -------------------------
# Secret memory
# -------------------------
def secure_zero(data: bytearray) -> None:
    """Overwrite a bytearray in place. Only mutable buffers can be cleared."""
    data[:] = bytes(len(data))


class SecretBuffer:
    """
    Owned mutable buffer for key bytes and passphrases.
    The contents are overwritten on wipe(), on leaving a `with` block and on collection.
    Python may still hold copies of anything converted to bytes or int, so keep conversions local.
    """

    __slots__ = ("_buf", "_wiped")

    def __init__(self, data: Union[bytes, bytearray, memoryview] = b""):
        self._buf = bytearray(data)
        self._wiped = False

    @classmethod
    def from_str(cls, value: str) -> "SecretBuffer":
        return cls(value.encode("utf-8"))

    @property
    def data(self) -> bytearray:
        if self._wiped:
            raise ValueError("secret buffer has been wiped")
        return self._buf

    @property
    def wiped(self) -> bool:
        return self._wiped

    def copy(self) -> "SecretBuffer":
        return SecretBuffer(self.data)

    def wipe(self):
        secure_zero(self._buf)
        self._wiped = True

    def __len__(self):
        return len(self._buf)

    def __eq__(self, other):
        if not isinstance(other, SecretBuffer):
            return NotImplemented
        if self._wiped or other._wiped:
            return self._wiped and other._wiped
        return hmac.compare_digest(self._buf, other._buf)

    __hash__ = None

    def __repr__(self):
        state = "wiped" if self._wiped else f"{len(self._buf)} bytes"
        return f"SecretBuffer(<{state}>)"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.wipe()
        return False

    def __del__(self):
        try:
            self.wipe()
        except AttributeError:
            # __init__ never completed
            pass


# -------------------------
# MPI encoding
# -------------------------
def mpi_encode(value: int, out: Optional[bytearray] = None) -> bytearray:
    """Append the OpenPGP MPI form of `value` (2-octet bit length, big-endian magnitude)."""
    if value < 0:
        raise ValueError("MPI values are non-negative")
    out = bytearray() if out is None else out
    bits = value.bit_length()
    out += bits.to_bytes(2, "big")
    out += value.to_bytes((bits + 7) // 8, "big")
    return out


def mpi_encode_bytes(value: bytes, out: Optional[bytearray] = None) -> bytearray:
    """MPI form of a big-endian octet string, leading zero octets stripped."""
    stripped = bytes(value).lstrip(b"\x00")
    out = bytearray() if out is None else out
    bits = len(stripped) * 8 - (8 - stripped[0].bit_length()) if stripped else 0
    out += bits.to_bytes(2, "big")
    out += stripped
    return out


def mpi_decode(data: Union[bytes, bytearray]) -> List[int]:
    values = []
    pos = 0
    while pos < len(data):
        if pos + 2 > len(data):
            raise ValueError("truncated MPI header")
        bits = int.from_bytes(data[pos:pos + 2], "big")
        length = (bits + 7) // 8
        pos += 2
        if pos + length > len(data):
            raise ValueError("truncated MPI body")
        values.append(int.from_bytes(data[pos:pos + length], "big"))
        pos += length
    return values


# -------------------------
# Passphrase key derivation (OpenPGP S2K)
# -------------------------
def decode_s2k_count(coded: int) -> int:
    """Expand the one-octet coded iteration count into a byte count."""
    if not 0 <= coded <= 255:
        raise ValueError("coded count must fit in one octet")
    return (16 + (coded & 15)) << ((coded >> 4) + 6)


def derive_key_from_passphrase(passphrase: bytearray, key_len: int, hash_alg: HashAlgorithm,
                               s2k_type: StringToKeyType, salt: bytes = b"",
                               coded_count: Optional[int] = None) -> SecretBuffer:
    """
    Derive `key_len` bytes from a passphrase with simple, salted or iterated+salted S2K.
    When the key is longer than one digest, further hash contexts are preloaded with
    1, 2, ... zero octets.
    """
    if s2k_type is not StringToKeyType.Simple and len(salt) != 8:
        raise ValueError("salted S2K requires an 8-byte salt")

    data = bytearray(salt if s2k_type is not StringToKeyType.Simple else b"")
    data += passphrase
    if s2k_type is StringToKeyType.IteratedSalted:
        if coded_count is None:
            raise ValueError("iterated S2K requires a coded count")
        total = max(decode_s2k_count(coded_count), len(data))
    else:
        total = len(data)

    chunk = bytearray()
    if data:
        chunk = data * max(1, 65536 // len(data))

    out = bytearray()
    preload = 0
    try:
        while len(out) < key_len:
            h = hash_alg.new()
            if preload:
                h.update(bytes(preload))
            remaining = total
            while remaining >= len(chunk) > 0:
                h.update(chunk)
                remaining -= len(chunk)
            if remaining:
                h.update(chunk[:remaining])
            out += h.finalize()
            preload += 1
        return SecretBuffer(out[:key_len])
    finally:
        secure_zero(data)
        secure_zero(chunk)
        secure_zero(out)


# -------------------------
# Symmetric encryption for secret material
# -------------------------
def cfb_encrypt(sym_alg: SymmetricKeyAlgorithm, key: bytearray, iv: bytes, plaintext: bytearray) -> bytes:
    encryptor = Cipher(sym_alg.cipher(key), modes.CFB(iv)).encryptor()
    return encryptor.update(plaintext) + encryptor.finalize()


def cfb_decrypt(sym_alg: SymmetricKeyAlgorithm, key: bytearray, iv: bytes, ciphertext: bytes) -> bytearray:
    decryptor = Cipher(sym_alg.cipher(key), modes.CFB(iv)).decryptor()
    out = bytearray(decryptor.update(ciphertext))
    out += decryptor.finalize()
    return out
