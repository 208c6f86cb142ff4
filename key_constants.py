"""
key_constants.py
OpenPGP algorithm identifiers and flag sets used across key generation.
Numeric values are the RFC 4880 / RFC 9580 registry values.
"""

from enum import Enum, IntEnum, IntFlag

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import algorithms


class PublicKeyAlgorithm(IntEnum):
    RSA = 0x01
    RSAEncrypt = 0x02  # deprecated
    RSASign = 0x03  # deprecated
    ElGamal = 0x10
    DSA = 0x11
    ECDH = 0x12
    ECDSA = 0x13
    EdDSALegacy = 0x16

    @property
    def can_sign(self) -> bool:
        return self in (PublicKeyAlgorithm.RSA, PublicKeyAlgorithm.RSASign, PublicKeyAlgorithm.DSA,
                        PublicKeyAlgorithm.ECDSA, PublicKeyAlgorithm.EdDSALegacy)

    @property
    def can_encrypt(self) -> bool:
        return self in (PublicKeyAlgorithm.RSA, PublicKeyAlgorithm.RSAEncrypt,
                        PublicKeyAlgorithm.ElGamal, PublicKeyAlgorithm.ECDH)


class SymmetricKeyAlgorithm(IntEnum):
    Plaintext = 0x00
    IDEA = 0x01
    TripleDES = 0x02
    CAST5 = 0x03
    Blowfish = 0x04
    AES128 = 0x07
    AES192 = 0x08
    AES256 = 0x09
    Twofish = 0x0A
    Camellia128 = 0x0B
    Camellia192 = 0x0C
    Camellia256 = 0x0D

    @property
    def key_size(self) -> int:
        """Key size in bytes."""
        sizes = {
            SymmetricKeyAlgorithm.IDEA: 16,
            SymmetricKeyAlgorithm.TripleDES: 24,
            SymmetricKeyAlgorithm.CAST5: 16,
            SymmetricKeyAlgorithm.Blowfish: 16,
            SymmetricKeyAlgorithm.AES128: 16,
            SymmetricKeyAlgorithm.AES192: 24,
            SymmetricKeyAlgorithm.AES256: 32,
            SymmetricKeyAlgorithm.Twofish: 32,
            SymmetricKeyAlgorithm.Camellia128: 16,
            SymmetricKeyAlgorithm.Camellia192: 24,
            SymmetricKeyAlgorithm.Camellia256: 32,
        }
        if self not in sizes:
            raise ValueError(f"No key size for {self.name}")
        return sizes[self]

    @property
    def block_size(self) -> int:
        """Block size in bytes."""
        if self in (SymmetricKeyAlgorithm.IDEA, SymmetricKeyAlgorithm.TripleDES,
                    SymmetricKeyAlgorithm.CAST5, SymmetricKeyAlgorithm.Blowfish):
            return 8
        return 16

    def cipher(self, key: bytes):
        """Return a `cryptography` block cipher for this algorithm, if one is supported for protection."""
        if self in (SymmetricKeyAlgorithm.AES128, SymmetricKeyAlgorithm.AES192, SymmetricKeyAlgorithm.AES256):
            return algorithms.AES(key)
        if self in (SymmetricKeyAlgorithm.Camellia128, SymmetricKeyAlgorithm.Camellia192,
                    SymmetricKeyAlgorithm.Camellia256):
            return algorithms.Camellia(key)
        raise NotImplementedError(f"{self.name} is not supported for secret key protection")


class HashAlgorithm(IntEnum):
    MD5 = 0x01
    SHA1 = 0x02
    RIPEMD160 = 0x03
    SHA256 = 0x08
    SHA384 = 0x09
    SHA512 = 0x0A
    SHA224 = 0x0B
    SHA3_256 = 0x0C
    SHA3_512 = 0x0E

    def new(self) -> hashes.Hash:
        supported = {
            HashAlgorithm.SHA1: hashes.SHA1,
            HashAlgorithm.SHA224: hashes.SHA224,
            HashAlgorithm.SHA256: hashes.SHA256,
            HashAlgorithm.SHA384: hashes.SHA384,
            HashAlgorithm.SHA512: hashes.SHA512,
            HashAlgorithm.SHA3_256: hashes.SHA3_256,
            HashAlgorithm.SHA3_512: hashes.SHA3_512,
        }
        if self not in supported:
            raise NotImplementedError(f"{self.name} is not supported")
        return hashes.Hash(supported[self]())

    @property
    def digest_size(self) -> int:
        return self.new().algorithm.digest_size


class CompressionAlgorithm(IntEnum):
    Uncompressed = 0x00
    ZIP = 0x01
    ZLIB = 0x02
    BZip2 = 0x03


class S2KUsage(IntEnum):
    """Secret key protection octet."""
    Unprotected = 0
    CFB = 254
    MalleableCFB = 255


class StringToKeyType(IntEnum):
    Simple = 0
    Salted = 1
    IteratedSalted = 3

    @property
    def salt_length(self) -> int:
        return 0 if self is StringToKeyType.Simple else 8


class KeyFlags(IntFlag):
    """Capability flags attached to a key."""
    Certify = 0x01
    Sign = 0x02
    EncryptCommunications = 0x04
    EncryptStorage = 0x08
    Split = 0x10
    Authentication = 0x20
    Shared = 0x80


class RevocationKeyClass(IntFlag):
    Sensitive = 0x40
    Normal = 0x80


class AttributeType(IntEnum):
    Image = 0x01


class PacketVersion(Enum):
    """Packet header format."""
    Old = "old"
    New = "new"


class KeyVersion(IntEnum):
    V2 = 2
    V3 = 3
    V4 = 4
    V5 = 5
    V6 = 6


DEFAULT_PACKET_VERSION = PacketVersion.New
DEFAULT_KEY_VERSION = KeyVersion.V4


class ECCCurve(Enum):
    """Named curves: (name, OID, size of the field in bits)."""
    Curve25519 = ("Curve25519", "1.3.6.1.4.1.3029.1.5.1", 255)
    Ed25519 = ("Ed25519", "1.3.6.1.4.1.11591.15.1", 255)
    P256 = ("P-256", "1.2.840.10045.3.1.7", 256)
    P384 = ("P-384", "1.3.132.0.34", 384)
    P521 = ("P-521", "1.3.132.0.35", 521)
    BrainpoolP256r1 = ("brainpoolP256r1", "1.3.36.3.3.2.8.1.1.7", 256)
    BrainpoolP384r1 = ("brainpoolP384r1", "1.3.36.3.3.2.8.1.1.11", 384)
    BrainpoolP512r1 = ("brainpoolP512r1", "1.3.36.3.3.2.8.1.1.13", 512)
    Secp256k1 = ("secp256k1", "1.3.132.0.10", 256)

    def __init__(self, curve_name: str, oid: str, nbits: int):
        self.curve_name = curve_name
        self.oid = oid
        self.nbits = nbits

    @property
    def field_bytes(self) -> int:
        return (self.nbits + 7) // 8


class DsaKeySize(Enum):
    """Standardized DSA (L, N) parameter sizes."""
    B1024 = (1024, 160)
    B2048 = (2048, 256)
    B3072 = (3072, 256)

    def __init__(self, l_bits: int, n_bits: int):
        self.l_bits = l_bits
        self.n_bits = n_bits
