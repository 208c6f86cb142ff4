"""
key_object.py
Assembled key model produced by the key factory.
- PublicKey / PublicSubkey: the public envelope (versions, algorithm, timestamp, expiration, public params).
- SecretKeyPacket / SecretSubkeyPacket: envelope plus plain or protected secret material.
- SecretKey: primary key, identities, capability flags and preferences, owning an ordered subkey list.
- wipe() clears every plain secret held by the aggregate; to_summary() describes it without secrets.
"""

import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from key_constants import (
    AttributeType,
    CompressionAlgorithm,
    DEFAULT_PACKET_VERSION,
    HashAlgorithm,
    KeyFlags,
    KeyVersion,
    PacketVersion,
    PublicKeyAlgorithm,
    RevocationKeyClass,
    SymmetricKeyAlgorithm,
)
from key_errors import ValidationError
from keygen_providers import PublicParams
from secret_params import PlainSecretParams, SecretParams
import crypto_utils as cu


@dataclass(frozen=True)
class UserId:
    id: str
    packet_version: PacketVersion = DEFAULT_PACKET_VERSION

    @classmethod
    def from_str(cls, value: str, packet_version: PacketVersion = DEFAULT_PACKET_VERSION) -> "UserId":
        return cls(id=value, packet_version=packet_version)


@dataclass(frozen=True)
class UserAttribute:
    """Opaque user attribute subpacket, e.g. an image."""
    typ: AttributeType
    data: bytes
    packet_version: PacketVersion = DEFAULT_PACKET_VERSION


@dataclass(frozen=True)
class RevocationKey:
    """Designated revoker: a key allowed to issue revocations for this one."""
    class_: RevocationKeyClass
    algorithm: PublicKeyAlgorithm
    fingerprint: bytes

    def __post_init__(self):
        if len(self.fingerprint) not in (20, 32):
            raise ValidationError("Revocation key fingerprint must be 20 or 32 bytes")


@dataclass(frozen=True)
class PublicKey:
    packet_version: PacketVersion
    version: KeyVersion
    algorithm: PublicKeyAlgorithm
    created_at: datetime.datetime
    expiration: Optional[datetime.timedelta]
    public_params: PublicParams

    def __post_init__(self):
        if self.created_at.tzinfo is None or self.created_at.microsecond:
            raise ValidationError("created_at must be timezone-aware with whole-second precision")

    @property
    def is_subkey(self) -> bool:
        return False

    @property
    def expires_at(self) -> Optional[datetime.datetime]:
        if self.expiration is None:
            return None
        return self.created_at + self.expiration


class PublicSubkey(PublicKey):
    @property
    def is_subkey(self) -> bool:
        return True


@dataclass(eq=True)
class SecretKeyPacket:
    public_key: PublicKey
    secret_params: SecretParams

    @property
    def is_encrypted(self) -> bool:
        return self.secret_params.is_encrypted

    @property
    def algorithm(self) -> PublicKeyAlgorithm:
        return self.public_key.algorithm

    def unlock(self, passphrase: Union[str, cu.SecretBuffer]) -> PlainSecretParams:
        """Plain secret material; protected keys are decrypted, plain ones are copied."""
        if self.secret_params.is_encrypted:
            return self.secret_params.unlock(passphrase)
        return self.secret_params.copy()

    def wipe(self):
        if isinstance(self.secret_params, PlainSecretParams):
            self.secret_params.wipe()


class SecretSubkeyPacket(SecretKeyPacket):
    pass


@dataclass(frozen=True)
class KeyDetails:
    primary_user_id: UserId
    user_ids: Tuple[UserId, ...]
    user_attributes: Tuple[UserAttribute, ...]
    keyflags: KeyFlags
    preferred_symmetric_algorithms: Tuple[SymmetricKeyAlgorithm, ...]
    preferred_hash_algorithms: Tuple[HashAlgorithm, ...]
    preferred_compression_algorithms: Tuple[CompressionAlgorithm, ...]
    revocation_key: Optional[RevocationKey] = None

    @property
    def all_user_ids(self) -> Tuple[UserId, ...]:
        return (self.primary_user_id,) + self.user_ids


@dataclass
class SecretSubkey:
    key: SecretSubkeyPacket
    keyflags: KeyFlags
    user_ids: Tuple[UserId, ...] = ()
    user_attributes: Tuple[UserAttribute, ...] = ()


@dataclass
class SecretKey:
    primary_key: SecretKeyPacket
    details: KeyDetails
    public_subkeys: List[PublicSubkey] = field(default_factory=list)
    secret_subkeys: List[SecretSubkey] = field(default_factory=list)

    @property
    def keyflags(self) -> KeyFlags:
        return self.details.keyflags

    def wipe(self):
        """Zeroize the plain secret material of the primary key and every subkey."""
        self.primary_key.wipe()
        for subkey in self.secret_subkeys:
            subkey.key.wipe()

    def to_summary(self) -> Dict[str, Any]:
        """Describe the key without any secret material (for logs and listings)."""
        def describe(packet: SecretKeyPacket, flags: KeyFlags) -> Dict[str, Any]:
            pub = packet.public_key
            return {
                "algorithm": pub.algorithm.name,
                "version": int(pub.version),
                "created_at": pub.created_at.isoformat(),
                "expires_at": pub.expires_at.isoformat() if pub.expires_at else None,
                "flags": [f.name for f in KeyFlags if f in flags],
                "protected": packet.is_encrypted,
            }

        summary = describe(self.primary_key, self.keyflags)
        summary["user_ids"] = [uid.id for uid in self.details.all_user_ids]
        summary["subkeys"] = [describe(s.key, s.keyflags) for s in self.secret_subkeys]
        return summary
