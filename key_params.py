"""
key_params.py
Two-phase construction of key generation parameters.

Builders accumulate fields through chained setters; build() validates the algorithm
against the declared capabilities, fills defaults and returns a frozen record.
The records check themselves on construction as well, so no unvalidated record
reaches key generation.
"""

import copy
import datetime
from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

from key_constants import (
    CompressionAlgorithm,
    DEFAULT_KEY_VERSION,
    DEFAULT_PACKET_VERSION,
    HashAlgorithm,
    KeyVersion,
    PacketVersion,
    SymmetricKeyAlgorithm,
)
from key_errors import (
    InvalidKeySize,
    InvalidUsage,
    MissingField,
    ParamsConsumed,
    UnsupportedCurve,
    ValidationError,
)
from key_factory import generate_key
from key_object import RevocationKey, SecretKey, UserAttribute, UserId
from key_type import Dsa, ECDH, ECDSA, EdDSALegacy, KeyType, Rsa
from keygen_providers import ECDSA_CURVES
from secret_params import S2kParams
import crypto_utils as cu

MIN_RSA_BITS = 2048

_UNSET = object()


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def truncate_timestamp(value: datetime.datetime) -> datetime.datetime:
    """UTC, whole seconds. Naive values are taken to be UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    else:
        value = value.astimezone(datetime.timezone.utc)
    return value.replace(microsecond=0)


def validate_key_type(key_type: KeyType, can_sign: bool, can_encrypt: bool):
    """Reject algorithm/capability combinations the family cannot support."""
    if isinstance(key_type, Rsa):
        if key_type.bit_size < MIN_RSA_BITS:
            raise InvalidKeySize("Keys with less than 2048bits are considered insecure")
    elif isinstance(key_type, EdDSALegacy):
        if can_encrypt:
            raise InvalidUsage("EdDSA can only be used for signing keys")
    elif isinstance(key_type, ECDSA):
        if can_encrypt:
            raise InvalidUsage("ECDSA can only be used for signing keys")
        if key_type.curve not in ECDSA_CURVES:
            raise UnsupportedCurve(f"Curve {key_type.curve.curve_name} is not supported for ECDSA")
    elif isinstance(key_type, ECDH):
        if can_sign:
            raise InvalidUsage("ECDH can only be used for encryption keys")
    elif isinstance(key_type, Dsa):
        if can_encrypt:
            raise InvalidUsage("DSA can only be used for signing keys")


def _check_expiration(expiration: Optional[datetime.timedelta]):
    if expiration is not None and expiration < datetime.timedelta(0):
        raise ValidationError("Expiration must not be negative")


def _check_record(record):
    """Checks shared by every finalized record, however it was constructed."""
    if not isinstance(record.key_type, KeyType):
        raise MissingField("key_type is required")
    validate_key_type(record.key_type, record.can_sign, record.can_encrypt)
    _check_expiration(record.expiration)
    if record.created_at.tzinfo is None or record.created_at.microsecond:
        raise ValidationError("created_at must be timezone-aware with whole-second precision")
    if record.passphrase is not None and not isinstance(record.passphrase, cu.SecretBuffer):
        raise TypeError("passphrase must be a SecretBuffer or None")


@dataclass(frozen=True)
class Preferences:
    """Algorithm preferences, most preferred first."""
    symmetric: Tuple[SymmetricKeyAlgorithm, ...] = ()
    hash: Tuple[HashAlgorithm, ...] = ()
    compression: Tuple[CompressionAlgorithm, ...] = ()


@dataclass(frozen=True)
class SubkeyParams:
    key_type: KeyType
    can_sign: bool
    can_certify: bool
    can_encrypt: bool
    can_authenticate: bool
    user_ids: Tuple[UserId, ...]
    user_attributes: Tuple[UserAttribute, ...]
    passphrase: Optional[cu.SecretBuffer]
    s2k: Optional[S2kParams]
    created_at: datetime.datetime
    packet_version: PacketVersion
    version: KeyVersion
    expiration: Optional[datetime.timedelta]
    _consumed: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self):
        _check_record(self)

    def _consume(self):
        if self._consumed:
            raise ParamsConsumed("Subkey parameters have already been used to generate a key")
        object.__setattr__(self, "_consumed", True)


@dataclass(frozen=True)
class SecretKeyParams:
    key_type: KeyType
    can_sign: bool
    can_certify: bool
    can_encrypt: bool
    preferences: Preferences
    revocation_key: Optional[RevocationKey]
    primary_user_id: str
    user_ids: Tuple[str, ...]
    user_attributes: Tuple[UserAttribute, ...]
    passphrase: Optional[cu.SecretBuffer]
    s2k: Optional[S2kParams]
    created_at: datetime.datetime
    packet_version: PacketVersion
    version: KeyVersion
    expiration: Optional[datetime.timedelta]
    subkeys: Tuple[SubkeyParams, ...]
    _consumed: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self):
        _check_record(self)
        if self.primary_user_id is None:
            raise MissingField("primary_user_id is required")
        for subkey in self.subkeys:
            if not isinstance(subkey, SubkeyParams):
                raise TypeError("subkeys must be built SubkeyParams")

    def _consume(self):
        if self._consumed:
            raise ParamsConsumed("Key parameters have already been used to generate a key")
        for subkey in self.subkeys:
            if subkey._consumed:
                raise ParamsConsumed("Subkey parameters have already been used to generate a key")
        object.__setattr__(self, "_consumed", True)
        for subkey in self.subkeys:
            subkey._consume()

    @property
    def consumed(self) -> bool:
        return self._consumed

    def generate(self, rng: Optional[cu.RandomSource] = None) -> SecretKey:
        """Generate the primary key and its subkeys. The parameters cannot be reused afterwards."""
        return generate_key(self, rng)


class _ParamsBuilder:
    """Fields shared by primary key and subkey builders."""

    def __init__(self):
        self._key_type = None
        self._can_sign = False
        self._can_certify = False
        self._can_encrypt = False
        self._user_attributes = []
        self._passphrase = _UNSET
        self._s2k = None
        self._created_at = None
        self._packet_version = DEFAULT_PACKET_VERSION
        self._version = DEFAULT_KEY_VERSION
        self._expiration = None

    def copy(self):
        return copy.deepcopy(self)

    def key_type(self, value: KeyType):
        if not isinstance(value, KeyType):
            raise TypeError(f"key_type must be a KeyType, got {type(value).__name__}")
        self._key_type = value
        return self

    def can_sign(self, value: bool):
        self._can_sign = bool(value)
        return self

    def can_certify(self, value: bool):
        self._can_certify = bool(value)
        return self

    def can_encrypt(self, value: bool):
        self._can_encrypt = bool(value)
        return self

    def user_attributes(self, values: Iterable[UserAttribute]):
        self._user_attributes = list(values)
        return self

    def user_attribute(self, value: UserAttribute):
        self._user_attributes.append(value)
        return self

    def passphrase(self, value: Optional[str]):
        """Set the passphrase, or None for an unprotected key. One of the two is required."""
        if value is not None and not isinstance(value, str):
            raise TypeError("passphrase must be a str or None")
        if isinstance(self._passphrase, cu.SecretBuffer):
            self._passphrase.wipe()
        self._passphrase = None if value is None else cu.SecretBuffer.from_str(value)
        return self

    def s2k(self, value: Optional[S2kParams]):
        self._s2k = value
        return self

    def created_at(self, value: datetime.datetime):
        self._created_at = value
        return self

    def packet_version(self, value: PacketVersion):
        self._packet_version = value
        return self

    def version(self, value: KeyVersion):
        self._version = value
        return self

    def expiration(self, value: Optional[datetime.timedelta]):
        self._expiration = value
        return self

    def _common(self, what: str):
        if self._key_type is None:
            raise MissingField(f"{what}: key_type is required")
        if self._passphrase is _UNSET:
            raise MissingField(f"{what}: passphrase must be set explicitly (None for no passphrase)")
        _check_expiration(self._expiration)
        passphrase = None if self._passphrase is None else self._passphrase.copy()
        created_at = truncate_timestamp(self._created_at if self._created_at is not None else _now())
        return passphrase, created_at


class SubkeyParamsBuilder(_ParamsBuilder):

    def __init__(self):
        super().__init__()
        self._can_authenticate = False
        self._user_ids = []

    def can_authenticate(self, value: bool):
        self._can_authenticate = bool(value)
        return self

    def user_ids(self, values: Iterable[UserId]):
        self._user_ids = list(values)
        return self

    def user_id(self, value: UserId):
        self._user_ids.append(value)
        return self

    def build(self) -> SubkeyParams:
        if self._key_type is not None:
            validate_key_type(self._key_type, self._can_sign, self._can_encrypt)
        passphrase, created_at = self._common("subkey")
        return SubkeyParams(
            key_type=self._key_type,
            can_sign=self._can_sign,
            can_certify=self._can_certify,
            can_encrypt=self._can_encrypt,
            can_authenticate=self._can_authenticate,
            user_ids=tuple(self._user_ids),
            user_attributes=tuple(self._user_attributes),
            passphrase=passphrase,
            s2k=self._s2k,
            created_at=created_at,
            packet_version=self._packet_version,
            version=self._version,
            expiration=self._expiration,
        )


class SecretKeyParamsBuilder(_ParamsBuilder):

    def __init__(self):
        super().__init__()
        self._preferred_symmetric = []
        self._preferred_hash = []
        self._preferred_compression = []
        self._revocation_key = None
        self._primary_user_id = None
        self._user_ids = []
        self._subkeys = []

    def preferred_symmetric_algorithms(self, values: Iterable[SymmetricKeyAlgorithm]):
        self._preferred_symmetric = list(values)
        return self

    def preferred_hash_algorithms(self, values: Iterable[HashAlgorithm]):
        self._preferred_hash = list(values)
        return self

    def preferred_compression_algorithms(self, values: Iterable[CompressionAlgorithm]):
        self._preferred_compression = list(values)
        return self

    def revocation_key(self, value: Optional[RevocationKey]):
        self._revocation_key = value
        return self

    def primary_user_id(self, value: str):
        self._primary_user_id = value
        return self

    def user_ids(self, values: Iterable[str]):
        self._user_ids = list(values)
        return self

    def user_id(self, value: str):
        self._user_ids.append(value)
        return self

    def subkeys(self, values: Iterable[SubkeyParams]):
        values = list(values)
        for value in values:
            if not isinstance(value, SubkeyParams):
                raise TypeError("subkeys must be built SubkeyParams")
        self._subkeys = values
        return self

    def subkey(self, value: SubkeyParams):
        if not isinstance(value, SubkeyParams):
            raise TypeError("subkey must be built SubkeyParams")
        self._subkeys.append(value)
        return self

    def build(self) -> SecretKeyParams:
        if self._key_type is not None:
            validate_key_type(self._key_type, self._can_sign, self._can_encrypt)
        if self._primary_user_id is None:
            raise MissingField("primary_user_id is required")
        passphrase, created_at = self._common("primary key")
        return SecretKeyParams(
            key_type=self._key_type,
            can_sign=self._can_sign,
            can_certify=self._can_certify,
            can_encrypt=self._can_encrypt,
            preferences=Preferences(
                symmetric=tuple(self._preferred_symmetric),
                hash=tuple(self._preferred_hash),
                compression=tuple(self._preferred_compression),
            ),
            revocation_key=self._revocation_key,
            primary_user_id=self._primary_user_id,
            user_ids=tuple(self._user_ids),
            user_attributes=tuple(self._user_attributes),
            passphrase=passphrase,
            s2k=self._s2k,
            created_at=created_at,
            packet_version=self._packet_version,
            version=self._version,
            expiration=self._expiration,
            subkeys=tuple(self._subkeys),
        )
