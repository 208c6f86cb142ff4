"""
key_factory.py
Composite key factory: primary key, identities and ordered subkeys from one
SecretKeyParams and one randomness source.
"""

from contextlib import ExitStack
from typing import TYPE_CHECKING, Optional, Tuple

from key_constants import KeyFlags
from key_object import (
    KeyDetails,
    PublicKey,
    PublicSubkey,
    SecretKey,
    SecretKeyPacket,
    SecretSubkey,
    SecretSubkeyPacket,
    UserId,
)
from key_logging import get_logger
from secret_params import PlainSecretParams, S2kParams
import crypto_utils as cu

if TYPE_CHECKING:
    # key_params imports this module for SecretKeyParams.generate
    from key_params import SecretKeyParams, SubkeyParams

logger = get_logger("keygen.factory")


def compile_key_flags(can_certify: bool, can_sign: bool, can_encrypt: bool,
                      can_authenticate: bool = False) -> KeyFlags:
    flags = KeyFlags(0)
    if can_certify:
        flags |= KeyFlags.Certify
    if can_sign:
        flags |= KeyFlags.Sign
    if can_encrypt:
        flags |= KeyFlags.EncryptCommunications | KeyFlags.EncryptStorage
    if can_authenticate:
        flags |= KeyFlags.Authentication
    return flags


def _generate_material(params, rng: cu.RandomSource, stack: ExitStack):
    """Resolve the S2K config, generate and protect one key's material."""
    # resolved even without a passphrase so the rng draw sequence does not depend on it
    s2k = params.s2k if params.s2k is not None else S2kParams.new_default(rng)
    public_params, secret = params.key_type.generate(rng, params.passphrase, s2k, params.version)
    if isinstance(secret, PlainSecretParams):
        stack.callback(secret.wipe)
    return public_params, secret


def _primary_packet(params: "SecretKeyParams", rng: cu.RandomSource, stack: ExitStack) -> SecretKeyPacket:
    public_params, secret = _generate_material(params, rng, stack)
    public_key = PublicKey(
        packet_version=params.packet_version,
        version=params.version,
        algorithm=params.key_type.to_alg(),
        created_at=params.created_at,
        expiration=params.expiration,
        public_params=public_params,
    )
    return SecretKeyPacket(public_key, secret)


def _subkey(params: "SubkeyParams", rng: cu.RandomSource, stack: ExitStack) -> Tuple[PublicSubkey, SecretSubkey]:
    public_params, secret = _generate_material(params, rng, stack)
    public_key = PublicSubkey(
        packet_version=params.packet_version,
        version=params.version,
        algorithm=params.key_type.to_alg(),
        created_at=params.created_at,
        expiration=params.expiration,
        public_params=public_params,
    )
    flags = compile_key_flags(params.can_certify, params.can_sign, params.can_encrypt, params.can_authenticate)
    subkey = SecretSubkey(
        key=SecretSubkeyPacket(public_key, secret),
        keyflags=flags,
        user_ids=params.user_ids,
        user_attributes=params.user_attributes,
    )
    return public_key, subkey


def _details(params: "SecretKeyParams") -> KeyDetails:
    uid_version = params.packet_version
    prefs = params.preferences
    return KeyDetails(
        primary_user_id=UserId.from_str(params.primary_user_id, uid_version),
        user_ids=tuple(UserId.from_str(uid, uid_version) for uid in params.user_ids),
        user_attributes=params.user_attributes,
        # primary keys never carry the authentication flag
        keyflags=compile_key_flags(params.can_certify, params.can_sign, params.can_encrypt),
        preferred_symmetric_algorithms=prefs.symmetric,
        preferred_hash_algorithms=prefs.hash,
        preferred_compression_algorithms=prefs.compression,
        revocation_key=params.revocation_key,
    )


def _wipe_passphrases(params: "SecretKeyParams"):
    for p in (params,) + params.subkeys:
        if p.passphrase is not None:
            p.passphrase.wipe()


def generate_key(params: "SecretKeyParams", rng: Optional[cu.RandomSource] = None) -> SecretKey:
    """
    Generate the primary key and then every subkey in declared order, all from `rng`.
    Either the complete SecretKey is returned or nothing is: on failure every plain
    secret generated so far is wiped before the exception propagates.
    """
    rng = cu.OsRng() if rng is None else rng

    with rng.exclusive():
        params._consume()
        with ExitStack() as stack:
            try:
                primary = _primary_packet(params, rng, stack)
                logger.info(f"generated primary key algorithm={primary.algorithm.name} "
                            f"protected={primary.is_encrypted}")

                public_subkeys, secret_subkeys = [], []
                for index, sub_params in enumerate(params.subkeys):
                    public_key, subkey = _subkey(sub_params, rng, stack)
                    public_subkeys.append(public_key)
                    secret_subkeys.append(subkey)
                    logger.info(f"generated subkey index={index} algorithm={public_key.algorithm.name} "
                                f"protected={subkey.key.is_encrypted}")

                key = SecretKey(
                    primary_key=primary,
                    details=_details(params),
                    public_subkeys=public_subkeys,
                    secret_subkeys=secret_subkeys,
                )
            except Exception as e:
                logger.warning(f"key generation aborted: {type(e).__name__}: {e}")
                raise
            finally:
                _wipe_passphrases(params)
            # success: keep the generated material
            stack.pop_all()
            return key
