import datetime
import logging

import pytest

from key_constants import AttributeType, DsaKeySize, ECCCurve, KeyFlags, KeyVersion, PublicKeyAlgorithm
from key_errors import GenerationFailure, InvalidPassphrase, InvalidUsage, ParamsConsumed, RngBusy
from key_factory import compile_key_flags, generate_key
from key_object import PublicSubkey, SecretSubkeyPacket, UserAttribute, UserId
from key_params import SecretKeyParamsBuilder, SubkeyParamsBuilder
from key_type import Dsa, ECDH, ECDSA, EdDSALegacy, Rsa
from secret_params import EncryptedSecretParams, PlainSecretParams
import crypto_utils as cu
import keygen_providers as kp

ENCRYPT = KeyFlags.EncryptCommunications | KeyFlags.EncryptStorage


def _eddsa_with_ecdh(created_at, passphrase=None, s2k=None):
    sub = SubkeyParamsBuilder().key_type(ECDH(ECCCurve.Curve25519)).can_encrypt(True) \
        .passphrase(passphrase).s2k(s2k).created_at(created_at).build()
    return (
        SecretKeyParamsBuilder()
        .key_type(EdDSALegacy())
        .can_certify(True)
        .can_sign(True)
        .primary_user_id("Me <me@mail.com>")
        .passphrase(passphrase)
        .s2k(s2k)
        .created_at(created_at)
        .subkey(sub)
        .build()
    )


def test_compile_key_flags():
    assert compile_key_flags(False, False, False) == KeyFlags(0)
    assert compile_key_flags(True, True, False) == KeyFlags.Certify | KeyFlags.Sign
    assert compile_key_flags(False, False, True) == ENCRYPT
    assert compile_key_flags(False, False, False, True) == KeyFlags.Authentication


def test_eddsa_primary_with_ecdh_subkey(rng, created_at):
    key = generate_key(_eddsa_with_ecdh(created_at), rng)

    primary = key.primary_key.public_key
    assert primary.algorithm is PublicKeyAlgorithm.EdDSALegacy
    assert primary.created_at == created_at
    assert primary.version is KeyVersion.V4
    assert not primary.is_subkey
    assert key.keyflags == KeyFlags.Certify | KeyFlags.Sign
    assert key.details.primary_user_id == UserId("Me <me@mail.com>")
    assert isinstance(key.primary_key.secret_params, PlainSecretParams)

    (subkey,) = key.secret_subkeys
    assert isinstance(subkey.key, SecretSubkeyPacket)
    assert subkey.key.algorithm is PublicKeyAlgorithm.ECDH
    assert subkey.keyflags == ENCRYPT
    assert key.public_subkeys == [subkey.key.public_key]
    assert isinstance(key.public_subkeys[0], PublicSubkey)
    assert key.public_subkeys[0].is_subkey


def test_encrypting_eddsa_primary_fails_before_generation(monkeypatch):
    calls = []
    monkeypatch.setattr(kp, "generate_eddsa_legacy", lambda rng: calls.append(rng))
    with pytest.raises(InvalidUsage):
        SecretKeyParamsBuilder().key_type(EdDSALegacy()).can_sign(True).can_certify(True) \
            .can_encrypt(True).primary_user_id("Me <me@mail.com>").passphrase(None).build()
    assert calls == []


def test_subkeys_keep_declared_order_and_flags(rng, created_at):
    declared = [
        (ECDH(ECCCurve.Curve25519), dict(can_encrypt=True), ENCRYPT),
        (ECDSA(ECCCurve.P256), dict(can_sign=True, can_authenticate=True), KeyFlags.Sign | KeyFlags.Authentication),
        (EdDSALegacy(), dict(can_authenticate=True), KeyFlags.Authentication),
        (ECDH(ECCCurve.P384), dict(can_encrypt=True), ENCRYPT),
        (ECDSA(ECCCurve.Secp256k1), dict(can_certify=True), KeyFlags.Certify),
    ]
    builder = SecretKeyParamsBuilder().key_type(EdDSALegacy()).can_certify(True) \
        .primary_user_id("Me <me@mail.com>").passphrase(None).created_at(created_at)
    for key_type, caps, _ in declared:
        sb = SubkeyParamsBuilder().key_type(key_type).passphrase(None).created_at(created_at)
        for name, value in caps.items():
            getattr(sb, name)(value)
        builder.subkey(sb.build())

    key = generate_key(builder.build(), rng)

    assert key.keyflags == KeyFlags.Certify
    assert [s.key.algorithm for s in key.secret_subkeys] == [kt.to_alg() for kt, _, _ in declared]
    assert [s.keyflags for s in key.secret_subkeys] == [flags for _, _, flags in declared]
    assert key.secret_subkeys[3].key.public_key.public_params.curve is ECCCurve.P384


def test_primary_never_gets_authentication_flag(rng, created_at):
    key = generate_key(_eddsa_with_ecdh(created_at), rng)
    assert not key.keyflags & KeyFlags.Authentication


def test_identities_and_attributes_in_order(rng, created_at):
    photo = UserAttribute(AttributeType.Image, b"\xff\xd8jpeg")
    sub = SubkeyParamsBuilder().key_type(ECDH(ECCCurve.Curve25519)).can_encrypt(True).passphrase(None) \
        .user_id(UserId("Sub <sub@mail.com>")).build()
    params = (
        SecretKeyParamsBuilder()
        .key_type(EdDSALegacy())
        .can_sign(True)
        .primary_user_id("Me <me@mail.com>")
        .user_ids(["Two <two@mail.com>", "Three <three@mail.com>"])
        .user_attribute(photo)
        .passphrase(None)
        .created_at(created_at)
        .expiration(datetime.timedelta(days=30))
        .subkey(sub)
        .build()
    )
    key = generate_key(params, rng)

    assert [u.id for u in key.details.all_user_ids] == \
        ["Me <me@mail.com>", "Two <two@mail.com>", "Three <three@mail.com>"]
    assert key.details.user_attributes == (photo,)
    assert key.secret_subkeys[0].user_ids == (UserId("Sub <sub@mail.com>"),)
    assert key.primary_key.public_key.expires_at == created_at + datetime.timedelta(days=30)

    summary = key.to_summary()
    assert summary["algorithm"] == "EdDSALegacy"
    assert summary["flags"] == ["Sign"]
    assert summary["user_ids"][0] == "Me <me@mail.com>"
    assert summary["subkeys"][0]["flags"] == ["EncryptCommunications", "EncryptStorage"]
    assert summary["subkeys"][0]["protected"] is False


def test_same_seed_same_key(created_at, cheap_s2k):
    a = generate_key(_eddsa_with_ecdh(created_at, "pw", cheap_s2k), cu.SeededRng(2024))
    b = generate_key(_eddsa_with_ecdh(created_at, "pw", cheap_s2k), cu.SeededRng(2024))

    assert a.primary_key.public_key == b.primary_key.public_key
    assert a.public_subkeys == b.public_subkeys
    assert a.primary_key.secret_params == b.primary_key.secret_params
    assert a.primary_key.unlock("pw") == b.primary_key.unlock("pw")
    assert a.secret_subkeys[0].key.unlock("pw") == b.secret_subkeys[0].key.unlock("pw")


def test_different_seed_different_key(created_at):
    a = generate_key(_eddsa_with_ecdh(created_at), cu.SeededRng(1))
    b = generate_key(_eddsa_with_ecdh(created_at), cu.SeededRng(2))
    assert a.primary_key.public_key != b.primary_key.public_key


def test_passphrase_does_not_change_generated_material(monkeypatch, created_at):
    monkeypatch.setenv("KEYGEN_S2K_COUNT", "0")
    protected = generate_key(_eddsa_with_ecdh(created_at, "hello"), cu.SeededRng(77))
    plain = generate_key(_eddsa_with_ecdh(created_at), cu.SeededRng(77))

    assert isinstance(protected.primary_key.secret_params, EncryptedSecretParams)
    assert isinstance(plain.primary_key.secret_params, PlainSecretParams)
    assert protected.primary_key.public_key == plain.primary_key.public_key
    assert protected.primary_key.unlock("hello") == plain.primary_key.secret_params
    assert protected.secret_subkeys[0].key.unlock("hello") == plain.secret_subkeys[0].key.secret_params
    with pytest.raises(InvalidPassphrase):
        protected.primary_key.unlock("")


def test_plain_material_is_the_generated_material(monkeypatch, rng, created_at):
    generated = []
    original = kp.generate_eddsa_legacy

    def spy(r):
        public, secret = original(r)
        generated.append(secret.copy())
        return public, secret

    monkeypatch.setattr(kp, "generate_eddsa_legacy", spy)
    key = generate_key(_eddsa_with_ecdh(created_at), rng)
    assert key.primary_key.secret_params == generated[0]


def test_params_are_single_use(rng, created_at):
    params = _eddsa_with_ecdh(created_at)
    params.generate(rng)
    assert params.consumed
    with pytest.raises(ParamsConsumed):
        params.generate(rng)


def test_consumed_subkey_params_cannot_be_reused(rng, created_at):
    sub = SubkeyParamsBuilder().key_type(ECDH(ECCCurve.Curve25519)).can_encrypt(True).passphrase(None).build()
    builder = SecretKeyParamsBuilder().key_type(EdDSALegacy()).primary_user_id("a").passphrase(None).subkey(sub)
    first, second = builder.build(), builder.build()
    generate_key(first, rng)
    with pytest.raises(ParamsConsumed):
        generate_key(second, rng)
    assert not second.consumed


def test_borrowed_rng_is_rejected(rng, created_at):
    params = _eddsa_with_ecdh(created_at)
    with rng.exclusive():
        with pytest.raises(RngBusy):
            generate_key(params, rng)
    assert not params.consumed
    assert generate_key(params, rng).secret_subkeys


def test_failure_wipes_everything_generated(monkeypatch, rng, created_at):
    generated = []
    original = kp.generate_eddsa_legacy

    def spy(r):
        public, secret = original(r)
        generated.append(secret)
        return public, secret

    def broken(r, curve):
        raise GenerationFailure("provider exploded")

    monkeypatch.setattr(kp, "generate_eddsa_legacy", spy)
    monkeypatch.setattr(kp, "generate_ecdh", broken)

    sub = SubkeyParamsBuilder().key_type(ECDH(ECCCurve.Curve25519)).can_encrypt(True) \
        .passphrase("subpass").build()
    params = SecretKeyParamsBuilder().key_type(EdDSALegacy()).can_sign(True) \
        .primary_user_id("Me <me@mail.com>").passphrase(None).created_at(created_at).subkey(sub).build()

    with pytest.raises(GenerationFailure, match="provider exploded"):
        generate_key(params, rng)

    assert generated and generated[0].wiped
    assert params.subkeys[0].passphrase.wiped
    assert not rng.in_use


def test_passphrases_wiped_after_success(rng, created_at, cheap_s2k):
    params = _eddsa_with_ecdh(created_at, "pw", cheap_s2k)
    key = generate_key(params, rng)
    assert params.passphrase.wiped
    assert params.subkeys[0].passphrase.wiped
    assert key.primary_key.is_encrypted


def test_wipe_clears_plain_material(rng, created_at):
    key = generate_key(_eddsa_with_ecdh(created_at), rng)
    key.wipe()
    assert key.primary_key.secret_params.wiped
    assert key.secret_subkeys[0].key.secret_params.wiped


def test_default_rng_is_used_when_none_given(created_at):
    key = generate_key(_eddsa_with_ecdh(created_at))
    assert key.primary_key.public_key.algorithm is PublicKeyAlgorithm.EdDSALegacy


def test_generation_is_logged_without_secrets(caplog, rng, created_at, cheap_s2k):
    caplog.set_level(logging.INFO, logger="keygen.factory")
    generate_key(_eddsa_with_ecdh(created_at, "sup3rs3cret", cheap_s2k), rng)
    assert "generated primary key algorithm=EdDSALegacy protected=True" in caplog.text
    assert "generated subkey index=0 algorithm=ECDH" in caplog.text
    assert "sup3rs3cret" not in caplog.text


def test_abort_is_logged(monkeypatch, caplog, rng, created_at):
    caplog.set_level(logging.INFO, logger="keygen.factory")

    def broken(r, curve):
        raise GenerationFailure("no entropy today")

    monkeypatch.setattr(kp, "generate_ecdh", broken)
    with pytest.raises(GenerationFailure):
        generate_key(_eddsa_with_ecdh(created_at), rng)
    assert any(r.levelno == logging.WARNING and "aborted" in r.getMessage() for r in caplog.records)


def _rsa_params(passphrase=None, s2k=None):
    sub = SubkeyParamsBuilder().key_type(Rsa(2048)).can_encrypt(True).passphrase(None).build()
    return (
        SecretKeyParamsBuilder()
        .key_type(Rsa(2048))
        .can_certify(True)
        .can_sign(True)
        .primary_user_id("Me <me@mail.com>")
        .passphrase(passphrase)
        .s2k(s2k)
        .subkey(sub)
        .build()
    )


@pytest.mark.slow
def test_rsa_primary_with_encryption_subkey(rng):
    key = generate_key(_rsa_params(), rng)

    assert key.keyflags == KeyFlags.Certify | KeyFlags.Sign
    assert len(key.secret_subkeys) == 1
    flags = key.secret_subkeys[0].keyflags
    assert flags & KeyFlags.EncryptStorage and flags & KeyFlags.EncryptCommunications
    assert not flags & (KeyFlags.Sign | KeyFlags.Certify)
    assert not key.primary_key.is_encrypted


@pytest.mark.slow
def test_rsa_primary_with_passphrase(rng):
    key = generate_key(_rsa_params("hello"), rng)

    assert isinstance(key.primary_key.secret_params, EncryptedSecretParams)
    d, p, q, u = key.primary_key.unlock("hello").mpis()
    assert key.primary_key.public_key.public_params.n == p * q
    with pytest.raises(InvalidPassphrase):
        key.primary_key.unlock("")
    assert not key.secret_subkeys[0].key.is_encrypted


@pytest.mark.slow
def test_dsa_primary(rng, created_at, cheap_s2k):
    params = SecretKeyParamsBuilder().key_type(Dsa(DsaKeySize.B1024)).can_sign(True).can_certify(True) \
        .primary_user_id("Dsa <dsa@mail.com>").passphrase("pw").s2k(cheap_s2k).created_at(created_at).build()
    key = generate_key(params, rng)
    public = key.primary_key.public_key.public_params
    (x,) = key.primary_key.unlock("pw").mpis()
    assert public.y == pow(public.g, x, public.p)
