import pytest

from key_constants import KeyVersion, PublicKeyAlgorithm, S2KUsage, StringToKeyType, SymmetricKeyAlgorithm
from key_errors import InvalidPassphrase, ProtectionFailure
from secret_params import EncryptedSecretParams, PlainSecretParams, S2kParams, protect
import crypto_utils as cu


def _plain():
    return PlainSecretParams.from_mpis(PublicKeyAlgorithm.RSA, [0xDEADBEEF, 65537, b"\x00\x01\x02"])


def test_from_mpis_encodes_ints_and_bytes():
    plain = _plain()
    assert plain.mpis() == [0xDEADBEEF, 65537, 0x0102]
    assert plain.checksum() == sum(plain.data) % 65536
    assert not plain.is_encrypted


def test_no_passphrase_returns_material_unchanged(cheap_s2k):
    plain = _plain()
    assert protect(plain, None, cheap_s2k) is plain
    assert not plain.wiped


def test_protect_and_unlock(cheap_s2k):
    plain = _plain()
    expected = plain.copy()

    protected = protect(plain, cu.SecretBuffer.from_str("hello"), cheap_s2k, KeyVersion.V4)
    assert isinstance(protected, EncryptedSecretParams)
    assert protected.is_encrypted
    assert protected.version is KeyVersion.V4
    assert protected.s2k.usage is S2KUsage.CFB
    assert plain.wiped

    assert protected.unlock("hello") == expected
    with pytest.raises(InvalidPassphrase):
        protected.unlock("")
    with pytest.raises(InvalidPassphrase):
        protected.unlock("hell0")


def test_empty_passphrase_still_protects(cheap_s2k):
    protected = protect(_plain(), cu.SecretBuffer.from_str(""), cheap_s2k)
    assert protected.is_encrypted
    assert protected.unlock("").mpis() == [0xDEADBEEF, 65537, 0x0102]
    with pytest.raises(InvalidPassphrase):
        protected.unlock("x")


def test_default_s2k_drawn_from_rng(monkeypatch):
    monkeypatch.setenv("KEYGEN_S2K_COUNT", "0")
    s2k = S2kParams.new_default(cu.SeededRng(5))
    again = S2kParams.new_default(cu.SeededRng(5))
    assert s2k == again
    assert s2k.s2k_type is StringToKeyType.IteratedSalted
    assert s2k.sym_alg is SymmetricKeyAlgorithm.AES256
    assert len(s2k.iv) == 16 and len(s2k.salt) == 8
    assert s2k.count == 1024

    # IV first, then salt
    stream = cu.SeededRng(5).read(24)
    assert s2k.iv == stream[:16] and s2k.salt == stream[16:]


def test_protect_synthesizes_s2k_from_rng(monkeypatch):
    monkeypatch.setenv("KEYGEN_S2K_COUNT", "0")
    protected = protect(_plain(), cu.SecretBuffer.from_str("pw"), rng=cu.SeededRng(3))
    assert protected.s2k.s2k_type is StringToKeyType.IteratedSalted
    assert protected.unlock("pw").mpis()[1] == 65537


def test_protect_needs_s2k_or_rng():
    with pytest.raises(ProtectionFailure):
        protect(_plain(), cu.SecretBuffer.from_str("pw"))


def test_plaintext_cipher_is_rejected(cheap_s2k):
    s2k = S2kParams(
        sym_alg=SymmetricKeyAlgorithm.Plaintext,
        s2k_type=cheap_s2k.s2k_type,
        hash_alg=cheap_s2k.hash_alg,
        salt=cheap_s2k.salt,
        coded_count=None,
        iv=cheap_s2k.iv,
    )
    with pytest.raises(ProtectionFailure):
        _plain().encrypt("pw", s2k)


def test_unsupported_cipher_is_a_protection_failure(cheap_s2k):
    s2k = S2kParams(
        sym_alg=SymmetricKeyAlgorithm.IDEA,
        s2k_type=cheap_s2k.s2k_type,
        hash_alg=cheap_s2k.hash_alg,
        salt=cheap_s2k.salt,
        coded_count=None,
        iv=bytes(8),
    )
    with pytest.raises(ProtectionFailure):
        _plain().encrypt("pw", s2k)


def test_plain_repr_hides_material():
    assert "3735928559" not in repr(_plain())
