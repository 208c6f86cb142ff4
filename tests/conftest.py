import datetime

import pytest

from key_config import reset_config
from key_constants import HashAlgorithm, StringToKeyType, SymmetricKeyAlgorithm
from secret_params import S2kParams
import crypto_utils as cu

CREATED_AT = datetime.datetime(2024, 5, 1, 12, 30, 45, tzinfo=datetime.timezone.utc)


@pytest.fixture(autouse=True)
def fresh_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def rng():
    return cu.SeededRng(1234)


@pytest.fixture
def cheap_s2k():
    """Salted (non-iterated) S2K with fixed salt and IV; derivation cost is irrelevant in most tests."""
    return S2kParams(
        sym_alg=SymmetricKeyAlgorithm.AES128,
        s2k_type=StringToKeyType.Salted,
        hash_alg=HashAlgorithm.SHA256,
        salt=bytes(range(8)),
        coded_count=None,
        iv=bytes(16),
    )


@pytest.fixture
def created_at():
    return CREATED_AT
