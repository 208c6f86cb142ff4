"""
key_config.py
Environment-driven defaults for key generation.

Variables:
    KEYGEN_S2K_CIPHER  symmetric cipher protecting secret keys (default AES256)
    KEYGEN_S2K_HASH    hash used by the iterated+salted S2K (default SHA256)
    KEYGEN_S2K_COUNT   coded S2K iteration count, 0..255 (default 224)
    KEYGEN_LOG_LEVEL   logging level name (default INFO)
"""

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from key_constants import SymmetricKeyAlgorithm, HashAlgorithm

S2K_CIPHER_ENV = "KEYGEN_S2K_CIPHER"
S2K_HASH_ENV = "KEYGEN_S2K_HASH"
S2K_COUNT_ENV = "KEYGEN_S2K_COUNT"
LOG_LEVEL_ENV = "KEYGEN_LOG_LEVEL"

DEFAULT_S2K_CIPHER = SymmetricKeyAlgorithm.AES256
DEFAULT_S2K_HASH = HashAlgorithm.SHA256
DEFAULT_S2K_COUNT = 224  # 16 MiB of hashed input; tune per environment


@dataclass(frozen=True)
class KeygenConfig:
    s2k_cipher: SymmetricKeyAlgorithm = DEFAULT_S2K_CIPHER
    s2k_hash: HashAlgorithm = DEFAULT_S2K_HASH
    s2k_count: int = DEFAULT_S2K_COUNT
    log_level: int = logging.INFO


def load_config(environ: Optional[Mapping[str, str]] = None) -> KeygenConfig:
    """Read the configuration from the environment. Raises ValueError on bad values."""
    env = os.environ if environ is None else environ

    cipher_name = env.get(S2K_CIPHER_ENV, DEFAULT_S2K_CIPHER.name)
    try:
        cipher = SymmetricKeyAlgorithm[cipher_name]
        cipher.cipher(bytes(cipher.key_size))
    except (KeyError, ValueError, NotImplementedError) as e:
        raise ValueError(f"{S2K_CIPHER_ENV}: unsupported cipher {cipher_name!r}") from e

    hash_name = env.get(S2K_HASH_ENV, DEFAULT_S2K_HASH.name)
    try:
        hash_alg = HashAlgorithm[hash_name]
        hash_alg.new()
    except (KeyError, NotImplementedError) as e:
        raise ValueError(f"{S2K_HASH_ENV}: unsupported hash {hash_name!r}") from e

    raw_count = env.get(S2K_COUNT_ENV, str(DEFAULT_S2K_COUNT))
    try:
        count = int(raw_count)
    except ValueError as e:
        raise ValueError(f"{S2K_COUNT_ENV}: not an integer: {raw_count!r}") from e
    if not 0 <= count <= 255:
        raise ValueError(f"{S2K_COUNT_ENV}: coded count must fit in one octet, got {count}")

    level_name = env.get(LOG_LEVEL_ENV, "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"{LOG_LEVEL_ENV}: unknown level {level_name!r}")

    return KeygenConfig(s2k_cipher=cipher, s2k_hash=hash_alg, s2k_count=count, log_level=level)


_config: Optional[KeygenConfig] = None


def get_config() -> KeygenConfig:
    """Module-level cached configuration, loaded on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    global _config
    _config = None
