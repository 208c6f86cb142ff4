"""
key_errors.py
Exception hierarchy for parameter validation, key generation and secret protection.
"""


class KeyGenError(Exception):
    """Base class for every error raised by the key generation engine."""
    pass


class ValidationError(KeyGenError, ValueError):
    """Parameters rejected before any key material is generated."""
    pass


class InvalidKeySize(ValidationError):
    pass


class InvalidUsage(ValidationError):
    pass


class UnsupportedCurve(ValidationError):
    pass


class MissingField(ValidationError):
    pass


class GenerationFailure(KeyGenError):
    """Raised by a key-generation provider."""
    pass


class ProtectionFailure(KeyGenError):
    """Passphrase derivation or encryption of secret material failed."""
    pass


class InvalidPassphrase(KeyGenError):
    """Protected secret material could not be unlocked with the given passphrase."""
    pass


class ParamsConsumed(KeyGenError, RuntimeError):
    pass


class RngBusy(KeyGenError, RuntimeError):
    pass
