# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Custom exception hierarchy for vigil."""


class VigilError(Exception):
    """Base exception for all vigil errors."""


class ConfigurationError(VigilError):
    """Invalid or missing configuration."""


class StorageError(VigilError):
    """Database or storage operation failed."""


class CipherError(VigilError):
    """Encryption, hashing, or key derivation failed."""


class DecryptionError(CipherError):
    """Ciphertext could not be authenticated or decoded."""


class IntegrityError(VigilError):
    """A backup artifact does not match its catalogued checksum."""


class OperationRefusedError(VigilError):
    """A destructive operation was invoked without the required confirmation."""


class BackupError(VigilError):
    """A backup pipeline stage failed."""


class NotFoundError(VigilError):
    """The requested record does not exist."""


class PolicyError(VigilError):
    """A retention policy is malformed or could not be applied."""


class InvalidTransitionError(VigilError):
    """A lifecycle state change is not permitted from the current state."""
