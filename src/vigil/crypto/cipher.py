# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Symmetric encryption, salted one-way hashing, and random tokens.

Ciphertext envelope (scheme version 1)::

    version (1 byte) | kdf iterations (uint32 BE) | salt (16) | nonce (12) | AES-256-GCM ciphertext+tag

The key is derived from the operator secret with PBKDF2-HMAC-SHA256 using
the salt and iteration count recorded in the envelope, so artifacts
written under older parameters remain decryptable.  String tokens are the
envelope in URL-safe base64 behind a ``vg1.`` prefix.
"""

from __future__ import annotations

import base64
import binascii
import re
import secrets
import struct

from cryptography.exceptions import InvalidKey, InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from vigil.core.config import Settings
from vigil.core.exceptions import ConfigurationError, DecryptionError

SCHEME_VERSION = 1
TOKEN_PREFIX = f"vg{SCHEME_VERSION}."
HASH_SCHEME = "pbkdf2-sha512"

_HEADER = struct.Struct(">BI")
_SALT_BYTES = 16
_NONCE_BYTES = 12
_KEY_BYTES = 32
_HASH_BYTES = 64
_ENVELOPE_PREFIX = _HEADER.size + _SALT_BYTES + _NONCE_BYTES
_KEY_CACHE_SIZE = 32
_KEY_ID_SALT = b"vigil-key-id"


class CipherService:
    """Stateless-in-effect crypto primitives keyed by one operator secret.

    Key derivation is expensive; each instance derives its
    encryption key once (with a per-instance random salt) and keeps a
    small, bounded memo of keys derived for foreign salts seen during
    decryption.
    """

    def __init__(
        self,
        secret: str,
        *,
        kdf_iterations: int = 390_000,
        hash_iterations: int = 100_000,
    ) -> None:
        if not secret:
            raise ConfigurationError(
                "Encryption secret is not configured. Set VIGIL_ENCRYPTION_SECRET."
            )
        if kdf_iterations <= 0 or hash_iterations <= 0:
            raise ConfigurationError("KDF iteration counts must be positive")
        self._secret = secret.encode("utf-8")
        self._kdf_iterations = kdf_iterations
        self._hash_iterations = hash_iterations
        self._salt = secrets.token_bytes(_SALT_BYTES)
        self._keys: dict[tuple[bytes, int], bytes] = {}
        self._key_id: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> CipherService:
        return cls(
            settings.encryption_secret,
            kdf_iterations=settings.kdf_iterations,
            hash_iterations=settings.hash_iterations,
        )

    @property
    def key_id(self) -> str:
        """Non-secret fingerprint of the operator secret, recorded on backups.

        Derived with PBKDF2 at the encryption work factor under a fixed
        domain salt.
        """
        if self._key_id is None:
            digest = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=8,
                salt=_KEY_ID_SALT,
                iterations=self._kdf_iterations,
            ).derive(self._secret)
            self._key_id = f"v{SCHEME_VERSION}-{digest.hex()}"
        return self._key_id

    # ------------------------------------------------------------------
    # Symmetric encryption
    # ------------------------------------------------------------------

    def encrypt_bytes(self, data: bytes) -> bytes:
        key = self._derive(self._salt, self._kdf_iterations)
        nonce = secrets.token_bytes(_NONCE_BYTES)
        header = _HEADER.pack(SCHEME_VERSION, self._kdf_iterations)
        ciphertext = AESGCM(key).encrypt(nonce, data, header)
        return header + self._salt + nonce + ciphertext

    def decrypt_bytes(self, envelope: bytes) -> bytes:
        if len(envelope) < _ENVELOPE_PREFIX:
            raise DecryptionError("Ciphertext is truncated")
        version, iterations = _HEADER.unpack_from(envelope)
        if version != SCHEME_VERSION:
            raise DecryptionError(f"Unsupported cipher scheme version: {version}")
        if iterations <= 0:
            raise DecryptionError("Corrupt ciphertext header")
        offset = _HEADER.size
        salt = envelope[offset:offset + _SALT_BYTES]
        offset += _SALT_BYTES
        nonce = envelope[offset:offset + _NONCE_BYTES]
        offset += _NONCE_BYTES
        key = self._derive(salt, iterations)
        try:
            return AESGCM(key).decrypt(nonce, envelope[offset:], envelope[:_HEADER.size])
        except InvalidTag as exc:
            raise DecryptionError("Ciphertext failed authentication") from exc

    def encrypt(self, plaintext: str) -> str:
        envelope = self.encrypt_bytes(plaintext.encode("utf-8"))
        return TOKEN_PREFIX + base64.urlsafe_b64encode(envelope).decode("ascii")

    def decrypt(self, token: str) -> str:
        if not token.startswith(TOKEN_PREFIX):
            raise DecryptionError("Not a vigil ciphertext token")
        try:
            envelope = base64.urlsafe_b64decode(token[len(TOKEN_PREFIX):].encode("ascii"))
        except (binascii.Error, ValueError) as exc:
            raise DecryptionError("Ciphertext token is not valid base64") from exc
        try:
            return self.decrypt_bytes(envelope).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("Decrypted payload is not UTF-8 text") from exc

    # ------------------------------------------------------------------
    # One-way hashing
    # ------------------------------------------------------------------

    def hash(self, secret: str, salt: str | None = None) -> str:
        """Return ``pbkdf2-sha512$<iterations>$<salt hex>$<digest hex>``."""
        salt = salt or secrets.token_hex(16)
        digest = self._pbkdf2_sha512(self._hash_iterations, salt).derive(
            secret.encode("utf-8")
        )
        return f"{HASH_SCHEME}${self._hash_iterations}${salt}${digest.hex()}"

    def verify_hash(self, secret: str, salted_digest: str) -> bool:
        try:
            scheme, iterations_str, salt, digest_hex = salted_digest.split("$")
            iterations = int(iterations_str)
            expected = bytes.fromhex(digest_hex)
        except ValueError:
            return False
        if scheme != HASH_SCHEME or iterations <= 0 or not salt or not expected:
            return False
        try:
            self._pbkdf2_sha512(iterations, salt, len(expected)).verify(
                secret.encode("utf-8"), expected
            )
        except InvalidKey:
            return False
        return True

    @staticmethod
    def random_token(byte_length: int = 32) -> str:
        if byte_length <= 0:
            raise ValueError("byte_length must be positive")
        return secrets.token_hex(byte_length)

    # ------------------------------------------------------------------
    # Field helpers for Brazilian personal identifiers
    # ------------------------------------------------------------------

    def encrypt_cpf(self, cpf: str) -> str:
        return self.encrypt(re.sub(r"\D", "", cpf))

    def decrypt_cpf(self, token: str) -> str:
        return re.sub(r"^(\d{3})(\d{3})(\d{3})(\d{2})$", r"\1.\2.\3-\4", self.decrypt(token))

    def encrypt_phone(self, phone: str) -> str:
        return self.encrypt(re.sub(r"\D", "", phone))

    def decrypt_phone(self, token: str) -> str:
        digits = self.decrypt(token)
        if len(digits) == 11:
            return re.sub(r"^(\d{2})(\d{5})(\d{4})$", r"(\1) \2-\3", digits)
        if len(digits) == 10:
            return re.sub(r"^(\d{2})(\d{4})(\d{4})$", r"(\1) \2-\3", digits)
        return digits

    # ------------------------------------------------------------------
    # Key derivation
    # ------------------------------------------------------------------

    def _derive(self, salt: bytes, iterations: int) -> bytes:
        cached = self._keys.get((salt, iterations))
        if cached is not None:
            return cached
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=_KEY_BYTES,
            salt=salt,
            iterations=iterations,
        )
        key = kdf.derive(self._secret)
        if len(self._keys) >= _KEY_CACHE_SIZE:
            # Oldest first; dicts keep insertion order.
            self._keys.pop(next(iter(self._keys)))
        self._keys[(salt, iterations)] = key
        return key

    @staticmethod
    def _pbkdf2_sha512(iterations: int, salt: str, length: int = _HASH_BYTES) -> PBKDF2HMAC:
        return PBKDF2HMAC(
            algorithm=hashes.SHA512(),
            length=length,
            salt=salt.encode("utf-8"),
            iterations=iterations,
        )
