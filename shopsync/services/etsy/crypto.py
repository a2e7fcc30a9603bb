"""AES-256-GCM encryption for OAuth credentials at rest."""

import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

logger = logging.getLogger(__name__)

_MIN_SECRET_LENGTH = 32
_KEY_LENGTH = 32
_IV_LENGTH = 16
_TAG_LENGTH = 16
_KDF_SALT = b"shopsync-credential-salt"


class CredentialIntegrityError(Exception):
    """Raised when a ciphertext is malformed, tampered with, or keyed differently."""


def derive_key(secret: str) -> bytes:
    """Derive the 32-byte AES key from the configured secret.

    Raises:
        ValueError: If the secret is missing or shorter than 32 characters.
    """
    if not secret or len(secret) < _MIN_SECRET_LENGTH:
        raise ValueError(
            f"TOKEN_ENCRYPTION_KEY must be at least {_MIN_SECRET_LENGTH} characters"
        )
    kdf = Scrypt(salt=_KDF_SALT, length=_KEY_LENGTH, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


class CredentialVault:
    """Symmetric, authenticated encryption of token strings."""

    def __init__(self, secret: str):
        # Fails at construction so a missing secret stops startup, not the first sync
        self._aesgcm = AESGCM(derive_key(secret))

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(_IV_LENGTH)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-_TAG_LENGTH], sealed[-_TAG_LENGTH:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, encrypted: str) -> str:
        """Decrypt a value produced by :meth:`encrypt`.

        Raises:
            CredentialIntegrityError: If the value is malformed or fails
                authentication.
        """
        parts = encrypted.split(":")
        if len(parts) != 3:
            raise CredentialIntegrityError("Invalid encrypted text format")

        try:
            iv, tag, ciphertext = (bytes.fromhex(part) for part in parts)
        except ValueError as e:
            raise CredentialIntegrityError(f"Malformed ciphertext: {e}") from e

        if len(iv) != _IV_LENGTH or len(tag) != _TAG_LENGTH:
            raise CredentialIntegrityError("Invalid IV or tag length")

        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            logger.warning("Credential ciphertext failed authentication")
            raise CredentialIntegrityError("Ciphertext failed authentication") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CredentialIntegrityError(f"Decrypted value is not text: {e}") from e
