"""
Security utilities:
  - AES-256-GCM encryption for OAuth tokens at rest
  - Random verify tokens for webhook subscriptions
"""
import logging
import os
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from pydantic import ValidationError

from socialhub.core.errors import ConfigurationError, DecryptionError
from socialhub.models.schemas import EncryptedToken, TokenData

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32
NONCE_SIZE = 12  # 96-bit GCM nonce
TAG_SIZE = 16

# Static salt: the secret is operator-supplied key material, not a user password.
_KDF_SALT = b"socialhub-token-encryption"


def derive_key(secret: str) -> bytes:
    """Stretch the configured secret into a 32-byte AES key with scrypt."""
    kdf = Scrypt(salt=_KDF_SALT, length=32, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


class TokenCipher:
    """Authenticated encryption of credential records."""

    def __init__(self, secret: str):
        if not secret or len(secret) < MIN_SECRET_LENGTH:
            raise ConfigurationError(
                f"TOKEN_ENCRYPTION_KEY must be set to at least {MIN_SECRET_LENGTH} characters"
            )
        self._aesgcm = AESGCM(derive_key(secret))

    def encrypt(self, data: TokenData) -> EncryptedToken:
        """Encrypt a credential record under a fresh random nonce."""
        nonce = os.urandom(NONCE_SIZE)
        plaintext = data.model_dump_json().encode("utf-8")
        # AESGCM appends the 16-byte tag to the ciphertext
        sealed = self._aesgcm.encrypt(nonce, plaintext, None)
        return EncryptedToken(
            encrypted=sealed[:-TAG_SIZE].hex(),
            nonce=nonce.hex(),
            auth_tag=sealed[-TAG_SIZE:].hex(),
        )

    def decrypt(self, encrypted: str, nonce: str, auth_tag: str) -> TokenData:
        """Decrypt and authenticate a credential record. Raises DecryptionError."""
        try:
            sealed = bytes.fromhex(encrypted) + bytes.fromhex(auth_tag)
            plaintext = self._aesgcm.decrypt(bytes.fromhex(nonce), sealed, None)
        except (InvalidTag, ValueError) as e:
            logger.error("Token decryption failed: authentication tag mismatch or malformed data")
            raise DecryptionError("Failed to decrypt token data") from e

        try:
            return TokenData.model_validate_json(plaintext)
        except ValidationError as e:
            raise DecryptionError("Decrypted token data is not a valid credential record") from e


def generate_verify_token(length: int = 32) -> str:
    """Random hex token for webhook verify-token handshakes."""
    return secrets.token_hex(length)
