"""AES-GCM encryption of stored API keys.

The symmetric key is derived once per process from the operator-supplied
seed and a 16-byte salt persisted in ``<data_dir>/.salt``. The salt is
created on first startup. If the file is missing or malformed a new salt
is written, which makes every previously stored credential undecryptable:
users then have to set their keys again. This is accepted behaviour.

Tokens are URL-safe base64 of ``nonce (12 bytes) || ciphertext || tag``.
"""

import base64
import binascii
import logging
import secrets
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from askai.core.exceptions import DecryptionFailed

logger = logging.getLogger(__name__)

SALT_FILE_NAME = ".salt"
SALT_BYTES = 16
NONCE_BYTES = 12
TAG_BYTES = 16
KEY_BYTES = 32  # AES-256
PBKDF2_ITERATIONS = 100_000


def load_or_create_salt(data_dir: Path) -> bytes:
    """Read the persisted salt, generating and writing a new one if needed."""
    salt_file = data_dir / SALT_FILE_NAME
    if salt_file.exists():
        try:
            salt = salt_file.read_bytes()
        except OSError as e:
            logger.warning("Could not read salt file %s: %s", salt_file, e)
        else:
            if len(salt) == SALT_BYTES:
                return salt
            logger.warning(
                "Salt file %s is malformed (%d bytes); generating a new one. "
                "Previously stored API keys can no longer be decrypted.",
                salt_file,
                len(salt),
            )

    salt = secrets.token_bytes(SALT_BYTES)
    data_dir.mkdir(parents=True, exist_ok=True)
    salt_file.write_bytes(salt)
    logger.info("Generated new encryption salt at %s", salt_file)
    return salt


def derive_key(seed: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """PBKDF2-HMAC-SHA256 key derivation, 256-bit output."""
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=KEY_BYTES, salt=salt, iterations=iterations)
    return kdf.derive(seed.encode("utf-8"))


class CredentialVault:
    """Encrypts and decrypts opaque secret strings with one process-wide key.

    Immutable after construction, so it is safe to share between concurrent
    requests.
    """

    def __init__(self, seed: str, data_dir: str | Path):
        salt = load_or_create_salt(Path(data_dir))
        self._aead = AESGCM(derive_key(seed, salt))

    def encrypt(self, plaintext: str) -> str:
        nonce = secrets.token_bytes(NONCE_BYTES)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            raw = base64.b64decode(token.encode("ascii"), altchars=b"-_", validate=True)
        except (binascii.Error, ValueError, UnicodeEncodeError, AttributeError) as e:
            raise DecryptionFailed("Stored credential is not a valid token") from e

        if len(raw) < NONCE_BYTES + TAG_BYTES:
            raise DecryptionFailed("Stored credential is too short to hold a nonce and tag")

        nonce, ciphertext = raw[:NONCE_BYTES], raw[NONCE_BYTES:]
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise DecryptionFailed(
                "Stored credential failed authentication; it may be corrupted or the encryption seed changed"
            ) from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionFailed("Stored credential did not decode to text") from e
