"""
Credential Vault - AES-256-GCM encryption of custodial secrets.

A single process-wide 256-bit key is derived from KEY_ENCRYPTION_SECRET
with scrypt (N=2^14, r=8, p=1), so records written by any deployment that
shares the secret remain readable. Each encryption draws a fresh 96-bit
nonce. Ciphertext, nonce and tag are stored base64 encoded in separate
columns. The primitive operates on bytes; the str methods are UTF-8
wrappers used for WIF keys.

Rotating KEY_ENCRYPTION_SECRET makes every stored record unreadable; there
is no in-band re-encryption.
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from userbase.exceptions import DecryptionError
from userbase.models.domain import EncryptedSecret

KDF_SALT = b"skatehive-userbase"
KEY_LENGTH = 32
IV_LENGTH = 12
TAG_LENGTH = 16


def derive_key(secret: str) -> bytes:
    """Derive the 256-bit vault key from the configured master secret."""
    kdf = Scrypt(salt=KDF_SALT, length=KEY_LENGTH, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode())


def _b64decode(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecryptionError(f"{field} is not valid base64") from exc


class CredentialVault:
    """
    Symmetric encrypt/decrypt for secrets held on a user's behalf.

    Usage:
        vault = CredentialVault(settings.key_encryption_secret)
        secret = vault.encrypt(posting_wif)
        assert vault.decrypt(secret) == posting_wif
    """

    def __init__(self, master_secret: str) -> None:
        if not master_secret:
            raise ValueError("master_secret cannot be empty")
        self._aesgcm = AESGCM(derive_key(master_secret))

    def encrypt_bytes(self, plaintext: bytes) -> EncryptedSecret:
        iv = os.urandom(IV_LENGTH)
        sealed = self._aesgcm.encrypt(iv, plaintext, None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return EncryptedSecret(
            ciphertext=base64.b64encode(ciphertext).decode(),
            iv=base64.b64encode(iv).decode(),
            auth_tag=base64.b64encode(tag).decode(),
        )

    def decrypt_bytes(self, secret: EncryptedSecret) -> bytes:
        """
        Authenticate and decrypt a stored secret.

        Raises:
            DecryptionError: malformed parts or tag mismatch. Never returns
                wrong plaintext.
        """
        ciphertext = _b64decode(secret.ciphertext, "ciphertext")
        iv = _b64decode(secret.iv, "iv")
        tag = _b64decode(secret.auth_tag, "auth_tag")

        if len(iv) != IV_LENGTH:
            raise DecryptionError(f"iv must be {IV_LENGTH} bytes, got {len(iv)}")
        if len(tag) != TAG_LENGTH:
            raise DecryptionError(f"auth_tag must be {TAG_LENGTH} bytes, got {len(tag)}")

        try:
            return self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            raise DecryptionError("authentication tag mismatch") from exc

    def encrypt(self, plaintext: str) -> EncryptedSecret:
        return self.encrypt_bytes(plaintext.encode())

    def decrypt(self, secret: EncryptedSecret) -> str:
        plaintext = self.decrypt_bytes(secret)
        try:
            return plaintext.decode()
        except UnicodeDecodeError as exc:
            raise DecryptionError("plaintext is not valid UTF-8") from exc
