import hashlib
import os
import re
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.core.config import settings

IV_BYTES = 12
TAG_BYTES = 16

_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")
DEV_ENCRYPTION_KEY = "flowpulse-dev-zabbix-key"


class VaultError(Exception):
    pass


@dataclass(frozen=True)
class SealedSecret:
    """Hex-encoded AES-256-GCM ciphertext, IV and authentication tag."""

    ciphertext: str
    iv: str
    tag: str


def derive_key(secret: str) -> bytes:
    # 64 hex chars are used as the raw key, anything else is hashed to 32 bytes
    if _HEX_KEY.match(secret):
        return bytes.fromhex(secret)
    return hashlib.sha256(secret.encode("utf-8")).digest()


def encryption_secret(env: str, configured: str | None) -> str:
    if configured:
        return configured
    if env != "dev":
        raise RuntimeError("ZABBIX_ENCRYPTION_KEY is not set")
    return DEV_ENCRYPTION_KEY


# refuse to start outside dev without a real key
encryption_secret(settings.ENV, settings.ZABBIX_ENCRYPTION_KEY)


def _configured_key() -> bytes:
    return derive_key(encryption_secret(settings.ENV, settings.ZABBIX_ENCRYPTION_KEY))


def encrypt_secret(plaintext: str, key: bytes | None = None, iv: bytes | None = None) -> SealedSecret:
    key = key or _configured_key()
    iv = iv or os.urandom(IV_BYTES)
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    return SealedSecret(
        ciphertext=sealed[:-TAG_BYTES].hex(),
        iv=iv.hex(),
        tag=sealed[-TAG_BYTES:].hex(),
    )


def decrypt_secret(secret: SealedSecret, key: bytes | None = None) -> str:
    key = key or _configured_key()
    try:
        iv = bytes.fromhex(secret.iv)
        blob = bytes.fromhex(secret.ciphertext) + bytes.fromhex(secret.tag)
        return AESGCM(key).decrypt(iv, blob, None).decode("utf-8")
    except InvalidTag:
        # tampered ciphertext or wrong key; never return partial plaintext
        raise VaultError("Credential decryption failed")
    except ValueError:
        raise VaultError("Stored credential is malformed")
