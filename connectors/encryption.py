"""
Token encryption — encrypt / decrypt cached OAuth tokens.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from the ``cryptography`` library.
The key comes from ``config.token_encryption_key``
(env var: ``TOKEN_ENCRYPTION_KEY``).

If no key is configured, encryption is **disabled** and tokens are cached
as plaintext (with a startup warning).  Generate a key with::

    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from __future__ import annotations

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class TokenCipher:
    """Symmetric cipher for token payloads; a no-op when no key is given."""

    def __init__(self, key: Optional[str] = None) -> None:
        self._fernet: Optional[Fernet] = None
        if not key:
            return
        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Invalid TOKEN_ENCRYPTION_KEY: {exc}") from exc

    def log_status(self) -> None:
        """Report once, at startup, whether cached tokens are encrypted."""
        if self._fernet is None:
            logger.warning(
                "TOKEN_ENCRYPTION_KEY not set — OAuth tokens will be cached as plaintext."
            )
        else:
            logger.info("Token encryption enabled (Fernet/AES-128-CBC)")

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, plaintext: str) -> bytes:
        """Return the Fernet ciphertext, or the UTF-8 plaintext if disabled."""
        if self._fernet is None:
            return plaintext.encode()
        return self._fernet.encrypt(plaintext.encode())

    def decrypt(self, ciphertext: bytes) -> Optional[str]:
        """
        Decrypt a cached payload.

        Returns None when the payload cannot be decrypted with the current
        key (e.g. after key rotation) so the caller treats it as a miss.
        """
        if self._fernet is None:
            return ciphertext.decode()
        try:
            return self._fernet.decrypt(ciphertext).decode()
        except InvalidToken:
            logger.warning("Cached token could not be decrypted; treating as missing")
            return None
