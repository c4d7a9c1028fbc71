"""
One-way pseudonymisation of platform user ids.

Handles are PBKDF2-HMAC-SHA256 digests of the raw platform id keyed with the
secret salt, hex encoded.
"""

from __future__ import annotations

import hashlib

from modrelay.configuration.identity_settings import IdentityConfig
from modrelay.errors import ValidationError
from modrelay.util.logger import get_logger

logger = get_logger("identity_hasher")


class IdentityHasher:
    """Derives stable user handles from platform user ids.

    Pure and deterministic for a given :class:`IdentityConfig`. Neither the
    raw id nor the salt is ever logged.
    """

    def __init__(self, config: IdentityConfig) -> None:
        self._config = config
        logger.debug(
            "[IDENTITY] Hasher ready (PBKDF2-SHA256, %d iterations, %d byte handles)",
            config.iterations,
            config.key_length,
        )

    @property
    def handle_length(self) -> int:
        return self._config.handle_length

    def hash(self, raw_id: str) -> str:
        """Return the hex handle for ``raw_id``.

        Raises:
            ValidationError: If ``raw_id`` is empty.
        """
        if not raw_id:
            raise ValidationError("Cannot derive a handle from an empty user id")
        digest = hashlib.pbkdf2_hmac(
            "sha256",
            str(raw_id).encode("utf-8"),
            self._config.salt.encode("utf-8"),
            self._config.iterations,
            dklen=self._config.key_length,
        )
        return digest.hex()
