"""
Identity hashing configuration.

The salt is a process-wide secret. It is carried in an explicitly constructed
:class:`IdentityConfig` value and handed to the hasher, never read from a
module global, so tests can build hashers with distinct salts side by side.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from modrelay.errors import ConfigurationError

SALT_ENV_VAR = "HASH_SALT"

DEFAULT_ITERATIONS = 100_000
DEFAULT_KEY_LENGTH = 32


@dataclass(frozen=True, slots=True)
class IdentityConfig:
    """Parameters of the PBKDF2-HMAC-SHA256 handle derivation.

    Attributes:
        salt: Secret salt; excluded from ``repr`` so it never reaches a log.
        iterations: PBKDF2 iteration count.
        key_length: Derived key length in bytes; handles are twice as many hex chars.
    """
    salt: str = field(repr=False)
    iterations: int = DEFAULT_ITERATIONS
    key_length: int = DEFAULT_KEY_LENGTH

    def __post_init__(self) -> None:
        if not self.salt:
            raise ConfigurationError(f"'{SALT_ENV_VAR}' is not set; user handles cannot be derived")
        if self.iterations < 1:
            raise ConfigurationError(f"Hash iterations must be positive, got {self.iterations}")
        if self.key_length < 1:
            raise ConfigurationError(f"Hash key length must be positive, got {self.key_length}")

    @property
    def handle_length(self) -> int:
        """Number of hex characters in every handle this config produces."""
        return self.key_length * 2

    @classmethod
    def from_environment(
        cls,
        iterations: int = DEFAULT_ITERATIONS,
        key_length: int = DEFAULT_KEY_LENGTH,
    ) -> "IdentityConfig":
        """Build the config from ``HASH_SALT``; raises ConfigurationError when it is missing."""
        return cls(
            salt=os.getenv(SALT_ENV_VAR, ""),
            iterations=iterations,
            key_length=key_length,
        )
