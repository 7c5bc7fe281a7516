"""
Signing key providers for the audit ledger.

The audit ledger never reads a secret from the environment itself; it is
given a ``SigningKeyProvider`` that maps key versions to secrets and names
the version new entries are signed with.  Every entry stores its key version,
so rotating the active version leaves historical entries verifiable as long
as the old secret stays registered.
"""

import os
from abc import ABC, abstractmethod

from stock_kernel.exceptions import SigningKeyNotFoundError


class SigningKeyProvider(ABC):
    """Maps key versions to signing secrets."""

    @property
    @abstractmethod
    def active_version(self) -> str:
        """Key version used for new entries."""
        ...

    @abstractmethod
    def secret_for(self, key_version: str) -> str:
        """
        Return the secret for ``key_version``.

        Raises:
            SigningKeyNotFoundError: If the version is not registered.
        """
        ...

    def active_secret(self) -> str:
        return self.secret_for(self.active_version)


class StaticKeyRing(SigningKeyProvider):
    """In-memory key ring, used by tests and embedded deployments."""

    def __init__(self, keys: dict[str, str], active_version: str | None = None):
        if not keys:
            raise ValueError("StaticKeyRing requires at least one key")
        self._keys = dict(keys)
        self._active_version = active_version or sorted(self._keys)[-1]
        if self._active_version not in self._keys:
            raise SigningKeyNotFoundError(self._active_version)

    @property
    def active_version(self) -> str:
        return self._active_version

    def secret_for(self, key_version: str) -> str:
        try:
            return self._keys[key_version]
        except KeyError:
            raise SigningKeyNotFoundError(key_version) from None

    def rotate(self, key_version: str, secret: str) -> None:
        """Register a new key version and make it active."""
        self._keys[key_version] = secret
        self._active_version = key_version


class EnvironmentKeyRing(StaticKeyRing):
    """
    Key ring read from an environment variable.

    Format: ``"v1:secret-one,v2:secret-two"``.  The active version is the
    one named explicitly, else the last one listed.
    """

    def __init__(self, env_var: str = "STOCK_AUDIT_KEYS", active_version: str | None = None):
        raw = os.environ.get(env_var, "")
        keys = parse_key_spec(raw)
        if not keys:
            raise ValueError(f"Environment variable {env_var} holds no signing keys")
        super().__init__(keys, active_version or list(keys)[-1])
        self.env_var = env_var


def parse_key_spec(raw: str) -> dict[str, str]:
    """Parse ``"v1:secret,v2:secret"`` into an ordered dict."""
    keys: dict[str, str] = {}
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        version, sep, secret = part.partition(":")
        if not sep or not version.strip() or not secret:
            raise ValueError(f"Malformed signing key entry: {part!r}")
        keys[version.strip()] = secret
    return keys
