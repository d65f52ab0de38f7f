"""
Credential Verifiers

Check a presented credential against a trust source and return the subject
it belongs to. Verifiers are pure: no side effects beyond logging.

API key registry format (api_keys.yaml):
```yaml
api_keys:
  reporting-job:
    key: "12345"
    active: true
  old-dashboard:
    key: "abcdef"
    active: false
```
"""

import hashlib
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import yaml

from authgate.core.auth.errors import InvalidCredential, MissingCredential

logger = logging.getLogger(__name__)


def key_fingerprint(key: str) -> str:
    """Short, non-reversible label for logging an API key."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]


class CredentialVerifier(ABC):
    """Checks one kind of presented credential."""

    @abstractmethod
    def verify(self, presented: Any) -> str:
        """
        Verify a credential.

        Returns:
            The subject the credential belongs to

        Raises:
            MissingCredential: If nothing usable was presented
            InvalidCredential: If the credential does not match
        """


class StaticPairVerifier(CredentialVerifier):
    """Username/password check against one fixed pair."""

    def __init__(self, username: str, password: str):
        self._username = username.encode("utf-8")
        self._password = password.encode("utf-8")

    def verify(self, presented: Tuple[Optional[str], Optional[str]]) -> str:
        username, password = presented
        if not username or not password:
            raise MissingCredential("username or password not supplied")

        # Both comparisons always run so timing does not reveal which one failed
        user_ok = secrets.compare_digest(username.encode("utf-8"), self._username)
        password_ok = secrets.compare_digest(password.encode("utf-8"), self._password)
        if not (user_ok and password_ok):
            raise InvalidCredential("username/password mismatch")

        return username


@dataclass(frozen=True)
class ApiKeyRecord:
    """A registered API key."""
    key: str
    active: bool = True
    name: Optional[str] = None

    @property
    def subject(self) -> str:
        return self.name or f"key-{key_fingerprint(self.key)}"


class ApiKeyVerifier(CredentialVerifier):
    """
    Lookup against a set of API key records.

    The record set is immutable; `reload` swaps in a whole new set, so a
    reader sees either the old set or the new one and never a mix.
    """

    def __init__(self, records: Iterable[ApiKeyRecord] = ()):
        self._records: Mapping[str, ApiKeyRecord] = self._freeze(records)
        self._reload_lock = threading.Lock()

    @staticmethod
    def _freeze(records: Iterable[ApiKeyRecord]) -> Mapping[str, ApiKeyRecord]:
        by_key: Dict[str, ApiKeyRecord] = {}
        for record in records:
            by_key[record.key] = record
        return MappingProxyType(by_key)

    def reload(self, records: Iterable[ApiKeyRecord]) -> None:
        """Replace the whole record set."""
        frozen = self._freeze(records)
        with self._reload_lock:
            self._records = frozen
        logger.info(f"API key set reloaded ({len(frozen)} keys)")

    def __len__(self) -> int:
        return len(self._records)

    def verify(self, presented: Optional[str]) -> str:
        if not presented:
            raise MissingCredential("no API key header", public_message="missing or invalid key")

        records = self._records
        matched: Optional[ApiKeyRecord] = None
        presented_bytes = presented.encode("utf-8")
        # Compare against every record so the position of a match does not show in timing
        for key, record in records.items():
            if secrets.compare_digest(presented_bytes, key.encode("utf-8")):
                matched = record

        if matched is None:
            raise InvalidCredential(
                f"unknown API key {key_fingerprint(presented)}",
                public_message="missing or invalid key",
            )
        if not matched.active:
            raise InvalidCredential(
                f"inactive API key {matched.subject}",
                public_message="missing or invalid key",
            )
        return matched.subject


def parse_api_key_csv(value: str) -> Tuple[ApiKeyRecord, ...]:
    """Parse a comma-separated key list (e.g. VALID_API_KEYS) into active records."""
    return tuple(
        ApiKeyRecord(key=key.strip())
        for key in value.split(",")
        if key.strip()
    )


def load_api_keys_from_yaml(config_path: Path) -> Tuple[ApiKeyRecord, ...]:
    """
    Load named API keys from a YAML registry.

    Args:
        config_path: Path to api_keys.yaml

    Returns:
        Tuple of records (empty if the file does not exist)

    Raises:
        ValueError: If an entry is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        logger.warning(f"API key registry not found: {config_path}")
        return ()

    with open(config_path) as f:
        config = yaml.safe_load(f) or {}

    records = []
    for name, data in (config.get("api_keys") or {}).items():
        if not isinstance(data, dict) or not data.get("key"):
            raise ValueError(f"Invalid API key entry '{name}': a non-empty 'key' is required")
        records.append(ApiKeyRecord(
            key=str(data["key"]),
            active=bool(data.get("active", True)),
            name=str(name),
        ))

    logger.info(f"Loaded {len(records)} API keys from {config_path}")
    return tuple(records)
