"""
Credential model and storage backends.

The credential's ``expires_at`` is always an absolute UTC instant.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from loguru import logger

from listenlens.core import database

PROVIDER = "spotify"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_expires_at(value: Union[str, int, float, datetime]) -> datetime:
    """Parse an absolute expiry from the token server.

    Accepts epoch milliseconds (what the token server emits), ISO-8601
    strings and datetimes. Naive values are taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    else:
        parsed = datetime.fromisoformat(value)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Credential:
    """Access/refresh token pair with an absolute expiry."""

    access_token: str
    refresh_token: str
    expires_at: datetime

    @classmethod
    def from_expires_in(
        cls,
        access_token: str,
        refresh_token: str,
        expires_in: float,
        now: Optional[datetime] = None,
    ) -> "Credential":
        """Build a credential from a relative lifetime in seconds."""
        now = now or utcnow()
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=now + timedelta(seconds=expires_in),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            expires_at=parse_expires_at(data["expires_at"]),
        )


class CredentialStore(Protocol):
    """Persistence for the single process-wide credential."""

    def load(self) -> Optional[Credential]: ...

    def save(self, credential: Credential) -> None: ...

    def clear(self) -> None: ...


class MemoryCredentialStore:
    """In-memory store, for tests and ephemeral sessions."""

    def __init__(self, credential: Optional[Credential] = None):
        self._credential = credential

    def load(self) -> Optional[Credential]:
        return self._credential

    def save(self, credential: Credential) -> None:
        self._credential = credential

    def clear(self) -> None:
        self._credential = None


class SqliteCredentialStore:
    """Credential persisted in the local database's credentials table."""

    def __init__(self, db_path: Optional[Path] = None, provider: str = PROVIDER):
        self.db_path = db_path
        self.provider = provider

    def load(self) -> Optional[Credential]:
        auth_data = database.load_credentials(self.provider, self.db_path)
        if not auth_data:
            return None

        try:
            return Credential.from_dict(auth_data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to parse stored {self.provider} credentials: {e}")
            return None

    def save(self, credential: Credential) -> None:
        database.save_credentials(self.provider, credential.to_dict(), self.db_path)
        logger.debug(f"Saved {self.provider} credentials, expires: {credential.expires_at}")

    def clear(self) -> None:
        database.delete_credentials(self.provider, self.db_path)
        logger.debug(f"Cleared {self.provider} credentials")
