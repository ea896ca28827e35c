"""Session domain - credentials and their lifecycle.

This domain handles:
- Credential model and persistence (SQLite or in-memory)
- Token server exchanges (refresh, server-held tokens, logout)
- Validity checks, coalesced refresh and retry-on-401

``ListeningSession`` lives in ``listenlens.domain.session.session`` and is not
re-exported here, since it depends on the catalog and stats domains.
"""

from .credentials import (
    Credential,
    CredentialStore,
    MemoryCredentialStore,
    SqliteCredentialStore,
    parse_expires_at,
)
from .lifecycle import CredentialManager
from .token_client import TokenClient

__all__ = [
    "Credential",
    "CredentialStore",
    "MemoryCredentialStore",
    "SqliteCredentialStore",
    "parse_expires_at",
    "CredentialManager",
    "TokenClient",
]
