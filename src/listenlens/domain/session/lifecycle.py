"""
Credential lifecycle: validity checks, coalesced refresh, retry-on-401.

``CredentialManager`` is the only writer of the stored credential. API calls
go through ``wrap_call`` so that a rejected access token is refreshed and the
call retried exactly once.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, TypeVar

from loguru import logger

from listenlens.core.exceptions import SessionExpiredError, UnauthorizedError
from listenlens.core.tasks import PeriodicTask

from .credentials import Credential, CredentialStore, parse_expires_at, utcnow

# Proactive refresh window before expiry
SAFETY_MARGIN = timedelta(minutes=5)
REFRESH_INTERVAL_SECONDS = 300
DEFAULT_EXPIRES_IN = 3600  # Seconds, when the server omits expires_in

T = TypeVar("T")


class TokenExchanger(Protocol):
    async def refresh(self, refresh_token: str) -> Dict[str, Any]: ...

    async def fetch_tokens(self) -> Optional[Dict[str, Any]]: ...

    async def logout(self) -> None: ...


class CredentialManager:
    """Keeps the access credential valid for the lifetime of a session."""

    def __init__(
        self,
        store: CredentialStore,
        token_client: TokenExchanger,
        safety_margin: timedelta = SAFETY_MARGIN,
        refresh_interval: float = REFRESH_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
        on_session_expired: Optional[Callable[[], None]] = None,
    ):
        self.safety_margin = safety_margin
        self.refresh_interval = refresh_interval
        self.on_session_expired = on_session_expired
        self._store = store
        self._token_client = token_client
        self._clock = clock
        self._credential: Optional[Credential] = store.load()
        self._refresh_task: Optional[asyncio.Task] = None
        self._generation = 0
        self._background: Optional[PeriodicTask] = None

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    @property
    def access_token(self) -> str:
        return self._credential.access_token if self._credential else ""

    def is_valid(self) -> bool:
        """True iff a token exists and expires beyond the safety margin."""
        credential = self._credential
        if credential is None or not credential.access_token:
            return False
        return credential.expires_at - self._clock() > self.safety_margin

    def needs_refresh(self) -> bool:
        """True iff no token exists or it expires within the safety margin."""
        credential = self._credential
        if credential is None or not credential.access_token:
            return True
        return credential.expires_at - self._clock() <= self.safety_margin

    async def refresh(self) -> Credential:
        """Exchange the refresh token for a new credential.

        Concurrent callers share one in-flight exchange.

        Raises:
            SessionExpiredError: Exchange failed; the credential was cleared
        """
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._exchange())
            self._refresh_task.add_done_callback(_consume_exception)
        return await asyncio.shield(self._refresh_task)

    async def _exchange(self) -> Credential:
        current = self._credential
        refresh_token = current.refresh_token if current else ""
        if not refresh_token:
            logger.warning("No refresh token available")
            self._expire()
            raise SessionExpiredError("No refresh token available")

        generation = self._generation
        logger.info("Refreshing access token")
        try:
            token_data = await self._token_client.refresh(refresh_token)
            credential = Credential.from_expires_in(
                access_token=token_data["access_token"],
                # Preserve refresh token if not included in response
                refresh_token=token_data.get("refresh_token") or refresh_token,
                expires_in=float(token_data.get("expires_in") or DEFAULT_EXPIRES_IN),
                now=self._clock(),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Failed to refresh access token: {e}")
            if generation == self._generation:
                self._expire()
            raise SessionExpiredError() from e

        if generation != self._generation:
            logger.info("Discarding refreshed token, session ended during refresh")
            raise SessionExpiredError("Logged out during refresh")

        self._persist(credential)
        logger.info(f"Access token refreshed, expires: {credential.expires_at}")
        return credential

    async def wrap_call(self, api_call: Callable[[str], Awaitable[T]]) -> T:
        """Run ``api_call(access_token)``, refreshing and retrying once on 401.

        A second UnauthorizedError propagates unchanged.
        """
        token = self.access_token
        try:
            return await api_call(token)
        except UnauthorizedError:
            logger.info("Request unauthorized, refreshing token and retrying once")

        # Another caller may already have replaced the rejected token
        if not self.access_token or self.access_token == token:
            await self.refresh()
        return await api_call(self.access_token)

    def store_tokens(
        self,
        access_token: str,
        refresh_token: Optional[str],
        expires_in: float = DEFAULT_EXPIRES_IN,
    ) -> Credential:
        """Persist a credential from a login response."""
        if not refresh_token and self._credential:
            refresh_token = self._credential.refresh_token
        credential = Credential.from_expires_in(
            access_token, refresh_token or "", expires_in, now=self._clock()
        )
        self._persist(credential)
        return credential

    async def load_from_server(self) -> Optional[Credential]:
        """Adopt the tokens held by the token server for this cookie session."""
        token_data = await self._token_client.fetch_tokens()
        if not token_data:
            return None

        try:
            if token_data.get("expires_at") is not None:
                credential = Credential(
                    access_token=token_data["access_token"],
                    refresh_token=token_data.get("refresh_token") or "",
                    expires_at=parse_expires_at(token_data["expires_at"]),
                )
            else:
                credential = Credential.from_expires_in(
                    token_data["access_token"],
                    token_data.get("refresh_token") or "",
                    float(token_data.get("expires_in") or DEFAULT_EXPIRES_IN),
                    now=self._clock(),
                )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed server tokens: {e}")
            return None

        self._persist(credential)
        logger.info("Loaded tokens from server")
        return credential

    def start(self) -> None:
        """Start the background refresh check."""
        if self._background is None:
            self._background = PeriodicTask(
                "credential-refresh",
                self._background_check,
                self.refresh_interval,
                run_immediately=True,
            )
        self._background.start()

    async def stop(self) -> None:
        """Stop the background refresh check."""
        if self._background is not None:
            await self._background.stop()

    @property
    def background_running(self) -> bool:
        return self._background is not None and self._background.running

    async def logout(self) -> None:
        """End the session: stop timers, log out server-side, clear tokens."""
        self._generation += 1
        await self.stop()
        await self._token_client.logout()
        self._credential = None
        self._store.clear()
        logger.info("Logged out")

    async def _background_check(self) -> Optional[bool]:
        if not self.needs_refresh():
            return None
        try:
            await self.refresh()
        except SessionExpiredError:
            logger.warning("Background refresh failed, session expired")
            return False
        return None

    def _persist(self, credential: Credential) -> None:
        self._credential = credential
        try:
            self._store.save(credential)
        except Exception:
            logger.exception("Failed to persist credentials")

    def _expire(self) -> None:
        # Reported once per credential; later attempts find nothing to expire
        was_active = self._credential is not None
        self._credential = None
        try:
            self._store.clear()
        except Exception:
            logger.exception("Failed to clear stored credentials")
        if was_active and self.on_session_expired is not None:
            self.on_session_expired()


def _consume_exception(task: asyncio.Task) -> None:
    # Marks the exception retrieved; callers re-raise it through shield()
    if not task.cancelled():
        task.exception()
