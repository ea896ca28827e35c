"""
Client for the token-issuing server.

The OAuth consent flow happens elsewhere; this client only exchanges refresh
tokens, reads server-held tokens and ends the server-side session.
"""

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from listenlens.core.exceptions import AuthError


class TokenClient:
    """Async HTTP client for ``/refresh``, ``/tokens`` and ``/logout``."""

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def refresh(self, refresh_token: str) -> Dict[str, Any]:
        """Exchange a refresh token for a new access token.

        Returns:
            {"access_token", "expires_in", "refresh_token"?}

        Raises:
            AuthError: On any transport, HTTP or payload failure
        """
        data = {"refresh_token": refresh_token} if refresh_token else {}
        try:
            response = await self._client.post(f"{self.base_url}/refresh", data=data)
            response.raise_for_status()
            token_data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"Token refresh rejected: HTTP {e.response.status_code}")
            raise AuthError(f"Token refresh failed: HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Token refresh failed: {e}")
            raise AuthError(f"Token refresh failed: {e}") from e

        if not isinstance(token_data, dict) or not token_data.get("access_token"):
            raise AuthError("Token refresh response has no access_token")

        return token_data

    async def fetch_tokens(self) -> Optional[Dict[str, Any]]:
        """Get the tokens held by the server for the cookie session.

        Returns:
            {"access_token", "refresh_token", "expires_at"} or None
        """
        try:
            response = await self._client.get(f"{self.base_url}/tokens")
            if response.status_code != 200:
                logger.debug(f"No server tokens available: HTTP {response.status_code}")
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to get tokens from server: {e}")
            return None

        if not isinstance(data, dict) or not data.get("access_token"):
            return None
        return data

    async def logout(self) -> None:
        """Invalidate the server-side session. Failures are logged only."""
        try:
            response = await self._client.post(f"{self.base_url}/logout")
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Logout request failed: {e}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
