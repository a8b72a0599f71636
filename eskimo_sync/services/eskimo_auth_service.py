"""
Eskimo Auth Service - bearer token exchange and caching.
"""

import logging
import requests
from typing import Optional

from eskimo_sync.config import EskimoSettings
from eskimo_sync.services.error_handler import AuthError
from eskimo_sync.services.token_cache import TokenCache, MemoryTokenCache

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = 1440
TOKEN_TIMEOUT = 60


class EskimoAuthService:
    """Obtains and caches the EPOS API bearer token."""

    def __init__(self, settings: EskimoSettings, token_cache: Optional[TokenCache] = None,
                 http=requests):
        self.settings = settings
        self.token_cache = token_cache or MemoryTokenCache()
        self.http = http

    @property
    def token_url(self) -> str:
        return f"{self.settings.domain}token"

    def ensure_authenticated(self) -> str:
        """Return a valid token, exchanging credentials when the cache is empty."""
        token = self.token_cache.get()
        if token:
            return token

        self.settings.validate()
        return self._exchange()

    def _exchange(self) -> str:
        form = {
            'domain': self.settings.domain,
            'username': self.settings.username,
            'password': self.settings.password,
            'grant_type': 'password'
        }

        try:
            response = self.http.post(self.token_url, data=form, timeout=TOKEN_TIMEOUT)
        except requests.exceptions.RequestException as e:
            logger.error(f"Token request failed: {e}")
            raise AuthError("API Error: Could Not Connect To API")

        if response.status_code != 200:
            logger.error(f"Token request rejected with status {response.status_code}")
            raise AuthError(f"Token request rejected [{response.status_code}]")

        try:
            payload = response.json()
        except ValueError:
            raise AuthError("Token response is not valid JSON")

        token = payload.get('access_token') if isinstance(payload, dict) else None
        if not token:
            raise AuthError("Token response has no access_token")

        ttl = self._token_ttl(payload.get('expires_in'))
        self.token_cache.set(token, ttl)
        logger.info(f"Authenticated with Eskimo API, token valid for {ttl}s")
        return token

    def _token_ttl(self, expires_in) -> int:
        try:
            ttl = int(expires_in)
        except (TypeError, ValueError):
            ttl = 0
        if ttl > 0:
            return ttl
        if self.settings.session_lifetime and self.settings.session_lifetime > 0:
            return self.settings.session_lifetime
        return DEFAULT_TOKEN_TTL

    def invalidate(self) -> None:
        """Forget the cached token so the next call re-authenticates."""
        self.token_cache.clear()
