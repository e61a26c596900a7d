"""
igdb_client.py
==============
Lightweight wrapper around the IGDB v4 API used by the chart maker to find
game cover art.

Authentication
--------------
IGDB is fronted by Twitch and uses the Twitch *client credentials*
(app-access) flow:

    POST https://id.twitch.tv/oauth2/token
        ?client_id=<YOUR_CLIENT_ID>
        &client_secret=<YOUR_CLIENT_SECRET>
        &grant_type=client_credentials

Obtain credentials at https://dev.twitch.tv/console/apps.

Queries are written in IGDB's Apicalypse text language and POSTed as
``text/plain``.

Usage
-----
::

    from igdb_client import IGDBClient

    client = IGDBClient(client_id="abc", client_secret="xyz")
    client.search("hollow knight")
    # [{"id": "14593", "title": "Hollow Knight", "year": 2017,
    #   "imageUrl": "https://images.igdb.com/igdb/image/upload/t_cover_big/...jpg"}]
"""

from __future__ import annotations

import datetime
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from chartmaker import UpstreamError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
_TOKEN_URL   = "https://id.twitch.tv/oauth2/token"
_GAMES_URL   = "https://api.igdb.com/v4/games"
_COVER_URL   = "https://images.igdb.com/igdb/image/upload/t_cover_big/{image_id}.jpg"
_DEFAULT_TIMEOUT = 10  # seconds
# Minimum seconds to keep a cached token before re-fetching
_TOKEN_MIN_TTL   = 60
_RESULT_LIMIT    = 24


class TokenCache:
    """Holds one bearer token and the unix time it expires at.

    Shared by every request the process serves. *clock* returns the current
    unix time in seconds and can be swapped out in tests.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        min_ttl: int = _TOKEN_MIN_TTL,
    ) -> None:
        self._clock = clock
        self._min_ttl = min_ttl
        self.token: Optional[str] = None
        self.expires_at: float = 0.0

    def now(self) -> float:
        return self._clock()

    def get(self) -> Optional[str]:
        """Return the cached token unless it is within *min_ttl* of expiry."""
        if self.token and self.expires_at - self._min_ttl > self.now():
            return self.token
        return None

    def store(self, token: str, expires_in: float) -> None:
        self.token = token
        self.expires_at = self.now() + expires_in

    def clear(self) -> None:
        self.token = None
        self.expires_at = 0.0


class IGDBClient:
    """IGDB game search with automatic Twitch token refresh."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_cache: Optional[TokenCache] = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> None:
        """
        Args:
            client_id:     Twitch application client ID.
            client_secret: Twitch application client secret.
            token_cache:   Where the bearer token lives; a fresh
                           :class:`TokenCache` when omitted.
            timeout:       HTTP request timeout in seconds.
        """
        if not client_id or not client_secret:
            raise ValueError("client_id and client_secret must not be empty")
        self._client_id     = client_id
        self._client_secret = client_secret
        self._timeout       = timeout
        self.token_cache    = token_cache if token_cache is not None else TokenCache()

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    def search(self, query: str) -> List[Dict[str, Any]]:
        """Return up to 24 games matching *query*.

        Version variants (editions, bundles) are excluded upstream. Each entry
        has the same shape as :meth:`AniListClient.search` results; games
        without a cover are left out. A blank *query* returns ``[]`` without
        touching the network.

        Raises:
            UpstreamError: Token exchange or the games query failed.
        """
        q = (query or "").strip()
        if not q:
            return []

        token = self._get_token()
        try:
            resp = requests.post(
                _GAMES_URL,
                data=self.build_query(q).encode("utf-8"),
                headers={
                    "Client-ID":     self._client_id,
                    "Authorization": f"Bearer {token}",
                    "Accept":        "application/json",
                    "Content-Type":  "text/plain",
                },
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning("IGDB request failed: %s", exc)
            raise UpstreamError(f"IGDB search failed: {exc}") from exc

        if not resp.ok:
            logger.warning("IGDB returned HTTP %s for %r", resp.status_code, q)
            raise UpstreamError(resp.text or "IGDB search failed", resp.status_code)

        results = [self._normalise(g) for g in resp.json() or []]
        return [r for r in results if r["imageUrl"]]

    @staticmethod
    def build_query(query: str) -> str:
        """Build the Apicalypse body for *query*, dropping any double quotes."""
        safe = query.replace('"', "")
        return (
            f'search "{safe}";\n'
            "fields name, first_release_date, cover.image_id;\n"
            "where version_parent = null;\n"
            f"limit {_RESULT_LIMIT};"
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get_token(self) -> str:
        """Return a valid Bearer token, fetching a new one if needed."""
        cached = self.token_cache.get()
        if cached:
            return cached

        try:
            resp = requests.post(
                _TOKEN_URL,
                params={
                    "client_id":     self._client_id,
                    "client_secret": self._client_secret,
                    "grant_type":    "client_credentials",
                },
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"Failed to get Twitch token: {exc}") from exc

        if not resp.ok:
            logger.warning("Twitch token exchange returned HTTP %s", resp.status_code)
            raise UpstreamError(resp.text or "Failed to get Twitch token", resp.status_code)

        body = resp.json()
        token = body.get("access_token")
        expires_in = body.get("expires_in", 3600)
        if not token:
            raise UpstreamError(
                f"Twitch token response missing 'access_token': {body}"
            )

        self.token_cache.store(token, expires_in)
        logger.debug("Obtained new Twitch access token (expires in %ds)", expires_in)
        return token

    @staticmethod
    def _normalise(game: Dict[str, Any]) -> Dict[str, Any]:
        released = game.get("first_release_date")
        year = (
            datetime.datetime.fromtimestamp(released, tz=datetime.timezone.utc).year
            if released else None
        )
        image_id = (game.get("cover") or {}).get("image_id")
        return {
            "id":       str(game.get("id")),
            "title":    game.get("name", ""),
            "year":     year,
            "imageUrl": _COVER_URL.format(image_id=image_id) if image_id else "",
        }
