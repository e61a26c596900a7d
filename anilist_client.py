"""
anilist_client.py
=================
Thin wrapper around the AniList GraphQL API used by the chart maker to find
anime cover art.

AniList needs no credentials for read-only queries:

    POST https://graphql.anilist.co
        {"query": "...", "variables": {"search": "<text>"}}

Usage
-----
::

    from anilist_client import AniListClient

    client = AniListClient()
    client.search("frieren")
    # [{"id": "154587", "title": "Frieren: Beyond Journey's End",
    #   "year": 2023, "imageUrl": "https://s4.anilist.co/..."}, ...]
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from chartmaker import UpstreamError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
_GRAPHQL_URL = "https://graphql.anilist.co"
_DEFAULT_TIMEOUT = 10  # seconds
_PAGE_SIZE = 24

SEARCH_QUERY = """
query ($search: String) {
  Page(page: 1, perPage: 24) {
    media(search: $search, type: ANIME, sort: POPULARITY_DESC) {
      id
      title { romaji english native }
      coverImage { extraLarge large }
      seasonYear
      startDate { year }
    }
  }
}
"""


class AniListClient:
    """Anime search against AniList, normalised to chart search results."""

    def __init__(self, timeout: int = _DEFAULT_TIMEOUT) -> None:
        self._timeout = timeout

    def search(self, query: str) -> List[Dict[str, Any]]:
        """Return up to 24 anime matching *query*, most popular first.

        Each entry contains::

            {
              "id":       "154587",
              "title":    "Frieren: Beyond Journey's End",
              "year":     2023,          # or None
              "imageUrl": "https://...",
            }

        Items without a cover image are left out. A blank *query* returns
        ``[]`` without contacting AniList.

        Raises:
            UpstreamError: AniList answered with a non-2xx status or could not
                be reached.
        """
        q = (query or "").strip()
        if not q:
            return []

        try:
            resp = requests.post(
                _GRAPHQL_URL,
                json={"query": SEARCH_QUERY, "variables": {"search": q}},
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning("AniList request failed: %s", exc)
            raise UpstreamError(f"AniList search failed: {exc}") from exc

        if not resp.ok:
            logger.warning("AniList returned HTTP %s for %r", resp.status_code, q)
            raise UpstreamError(resp.text or "AniList search failed", resp.status_code)

        body = resp.json() or {}
        media = ((body.get("data") or {}).get("Page") or {}).get("media") or []

        results = [self._normalise(m) for m in media]
        return [r for r in results if r["imageUrl"]][:_PAGE_SIZE]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _normalise(media: Dict[str, Any]) -> Dict[str, Any]:
        title = media.get("title") or {}
        cover = media.get("coverImage") or {}
        start = media.get("startDate") or {}
        year: Optional[int] = media.get("seasonYear") or start.get("year") or None
        return {
            "id":       str(media.get("id")),
            "title":    title.get("english") or title.get("romaji")
                        or title.get("native") or "Untitled",
            "year":     year,
            "imageUrl": cover.get("extraLarge") or cover.get("large") or "",
        }
