"""Album art lookup through MusicBrainz and the Cover Art Archive.

Used when a speaker reports a title and artist but no artwork. Lookups are
rate limited and cached per track; any failure just means no artwork.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import aiohttp

from linkhub.const import (
    LINKHUB_VERSION,
    METADATA_CACHE_TTL,
    METADATA_COVERART_URL,
    METADATA_MUSICBRAINZ_URL,
    METADATA_RATE_LIMIT,
    METADATA_REQUEST_TIMEOUT,
    SRC_REPO_URL,
)
from linkhub.logging_abstraction import get_logger
from linkhub.transport.exceptions import InvalidResponseError, LinkHubError
from linkhub.transport.http import decode_body, error_for_status, map_client_error

logger = get_logger(__name__)

# MusicBrainz rejects anonymous clients
USER_AGENT = f"linkhub/{LINKHUB_VERSION} ( {SRC_REPO_URL} )"

_PLACEHOLDERS = ("", "unknown")


def _first(obj: object, key: str) -> dict[str, object] | None:
    if not isinstance(obj, dict):
        return None
    items = obj.get(key)
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return None


def release_id_from(payload: object) -> str | None:
    """First release of the first recording in a MusicBrainz search result."""
    release = _first(_first(payload, "recordings"), "releases")
    if release is None:
        return None
    release_id = release.get("id")
    return release_id if isinstance(release_id, str) and release_id else None


def image_url_from(payload: object) -> str | None:
    image = _first(payload, "images")
    if image is None:
        return None
    url = image.get("image")
    return url if isinstance(url, str) and url else None


class MetadataService:
    """Finds cover art for an (artist, title) pair.

    At most one outgoing lookup per ``rate_limit`` seconds; calls inside that
    window return None without touching the network. Found URLs are cached for
    ``cache_ttl`` seconds keyed on the case-folded artist and title.
    """

    lp: str = "MetadataService"

    def __init__(
        self,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout: float = METADATA_REQUEST_TIMEOUT,
        rate_limit: float = METADATA_RATE_LIMIT,
        cache_ttl: float = METADATA_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.http_session: aiohttp.ClientSession | None = session
        self._owns_session: bool = session is None
        self.timeout: float = timeout
        self.rate_limit: float = rate_limit
        self.cache_ttl: float = cache_ttl
        self._clock: Callable[[], float] = clock
        self._last_request: float | None = None
        # key -> (url, clock reading when cached)
        self._cache: dict[str, tuple[str, float]] = {}

    async def _check_session(self) -> aiohttp.ClientSession:
        if not self.http_session or self.http_session.closed:
            logger.debug("%s:_check_session: Creating new aiohttp ClientSession", self.lp)
            self.http_session = aiohttp.ClientSession(headers={"User-Agent": USER_AGENT})
            self._owns_session = True
        return self.http_session

    async def close(self) -> None:
        if self._owns_session and self.http_session and not self.http_session.closed:
            await self.http_session.close()
        self.http_session = None

    def clear_cache(self) -> None:
        self._cache.clear()

    @staticmethod
    def cache_key(artist: str, title: str) -> str:
        return f"{artist.lower()}|{title.lower()}"

    async def album_art(self, artist: str, title: str) -> str | None:
        """Return a cover art URL for the track, or None when none can be found right now."""
        lp = f"{self.lp}:album_art:"
        if artist.strip().casefold() in _PLACEHOLDERS or title.strip().casefold() in _PLACEHOLDERS:
            logger.debug("%s skipping lookup for unknown track", lp)
            return None

        key = self.cache_key(artist, title)
        now = self._clock()
        cached = self._cache.get(key)
        if cached is not None:
            url, stored = cached
            if now - stored <= self.cache_ttl:
                logger.debug("%s cache hit for %s / %s", lp, artist, title)
                return url
            del self._cache[key]

        if self._last_request is not None and now - self._last_request < self.rate_limit:
            logger.debug("%s rate limited, skipping %s / %s", lp, artist, title)
            return None
        self._last_request = now

        try:
            search = await self._get_json(
                METADATA_MUSICBRAINZ_URL,
                {"query": f'recording:"{title}" AND artist:"{artist}"', "fmt": "json", "limit": "1"},
            )
            release_id = release_id_from(search)
            if release_id is None:
                logger.debug("%s no release found for %s / %s", lp, artist, title)
                return None
            url = image_url_from(await self._get_json(f"{METADATA_COVERART_URL}/{release_id}"))
        except LinkHubError as e:
            logger.warning("%s lookup for %s / %s failed: %s", lp, artist, title, e)
            return None

        if url is None:
            logger.debug("%s release %s has no cover art", lp, release_id)
            return None
        self._cache[key] = (url, now)
        logger.info("%s found cover art for %s / %s", lp, artist, title, extra={"url": url})
        return url

    async def _get_json(self, url: str, params: dict[str, str] | None = None) -> object:
        session = await self._check_session()
        try:
            async with session.get(
                url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                text = await resp.text()
                status_error = error_for_status(resp.status, url, resp.headers.get("Retry-After"))
        except (aiohttp.ClientError, TimeoutError) as e:
            raise map_client_error(e, url) from e

        if status_error is not None:
            raise status_error
        payload = decode_body(text)
        if isinstance(payload, str):
            raise InvalidResponseError("expected a JSON document", payload)
        return payload
