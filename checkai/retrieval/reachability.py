"""URL reachability probing with a process-lifetime cache."""

from __future__ import annotations

import logging
import threading
from typing import Optional

import requests

from checkai.config import REACHABILITY_TIMEOUT

logger = logging.getLogger(__name__)

# Shared by every prober in the process; entries are never invalidated.
_PROCESS_CACHE: dict[str, bool] = {}
_PROCESS_CACHE_LOCK = threading.Lock()


class ReachabilityProber:
    """Checks that a URL answers with a 2xx status.

    A HEAD request is tried first; if it fails, one GET is tried. The
    boolean outcome is cached per URL.

    Args:
        session: HTTP session used for probing.
        timeout: Per-request timeout in seconds.
        cache: Cache mapping; defaults to the process-wide cache.
    """

    def __init__(
        self,
        session: requests.Session,
        timeout: float = REACHABILITY_TIMEOUT,
        cache: Optional[dict[str, bool]] = None,
    ):
        self.session = session
        self.timeout = timeout
        if cache is None:
            self._cache = _PROCESS_CACHE
            self._lock = _PROCESS_CACHE_LOCK
        else:
            self._cache = cache
            self._lock = threading.Lock()

    def _try(self, url: str, method: str) -> bool:
        try:
            resp = self.session.request(
                method, url, timeout=self.timeout, allow_redirects=True, stream=method == "GET",
            )
            ok = 200 <= resp.status_code < 300
            resp.close()
            return ok
        except requests.RequestException as e:
            logger.debug("%s probe failed for %s: %s", method, url, e)
            return False

    def is_reachable(self, url: str) -> bool:
        with self._lock:
            cached = self._cache.get(url)
        if cached is not None:
            return cached

        reachable = self._try(url, "HEAD") or self._try(url, "GET")
        if not reachable:
            logger.info("Dropping unreachable evidence URL: %s", url)
        with self._lock:
            self._cache[url] = reachable
        return reachable
