from __future__ import annotations

import logging
import threading
import time
from typing import Dict, Optional, Tuple

import requests

from bookclub_catalog.core.errors import CatalogHttpError, CatalogUnavailable

DEFAULT_ENDPOINT = "https://www.aladin.co.kr/ttb/api/ItemSearch.aspx"
DEFAULT_API_KEY_PARAM = "ttbkey"
USER_AGENT = "bookclub-catalog/1.0"

logger = logging.getLogger(__name__)


def _safe_body_preview(resp: requests.Response, limit: int = 800) -> str:
    try:
        text = resp.text or ""
    except Exception:
        return "<unavailable>"
    text = text.replace("\r", " ").replace("\n", " ").strip()
    if len(text) > limit:
        return text[:limit].rstrip() + "..."
    return text


class TokenBucket:
    def __init__(self, rate_per_sec: float, burst: int) -> None:
        self.rate = max(0.01, float(rate_per_sec))
        self.capacity = max(1, int(burst))
        self.tokens = float(self.capacity)
        self.lock = threading.Lock()
        self.last = time.monotonic()

    def take(self, n: float = 1.0) -> None:
        while True:
            with self.lock:
                now = time.monotonic()
                elapsed = now - self.last
                self.last = now
                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
                if self.tokens >= n:
                    self.tokens -= n
                    return
                need = (n - self.tokens) / self.rate
            time.sleep(min(0.25, max(0.01, need)))


def make_catalog_session() -> requests.Session:
    s = requests.Session()
    s.headers.update({
        "Accept": "application/json, text/javascript;q=0.9, */*;q=0.5",
        "User-Agent": USER_AGENT,
    })
    return s


def build_search_request(
    endpoint: str,
    query: str,
    page: int,
    page_size: int,
    *,
    api_key: Optional[str] = None,
    api_key_param: str = DEFAULT_API_KEY_PARAM,
) -> Tuple[str, Dict[str, str]]:
    params: Dict[str, str] = {"query": query, "page": str(page), "size": str(page_size)}
    if api_key:
        params[api_key_param or DEFAULT_API_KEY_PARAM] = api_key
    return endpoint, params


def _redact(params: Dict[str, str], secret_key: str) -> Dict[str, str]:
    if secret_key in params:
        return {**params, secret_key: "***"}
    return params


class CatalogClient:
    """
    Blocking client for the external book-search API.

    fetch_page returns the raw response text; decoding is left to the caller because the
    catalog does not always emit valid JSON. No retries here: a timeout or connection
    failure raises CatalogUnavailable, a non-2xx status raises CatalogHttpError.
    """

    def __init__(
        self,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        api_key: Optional[str] = None,
        api_key_param: str = DEFAULT_API_KEY_PARAM,
        timeout_s: float = 5.0,
        limiter: Optional[TokenBucket] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.endpoint = endpoint
        self.api_key = api_key
        self.api_key_param = api_key_param or DEFAULT_API_KEY_PARAM
        self.timeout_s = timeout_s
        self.limiter = limiter
        self.session = session or make_catalog_session()

    def fetch_page(self, query_text: str, page: int, page_size: int) -> str:
        url, params = build_search_request(
            self.endpoint,
            query_text,
            page,
            page_size,
            api_key=self.api_key,
            api_key_param=self.api_key_param,
        )
        if self.limiter is not None:
            self.limiter.take(1.0)

        logger.debug(
            "request | method=GET | url=%s | params=%s",
            url,
            _redact(params, self.api_key_param),
        )
        try:
            r = self.session.get(url, params=params, timeout=self.timeout_s)
        except requests.Timeout as e:
            logger.warning("catalog timeout | url=%s | query=%s | page=%s", url, query_text, page)
            raise CatalogUnavailable(f"catalog request timed out after {self.timeout_s}s") from e
        except requests.RequestException as e:
            logger.warning("catalog unreachable | url=%s | query=%s | page=%s | err=%r", url, query_text, page, e)
            raise CatalogUnavailable(f"catalog request failed: {e}") from e

        if not 200 <= r.status_code < 300:
            preview = _safe_body_preview(r)
            logger.error(
                "http error | status=%s | url=%s | query=%s | page=%s | body=%s",
                r.status_code,
                url,
                query_text,
                page,
                preview,
            )
            raise CatalogHttpError(r.status_code, preview)

        # text/javascript without a charset makes requests fall back to latin-1
        if not r.encoding or r.encoding.lower() == "iso-8859-1":
            r.encoding = "utf-8"
        return r.text or ""
