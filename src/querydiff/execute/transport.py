from __future__ import annotations

import os

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

PROXY_URL_ENV_VAR = "QUERYDIFF_PROXY_URL"
RETRY_TOTAL = 3
RETRY_BACKOFF_SECONDS = 0.4
# Query endpoints answer 429/503 while a shard is warming up.
RETRY_STATUS_CODES = (429, 502, 503, 504)
RETRY_METHODS = frozenset({"GET", "POST"})
_POOL_SIZE = 8


def resolve_proxy_url(proxy_url: str | None = None) -> str | None:
    """Explicit proxy first, then ``QUERYDIFF_PROXY_URL``; blanks mean no proxy."""
    value = os.getenv(PROXY_URL_ENV_VAR, "") if proxy_url is None else str(proxy_url)
    return value.strip() or None


def _retry_policy(total: int) -> Retry:
    return Retry(
        total=total,
        backoff_factor=RETRY_BACKOFF_SECONDS,
        status_forcelist=RETRY_STATUS_CODES,
        allowed_methods=RETRY_METHODS,
        raise_on_status=False,
    )


def build_session(
    *,
    proxy_url: str | None,
    user_agent: str | None = None,
    token: str | None = None,
    retry_total: int = RETRY_TOTAL,
) -> requests.Session:
    session = requests.Session()
    if proxy_url:
        session.proxies = {"http": proxy_url, "https": proxy_url}
        # Environment proxies would otherwise override the explicit one.
        session.trust_env = False

    adapter = HTTPAdapter(max_retries=_retry_policy(retry_total), pool_connections=_POOL_SIZE, pool_maxsize=_POOL_SIZE)
    for prefix in ("http://", "https://"):
        session.mount(prefix, adapter)

    headers = {}
    if user_agent:
        headers["User-Agent"] = user_agent
    if token:
        headers["Authorization"] = "Token " + token
    session.headers.update(headers)
    return session
