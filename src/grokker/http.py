from __future__ import annotations

from dataclasses import dataclass
import logging
from random import random
from time import sleep
from typing import Any

import httpx

LOGGER = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 0
    base_seconds: float = 1.0
    max_seconds: float = 30.0


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in TRANSIENT_STATUS_CODES
    return isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError))


def post_json(
    url: str,
    *,
    payload: dict[str, Any],
    api_key: str = "",
    timeout_seconds: float = 30.0,
    retry: RetryPolicy | None = None,
) -> dict[str, Any]:
    """POST a JSON payload and return the decoded JSON object.

    Transient failures are retried with exponential backoff and jitter up to
    ``retry.max_retries`` times; the last error is re-raised unchanged.
    """
    policy = retry or RetryPolicy()
    headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
    delay = policy.base_seconds
    attempt = 1

    while True:
        try:
            response = httpx.post(url, json=payload, headers=headers, timeout=timeout_seconds)
            response.raise_for_status()
            break
        except httpx.HTTPError as exc:
            if attempt > policy.max_retries or not is_transient(exc):
                raise
            LOGGER.debug(
                "POST %s failed attempt=%d error=%r; retrying in %.1fs", url, attempt, exc, delay
            )
            sleep(delay + random() * 0.2 * delay)
            delay = min(delay * 2, policy.max_seconds)
            attempt += 1

    body = response.json()
    if not isinstance(body, dict):
        raise ValueError(f"Invalid payload from {url}: expected a JSON object")
    return body
