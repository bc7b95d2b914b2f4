from __future__ import annotations

import logging
import time
from typing import Callable

import requests

log = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
TIMEOUT = (5, 30)  # connect timeout 5s, read timeout 30s


def is_2xx(status_code: int) -> bool:
    return 200 <= status_code < 300


def send_with_retry(
    endpoint: str,
    payload: dict,
    is_success: Callable[[int], bool] = is_2xx,
    *,
    label: str = "webhook",
    max_attempts: int = MAX_ATTEMPTS,
    sleep: Callable[[float], None] | None = None,
    timeout: tuple[float, float] = TIMEOUT,
) -> bool:
    """
    POST a JSON payload, retrying with exponential backoff.

    Non-2xx responses do not raise; is_success decides from the status code.
    Before retry n (1-based) waits 2**n seconds: 2s, then 4s.

    Returns:
        True once a response satisfies is_success, False after the last
        attempt fails. Never raises.
    """
    sleep = sleep or time.sleep
    last_error = "no attempts made"
    for attempt in range(1, max_attempts + 1):
        try:
            response = requests.post(endpoint, json=payload, timeout=timeout)
            if is_success(response.status_code):
                log.info(f"{label} notification sent successfully.")
                return True
            last_error = f"{label} responded with status: {response.status_code}"
        except requests.RequestException as e:
            last_error = f"{type(e).__name__}: {e}"

        log.warning(f"{label} attempt {attempt}/{max_attempts} failed: {last_error}")
        if attempt < max_attempts:
            backoff = 2 ** attempt
            log.info(f"Retrying {label} in {backoff}s...")
            sleep(backoff)

    log.error(f"All retries failed for {label}. Last error: {last_error}")
    return False
