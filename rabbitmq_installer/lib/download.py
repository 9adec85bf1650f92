from __future__ import annotations

import logging
import time
from typing import Optional, Tuple

import requests

logger = logging.getLogger(__name__)


class DownloadError(RuntimeError):
    pass


def fetch(
    url: str,
    *,
    auth: Optional[Tuple[str, str]] = None,
    verify: bool = True,
    retries: int = 30,
    retry_delay_s: float = 6.0,
    timeout_s: float = 30.0,
) -> bytes:
    """GET a URL, retrying while the endpoint is not up yet (e.g. a broker still booting)."""

    last_error: Optional[str] = None
    for attempt in range(1, max(1, retries) + 1):
        try:
            r = requests.get(url, auth=auth, verify=verify, timeout=timeout_s)
            if r.status_code < 400 and r.content:
                logger.info("Downloaded %s (%d bytes)", url, len(r.content))
                return r.content
            last_error = f"HTTP {r.status_code}"
            if r.status_code in (401, 403, 404):
                break
        except requests.RequestException as e:
            last_error = str(e)

        if attempt < retries:
            logger.info("Download of %s failed (%s); retry %d/%d", url, last_error, attempt, retries)
            time.sleep(retry_delay_s)

    raise DownloadError(f"Could not download {url}: {last_error}")
