"""
Kinescope Integration Gateway — video hosting REST API.

All outbound HTTP calls to Kinescope go through this class.

  - Bearer token authentication
  - Retry: max 2 attempts on timeouts, network errors and 5xx, backoff 1 s → 2 s
  - Timeout: 30 s (configurable per call)
  - Structured GatewayResult returned to the service, which raises on failure

Testability: pass a mock `session` to KinescopeGateway() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

logger = logging.getLogger(__name__)

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 1
_RETRY_BACKOFF_SECONDS = [1, 2]

# ── Default request timeout ────────────────────────────────────────────────
_DEFAULT_TIMEOUT = 30


class GatewayResult:
    """Structured return value from gateway calls.

    Attributes:
        ok:             True if the call succeeded (HTTP 2xx + no exception).
        status_code:    HTTP status code (None if network-level failure).
        data:           Parsed JSON response body (dict or list), else None.
        error:          Response body or exception text on failure, else None.
        duration_ms:    Round-trip latency in milliseconds.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: dict | list | None,
        error: str | None,
        duration_ms: int,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms

    def __repr__(self):
        return f"<GatewayResult ok={self.ok} status={self.status_code}>"


class KinescopeGateway:
    """Kinescope REST API gateway.

    Usage:
        gw = KinescopeGateway(base_url=cfg["KINESCOPE_BASE_URL"], api_token=cfg["KINESCOPE_API_TOKEN"])
        result = gw.get_video("abc123")
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_token: str,
        session: requests.Session | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self._session: requests.Session | None = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict | None = None,
    ) -> GatewayResult:
        """Execute an authenticated request with retries. Never raises."""
        url = f"{self.base_url}{path}"
        last_error = "Unknown error"
        last_status: int | None = None

        for attempt in range(_RETRY_MAX + 1):
            kwargs: dict[str, Any] = {"headers": self._headers(), "timeout": self.timeout}
            if json_body is not None:
                kwargs["json"] = json_body
            try:
                t0 = time.perf_counter()
                resp = self.session.request(method, url, **kwargs)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code

                if resp.ok:
                    try:
                        data = resp.json() if resp.content else {}
                    except ValueError:
                        data = {}
                    return GatewayResult(True, resp.status_code, data, None, duration_ms)

                last_error = resp.text[:500] or resp.reason or ""
                if resp.status_code < 500:
                    # Client errors are not retried
                    return GatewayResult(False, resp.status_code, None, last_error, duration_ms)
                logger.warning(
                    "Kinescope request failed attempt=%d/%d status=%d url=%s",
                    attempt + 1, _RETRY_MAX + 1, resp.status_code, url,
                )

            except requests.Timeout:
                last_error = f"Request timed out after {self.timeout}s"
                logger.warning("Kinescope request timed out attempt=%d/%d url=%s", attempt + 1, _RETRY_MAX + 1, url)

            except requests.RequestException as exc:
                last_error = str(exc)[:500]
                logger.warning(
                    "Kinescope network error attempt=%d/%d url=%s error=%s",
                    attempt + 1, _RETRY_MAX + 1, url, last_error,
                )

            if attempt < _RETRY_MAX:
                time.sleep(_RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)])

        return GatewayResult(False, last_status, None, last_error, 0)

    # ── Kinescope operations ─────────────────────────────────────────────────

    def create_upload(self, *, project_id: str, title: str, metadata: dict) -> GatewayResult:
        return self.request(
            "POST", "/videos/upload",
            json_body={"project_id": project_id, "title": title, "metadata": metadata},
        )

    def get_video(self, video_id: str) -> GatewayResult:
        return self.request("GET", f"/videos/{video_id}")
