"""
Shared HTTP plumbing for the collaborator gateways.

  - One lazily created requests.Session per gateway
  - Retry: max 2 attempts on network errors and 5xx, backoff 0.5 s → 2 s
  - Timeout: GATEWAY_TIMEOUT from app config (default 10 s)
  - 4xx responses are returned as-is; the caller decides what they mean

Testability: pass a mock ``session`` to the gateway constructor, or patch the
public methods on the module-level singletons.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests
from flask import current_app

logger = logging.getLogger(__name__)

_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [0.5, 2]
_DEFAULT_TIMEOUT = 10


class GatewayError(Exception):
    """Raised when a collaborator could not be reached or kept failing."""

    def __init__(self, service: str, message: str, status_code: int | None = None) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")


class HttpGateway:
    """Base class: configured base URL + retrying request dispatcher."""

    service_name = "service"
    base_url_config_key = ""

    def __init__(self, session: requests.Session | None = None) -> None:
        self._session: requests.Session | None = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _url(self, path: str) -> str:
        base = (current_app.config.get(self.base_url_config_key) or "").rstrip("/")
        if not base:
            raise GatewayError(self.service_name, f"{self.base_url_config_key} is not configured")
        return f"{base}/{path.lstrip('/')}"

    def _timeout(self) -> int:
        return current_app.config.get("GATEWAY_TIMEOUT", _DEFAULT_TIMEOUT)

    def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict | None = None,
        json_body: Any = None,
    ) -> requests.Response:
        """Execute a request with retries on transport errors and 5xx.

        Returns:
            The final requests.Response (any status < 500).

        Raises:
            GatewayError: when every attempt failed at transport level or
                          with a 5xx status.
        """
        url = self._url(path)
        kwargs: dict[str, Any] = {
            "headers": {"Accept": "application/json", **(headers or {})},
            "timeout": self._timeout(),
        }
        if json_body is not None:
            kwargs["json"] = json_body

        last_error = "Unknown error"
        last_status: int | None = None
        for attempt in range(_RETRY_MAX + 1):
            try:
                t0 = time.perf_counter()
                resp = self.session.request(method, url, **kwargs)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                if resp.status_code < 500:
                    logger.debug(
                        "%s %s %s → %d (%dms)",
                        self.service_name, method, url, resp.status_code, duration_ms,
                    )
                    return resp
                last_status = resp.status_code
                last_error = f"HTTP {resp.status_code}"
            except requests.RequestException as exc:
                last_status = None
                last_error = str(exc)

            if attempt < _RETRY_MAX:
                logger.warning(
                    "%s call failed (attempt %d/%d): %s — retrying",
                    self.service_name, attempt + 1, _RETRY_MAX + 1, last_error,
                )
                time.sleep(_RETRY_BACKOFF_SECONDS[attempt])

        raise GatewayError(self.service_name, last_error, status_code=last_status)
