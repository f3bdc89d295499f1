"""HTTP health probe for the overlay server."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

import requests

from .overlay_server import HEALTH_PATH, SERVICE_NAME
from .state import DEFAULT_SERVER_PORT

_USER_AGENT = "FlyScore/health-check"


@dataclass(frozen=True)
class HealthStatus:
    """Outcome of a health probe."""

    url: str
    reachable: bool
    checked_at: float
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def healthy(self) -> bool:
        return self.reachable and self.status_code == 200 and self.error is None


def health_url(port: int = DEFAULT_SERVER_PORT, host: str = "127.0.0.1") -> str:
    return f"http://{host}:{int(port)}{HEALTH_PATH}"


def probe_overlay_server(port: int = DEFAULT_SERVER_PORT, host: str = "127.0.0.1", timeout: float = 1.0) -> HealthStatus:
    url = health_url(port, host)
    checked_at = time.time()
    session = requests.Session()
    # Local probe; proxies from the environment must not apply.
    session.trust_env = False
    session.headers["User-Agent"] = _USER_AGENT
    try:
        response = session.get(url, timeout=timeout)
    except requests.RequestException as exc:
        return HealthStatus(url=url, reachable=False, checked_at=checked_at, error=str(exc))
    finally:
        session.close()

    try:
        error: Optional[str] = None
        if response.status_code != 200:
            error = f"HTTP {response.status_code}"
        else:
            try:
                payload = response.json()
            except ValueError as exc:
                payload = None
                error = f"Unable to parse health response: {exc}"
            if error is None and (not isinstance(payload, dict) or payload.get("service") != SERVICE_NAME):
                error = "Unexpected service answered the health check"
        return HealthStatus(
            url=url,
            reachable=True,
            checked_at=checked_at,
            status_code=response.status_code,
            error=error,
        )
    finally:
        response.close()
