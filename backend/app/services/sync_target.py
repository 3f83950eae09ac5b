"""HTTP client for the online deployment's sync endpoints.

The authoring deployment pushes draft snapshots to ``<SYNC_TARGET_URL>/sync/push``
and pulls production versions back from ``/sync/versions`` and
``/sync/snapshot``, authenticating with ``X-API-Key``.
"""
import logging
from typing import Any, Optional

import httpx

from app.config import settings
from app.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)


class SyncTargetError(Exception):
    """Non-2xx answer from the target, or no answer at all (``status_code`` 0)."""

    def __init__(self, status_code: int, message: str, body: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.body = body or {}

    @property
    def need_confirm(self) -> bool:
        return bool(self.body.get("need_confirm"))

    @property
    def target_id(self) -> Optional[int]:
        return self.body.get("target_app_version_name_id")

    @property
    def details(self) -> list:
        return list(self.body.get("details") or [])


def _error_body(resp: httpx.Response) -> dict[str, Any]:
    try:
        parsed = resp.json()
    except ValueError:
        return {}
    if not isinstance(parsed, dict):
        return {}
    # FastAPI wraps HTTPException payloads in "detail".
    detail = parsed.get("detail", parsed)
    return detail if isinstance(detail, dict) else {"error": str(detail)}


class SyncTargetClient:
    def __init__(self, base_url: str, api_key: str, timeout: float = 20, http: Optional[httpx.Client] = None):
        base = base_url.strip().rstrip("/")
        if base.endswith("/sync/push"):
            base = base[: -len("/sync/push")]
        self.base_url = base
        self.api_key = api_key.strip()
        self.timeout = timeout
        self.http = http

    def _request(self, method: str, path: str, fallback: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        headers = {"X-API-Key": self.api_key}
        try:
            if self.http is not None:
                resp = self.http.request(method, url, headers=headers, **kwargs)
            else:
                with httpx.Client(timeout=self.timeout) as http:
                    resp = http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise SyncTargetError(0, fallback) from exc

        if resp.status_code >= 300:
            body = _error_body(resp)
            message = (body.get("error") or body.get("reason") or "").strip() or fallback
            logger.warning("%s %s answered %s: %s", method, url, resp.status_code, message)
            raise SyncTargetError(resp.status_code, message, body)
        try:
            return resp.json()
        except ValueError as exc:
            raise SyncTargetError(resp.status_code, f"{fallback}: unreadable response") from exc

    def push(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/sync/push", "sync failed", json=payload)

    def list_versions(self) -> list[dict[str, Any]]:
        return self._request("GET", "/sync/versions", "pull versions failed").get("data") or []

    def snapshot(self, target_id: Optional[int] = None, app_version_name: Optional[str] = None) -> dict[str, Any]:
        params = {"target_app_version_name_id": target_id} if target_id else {"app_version_name": app_version_name}
        return self._request("GET", "/sync/snapshot", "pull snapshot failed", params=params).get("data") or {}


def get_sync_target() -> Optional[SyncTargetClient]:
    """FastAPI dependency: the configured target, or None for a single-database deployment."""
    if not settings.SYNC_TARGET_URL.strip():
        return None
    if not settings.SYNC_API_KEY.strip():
        raise ServiceUnavailableError("sync api key not configured")
    return SyncTargetClient(settings.SYNC_TARGET_URL, settings.SYNC_API_KEY, settings.SYNC_TIMEOUT_SECONDS)
