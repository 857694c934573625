# src/tasksync/remote/parse_client.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.errors import NotFoundError, PermanentError, StaleRevisionError, TransientError
from ..tasks.task_models import RemoteRecord

logger = logging.getLogger(__name__)

TASK_CLASS_PATH = "/classes/Task"

_TRANSIENT_STATUS = {408, 425, 429}
_STALE_STATUS = {409, 412}

# Parse caps an unqualified query at 100 results; list pages explicitly.
LIST_PAGE_SIZE = 100


def _make_timeout_obj(timeout_s: float) -> httpx.Timeout:
    """Same budget for connect/read/write/pool: the core enforces the overall deadline."""
    return httpx.Timeout(timeout_s)


def _error_text(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text.strip()[:200]
    if isinstance(body, dict):
        code = body.get("code")
        msg = body.get("error") or body.get("message") or ""
        return f"{msg} (code {code})" if code is not None else str(msg)
    return str(body)[:200]


def _record_from_json(data: dict[str, Any], *, fallback_id: str | None = None, fallback: dict[str, Any] | None = None) -> RemoteRecord:
    """
    Build a RemoteRecord from a Parse object.

    Parse write responses only echo objectId/createdAt/updatedAt, so fields
    missing from `data` are taken from `fallback` (what we just sent).
    """
    merged: dict[str, Any] = dict(fallback or {})
    merged.update({k: v for k, v in data.items() if v is not None})
    task_id = merged.get("objectId") or fallback_id
    if not task_id:
        raise PermanentError("Remote response carries no objectId")
    try:
        revision = int(merged.get("revision") or 1)
    except (TypeError, ValueError):
        revision = 1
    return RemoteRecord(
        id=str(task_id),
        title=str(merged.get("title") or ""),
        done=bool(merged.get("done", False)),
        revision=revision,
    )


class ParseTaskStore:
    """
    RemoteTaskStore over the Parse / Back4App REST API.

    - App id, REST key and the optional session token travel as X-Parse-* headers;
      the session token is forwarded exactly as given.
    - Revisions live in a numeric "revision" column. Writes send the expected
      revision as If-Match; the backend (a beforeSave trigger on Back4App) answers
      409/412 when it is stale.
    - No retries here: the sync core owns retry/backoff.
    """

    def __init__(
            self,
            *,
            server_url: str,
            app_id: str,
            rest_api_key: str = "",
            session_token: str | None = None,
            timeout_s: float = 1.0,
            page_size: int = LIST_PAGE_SIZE,
            transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not server_url.strip():
            raise RuntimeError("Remote server URL is not set. Set TASKSYNC_SERVER_URL in your .env.")
        if not app_id.strip():
            raise RuntimeError("Parse application id is not set. Set TASKSYNC_APP_ID in your .env.")

        self._page_size = max(1, int(page_size))

        headers = {
            "X-Parse-Application-Id": app_id,
            "Content-Type": "application/json",
        }
        if rest_api_key:
            headers["X-Parse-REST-API-Key"] = rest_api_key
        if session_token:
            headers["X-Parse-Session-Token"] = session_token

        self._client = httpx.AsyncClient(
            base_url=server_url.rstrip("/"),
            headers=headers,
            timeout=_make_timeout_obj(timeout_s),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, **kwargs: Any) -> ParseTaskStore:
        return cls(
            server_url=str(getattr(settings, "server_url", "") or ""),
            app_id=str(getattr(settings, "app_id", "") or ""),
            rest_api_key=str(getattr(settings, "rest_api_key", "") or ""),
            session_token=getattr(settings, "session_token", None),
            timeout_s=float(getattr(settings, "request_timeout_seconds", 1.0)),
            **kwargs,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- transport ----

    async def _request(
            self,
            method: str,
            path: str,
            *,
            task_id: str | None = None,
            json: dict[str, Any] | None = None,
            revision: int | None = None,
            params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        headers = {"If-Match": f'"{revision}"'} if revision is not None else None
        try:
            resp = await self._client.request(method, path, json=json, headers=headers, params=params)
        except httpx.TimeoutException as e:
            raise TransientError(f"{method} {path}: timeout") from e
        except httpx.TransportError as e:
            raise TransientError(f"{method} {path}: {e.__class__.__name__}: {e}") from e

        logger.debug("%s %s -> %s", method, path, resp.status_code)
        status = resp.status_code
        if status < 400:
            return resp

        detail = _error_text(resp)
        if status == 404:
            raise NotFoundError(task_id or path, f"{method} {path}: not found: {detail}")
        if status in _STALE_STATUS:
            raise StaleRevisionError(task_id or path, revision)
        if status in _TRANSIENT_STATUS or status >= 500:
            raise TransientError(f"{method} {path}: HTTP {status}: {detail}", status_code=status)
        raise PermanentError(f"{method} {path}: HTTP {status}: {detail}", status_code=status)

    # ---- RemoteTaskStore ----

    async def create_task(self, fields: dict[str, Any]) -> RemoteRecord:
        body = {"title": fields.get("title"), "done": bool(fields.get("done", False)), "revision": 1}
        resp = await self._request("POST", TASK_CLASS_PATH, json=body)
        return _record_from_json(resp.json(), fallback=body)

    async def list_tasks(self) -> list[RemoteRecord]:
        out: list[RemoteRecord] = []
        skip = 0
        while True:
            resp = await self._request(
                "GET",
                TASK_CLASS_PATH,
                params={"order": "objectId", "limit": self._page_size, "skip": skip},
            )
            data = resp.json()
            results = data.get("results", []) if isinstance(data, dict) else []
            for item in results:
                if not isinstance(item, dict) or not item.get("objectId"):
                    logger.warning("Skipping malformed Task object from remote: %r", item)
                    continue
                out.append(_record_from_json(item))
            if len(results) < self._page_size:
                return out
            skip += len(results)

    async def fetch_task(self, task_id: str) -> RemoteRecord | None:
        try:
            resp = await self._request("GET", f"{TASK_CLASS_PATH}/{task_id}", task_id=task_id)
        except NotFoundError:
            return None
        return _record_from_json(resp.json(), fallback_id=task_id)

    async def update_task(self, task_id: str, fields: dict[str, Any], *, revision: int | None) -> RemoteRecord:
        new_revision = (revision or 0) + 1
        body = {**fields, "revision": new_revision}
        resp = await self._request("PUT", f"{TASK_CLASS_PATH}/{task_id}", task_id=task_id, json=body, revision=revision)
        # PUT echoes only updatedAt: return what the object is now known to hold.
        return _record_from_json(resp.json(), fallback_id=task_id, fallback={"objectId": task_id, **body})

    async def delete_task(self, task_id: str, *, revision: int | None) -> None:
        await self._request("DELETE", f"{TASK_CLASS_PATH}/{task_id}", task_id=task_id, revision=revision)
