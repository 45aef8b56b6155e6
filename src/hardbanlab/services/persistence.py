"""Persistence gateways exchanging full application snapshots.

Every save is an idempotent full replace; there are no partial updates.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Protocol

import httpx

from ..domain.models import Snapshot
from ..errors import PersistenceError

__all__ = [
    "PersistenceGateway",
    "HttpPersistenceGateway",
    "JsonFilePersistenceGateway",
    "DEFAULT_BACKEND_URL",
]

LOGGER = logging.getLogger(__name__)
DEFAULT_BACKEND_URL = "http://localhost:3001/api"
_SNAPSHOT_VERSION = 1


class PersistenceGateway(Protocol):
    """Remote store for the application snapshot."""

    async def fetch_snapshot(self) -> Snapshot:  # pragma: no cover - protocol stub
        ...

    async def save_snapshot(self, snapshot: Snapshot) -> None:  # pragma: no cover - protocol stub
        ...


class HttpPersistenceGateway:
    """Talks to the dashboard backend over HTTP.

    ``GET {base_url}/data`` returns the snapshot; ``PUT {base_url}/data``
    replaces it. Any transport error or non-2xx response surfaces as
    :class:`PersistenceError`.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BACKEND_URL,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = 15.0,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=dict(headers or {}))

    @property
    def data_url(self) -> str:
        return f"{self._base_url}/data"

    async def fetch_snapshot(self) -> Snapshot:
        LOGGER.debug("Fetching snapshot from %s", self.data_url)
        response = await self._send("GET", self.data_url)
        try:
            payload = response.json()
        except ValueError as exc:
            raise PersistenceError(f"Backend returned invalid JSON: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise PersistenceError("Backend snapshot payload is not an object")
        return Snapshot.from_payload(payload)

    async def save_snapshot(self, snapshot: Snapshot) -> None:
        payload = snapshot.to_payload()
        LOGGER.debug(
            "Saving snapshot to %s (%d release(s), %d book(s))",
            self.data_url,
            len(snapshot.releases),
            len(snapshot.books),
        )
        await self._send("PUT", self.data_url, json=payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise PersistenceError(f"{method} {url} failed: {exc}") from exc
        if response.is_error:
            body = response.text[:200]
            LOGGER.error("Backend %s %s returned %s: %s", method, url, response.status_code, body)
            raise PersistenceError(
                f"{method} {url} returned HTTP {response.status_code} ({response.reason_phrase})",
                status_code=response.status_code,
            )
        return response


class JsonFilePersistenceGateway:
    """Keeps the snapshot in a local JSON file written atomically."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    async def fetch_snapshot(self) -> Snapshot:
        payload = self._read_payload()
        return Snapshot.from_payload(payload)

    async def save_snapshot(self, snapshot: Snapshot) -> None:
        payload = dict(snapshot.to_payload())
        payload["version"] = _SNAPSHOT_VERSION
        body = json.dumps(payload, indent=2, ensure_ascii=False)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Snapshot written to %s", self._path)

    def _read_payload(self) -> dict[str, Any]:
        if not self._path.exists():
            LOGGER.info("Snapshot file %s does not exist yet; starting empty", self._path)
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Snapshot file {self._path} is not valid JSON: {exc}") from exc
        if not isinstance(data, Mapping):
            raise PersistenceError(f"Snapshot file {self._path} does not hold an object")
        return dict(data)
