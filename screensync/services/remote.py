import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Any

import aiohttp

from screensync.services.errors import REMOTE_TOKEN_NOT_CONFIGURED

logger = logging.getLogger(__name__)

REMOTE_BASE_URL = (os.getenv("SCREENSYNC_REMOTE_BASE_URL", "https://app.yodeck.com/api/v2") or "").strip().rstrip("/")
REMOTE_TOKEN = (os.getenv("SCREENSYNC_REMOTE_TOKEN", "") or "").strip()
REMOTE_TIMEOUT_SEC = float(os.getenv("SCREENSYNC_REMOTE_TIMEOUT_SEC", "20"))
ERROR_BODY_PREVIEW = 200


@dataclass
class RemoteResponse:
    ok: bool
    data: Any = None
    error: str | None = None
    status: int | None = None


def parse_response(status: int, body: str) -> RemoteResponse:
    preview = (body or "")[:ERROR_BODY_PREVIEW]
    if status < 200 or status >= 300:
        return RemoteResponse(ok=False, status=status, error=f"HTTP {status}: {preview}")
    stripped = (body or "").lstrip()
    if not stripped:
        return RemoteResponse(ok=True, status=status, data=None)
    if stripped.startswith("<"):
        return RemoteResponse(ok=False, status=status, error="Remote API returned HTML instead of JSON")
    try:
        data = json.loads(stripped)
    except ValueError:
        return RemoteResponse(ok=False, status=status, error=f"Invalid JSON from remote API: {preview}")
    return RemoteResponse(ok=True, status=status, data=data)


class RemotePlatform:
    """Thin async client for the playback platform's REST API.

    Every call returns a `RemoteResponse`; transport problems are reported
    through `ok`/`error` rather than raised.
    """

    def __init__(
        self,
        base_url: str = REMOTE_BASE_URL,
        token: str = REMOTE_TOKEN,
        timeout_sec: float = REMOTE_TIMEOUT_SEC,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.token = token
        self.timeout_sec = timeout_sec
        self._session: aiohttp.ClientSession | None = None

    @property
    def configured(self) -> bool:
        return bool(self.token and self.base_url)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Token {self.token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_sec))
        return self._session

    async def request(self, path: str, method: str = "GET", body: Any = None) -> RemoteResponse:
        if not self.configured:
            return RemoteResponse(ok=False, error=REMOTE_TOKEN_NOT_CONFIGURED)
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            session = await self._get_session()
            async with session.request(method, url, headers=self._headers(), json=body) as resp:
                status = resp.status
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("remote %s %s failed: %s", method, path, exc)
            return RemoteResponse(ok=False, error=str(exc) or exc.__class__.__name__)
        result = parse_response(status, text)
        if not result.ok:
            logger.info("remote %s %s -> %s", method, path, result.error)
        return result

    async def fetch_bytes(self, url: str) -> bytes | None:
        try:
            session = await self._get_session()
            async with session.get(url) as resp:
                if resp.status != 200:
                    logger.info("screenshot fetch %s -> HTTP %s", url, resp.status)
                    return None
                return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("screenshot fetch %s failed: %s", url, exc)
            return None

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
