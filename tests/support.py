import asyncio
import copy
import re
from typing import Any
from urllib.parse import parse_qs, urlsplit

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from screensync.db import Base
from screensync.models import advertising, location, screen_sync, setting  # noqa: F401
from screensync.models.screen import Screen
from screensync.services.baseline import BaselineResolver
from screensync.services.proof import ProofEngine, RetryPolicy
from screensync.services.reconciler import PlaybackReconciler
from screensync.services.remote import RemoteResponse
from screensync.services.remote_state import RemoteStateReader

BASELINE_ID = "100"


async def no_sleep(_delay: float) -> None:
    return None


def make_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def add_screen(db, code: str = "SCR-001", device_id: str | None = "5001", **kwargs) -> Screen:
    screen = Screen(code=code, name=kwargs.pop("name", f"Screen {code}"), device_id=device_id, **kwargs)
    db.add(screen)
    db.commit()
    db.refresh(screen)
    return screen


def baseline_items(*media_ids: int) -> list[dict[str, Any]]:
    return [
        {"id": 700 + index, "type": "media", "duration": 10, "media": {"id": media_id, "name": f"baseline-{media_id}"}}
        for index, media_id in enumerate(media_ids)
    ]


class FakeRemote:
    """In-memory stand-in for the playback platform API."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.screens: dict[str, dict[str, Any]] = {}
        self.playlists: dict[str, dict[str, Any]] = {}
        self.screenshots: dict[str, bytes] = {}
        self.calls: list[tuple[str, str, Any]] = []
        self.fetched_urls: list[str] = []
        self.failures: list[tuple[str, re.Pattern, str]] = []
        self.ignore_assign = False
        self.drop_writes = False
        self._next_id = 2000

    def add_screen(
        self,
        device_id: str,
        source_type: str | None = None,
        source_id: str | None = None,
        online: bool = True,
        screenshot_url: str | None = None,
    ) -> dict[str, Any]:
        payload = {
            "id": int(device_id),
            "name": f"device-{device_id}",
            "is_online": online,
            "screenshot_url": screenshot_url,
            "screen_content": {
                "source_type": source_type,
                "source_id": int(source_id) if source_id and source_id.isdigit() else source_id,
                "source_name": None,
            },
        }
        self.screens[str(device_id)] = payload
        return payload

    def add_playlist(self, playlist_id: str, name: str, items: list[dict[str, Any]] | None = None) -> dict[str, Any]:
        payload = {"id": int(playlist_id), "name": name, "items": list(items or [])}
        self.playlists[str(playlist_id)] = payload
        return payload

    def fail_on(self, method: str, pattern: str, error: str = "boom") -> None:
        self.failures.append((method.upper(), re.compile(pattern), error))

    def calls_matching(self, method: str, pattern: str) -> list[tuple[str, str, Any]]:
        regex = re.compile(pattern)
        return [call for call in self.calls if call[0] == method.upper() and regex.search(call[1])]

    def source_of(self, device_id: str) -> tuple[str | None, str | None]:
        content = self.screens[str(device_id)]["screen_content"]
        source_id = content.get("source_id")
        return content.get("source_type"), str(source_id) if source_id is not None else None

    async def request(self, path: str, method: str = "GET", body: Any = None) -> RemoteResponse:
        await asyncio.sleep(0)
        method = method.upper()
        self.calls.append((method, path, copy.deepcopy(body)))
        if not self.configured:
            return RemoteResponse(ok=False, error="REMOTE_TOKEN_NOT_CONFIGURED")
        for fail_method, regex, error in self.failures:
            if fail_method == method and regex.search(path):
                return RemoteResponse(ok=False, status=500, error=error)
        return self._route(method, path, body)

    def _route(self, method: str, path: str, body: Any) -> RemoteResponse:
        match = re.fullmatch(r"/screens/([^/]+)/(restart/|push/)?", path)
        if match:
            device_id, action = match.group(1), match.group(2)
            screen = self.screens.get(device_id)
            if screen is None:
                return RemoteResponse(ok=False, status=404, error="HTTP 404: not found")
            if action:
                return RemoteResponse(ok=True, status=200, data={"ok": True})
            if method == "PATCH":
                if not self.ignore_assign:
                    screen["screen_content"].update(body["screen_content"])
                return RemoteResponse(ok=True, status=200, data=copy.deepcopy(screen))
            return RemoteResponse(ok=True, status=200, data=copy.deepcopy(screen))

        if path.startswith("/playlists/?"):
            query = parse_qs(urlsplit(path).query).get("search", [""])[0].lower()
            results = [
                {"id": playlist["id"], "name": playlist["name"]}
                for playlist in self.playlists.values()
                if query in playlist["name"].lower()
            ]
            return RemoteResponse(ok=True, status=200, data={"count": len(results), "results": results})

        if path == "/playlists/" and method == "POST":
            new_id = str(self._next_id)
            self._next_id += 1
            created = self.add_playlist(new_id, body["name"], body.get("items"))
            return RemoteResponse(ok=True, status=201, data=copy.deepcopy(created))

        match = re.fullmatch(r"/playlists/([^/]+)/", path)
        if match:
            playlist = self.playlists.get(match.group(1))
            if playlist is None:
                return RemoteResponse(ok=False, status=404, error="HTTP 404: not found")
            if method == "PATCH" and not self.drop_writes:
                playlist["items"] = copy.deepcopy(body["items"])
            return RemoteResponse(ok=True, status=200, data=copy.deepcopy(playlist))

        return RemoteResponse(ok=False, status=404, error=f"HTTP 404: no route for {method} {path}")

    async def fetch_bytes(self, url: str) -> bytes | None:
        await asyncio.sleep(0)
        self.fetched_urls.append(url)
        parts = urlsplit(url)
        return self.screenshots.get(f"{parts.scheme}://{parts.netloc}{parts.path}")

    async def close(self) -> None:
        return None


def make_reconciler(remote: FakeRemote, session_factory, baseline_id: str = BASELINE_ID, **kwargs) -> PlaybackReconciler:
    reader = RemoteStateReader(remote)
    proof_engine = ProofEngine(
        remote,
        reader,
        policy=RetryPolicy(delays=(0, 0, 0), total_timeout=5, sleep=no_sleep),
    )
    return PlaybackReconciler(
        remote,
        session_factory=session_factory,
        baseline=BaselineResolver(remote, playlist_id=baseline_id),
        reader=reader,
        proof_engine=proof_engine,
        **kwargs,
    )
