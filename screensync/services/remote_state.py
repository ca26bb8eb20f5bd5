import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote

from screensync.services.errors import REMOTE_SOURCE_FETCH_FAILED
from screensync.services.remote import RemotePlatform
from screensync.services.results import ActualSource, RemotePlaylist

logger = logging.getLogger(__name__)

SOURCE_PLAYLIST = "playlist"


def parse_timestamp(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_online(data: dict[str, Any], now: datetime, threshold_sec: int) -> tuple[bool, datetime | None]:
    """Derive online state from a remote screen payload.

    A last-seen timestamp wins over the platform's own boolean flags, which
    tend to lag behind.
    """
    last_seen = parse_timestamp(data.get("last_seen_online") or data.get("last_seen"))
    if last_seen is not None:
        return (now - last_seen) <= timedelta(seconds=threshold_sec), last_seen
    for flag in (data.get("is_online"), data.get("online"), (data.get("state") or {}).get("online")):
        if flag is not None:
            return flag is True, None
    return False, None


def assign_payload(playlist_id: str) -> dict[str, Any]:
    return {"screen_content": {"source_type": SOURCE_PLAYLIST, "source_id": _as_remote_id(playlist_id)}}


def _as_remote_id(value: str) -> int | str:
    text = str(value)
    return int(text) if text.isdigit() else text


def _items_of(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, dict):
        items = data.get("items")
    else:
        items = data
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


class RemoteStateReader:
    """Fresh reads of what the platform says a device is playing.

    Nothing here is cached: every call goes to the remote API.
    """

    def __init__(self, remote: RemotePlatform, online_threshold_sec: int = 300):
        self.remote = remote
        self.online_threshold_sec = online_threshold_sec

    async def read_playlist(self, playlist_id: str) -> RemotePlaylist:
        resp = await self.remote.request(f"/playlists/{playlist_id}/")
        if not resp.ok or not isinstance(resp.data, dict):
            return RemotePlaylist(ok=False, id=str(playlist_id), error=resp.error or "invalid playlist payload")
        return RemotePlaylist(
            ok=True,
            id=str(resp.data.get("id") or playlist_id),
            name=resp.data.get("name"),
            items=_items_of(resp.data),
        )

    async def read_source(self, device_id: str) -> ActualSource:
        resp = await self.remote.request(f"/screens/{device_id}/")
        if not resp.ok or not isinstance(resp.data, dict):
            logger.info("source read for device %s failed: %s", device_id, resp.error)
            return ActualSource(ok=False, error=REMOTE_SOURCE_FETCH_FAILED)

        data = resp.data
        content = data.get("screen_content") or {}
        source_id = content.get("source_id")
        online, last_seen = parse_online(
            data,
            datetime.now(timezone.utc).replace(tzinfo=None),
            self.online_threshold_sec,
        )
        source = ActualSource(
            ok=True,
            source_type=content.get("source_type"),
            source_id=str(source_id) if source_id is not None else None,
            source_name=content.get("source_name"),
            online=online,
            last_seen_at=last_seen,
            screenshot_url=data.get("screenshot_url"),
        )
        if source.source_type == SOURCE_PLAYLIST and source.source_id:
            playlist = await self.read_playlist(source.source_id)
            if not playlist.ok:
                source.ok = False
                source.error = REMOTE_SOURCE_FETCH_FAILED
                return source
            source.items = playlist.items
            source.item_count = playlist.item_count
            source.source_name = source.source_name or playlist.name
        return source

    async def find_playlist_by_name(self, name: str) -> RemotePlaylist:
        wanted = name.strip().lower()
        resp = await self.remote.request(f"/playlists/?search={quote(name.strip())}")
        if not resp.ok:
            return RemotePlaylist(ok=False, error=resp.error)
        results = resp.data.get("results") if isinstance(resp.data, dict) else resp.data
        for entry in results or []:
            if not isinstance(entry, dict) or entry.get("id") in (None, ""):
                continue
            if str(entry.get("name") or "").strip().lower() == wanted:
                return RemotePlaylist(ok=True, id=str(entry["id"]), name=entry.get("name"))
        return RemotePlaylist(ok=True)
