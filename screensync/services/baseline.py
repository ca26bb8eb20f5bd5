import logging
import os
from typing import Any

from sqlalchemy.orm import Session

from screensync.models.setting import SystemSetting
from screensync.services.desired_state import DEFAULT_ITEM_DURATION_SEC
from screensync.services.errors import (
    BASELINE_FETCH_ERROR,
    BASELINE_NOT_CONFIGURED,
    BASELINE_PLAYLIST_EMPTY,
    BaselineError,
)
from screensync.services.remote import RemotePlatform
from screensync.services.results import KIND_BASELINE, PlaylistItem

logger = logging.getLogger(__name__)

BASELINE_PLAYLIST_ID = (os.getenv("SCREENSYNC_BASELINE_PLAYLIST_ID", "") or "").strip()
BASELINE_SETTING_KEY = "reconcile.baseline_playlist_id"


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def parse_baseline_item(raw: dict[str, Any]) -> PlaylistItem | None:
    media = raw.get("media") if isinstance(raw.get("media"), dict) else {}
    media_id = _as_int(media.get("id"))
    if media_id is None:
        media_id = _as_int(raw.get("media_id"))
    if media_id is None:
        media_id = _as_int(raw.get("id"))
    if media_id is None:
        return None
    duration = _as_int(raw.get("duration")) or _as_int(media.get("duration")) or DEFAULT_ITEM_DURATION_SEC
    return PlaylistItem(
        kind=KIND_BASELINE,
        media_id=media_id,
        duration=duration,
        media_kind="app" if raw.get("type") == "app" else "media",
        name=media.get("name") or raw.get("name"),
    )


class BaselineResolver:
    def __init__(self, remote: RemotePlatform, playlist_id: str = BASELINE_PLAYLIST_ID):
        self.remote = remote
        self.env_playlist_id = playlist_id

    def playlist_id(self, db: Session) -> str | None:
        if self.env_playlist_id:
            return self.env_playlist_id
        setting = db.query(SystemSetting).get(BASELINE_SETTING_KEY)
        value = (setting.value or "").strip() if setting else ""
        return value or None

    async def resolve(self, db: Session) -> list[PlaylistItem]:
        playlist_id = self.playlist_id(db)
        if not playlist_id:
            raise BaselineError(BASELINE_NOT_CONFIGURED, "No baseline playlist configured")

        resp = await self.remote.request(f"/playlists/{playlist_id}/")
        if not resp.ok or not isinstance(resp.data, dict):
            raise BaselineError(
                BASELINE_FETCH_ERROR,
                f"Baseline playlist {playlist_id} could not be fetched: {resp.error or 'invalid payload'}",
            )

        items = []
        for raw in resp.data.get("items") or []:
            if not isinstance(raw, dict):
                continue
            item = parse_baseline_item(raw)
            if item is None:
                logger.debug("baseline playlist %s: skipping item without media id: %r", playlist_id, raw)
                continue
            items.append(item)

        if not items:
            raise BaselineError(BASELINE_PLAYLIST_EMPTY, f"Baseline playlist {playlist_id} has no usable items")
        return items
