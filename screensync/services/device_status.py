import logging
import os
import time
from dataclasses import replace

from sqlalchemy.orm import Session

from screensync.db import utcnow
from screensync.models.screen import Screen
from screensync.services.remote import RemotePlatform
from screensync.services.remote_state import parse_online
from screensync.services.results import DeviceStatus

logger = logging.getLogger(__name__)

STATUS_CACHE_TTL_SEC = int(os.getenv("SCREENSYNC_STATUS_CACHE_TTL_SEC", "60"))
ONLINE_THRESHOLD_SEC = int(os.getenv("SCREENSYNC_ONLINE_THRESHOLD_SEC", "300"))

ONLINE = "ONLINE"
OFFLINE = "OFFLINE"
UNLINKED = "UNLINKED"


class DeviceStatusCache:
    """Short-lived cache of device online state.

    Reads go to the platform at most once per TTL per device; a failed read
    falls back to whatever the screen row last recorded.
    """

    def __init__(
        self,
        remote: RemotePlatform,
        ttl_sec: int = STATUS_CACHE_TTL_SEC,
        online_threshold_sec: int = ONLINE_THRESHOLD_SEC,
        clock=time.monotonic,
    ):
        self.remote = remote
        self.ttl_sec = ttl_sec
        self.online_threshold_sec = online_threshold_sec
        self._clock = clock
        self._entries: dict[str, tuple[float, DeviceStatus]] = {}

    def _cached(self, device_id: str) -> DeviceStatus | None:
        entry = self._entries.get(device_id)
        if entry is None:
            return None
        stored_at, status = entry
        if (self._clock() - stored_at) >= self.ttl_sec:
            self._entries.pop(device_id, None)
            return None
        return replace(status, source="cache")

    async def get(self, db: Session, screen: Screen, force_refresh: bool = False) -> DeviceStatus:
        if not screen.device_id:
            return DeviceStatus(status=UNLINKED, is_online=False, source="unlinked")

        device_id = str(screen.device_id)
        if not force_refresh:
            cached = self._cached(device_id)
            if cached is not None:
                return cached

        resp = await self.remote.request(f"/screens/{device_id}/")
        if not resp.ok or not isinstance(resp.data, dict):
            logger.info("device status for %s unavailable (%s), using local state", device_id, resp.error)
            is_online = (screen.status or "").lower() == "online"
            return DeviceStatus(
                status=ONLINE if is_online else OFFLINE,
                is_online=is_online,
                source="local",
                last_seen_at=screen.last_seen_at,
                device_id=device_id,
                error=resp.error,
            )

        now = utcnow()
        is_online, last_seen = parse_online(resp.data, now, self.online_threshold_sec)
        status = DeviceStatus(
            status=ONLINE if is_online else OFFLINE,
            is_online=is_online,
            source="remote",
            last_seen_at=last_seen,
            device_id=device_id,
            device_name=resp.data.get("name"),
            fetched_at=now,
        )
        self._entries[device_id] = (self._clock(), status)

        screen.status = "online" if is_online else "offline"
        if last_seen is not None:
            screen.last_seen_at = last_seen
        db.commit()
        return status

    def invalidate(self, device_id: str | None = None) -> None:
        if device_id is None:
            self._entries.clear()
        else:
            self._entries.pop(str(device_id), None)
