import logging
import os

from sqlalchemy.orm import Session

from screensync.db import utcnow
from screensync.models.screen import Screen
from screensync.services.ads import resolve_ads
from screensync.services.baseline import BaselineResolver
from screensync.services.desired_state import build, to_remote_items
from screensync.services.errors import (
    ASSIGN_PLAYLIST_FAILED,
    CREATE_PLAYLIST_FAILED,
    DEVICE_UNLINKED,
    PLAYLIST_EMPTY_AFTER_WRITE,
    PLAYLIST_VERIFY_FAILED,
    PLAYLIST_WRITE_FAILED,
    REMOTE_SOURCE_FETCH_FAILED,
    SOURCE_MISMATCH,
    ReconcileError,
)
from screensync.services.remote import RemotePlatform
from screensync.services.remote_state import SOURCE_PLAYLIST, RemoteStateReader, assign_payload
from screensync.services.results import ActualSource, SyncResult

logger = logging.getLogger(__name__)

PLAYLIST_PREFIX = os.getenv("SCREENSYNC_PLAYLIST_PREFIX", "ScreenSync | Loop | ")


def canonical_playlist_name(screen: Screen) -> str:
    return f"{PLAYLIST_PREFIX}{screen.code or screen.id}"


class PlaylistEnforcer:
    """Drives one screen's per-screen playlist to the desired item list.

    Steps: baseline, playlist, ads, write, re-assign, verify. A fatal step
    raises `ReconcileError`, which `enforce` turns into a failed result.
    """

    def __init__(
        self,
        remote: RemotePlatform,
        baseline: BaselineResolver,
        reader: RemoteStateReader | None = None,
        ads_resolver=resolve_ads,
    ):
        self.remote = remote
        self.baseline = baseline
        self.reader = reader or RemoteStateReader(remote)
        self.ads_resolver = ads_resolver

    @staticmethod
    def _log(result: SyncResult, message: str, level: int = logging.INFO) -> None:
        result.logs.append(message)
        logger.log(level, "screen %s: %s", result.screen_id, message)

    async def enforce(self, db: Session, screen: Screen) -> SyncResult:
        result = SyncResult(ok=False, screen_id=str(screen.id))
        if not screen.device_id:
            result.error_reason = DEVICE_UNLINKED
            self._log(result, "screen is not linked to a device", logging.WARNING)
            return result

        try:
            await self._run(db, screen, result)
        except ReconcileError as exc:
            result.ok = False
            result.error_reason = exc.reason
            self._log(result, f"{exc.reason}: {exc.message}", logging.WARNING)
        db.commit()
        return result

    async def _run(self, db: Session, screen: Screen, result: SyncResult) -> None:
        device_id = str(screen.device_id)

        baseline = await self.baseline.resolve(db)
        result.baseline_count = len(baseline)
        self._log(result, f"baseline resolved: {len(baseline)} items")

        playlist_id, created = await self._resolve_playlist(db, screen, result)
        result.playlist_id = playlist_id
        result.created_playlist = created

        ads = self.ads_resolver(db, str(screen.id))
        result.ads_count = len(ads)
        self._log(result, f"ads resolved: {len(ads)} items")

        items = build(baseline, ads)
        write = await self.remote.request(
            f"/playlists/{playlist_id}/",
            method="PATCH",
            body={"items": to_remote_items(items)},
        )
        if not write.ok:
            raise ReconcileError(PLAYLIST_WRITE_FAILED, f"writing {len(items)} items failed: {write.error}")
        screen.playlist_id = playlist_id
        result.written = True
        self._log(result, f"playlist {playlist_id} written with {len(items)} items")

        push = await self.remote.request(f"/screens/{device_id}/", method="PATCH", body=assign_payload(playlist_id))
        screen.last_push_at = utcnow()
        if push.ok:
            screen.last_push_result = "ok"
            screen.last_push_error = None
            self._log(result, "re-assigned playlist to trigger push")
        else:
            screen.last_push_result = "failed"
            screen.last_push_error = push.error
            self._log(result, f"re-assign for push failed: {push.error}", logging.WARNING)

        await self._verify(screen, playlist_id, result)

    @staticmethod
    def _owns_playlist(screen: Screen, source: ActualSource) -> bool:
        """An assigned playlist belongs to this screen by name or by the id we last converged on."""
        name = (source.source_name or "").strip().lower()
        if name == canonical_playlist_name(screen).strip().lower():
            return True
        return bool(screen.playlist_id) and str(screen.playlist_id) == source.source_id

    async def _resolve_playlist(self, db: Session, screen: Screen, result: SyncResult) -> tuple[str, bool]:
        device_id = str(screen.device_id)
        source = await self.reader.read_source(device_id)
        baseline_id = self.baseline.playlist_id(db)
        if not source.ok:
            if source.source_type != SOURCE_PLAYLIST:
                raise ReconcileError(REMOTE_SOURCE_FETCH_FAILED, f"could not read source of device {device_id}")
            # Device points at a playlist we cannot read (usually deleted remotely).
            self._log(
                result,
                f"assigned playlist {source.source_id} is unreadable, falling back to per-screen playlist",
                logging.WARNING,
            )
        elif source.source_type == SOURCE_PLAYLIST and source.source_id:
            if baseline_id and source.source_id == str(baseline_id):
                self._log(
                    result,
                    f"device shows baseline playlist {source.source_id}, replacing with per-screen playlist",
                    logging.WARNING,
                )
            elif self._owns_playlist(screen, source):
                self._log(result, f"reusing assigned playlist {source.source_id}")
                return source.source_id, False
            else:
                self._log(
                    result,
                    f"device shows shared playlist {source.source_id} ({source.source_name}), "
                    "replacing with per-screen playlist",
                    logging.WARNING,
                )
        elif source.source_type:
            self._log(
                result,
                f"device shows {source.source_type} {source.source_id}, replacing with per-screen playlist",
                logging.WARNING,
            )

        name = canonical_playlist_name(screen)
        found = await self.reader.find_playlist_by_name(name)
        if not found.ok:
            raise ReconcileError(REMOTE_SOURCE_FETCH_FAILED, f"playlist search failed: {found.error}")

        created = False
        if found.id:
            playlist_id = found.id
            self._log(result, f"found playlist {playlist_id} by name")
        else:
            resp = await self.remote.request(
                "/playlists/",
                method="POST",
                body={
                    "name": name,
                    "type": "classic",
                    "items": [],
                    "description": f"Managed playback loop for screen {screen.code or screen.id}",
                },
            )
            new_id = resp.data.get("id") if resp.ok and isinstance(resp.data, dict) else None
            if new_id is None:
                raise ReconcileError(CREATE_PLAYLIST_FAILED, f"creating {name!r} failed: {resp.error}")
            playlist_id = str(new_id)
            created = True
            self._log(result, f"created playlist {playlist_id}")

        assign = await self.remote.request(f"/screens/{device_id}/", method="PATCH", body=assign_payload(playlist_id))
        if not assign.ok:
            raise ReconcileError(ASSIGN_PLAYLIST_FAILED, f"assigning playlist {playlist_id} failed: {assign.error}")
        self._log(result, f"assigned playlist {playlist_id} to device")
        return playlist_id, created

    async def _verify(self, screen: Screen, playlist_id: str, result: SyncResult) -> None:
        screen.last_verify_at = utcnow()

        playlist = await self.reader.read_playlist(playlist_id)
        if not playlist.ok:
            screen.last_verify_result = "failed"
            screen.last_verify_error = playlist.error
            raise ReconcileError(PLAYLIST_VERIFY_FAILED, f"re-reading playlist failed: {playlist.error}")
        result.item_count = playlist.item_count
        if playlist.item_count == 0:
            screen.last_verify_result = "failed"
            screen.last_verify_error = PLAYLIST_EMPTY_AFTER_WRITE
            raise ReconcileError(PLAYLIST_EMPTY_AFTER_WRITE, f"playlist {playlist_id} is empty after write")

        source = await self.reader.read_source(str(screen.device_id))
        if source.ok and source.source_type == SOURCE_PLAYLIST and source.source_id == playlist_id:
            screen.last_verify_result = "ok"
            screen.last_verify_error = None
            result.verified = True
            result.ok = True
            self._log(result, f"verified: {playlist.item_count} items, device on playlist {playlist_id}")
            return

        actual = f"{source.source_type}:{source.source_id}" if source.ok else source.error
        screen.last_verify_result = "mismatch"
        screen.last_verify_error = f"expected playlist:{playlist_id}, got {actual}"
        result.mismatch = True
        result.error_reason = SOURCE_MISMATCH
        self._log(result, f"device source mismatch after assign: {actual}", logging.WARNING)
