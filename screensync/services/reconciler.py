import json
import logging

from sqlalchemy.orm import Session

from screensync.db import SessionLocal, utcnow
from screensync.models.location import LAYOUT_MODE_LAYOUT, Location
from screensync.models.screen import Screen
from screensync.models.screen_sync import ScreenSyncState
from screensync.services.baseline import BaselineResolver, parse_baseline_item
from screensync.services.device_status import ONLINE_THRESHOLD_SEC, DeviceStatusCache
from screensync.services.enforcer import PlaylistEnforcer
from screensync.services.errors import (
    DEVICE_UNLINKED,
    REMOTE_SOURCE_FETCH_FAILED,
    BaselineError,
    ScreenNotFoundError,
)
from screensync.services.labels import reason_label
from screensync.services.locks import ScreenLocks
from screensync.services.proof import ProofEngine
from screensync.services.refresh import PlaybackRefresher
from screensync.services.remote import RemotePlatform
from screensync.services.remote_state import SOURCE_PLAYLIST, RemoteStateReader
from screensync.services.results import (
    ActualSource,
    AuditReport,
    DeviceStatus,
    ExpectedSource,
    ForceRepairProofResult,
    NowPlaying,
    ProofStatus,
    RepairResult,
    ScreenAudit,
    SyncResult,
)

logger = logging.getLogger(__name__)

LEVEL_NONE = "none"
LEVEL_INFO = "info"
LEVEL_WARNING = "warning"
LEVEL_CRITICAL = "critical"


def expected_source(location: Location | None) -> ExpectedSource:
    """Combined playlist, then layout (layout mode only), then legacy playlist."""
    if location is None:
        return ExpectedSource(source_type=None, source_id=None, origin="unknown")
    if location.combined_playlist_id:
        return ExpectedSource(SOURCE_PLAYLIST, str(location.combined_playlist_id), "combined")
    if location.layout_mode == LAYOUT_MODE_LAYOUT and location.layout_id:
        return ExpectedSource("layout", str(location.layout_id), "layout")
    if location.legacy_playlist_id:
        return ExpectedSource(SOURCE_PLAYLIST, str(location.legacy_playlist_id), "legacy")
    return ExpectedSource(source_type=None, source_id=None, origin="unknown")


def _record(
    db: Session,
    screen_id: str,
    action: str,
    result: SyncResult | None = None,
    proof: ProofStatus | None = None,
) -> ScreenSyncState:
    state = db.query(ScreenSyncState).filter(ScreenSyncState.screen_id == screen_id).first()
    if state is None:
        state = ScreenSyncState(screen_id=screen_id)
        db.add(state)
    state.last_action = action
    if result is not None:
        state.ok = result.ok
        state.error_reason = result.error_reason
        state.playlist_id = result.playlist_id
        state.baseline_count = result.baseline_count
        state.ads_count = result.ads_count
        state.item_count = result.item_count
        state.verified = result.verified
        state.mismatch = result.mismatch
        state.logs_json = json.dumps(result.logs)
    if proof is not None:
        state.proof_status = "ok" if proof.ok else "failed"
        state.proof_reason = proof.reason
        state.proof_checked_at = utcnow()
    state.updated_at = utcnow()
    db.commit()
    return state


def sync_state_payload(state: ScreenSyncState | None) -> dict | None:
    if state is None:
        return None
    return {
        "screen_id": state.screen_id,
        "last_action": state.last_action,
        "ok": bool(state.ok),
        "error_reason": state.error_reason,
        "error_label": reason_label(state.error_reason),
        "playlist_id": state.playlist_id,
        "baseline_count": state.baseline_count,
        "ads_count": state.ads_count,
        "item_count": state.item_count,
        "verified": bool(state.verified),
        "mismatch": bool(state.mismatch),
        "logs": json.loads(state.logs_json) if state.logs_json else [],
        "proof_status": state.proof_status,
        "proof_reason": state.proof_reason,
        "proof_label": reason_label(state.proof_reason),
        "proof_checked_at": state.proof_checked_at.isoformat() if state.proof_checked_at else None,
        "updated_at": state.updated_at.isoformat() if state.updated_at else None,
    }


class PlaybackReconciler:
    """Entry points used by the HTTP layer and the background worker."""

    def __init__(
        self,
        remote: RemotePlatform,
        session_factory=SessionLocal,
        locks: ScreenLocks | None = None,
        baseline: BaselineResolver | None = None,
        reader: RemoteStateReader | None = None,
        enforcer: PlaylistEnforcer | None = None,
        refresher: PlaybackRefresher | None = None,
        proof_engine: ProofEngine | None = None,
        device_status: DeviceStatusCache | None = None,
    ):
        self.remote = remote
        self.session_factory = session_factory
        self.locks = locks or ScreenLocks()
        self.baseline = baseline or BaselineResolver(remote)
        self.reader = reader or RemoteStateReader(remote, ONLINE_THRESHOLD_SEC)
        self.enforcer = enforcer or PlaylistEnforcer(remote, self.baseline, self.reader)
        self.refresher = refresher or PlaybackRefresher(remote)
        self.proof_engine = proof_engine or ProofEngine(remote, self.reader)
        self.device_status = device_status or DeviceStatusCache(remote)

    @staticmethod
    def _load_screen(db: Session, screen_id: str) -> Screen:
        screen = db.query(Screen).get(screen_id)
        if screen is None:
            raise ScreenNotFoundError(screen_id)
        return screen

    async def sync_screen(self, screen_id: str) -> SyncResult:
        db = self.session_factory()
        try:
            screen = self._load_screen(db, screen_id)
            with self.locks.hold(str(screen.id)):
                result = await self.enforcer.enforce(db, screen)
                _record(db, str(screen.id), "sync", result)
            return result
        finally:
            db.close()

    async def _repair(self, db: Session, screen: Screen) -> RepairResult:
        status = await self.device_status.get(db, screen, force_refresh=True)
        synced = await self.enforcer.enforce(db, screen)
        result = RepairResult(**vars(synced), device_status=status)
        if result.written:
            result.refresh = await self.refresher.refresh(str(screen.device_id), result.playlist_id)
            if result.refresh.ok:
                result.logs.append(f"playback refreshed via {result.refresh.method}")
            else:
                result.logs.append(f"playback refresh failed: {result.refresh.error}")
                logger.warning("screen %s: playback refresh failed: %s", screen.id, result.refresh.error)
        return result

    async def repair_screen(self, screen_id: str) -> RepairResult:
        db = self.session_factory()
        try:
            screen = self._load_screen(db, screen_id)
            with self.locks.hold(str(screen.id)):
                result = await self._repair(db, screen)
                _record(db, str(screen.id), "repair", result)
            return result
        finally:
            db.close()

    async def force_repair_and_proof(self, screen_id: str) -> ForceRepairProofResult:
        db = self.session_factory()
        try:
            screen = self._load_screen(db, screen_id)
            with self.locks.hold(str(screen.id)):
                repair = await self._repair(db, screen)
                proof = None
                if repair.ok:
                    proof = await self.proof_engine.prove(db, screen, expect_content=True)
                _record(db, str(screen.id), "force_proof", repair, proof)
            return ForceRepairProofResult(ok=repair.ok and proof is not None and proof.ok, repair=repair, proof=proof)
        finally:
            db.close()

    async def get_device_status(self, screen_id: str, force_refresh: bool = False) -> DeviceStatus:
        db = self.session_factory()
        try:
            screen = self._load_screen(db, screen_id)
            return await self.device_status.get(db, screen, force_refresh=force_refresh)
        finally:
            db.close()

    async def get_now_playing(self, screen_id: str) -> NowPlaying:
        db = self.session_factory()
        try:
            screen = self._load_screen(db, screen_id)
            location = db.query(Location).get(screen.location_id) if screen.location_id else None
            expected = expected_source(location)
            device_status = await self.device_status.get(db, screen)
            state = db.query(ScreenSyncState).filter(ScreenSyncState.screen_id == screen.id).first()
            proof_status = reason_label(state.proof_reason) if state is not None else None

            if not screen.device_id:
                actual = ActualSource(ok=False, error=DEVICE_UNLINKED)
            else:
                actual = await self.reader.read_source(str(screen.device_id))

            level, reason = self._mismatch(expected, actual)
            return NowPlaying(
                screen_id=str(screen.id),
                expected=expected,
                actual=actual,
                item_count=actual.item_count,
                mismatch=level != LEVEL_NONE and level != LEVEL_INFO,
                mismatch_level=level,
                mismatch_reason=reason,
                proof_status=proof_status,
                device_status=device_status,
            )
        finally:
            db.close()

    @staticmethod
    def _mismatch(expected: ExpectedSource, actual) -> tuple[str, str | None]:
        if not actual.ok:
            return LEVEL_CRITICAL, reason_label(actual.error or REMOTE_SOURCE_FETCH_FAILED)
        if not actual.source_type:
            return LEVEL_CRITICAL, "no content assigned"
        if actual.source_type == SOURCE_PLAYLIST and actual.item_count == 0:
            return LEVEL_CRITICAL, reason_label("empty")
        if expected.source_type is None:
            return LEVEL_INFO, "no expected source configured"
        if expected.source_type != actual.source_type or expected.source_id != actual.source_id:
            return (
                LEVEL_WARNING,
                f"expected {expected.source_type} {expected.source_id}, "
                f"device shows {actual.source_type} {actual.source_id}",
            )
        return LEVEL_NONE, None

    def sync_status(self, screen_id: str) -> dict | None:
        db = self.session_factory()
        try:
            self._load_screen(db, screen_id)
            state = db.query(ScreenSyncState).filter(ScreenSyncState.screen_id == screen_id).first()
            return sync_state_payload(state)
        finally:
            db.close()

    async def audit_playlists(self) -> AuditReport:
        db = self.session_factory()
        try:
            try:
                baseline = await self.baseline.resolve(db)
            except BaselineError as exc:
                return AuditReport(ok=False, baseline_count=0, error=exc.reason)
            baseline_ids = [item.media_id for item in baseline]

            screens = (
                db.query(Screen)
                .filter(Screen.device_id.isnot(None), Screen.is_active.is_(True))
                .order_by(Screen.code.asc(), Screen.id.asc())
                .all()
            )
            report = AuditReport(ok=True, baseline_count=len(baseline_ids))
            for screen in screens:
                source = await self.reader.read_source(str(screen.device_id))
                if not source.ok:
                    report.screens.append(
                        ScreenAudit(str(screen.id), None, 0, error=source.error or REMOTE_SOURCE_FETCH_FAILED)
                    )
                    continue
                if source.source_type != SOURCE_PLAYLIST:
                    report.screens.append(
                        ScreenAudit(str(screen.id), None, 0, error=f"source is {source.source_type or 'none'}")
                    )
                    continue
                media_ids = [_item_media_id(item) for item in source.items]
                present = set(media_ids)
                seen: set[int] = set()
                duplicates: list[int] = []
                for media_id in media_ids:
                    if media_id is None:
                        continue
                    if media_id in seen and media_id not in duplicates:
                        duplicates.append(media_id)
                    seen.add(media_id)
                report.screens.append(
                    ScreenAudit(
                        screen_id=str(screen.id),
                        playlist_id=source.source_id,
                        item_count=source.item_count,
                        missing_baseline=[m for m in baseline_ids if m not in present],
                        duplicates=duplicates,
                    )
                )
            report.ok = all(entry.ok for entry in report.screens)
            return report
        finally:
            db.close()


def _item_media_id(item: dict) -> int | None:
    parsed = parse_baseline_item(item)
    return parsed.media_id if parsed is not None else None
