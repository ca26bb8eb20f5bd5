from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from screensync.db import get_db, utcnow
from screensync.models.setting import SystemSetting
from screensync.schemas.playback import BaselineIn
from screensync.services.baseline import BASELINE_SETTING_KEY
from screensync.services.errors import ScreenBusyError, ScreenNotFoundError
from screensync.services.labels import reason_label
from screensync.services.reconciler import PlaybackReconciler
from screensync.services.runtime import get_reconciler

router = APIRouter(prefix="/playback", tags=["playback"])


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ScreenNotFoundError):
        return HTTPException(status_code=404, detail="Screen not found")
    return HTTPException(status_code=409, detail={"reason": exc.reason, "message": exc.message})


def _with_label(payload: dict) -> dict:
    payload["error_label"] = reason_label(payload.get("error_reason"))
    return payload


@router.post("/screens/{screen_id}/sync")
async def sync_screen(screen_id: str, reconciler: PlaybackReconciler = Depends(get_reconciler)):
    try:
        result = await reconciler.sync_screen(screen_id)
    except (ScreenNotFoundError, ScreenBusyError) as exc:
        raise _http_error(exc)
    return _with_label(result.to_dict())


@router.post("/screens/{screen_id}/repair")
async def repair_screen(screen_id: str, reconciler: PlaybackReconciler = Depends(get_reconciler)):
    try:
        result = await reconciler.repair_screen(screen_id)
    except (ScreenNotFoundError, ScreenBusyError) as exc:
        raise _http_error(exc)
    return _with_label(result.to_dict())


@router.post("/screens/{screen_id}/force-repair-proof")
async def force_repair_and_proof(screen_id: str, reconciler: PlaybackReconciler = Depends(get_reconciler)):
    try:
        result = await reconciler.force_repair_and_proof(screen_id)
    except (ScreenNotFoundError, ScreenBusyError) as exc:
        raise _http_error(exc)
    payload = result.to_dict()
    _with_label(payload["repair"])
    if payload["proof"] is not None:
        payload["proof"]["label"] = reason_label(payload["proof"]["reason"])
    return payload


@router.get("/screens/{screen_id}/now-playing")
async def now_playing(screen_id: str, reconciler: PlaybackReconciler = Depends(get_reconciler)):
    try:
        result = await reconciler.get_now_playing(screen_id)
    except ScreenNotFoundError as exc:
        raise _http_error(exc)
    return result.to_dict()


@router.get("/screens/{screen_id}/sync-status")
def sync_status(screen_id: str, reconciler: PlaybackReconciler = Depends(get_reconciler)):
    try:
        state = reconciler.sync_status(screen_id)
    except ScreenNotFoundError as exc:
        raise _http_error(exc)
    return {"screen_id": screen_id, "state": state}


@router.get("/screens/{screen_id}/device-status")
async def device_status(
    screen_id: str,
    refresh: bool = False,
    reconciler: PlaybackReconciler = Depends(get_reconciler),
):
    try:
        status = await reconciler.get_device_status(screen_id, force_refresh=refresh)
    except ScreenNotFoundError as exc:
        raise _http_error(exc)
    return asdict(status)


@router.get("/audit")
async def audit(reconciler: PlaybackReconciler = Depends(get_reconciler)):
    report = await reconciler.audit_playlists()
    return report.to_dict()


@router.put("/baseline")
def set_baseline(payload: BaselineIn, db: Session = Depends(get_db)):
    setting = db.query(SystemSetting).get(BASELINE_SETTING_KEY)
    if setting is None:
        setting = SystemSetting(key=BASELINE_SETTING_KEY)
        db.add(setting)
    setting.value = payload.playlist_id.strip()
    setting.updated_at = utcnow()
    db.commit()
    return {"ok": True, "key": BASELINE_SETTING_KEY, "playlist_id": setting.value}
