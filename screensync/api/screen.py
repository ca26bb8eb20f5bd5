from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from screensync.db import get_db
from screensync.models.location import Location
from screensync.models.screen import Screen
from screensync.models.screen_sync import ScreenSyncState
from screensync.schemas.screen import ScreenCreateIn, ScreenLinkIn, ScreenOut

router = APIRouter(prefix="/screens", tags=["screens"])


def _get_screen(db: Session, screen_id: str) -> Screen:
    screen = db.query(Screen).get(screen_id)
    if not screen:
        raise HTTPException(status_code=404, detail="Screen not found")
    return screen


def _ensure_device_free(db: Session, device_id: str, screen_id: str | None = None) -> None:
    query = db.query(Screen).filter(Screen.device_id == device_id)
    if screen_id:
        query = query.filter(Screen.id != screen_id)
    if query.first():
        raise HTTPException(status_code=409, detail="Device is already linked to another screen")


@router.post("", response_model=ScreenOut)
def create_screen(payload: ScreenCreateIn, db: Session = Depends(get_db)):
    code = (payload.code or "").strip() or None
    if code and db.query(Screen).filter(Screen.code == code).first():
        raise HTTPException(status_code=409, detail="Screen code already in use")
    if payload.location_id and not db.query(Location).get(payload.location_id):
        raise HTTPException(status_code=404, detail="Location not found")
    device_id = (payload.device_id or "").strip() or None
    if device_id:
        _ensure_device_free(db, device_id)
    screen = Screen(
        name=payload.name.strip(),
        code=code,
        location_id=payload.location_id,
        device_id=device_id,
    )
    db.add(screen)
    db.commit()
    db.refresh(screen)
    return screen


@router.get("", response_model=list[ScreenOut])
def list_screens(linked: bool | None = None, db: Session = Depends(get_db)):
    query = db.query(Screen)
    if linked is True:
        query = query.filter(Screen.device_id.isnot(None))
    elif linked is False:
        query = query.filter(Screen.device_id.is_(None))
    return query.order_by(Screen.code.asc(), Screen.created_at.asc()).all()


@router.get("/{screen_id}", response_model=ScreenOut)
def get_screen(screen_id: str, db: Session = Depends(get_db)):
    return _get_screen(db, screen_id)


@router.put("/{screen_id}/link", response_model=ScreenOut)
def link_screen(screen_id: str, payload: ScreenLinkIn, db: Session = Depends(get_db)):
    screen = _get_screen(db, screen_id)
    device_id = payload.device_id.strip()
    _ensure_device_free(db, device_id, screen_id=screen.id)
    if screen.device_id != device_id:
        screen.device_id = device_id
        screen.playlist_id = None
        screen.status = "unknown"
        screen.last_seen_at = None
    db.commit()
    db.refresh(screen)
    return screen


@router.delete("/{screen_id}/link", response_model=ScreenOut)
def unlink_screen(screen_id: str, db: Session = Depends(get_db)):
    screen = _get_screen(db, screen_id)
    screen.device_id = None
    screen.playlist_id = None
    screen.status = "unknown"
    db.commit()
    db.refresh(screen)
    return screen


@router.delete("/{screen_id}")
def delete_screen(screen_id: str, db: Session = Depends(get_db)):
    screen = _get_screen(db, screen_id)
    db.query(ScreenSyncState).filter(ScreenSyncState.screen_id == screen.id).delete(synchronize_session=False)
    db.delete(screen)
    db.commit()
    return {"ok": True}
