from sqlalchemy.orm import Session
from screensync.db import SessionLocal, Base, engine
from screensync.models.advertising import AdAsset, Advertiser, Contract, Placement
from screensync.models.location import LAYOUT_MODE_FALLBACK, Location
from screensync.models.screen import Screen
from screensync.models.screen_sync import ScreenSyncState  # noqa: F401
from screensync.models.setting import SystemSetting
from screensync.services.baseline import BASELINE_SETTING_KEY


def seed(db: Session | None = None, baseline_playlist_id: str = "1001") -> None:
    """Demo data: one location, two linked screens, one advertiser with an approved ad."""
    own_session = db is None
    if own_session:
        Base.metadata.create_all(bind=engine)
        db = SessionLocal()
    try:
        location = Location(name="Main Location", legacy_playlist_id=None, layout_mode=LAYOUT_MODE_FALLBACK)
        db.add(location)
        db.commit()
        db.refresh(location)

        screen_a = Screen(code="SCR-001", name="Screen A", location_id=location.id, device_id="5001")
        screen_b = Screen(code="SCR-002", name="Screen B", location_id=location.id, device_id="5002")
        db.add(screen_a)
        db.add(screen_b)
        db.commit()
        db.refresh(screen_a)
        db.refresh(screen_b)

        advertiser = Advertiser(name="Bakery Demo")
        db.add(advertiser)
        db.commit()
        db.refresh(advertiser)

        contract = Contract(advertiser_id=advertiser.id, status="active")
        db.add(contract)
        db.commit()
        db.refresh(contract)

        for target in (screen_a, screen_b):
            db.add(Placement(screen_id=target.id, contract_id=contract.id, is_active=True))
        db.add(
            AdAsset(
                advertiser_id=advertiser.id,
                file_name="bakery-spring.mp4",
                remote_media_id=9001,
                approval_status="APPROVED",
                duration_sec=15,
            )
        )
        db.add(SystemSetting(key=BASELINE_SETTING_KEY, value=baseline_playlist_id))
        db.commit()
    finally:
        if own_session:
            db.close()


if __name__ == "__main__":
    seed()
