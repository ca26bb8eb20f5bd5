from sqlalchemy.orm import Session

from screensync.models.advertising import AdAsset, Contract, Placement
from screensync.services.desired_state import DEFAULT_ITEM_DURATION_SEC
from screensync.services.results import KIND_AD, PlaylistItem

ACTIVE_CONTRACT_STATUSES = ("active", "signed")
APPROVED = "APPROVED"


def resolve_ads(db: Session, screen_id: str) -> list[PlaylistItem]:
    contract_ids = [
        row[0]
        for row in db.query(Placement.contract_id)
        .filter(Placement.screen_id == screen_id, Placement.is_active.is_(True))
        .distinct()
        .all()
    ]
    if not contract_ids:
        return []

    advertiser_ids = [
        row[0]
        for row in db.query(Contract.advertiser_id)
        .filter(Contract.id.in_(contract_ids), Contract.status.in_(ACTIVE_CONTRACT_STATUSES))
        .distinct()
        .all()
    ]
    if not advertiser_ids:
        return []

    assets = (
        db.query(AdAsset)
        .filter(
            AdAsset.advertiser_id.in_(advertiser_ids),
            AdAsset.approval_status == APPROVED,
            AdAsset.remote_media_id.isnot(None),
        )
        .order_by(AdAsset.created_at.asc(), AdAsset.id.asc())
        .all()
    )

    items: list[PlaylistItem] = []
    seen: set[int] = set()
    for asset in assets:
        media_id = int(asset.remote_media_id)
        if media_id in seen:
            continue
        seen.add(media_id)
        items.append(
            PlaylistItem(
                kind=KIND_AD,
                media_id=media_id,
                duration=asset.duration_sec or DEFAULT_ITEM_DURATION_SEC,
                name=asset.file_name,
            )
        )
    return items
