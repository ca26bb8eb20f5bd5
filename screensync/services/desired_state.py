import os
from dataclasses import replace
from typing import Any

from screensync.services.results import KIND_AD, KIND_BASELINE, PlaylistItem

DEFAULT_ITEM_DURATION_SEC = int(os.getenv("SCREENSYNC_DEFAULT_ITEM_DURATION_SEC", "15"))


def build(baseline: list[PlaylistItem], ads: list[PlaylistItem]) -> list[PlaylistItem]:
    """Baseline first in its own order, then ads; priorities run 1..n+m."""
    output: list[PlaylistItem] = []
    for kind, items in ((KIND_BASELINE, baseline), (KIND_AD, ads)):
        for item in items:
            output.append(replace(item, kind=kind, priority=len(output) + 1))
    return output


def to_remote_items(items: list[PlaylistItem]) -> list[dict[str, Any]]:
    return [
        {
            "id": item.media_id,
            "type": item.media_kind,
            "duration": item.duration,
            "priority": item.priority,
        }
        for item in items
    ]
