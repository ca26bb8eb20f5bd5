from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

KIND_BASELINE = "baseline"
KIND_AD = "ad"


@dataclass
class PlaylistItem:
    kind: str
    media_id: int
    duration: int
    media_kind: str = "media"
    priority: int = 0
    name: str | None = None


@dataclass
class RemotePlaylist:
    ok: bool
    id: str | None = None
    name: str | None = None
    items: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    @property
    def item_count(self) -> int:
        return len(self.items)


@dataclass
class ActualSource:
    ok: bool
    source_type: str | None = None
    source_id: str | None = None
    source_name: str | None = None
    online: bool | None = None
    last_seen_at: datetime | None = None
    screenshot_url: str | None = None
    items: list[dict[str, Any]] = field(default_factory=list)
    item_count: int = 0
    error: str | None = None


@dataclass
class ExpectedSource:
    source_type: str | None
    source_id: str | None
    origin: str


@dataclass
class SyncResult:
    ok: bool
    screen_id: str
    playlist_id: str | None = None
    baseline_count: int = 0
    ads_count: int = 0
    item_count: int = 0
    verified: bool = False
    mismatch: bool = False
    created_playlist: bool = False
    written: bool = False
    error_reason: str | None = None
    logs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RefreshResult:
    ok: bool
    method: str = "none"
    error: str | None = None


@dataclass
class DeviceStatus:
    status: str
    is_online: bool
    source: str
    last_seen_at: datetime | None = None
    device_id: str | None = None
    device_name: str | None = None
    fetched_at: datetime | None = None
    error: str | None = None


@dataclass
class RepairResult(SyncResult):
    device_status: DeviceStatus | None = None
    refresh: RefreshResult | None = None


@dataclass
class ScreenshotProof:
    url: str
    byte_size: int
    content_hash: str
    detected_no_content: bool
    valid: bool
    last_ok_at: datetime | None = None


@dataclass
class ProofStatus:
    ok: bool
    reason: str
    attempts: int = 0
    proof: ScreenshotProof | None = None
    logs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ForceRepairProofResult:
    ok: bool
    repair: RepairResult
    proof: ProofStatus | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class NowPlaying:
    screen_id: str
    expected: ExpectedSource
    actual: ActualSource
    item_count: int
    mismatch: bool
    mismatch_level: str
    mismatch_reason: str | None = None
    proof_status: str | None = None
    device_status: DeviceStatus | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ScreenAudit:
    screen_id: str
    playlist_id: str | None
    item_count: int
    missing_baseline: list[int] = field(default_factory=list)
    duplicates: list[int] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.item_count > 0 and not self.missing_baseline and not self.duplicates


@dataclass
class AuditReport:
    ok: bool
    baseline_count: int
    screens: list[ScreenAudit] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        for entry, screen in zip(payload["screens"], self.screens):
            entry["ok"] = screen.ok
        return payload
