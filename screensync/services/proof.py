import asyncio
import hashlib
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy.orm import Session

from screensync.db import utcnow
from screensync.models.screen import Screen
from screensync.services.remote import RemotePlatform
from screensync.services.remote_state import RemoteStateReader
from screensync.services.results import ProofStatus, ScreenshotProof

logger = logging.getLogger(__name__)

SCREENSHOT_MIN_BYTES = int(os.getenv("SCREENSYNC_SCREENSHOT_MIN_BYTES", "5000"))
SCREENSHOT_HASH_PREFIX = int(os.getenv("SCREENSYNC_SCREENSHOT_HASH_PREFIX", "65536"))
NO_CONTENT_HASHES = frozenset(
    value.strip().lower()
    for value in (os.getenv("SCREENSYNC_NO_CONTENT_HASHES", "") or "").split(",")
    if value.strip()
)
PROOF_DELAYS = tuple(
    float(value)
    for value in (os.getenv("SCREENSYNC_PROOF_DELAYS", "5,5,10,10,15,15") or "").split(",")
    if value.strip()
)
PROOF_TIMEOUT_SEC = float(os.getenv("SCREENSYNC_PROOF_TIMEOUT_SEC", "120"))

REASON_OK = "ok"
REASON_OFFLINE = "offline"
REASON_EMPTY = "empty"
REASON_NO_SCREENSHOT = "no_screenshot"
REASON_NO_CONTENT = "no_content_detected"
REASON_TIMEOUT = "timeout"


@dataclass
class RetryPolicy:
    delays: tuple[float, ...] = PROOF_DELAYS
    total_timeout: float = PROOF_TIMEOUT_SEC
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep


class NoContentPredicate:
    """True when a screenshot looks like a blank or placeholder frame."""

    def __init__(self, min_bytes: int = SCREENSHOT_MIN_BYTES, known_bad_hashes=NO_CONTENT_HASHES):
        self.min_bytes = min_bytes
        self.known_bad_hashes = frozenset(h.lower() for h in known_bad_hashes)

    def __call__(self, byte_size: int, content_hash: str) -> bool:
        if content_hash.lower() in self.known_bad_hashes:
            return True
        return byte_size <= self.min_bytes


def screenshot_hash(data: bytes, prefix: int = SCREENSHOT_HASH_PREFIX) -> str:
    return hashlib.sha256(data[:prefix]).hexdigest()


def cache_busted(url: str, stamp: int) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "_ts"]
    query.append(("_ts", str(stamp)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class ProofEngine:
    def __init__(
        self,
        remote: RemotePlatform,
        reader: RemoteStateReader | None = None,
        policy: RetryPolicy | None = None,
        predicate: NoContentPredicate | None = None,
        clock=utcnow,
    ):
        self.remote = remote
        self.reader = reader or RemoteStateReader(remote)
        self.policy = policy or RetryPolicy()
        self.predicate = predicate or NoContentPredicate()
        self._clock = clock

    async def prove(self, db: Session, screen: Screen, expect_content: bool = True) -> ProofStatus:
        status = ProofStatus(ok=False, reason=REASON_TIMEOUT)
        if not screen.device_id:
            status.reason = REASON_OFFLINE
            status.logs.append("screen is not linked to a device")
            return status

        try:
            await asyncio.wait_for(self._poll(screen, expect_content, status), timeout=self.policy.total_timeout)
        except asyncio.TimeoutError:
            status.ok = False
            status.reason = REASON_TIMEOUT
            status.logs.append(f"gave up after {self.policy.total_timeout:g}s")

        if status.ok and status.proof is not None:
            self._store(db, screen, status.proof)
        logger.info("proof for screen %s: %s after %s attempts", screen.id, status.reason, status.attempts)
        return status

    async def _poll(self, screen: Screen, expect_content: bool, status: ProofStatus) -> None:
        for attempt, delay in enumerate(self.policy.delays, start=1):
            await self.policy.sleep(delay)
            reason, proof = await self._attempt(screen, expect_content)
            status.attempts = attempt
            status.reason = reason
            status.proof = proof
            status.logs.append(f"attempt {attempt}: {reason}")
            if reason == REASON_OK:
                status.ok = True
                return

    async def _attempt(self, screen: Screen, expect_content: bool) -> tuple[str, ScreenshotProof | None]:
        source = await self.reader.read_source(str(screen.device_id))
        if not source.ok or not source.online:
            return REASON_OFFLINE, None
        if expect_content and source.item_count == 0:
            return REASON_EMPTY, None
        if not source.screenshot_url:
            return REASON_NO_SCREENSHOT, None

        stamp = int(self._clock().timestamp() * 1000)
        data = await self.remote.fetch_bytes(cache_busted(source.screenshot_url, stamp))
        if not data:
            return REASON_NO_SCREENSHOT, None

        digest = screenshot_hash(data)
        blank = self.predicate(len(data), digest)
        proof = ScreenshotProof(
            url=source.screenshot_url,
            byte_size=len(data),
            content_hash=digest,
            detected_no_content=blank,
            valid=not blank,
        )
        return (REASON_NO_CONTENT if blank else REASON_OK), proof

    def _store(self, db: Session, screen: Screen, proof: ScreenshotProof) -> None:
        now = self._clock()
        previous = screen.screenshot_last_ok_at
        screen.screenshot_url = proof.url
        screen.screenshot_byte_size = proof.byte_size
        screen.screenshot_hash = proof.content_hash
        if previous is None or now > previous:
            screen.screenshot_last_ok_at = now
        proof.last_ok_at = screen.screenshot_last_ok_at
        db.commit()
