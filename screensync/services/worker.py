import asyncio
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

from screensync.db import utcnow
from screensync.models.screen import Screen
from screensync.services.reconciler import PlaybackReconciler

logger = logging.getLogger(__name__)

WORKER_ENABLED = os.getenv("SCREENSYNC_WORKER_ENABLED", "1").strip().lower() in {"1", "true", "yes", "on"}
WORKER_INTERVAL_SEC = int(os.getenv("SCREENSYNC_WORKER_INTERVAL_SEC", "600"))
WORKER_INITIAL_DELAY_SEC = int(os.getenv("SCREENSYNC_WORKER_INITIAL_DELAY_SEC", "180"))
WORKER_ITEM_DELAY_SEC = float(os.getenv("SCREENSYNC_WORKER_ITEM_DELAY_SEC", "3"))
WORKER_MAX_REPAIRS = int(os.getenv("SCREENSYNC_WORKER_MAX_REPAIRS", "25"))
WORKER_MODE = (os.getenv("SCREENSYNC_WORKER_MODE", "repair") or "repair").strip().lower()

MODES = ("sync", "repair", "proof")


@dataclass
class RunSummary:
    mode: str
    started_at: datetime
    finished_at: datetime | None = None
    checked: int = 0
    repaired: int = 0
    errored: int = 0
    skipped_busy: int = 0
    skipped_budget: int = 0
    skipped_reason: str | None = None
    failures: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["started_at"] = self.started_at.isoformat()
        payload["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return payload


class ReconciliationWorker:
    """Periodic pass over every linked screen, one screen at a time."""

    def __init__(
        self,
        reconciler: PlaybackReconciler,
        interval_sec: float = WORKER_INTERVAL_SEC,
        item_delay_sec: float = WORKER_ITEM_DELAY_SEC,
        max_repairs_per_run: int = WORKER_MAX_REPAIRS,
        mode: str = WORKER_MODE,
        initial_delay_sec: float = WORKER_INITIAL_DELAY_SEC,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if mode not in MODES:
            raise ValueError(f"Unknown worker mode {mode!r}, expected one of {', '.join(MODES)}")
        self.reconciler = reconciler
        self.interval_sec = interval_sec
        self.item_delay_sec = item_delay_sec
        self.max_repairs_per_run = max_repairs_per_run
        self.mode = mode
        self.initial_delay_sec = initial_delay_sec
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._run_lock = asyncio.Lock()
        self.last_summary: RunSummary | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        if self.running:
            return False
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "reconciliation worker started (mode=%s, interval=%ss, initial delay=%ss)",
            self.mode,
            self.interval_sec,
            self.initial_delay_sec,
        )
        return True

    async def stop(self) -> bool:
        if self._task is None:
            return False
        task = self._task
        self._task = None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("reconciliation worker stopped")
        return True

    async def _loop(self) -> None:
        await self._sleep(self.initial_delay_sec)
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("reconciliation run crashed")
            await self._sleep(self.interval_sec)

    def _list_screen_ids(self) -> list[str]:
        db = self.reconciler.session_factory()
        try:
            rows = (
                db.query(Screen.id)
                .filter(Screen.device_id.isnot(None), Screen.is_active.is_(True))
                .order_by(Screen.code.asc(), Screen.created_at.asc(), Screen.id.asc())
                .all()
            )
            return [str(row[0]) for row in rows]
        finally:
            db.close()

    async def _process(self, screen_id: str) -> bool:
        if self.mode == "sync":
            return (await self.reconciler.sync_screen(screen_id)).ok
        if self.mode == "repair":
            return (await self.reconciler.repair_screen(screen_id)).ok
        return (await self.reconciler.force_repair_and_proof(screen_id)).ok

    async def run_once(self) -> RunSummary:
        async with self._run_lock:
            summary = RunSummary(mode=self.mode, started_at=utcnow())
            if not self.reconciler.remote.configured:
                summary.skipped_reason = "remote platform not configured"
                summary.finished_at = utcnow()
                logger.info("reconciliation run skipped: %s", summary.skipped_reason)
                self.last_summary = summary
                return summary

            screen_ids = self._list_screen_ids()
            for index, screen_id in enumerate(screen_ids):
                if self.reconciler.locks.is_held(screen_id):
                    summary.skipped_busy += 1
                    continue
                if summary.checked >= self.max_repairs_per_run:
                    summary.skipped_budget += 1
                    continue

                summary.checked += 1
                try:
                    ok = await self._process(screen_id)
                except Exception as exc:
                    summary.errored += 1
                    summary.failures[screen_id] = getattr(exc, "reason", None) or exc.__class__.__name__
                    logger.exception("reconciliation of screen %s failed", screen_id)
                else:
                    if ok:
                        summary.repaired += 1
                    else:
                        summary.errored += 1
                        summary.failures[screen_id] = self._last_reason(screen_id)

                if index < len(screen_ids) - 1 and self.item_delay_sec > 0:
                    await self._sleep(self.item_delay_sec)

            summary.finished_at = utcnow()
            self.last_summary = summary
            logger.info(
                "reconciliation run done: checked=%s ok=%s errored=%s busy=%s over_budget=%s",
                summary.checked,
                summary.repaired,
                summary.errored,
                summary.skipped_busy,
                summary.skipped_budget,
            )
            return summary

    def _last_reason(self, screen_id: str) -> str:
        state = self.reconciler.sync_status(screen_id) or {}
        return state.get("error_reason") or state.get("proof_reason") or "failed"

    def status(self) -> dict:
        return {
            "running": self.running,
            "mode": self.mode,
            "interval_sec": self.interval_sec,
            "item_delay_sec": self.item_delay_sec,
            "max_repairs_per_run": self.max_repairs_per_run,
            "busy_screens": self.reconciler.locks.held(),
            "last_run": self.last_summary.to_dict() if self.last_summary else None,
        }
