import asyncio
import unittest
from datetime import datetime, timedelta

from support import FakeRemote, add_screen, make_session_factory, no_sleep

from screensync.models.screen import Screen
from screensync.services.proof import (
    NoContentPredicate,
    ProofEngine,
    RetryPolicy,
    cache_busted,
    screenshot_hash,
)
from screensync.services.remote_state import RemoteStateReader

SHOT_URL = "https://shots.example.com/5001.png"
GOOD_SHOT = bytes(range(256)) * 40
BLANK_SHOT = b"\x00" * 1200


class ProofHelpersTests(unittest.TestCase):
    def test_cache_busting_replaces_existing_stamp(self) -> None:
        busted = cache_busted("https://x.example.com/a.png?size=l&_ts=1", 42)

        self.assertEqual(busted, "https://x.example.com/a.png?size=l&_ts=42")

    def test_hash_only_covers_prefix(self) -> None:
        self.assertEqual(screenshot_hash(b"abcdef", prefix=3), screenshot_hash(b"abcxyz", prefix=3))
        self.assertNotEqual(screenshot_hash(b"abcdef", prefix=4), screenshot_hash(b"abcxyz", prefix=4))

    def test_predicate_size_threshold_and_known_hashes(self) -> None:
        predicate = NoContentPredicate(min_bytes=5000, known_bad_hashes={"ABC"})

        self.assertTrue(predicate(5000, "123"))
        self.assertFalse(predicate(5001, "123"))
        self.assertTrue(predicate(90000, "abc"))


class ProofEngineTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.remote = FakeRemote()
        self.remote.add_playlist("2000", "loop", [{"id": 10, "type": "media", "duration": 10, "priority": 1}])
        self.remote.add_screen("5001", source_type="playlist", source_id="2000", screenshot_url=SHOT_URL)
        self.db = make_session_factory()()
        self.screen = add_screen(self.db, device_id="5001")
        self.now = datetime(2026, 3, 1, 12, 0, 0)

    def tearDown(self) -> None:
        self.db.close()

    def _engine(self, sleep=no_sleep, delays=(0, 0, 0), timeout=5.0, predicate=None) -> ProofEngine:
        return ProofEngine(
            self.remote,
            RemoteStateReader(self.remote),
            policy=RetryPolicy(delays=delays, total_timeout=timeout, sleep=sleep),
            predicate=predicate,
            clock=lambda: self.now,
        )

    async def test_valid_screenshot_is_stored(self) -> None:
        self.remote.screenshots[SHOT_URL] = GOOD_SHOT

        status = await self._engine().prove(self.db, self.screen)

        self.assertTrue(status.ok)
        self.assertEqual(status.reason, "ok")
        self.assertEqual(status.attempts, 1)
        self.assertEqual(status.proof.byte_size, len(GOOD_SHOT))
        self.assertFalse(status.proof.detected_no_content)
        screen = self.db.query(Screen).get(self.screen.id)
        self.assertEqual(screen.screenshot_last_ok_at, self.now)
        self.assertEqual(screen.screenshot_hash, screenshot_hash(GOOD_SHOT))
        self.assertIn("_ts=", self.remote.fetched_urls[0])

    async def test_blank_screenshot_never_becomes_last_good(self) -> None:
        self.remote.screenshots[SHOT_URL] = BLANK_SHOT

        status = await self._engine().prove(self.db, self.screen)

        self.assertFalse(status.ok)
        self.assertEqual(status.reason, "no_content_detected")
        self.assertEqual(status.attempts, 3)
        self.assertTrue(status.proof.detected_no_content)
        self.assertIsNone(self.db.query(Screen).get(self.screen.id).screenshot_last_ok_at)

    async def test_known_bad_hash_is_no_content(self) -> None:
        self.remote.screenshots[SHOT_URL] = GOOD_SHOT
        predicate = NoContentPredicate(min_bytes=10, known_bad_hashes={screenshot_hash(GOOD_SHOT)})

        status = await self._engine(predicate=predicate).prove(self.db, self.screen)

        self.assertEqual(status.reason, "no_content_detected")

    async def test_offline_device(self) -> None:
        self.remote.screens["5001"]["is_online"] = False

        status = await self._engine().prove(self.db, self.screen)

        self.assertEqual(status.reason, "offline")
        self.assertEqual(self.remote.fetched_urls, [])

    async def test_empty_playlist(self) -> None:
        self.remote.playlists["2000"]["items"] = []

        status = await self._engine().prove(self.db, self.screen)

        self.assertEqual(status.reason, "empty")

    async def test_missing_screenshot(self) -> None:
        status = await self._engine().prove(self.db, self.screen)

        self.assertEqual(status.reason, "no_screenshot")
        self.assertEqual(len(status.logs), 3)

    async def test_stops_polling_on_first_success(self) -> None:
        waits: list[float] = []

        async def sleep(delay: float) -> None:
            waits.append(delay)
            if len(waits) == 2:
                self.remote.screenshots[SHOT_URL] = GOOD_SHOT

        status = await self._engine(sleep=sleep, delays=(5, 10, 15, 20)).prove(self.db, self.screen)

        self.assertTrue(status.ok)
        self.assertEqual(status.attempts, 2)
        self.assertEqual(waits, [5, 10])

    async def test_last_ok_never_moves_backward(self) -> None:
        later = self.now + timedelta(hours=1)
        self.screen.screenshot_last_ok_at = later
        self.db.commit()
        self.remote.screenshots[SHOT_URL] = GOOD_SHOT

        status = await self._engine().prove(self.db, self.screen)

        self.assertTrue(status.ok)
        self.assertEqual(self.db.query(Screen).get(self.screen.id).screenshot_last_ok_at, later)
        self.assertEqual(status.proof.last_ok_at, later)

    async def test_whole_operation_times_out(self) -> None:
        status = await self._engine(sleep=asyncio.sleep, delays=(10,), timeout=0.05).prove(self.db, self.screen)

        self.assertFalse(status.ok)
        self.assertEqual(status.reason, "timeout")

    async def test_unlinked_screen(self) -> None:
        screen = add_screen(self.db, code="SCR-002", device_id=None)

        status = await self._engine().prove(self.db, screen)

        self.assertFalse(status.ok)
        self.assertEqual(self.remote.calls, [])


if __name__ == "__main__":
    unittest.main()
