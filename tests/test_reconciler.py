import unittest

from support import BASELINE_ID, FakeRemote, add_screen, baseline_items, make_reconciler, make_session_factory

from screensync.models.location import Location
from screensync.models.screen import Screen
from screensync.services.errors import ScreenNotFoundError
from screensync.services.reconciler import expected_source


class ExpectedSourceTests(unittest.TestCase):
    def test_combined_playlist_wins(self) -> None:
        location = Location(name="x", combined_playlist_id="1", layout_mode="LAYOUT", layout_id="2", legacy_playlist_id="3")

        expected = expected_source(location)

        self.assertEqual((expected.source_type, expected.source_id, expected.origin), ("playlist", "1", "combined"))

    def test_layout_only_in_layout_mode(self) -> None:
        layout = expected_source(Location(name="x", layout_mode="LAYOUT", layout_id="2", legacy_playlist_id="3"))
        fallback = expected_source(Location(name="x", layout_mode="FALLBACK_SCHEDULE", layout_id="2", legacy_playlist_id="3"))

        self.assertEqual((layout.source_type, layout.source_id), ("layout", "2"))
        self.assertEqual((fallback.source_type, fallback.source_id, fallback.origin), ("playlist", "3", "legacy"))

    def test_unknown_when_nothing_configured(self) -> None:
        self.assertEqual(expected_source(Location(name="x")).origin, "unknown")
        self.assertEqual(expected_source(None).origin, "unknown")


class PlaybackReconcilerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.remote = FakeRemote()
        self.remote.add_playlist(BASELINE_ID, "Baseline", baseline_items(10, 11))
        self.remote.add_screen("5001", screenshot_url="https://shots.example.com/5001.png")
        self.session_factory = make_session_factory()
        db = self.session_factory()
        location = Location(name="Main")
        db.add(location)
        db.commit()
        self.location_id = location.id
        self.screen_id = add_screen(db, device_id="5001", location_id=location.id).id
        db.close()
        self.reconciler = make_reconciler(self.remote, self.session_factory)

    def _set_location(self, **fields) -> None:
        db = self.session_factory()
        location = db.query(Location).get(self.location_id)
        for key, value in fields.items():
            setattr(location, key, value)
        db.commit()
        db.close()

    async def test_sync_records_state_for_polling(self) -> None:
        result = await self.reconciler.sync_screen(self.screen_id)

        state = self.reconciler.sync_status(self.screen_id)
        self.assertTrue(result.ok)
        self.assertEqual(state["last_action"], "sync")
        self.assertEqual(state["item_count"], 2)
        self.assertEqual(state["playlist_id"], result.playlist_id)
        self.assertTrue(state["logs"])

    async def test_unknown_screen(self) -> None:
        with self.assertRaises(ScreenNotFoundError):
            await self.reconciler.sync_screen("missing")

    async def test_repair_refreshes_after_successful_write(self) -> None:
        result = await self.reconciler.repair_screen(self.screen_id)

        self.assertTrue(result.ok)
        self.assertEqual(result.device_status.status, "ONLINE")
        self.assertEqual((result.refresh.ok, result.refresh.method), (True, "restart"))

    async def test_refresh_falls_back_to_repush(self) -> None:
        self.remote.fail_on("POST", r"/restart/$")

        result = await self.reconciler.repair_screen(self.screen_id)

        self.assertTrue(result.ok)
        self.assertEqual((result.refresh.ok, result.refresh.method), (True, "repush"))
        self.assertEqual(len(self.remote.calls_matching("POST", r"/push/$")), 1)

    async def test_refresh_failure_does_not_fail_repair(self) -> None:
        self.remote.fail_on("POST", r"/restart/$")
        self.remote.fail_on("POST", r"/push/$")

        result = await self.reconciler.repair_screen(self.screen_id)

        self.assertTrue(result.ok)
        self.assertFalse(result.refresh.ok)

    async def test_no_refresh_when_nothing_written(self) -> None:
        self.remote.playlists[BASELINE_ID]["items"] = []

        result = await self.reconciler.repair_screen(self.screen_id)

        self.assertFalse(result.ok)
        self.assertIsNone(result.refresh)
        self.assertEqual(self.remote.calls_matching("POST", r"/restart/$"), [])

    async def test_force_repair_and_proof(self) -> None:
        self.remote.screenshots["https://shots.example.com/5001.png"] = bytes(range(256)) * 40

        result = await self.reconciler.force_repair_and_proof(self.screen_id)

        self.assertTrue(result.ok)
        self.assertEqual(result.proof.reason, "ok")
        state = self.reconciler.sync_status(self.screen_id)
        self.assertEqual((state["last_action"], state["proof_status"]), ("force_proof", "ok"))
        db = self.session_factory()
        self.assertIsNotNone(db.query(Screen).get(self.screen_id).screenshot_last_ok_at)
        db.close()

    async def test_force_proof_skipped_when_repair_fails(self) -> None:
        self.remote.fail_on("PATCH", r"^/playlists/")

        result = await self.reconciler.force_repair_and_proof(self.screen_id)

        self.assertFalse(result.ok)
        self.assertIsNone(result.proof)

    async def test_now_playing_matches_expected(self) -> None:
        sync = await self.reconciler.sync_screen(self.screen_id)
        self._set_location(combined_playlist_id=sync.playlist_id)

        now = await self.reconciler.get_now_playing(self.screen_id)

        self.assertEqual(now.mismatch_level, "none")
        self.assertFalse(now.mismatch)
        self.assertEqual(now.item_count, 2)

    async def test_now_playing_warning_on_different_source(self) -> None:
        await self.reconciler.sync_screen(self.screen_id)
        self._set_location(layout_mode="LAYOUT", layout_id="42")

        now = await self.reconciler.get_now_playing(self.screen_id)

        self.assertEqual(now.mismatch_level, "warning")
        self.assertTrue(now.mismatch)
        self.assertEqual(now.expected.origin, "layout")

    async def test_now_playing_info_without_expected_source(self) -> None:
        await self.reconciler.sync_screen(self.screen_id)

        now = await self.reconciler.get_now_playing(self.screen_id)

        self.assertEqual(now.mismatch_level, "info")
        self.assertFalse(now.mismatch)

    async def test_now_playing_critical_on_empty_playlist(self) -> None:
        self.remote.add_playlist("900", "loop", [])
        self.remote.add_screen("5001", source_type="playlist", source_id="900")
        self._set_location(combined_playlist_id="900")

        now = await self.reconciler.get_now_playing(self.screen_id)

        self.assertEqual(now.mismatch_level, "critical")
        self.assertEqual(now.mismatch_reason, "playlist empty - repair needed")

    async def test_now_playing_critical_when_read_fails(self) -> None:
        self.remote.fail_on("GET", r"^/screens/5001/$")

        now = await self.reconciler.get_now_playing(self.screen_id)

        self.assertEqual(now.mismatch_level, "critical")
        self.assertFalse(now.actual.ok)

    async def test_audit_reports_missing_and_duplicate_media(self) -> None:
        self.remote.add_playlist(
            "900",
            "loop",
            [
                {"id": 10, "type": "media", "duration": 10, "priority": 1},
                {"id": 55, "type": "media", "duration": 15, "priority": 2},
                {"id": 55, "type": "media", "duration": 15, "priority": 3},
            ],
        )
        self.remote.add_screen("5001", source_type="playlist", source_id="900")

        report = await self.reconciler.audit_playlists()

        self.assertFalse(report.ok)
        entry = report.screens[0]
        self.assertEqual(entry.missing_baseline, [11])
        self.assertEqual(entry.duplicates, [55])
        self.assertEqual(self.remote.calls_matching("PATCH", r"."), [])

    async def test_audit_clean_after_sync(self) -> None:
        await self.reconciler.sync_screen(self.screen_id)

        report = await self.reconciler.audit_playlists()

        self.assertTrue(report.ok)
        self.assertEqual(report.baseline_count, 2)


if __name__ == "__main__":
    unittest.main()
