from __future__ import annotations

import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

import sobriety.kvstore as kvstore
from sobriety.milestones import MilestoneTracker
from sobriety.preferences import AppPreferences
from sobriety.progress import Elapsed, GrowthStage, elapsed, growth_stage
from sobriety.storage import StorageService


class JourneyFlowTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self._old_db = kvstore.DB_PATH
        kvstore.DB_PATH = Path(self._tmp.name) / "journey.sqlite3"
        self.storage = StorageService()
        self.tracker = MilestoneTracker(self.storage)

    def tearDown(self) -> None:
        kvstore.DB_PATH = self._old_db
        self._tmp.cleanup()

    async def test_first_day_of_a_fresh_install(self) -> None:
        self.assertIsNone(await self.storage.get_sobriety_date())

        t0 = datetime(2026, 4, 2, 7, 0, tzinfo=timezone.utc)
        await self.storage.set_sobriety_date(t0)
        start = await self.storage.get_sobriety_date()
        self.assertEqual(start, t0)

        current = elapsed(start, t0 + timedelta(hours=25))
        self.assertEqual(current, Elapsed(1, 1, 0))
        # day 1 is still the seed stage; sprouting starts on day 2
        self.assertEqual(growth_stage(current.days), GrowthStage.SEED)
        self.assertEqual(growth_stage(current.days + 1), GrowthStage.SPROUT)

        celebrated = await self.tracker.check_for_milestone(current.days)
        self.assertEqual(celebrated.title, "First Day!")
        self.assertIsNone(await self.tracker.check_for_milestone(current.days))

    async def test_reset_lets_milestones_replay(self) -> None:
        await self.storage.set_sobriety_date(datetime.now(timezone.utc))
        await self.tracker.check_for_milestone(1)
        await self.storage.reset_journey()
        self.assertIsNone(await self.storage.get_sobriety_date())
        self.assertIsNotNone(await self.tracker.check_for_milestone(1))

    async def test_preferences_round_trip(self) -> None:
        prefs = await AppPreferences.load(self.storage)
        self.assertEqual(prefs, AppPreferences())
        self.assertEqual(prefs.color_scheme("dark"), "dark")

        await AppPreferences(theme_preference="light", notifications_enabled=True).save(self.storage)
        loaded = await AppPreferences.load(self.storage)
        self.assertEqual(loaded.theme_preference, "light")
        self.assertTrue(loaded.notifications_enabled)
        self.assertEqual(loaded.color_scheme("dark"), "light")


if __name__ == "__main__":
    unittest.main()
