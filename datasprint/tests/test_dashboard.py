import unittest
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from datasprint.cache import MemoryCache
from datasprint.config import Settings
from datasprint.dashboard import DashboardService, parse_current_round, remaining_seconds
from datasprint.datasets import final_dataset_paths, main_dataset_paths, track_pool
from datasprint.db import (
    CURRENT_ROUND_KEY,
    ROUND_END_TIME_KEY,
    InMemoryDbClient,
    RoundContentRecord,
)
from datasprint.errors import RoundContentNotFound, UpstreamUnavailable
from datasprint.rounds import format_end_time
from datasprint.signed_urls import SignedUrlGateway
from datasprint.storage import InMemoryStorageClient
from datasprint.tests.fakes import FakeClock


class DatasetPathTests(unittest.TestCase):
    def test_main_and_final_paths_for_l_track(self):
        self.assertEqual(
            main_dataset_paths("L1", 2, "round2"),
            ["L1/round2/round2_L1_1.csv", "L1/round2/round2_L1_2.csv"],
        )
        self.assertEqual(
            final_dataset_paths("L1", "round2"),
            ["Phase 2/L/round2_final_L_1.csv", "Phase 2/L/round2_final_L_2.csv"],
        )

    def test_track_pool(self):
        self.assertEqual(track_pool("L2"), "L")
        self.assertEqual(track_pool("S1"), "S")
        self.assertEqual(track_pool("S2"), "S")


class ParsingTests(unittest.TestCase):
    def test_parse_current_round(self):
        self.assertEqual(parse_current_round(None), 1)
        self.assertEqual(parse_current_round("3"), 3)
        self.assertEqual(parse_current_round("junk"), 1)

    def test_remaining_seconds(self):
        now = 1_700_000_000.0
        self.assertEqual(remaining_seconds(format_end_time(now + 90.5), now), 90)
        self.assertEqual(remaining_seconds(format_end_time(now - 500), now), 0)
        self.assertIsNone(remaining_seconds("not a date", now))


class DashboardServiceTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.db = InMemoryDbClient()
        self.cache = MemoryCache(clock=self.clock)
        self.storage = InMemoryStorageClient(bucket="datasets")
        self.settings = Settings(_env_file=None)
        self.service = DashboardService(
            db=self.db,
            cache=self.cache,
            gateway=SignedUrlGateway(self.storage),
            settings=self.settings,
            clock=self.clock,
        )
        self.db.upsert_setting(CURRENT_ROUND_KEY, "2")
        self.db.save_round_content(
            RoundContentRecord(
                round_id=2,
                track="L1",
                title="Forecasting",
                description="Predict demand",
                dataset_prefix="round2",
                questions=[{"id": 1, "text": "What is the trend?"}],
            )
        )
        for path in main_dataset_paths("L1", 2, "round2") + final_dataset_paths("L1", "round2"):
            self.storage.upload_bytes(path, b"a,b\n1,2\n", "text/csv")

    def _set_end_in(self, seconds: float) -> None:
        self.db.upsert_setting(ROUND_END_TIME_KEY, format_end_time(self.clock() + seconds))

    def test_builds_main_datasets_without_timer(self):
        view = self.service.build("L1")

        self.assertEqual(view.round, 2)
        self.assertEqual(view.title, "Forecasting")
        self.assertEqual(len(view.main_dataset_urls), 2)
        self.assertIn("L1/round2/round2_L1_1.csv", view.main_dataset_urls[0])
        self.assertEqual(view.final_dataset_urls, [])
        self.assertIsNone(view.end_time)

        payload = view.as_dict()
        self.assertEqual(payload["datasetName"], "round2_L1_1.csv")
        self.assertEqual(payload["taskDescription"], "Round 2: Forecasting")
        self.assertIsNone(payload["finalDatasetUrl"])

    def test_current_round_defaults_to_one(self):
        self.db.delete_setting(CURRENT_ROUND_KEY)
        self.db.save_round_content(
            RoundContentRecord(1, "L1", "Warmup", "", "round1")
        )
        view = self.service.build("L1")
        self.assertEqual(view.round, 1)
        # round 1 files were never uploaded
        self.assertEqual(view.main_dataset_urls, [])

    def test_missing_round_content_is_not_found(self):
        with self.assertRaises(RoundContentNotFound):
            self.service.build("S2")

    def test_final_datasets_withheld_at_window_boundary(self):
        self._set_end_in(2700)
        view = self.service.build("L1")
        self.assertFalse(view.final_released)
        self.assertEqual(view.final_dataset_urls, [])

    def test_final_datasets_released_inside_window(self):
        self._set_end_in(2699)
        view = self.service.build("L1")
        self.assertTrue(view.final_released)
        self.assertEqual(len(view.final_dataset_urls), 2)
        self.assertIn("Phase 2/L/round2_final_L_1.csv", view.final_dataset_urls[0])

    def test_final_datasets_released_after_round_end(self):
        self._set_end_in(-60)
        view = self.service.build("L1")
        self.assertEqual(len(view.final_dataset_urls), 2)

    def test_unparsable_end_time_withholds_final_datasets(self):
        self.db.upsert_setting(ROUND_END_TIME_KEY, "tomorrow-ish")
        view = self.service.build("L1")
        self.assertEqual(view.final_dataset_urls, [])
        self.assertEqual(view.end_time, "tomorrow-ish")

    def test_signing_failure_only_drops_that_slot(self):
        self.storage.stored_objects.pop("L1/round2/round2_L1_2.csv")
        self._set_end_in(60)

        view = self.service.build("L1")

        self.assertEqual(len(view.main_dataset_urls), 1)
        self.assertIsNone(view.main_datasets[1])
        self.assertEqual(len(view.final_dataset_urls), 2)

    def test_signed_url_is_reused_within_cache_ttl(self):
        with patch.object(
            self.storage, "presign_get", wraps=self.storage.presign_get
        ) as presign:
            first = self.service.build("L1")
            self.clock.advance(54 * 60)
            second = self.service.build("L1")

        self.assertEqual(first.main_dataset_urls, second.main_dataset_urls)
        signed_paths = [c.args[0] for c in presign.call_args_list]
        self.assertEqual(signed_paths.count("L1/round2/round2_L1_1.csv"), 1)
        self.assertEqual(presign.call_args_list[0].kwargs["expires_in"], 3600)

    def test_signed_url_is_reissued_after_cache_ttl(self):
        with patch.object(
            self.storage, "presign_get", wraps=self.storage.presign_get
        ) as presign:
            self.service.build("L1")
            self.clock.advance(55 * 60 + 1)
            self.service.build("L1")

        signed_paths = [c.args[0] for c in presign.call_args_list]
        self.assertEqual(signed_paths.count("L1/round2/round2_L1_1.csv"), 2)

    def test_failed_signature_is_not_cached(self):
        self.storage.stored_objects.pop("L1/round2/round2_L1_1.csv")
        self.service.build("L1")
        self.storage.upload_bytes("L1/round2/round2_L1_1.csv", b"x")

        view = self.service.build("L1")

        self.assertEqual(len(view.main_dataset_urls), 2)

    def test_round_settings_are_cached_for_thirty_seconds(self):
        self.service.build("L1")
        self.db.upsert_setting(CURRENT_ROUND_KEY, "3")

        self.clock.advance(29)
        self.assertEqual(self.service.current_round(), 2)

        self.clock.advance(2)
        self.assertEqual(self.service.current_round(), 3)

    def test_absent_timer_is_cached(self):
        with patch.object(self.db, "get_setting", wraps=self.db.get_setting) as get_setting:
            self.service.round_end_time()
            self.service.round_end_time()
        keys = [c.args[0] for c in get_setting.call_args_list]
        self.assertEqual(keys.count(ROUND_END_TIME_KEY), 1)

    def test_store_failure_on_current_round_propagates(self):
        error = OperationalError("SELECT", {}, Exception("connection refused"))
        with patch.object(self.db, "get_setting", side_effect=error):
            with self.assertRaises(UpstreamUnavailable):
                self.service.build("L1")


if __name__ == "__main__":
    unittest.main()
