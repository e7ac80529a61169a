import unittest
from unittest.mock import patch

from datasprint.datasets import audit_datasets
from datasprint.storage import InMemoryStorageClient, StorageError


class DatasetAuditTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryStorageClient(bucket="datasets")

    def _upload(self, *paths):
        for path in paths:
            self.storage.upload_bytes(path, b"x")

    def test_complete_layout_passes(self):
        self._upload(
            "L1/round1/round1_L1_1.csv",
            "L1/round1/round1_L1_2.csv",
            "Phase 2/L/round1_final_L_1.csv",
            "Phase 2/L/round1_final_L_2.csv",
        )

        audit = audit_datasets(self.storage, tracks=["L1"], rounds=[1])

        self.assertTrue(audit.ok)
        self.assertEqual(len(audit.main_found), 1)
        self.assertEqual(
            audit.final_found,
            ["Phase 2/L/ (Round 1): round1_final_L_1.csv, round1_final_L_2.csv"],
        )

    def test_reports_missing_and_empty_folders(self):
        self._upload("S1/round1/round1_S1_1.csv")

        audit = audit_datasets(self.storage, tracks=["S1"], rounds=[1, 2])

        self.assertFalse(audit.ok)
        self.assertIn("S1/round1/ - Missing: round1_S1_2.csv", audit.missing)
        self.assertIn("S1/round2/ - EMPTY FOLDER", audit.missing)
        self.assertIn("Phase 2/S/ (Round 1) - EMPTY FOLDER", audit.missing)

    def test_listing_errors_are_reported(self):
        with patch.object(
            self.storage, "list_prefix", side_effect=StorageError("denied")
        ):
            audit = audit_datasets(self.storage, tracks=["L2"], rounds=[1])
        self.assertEqual(len(audit.missing), 2)
        self.assertTrue(audit.missing[0].endswith("ERROR: denied"))


if __name__ == "__main__":
    unittest.main()
