import unittest

from datasprint.db import (
    ROLE_ADMIN,
    PostgresDbClient,
    RoundContentRecord,
    SubmissionRecord,
)


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")

    def test_settings_upsert_delete_and_list(self):
        self.assertIsNone(self.db.get_setting("current_round"))
        self.db.upsert_setting("current_round", "1")
        self.db.upsert_setting("current_round", "2")
        self.db.upsert_setting("round_end_time", "2026-01-01T00:00:00.000Z")

        self.assertEqual(self.db.get_setting("current_round"), "2")
        self.assertEqual(
            [s.key for s in self.db.list_settings()],
            ["current_round", "round_end_time"],
        )
        self.assertTrue(self.db.delete_setting("round_end_time"))
        self.assertFalse(self.db.delete_setting("round_end_time"))

    def test_round_content_roundtrip(self):
        content = RoundContentRecord(
            round_id=1,
            track="S1",
            title="Warmup",
            description="Explore the data",
            dataset_prefix="round1",
            questions=[{"id": 1, "text": "Median?"}],
        )
        self.db.save_round_content(content)

        self.assertEqual(self.db.get_round_content(1, "S1"), content)
        self.assertIsNone(self.db.get_round_content(1, "L1"))

    def test_users_teams_and_members(self):
        team = self.db.create_team("Alpha", "L1")
        self.db.create_user("zoe", "pw", team_id=team.team_id)
        self.db.create_user("adam", "pw", team_id=team.team_id)
        self.db.create_user("root", "pw", role=ROLE_ADMIN)

        user = self.db.get_user_by_username("zoe")
        self.assertEqual(user.team_id, team.team_id)
        self.assertEqual(self.db.get_team(team.team_id).group, "L1")
        self.assertEqual(self.db.count_users(), 3)

        members = self.db.list_members()
        self.assertEqual([u.username for u, _ in members], ["adam", "zoe"])
        self.assertEqual(members[0][1].team_name, "Alpha")

    def test_upsert_score_creates_then_merges(self):
        team = self.db.create_team("Alpha", "L1")
        self.db.upsert_score(team.team_id, {"round1_score": 10, "total_score": 10})
        record = self.db.upsert_score(team.team_id, {"round2_score": 5, "total_score": 15})

        self.assertEqual(record.round1_score, 10)
        self.assertEqual(record.round2_score, 5)
        self.assertEqual(record.visualization_score, 0)
        self.assertEqual(record.total_score, 15)

        rows = self.db.list_teams_with_scores()
        self.assertEqual(rows[0][1].total_score, 15)

    def test_upsert_score_rejects_unknown_columns(self):
        with self.assertRaises(ValueError):
            self.db.upsert_score("t1", {"style_score": 1})

    def test_submissions_newest_first(self):
        team = self.db.create_team("Alpha", "L1")
        older = SubmissionRecord(
            team_id=team.team_id, round=1, image_url="u1", submitted_at=100.0
        )
        newer = SubmissionRecord(
            team_id=team.team_id,
            round=1,
            image_url="u2",
            answers={"q1": "a"},
            submitted_at=200.0,
        )
        self.db.create_submission(older)
        self.db.create_submission(newer)

        listed = self.db.list_submissions()
        self.assertEqual([s.image_url for s in listed], ["u2", "u1"])
        self.assertEqual(listed[0].answers, {"q1": "a"})


if __name__ == "__main__":
    unittest.main()
