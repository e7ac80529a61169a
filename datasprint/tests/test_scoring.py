import unittest
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from datasprint.db import CURRENT_ROUND_KEY, ROUND_END_TIME_KEY, InMemoryDbClient
from datasprint.errors import UpstreamUnavailable, ValidationError
from datasprint.rounds import MAX_TIMER_HOURS, RoundControl, format_end_time
from datasprint.scoring import (
    CriteriaScores,
    RoundScores,
    ScoringService,
    score_update_from_fields,
)
from datasprint.tests.fakes import FakeClock


class ScoreUpdateShapeTests(unittest.TestCase):
    def test_round_fields_take_precedence(self):
        update = score_update_from_fields({"viz": 3, "round2": 5})
        self.assertEqual(update, RoundScores(round2=5.0))

    def test_criteria_aliases(self):
        update = score_update_from_fields(
            {"viz": 1, "pred": 2, "feat": 3, "code": 4, "judge": 5, "round1": None}
        )
        self.assertEqual(
            update,
            CriteriaScores(visualization=1, prediction=2, feature=3, code=4, judges=5),
        )

    def test_non_numeric_score_is_rejected(self):
        with self.assertRaises(ValidationError):
            score_update_from_fields({"round1": "ten"})

    def test_non_finite_score_is_rejected(self):
        for value in (float("inf"), float("-inf"), float("nan"), "Infinity"):
            with self.assertRaises(ValidationError):
                score_update_from_fields({"round1": value})


class ScoringServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.scoring = ScoringService(self.db)

    def test_batch_round_scores_fill_missing_with_zero(self):
        update = score_update_from_fields({"round1": 10, "round2": 5})
        result = self.scoring.apply_batch([("t1", update)])

        self.assertEqual(result.count, 1)
        score = self.db.get_score("t1")
        self.assertEqual(score.round1_score, 10)
        self.assertEqual(score.round2_score, 5)
        self.assertEqual(score.round3_score, 0)
        self.assertEqual(score.round4_score, 0)
        self.assertEqual(score.total_score, 15)

    def test_partial_round_update_merges_over_stored_scores(self):
        self.scoring.apply("t1", RoundScores(round1=10, round2=5))
        record = self.scoring.apply("t1", RoundScores(round3=7))

        self.assertEqual(record.round1_score, 10)
        self.assertEqual(record.round3_score, 7)
        self.assertEqual(record.total_score, 22)

    def test_update_field_recomputes_criteria_total(self):
        self.scoring.update_field("t1", "visualization", 4)
        self.scoring.update_field("t1", "judges", "6.5")
        record = self.scoring.update_field("t1", "visualization", 2)

        self.assertEqual(record.visualization_score, 2)
        self.assertEqual(record.judges_score, 6.5)
        self.assertEqual(record.total_score, 8.5)

    def test_total_follows_the_shape_being_written(self):
        self.scoring.apply("t1", CriteriaScores(visualization=3, code=4))
        record = self.scoring.apply("t1", RoundScores(round1=1))
        self.assertEqual(record.total_score, 1)

        record = self.scoring.update_field("t1", "feature", 2)
        self.assertEqual(record.total_score, 9)

    def test_update_field_rejects_unknown_field(self):
        with self.assertRaises(ValidationError):
            self.scoring.update_field("t1", "style", 3)
        self.assertIsNone(self.db.get_score("t1"))

    def test_batch_failure_does_not_block_other_teams(self):
        real_upsert = self.db.upsert_score

        def flaky_upsert(team_id, values):
            if team_id == "bad":
                raise OperationalError("UPDATE", {}, Exception("deadlock"))
            return real_upsert(team_id, values)

        with patch.object(self.db, "upsert_score", side_effect=flaky_upsert):
            result = self.scoring.apply_batch(
                [
                    ("t1", RoundScores(round1=1)),
                    ("bad", RoundScores(round1=2)),
                    ("t2", CriteriaScores(judges=3)),
                ]
            )

        self.assertEqual(result.count, 2)
        self.assertEqual([team for team, _ in result.failed], ["bad"])
        self.assertEqual(self.db.get_score("t2").total_score, 3)
        self.assertIsNone(self.db.get_score("bad"))

    def test_list_scores_orders_teams_by_name(self):
        zeta = self.db.create_team("Zeta", "S1")
        alpha = self.db.create_team("Alpha", "L1")
        self.scoring.apply(zeta.team_id, RoundScores(round1=4))

        rows = self.scoring.list_scores()

        self.assertEqual([team.team_name for team, _ in rows], ["Alpha", "Zeta"])
        self.assertIsNone(rows[0][1])
        self.assertEqual(rows[1][1].total_score, 4)
        self.assertEqual(alpha.group, "L1")


class RoundControlTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.clock = FakeClock()
        self.rounds = RoundControl(self.db, clock=self.clock)

    def test_initiate_round_upserts_setting(self):
        self.rounds.initiate_round(1)
        self.rounds.initiate_round(3)
        self.assertEqual(self.db.get_setting(CURRENT_ROUND_KEY), "3")

    def test_initiate_round_requires_positive_round(self):
        with self.assertRaises(ValidationError):
            self.rounds.initiate_round(0)

    def test_set_round_timer_writes_iso_end_time(self):
        end_time = self.rounds.set_round_timer(1.5)
        self.assertEqual(end_time, format_end_time(self.clock() + 5400))
        self.assertTrue(end_time.endswith("Z"))
        self.assertEqual(self.db.get_setting(ROUND_END_TIME_KEY), end_time)

    def test_set_round_timer_rejects_out_of_range_duration(self):
        for hours in (MAX_TIMER_HOURS + 1, 1e12, float("inf")):
            with self.assertRaises(ValidationError):
                self.rounds.set_round_timer(hours)
        self.assertIsNone(self.db.get_setting(ROUND_END_TIME_KEY))

    def test_stop_round_timer_is_idempotent(self):
        self.rounds.set_round_timer(1)
        self.assertTrue(self.rounds.stop_round_timer())
        self.assertFalse(self.rounds.stop_round_timer())
        self.assertIsNone(self.db.get_setting(ROUND_END_TIME_KEY))

    def test_store_failure_is_upstream_unavailable(self):
        error = OperationalError("DELETE", {}, Exception("gone"))
        with patch.object(self.db, "delete_setting", side_effect=error):
            with self.assertRaises(UpstreamUnavailable):
                self.rounds.stop_round_timer()


if __name__ == "__main__":
    unittest.main()
