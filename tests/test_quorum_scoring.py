"""
Pure evaluator tests: quorum rule and weighted score aggregation.

No database access; the autouse ``session`` fixture is harmless here.
"""

import pytest

from governance_engine.core.exceptions import ValidationError
from governance_engine.core.rubric import CriteriaSet, VoteScores
from governance_engine.services.quorum import evaluate_quorum, participation_pct, required_votes
from governance_engine.services.scoring import ScoredVote, aggregate_scores


def _vote(rubric, scores, conflict=False):
    return ScoredVote(scores=VoteScores.from_input(scores, rubric, 0, 100), conflict_declared=conflict)


# ═════════════════════════════════════════════════════════════════════════════
# Quorum
# ═════════════════════════════════════════════════════════════════════════════


class TestQuorum:
    def test_ten_eligible_sixty_percent(self):
        assert evaluate_quorum(10, 6, 60, 1).met is True
        assert evaluate_quorum(10, 5, 60, 1).met is False

    @pytest.mark.parametrize("pct,min_count,votes", [(1, 1, 0), (1, 1, 5), (100, 1, 3), (50, 5, 10)])
    def test_zero_eligible_never_met(self, pct, min_count, votes):
        result = evaluate_quorum(0, votes, pct, min_count)
        assert result.met is False
        assert "No eligible voters" in result.reason

    def test_required_rounds_up(self):
        # 4 × 50 % = 2 exactly; 5 × 50 % = 2.5 → 3
        assert required_votes(4, 50, 1) == 2
        assert required_votes(5, 50, 1) == 3
        assert required_votes(3, 60, 1) == 2

    def test_min_count_dominates_small_boards(self):
        result = evaluate_quorum(2, 2, 10, 3)
        assert result.required == 3
        assert result.met is False
        assert result.missing == 1

    def test_result_serialises_missing(self):
        d = evaluate_quorum(4, 1, 50, 1).to_dict()
        assert d["met"] is False
        assert d["required"] == 2
        assert d["missing"] == 1
        assert d["eligible_count"] == 4

    def test_participation_pct(self):
        assert participation_pct(4, 1) == 25
        assert participation_pct(3, 2) == 67
        assert participation_pct(0, 0) == 0


# ═════════════════════════════════════════════════════════════════════════════
# Scoring
# ═════════════════════════════════════════════════════════════════════════════


class TestScoring:
    def test_weighted_example(self):
        rubric = CriteriaSet.from_input([
            {"id": "a", "name": "A", "weight": 70},
            {"id": "b", "name": "B", "weight": 30},
        ])
        summary = aggregate_scores(rubric, [
            _vote(rubric, {"a": 80, "b": 60}),
            _vote(rubric, {"a": 60, "b": 100}),
        ])
        assert summary.overall_score == 73.0
        means = {c.criterion_id: c.mean_score for c in summary.criteria}
        assert means == {"a": 70.0, "b": 80.0}
        assert summary.scored_vote_count == 2

    def test_conflicted_votes_are_excluded(self):
        rubric = CriteriaSet.from_input([{"id": "a", "name": "A", "weight": 1}])
        summary = aggregate_scores(rubric, [
            _vote(rubric, {"a": 90}),
            _vote(rubric, {"a": 10}, conflict=True),
        ])
        assert summary.overall_score == 90.0
        assert summary.excluded_conflict_count == 1
        assert summary.scored_vote_count == 1

    def test_no_usable_votes_gives_null(self):
        rubric = CriteriaSet.from_input([{"id": "a", "name": "A", "weight": 1}])
        assert aggregate_scores(rubric, []).overall_score is None
        assert aggregate_scores(rubric, [_vote(rubric, {"a": 50}, conflict=True)]).overall_score is None

    def test_zero_weight_sum_gives_null(self):
        rubric = CriteriaSet.from_input([
            {"id": "a", "name": "A", "weight": 0},
            {"id": "b", "name": "B", "weight": 0},
        ])
        summary = aggregate_scores(rubric, [_vote(rubric, {"a": 50, "b": 70})])
        assert summary.overall_score is None
        assert [c.mean_score for c in summary.criteria] == [50.0, 70.0]

    def test_disabled_criteria_ignored(self):
        rubric = CriteriaSet.from_input([
            {"id": "a", "name": "A", "weight": 50},
            {"id": "b", "name": "B", "weight": 50, "enabled": False},
        ])
        summary = aggregate_scores(rubric, [_vote(rubric, {"a": 40})])
        assert summary.overall_score == 40.0
        assert [c.criterion_id for c in summary.criteria] == ["a"]

    def test_unscored_criterion_leaves_weight_sum(self):
        rubric = CriteriaSet.from_input([
            {"id": "a", "name": "A", "weight": 75},
            {"id": "b", "name": "B", "weight": 25},
        ])
        summary = aggregate_scores(rubric, [_vote(rubric, {"a": 60})])
        assert summary.overall_score == 60.0
        b = next(c for c in summary.criteria if c.criterion_id == "b")
        assert b.mean_score is None
        assert b.vote_count == 0


# ═════════════════════════════════════════════════════════════════════════════
# Rubric value objects
# ═════════════════════════════════════════════════════════════════════════════


class TestRubric:
    def test_defaults_ids_and_sort_order(self):
        rubric = CriteriaSet.from_input([{"name": "Fit", "weight": 1}, {"name": "Risk", "weight": "2.5"}])
        assert [c.id for c in rubric] == ["criterion-1", "criterion-2"]
        assert [c.sort_order for c in rubric] == [1, 2]
        assert rubric.enabled_weight_total == 3.5

    @pytest.mark.parametrize("raw", [
        [],
        "not-a-list",
        [{"name": "", "weight": 1}],
        [{"name": "A", "weight": -1}],
        [{"name": "A", "weight": "abc"}],
        [{"name": "A", "weight": True}],
        [{"id": "x", "name": "A", "weight": 1}, {"id": "x", "name": "B", "weight": 1}],
    ])
    def test_invalid_criteria_rejected(self, raw):
        with pytest.raises(ValidationError):
            CriteriaSet.from_input(raw)

    def test_weights_need_not_sum_to_100(self):
        rubric = CriteriaSet.from_input([{"name": "A", "weight": 3}, {"name": "B", "weight": 4}])
        assert rubric.enabled_weight_total == 7

    def test_json_round_trip_keeps_camel_case(self):
        rubric = CriteriaSet.from_input([{"id": "a", "name": "A", "weight": 1, "sortOrder": 5}])
        assert '"sortOrder": 5' in rubric.to_json()
        assert CriteriaSet.from_json(rubric.to_json()) == rubric

    def test_vote_scores_validated_against_snapshot(self):
        rubric = CriteriaSet.from_input([
            {"id": "a", "name": "A", "weight": 1},
            {"id": "off", "name": "Off", "weight": 1, "enabled": False},
        ])
        with pytest.raises(ValidationError, match="Unknown criterion"):
            VoteScores.from_input({"zzz": 10}, rubric, 0, 100)
        with pytest.raises(ValidationError, match="disabled"):
            VoteScores.from_input({"off": 10}, rubric, 0, 100)
        with pytest.raises(ValidationError, match="between 0 and 100"):
            VoteScores.from_input({"a": 101}, rubric, 0, 100)
        with pytest.raises(ValidationError):
            VoteScores.from_input([10], rubric, 0, 100)
        assert VoteScores.from_input({}, rubric, 0, 100).to_dict() == {}
