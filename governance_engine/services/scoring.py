"""
Score aggregation — pure function, no I/O.

Input: a review's criteria snapshot and its votes.  Votes with
``conflict_declared`` are excluded here (they still count toward quorum).

    mean(c)  = average of scores[c] over voters who scored c
    overall  = Σ mean(c) × weight(c) / Σ weight(c)

over enabled criteria that received at least one score.  Overall is None when
that weight sum is zero or no usable vote exists.  The result is advisory
input to a human decision; nothing in the engine derives a decision from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from governance_engine.core.rubric import CriteriaSet, VoteScores


@dataclass(frozen=True)
class CriterionScore:
    criterion_id: str
    name: str
    weight: float
    mean_score: float | None
    vote_count: int

    def to_dict(self) -> dict:
        return {
            "criterion_id": self.criterion_id,
            "name": self.name,
            "weight": self.weight,
            "mean_score": self.mean_score,
            "vote_count": self.vote_count,
        }


@dataclass(frozen=True)
class ScoreSummary:
    overall_score: float | None
    scored_vote_count: int
    excluded_conflict_count: int
    criteria: tuple[CriterionScore, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "overall_score": self.overall_score,
            "scored_vote_count": self.scored_vote_count,
            "excluded_conflict_count": self.excluded_conflict_count,
            "criteria": [c.to_dict() for c in self.criteria],
        }


@dataclass(frozen=True)
class ScoredVote:
    """The two vote attributes aggregation needs."""

    scores: VoteScores
    conflict_declared: bool = False


def aggregate_scores(criteria: CriteriaSet, votes: Iterable[ScoredVote]) -> ScoreSummary:
    """Compute per-criterion means and the overall weighted score."""
    votes = list(votes)
    usable = [v for v in votes if not v.conflict_declared]
    excluded = len(votes) - len(usable)

    per_criterion: list[CriterionScore] = []
    weighted_total = 0.0
    weight_sum = 0.0

    for criterion in criteria.ordered:
        if not criterion.enabled:
            continue
        values = [s for s in (v.scores.get(criterion.id) for v in usable) if s is not None]
        mean = sum(values) / len(values) if values else None
        per_criterion.append(CriterionScore(
            criterion_id=criterion.id,
            name=criterion.name,
            weight=criterion.weight,
            mean_score=round(mean, 2) if mean is not None else None,
            vote_count=len(values),
        ))
        if mean is not None:
            weighted_total += mean * criterion.weight
            weight_sum += criterion.weight

    overall = round(weighted_total / weight_sum, 2) if weight_sum > 0 else None

    return ScoreSummary(
        overall_score=overall,
        scored_vote_count=len(usable),
        excluded_conflict_count=excluded,
        criteria=tuple(per_criterion),
    )
