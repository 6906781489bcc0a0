"""
Quorum evaluation — pure function, no I/O.

Rule:
    quorum met  ⇔  V ≥ quorum_min_count  AND  V ≥ ceil(E × quorum_percent / 100)

    E  eligible voters in the review's participant snapshot
    V  distinct voters who cast a vote (conflict-declared votes included)

E = 0 never meets quorum.  Safe to call repeatedly for live status polling.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class QuorumResult:
    met: bool
    eligible_count: int
    votes_cast: int
    required: int
    quorum_percent: int
    quorum_min_count: int
    reason: str

    @property
    def missing(self) -> int:
        return max(0, self.required - self.votes_cast)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["missing"] = self.missing
        return d


def required_votes(eligible_count: int, quorum_percent: int, quorum_min_count: int) -> int:
    """Votes needed to reach quorum: the larger of the percentage and the floor."""
    # ceil(E * pct / 100) in integer arithmetic
    by_percent = -(-eligible_count * quorum_percent // 100)
    return max(quorum_min_count, by_percent)


def evaluate_quorum(
    eligible_count: int,
    votes_cast: int,
    quorum_percent: int,
    quorum_min_count: int,
) -> QuorumResult:
    """Evaluate quorum for one review.

    Args:
        eligible_count: participants with is_eligible_voter=True.
        votes_cast: distinct voters with a stored vote.
        quorum_percent: 1..100, from the review's policy snapshot.
        quorum_min_count: >= 1, from the review's policy snapshot.
    """
    required = required_votes(eligible_count, quorum_percent, quorum_min_count)

    if eligible_count <= 0:
        return QuorumResult(
            met=False,
            eligible_count=eligible_count,
            votes_cast=votes_cast,
            required=required,
            quorum_percent=quorum_percent,
            quorum_min_count=quorum_min_count,
            reason="No eligible voters; quorum cannot be reached.",
        )

    met = votes_cast >= quorum_min_count and votes_cast >= required
    if met:
        reason = f"Quorum reached: {votes_cast} of {eligible_count} eligible voted (required {required})."
    else:
        reason = (
            f"Quorum not reached: {votes_cast} of {eligible_count} eligible voted, "
            f"{required} required ({quorum_percent}% with minimum {quorum_min_count})."
        )
    return QuorumResult(
        met=met,
        eligible_count=eligible_count,
        votes_cast=votes_cast,
        required=required,
        quorum_percent=quorum_percent,
        quorum_min_count=quorum_min_count,
        reason=reason,
    )


def participation_pct(eligible_count: int, votes_cast: int) -> int:
    if eligible_count <= 0:
        return 0
    return round(votes_cast * 100 / eligible_count)
