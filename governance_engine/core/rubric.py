"""
Typed value objects for scoring rubrics and vote scores.

The database stores rubrics and scores as JSON text
(``criteria_json``, ``criteria_snapshot_json``, ``scores_json``).  These
classes are the only place that JSON is parsed or produced; they validate at
the boundary (draft create/update, review open, vote cast) so aggregation code
downstream works on already-valid values.

Persisted shapes:
    criteria: [{"id", "name", "weight", "enabled", "sortOrder"}, ...]
    scores:   {"<criterionId>": <number>, ...}
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass

from governance_engine.core.exceptions import ValidationError


def _to_finite_number(value) -> float | None:
    """Return ``value`` as a finite float, or None.

    Booleans are rejected even though ``bool`` is an ``int`` subclass.
    Numeric strings are accepted, as JSON clients commonly send them.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


@dataclass(frozen=True)
class Criterion:
    """One weighted rubric entry."""

    id: str
    name: str
    weight: float
    enabled: bool = True
    sort_order: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "weight": self.weight,
            "enabled": self.enabled,
            "sortOrder": self.sort_order,
        }


@dataclass(frozen=True)
class CriteriaSet:
    """Ordered, immutable list of criteria.

    Used both for editable criteria versions and for the frozen snapshot
    copied onto a review when it opens.
    """

    criteria: tuple[Criterion, ...]

    # ── Construction ─────────────────────────────────────────────────────

    @classmethod
    def from_input(cls, raw) -> "CriteriaSet":
        """Validate untrusted criteria input (API payloads, service callers).

        Rules:
        - must be a non-empty list of objects
        - every criterion needs a non-empty ``name``
        - ``weight`` must be a finite number >= 0 (no sum-to-100 requirement)
        - ``id`` defaults to ``criterion-<n>``; ids must be unique
        - ``enabled`` defaults to True, ``sortOrder`` to the 1-based position

        Raises:
            ValidationError: with a ``details`` entry per offending field.
        """
        if not isinstance(raw, (list, tuple)) or not raw:
            raise ValidationError(
                "criteria must be a non-empty array",
                details={"criteria": "non-empty array required"},
            )

        items: list[Criterion] = []
        seen_ids: set[str] = set()
        for idx, item in enumerate(raw):
            if isinstance(item, Criterion):
                item = item.to_dict()
            if not isinstance(item, dict):
                raise ValidationError(
                    f"criteria[{idx}] must be an object",
                    details={f"criteria[{idx}]": "object required"},
                )

            name = item.get("name")
            name = name.strip() if isinstance(name, str) else ""
            if not name:
                raise ValidationError(
                    f"criteria[{idx}].name is required",
                    details={f"criteria[{idx}].name": "required"},
                )

            weight = _to_finite_number(item.get("weight"))
            if weight is None or weight < 0:
                raise ValidationError(
                    f"criteria[{idx}].weight must be a number >= 0",
                    details={f"criteria[{idx}].weight": "number >= 0 required"},
                )

            raw_id = item.get("id")
            criterion_id = str(raw_id).strip() if raw_id not in (None, "") else f"criterion-{idx + 1}"
            if criterion_id in seen_ids:
                raise ValidationError(
                    f"criteria[{idx}].id '{criterion_id}' is duplicated",
                    details={f"criteria[{idx}].id": "must be unique"},
                )
            seen_ids.add(criterion_id)

            sort_order = item.get("sortOrder", item.get("sort_order"))
            if not isinstance(sort_order, int) or isinstance(sort_order, bool):
                sort_order = idx + 1

            items.append(Criterion(
                id=criterion_id,
                name=name,
                weight=weight,
                enabled=item.get("enabled") is not False,
                sort_order=sort_order,
            ))

        return cls(criteria=tuple(items))

    @classmethod
    def from_json(cls, text: str | None) -> "CriteriaSet":
        """Rebuild from stored JSON.  Stored rubrics were validated on write."""
        parsed = json.loads(text or "[]")
        if not parsed:
            return cls(criteria=())
        return cls.from_input(parsed)

    # ── Serialisation ────────────────────────────────────────────────────

    def to_list(self) -> list[dict]:
        return [c.to_dict() for c in self.criteria]

    def to_json(self) -> str:
        return json.dumps(self.to_list())

    # ── Queries ──────────────────────────────────────────────────────────

    def __iter__(self):
        return iter(self.criteria)

    def __len__(self) -> int:
        return len(self.criteria)

    def get(self, criterion_id: str) -> Criterion | None:
        for c in self.criteria:
            if c.id == criterion_id:
                return c
        return None

    @property
    def enabled(self) -> tuple[Criterion, ...]:
        return tuple(c for c in self.criteria if c.enabled)

    @property
    def ordered(self) -> tuple[Criterion, ...]:
        return tuple(sorted(self.criteria, key=lambda c: c.sort_order))

    @property
    def enabled_weight_total(self) -> float:
        return sum(c.weight for c in self.enabled)


@dataclass(frozen=True)
class VoteScores:
    """Mapping of criterion id to numeric score for one vote."""

    values: tuple[tuple[str, float], ...]

    @classmethod
    def from_input(
        cls,
        raw,
        criteria: CriteriaSet,
        score_min: float,
        score_max: float,
    ) -> "VoteScores":
        """Validate a vote's scores against a review's criteria snapshot.

        Voters may omit criteria; omitted criteria are left out of that
        criterion's average rather than counted as zero.  Scores for ids that
        are not in the snapshot, or for disabled criteria, are rejected.

        Raises:
            ValidationError: on a non-object payload, unknown or disabled
                criterion id, non-numeric or out-of-range value.
        """
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ValidationError(
                "scores must be an object keyed by criterion id",
                details={"scores": "object required"},
            )

        values: list[tuple[str, float]] = []
        for key, value in raw.items():
            criterion = criteria.get(str(key))
            if criterion is None:
                raise ValidationError(
                    f"Unknown criterion '{key}' for this review",
                    details={f"scores.{key}": "unknown criterion"},
                )
            if not criterion.enabled:
                raise ValidationError(
                    f"Criterion '{key}' is disabled for this review",
                    details={f"scores.{key}": "criterion disabled"},
                )
            number = _to_finite_number(value)
            if number is None or number < score_min or number > score_max:
                raise ValidationError(
                    f"Score for criterion '{key}' must be between {score_min:g} and {score_max:g}",
                    details={f"scores.{key}": f"number in [{score_min:g}, {score_max:g}] required"},
                )
            values.append((criterion.id, number))

        return cls(values=tuple(values))

    @classmethod
    def from_json(cls, text: str | None) -> "VoteScores":
        parsed = json.loads(text or "{}")
        return cls(values=tuple((str(k), float(v)) for k, v in parsed.items()))

    def to_dict(self) -> dict[str, float]:
        return dict(self.values)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def get(self, criterion_id: str) -> float | None:
        for key, value in self.values:
            if key == criterion_id:
                return value
        return None
