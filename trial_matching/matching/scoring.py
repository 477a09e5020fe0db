"""
Criterion Aggregation

Combines structured, condition and free-text criteria into one 0-100
match score.

Scoring rules:
- met criteria earn credit scaled by confidence (high 1.0, medium 0.8,
  low 0.5); missing_data and unknown earn half credit; not_met earns none
- core criteria (age, sex, condition) weigh 1.5x other criteria
- the weighted average is scaled by an evidence factor in [0.5, 1.0]
  that grows with the share of criteria that were actually decided
  (met or not_met), so sets with no concrete evidence stay low
- a high-confidence not_met on a core axis is a hard disqualifier and
  caps the final score at HARD_DISQUALIFIER_CAP
"""

import math
from typing import Dict, List

from ..schemas.matching import (
    ConfidenceLevel,
    CriterionStatus,
    EligibilityCriterion,
    MatchScore,
    MatchTier,
)


CONFIDENCE_MULTIPLIERS: Dict[ConfidenceLevel, float] = {
    ConfidenceLevel.HIGH: 1.0,
    ConfidenceLevel.MEDIUM: 0.8,
    ConfidenceLevel.LOW: 0.5,
}

UNCERTAIN_CREDIT = 0.5
CORE_WEIGHT = 1.5
DEFAULT_WEIGHT = 1.0
MIN_EVIDENCE_FACTOR = 0.5

HARD_DISQUALIFIER_CAP = 25
LEGACY_DISQUALIFIER_CAP = 30

LEGACY_STATUS_POINTS: Dict[CriterionStatus, int] = {
    CriterionStatus.MET: 100,
    CriterionStatus.NOT_MET: 0,
    CriterionStatus.MISSING_DATA: 50,
    CriterionStatus.UNKNOWN: 50,
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(score: int) -> int:
    return max(0, min(100, score))


def criterion_credit(criterion: EligibilityCriterion) -> float:
    """Fraction of its weight a criterion contributes, in [0, 1]."""
    if criterion.status == CriterionStatus.MET:
        return CONFIDENCE_MULTIPLIERS[criterion.confidence]
    if criterion.status == CriterionStatus.NOT_MET:
        return 0.0
    return UNCERTAIN_CREDIT


def criterion_weight(criterion: EligibilityCriterion) -> float:
    return CORE_WEIGHT if criterion.is_core else DEFAULT_WEIGHT


def is_hard_disqualifier(criterion: EligibilityCriterion) -> bool:
    return (
        criterion.status == CriterionStatus.NOT_MET
        and criterion.confidence == ConfidenceLevel.HIGH
        and criterion.is_core
    )


def compute_match_score(criteria: List[EligibilityCriterion]) -> MatchScore:
    """Score a criterion list. An empty list scores 0."""
    if not criteria:
        return MatchScore(raw_score=0, final_score=0, hard_disqualifier=False)

    total_weight = sum(criterion_weight(c) for c in criteria)
    earned = sum(criterion_weight(c) * criterion_credit(c) for c in criteria)

    decided = sum(
        1 for c in criteria
        if c.status in (CriterionStatus.MET, CriterionStatus.NOT_MET)
    )
    evidence_factor = MIN_EVIDENCE_FACTOR + (1 - MIN_EVIDENCE_FACTOR) * decided / len(criteria)

    raw_score = _clamp(_round_half_up(100 * earned / total_weight * evidence_factor))

    hard_disqualifier = any(is_hard_disqualifier(c) for c in criteria)
    final_score = min(raw_score, HARD_DISQUALIFIER_CAP) if hard_disqualifier else raw_score

    return MatchScore(
        raw_score=raw_score,
        final_score=final_score,
        hard_disqualifier=hard_disqualifier,
    )


def compute_legacy_score(criteria: List[EligibilityCriterion]) -> int:
    """
    Previous scoring formula, kept for benchmark comparison only.

    Unweighted 100/0/50/50 average, capped at 30 by any high-confidence
    not_met regardless of category.
    """
    if not criteria:
        return 0

    raw_score = _round_half_up(
        sum(LEGACY_STATUS_POINTS[c.status] for c in criteria) / len(criteria)
    )

    has_high_confidence_not_met = any(
        c.status == CriterionStatus.NOT_MET and c.confidence == ConfidenceLevel.HIGH
        for c in criteria
    )
    return min(raw_score, LEGACY_DISQUALIFIER_CAP) if has_high_confidence_not_met else raw_score


def get_match_tier(score: int) -> MatchTier:
    if score >= 80:
        return MatchTier.EXCELLENT
    if score >= 60:
        return MatchTier.GOOD
    if score >= 40:
        return MatchTier.MODERATE
    if score >= 20:
        return MatchTier.LOW
    return MatchTier.POOR
