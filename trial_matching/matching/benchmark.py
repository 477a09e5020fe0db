"""
Trial Scoring Benchmark

Hand-labeled criterion sets that pin down the aggregator's edge-case
policy: core disqualifiers, confidence down-weighting and unevidenced
matches. Every case is scored by the legacy and the current formula and
classified into likely / possible / unlikely.

Run with: python -m trial_matching.matching.benchmark
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .scoring import compute_legacy_score, compute_match_score
from ..core.config import settings
from ..schemas.matching import (
    ConfidenceLevel,
    CriterionCategory,
    CriterionStatus,
    EligibilityCriterion,
)

logger = logging.getLogger(__name__)

LIKELY = "likely"
POSSIBLE = "possible"
UNLIKELY = "unlikely"


@dataclass
class BenchmarkCase:
    id: str
    description: str
    expected: str
    criteria: List[EligibilityCriterion] = field(default_factory=list)


@dataclass
class MethodSummary:
    correct: int
    total: int
    accuracy: float


@dataclass
class CasePrediction:
    id: str
    expected: str
    legacy_label: str
    legacy_score: int
    current_label: str
    current_score: int


@dataclass
class BenchmarkSummary:
    legacy: MethodSummary
    current: MethodSummary
    per_case: List[CasePrediction] = field(default_factory=list)


def criterion(
    id: str,
    status: str,
    confidence: str,
    category: str = "other"
) -> EligibilityCriterion:
    return EligibilityCriterion(
        id=id,
        name=id,
        category=CriterionCategory(category),
        status=CriterionStatus(status),
        confidence=ConfidenceLevel(confidence),
    )


BENCHMARK_CASES: List[BenchmarkCase] = [
    BenchmarkCase(
        id="strong_clear_match",
        description="All structured checks met with high confidence",
        expected=LIKELY,
        criteria=[
            criterion("age", "met", "high", "age"),
            criterion("sex", "met", "high", "sex"),
            criterion("condition", "met", "high", "condition"),
            criterion("healthy", "met", "medium", "other"),
        ],
    ),
    BenchmarkCase(
        id="partial_match_with_unknown_core",
        description="One strong inclusion plus unknown core criterion should not be likely",
        expected=POSSIBLE,
        criteria=[
            criterion("age", "met", "high", "age"),
            criterion("condition_detail", "unknown", "high", "condition"),
        ],
    ),
    BenchmarkCase(
        id="all_uncertain_data",
        description="Only missing/unknown data should rank unlikely",
        expected=UNLIKELY,
        criteria=[
            criterion("age", "missing_data", "high", "age"),
            criterion("condition", "unknown", "high", "condition"),
            criterion("lab", "unknown", "medium", "lab"),
        ],
    ),
    BenchmarkCase(
        id="age_disqualifier",
        description="High-confidence core disqualifier should force unlikely",
        expected=UNLIKELY,
        criteria=[
            criterion("age", "not_met", "high", "age"),
            criterion("sex", "met", "high", "sex"),
            criterion("condition", "met", "high", "condition"),
            criterion("healthy", "met", "medium", "other"),
        ],
    ),
    BenchmarkCase(
        id="condition_mismatch_with_other_passes",
        description="Condition mismatch despite other criteria met should be unlikely",
        expected=UNLIKELY,
        criteria=[
            criterion("age", "met", "high", "age"),
            criterion("sex", "met", "high", "sex"),
            criterion("healthy", "met", "medium", "other"),
            criterion("condition", "not_met", "high", "condition"),
        ],
    ),
    BenchmarkCase(
        id="mixed_but_supportive",
        description="Two met plus some uncertainty can still be possible",
        expected=POSSIBLE,
        criteria=[
            criterion("age", "met", "high", "age"),
            criterion("condition", "met", "medium", "condition"),
            criterion("lab", "unknown", "medium", "lab"),
        ],
    ),
    BenchmarkCase(
        id="one_met_with_missing",
        description="One met with missing evidence should be possible, not likely",
        expected=POSSIBLE,
        criteria=[
            criterion("condition", "met", "high", "condition"),
            criterion("lab", "missing_data", "medium", "lab"),
            criterion("exclusion_detail", "unknown", "medium", "exclusion"),
        ],
    ),
    BenchmarkCase(
        id="all_missing",
        description="No concrete matched evidence should stay unlikely",
        expected=UNLIKELY,
        criteria=[
            criterion("age", "missing_data", "high", "age"),
            criterion("condition", "missing_data", "medium", "condition"),
        ],
    ),
]


def classify_score(score: int) -> str:
    if score >= 70:
        return LIKELY
    if score >= 40:
        return POSSIBLE
    return UNLIKELY


def _summary(correct: int, total: int) -> MethodSummary:
    return MethodSummary(
        correct=correct,
        total=total,
        accuracy=correct / total if total > 0 else 0.0,
    )


def run_trial_scoring_benchmark(
    cases: Optional[List[BenchmarkCase]] = None
) -> BenchmarkSummary:
    """Score every case with both formulas and tally classification accuracy."""
    if cases is None:
        cases = BENCHMARK_CASES

    legacy_correct = 0
    current_correct = 0
    per_case = []

    for case in cases:
        legacy_score = compute_legacy_score(case.criteria)
        current_score = compute_match_score(case.criteria).final_score

        legacy_label = classify_score(legacy_score)
        current_label = classify_score(current_score)

        if legacy_label == case.expected:
            legacy_correct += 1
        if current_label == case.expected:
            current_correct += 1

        per_case.append(CasePrediction(
            id=case.id,
            expected=case.expected,
            legacy_label=legacy_label,
            legacy_score=legacy_score,
            current_label=current_label,
            current_score=current_score,
        ))

    return BenchmarkSummary(
        legacy=_summary(legacy_correct, len(cases)),
        current=_summary(current_correct, len(cases)),
        per_case=per_case,
    )


def main() -> BenchmarkSummary:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(message)s")
    summary = run_trial_scoring_benchmark()

    logger.info("%-40s %-9s %-16s %-16s", "case", "expected", "legacy", "current")
    for item in summary.per_case:
        logger.info(
            "%-40s %-9s %-16s %-16s",
            item.id,
            item.expected,
            f"{item.legacy_label} ({item.legacy_score})",
            f"{item.current_label} ({item.current_score})",
        )

    for name, method in (("legacy", summary.legacy), ("current", summary.current)):
        logger.info(
            "%s: %d/%d correct (%.0f%%)",
            name, method.correct, method.total, method.accuracy * 100
        )
    return summary


if __name__ == "__main__":
    main()
