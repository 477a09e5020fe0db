"""
Clinical Trial Matching Module

This module scores how well a patient profile satisfies a clinical
trial's eligibility rules and ranks trials for a patient.
"""

from .structured_rules import (
    parse_age_string,
    match_age,
    match_sex,
    match_healthy_volunteers,
)
from .scoring import (
    compute_match_score,
    compute_legacy_score,
    get_match_tier,
    HARD_DISQUALIFIER_CAP,
)
from .benchmark import (
    BENCHMARK_CASES,
    BenchmarkCase,
    BenchmarkSummary,
    classify_score,
    run_trial_scoring_benchmark,
)
from .cache import MatchResultCache
from .trial_matcher import (
    # Main class
    TrialMatcher,
    InvalidMatchInputError,

    # Convenience functions
    calculate_trial_match,
    match_trials_for_patient,
    build_match_response,
    rank_results,

    # Global instance
    trial_matcher,
)

__all__ = [
    "parse_age_string",
    "match_age",
    "match_sex",
    "match_healthy_volunteers",
    "compute_match_score",
    "compute_legacy_score",
    "get_match_tier",
    "HARD_DISQUALIFIER_CAP",
    "BENCHMARK_CASES",
    "BenchmarkCase",
    "BenchmarkSummary",
    "classify_score",
    "run_trial_scoring_benchmark",
    "MatchResultCache",
    "TrialMatcher",
    "InvalidMatchInputError",
    "calculate_trial_match",
    "match_trials_for_patient",
    "build_match_response",
    "rank_results",
    "trial_matcher",
]
