"""
Trial Matching Engine

Scores one trial against one patient profile, and ranks a batch of
trials for a patient.

Per trial, the structured rules (age, sex, healthy volunteers) run
inline; the semantic condition match and the free-text criteria
analysis are the only LLM calls and run concurrently. Both agents
degrade to deterministic fallbacks, so a trial always gets a score.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from .cache import MatchResultCache
from .scoring import compute_match_score, get_match_tier
from .structured_rules import match_age, match_healthy_volunteers, match_sex
from ..agents.base_agent import JSONGenerator
from ..agents.condition_matching_agent import ConditionMatchingAgent, build_condition_criterion
from ..agents.criteria_analysis_agent import CriteriaAnalysisAgent
from ..core.config import settings
from ..schemas.patient import PatientProfile
from ..schemas.trial import ClinicalTrial, TrialEligibility
from ..schemas.matching import EligibilityCriterion, TrialMatchResponse, TrialMatchResult

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

TrialInput = Union[ClinicalTrial, Dict[str, Any]]
ProfileInput = Union[PatientProfile, Dict[str, Any]]


class InvalidMatchInputError(ValueError):
    """The trial or patient profile is structurally unusable."""


def _coerce(model_cls: Type[ModelT], value: Any, what: str) -> ModelT:
    if isinstance(value, model_cls):
        return value
    try:
        return model_cls.model_validate(value)
    except ValidationError as e:
        raise InvalidMatchInputError(f"Invalid {what}: {e}") from e


def _trial_label(trial: Any) -> str:
    if isinstance(trial, ClinicalTrial):
        return trial.nct_id
    if isinstance(trial, dict):
        return str(trial.get("nctId") or trial.get("nct_id") or "<no nctId>")
    return repr(trial)[:40]


def with_unique_ids(criteria: List[EligibilityCriterion]) -> List[EligibilityCriterion]:
    """Suffix repeated criterion ids so each is unique within the trial."""
    seen = set()
    unique = []
    for criterion in criteria:
        new_id = criterion.id
        n = 2
        while new_id in seen:
            new_id = f"{criterion.id}_{n}"
            n += 1
        seen.add(new_id)
        unique.append(criterion if new_id == criterion.id else criterion.model_copy(update={"id": new_id}))
    return unique


class TrialMatcher:
    """
    Main entry point for patient-trial matching.

    The LLM can be injected (anything with an async generate_json), as can
    the two agents themselves.
    """

    def __init__(
            self,
            llm: Optional[JSONGenerator] = None,
            condition_agent: Optional[ConditionMatchingAgent] = None,
            criteria_agent: Optional[CriteriaAnalysisAgent] = None
    ):
        self.condition_agent = condition_agent or ConditionMatchingAgent(llm)
        self.criteria_agent = criteria_agent or CriteriaAnalysisAgent(llm)

    async def calculate_trial_match(
            self,
            trial: TrialInput,
            patient_profile: ProfileInput
    ) -> TrialMatchResult:
        """
        Calculate the complete match result for one trial.

        Raises InvalidMatchInputError if the trial or profile cannot be
        validated (e.g. a trial without nctId).
        """
        trial = _coerce(ClinicalTrial, trial, "trial")
        profile = _coerce(PatientProfile, patient_profile, "patient profile")
        eligibility = trial.eligibility or TrialEligibility()

        # 1. Structured matching (fast, high confidence)
        criteria = [
            match_age(profile.demographics.age, eligibility.minimum_age, eligibility.maximum_age),
            match_sex(profile.demographics.gender, eligibility.sex),
            match_healthy_volunteers(profile.conditions, eligibility.healthy_volunteers),
        ]

        # 2. Semantic condition matching and free-text analysis
        condition_matches, ai_criteria = await asyncio.gather(
            self.condition_agent.match_conditions(profile.conditions, trial.conditions),
            self.criteria_agent.analyze(eligibility.criteria, profile),
        )

        criteria.append(build_condition_criterion(condition_matches, profile, trial))
        criteria.extend(ai_criteria)
        criteria = with_unique_ids(criteria)

        score = compute_match_score(criteria)
        return TrialMatchResult.build(
            trial=trial,
            criteria=criteria,
            matched_conditions=condition_matches,
            score=score,
            tier=get_match_tier(score.final_score),
        )

    async def _match_one(
            self,
            trial: TrialInput,
            profile: PatientProfile,
            cache: Optional[MatchResultCache]
    ) -> TrialMatchResult:
        trial = _coerce(ClinicalTrial, trial, "trial")
        patient_id = profile.demographics.id

        if cache is not None:
            cached = cache.get(patient_id, trial.nct_id)
            if cached is not None:
                return cached

        result = await self.calculate_trial_match(trial, profile)

        if cache is not None:
            result = cache.put(patient_id, trial.nct_id, result)
        return result

    async def _evaluate_batch(
            self,
            trials: Iterable[TrialInput],
            profile: PatientProfile,
            cache: Optional[MatchResultCache]
    ) -> List[TrialMatchResult]:
        """Evaluate up to MAX_TRIALS_PER_BATCH trials; failed trials are logged and left out."""
        batch = list(trials)[:settings.MAX_TRIALS_PER_BATCH]

        outcomes = await asyncio.gather(
            *(self._match_one(trial, profile, cache) for trial in batch),
            return_exceptions=True
        )

        results = []
        for trial, outcome in zip(batch, outcomes):
            if isinstance(outcome, Exception):
                logger.error("Skipping trial %s: %s", _trial_label(trial), outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)
        return results

    async def match_trials_for_patient(
            self,
            trials: Iterable[TrialInput],
            patient_profile: ProfileInput,
            min_score: Optional[int] = None,
            limit: Optional[int] = None,
            cache: Optional[MatchResultCache] = None
    ) -> List[TrialMatchResult]:
        """
        Score trials concurrently and return the best matches first.

        Only the first MAX_TRIALS_PER_BATCH trials are scored. A trial whose
        evaluation fails is logged and left out; the batch itself does not
        fail. Ties keep their input order.

        Raises InvalidMatchInputError if the patient profile cannot be
        validated, since no trial could be scored against it.
        """
        profile = _coerce(PatientProfile, patient_profile, "patient profile")
        results = await self._evaluate_batch(trials, profile, cache)
        return rank_results(results, min_score, limit)

    async def match_response(
            self,
            trials: Iterable[TrialInput],
            patient_profile: ProfileInput,
            min_score: Optional[int] = None,
            limit: Optional[int] = None,
            cache: Optional[MatchResultCache] = None
    ) -> TrialMatchResponse:
        """
        Rank trials and wrap the result in the API response envelope.

        total_trials_analyzed counts the trials that were actually scored,
        before min_score and limit are applied.
        """
        profile = _coerce(PatientProfile, patient_profile, "patient profile")
        results = await self._evaluate_batch(trials, profile, cache)
        return build_match_response(
            rank_results(results, min_score, limit),
            total_trials_analyzed=len(results),
            profile=profile,
        )


def rank_results(
        results: List[TrialMatchResult],
        min_score: Optional[int] = None,
        limit: Optional[int] = None
) -> List[TrialMatchResult]:
    """Drop results below min_score, sort best first (stable), truncate to limit."""
    if min_score is None:
        min_score = settings.DEFAULT_MIN_SCORE
    if limit is None:
        limit = settings.DEFAULT_RESULT_LIMIT

    ranked = sorted(
        (r for r in results if r.match_score >= min_score),
        key=lambda r: r.match_score,
        reverse=True
    )
    return ranked[:limit]


def build_match_response(
        matches: List[TrialMatchResult],
        total_trials_analyzed: int,
        profile: PatientProfile
) -> TrialMatchResponse:
    return TrialMatchResponse(
        matches=matches,
        total_trials_analyzed=total_trials_analyzed,
        patient_conditions=[c.display for c in profile.conditions],
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# Singleton instance
trial_matcher = TrialMatcher()


async def calculate_trial_match(
        trial: TrialInput,
        patient_profile: ProfileInput
) -> TrialMatchResult:
    """Score one trial with the default matcher."""
    return await trial_matcher.calculate_trial_match(trial, patient_profile)


async def match_trials_for_patient(
        trials: Iterable[TrialInput],
        patient_profile: ProfileInput,
        min_score: Optional[int] = None,
        limit: Optional[int] = None,
        cache: Optional[MatchResultCache] = None
) -> List[TrialMatchResult]:
    """Rank trials for a patient with the default matcher."""
    return await trial_matcher.match_trials_for_patient(
        trials, patient_profile, min_score=min_score, limit=limit, cache=cache
    )
