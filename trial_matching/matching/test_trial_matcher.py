"""
Tests for single-trial evaluation and batch ranking

Run with: python -m pytest trial_matching/matching/test_trial_matcher.py -v
"""

import asyncio
import json
import sys

import pytest

from trial_matching.core.config import settings
from trial_matching.matching.cache import MatchResultCache
from trial_matching.matching.scoring import HARD_DISQUALIFIER_CAP
from trial_matching.matching.trial_matcher import (
    InvalidMatchInputError,
    TrialMatcher,
    with_unique_ids,
)
from trial_matching.matching.benchmark import criterion
from trial_matching.schemas.matching import (
    CriterionStatus,
    MatchTier,
    TrialMatchResult,
)
from trial_matching.services.llm_service import LLMServiceError


class FakeLLM:
    def __init__(self, reply):
        self.reply = reply
        self.calls = 0

    async def generate_json(self, prompt, system_prompt=None):
        self.calls += 1
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class ScriptedMatcher(TrialMatcher):
    """Returns a preset score per nctId (or raises a preset error)."""

    def __init__(self, scores):
        super().__init__(llm=FakeLLM(LLMServiceError("unused")))
        self.scores = scores
        self.evaluated = []

    async def calculate_trial_match(self, trial, patient_profile):
        self.evaluated.append(trial.nct_id)
        score = self.scores[trial.nct_id]
        if isinstance(score, BaseException):
            raise score
        return TrialMatchResult(
            nct_id=trial.nct_id,
            brief_title=trial.brief_title,
            match_score=score,
            raw_score=score,
            match_tier=MatchTier.MODERATE,
            total_criteria=0,
            met_criteria=0,
            not_met_criteria=0,
            missing_data_criteria=0,
            unknown_criteria=0,
        )


PATIENT = {
    "demographics": {"id": "patient-1", "name": "John Smith", "gender": "male", "age": 45},
    "conditions": [
        {"code": "44054006", "display": "Type 2 Diabetes", "clinicalStatus": "active"},
        {"code": "38341003", "display": "Hypertension", "clinicalStatus": "active"},
    ],
    "labResults": [],
    "medications": [],
}


def make_trial(nct_id, **overrides):
    trial = {
        "nctId": nct_id,
        "briefTitle": f"Study {nct_id}",
        "overallStatus": "RECRUITING",
        "conditions": ["Diabetes"],
        "eligibility": {
            "criteria": "Inclusion Criteria:\n- Adults with type 2 diabetes\nExclusion Criteria:\n- Pregnancy",
            "healthyVolunteers": False,
            "sex": "ALL",
            "minimumAge": "18 Years",
            "maximumAge": "65 Years",
        },
    }
    trial.update(overrides)
    return trial


def _rank(matcher, trials, **kwargs):
    return asyncio.run(matcher.match_trials_for_patient(trials, PATIENT, **kwargs))


def test_ranking_filters_and_limits():
    """Results are filtered by min_score, sorted descending, then truncated."""
    print("\n" + "="*60)
    print("TEST: Batch Ranking")
    print("="*60)

    matcher = ScriptedMatcher({"NCT1": 90, "NCT2": 40, "NCT3": 70})
    trials = [make_trial("NCT1"), make_trial("NCT2"), make_trial("NCT3")]

    ranked = _rank(matcher, trials, min_score=50)
    print(f"\nRanked: {[(r.nct_id, r.match_score) for r in ranked]}")
    assert [r.match_score for r in ranked] == [90, 70]

    ranked = _rank(matcher, trials, min_score=50, limit=1)
    assert [r.nct_id for r in ranked] == ["NCT1"]

    ranked = _rank(matcher, trials)
    assert [r.nct_id for r in ranked] == ["NCT1", "NCT3", "NCT2"]

    print("\n[PASS] Batch ranking test passed!")


def test_ties_keep_input_order():
    matcher = ScriptedMatcher({"A": 70, "B": 80, "C": 70, "D": 70})
    ranked = _rank(matcher, [make_trial(i) for i in ("A", "B", "C", "D")])
    assert [r.nct_id for r in ranked] == ["B", "A", "C", "D"]


def test_batch_is_capped():
    scores = {f"NCT{i:03d}": i % 100 for i in range(settings.MAX_TRIALS_PER_BATCH + 10)}
    matcher = ScriptedMatcher(scores)

    ranked = _rank(matcher, [make_trial(nct_id) for nct_id in scores], limit=1000)
    assert len(ranked) == settings.MAX_TRIALS_PER_BATCH
    assert len(matcher.evaluated) == settings.MAX_TRIALS_PER_BATCH
    assert "NCT055" not in matcher.evaluated


def test_failed_trials_are_skipped():
    matcher = ScriptedMatcher({"NCT1": 60, "NCT2": RuntimeError("boom"), "NCT3": 75})
    trials = [
        make_trial("NCT1"),
        make_trial("NCT2"),
        {"briefTitle": "Trial without an identifier"},
        make_trial("NCT3"),
    ]

    ranked = _rank(matcher, trials)
    assert [r.nct_id for r in ranked] == ["NCT3", "NCT1"]


def test_empty_batch():
    assert _rank(ScriptedMatcher({}), []) == []


def test_invalid_profile_fails_the_batch():
    matcher = ScriptedMatcher({"NCT1": 60})
    with pytest.raises(InvalidMatchInputError):
        asyncio.run(matcher.match_trials_for_patient([make_trial("NCT1")], {"conditions": []}))
    assert matcher.evaluated == []


def test_cache_avoids_recomputation():
    matcher = ScriptedMatcher({"NCT1": 60, "NCT2": 30})
    trials = [make_trial("NCT1"), make_trial("NCT2")]
    cache = MatchResultCache()

    first = _rank(matcher, trials, cache=cache)
    second = _rank(matcher, trials, cache=cache)

    assert matcher.evaluated == ["NCT1", "NCT2"]
    assert len(cache) == 2
    assert ("patient-1", "NCT1") in cache
    assert [r.nct_id for r in second] == [r.nct_id for r in first]
    assert second[0] is first[0]


def test_cache_keeps_first_result():
    matcher = ScriptedMatcher({"NCT1": 60})
    cache = MatchResultCache()
    original = _rank(matcher, [make_trial("NCT1")], cache=cache)[0]

    replacement = original.model_copy(update={"match_score": 10})
    assert cache.put("patient-1", "NCT1", replacement) is original
    assert cache.get("patient-1", "NCT1").match_score == 60

    cache.clear()
    assert len(cache) == 0
    assert cache.get("patient-1", "NCT1") is None


def test_end_to_end_with_llm_unavailable():
    """Structured rules plus keyword fallback still produce a full result."""
    print("\n" + "="*60)
    print("TEST: End-to-End Without LLM")
    print("="*60)

    llm = FakeLLM(LLMServiceError("No LLM service available"))
    matcher = TrialMatcher(llm=llm)

    result = asyncio.run(matcher.calculate_trial_match(make_trial("NCT04000001"), PATIENT))
    for c in result.criteria:
        print(f"  {c.id}: {c.status.value} ({c.confidence.value})")

    assert llm.calls == 2
    assert [c.id for c in result.criteria] == ["age", "sex", "healthy_volunteers", "condition_match"]
    assert all(c.status == CriterionStatus.MET for c in result.criteria)

    assert result.matched_conditions[0].is_match is True
    assert result.matched_conditions[0].patient_condition == "Type 2 Diabetes"

    assert result.nct_id == "NCT04000001"
    assert result.trial.brief_title == "Study NCT04000001"
    assert result.match_score == 96
    assert result.match_tier == MatchTier.EXCELLENT
    assert result.hard_disqualifier is False

    assert result.total_criteria == 4
    assert result.met_criteria == 4
    assert (result.met_criteria + result.not_met_criteria +
            result.missing_data_criteria + result.unknown_criteria) == result.total_criteria

    print("\n[PASS] End-to-end test passed!")


@pytest.mark.parametrize("reply", [
    '{"matches": [{"trialCondition": "Diabetes", "isMatch": true, "confidence": ' + "9" * 5000 + '}]}',
    '{"criteria": ' + "[" * 100000 + "]" * 100000 + '}',
])
def test_unparsable_reply_still_scores_trial(reply):
    result = asyncio.run(TrialMatcher(llm=FakeLLM(reply)).calculate_trial_match(make_trial("NCT1"), PATIENT))
    assert [c.id for c in result.criteria] == ["age", "sex", "healthy_volunteers", "condition_match"]
    assert result.matched_conditions[0].reasoning == "Keyword match found"


def test_end_to_end_with_llm_criteria():
    reply = json.dumps({
        "matches": [{
            "trialCondition": "Diabetes",
            "patientCondition": "Type 2 Diabetes",
            "isMatch": True,
            "confidence": "HIGH",
            "reasoning": "Type 2 diabetes is a form of diabetes"
        }],
        "criteria": [
            {"id": "age", "name": "Adult", "category": "inclusion", "status": "met", "confidence": "high"},
            {"id": "age", "name": "Age again", "status": "unknown"},
            {"id": "pregnancy", "name": "Pregnancy", "category": "exclusion",
             "status": "missing_data", "confidence": "medium"},
        ]
    })
    matcher = TrialMatcher(llm=FakeLLM(reply))

    result = asyncio.run(matcher.calculate_trial_match(make_trial("NCT1"), PATIENT))
    ids = [c.id for c in result.criteria]

    assert ids == ["age", "sex", "healthy_volunteers", "condition_match", "age_2", "age_3", "pregnancy"]
    assert len(ids) == len(set(ids))
    assert result.criteria[3].ai_reasoning == "Type 2 diabetes is a form of diabetes"
    assert result.total_criteria == 7
    assert result.met_criteria == 5
    assert result.unknown_criteria == 1
    assert result.missing_data_criteria == 1
    assert 0 <= result.match_score <= 100


def test_core_mismatch_is_capped():
    trial = make_trial("NCT1")
    trial["eligibility"]["sex"] = "FEMALE"
    matcher = TrialMatcher(llm=FakeLLM(LLMServiceError("down")))

    result = asyncio.run(matcher.calculate_trial_match(trial, PATIENT))
    assert result.hard_disqualifier is True
    assert result.match_score <= HARD_DISQUALIFIER_CAP
    assert result.raw_score > result.match_score
    assert result.not_met_criteria == 1


def test_sparse_trial():
    """No eligibility block and no conditions still yields a result."""
    trial = {"nctId": "NCT9", "briefTitle": "Sparse", "conditions": None, "eligibility": None}
    llm = FakeLLM(LLMServiceError("down"))
    matcher = TrialMatcher(llm=llm)

    result = asyncio.run(matcher.calculate_trial_match(trial, PATIENT))
    assert [c.id for c in result.criteria] == ["age", "sex", "healthy_volunteers", "condition_match"]
    assert result.criteria[-1].status == CriterionStatus.NOT_MET
    assert result.matched_conditions == []
    assert llm.calls == 0


def test_invalid_trial_is_rejected():
    matcher = TrialMatcher(llm=FakeLLM(LLMServiceError("down")))
    with pytest.raises(InvalidMatchInputError):
        asyncio.run(matcher.calculate_trial_match({"briefTitle": "No id"}, PATIENT))
    with pytest.raises(InvalidMatchInputError):
        asyncio.run(matcher.calculate_trial_match(make_trial(""), PATIENT))


def test_with_unique_ids():
    criteria = [
        criterion("age", "met", "high", "age"),
        criterion("age", "met", "high"),
        criterion("age_2", "unknown", "low"),
        criterion("x", "met", "low"),
    ]
    assert [c.id for c in with_unique_ids(criteria)] == ["age", "age_2", "age_2_2", "x"]
    assert with_unique_ids([]) == []


def test_match_response():
    matcher = ScriptedMatcher({"NCT1": 90, "NCT2": 40})
    response = asyncio.run(matcher.match_response(
        [make_trial("NCT1"), make_trial("NCT2")], PATIENT, min_score=50
    ))

    assert [m.nct_id for m in response.matches] == ["NCT1"]
    assert response.total_trials_analyzed == 2
    assert response.patient_conditions == ["Type 2 Diabetes", "Hypertension"]
    assert response.timestamp

    payload = response.model_dump(by_alias=True)
    assert payload["totalTrialsAnalyzed"] == 2
    assert payload["matches"][0]["matchScore"] == 90


def test_match_response_counts_only_scored_trials():
    matcher = ScriptedMatcher({"NCT1": 90, "NCT2": RuntimeError("boom"), "NCT3": 20})
    trials = [make_trial("NCT1"), make_trial("NCT2"), {"briefTitle": "No id"}, make_trial("NCT3")]

    response = asyncio.run(matcher.match_response(trials, PATIENT, min_score=50))
    assert [m.nct_id for m in response.matches] == ["NCT1"]
    assert response.total_trials_analyzed == 2


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
