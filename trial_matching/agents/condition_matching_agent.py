import logging
from typing import Any, Dict, List, Optional

from .base_agent import BaseAgent, JSONGenerator
from ..schemas.patient import PatientCondition, PatientProfile
from ..schemas.trial import ClinicalTrial
from ..schemas.matching import (
    ConditionMatchResponse,
    ConditionMatchResult,
    ConfidenceLevel,
    CriterionCategory,
    CriterionStatus,
    EligibilityCriterion,
)
from ..services.llm_service import LLMResponseError

logger = logging.getLogger(__name__)


class ConditionMatchingAgent(BaseAgent):
    """
    Agent responsible for deciding whether the patient's conditions
    correspond to the conditions a trial is studying.

    The LLM handles synonyms and subtypes ("High Blood Pressure" vs
    "Hypertension"). When it is unavailable or answers with something
    that is not the expected JSON, keyword containment is used instead.
    """

    def __init__(self, llm: Optional[JSONGenerator] = None):
        super().__init__(
            name="Condition Matching Agent",
            description="Semantically match patient conditions to trial target conditions.",
            llm=llm
        )

    def get_system_prompt(self) -> str:
        return """You are a medical matching assistant. Match patient conditions to clinical trial conditions.

For each trial condition, determine if any of the patient's conditions match or are related.
Consider:
- Exact matches (e.g., "Hypertension" = "High Blood Pressure")
- Related conditions (e.g., "Type 2 Diabetes" relates to "Diabetes Mellitus")
- Subtypes (e.g., "Essential Hypertension" is a type of "Hypertension")

Return JSON:
{
    "matches": [
        {
            "trialCondition": "condition name from trial",
            "patientCondition": "matching patient condition or null",
            "isMatch": true/false,
            "confidence": "high|medium|low",
            "reasoning": "brief explanation"
        }
    ]
}"""

    async def process(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Input:
            - patient_conditions: List[PatientCondition]
            - trial_conditions: List[str]

        Output:
            - matches: List[ConditionMatchResult], one per trial condition
        """
        matches = await self.match_conditions(
            input_data.get("patient_conditions") or [],
            input_data.get("trial_conditions") or []
        )
        return {"matches": matches}

    async def match_conditions(
            self,
            patient_conditions: List[PatientCondition],
            trial_conditions: List[str]
    ) -> List[ConditionMatchResult]:
        if not trial_conditions:
            return []

        if not patient_conditions:
            return [
                ConditionMatchResult(
                    trial_condition=tc,
                    is_match=False,
                    confidence=ConfidenceLevel.LOW,
                    reasoning="No patient conditions to compare"
                )
                for tc in trial_conditions
            ]

        active_names = ", ".join(c.display for c in patient_conditions if c.is_active)

        prompt = f"""PATIENT CONDITIONS:
{active_names}

TRIAL CONDITIONS (what the trial is studying):
{", ".join(trial_conditions)}

Return JSON with one entry in "matches" per trial condition."""

        try:
            response = await self.generate_structured(prompt, ConditionMatchResponse)
            return response.matches
        except LLMResponseError as e:
            logger.warning("Semantic condition matching failed, using keyword fallback: %s", e)
            return fallback_condition_match(patient_conditions, trial_conditions)


def fallback_condition_match(
        patient_conditions: List[PatientCondition],
        trial_conditions: List[str]
) -> List[ConditionMatchResult]:
    """
    Keyword matching when the LLM is unavailable.

    A trial condition matches when it contains, or is contained in, a
    patient condition name (case-insensitive).
    """
    patient_names = [c.display for c in patient_conditions if c.display.strip()]

    results = []
    for tc in trial_conditions:
        tc_lower = tc.lower()
        match = next(
            (pc for pc in patient_names if pc.lower() in tc_lower or tc_lower in pc.lower()),
            None
        )
        results.append(ConditionMatchResult(
            trial_condition=tc,
            patient_condition=match,
            is_match=match is not None,
            confidence=ConfidenceLevel.MEDIUM if match else ConfidenceLevel.LOW,
            reasoning="Keyword match found" if match else "No matching condition found"
        ))
    return results


def build_condition_criterion(
        matches: List[ConditionMatchResult],
        profile: PatientProfile,
        trial: ClinicalTrial
) -> EligibilityCriterion:
    """Fold the per-condition results into the single condition_match criterion."""
    first_match = next((m for m in matches if m.is_match), None)

    return EligibilityCriterion(
        id="condition_match",
        name="Relevant Condition",
        category=CriterionCategory.CONDITION,
        status=CriterionStatus.MET if first_match else CriterionStatus.NOT_MET,
        confidence=ConfidenceLevel.HIGH if first_match else ConfidenceLevel.MEDIUM,
        patient_value=", ".join(c.display for c in profile.conditions[:3]),
        required_value=", ".join(trial.conditions[:3]) or "Not specified",
        ai_reasoning=first_match.reasoning if first_match else None,
    )
