from typing import Dict, Optional, Tuple

from ..schemas.matching import TrialMatchResult

CacheKey = Tuple[str, str]


class MatchResultCache:
    """
    Read-through cache of match results keyed by (patient_id, nct_id).

    Owned by the caller and passed into the ranker. Entries are never
    replaced: the first result stored for a key wins.
    """

    def __init__(self):
        self._results: Dict[CacheKey, TrialMatchResult] = {}

    def get(self, patient_id: str, nct_id: str) -> Optional[TrialMatchResult]:
        return self._results.get((patient_id, nct_id))

    def put(self, patient_id: str, nct_id: str, result: TrialMatchResult) -> TrialMatchResult:
        """Store result unless the key is already populated; return the cached entry."""
        return self._results.setdefault((patient_id, nct_id), result)

    def clear(self) -> None:
        self._results.clear()

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._results
