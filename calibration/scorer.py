"""
Scoring of match results.
Every ground-truth entry counts equally; there is no severity weighting.
"""

from typing import Any, Iterable, List, Optional

from calibration.models import AggregateScore, MatchResult, MatchTier, ScoreSummary


def _tier_of(result: Any) -> str:
    if isinstance(result, MatchResult):
        return result.match_tier.value
    tier = result.get('match_tier', MatchTier.NONE.value)
    return tier.value if isinstance(tier, MatchTier) else str(tier)


def _is_matched(result: Any) -> bool:
    if isinstance(result, MatchResult):
        return result.matched
    return bool(result.get('matched'))


def score_results(match_results: Iterable[Any], detected_count: int) -> ScoreSummary:
    """Compute precision, recall, F1 and tier counts from per-ground-truth results."""
    match_results = list(match_results)
    tiers = [_tier_of(r) for r in match_results]
    return ScoreSummary(
        true_positives=sum(1 for r in match_results if _is_matched(r)),
        total_ground_truth=len(match_results),
        total_detected=detected_count,
        exact_matches=tiers.count(MatchTier.EXACT.value),
        broad_matches=tiers.count(MatchTier.BROAD.value),
        semantic_matches=tiers.count(MatchTier.SEMANTIC.value),
    )


def _get(summary: Any, name: str) -> int:
    if isinstance(summary, dict):
        return int(summary.get(name, 0) or 0)
    return int(getattr(summary, name))


def compute_aggregate(summaries: Iterable[Any]) -> Optional[AggregateScore]:
    """Sum the counts of several benchmark runs and recompute the ratios."""
    summaries: List[Any] = list(summaries)
    if not summaries:
        return None

    return AggregateScore(
        benchmarks_run=len(summaries),
        total_ground_truth=sum(_get(s, 'total_ground_truth') for s in summaries),
        total_detected=sum(_get(s, 'total_detected') for s in summaries),
        true_positives=sum(_get(s, 'true_positives') for s in summaries),
        false_positives=sum(_get(s, 'false_positives') for s in summaries),
        false_negatives=sum(_get(s, 'false_negatives') for s in summaries),
    )
