"""
ScaBench calibration: tiered matching of detected security findings against
ground truth, with precision/recall/F1 scoring.
"""

from calibration.judges import FullReportJudge, PairwiseJudge, select_judge
from calibration.matcher import (
    ConsumedSet,
    is_broad_match,
    is_exact_match,
    match_findings,
    match_findings_with_judge,
)
from calibration.mechanism import MECHANISM_CATEGORIES, MECHANISM_RULES, classify_mechanism
from calibration.models import (
    AggregateScore,
    Finding,
    GroundTruthEntry,
    JudgeVerdict,
    MatchResult,
    MatchTier,
    ScoreSummary,
)
from calibration.normalize import norm_file, norm_severity
from calibration.scorer import compute_aggregate, score_results

__version__ = "0.1.0"

__all__ = [
    "AggregateScore",
    "ConsumedSet",
    "Finding",
    "FullReportJudge",
    "GroundTruthEntry",
    "JudgeVerdict",
    "MECHANISM_CATEGORIES",
    "MECHANISM_RULES",
    "MatchResult",
    "MatchTier",
    "PairwiseJudge",
    "ScoreSummary",
    "classify_mechanism",
    "compute_aggregate",
    "is_broad_match",
    "is_exact_match",
    "match_findings",
    "match_findings_with_judge",
    "norm_file",
    "norm_severity",
    "score_results",
    "select_judge",
]
