"""
Semantic judge variants.

A judge decides whether a detected finding describes the same underlying flaw
as a ground-truth entry. Two call shapes are supported:

    pairwise:     judge_fn(finding, entry) -> {match, reasoning}
    full report:  full_report_judge_fn(findings, indices, entry, consumed)
                      -> {match, matched_index, reasoning}

Both are wrapped behind ``evaluate()`` which returns a JudgeVerdict or None.
Judges are untrusted: every proposed index is re-checked against the consumed
set by the caller before it is accepted.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence

from calibration.models import Finding, GroundTruthEntry, JudgeVerdict

logger = logging.getLogger(__name__)


PairwiseJudgeFn = Callable[[Finding, GroundTruthEntry], Awaitable[Any]]
FullReportJudgeFn = Callable[[List[Finding], List[int], GroundTruthEntry, frozenset], Awaitable[Any]]


def _field(result: Any, name: str, default: Any = None) -> Any:
    if result is None:
        return default
    if isinstance(result, Mapping):
        return result.get(name, default)
    return getattr(result, name, default)


async def _call(fn: Callable, *args) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def _valid_index(value: Any, size: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < size


class PairwiseJudge:
    """Asks about one (finding, entry) pair at a time; first positive wins."""

    def __init__(self, judge_fn: PairwiseJudgeFn):
        self.judge_fn = judge_fn

    async def evaluate(self, findings: Sequence[Finding], entry: GroundTruthEntry, consumed) -> Optional[JudgeVerdict]:
        for index in consumed.available():
            try:
                result = await _call(self.judge_fn, findings[index], entry)
            except Exception as e:
                logger.debug(f"Pairwise judge failed for {entry.id} vs finding {index}: {e}")
                continue
            if _field(result, 'match'):
                return JudgeVerdict(matched_index=index, reasoning=str(_field(result, 'reasoning', '') or ''))
        return None


class FullReportJudge:
    """Shows the judge the whole detected report once per ground-truth entry."""

    def __init__(self, judge_fn: FullReportJudgeFn):
        self.judge_fn = judge_fn

    async def evaluate(self, findings: Sequence[Finding], entry: GroundTruthEntry, consumed) -> Optional[JudgeVerdict]:
        indices = list(range(len(findings)))
        try:
            result = await _call(self.judge_fn, list(findings), indices, entry, consumed.snapshot())
        except Exception as e:
            logger.debug(f"Full-report judge failed for {entry.id}: {e}")
            return None

        if not _field(result, 'match'):
            return None
        matched_index = _field(result, 'matched_index')
        if not _valid_index(matched_index, len(findings)):
            logger.debug(f"Rejected out-of-range index {matched_index!r} for {entry.id}")
            return None
        if matched_index in consumed:
            logger.debug(f"Rejected already-consumed index {matched_index} for {entry.id}")
            return None
        return JudgeVerdict(matched_index=matched_index, reasoning=str(_field(result, 'reasoning', '') or ''))


def select_judge(judge_fn: Optional[PairwiseJudgeFn] = None,
                 full_report_judge_fn: Optional[FullReportJudgeFn] = None):
    """Pick the judge variant for a run. The full-report judge takes precedence."""
    if full_report_judge_fn is not None:
        return FullReportJudge(full_report_judge_fn)
    if judge_fn is not None:
        return PairwiseJudge(judge_fn)
    return None
