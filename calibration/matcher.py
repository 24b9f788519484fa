"""
Three-tier matching of detected findings against ground truth.

Tier 1 (exact):    same file, lines within tolerance, same mechanism
Tier 2 (broad):    same file, same mechanism
Tier 3 (semantic): a caller-supplied judge says it is the same flaw

Matching is greedy and one-to-one. Ground-truth rows are visited in order,
detected findings are scanned in order, and a single ConsumedSet of detected
indices is shared by every tier of a run.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from calibration.judges import FullReportJudgeFn, PairwiseJudgeFn, select_judge
from calibration.mechanism import classify_mechanism
from calibration.models import Finding, GroundTruthEntry, MatchResult, MatchTier
from calibration.normalize import norm_file

logger = logging.getLogger(__name__)


DEFAULT_LINE_TOLERANCE = 5


class ConsumedSet:
    """Detected indices already claimed by a match during one run."""

    def __init__(self, size: int):
        self._taken = [False] * size

    def __len__(self) -> int:
        return sum(self._taken)

    def __contains__(self, index: Any) -> bool:
        return isinstance(index, int) and 0 <= index < len(self._taken) and self._taken[index]

    @property
    def size(self) -> int:
        return len(self._taken)

    def is_available(self, index: int) -> bool:
        return 0 <= index < len(self._taken) and not self._taken[index]

    def claim(self, index: int):
        if not self.is_available(index):
            raise ValueError(f"Detected index {index} is out of range or already consumed")
        self._taken[index] = True

    def available(self) -> List[int]:
        return [i for i, taken in enumerate(self._taken) if not taken]

    def exhausted(self) -> bool:
        return all(self._taken)

    def snapshot(self) -> frozenset:
        return frozenset(i for i, taken in enumerate(self._taken) if taken)


def _same_file(detected: Finding, ground_truth: GroundTruthEntry) -> bool:
    d_file = norm_file(detected.file)
    gt_file = norm_file(ground_truth.file)
    return bool(d_file) and bool(gt_file) and d_file == gt_file


def is_exact_match(detected, ground_truth, line_tolerance: int = DEFAULT_LINE_TOLERANCE) -> bool:
    """Same file + line (within tolerance) + same mechanism."""
    detected = Finding.coerce(detected)
    ground_truth = GroundTruthEntry.coerce(ground_truth)
    if not _same_file(detected, ground_truth):
        return False
    if not detected.line or not ground_truth.line:
        return False
    if abs(detected.line - ground_truth.line) > line_tolerance:
        return False
    return classify_mechanism(detected) == ground_truth.effective_mechanism


def is_broad_match(detected, ground_truth) -> bool:
    """Same file + same mechanism category."""
    detected = Finding.coerce(detected)
    ground_truth = GroundTruthEntry.coerce(ground_truth)
    if not _same_file(detected, ground_truth):
        return False
    return classify_mechanism(detected) == ground_truth.effective_mechanism


def _warn_malformed(items: List[Any], label: str):
    for index, item in enumerate(items):
        if not isinstance(item, (Mapping, Finding)):
            logger.warning(f"{label} entry {index} is a {type(item).__name__}, not an object; treating it as empty")


def _prepare(detected_findings: Iterable, ground_truth_findings: Iterable) -> Tuple[List[Finding], List[GroundTruthEntry]]:
    detected_findings = list(detected_findings or [])
    ground_truth_findings = list(ground_truth_findings or [])
    _warn_malformed(detected_findings, "Detected")
    _warn_malformed(ground_truth_findings, "Ground truth")
    detected = [Finding.coerce(f) for f in detected_findings]
    ground_truth = [GroundTruthEntry.coerce(g) for g in ground_truth_findings]
    return detected, ground_truth


def _line_tolerance(options: Optional[Dict[str, Any]]) -> int:
    options = options or {}
    tolerance = options.get('line_tolerance')
    return DEFAULT_LINE_TOLERANCE if tolerance is None else int(tolerance)


def _greedy_pass(results: List[MatchResult], detected: List[Finding], ground_truth: List[GroundTruthEntry],
                 consumed: ConsumedSet, tier: MatchTier, predicate):
    for result, entry in zip(results, ground_truth):
        if result.matched:
            continue
        for index, finding in enumerate(detected):
            if index in consumed:
                continue
            if predicate(finding, entry):
                consumed.claim(index)
                result.assign(tier, index, finding)
                break


def _run_deterministic_tiers(detected: List[Finding], ground_truth: List[GroundTruthEntry],
                             line_tolerance: int) -> Tuple[List[MatchResult], ConsumedSet]:
    results = [MatchResult.unmatched(entry) for entry in ground_truth]
    consumed = ConsumedSet(len(detected))

    _greedy_pass(results, detected, ground_truth, consumed, MatchTier.EXACT,
                 lambda d, g: is_exact_match(d, g, line_tolerance))
    _greedy_pass(results, detected, ground_truth, consumed, MatchTier.BROAD, is_broad_match)

    logger.debug(
        f"Deterministic tiers matched {len(consumed)}/{len(ground_truth)} ground-truth entries "
        f"using {len(detected)} detected findings"
    )
    return results, consumed


def match_findings(detected_findings, ground_truth_findings, options: Optional[Dict[str, Any]] = None) -> List[MatchResult]:
    """
    Match detected findings against ground truth with the exact and broad tiers.
    Returns one MatchResult per ground-truth entry, in ground-truth order.
    """
    detected, ground_truth = _prepare(detected_findings, ground_truth_findings)
    results, _ = _run_deterministic_tiers(detected, ground_truth, _line_tolerance(options))
    return results


async def match_findings_with_judge(detected_findings, ground_truth_findings,
                                    options: Optional[Dict[str, Any]] = None, *,
                                    judge_fn: Optional[PairwiseJudgeFn] = None,
                                    full_report_judge_fn: Optional[FullReportJudgeFn] = None) -> List[MatchResult]:
    """
    Match with the exact and broad tiers, then ask a semantic judge about the
    ground-truth entries that are still unmatched.

    Judge calls are awaited one at a time so that consumption stays
    deterministic. A failing judge call counts as "no match".
    """
    detected, ground_truth = _prepare(detected_findings, ground_truth_findings)
    results, consumed = _run_deterministic_tiers(detected, ground_truth, _line_tolerance(options))

    judge = select_judge(judge_fn=judge_fn, full_report_judge_fn=full_report_judge_fn)
    if judge is None:
        return results

    for result, entry in zip(results, ground_truth):
        if result.matched:
            continue
        if consumed.exhausted():
            break

        verdict = await judge.evaluate(detected, entry, consumed)
        if verdict is None:
            continue
        if not consumed.is_available(verdict.matched_index):
            logger.debug(f"Judge proposed unavailable index {verdict.matched_index} for {entry.id}")
            continue

        consumed.claim(verdict.matched_index)
        result.assign(MatchTier.SEMANTIC, verdict.matched_index,
                      detected[verdict.matched_index], reasoning=verdict.reasoning)
        logger.debug(f"Semantic match: {entry.id} -> finding {verdict.matched_index}")

    return results
