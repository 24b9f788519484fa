"""
Run-to-run statistics: bootstrap confidence intervals over per-vulnerability
recall, disclosure volume correlation and regression detection.
"""

import math
import random
from typing import Any, Dict, List, Optional, Sequence


REGRESSION_THRESHOLD = 0.05


def extract_per_vuln_scores(benchmarks: Optional[Sequence[Dict[str, Any]]]) -> List[int]:
    """One 1/0 per ground-truth entry of every completed benchmark."""
    scores = []
    for bench in benchmarks or []:
        if bench.get('status') != 'completed':
            continue
        matches = bench.get('match_results') or bench.get('per_vuln') or []
        for m in matches:
            scores.append(1 if m.get('matched') else 0)
    return scores


def bootstrap_ci(scores: Sequence[float], n_resamples: int = 10000, ci_level: float = 0.95,
                 rng: Optional[random.Random] = None) -> Dict[str, float]:
    """
    Bootstrap confidence interval for the mean of ``scores``.

    Returns the point mean and the percentile bounds of the resampled means.
    """
    if n_resamples < 1:
        raise ValueError(f"n_resamples must be at least 1, got {n_resamples}")
    if not scores:
        return {'mean': 0.0, 'ci_low': 0.0, 'ci_high': 0.0}

    rng = rng or random.Random()
    n = len(scores)
    means = sorted(sum(rng.choice(scores) for _ in range(n)) / n for _ in range(n_resamples))

    alpha = 1 - ci_level
    low_idx = int(math.floor((alpha / 2) * n_resamples))
    high_idx = min(int(math.floor((1 - alpha / 2) * n_resamples)), n_resamples - 1)

    return {
        'mean': sum(scores) / n,
        'ci_low': means[low_idx],
        'ci_high': means[high_idx],
    }


def ci_overlap(a: Dict[str, float], b: Dict[str, float]) -> bool:
    return a['ci_low'] <= b['ci_high'] and a['ci_high'] >= b['ci_low']


def analyze_disclosure_volume(results: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Correlate the number of known vulnerabilities per benchmark with recall."""
    completed = [b for b in results.get('benchmarks') or [] if b.get('status') == 'completed']
    if not completed:
        return None

    data_points = []
    for b in completed:
        scores = b.get('scores') or {}
        data_points.append({
            'id': b.get('id'),
            'vuln_count': b.get('ground_truth_count') or 0,
            'recall': scores.get('recall') or 0,
            'precision': scores.get('precision') or 0,
            'f1': scores.get('f1') or 0,
        })
    data_points.sort(key=lambda d: d['vuln_count'])

    n = len(data_points)
    xs = [d['vuln_count'] for d in data_points]
    ys = [d['recall'] for d in data_points]
    mean_x = sum(xs) / n
    mean_y = sum(ys) / n

    cov_xy = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    var_x = sum((x - mean_x) ** 2 for x in xs)
    var_y = sum((y - mean_y) ** 2 for y in ys)
    correlation = cov_xy / math.sqrt(var_x * var_y) if var_x > 0 and var_y > 0 else 0.0

    return {'data_points': data_points, 'correlation': correlation, 'n': n}


def compare_runs(baseline: Dict[str, Any], current: Dict[str, Any],
                 threshold: float = REGRESSION_THRESHOLD) -> Dict[str, Any]:
    """Compare per-benchmark recall and F1 of two benchmark runs."""
    baseline_map = {
        b.get('id'): b for b in baseline.get('benchmarks') or [] if b.get('status') == 'completed'
    }

    rows = []
    regressions = []
    for c in current.get('benchmarks') or []:
        if c.get('status') != 'completed':
            continue
        c_scores = c.get('scores') or {}
        b = baseline_map.get(c.get('id'))
        if b is None:
            rows.append({
                'id': c.get('id'),
                'baseline_recall': None,
                'current_recall': c_scores.get('recall', 0),
                'recall_delta': None,
                'baseline_f1': None,
                'current_f1': c_scores.get('f1', 0),
                'status': 'new',
            })
            continue

        b_scores = b.get('scores') or {}
        recall_delta = c_scores.get('recall', 0) - b_scores.get('recall', 0)
        f1_delta = c_scores.get('f1', 0) - b_scores.get('f1', 0)
        is_regression = recall_delta < -threshold or f1_delta < -threshold
        if is_regression:
            status = 'REGRESSION'
            regressions.append(c.get('id'))
        elif recall_delta > threshold:
            status = 'IMPROVED'
        else:
            status = 'stable'

        rows.append({
            'id': c.get('id'),
            'baseline_recall': b_scores.get('recall', 0),
            'current_recall': c_scores.get('recall', 0),
            'recall_delta': recall_delta,
            'baseline_f1': b_scores.get('f1', 0),
            'current_f1': c_scores.get('f1', 0),
            'status': status,
        })

    aggregate = None
    if baseline.get('aggregate') and current.get('aggregate'):
        ba = baseline['aggregate']
        ca = current['aggregate']
        aggregate = {
            'baseline_recall': ba.get('recall', 0),
            'current_recall': ca.get('recall', 0),
            'baseline_f1': ba.get('f1', 0),
            'current_f1': ca.get('f1', 0),
            'regression': ca.get('recall', 0) < ba.get('recall', 0) - threshold,
        }

    return {'rows': rows, 'regressions': regressions, 'aggregate': aggregate}
