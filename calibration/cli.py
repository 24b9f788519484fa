#!/usr/bin/env python3
"""
Calibration command-line tools.

calibration-match:    score detected findings against a ground-truth list
calibration-compare:  compare two benchmark runs with bootstrap CIs
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from calibration.config import JUDGE_MODES, load_config
from calibration.llm_judge import LLMJudge
from calibration.matcher import match_findings, match_findings_with_judge
from calibration.models import MatchResult, ScoreSummary
from calibration.scorer import score_results
from calibration.stats import analyze_disclosure_volume, bootstrap_ci, ci_overlap, compare_runs, extract_per_vuln_scores

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)


TIER_ICONS = {
    'exact': ('[EXACT]', 'green'),
    'broad': ('[BROAD]', 'yellow'),
    'semantic': ('[SEMANTIC]', 'cyan'),
    'none': ('[MISS]', 'red'),
}


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )


def _load_json(path: str) -> Any:
    # Malformed input is not caught: a corrupt benchmark must not produce a report
    with open(path, 'r') as f:
        return json.load(f)


def _findings_from(data: Dict[str, Any], *keys: str) -> List[Dict[str, Any]]:
    if not isinstance(data, dict):
        return []
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return []


def print_match_results(match_results: List[MatchResult]):
    console.print("\n[bold]=== Match Results ===[/bold]\n")
    for r in match_results:
        icon, color = TIER_ICONS[r.match_tier.value]
        console.print(f"[{color}]{escape(icon)}[/{color}] {escape(str(r.ground_truth_id))}: {escape(r.ground_truth_title or '')}", soft_wrap=True)
        if r.matched:
            console.print(f"       -> {escape(str(r.detected_id))}: {escape(str(r.detected_title))}", soft_wrap=True)


def print_scores(scores: ScoreSummary, show_semantic: bool = False):
    table = Table(title="Scores", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    total = scores.total_ground_truth
    table.add_row("Precision", f"{scores.precision * 100:.1f}%")
    table.add_row("Recall", f"{scores.recall * 100:.1f}%")
    table.add_row("F1", f"{scores.f1 * 100:.1f}%")
    table.add_row("Exact", f"{scores.exact_matches}/{total}")
    table.add_row("Broad", f"{scores.broad_matches}/{total}")
    if show_semantic:
        table.add_row("Semantic", f"{scores.semantic_matches}/{total}")
    table.add_row("Missed", f"{scores.false_negatives}/{total}")
    table.add_row("FP", str(scores.false_positives))

    console.print(table)


def _build_judge_kwargs(config: Dict[str, Any]) -> Dict[str, Any]:
    judge = LLMJudge(config)
    console.print(f"[cyan]Judge model:[/cyan] {judge.model_id} ({config['judge_mode']})")
    return judge.judge_kwargs(config['judge_mode'])


def match_main(argv: Optional[List[str]] = None) -> int:
    """Entry point for calibration-match."""
    parser = argparse.ArgumentParser(
        description='Compares detected findings against ground truth with three-tier matching.'
    )
    parser.add_argument('--detected', help='Path to detected findings JSON')
    parser.add_argument('--ground-truth', help='Path to ground truth JSON')
    parser.add_argument('--line-tolerance', type=int, help='Line distance allowed for exact matches (default: 5)')
    parser.add_argument('--judge-model', help='LLM model used as semantic judge (enables the semantic tier)')
    parser.add_argument('--judge-mode', choices=JUDGE_MODES, help='Judge protocol (default: full-report)')
    parser.add_argument('--config', help='Path to a JSON config file')
    parser.add_argument('--output', help='Also write the JSON result to this file')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not args.detected or not args.ground_truth:
        err_console.print("[red]Error: --detected and --ground-truth are required[/red]")
        return 1
    if not Path(args.detected).exists():
        err_console.print(f"[red]Error: detected file not found: {escape(args.detected)}[/red]")
        return 1
    if not Path(args.ground_truth).exists():
        err_console.print(f"[red]Error: ground truth file not found: {escape(args.ground_truth)}[/red]")
        return 1

    config = load_config(args.config, {
        'line_tolerance': args.line_tolerance,
        'judge_model': args.judge_model,
        'judge_mode': args.judge_mode,
    })

    detected_data = _load_json(args.detected)
    gt_data = _load_json(args.ground_truth)

    detected_findings = _findings_from(detected_data, 'findings', 'issues')
    gt_findings = _findings_from(gt_data, 'findings')
    logger.info(f"Loaded {len(detected_findings)} detected findings and {len(gt_findings)} ground-truth entries")

    options = {'line_tolerance': config['line_tolerance']}
    use_judge = bool(config.get('judge_model'))
    if use_judge:
        match_results = asyncio.run(match_findings_with_judge(
            detected_findings, gt_findings, options, **_build_judge_kwargs(config)
        ))
    else:
        match_results = match_findings(detected_findings, gt_findings, options)
    scores = score_results(match_results, len(detected_findings))

    print_match_results(match_results)
    print_scores(scores, show_semantic=use_judge)

    payload = {
        'matchResults': [r.to_dict() for r in match_results],
        'scores': scores.to_dict(),
    }
    if args.output:
        output_file = Path(args.output)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(output_file, 'w') as f:
            json.dump(payload, f, indent=2)
        logger.info(f"Saved results to {output_file}")

    print(json.dumps(payload, indent=2))
    return 0


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def _pct(value: Optional[float]) -> str:
    return 'N/A' if value is None else f"{value * 100:.1f}%"


def _delta(value: Optional[float]) -> str:
    if value is None:
        return 'NEW'
    sign = '+' if value >= 0 else ''
    return f"{sign}{value * 100:.1f}%"


def describe_correlation(correlation: float) -> str:
    if abs(correlation) > 0.5:
        direction, effect = ('positive', 'improves') if correlation > 0 else ('negative', 'reduces')
        return f"Strong {direction} correlation: more vulnerabilities {effect} detection"
    return "Weak correlation: vulnerability count does not strongly predict detection success"


def _format_ci(ci: Dict[str, float]) -> str:
    return f"{ci['mean'] * 100:.1f}% [{ci['ci_low'] * 100:.1f}-{ci['ci_high'] * 100:.1f}]"


def compare_main(argv: Optional[List[str]] = None) -> int:
    """Entry point for calibration-compare."""
    parser = argparse.ArgumentParser(description='Compares two benchmark runs with bootstrap confidence intervals.')
    parser.add_argument('--baseline', help='Path to baseline results JSON')
    parser.add_argument('--current', help='Path to current results JSON')
    parser.add_argument('--resamples', type=_positive_int, default=10000, help='Number of bootstrap resamples (default: 10000)')
    parser.add_argument('--analysis', action='store_true', help='Show disclosure volume correlation analysis')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not args.baseline or not args.current:
        err_console.print("[red]Error: --baseline and --current are required[/red]")
        return 1
    for path in (args.baseline, args.current):
        if not Path(path).exists():
            err_console.print(f"[red]File not found: {escape(path)}[/red]")
            return 1

    baseline = _load_json(args.baseline)
    current = _load_json(args.current)
    comparison = compare_runs(baseline, current)

    for label, run, path in (("Baseline:", baseline, args.baseline), ("Current: ", current, args.current)):
        console.print(f"{label} {escape(str(run.get('id') or path))} ({escape(str(run.get('timestamp') or 'unknown'))})",
                      soft_wrap=True)

    table = Table(title=f"Benchmark Comparison ({args.resamples} bootstrap resamples, 95% CI)", box=box.ROUNDED)
    for column in ("Benchmark", "Recall(B)", "Recall(C)", "Delta", "F1(B)", "F1(C)", "Status"):
        table.add_column(column)
    for row in comparison['rows']:
        style = 'red' if row['status'] == 'REGRESSION' else None
        table.add_row(
            escape(str(row['id'])), _pct(row['baseline_recall']), _pct(row['current_recall']),
            _delta(row['recall_delta']), _pct(row['baseline_f1']), _pct(row['current_f1']),
            row['status'], style=style,
        )
    aggregate = comparison['aggregate']
    if aggregate:
        table.add_row(
            "AGGREGATE", _pct(aggregate['baseline_recall']), _pct(aggregate['current_recall']),
            _delta(aggregate['current_recall'] - aggregate['baseline_recall']),
            _pct(aggregate['baseline_f1']), _pct(aggregate['current_f1']),
            'REGRESSION' if aggregate['regression'] else 'OK',
        )
    console.print(table)

    baseline_scores = extract_per_vuln_scores(baseline.get('benchmarks'))
    current_scores = extract_per_vuln_scores(current.get('benchmarks'))
    baseline_ci = bootstrap_ci(baseline_scores, args.resamples)
    current_ci = bootstrap_ci(current_scores, args.resamples)

    console.print(f"\n[bold]=== Bootstrap Confidence Intervals (95%, N={args.resamples}) ===[/bold]")
    if baseline_scores:
        console.print(f"Baseline recall: {escape(_format_ci(baseline_ci))} (n={len(baseline_scores)} vulns)")
    if current_scores:
        console.print(f"Current  recall: {escape(_format_ci(current_ci))} (n={len(current_scores)} vulns)")
    if baseline_scores and current_scores:
        if ci_overlap(current_ci, baseline_ci):
            console.print("\nDifference not statistically significant (CIs overlap)")
        elif current_ci['mean'] > baseline_ci['mean']:
            console.print("\n[green]Statistically significant improvement (CIs do not overlap)[/green]")
        else:
            console.print("\n[red]Statistically significant regression (CIs do not overlap)[/red]")

    if args.analysis:
        analysis = analyze_disclosure_volume(current)
        if analysis:
            volume = Table(title="Disclosure Volume Analysis", box=box.ROUNDED)
            for column in ("Benchmark", "Vulns", "Recall", "F1"):
                volume.add_column(column)
            for d in analysis['data_points']:
                volume.add_row(escape(str(d['id'])), str(d['vuln_count']), _pct(d['recall']), _pct(d['f1']))
            console.print(volume)
            console.print(f"Pearson r(vuln_count, recall) = {analysis['correlation']:.3f} (n={analysis['n']})")
            console.print(describe_correlation(analysis['correlation']), soft_wrap=True)

    if comparison['regressions']:
        console.print(f"\n[red]WARNING: Regressions detected in: {escape(', '.join(map(str, comparison['regressions'])))}[/red]")
        console.print("Review these benchmarks before merging changes.")
        return 1

    console.print("\n[green]No regressions detected.[/green]")
    return 0


def main():
    sys.exit(match_main())


def compare():
    sys.exit(compare_main())


if __name__ == "__main__":
    main()
