"""
Data model for finding calibration.
Findings and ground-truth entries are read from JSON dicts; match results and
scores are written back out as dicts.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from calibration.mechanism import classify_mechanism


def _coerce_line(value: Any) -> int:
    """Line numbers arrive as ints, strings or nothing at all. 0 means unknown."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        line = int(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    return line if line > 0 else 0


def _text(value: Any) -> str:
    if value is None:
        return ''
    return str(value)


@dataclass(frozen=True)
class Finding:
    """A detected security finding."""
    id: Optional[str] = None
    title: str = ''
    severity: str = ''
    file: str = ''
    line: int = 0
    root_cause: str = ''
    description: str = ''
    type: str = ''
    category: str = ''
    mechanism: str = ''
    exploit_scenario: str = ''
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    _KNOWN = ('id', 'title', 'severity', 'file', 'line', 'root_cause', 'description',
              'type', 'category', 'mechanism', 'exploit_scenario')

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]):
        if not isinstance(data, Mapping):
            # Non-object array elements become findings with empty fields
            data = {}
        finding_id = data.get('id')
        return cls(
            id=str(finding_id) if finding_id is not None else None,
            title=_text(data.get('title')),
            severity=_text(data.get('severity')),
            file=_text(data.get('file')),
            line=_coerce_line(data.get('line')),
            root_cause=_text(data.get('root_cause')),
            description=_text(data.get('description')),
            type=_text(data.get('type')),
            category=_text(data.get('category')),
            mechanism=_text(data.get('mechanism')),
            exploit_scenario=_text(data.get('exploit_scenario')),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN},
        )

    @classmethod
    def coerce(cls, value):
        """Accept an instance of this class or a plain dict."""
        if isinstance(value, cls):
            return value
        if isinstance(value, Finding):
            return cls.from_dict(value.to_dict())
        return cls.from_dict(value)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        extra = result.pop('extra')
        result.update(extra)
        return result


@dataclass(frozen=True)
class GroundTruthEntry(Finding):
    """A known vulnerability. A non-empty mechanism field is an explicit tag."""

    @property
    def mechanism_tag(self) -> Optional[str]:
        return self.mechanism or None

    @property
    def effective_mechanism(self) -> str:
        if self.mechanism:
            return self.mechanism
        return classify_mechanism(self)


class MatchTier(str, Enum):
    NONE = 'none'
    EXACT = 'exact'
    BROAD = 'broad'
    SEMANTIC = 'semantic'


@dataclass
class MatchResult:
    """Outcome for one ground-truth entry."""
    ground_truth_id: Optional[str]
    ground_truth_title: str
    ground_truth_severity: str
    ground_truth_mechanism: Optional[str]
    matched: bool = False
    match_tier: MatchTier = MatchTier.NONE
    detected_id: Optional[str] = None
    detected_title: Optional[str] = None
    detected_index: Optional[int] = None
    judge_reasoning: Optional[str] = None

    @classmethod
    def unmatched(cls, entry: GroundTruthEntry):
        return cls(
            ground_truth_id=entry.id,
            ground_truth_title=entry.title,
            ground_truth_severity=entry.severity,
            ground_truth_mechanism=entry.mechanism_tag,
        )

    def assign(self, tier: MatchTier, index: int, finding: Finding, reasoning: Optional[str] = None):
        self.matched = True
        self.match_tier = tier
        self.detected_index = index
        self.detected_id = finding.id
        self.detected_title = finding.title or None
        self.judge_reasoning = reasoning

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['match_tier'] = self.match_tier.value
        return result


def _ratio(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def _f1(precision: float, recall: float) -> float:
    if precision + recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


@dataclass
class ScoreSummary:
    """Counts for one run; ratios are derived."""
    true_positives: int
    total_ground_truth: int
    total_detected: int
    exact_matches: int = 0
    broad_matches: int = 0
    semantic_matches: int = 0

    @property
    def false_positives(self) -> int:
        return max(0, self.total_detected - self.true_positives)

    @property
    def false_negatives(self) -> int:
        return self.total_ground_truth - self.true_positives

    @property
    def precision(self) -> float:
        return round(_ratio(self.true_positives, self.total_detected), 3)

    @property
    def recall(self) -> float:
        return round(_ratio(self.true_positives, self.total_ground_truth), 3)

    @property
    def f1(self) -> float:
        precision = _ratio(self.true_positives, self.total_detected)
        recall = _ratio(self.true_positives, self.total_ground_truth)
        return round(_f1(precision, recall), 3)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'true_positives': self.true_positives,
            'false_positives': self.false_positives,
            'false_negatives': self.false_negatives,
            'precision': self.precision,
            'recall': self.recall,
            'f1': self.f1,
            'exact_matches': self.exact_matches,
            'broad_matches': self.broad_matches,
            'semantic_matches': self.semantic_matches,
            'total_ground_truth': self.total_ground_truth,
            'total_detected': self.total_detected,
        }


@dataclass
class AggregateScore:
    """Scores summed over several benchmarks."""
    benchmarks_run: int
    total_ground_truth: int
    total_detected: int
    true_positives: int
    false_positives: int
    false_negatives: int

    @property
    def precision(self) -> float:
        return round(_ratio(self.true_positives, self.total_detected), 3)

    @property
    def recall(self) -> float:
        return round(_ratio(self.true_positives, self.total_ground_truth), 3)

    @property
    def f1(self) -> float:
        precision = _ratio(self.true_positives, self.total_detected)
        recall = _ratio(self.true_positives, self.total_ground_truth)
        return round(_f1(precision, recall), 3)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result.update(precision=self.precision, recall=self.recall, f1=self.f1)
        return result


@dataclass(frozen=True)
class JudgeVerdict:
    """A semantic match proposed by a judge, before re-validation."""
    matched_index: int
    reasoning: str = ''
