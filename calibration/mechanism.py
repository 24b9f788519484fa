"""
Mechanism classification for security findings.
Maps the free text of a finding to one fixed vulnerability category using an
ordered keyword table. Earlier rules win when several match.
"""

from typing import Any, Mapping, Tuple


TEXT_FIELDS = ('title', 'root_cause', 'description', 'type', 'category', 'mechanism')

# (keywords, category), evaluated top to bottom
MECHANISM_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (('reentran',), 'reentrancy'),
    (('access', 'auth', 'permission', 'role'), 'access-control'),
    (('overflow', 'underflow', 'precision', 'rounding'), 'arithmetic'),
    (('oracle', 'twap', 'price'), 'oracle-manipulation'),
    (('flash loan', 'flashloan'), 'flash-loan'),
    (('front-run', 'sandwich', 'mev'), 'front-running'),
    (('dos', 'grief', 'unbounded', 'gas limit'), 'dos-griefing'),
    (('state', 'corrupt', 'inconsist'), 'state-corruption'),
    (('upgrade', 'proxy', 'initializ'), 'upgrade-safety'),
    (('token', 'erc20', 'erc721', 'transfer'), 'token-handling'),
    (('cross-contract', 'cross-module', 'callback'), 'cross-contract'),
    (('economic', 'liquidat', 'collateral'), 'economic'),
    (('logic', 'conditional', 'branch'), 'logic-error'),
    (('init', 'constructor'), 'initialization'),
)

DEFAULT_MECHANISM = 'other'

MECHANISM_CATEGORIES = tuple(category for _, category in MECHANISM_RULES) + (DEFAULT_MECHANISM,)


def _finding_text(finding: Any) -> str:
    if isinstance(finding, Mapping):
        return ' '.join(str(finding.get(name) or '') for name in TEXT_FIELDS).lower()
    return ' '.join(str(getattr(finding, name, '') or '') for name in TEXT_FIELDS).lower()


def classify_mechanism(finding: Any) -> str:
    """Return the mechanism category of a finding (dict or Finding)."""
    text = _finding_text(finding)
    for keywords, category in MECHANISM_RULES:
        if any(keyword in text for keyword in keywords):
            return category
    return DEFAULT_MECHANISM
