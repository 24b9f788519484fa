"""
Configuration for the calibration tools.
Defaults, optionally overridden by a JSON config file, the environment and
finally explicit values (usually CLI flags).
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    'line_tolerance': 5,
    'judge_model': None,
    'judge_mode': 'full-report',
    'desc_max_chars': 800,
    'api_key': None,
}

JUDGE_MODES = ('full-report', 'pairwise')

ENV_VARS = {
    'api_key': 'OPENAI_API_KEY',
    'judge_model': 'CALIBRATION_JUDGE_MODEL',
}


def load_config(path: Optional[Path] = None, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    config = dict(DEFAULT_CONFIG)

    if path:
        with open(path, 'r') as f:
            file_config = json.load(f)
        config.update(file_config)
        logger.debug(f"Loaded config from {path}")

    for key, env_var in ENV_VARS.items():
        value = os.getenv(env_var)
        if value:
            config[key] = value

    for key, value in (overrides or {}).items():
        if value is not None:
            config[key] = value

    if config['judge_mode'] not in JUDGE_MODES:
        raise ValueError(f"Unknown judge mode: {config['judge_mode']} (expected one of {', '.join(JUDGE_MODES)})")
    config['line_tolerance'] = int(config['line_tolerance'])
    config['desc_max_chars'] = int(config['desc_max_chars'])
    return config
