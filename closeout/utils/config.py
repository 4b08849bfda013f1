# The MIT License (MIT)
# Copyright © 2025 Entrius

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import bittensor as bt
from dotenv import load_dotenv

from closeout.constants import (
    DEFAULT_ACTIONS_LOG_RETENTION,
    DEFAULT_COMMENT_TEMPLATE,
    DEFAULT_CONTENT_PASS_THRESHOLD,
    DEFAULT_MAX_MERGED_PRS,
    DEFAULT_MAX_OPEN_ISSUES,
    DEFAULT_MAX_WORKERS,
    DEFAULT_RESOLVED_LABEL,
)

load_dotenv()

# NOTE: bump this number when we make new updates
__version__ = "0.3.0"

# Config paths
CLOSEOUT_DIR = Path.home() / '.closeout'
CONFIG_FILE = CLOSEOUT_DIR / 'config.json'

# Keys accepted by `closeout config set`
CONFIG_KEYS = {
    'repository': 'Default owner/repo to triage',
    'label': 'Label applied to issues closed by closeout',
    'actions_log_dir': 'Directory for the approved-actions audit log',
    'content_pass_threshold': 'Minimum content-match score (0-1) to count as a pass',
    'max_workers': 'Concurrent issue fetches',
}


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        bt.logging.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def get_github_token() -> Optional[str]:
    """PAT used for every forge call: CLOSEOUT_GITHUB_PAT, falling back to GITHUB_TOKEN."""
    return os.getenv('CLOSEOUT_GITHUB_PAT') or os.getenv('GITHUB_TOKEN')


def load_config() -> Dict[str, Any]:
    """Load ~/.closeout/config.json; a missing or invalid file yields an empty dict."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        return json.loads(CONFIG_FILE.read_text())
    except json.JSONDecodeError:
        bt.logging.warning(f"Invalid JSON in {CONFIG_FILE}, ignoring it")
        return {}


def save_config(config: Dict[str, Any]) -> None:
    CLOSEOUT_DIR.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(config, indent=2))


@dataclass
class TriageConfig:
    """Options for one triage run"""

    max_workers: int = DEFAULT_MAX_WORKERS
    max_open_issues: int = DEFAULT_MAX_OPEN_ISSUES
    max_merged_prs: int = DEFAULT_MAX_MERGED_PRS
    content_pass_threshold: float = DEFAULT_CONTENT_PASS_THRESHOLD
    # Scores at or below this fail the content check; None keeps low scores as human-reviewed
    content_fail_threshold: Optional[float] = None
    label: str = DEFAULT_RESOLVED_LABEL
    comment_template: str = DEFAULT_COMMENT_TEMPLATE
    actions: List[str] = field(default_factory=lambda: ['comment', 'label', 'close'])
    actions_log_dir: Optional[str] = None
    actions_log_retention: int = DEFAULT_ACTIONS_LOG_RETENTION

    @classmethod
    def from_environment(cls, file_config: Optional[Dict[str, Any]] = None) -> 'TriageConfig':
        """Build from environment variables, overlaid with values from the CLI config file."""
        file_config = file_config if file_config is not None else load_config()
        config = cls(
            max_workers=_int_env('CLOSEOUT_MAX_WORKERS', DEFAULT_MAX_WORKERS),
            max_open_issues=_int_env('CLOSEOUT_MAX_OPEN_ISSUES', DEFAULT_MAX_OPEN_ISSUES),
            max_merged_prs=_int_env('CLOSEOUT_MAX_MERGED_PRS', DEFAULT_MAX_MERGED_PRS),
        )

        if file_config.get('label'):
            config.label = str(file_config['label'])
        if file_config.get('actions_log_dir'):
            config.actions_log_dir = str(file_config['actions_log_dir'])
        if file_config.get('max_workers'):
            try:
                config.max_workers = int(file_config['max_workers'])
            except (TypeError, ValueError):
                bt.logging.warning(f"Ignoring invalid max_workers in config: {file_config['max_workers']!r}")
        if file_config.get('content_pass_threshold') is not None:
            try:
                config.content_pass_threshold = float(file_config['content_pass_threshold'])
            except (TypeError, ValueError):
                bt.logging.warning(
                    f"Ignoring invalid content_pass_threshold in config: {file_config['content_pass_threshold']!r}"
                )

        return config
