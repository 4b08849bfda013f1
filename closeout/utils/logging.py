import logging
import os
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

import bittensor as bt

if TYPE_CHECKING:
    from closeout.classes import CandidateVerdict

ACTIONS_LEVEL_NUM = 38
DEFAULT_LOG_BACKUP_COUNT = 10

OUTCOME_MARKS = {
    'pass': '✓',
    'fail': '✗',
    'ambiguous': '?',
}


def setup_actions_logger(full_path, actions_retention_size):
    """Audit logger for approved forge writes, written to <full_path>/actions.log."""
    logging.addLevelName(ACTIONS_LEVEL_NUM, 'ACTION')

    logger = logging.getLogger('closeout.actions')
    logger.setLevel(ACTIONS_LEVEL_NUM)
    logger.propagate = False

    def action(self, message, *args, **kws):
        if self.isEnabledFor(ACTIONS_LEVEL_NUM):
            self._log(ACTIONS_LEVEL_NUM, message, args, **kws)

    logging.Logger.action = action

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    os.makedirs(full_path, exist_ok=True)
    log_file = os.path.join(full_path, 'actions.log')

    # Repeated setup in one process must not stack handlers on the same file
    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler) and handler.baseFilename == os.path.abspath(log_file):
            return logger

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=actions_retention_size,
        backupCount=DEFAULT_LOG_BACKUP_COUNT,
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(ACTIONS_LEVEL_NUM)
    logger.addHandler(file_handler)

    return logger


def log_verdict(verdict: 'CandidateVerdict') -> None:
    """Log the per-check breakdown of a verdict."""
    prs = ', '.join(f'#{n}' for n in verdict.pr_numbers) or 'no PR'
    bt.logging.debug(f'  ├─ Issue #{verdict.issue_number} vs {prs}:')

    if verdict.checks:
        max_name_len = max(len(c.name.value) for c in verdict.checks)
        for check in verdict.checks:
            mark = OUTCOME_MARKS.get(check.outcome.value, ' ')
            score_str = f' ({check.score:.2f})' if check.score is not None else ''
            bt.logging.debug(f'  │   {mark} {check.name.value:<{max_name_len}}  {check.detail}{score_str}')

    bt.logging.info(
        f'  └─ Issue #{verdict.issue_number}: {verdict.classification} '
        f'[{verdict.tier.value}] {verdict.justification}'
    )
