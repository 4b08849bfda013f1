# The MIT License (MIT)
# Copyright © 2025 Entrius

# =============================================================================
# GitHub API
# =============================================================================
BASE_GITHUB_API_URL = "https://api.github.com"
GITHUB_DOMAIN = "https://github.com/"
GITHUB_PAGE_SIZE = 100

# =============================================================================
# Collection limits
# =============================================================================
DEFAULT_MAX_WORKERS = 8
DEFAULT_MAX_OPEN_ISSUES = 500
DEFAULT_MAX_MERGED_PRS = 1000
TIMELINE_ITEMS_LIMIT = 100
TIMELINE_MAX_PAGES = 10
PR_FILES_LIMIT = 100
REVERT_SCAN_MAX_COMMITS = 300

# =============================================================================
# Content matching
# =============================================================================
CLOSING_KEYWORDS = [
    'close',
    'closes',
    'closed',
    'fix',
    'fixes',
    'fixed',
    'resolve',
    'resolves',
    'resolved',
]

PARTIAL_FIX_MARKERS = [
    'partially',
    'partial fix',
    'part of',
    'some of',
    'first step',
    'step towards',
    'step toward',
    'groundwork for',
    'follow-up',
    'follow up',
    'does not fully',
    "doesn't fully",
]

DEFAULT_CONTENT_PASS_THRESHOLD = 0.6
CLOSING_KEYWORD_SCORE = 0.7  # explicit "fixes #N" in the PR text
MAX_OVERLAP_SCORE = 0.5  # contribution from shared vocabulary
MIN_SIGNIFICANT_WORD_LENGTH = 4

STOP_WORDS = {
    'this',
    'that',
    'with',
    'from',
    'have',
    'when',
    'should',
    'would',
    'could',
    'there',
    'their',
    'which',
    'will',
    'what',
    'been',
    'into',
    'then',
    'than',
    'also',
    'some',
    'issue',
    'issues',
    'fixes',
    'closes',
    'resolves',
    'pull',
    'request',
}

# =============================================================================
# Forge writes
# =============================================================================
DEFAULT_RESOLVED_LABEL = 'resolved-by-merged-pr'
DEFAULT_COMMENT_TEMPLATE = (
    'This issue appears to have been resolved by {pr_refs}, which has been merged '
    'into the default branch. Closing it as completed; please reopen if the problem persists.'
)
DEFAULT_ACTIONS_LOG_RETENTION = 5 * 1024 * 1024  # bytes
