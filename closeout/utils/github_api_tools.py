# Entrius 2025
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import bittensor as bt
import requests

from closeout.classes import Issue, PullRequest
from closeout.constants import (
    BASE_GITHUB_API_URL,
    DEFAULT_MAX_MERGED_PRS,
    DEFAULT_MAX_OPEN_ISSUES,
    GITHUB_PAGE_SIZE,
    PR_FILES_LIMIT,
    REVERT_SCAN_MAX_COMMITS,
    TIMELINE_ITEMS_LIMIT,
    TIMELINE_MAX_PAGES,
)
from closeout.utils.utils import split_repository

# =============================================================================
# Rate Limit Configuration
# =============================================================================
RATE_LIMIT_BUFFER_SECONDS = 5  # Extra buffer time when waiting for rate limit reset
RATE_LIMIT_MIN_REMAINING = 10  # Minimum remaining requests before preemptive wait
RATE_LIMIT_MAX_WAIT_SECONDS = 900  # Maximum time to wait for rate limit reset (15 min)

GRAPHQL_ATTEMPTS = 6
REST_ATTEMPTS = 3


class ForgeDataError(Exception):
    """Raised when the forge returns missing or malformed data for a single issue or PR."""


@dataclass
class RateLimitInfo:
    """Represents GitHub API rate limit information extracted from response headers."""

    limit: int  # Maximum requests allowed per hour
    remaining: int  # Requests remaining in current window
    reset_timestamp: int  # Unix timestamp when the rate limit resets
    used: int  # Requests used in current window

    @property
    def is_exceeded(self) -> bool:
        return self.remaining == 0

    @property
    def seconds_until_reset(self) -> int:
        return max(0, self.reset_timestamp - int(time.time()))

    def __str__(self) -> str:
        return f"RateLimit(remaining={self.remaining}/{self.limit}, resets_in={self.seconds_until_reset}s)"


def parse_rate_limit_headers(response: requests.Response) -> Optional[RateLimitInfo]:
    """
    Parse GitHub API rate limit information from response headers.

    Args:
        response: The HTTP response from GitHub API

    Returns:
        RateLimitInfo object if headers are present, None otherwise
    """
    headers = response.headers

    try:
        limit = int(headers.get('X-RateLimit-Limit', 0))
        remaining = int(headers.get('X-RateLimit-Remaining', 0))
        reset_timestamp = int(headers.get('X-RateLimit-Reset', 0))
        used = int(headers.get('X-RateLimit-Used', 0))
    except (ValueError, TypeError) as e:
        bt.logging.debug(f"Could not parse rate limit headers: {e}")
        return None

    if limit == 0 and reset_timestamp == 0:
        return None

    return RateLimitInfo(limit=limit, remaining=remaining, reset_timestamp=reset_timestamp, used=used)


def is_rate_limited(response: requests.Response) -> Tuple[bool, Optional[int]]:
    """
    Check if a response indicates rate limiting and calculate wait time.

    Returns:
        Tuple of (is_rate_limited, seconds_to_wait)
    """
    if response.status_code not in (403, 429):
        return (False, None)

    rate_limit_info = parse_rate_limit_headers(response)
    if rate_limit_info and rate_limit_info.is_exceeded:
        return (True, min(rate_limit_info.seconds_until_reset + RATE_LIMIT_BUFFER_SECONDS, RATE_LIMIT_MAX_WAIT_SECONDS))

    # Secondary rate limits carry no remaining=0 header, only a message and sometimes Retry-After
    if 'rate limit' in (response.text or '').lower():
        retry_after = response.headers.get('Retry-After')
        if retry_after:
            try:
                return (True, min(int(retry_after) + RATE_LIMIT_BUFFER_SECONDS, RATE_LIMIT_MAX_WAIT_SECONDS))
            except ValueError:
                pass
        return (True, 60)

    return (False, None)


def check_preemptive_rate_limit(response: requests.Response) -> None:
    """Log a warning when the remaining request budget is getting low."""
    rate_limit_info = parse_rate_limit_headers(response)
    if not rate_limit_info:
        return

    if rate_limit_info.remaining <= RATE_LIMIT_MIN_REMAINING:
        bt.logging.warning(
            f"Approaching GitHub API rate limit: {rate_limit_info.remaining} requests remaining, "
            f"resets in {rate_limit_info.seconds_until_reset}s"
        )
    elif rate_limit_info.remaining <= rate_limit_info.limit * 0.1:
        bt.logging.info(f"GitHub API rate limit status: {rate_limit_info.remaining}/{rate_limit_info.limit} remaining")


def wait_for_rate_limit_reset(wait_seconds: int, context: str = "") -> None:
    """
    Wait for rate limit to reset with progress logging.

    Args:
        wait_seconds: Number of seconds to wait
        context: Optional context string for logging (e.g., "issue #12 timeline")
    """
    context_str = f" for {context}" if context else ""
    bt.logging.warning(f"GitHub API rate limit exceeded{context_str}. Waiting {wait_seconds}s for reset...")

    if wait_seconds <= 60:
        time.sleep(wait_seconds)
    else:
        intervals, remaining = divmod(wait_seconds, 60)
        for i in range(intervals):
            time.sleep(60)
            elapsed = (i + 1) * 60
            bt.logging.info(f"Rate limit wait: {elapsed}s elapsed, {wait_seconds - elapsed}s remaining")
        if remaining > 0:
            time.sleep(remaining)

    bt.logging.info("Rate limit wait complete, resuming API requests")


def make_headers(token: str) -> Dict[str, str]:
    """Build standard GitHub REST headers for a PAT.

    Args:
        token (str): Github pat
    Returns:
        Dict[str, str]: Mapping of HTTP header names to values.
    """
    return {
        "Authorization": f"token {token}",
        "Accept": "application/vnd.github.v3+json",
    }


def make_graphql_headers(token: str) -> Dict[str, str]:
    return {'Authorization': f'Bearer {token}', 'Content-Type': 'application/json'}


# =============================================================================
# GraphQL queries
# =============================================================================

ISSUE_QUERY = """
    query($owner: String!, $repo: String!, $number: Int!, $timelineLimit: Int!, $cursor: String) {
      repository(owner: $owner, name: $repo) {
        issue(number: $number) {
          number
          title
          body
          state
          createdAt
          timelineItems(first: $timelineLimit, after: $cursor, itemTypes: [CROSS_REFERENCED_EVENT, REOPENED_EVENT, CLOSED_EVENT]) {
            pageInfo {
              hasNextPage
              endCursor
            }
            nodes {
              __typename
              ... on CrossReferencedEvent {
                createdAt
                willCloseTarget
                isCrossRepository
                source {
                  __typename
                  ... on PullRequest {
                    number
                    state
                    merged
                    repository {
                      nameWithOwner
                    }
                  }
                }
              }
              ... on ReopenedEvent {
                createdAt
                actor {
                  login
                }
              }
              ... on ClosedEvent {
                createdAt
                actor {
                  login
                }
                closer {
                  __typename
                  ... on PullRequest {
                    number
                    repository {
                      nameWithOwner
                    }
                  }
                }
              }
            }
          }
        }
      }
    }
    """

PULL_REQUEST_QUERY = """
    query($owner: String!, $repo: String!, $number: Int!, $filesLimit: Int!) {
      repository(owner: $owner, name: $repo) {
        pullRequest(number: $number) {
          number
          title
          body
          state
          merged
          mergedAt
          baseRefName
          mergeCommit {
            oid
          }
          repository {
            defaultBranchRef {
              name
            }
          }
          files(first: $filesLimit) {
            nodes {
              path
              changeType
            }
          }
          closingIssuesReferences(first: 50) {
            nodes {
              number
              repository {
                nameWithOwner
              }
            }
          }
        }
      }
    }
    """

MERGED_PRS_QUERY = """
    query($owner: String!, $repo: String!, $limit: Int!, $cursor: String) {
      repository(owner: $owner, name: $repo) {
        pullRequests(first: $limit, states: [MERGED], orderBy: {field: CREATED_AT, direction: DESC}, after: $cursor) {
          pageInfo {
            hasNextPage
            endCursor
          }
          nodes {
            number
            title
            state
            merged
            mergedAt
            baseRefName
            closingIssuesReferences(first: 50) {
              nodes {
                number
                repository {
                  nameWithOwner
                }
              }
            }
          }
        }
      }
    }
    """

OPEN_ISSUES_QUERY = """
    query($owner: String!, $repo: String!, $limit: Int!, $cursor: String) {
      repository(owner: $owner, name: $repo) {
        issues(first: $limit, states: [OPEN], orderBy: {field: CREATED_AT, direction: ASC}, after: $cursor) {
          pageInfo {
            hasNextPage
            endCursor
          }
          nodes {
            number
          }
        }
      }
    }
    """


def run_graphql_query(token: str, query: str, variables: Dict[str, Any], context: str = "GraphQL query") -> Optional[Dict]:
    """
    POST a GraphQL query with rate limit handling and exponential backoff.

    Args:
        token (str): GitHub PAT
        query (str): GraphQL document
        variables (Dict[str, Any]): Query variables
        context (str): Short description for log lines

    Returns:
        Optional[Dict]: The ``data`` member of the response, or None if the request failed or returned errors
    """
    headers = make_graphql_headers(token)

    for attempt in range(GRAPHQL_ATTEMPTS):
        try:
            response = requests.post(
                f'{BASE_GITHUB_API_URL}/graphql',
                headers=headers,
                json={"query": query, "variables": variables},
                timeout=30,
            )

            rate_limited, wait_seconds = is_rate_limited(response)
            if rate_limited and wait_seconds:
                if attempt < (GRAPHQL_ATTEMPTS - 1):
                    wait_for_rate_limit_reset(wait_seconds, context=context)
                    continue
                bt.logging.error(f"Rate limit exceeded on final attempt for {context}")
                return None

            if response.status_code == 200:
                check_preemptive_rate_limit(response)
                payload = response.json()
                if payload.get('errors'):
                    bt.logging.warning(f"GraphQL errors for {context}: {payload['errors']}")
                    return None
                return payload.get('data')

            if attempt < (GRAPHQL_ATTEMPTS - 1):
                # Exponential backoff: 5s, 10s, 20s, 40s, 80s
                backoff_delay = 5 * (2**attempt)
                bt.logging.warning(
                    f"{context} failed with status {response.status_code} "
                    f"(attempt {attempt + 1}/{GRAPHQL_ATTEMPTS}), retrying in {backoff_delay}s..."
                )
                time.sleep(backoff_delay)
            else:
                bt.logging.error(
                    f"{context} failed with status {response.status_code} after {GRAPHQL_ATTEMPTS} attempts: {response.text}"
                )

        except requests.exceptions.RequestException as e:
            if attempt < (GRAPHQL_ATTEMPTS - 1):
                backoff_delay = 5 * (2**attempt)
                bt.logging.warning(
                    f"{context} connection error (attempt {attempt + 1}/{GRAPHQL_ATTEMPTS}): {e}, retrying in {backoff_delay}s..."
                )
                time.sleep(backoff_delay)
            else:
                bt.logging.error(f"{context} failed after {GRAPHQL_ATTEMPTS} attempts: {e}")
                return None

    return None


def rest_get(
    url: str, token: str, params: Optional[Dict[str, Any]] = None, context: str = "REST request"
) -> Optional[requests.Response]:
    """
    GET a REST endpoint with rate limit handling and a short retry loop.

    200 and 404 responses are returned to the caller; anything else that persists
    across attempts yields None.
    """
    headers = make_headers(token)

    for attempt in range(REST_ATTEMPTS):
        try:
            response = requests.get(url, headers=headers, params=params, timeout=15)

            rate_limited, wait_seconds = is_rate_limited(response)
            if rate_limited and wait_seconds:
                if attempt < REST_ATTEMPTS - 1:
                    wait_for_rate_limit_reset(wait_seconds, context=context)
                    continue
                bt.logging.error(f"Rate limit exceeded on final attempt for {context}")
                return None

            if response.status_code in (200, 404):
                check_preemptive_rate_limit(response)
                return response

            bt.logging.warning(
                f"{context} failed with status {response.status_code} (attempt {attempt + 1}/{REST_ATTEMPTS})"
            )

        except requests.exceptions.RequestException as e:
            bt.logging.warning(f"{context} connection error (attempt {attempt + 1}/{REST_ATTEMPTS}): {e}")

        if attempt < REST_ATTEMPTS - 1:
            time.sleep(2)

    return None


# =============================================================================
# Reads
# =============================================================================


def fetch_issue(repository: str, issue_number: int, token: str) -> Issue:
    """
    Fetch an issue snapshot with its cross-reference, reopen and close timeline.

    The timeline is walked page by page. A page that fails to load, or a timeline
    longer than TIMELINE_MAX_PAGES pages, raises rather than yielding a verdict
    from partial history.

    Raises:
        ForgeDataError: if the issue cannot be fetched, the timeline is incomplete,
            or the payload is malformed
    """
    owner, repo = split_repository(repository)
    issue_data = None
    timeline_nodes: List[Dict] = []
    cursor = None

    for page in range(1, TIMELINE_MAX_PAGES + 1):
        data = run_graphql_query(
            token,
            ISSUE_QUERY,
            {'owner': owner, 'repo': repo, 'number': issue_number, 'timelineLimit': TIMELINE_ITEMS_LIMIT, 'cursor': cursor},
            context=f"issue #{issue_number} timeline page {page}",
        )
        page_issue = ((data or {}).get('repository') or {}).get('issue')
        if not page_issue:
            if issue_data is None:
                raise ForgeDataError(f"Issue #{issue_number} not found in {repository}")
            raise ForgeDataError(f"Timeline page {page} of issue #{issue_number} could not be fetched")

        if issue_data is None:
            issue_data = page_issue
        timeline = page_issue.get('timelineItems') or {}
        timeline_nodes.extend(node for node in timeline.get('nodes', []) or [] if node)

        page_info = timeline.get('pageInfo') or {}
        if not page_info.get('hasNextPage'):
            break
        cursor = page_info.get('endCursor')
    else:
        bt.logging.warning(
            f"Issue #{issue_number} timeline exceeds {TIMELINE_MAX_PAGES * TIMELINE_ITEMS_LIMIT} events, skipping"
        )
        raise ForgeDataError(f"Timeline of issue #{issue_number} is too long to read completely")

    issue_data = dict(issue_data, timelineItems={'nodes': timeline_nodes})

    try:
        return Issue.from_graphql_response(issue_data, repository)
    except (KeyError, TypeError, ValueError) as e:
        raise ForgeDataError(f"Malformed data for issue #{issue_number}: {e}") from e


def fetch_pull_request(repository: str, pr_number: int, token: str) -> PullRequest:
    """
    Fetch a PR snapshot including changed files and closing references.

    Raises:
        ForgeDataError: if the PR cannot be fetched or the payload is malformed
    """
    owner, repo = split_repository(repository)
    data = run_graphql_query(
        token,
        PULL_REQUEST_QUERY,
        {'owner': owner, 'repo': repo, 'number': pr_number, 'filesLimit': PR_FILES_LIMIT},
        context=f"PR #{pr_number}",
    )
    pr_data = ((data or {}).get('repository') or {}).get('pullRequest')
    if not pr_data:
        raise ForgeDataError(f"PR #{pr_number} not found in {repository}")

    try:
        return PullRequest.from_graphql_response(pr_data, repository)
    except (KeyError, TypeError, ValueError) as e:
        raise ForgeDataError(f"Malformed data for PR #{pr_number}: {e}") from e


def _paginate_connection(
    token: str, query: str, variables: Dict[str, Any], connection: str, max_items: int, context: str
) -> List[Dict]:
    """Walk a repository-level GraphQL connection page by page until max_items or the last page."""
    nodes: List[Dict] = []
    cursor = None

    while len(nodes) < max_items:
        page_vars = dict(variables, limit=min(GITHUB_PAGE_SIZE, max_items - len(nodes)), cursor=cursor)
        data = run_graphql_query(token, query, page_vars, context=context)
        if data is None:
            bt.logging.warning(f"Stopping pagination for {context} after {len(nodes)} items")
            break

        page = ((data.get('repository') or {}).get(connection)) or {}
        page_nodes = [node for node in page.get('nodes', []) or [] if node]
        nodes.extend(page_nodes)

        page_info = page.get('pageInfo', {})
        if not page_info.get('hasNextPage') or not page_nodes:
            break
        cursor = page_info.get('endCursor')

    return nodes


def list_open_issue_numbers(repository: str, token: str, max_issues: int = DEFAULT_MAX_OPEN_ISSUES) -> List[int]:
    """List open issue numbers, oldest first."""
    owner, repo = split_repository(repository)
    nodes = _paginate_connection(
        token, OPEN_ISSUES_QUERY, {'owner': owner, 'repo': repo}, 'issues', max_issues, context='open issues'
    )
    return [node['number'] for node in nodes if node.get('number')]


def list_merged_prs_with_closing_refs(
    repository: str, token: str, max_prs: int = DEFAULT_MAX_MERGED_PRS
) -> List[PullRequest]:
    """List merged PRs (newest first by creation) that carry at least one closing issue reference."""
    bt.logging.info(f"*****Fetching merged PRs with closing references for {repository}*****")
    owner, repo = split_repository(repository)
    nodes = _paginate_connection(
        token, MERGED_PRS_QUERY, {'owner': owner, 'repo': repo}, 'pullRequests', max_prs, context='merged PRs'
    )

    prs = []
    for node in nodes:
        try:
            pr = PullRequest.from_graphql_response(node, repository)
        except (KeyError, TypeError, ValueError) as e:
            bt.logging.warning(f"Skipping malformed merged PR node in {repository}: {e}")
            continue
        if pr.closing_issue_numbers:
            prs.append(pr)

    bt.logging.info(f"Found {len(prs)} merged PRs with closing references out of {len(nodes)} merged PRs")
    return prs


def is_commit_on_branch(repository: str, sha: str, branch: str, token: str) -> Optional[bool]:
    """
    Check whether ``sha`` is reachable from ``branch``.

    Uses the compare API (branch...sha): 'identical' or 'behind' means the commit is
    already contained in the branch.

    Returns:
        True/False, or None if the forge could not answer
    """
    response = rest_get(
        f"{BASE_GITHUB_API_URL}/repos/{repository}/compare/{quote(branch, safe='')}...{sha}",
        token,
        context=f"compare {branch}...{sha[:7]}",
    )
    if response is None:
        return None
    if response.status_code == 404:
        return False
    try:
        payload = response.json()
    except ValueError as e:
        bt.logging.warning(f"Unreadable compare response for {branch}...{sha[:7]}: {e}")
        return None
    if not isinstance(payload, dict):
        return None
    return payload.get('status') in ('identical', 'behind')


def list_branch_commits_since(
    repository: str, branch: str, since: datetime, token: str, max_commits: int = REVERT_SCAN_MAX_COMMITS
) -> Optional[List[Dict]]:
    """List commits on ``branch`` newer than ``since``; None if the forge could not answer."""
    commits: List[Dict] = []
    page = 1

    while len(commits) < max_commits:
        response = rest_get(
            f"{BASE_GITHUB_API_URL}/repos/{repository}/commits",
            token,
            params={
                'sha': branch,
                'since': since.strftime('%Y-%m-%dT%H:%M:%SZ'),
                'per_page': GITHUB_PAGE_SIZE,
                'page': page,
            },
            context=f"commits on {branch}",
        )
        if response is None:
            return None
        if response.status_code == 404:
            return commits

        try:
            batch = response.json()
        except ValueError as e:
            bt.logging.warning(f"Unreadable commits response for {branch}: {e}")
            return None
        if not isinstance(batch, list):
            return None
        commits.extend(batch)
        if len(batch) < GITHUB_PAGE_SIZE:
            break
        page += 1

    return commits[:max_commits]


def path_exists_on_branch(repository: str, path: str, branch: str, token: str) -> Optional[bool]:
    """True if ``path`` exists at the tip of ``branch``; None if the forge could not answer."""
    response = rest_get(
        f"{BASE_GITHUB_API_URL}/repos/{repository}/contents/{quote(path)}",
        token,
        params={'ref': branch},
        context=f"contents {path}",
    )
    if response is None:
        return None
    return response.status_code == 200


# =============================================================================
# Writes
#
# These are the raw forge calls. Callers go through closeout.triage.gate.ForgeWriter,
# which refuses to write without an operator approval.
# =============================================================================


def post_issue_comment(repository: str, issue_number: int, body: str, token: str) -> bool:
    try:
        response = requests.post(
            f"{BASE_GITHUB_API_URL}/repos/{repository}/issues/{issue_number}/comments",
            headers=make_headers(token),
            json={'body': body},
            timeout=15,
        )
    except requests.exceptions.RequestException as e:
        bt.logging.error(f"Error commenting on issue #{issue_number}: {e}")
        return False

    if response.status_code != 201:
        bt.logging.error(f"Failed to comment on issue #{issue_number}: HTTP {response.status_code}")
        return False
    return True


def add_issue_labels(repository: str, issue_number: int, labels: List[str], token: str) -> bool:
    try:
        response = requests.post(
            f"{BASE_GITHUB_API_URL}/repos/{repository}/issues/{issue_number}/labels",
            headers=make_headers(token),
            json={'labels': labels},
            timeout=15,
        )
    except requests.exceptions.RequestException as e:
        bt.logging.error(f"Error labelling issue #{issue_number}: {e}")
        return False

    if response.status_code != 200:
        bt.logging.error(f"Failed to label issue #{issue_number}: HTTP {response.status_code}")
        return False
    return True


def close_issue(repository: str, issue_number: int, token: str) -> bool:
    try:
        response = requests.patch(
            f"{BASE_GITHUB_API_URL}/repos/{repository}/issues/{issue_number}",
            headers=make_headers(token),
            json={'state': 'closed', 'state_reason': 'completed'},
            timeout=15,
        )
    except requests.exceptions.RequestException as e:
        bt.logging.error(f"Error closing issue #{issue_number}: {e}")
        return False

    if response.status_code != 200:
        bt.logging.error(f"Failed to close issue #{issue_number}: HTTP {response.status_code}")
        return False
    return True
