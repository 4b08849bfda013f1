"""
Closeout Utilities
"""

from datetime import datetime, timezone
from typing import Optional


def parse_github_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a GitHub ISO-8601 timestamp ("2025-01-15T10:00:00Z") into an aware UTC datetime.

    Returns None for missing values. Raises ValueError on malformed input.
    """
    if not value:
        return None
    return datetime.fromisoformat(value.rstrip("Z")).replace(tzinfo=timezone.utc)


def split_repository(repository: str) -> tuple[str, str]:
    """Split 'owner/repo' into its two parts."""
    owner, _, name = repository.partition('/')
    if not owner or not name:
        raise ValueError(f"Repository must be in 'owner/repo' format (got '{repository}')")
    return owner, name
