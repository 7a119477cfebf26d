"""
Core cache data structures.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union


class DataCategory(Enum):
    """Categories of dashboard data, one cache entry each."""
    BRANCHES = "branches"
    PICKERS = "pickers"
    BAY_ASSIGNMENTS = "bay-assignments"
    BUILD_VERSION = "build-version"
    STAGING_AREA = "staging-area"
    TRUCKS = "trucks"

    @classmethod
    def parse(cls, value: Union["DataCategory", str]) -> "DataCategory":
        """Accept an enum member or its string value."""
        if isinstance(value, cls):
            return value
        return cls(value)


@dataclass(frozen=True)
class CacheEntry:
    """
    Last good payload for a category.

    Replaced whole on every successful fetch. Never removed for being old:
    staleness is judged when reading.
    """
    category: DataCategory
    data: Any
    fetched_at: datetime

    def age_seconds(self, now: datetime) -> float:
        """Seconds since data was fetched."""
        return (now - self.fetched_at).total_seconds()

    def is_fresh(self, now: datetime, ttl_seconds: float) -> bool:
        """Check if data is within its TTL."""
        return self.age_seconds(now) < ttl_seconds


@dataclass(frozen=True)
class CacheStatus:
    """Introspection record for one category."""
    cached: bool
    age_seconds: Optional[float] = None
    size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        result: Dict[str, Any] = {"cached": self.cached}
        if self.cached:
            result["age"] = round(self.age_seconds, 1)
            result["size"] = self.size
        return result
