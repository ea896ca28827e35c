"""
Data models for paginated catalog results.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class PaginatedResult:
    """Items accumulated from one or more pages.

    ``total`` is the remote's count at fetch time and is never smaller than
    ``len(items)``.
    """

    items: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    complete: bool = False

    def __post_init__(self) -> None:
        self.total = max(int(self.total or 0), len(self.items))

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "PaginatedResult":
        """Build from a ``{"items": [...], "total": N}`` page payload."""
        items = list(response.get("items") or [])
        return cls(items=items, total=response.get("total") or 0)

    def to_dict(self) -> Dict[str, Any]:
        return {"items": self.items, "total": self.total}


@dataclass
class FetchProgress:
    """Paging position for one (resource kind, range) pair.

    ``complete`` only ever goes from False to True.
    """

    offset: int = 0
    complete: bool = False
