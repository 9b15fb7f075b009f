from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .errors import SchedulingError


@dataclass(frozen=True)
class Task:
    title: str
    estimated_hours: float = 0.0
    due_date_ms: Optional[int] = None  # UTC midnight, None = no deadline
    dependencies: Tuple[str, ...] = ()

    def __str__(self):
        return self.title


@dataclass
class DependencyGraph:
    """Edges run from a dependency to the tasks waiting on it."""
    adjacency: Dict[str, List[str]] = field(default_factory=dict)
    in_degree: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ScheduleResult:
    """Outcome of one scheduling call: a full order or an error, never both."""
    order: Tuple[str, ...] = ()
    error: Optional[SchedulingError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return self.error.to_dict()
        return {"recommendedOrder": list(self.order)}
