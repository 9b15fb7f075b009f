"""Task ordering engine.

Contains utilities for:
- normalizing raw task records into immutable `Task` entities,
- building the dependency graph (adjacency + in-degree),
- ordering tasks with a deterministic, priority-driven Kahn's algorithm,
- diagnosing the blocked set (and one concrete cycle) when no order exists.

Every call works on structures it allocates itself, so the engine is safe to
use from concurrent requests.
"""

import calendar
import heapq
import logging
import math
import re
import unicodedata
from collections.abc import Mapping
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .errors import (
    CycleError,
    DuplicateTaskError,
    InvalidDateError,
    InvalidInputShape,
    InvalidTaskError,
    SchedulingError,
    UnknownDependencyError,
)
from .models import DependencyGraph, ScheduleResult, Task

logger = logging.getLogger(__name__)

_DUE_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def _parse_due_date(title: str, value: Any) -> Optional[int]:
    """Return the UTC-midnight timestamp (ms) for a `YYYY-MM-DD` string.

    `None` and the empty string mean "no deadline". Anything else that is not
    an exact, real calendar date raises `InvalidDateError`.
    """
    if value is None or value == "":
        return None
    if not isinstance(value, str) or not _DUE_DATE_RE.fullmatch(value):
        raise InvalidDateError(title, value)
    try:
        parsed = date.fromisoformat(value)
    except ValueError:
        raise InvalidDateError(title, value) from None
    return calendar.timegm(parsed.timetuple()) * 1000


def _coerce_hours(value: Any) -> float:
    """Permissive effort coercion: bad, missing or negative values become 0."""
    try:
        hours = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if math.isnan(hours) or hours < 0:
        return 0.0
    return hours


def normalize_tasks(records: Sequence[Any]) -> Dict[str, Task]:
    """Validate raw records and return an insertion-ordered title -> Task map.

    Raises on the first offending record, in input order.
    """
    if not isinstance(records, (list, tuple)):
        raise InvalidInputShape("tasks must be an array")

    tasks: Dict[str, Task] = {}
    for idx, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise InvalidInputShape(f"task at index {idx} must be an object")

        title = record.get("title")
        if not isinstance(title, str) or not title:
            raise InvalidTaskError()
        if title in tasks:
            raise DuplicateTaskError(title)

        due_date_ms = _parse_due_date(title, record.get("dueDate"))
        deps = record.get("dependencies")
        tasks[title] = Task(
            title=title,
            estimated_hours=_coerce_hours(record.get("estimatedHours")),
            due_date_ms=due_date_ms,
            dependencies=tuple(deps) if isinstance(deps, (list, tuple)) else (),
        )
    return tasks


def build_dependency_graph(tasks: Dict[str, Task]) -> DependencyGraph:
    """Build adjacency (dependency -> dependents) and in-degree maps.

    Both maps cover every task, including isolated ones. A dependency listed
    twice yields two edges, which the scheduler resolves one at a time.
    """
    graph = DependencyGraph(
        adjacency={title: [] for title in tasks},
        in_degree={title: 0 for title in tasks},
    )
    for title, task in tasks.items():
        for dep in task.dependencies:
            if not isinstance(dep, str) or dep not in tasks:
                raise UnknownDependencyError(title, dep)
            graph.adjacency[dep].append(title)
            graph.in_degree[title] += 1
    return graph


def _collation_key(title: str) -> Tuple[str, str, str]:
    """Locale-style ordering that does not depend on the process locale.

    Accents and case are ignored first, lowercase wins a case-only tie, and
    the raw title settles anything left.
    """
    decomposed = unicodedata.normalize("NFKD", title)
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return base.casefold(), title.swapcase(), title


def _sort_key(task: Task) -> Tuple[float, float, Tuple[str, str, str], str]:
    due = math.inf if task.due_date_ms is None else task.due_date_ms
    return due, task.estimated_hours, _collation_key(task.title), task.title


def topological_order(tasks: Dict[str, Task], graph: DependencyGraph) -> List[str]:
    """Kahn's algorithm, always taking the ready task with the smallest key.

    The key is (due date, estimated hours, title); tasks without a due date
    come after every dated task. Consumes `graph.in_degree`. The returned list
    is shorter than `tasks` when the graph has a cycle.
    """
    in_degree = graph.in_degree
    ready = [_sort_key(tasks[title]) for title, deg in in_degree.items() if deg == 0]
    heapq.heapify(ready)

    order: List[str] = []
    while ready:
        current = heapq.heappop(ready)[-1]
        order.append(current)
        for nxt in graph.adjacency[current]:
            in_degree[nxt] -= 1
            if in_degree[nxt] == 0:
                heapq.heappush(ready, _sort_key(tasks[nxt]))
    return order


def _find_cycle(tasks: Dict[str, Task], blocked: Set[str], start: str) -> List[str]:
    """Follow blocked dependencies from `start` until a title repeats.

    Every blocked task still waits on at least one blocked dependency, so the
    walk always closes a loop. The loop is returned with its first title
    repeated at the end, e.g. ['A', 'B', 'A'] for A -> B -> A.
    """
    stack: List[str] = []
    seen: Dict[str, int] = {}
    node = start
    while node not in seen:
        seen[node] = len(stack)
        stack.append(node)
        node = next(dep for dep in tasks[node].dependencies if dep in blocked)
    return stack[seen[node]:] + [node]


def diagnose_cycle(tasks: Dict[str, Task], in_degree: Dict[str, int]) -> CycleError:
    """Build the error for a graph the scheduler could not drain."""
    blocked = [title for title, deg in in_degree.items() if deg > 0]
    cycle = _find_cycle(tasks, set(blocked), blocked[0]) if blocked else []
    return CycleError(blocked, cycle)


def compute_order(records: Sequence[Any]) -> List[str]:
    """Run the whole pipeline, raising a `SchedulingError` on failure."""
    tasks = normalize_tasks(records)
    graph = build_dependency_graph(tasks)
    order = topological_order(tasks, graph)
    if len(order) != len(tasks):
        raise diagnose_cycle(tasks, graph.in_degree)
    return order


def schedule(records: Sequence[Any]) -> ScheduleResult:
    """Order `records`, reporting failure as a value instead of raising."""
    try:
        order = compute_order(records)
    except SchedulingError as exc:
        logger.info("schedule rejected (%s): %s", exc.code, exc.message)
        return ScheduleResult(error=exc)
    logger.debug("scheduled %d tasks", len(order))
    return ScheduleResult(order=tuple(order))


# -----------------------
# Quick manual test helper (python -m scheduling.engine, from backend/)
# -----------------------
if __name__ == "__main__":
    sample = [
        {"title": "Design API", "estimatedHours": 5, "dueDate": "2025-10-25", "dependencies": []},
        {"title": "Implement Backend", "estimatedHours": 12, "dueDate": "2025-10-28", "dependencies": ["Design API"]},
        {"title": "Build Frontend", "estimatedHours": 10, "dueDate": "2025-10-30", "dependencies": ["Design API"]},
        {"title": "End-to-End Test", "estimatedHours": 8, "dueDate": "2025-10-31",
         "dependencies": ["Implement Backend", "Build Frontend"]},
    ]
    print("Order:", schedule(sample).to_dict())
    print("Cycle:", schedule([{"title": "A", "dependencies": ["B"]},
                              {"title": "B", "dependencies": ["A"]}]).to_dict())
