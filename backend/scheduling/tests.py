from django.test import SimpleTestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APISimpleTestCase

from .engine import (
    build_dependency_graph,
    compute_order,
    diagnose_cycle,
    normalize_tasks,
    schedule,
    topological_order,
)
from .errors import (
    CycleError,
    DuplicateTaskError,
    InvalidDateError,
    InvalidInputShape,
    InvalidTaskError,
    UnknownDependencyError,
)
from .models import Task

SAMPLE_TASKS = [
    {"title": "Design API", "estimatedHours": 5, "dueDate": "2025-10-25", "dependencies": []},
    {"title": "Implement Backend", "estimatedHours": 12, "dueDate": "2025-10-28", "dependencies": ["Design API"]},
    {"title": "Build Frontend", "estimatedHours": 10, "dueDate": "2025-10-30", "dependencies": ["Design API"]},
    {"title": "End-to-End Test", "estimatedHours": 8, "dueDate": "2025-10-31",
     "dependencies": ["Implement Backend", "Build Frontend"]},
]

DIAMOND = [
    {"title": "A", "dependencies": []},
    {"title": "B", "dependencies": ["A"]},
    {"title": "C", "dependencies": ["A"]},
    {"title": "D", "dependencies": ["B", "C"]},
]


def _order(records):
    tasks = normalize_tasks(records)
    return topological_order(tasks, build_dependency_graph(tasks))


class NormalizerTests(SimpleTestCase):
    def test_defaults_for_bare_title(self):
        tasks = normalize_tasks([{"title": "A"}])
        self.assertEqual(tasks, {"A": Task(title="A", estimated_hours=0.0, due_date_ms=None, dependencies=())})

    def test_due_date_is_utc_midnight_in_ms(self):
        tasks = normalize_tasks([{"title": "A", "dueDate": "2025-01-01"}])
        self.assertEqual(tasks["A"].due_date_ms, 1735689600000)

    def test_empty_due_date_means_no_deadline(self):
        tasks = normalize_tasks([{"title": "A", "dueDate": ""}, {"title": "B", "dueDate": None}])
        self.assertIsNone(tasks["A"].due_date_ms)
        self.assertIsNone(tasks["B"].due_date_ms)

    def test_invalid_due_dates_are_rejected(self):
        for bad in ["2025-13-01", "2025-02-30", "01/02/2025", "20250101", "2025-1-1", 20250101, "tomorrow"]:
            with self.subTest(due=bad):
                with self.assertRaises(InvalidDateError) as ctx:
                    normalize_tasks([{"title": "A", "dueDate": bad}])
                self.assertEqual(str(ctx.exception), 'invalid dueDate for "A"')

    def test_hours_are_coerced_permissively(self):
        cases = [(3, 3.0), ("2.5", 2.5), ("abc", 0.0), (None, 0.0), (-4, 0.0), ("NaN", 0.0), ([1], 0.0)]
        for raw, expected in cases:
            with self.subTest(hours=raw):
                tasks = normalize_tasks([{"title": "A", "estimatedHours": raw}])
                self.assertEqual(tasks["A"].estimated_hours, expected)

    def test_dependencies_copied_in_order_without_dedup(self):
        tasks = normalize_tasks([{"title": "A", "dependencies": ["C", "B", "C"]}])
        self.assertEqual(tasks["A"].dependencies, ("C", "B", "C"))

    def test_non_list_dependencies_become_empty(self):
        tasks = normalize_tasks([{"title": "A", "dependencies": "B"}])
        self.assertEqual(tasks["A"].dependencies, ())

    def test_references_are_not_checked_yet(self):
        tasks = normalize_tasks([{"title": "X", "dependencies": ["Y"]}])
        self.assertEqual(list(tasks), ["X"])

    def test_title_must_be_non_empty_string(self):
        for record in [{}, {"title": ""}, {"title": 42}, {"title": None}]:
            with self.subTest(record=record):
                with self.assertRaises(InvalidTaskError) as ctx:
                    normalize_tasks([record])
                self.assertEqual(str(ctx.exception), "every task must have a string title")

    def test_duplicate_title_rejected_at_second_occurrence(self):
        with self.assertRaises(DuplicateTaskError) as ctx:
            normalize_tasks([{"title": "B"}, {"title": "A"}, {"title": "B", "dueDate": "garbage"}])
        self.assertEqual(ctx.exception.title, "B")
        self.assertEqual(str(ctx.exception), "duplicate task title: B")

    def test_first_offending_record_wins(self):
        with self.assertRaises(InvalidDateError):
            normalize_tasks([{"title": "A", "dueDate": "bad"}, {"estimatedHours": 1}])

    def test_input_must_be_a_list_of_objects(self):
        for records in [{"title": "A"}, "A", None, 3]:
            with self.subTest(records=records):
                with self.assertRaises(InvalidInputShape):
                    normalize_tasks(records)
        with self.assertRaises(InvalidInputShape) as ctx:
            normalize_tasks([{"title": "A"}, "B"])
        self.assertEqual(str(ctx.exception), "task at index 1 must be an object")


class GraphBuilderTests(SimpleTestCase):
    def test_diamond_graph(self):
        graph = build_dependency_graph(normalize_tasks(DIAMOND))
        self.assertEqual(graph.adjacency, {"A": ["B", "C"], "B": ["D"], "C": ["D"], "D": []})
        self.assertEqual(graph.in_degree, {"A": 0, "B": 1, "C": 1, "D": 2})

    def test_repeated_dependency_adds_repeated_edges(self):
        graph = build_dependency_graph(normalize_tasks([{"title": "A"}, {"title": "B", "dependencies": ["A", "A"]}]))
        self.assertEqual(graph.adjacency["A"], ["B", "B"])
        self.assertEqual(graph.in_degree["B"], 2)

    def test_unknown_dependency_names_both_tasks(self):
        """Example: X depends on Y, but there is no task named Y."""
        with self.assertRaises(UnknownDependencyError) as ctx:
            build_dependency_graph(normalize_tasks([{"title": "X", "dependencies": ["Y"]}]))
        self.assertEqual((ctx.exception.title, ctx.exception.dependency), ("X", "Y"))
        self.assertEqual(str(ctx.exception), 'task "X" depends on unknown task "Y"')

    def test_non_string_dependency_is_unknown(self):
        with self.assertRaises(UnknownDependencyError):
            build_dependency_graph(normalize_tasks([{"title": "A"}, {"title": "B", "dependencies": [{"title": "A"}]}]))


class SchedulerTests(SimpleTestCase):
    def test_diamond_breaks_ties_by_title(self):
        self.assertEqual(_order(DIAMOND), ["A", "B", "C", "D"])

    def test_earlier_due_date_first(self):
        records = [{"title": "A", "dueDate": "2025-01-02"}, {"title": "B", "dueDate": "2025-01-01"}]
        self.assertEqual(_order(records), ["B", "A"])

    def test_undated_tasks_come_last(self):
        records = [{"title": "A"}, {"title": "B", "dueDate": "2099-12-31"}]
        self.assertEqual(_order(records), ["B", "A"])

    def test_smaller_estimate_breaks_due_date_tie(self):
        records = [
            {"title": "A", "dueDate": "2025-03-01", "estimatedHours": 5},
            {"title": "B", "dueDate": "2025-03-01", "estimatedHours": 1},
        ]
        self.assertEqual(_order(records), ["B", "A"])

    def test_title_order_ignores_case_and_accents(self):
        self.assertEqual(_order([{"title": "banana"}, {"title": "Apple"}, {"title": "cherry"}]),
                         ["Apple", "banana", "cherry"])
        self.assertEqual(_order([{"title": "fudge"}, {"title": "éclair"}, {"title": "eclair"}]),
                         ["eclair", "éclair", "fudge"])
        self.assertEqual(_order([{"title": "A"}, {"title": "a"}]), ["a", "A"])

    def test_newly_ready_task_competes_with_waiting_ones(self):
        records = [
            {"title": "A", "dueDate": "2025-01-10"},
            {"title": "B", "dueDate": "2025-01-05", "dependencies": ["A"]},
            {"title": "C", "dueDate": "2025-01-07"},
            {"title": "D", "dueDate": "2025-01-09"},
            {"title": "E", "dueDate": "2025-01-12"},
        ]
        # B waits for A, then beats E on due date
        self.assertEqual(_order(records), ["C", "D", "A", "B", "E"])

    def test_sample_project_is_topologically_valid(self):
        order = compute_order(SAMPLE_TASKS)
        self.assertEqual(order, ["Design API", "Implement Backend", "Build Frontend", "End-to-End Test"])
        for task in SAMPLE_TASKS:
            for dep in task["dependencies"]:
                self.assertLess(order.index(dep), order.index(task["title"]))

    def test_order_is_independent_of_input_order(self):
        forward = compute_order(SAMPLE_TASKS + DIAMOND)
        backward = compute_order(list(reversed(SAMPLE_TASKS + DIAMOND)))
        self.assertEqual(forward, backward)
        self.assertEqual(forward, compute_order(SAMPLE_TASKS + DIAMOND))

    def test_every_task_appears_exactly_once(self):
        order = compute_order(SAMPLE_TASKS + DIAMOND)
        self.assertEqual(len(order), 8)
        self.assertEqual(set(order), {t["title"] for t in SAMPLE_TASKS + DIAMOND})

    def test_empty_task_list(self):
        self.assertEqual(compute_order([]), [])

    def test_cycle_leaves_order_short(self):
        records = [{"title": "A", "dependencies": ["B"]}, {"title": "B", "dependencies": ["A"]}, {"title": "C"}]
        self.assertEqual(_order(records), ["C"])


class CycleDiagnosisTests(SimpleTestCase):
    def test_two_task_cycle(self):
        with self.assertRaises(CycleError) as ctx:
            compute_order([{"title": "A", "dependencies": ["B"]}, {"title": "B", "dependencies": ["A"]}])
        self.assertEqual(ctx.exception.blocked, ("A", "B"))
        self.assertEqual(ctx.exception.cycle, ("A", "B", "A"))
        self.assertEqual(str(ctx.exception), "cycle detected among tasks: A, B")

    def test_self_dependency(self):
        with self.assertRaises(CycleError) as ctx:
            compute_order([{"title": "A", "dependencies": ["A"]}])
        self.assertEqual(ctx.exception.blocked, ("A",))
        self.assertEqual(ctx.exception.cycle, ("A", "A"))

    def test_downstream_tasks_are_reported_as_blocked(self):
        records = [
            {"title": "C", "dependencies": ["A"]},
            {"title": "A", "dependencies": ["B"]},
            {"title": "B", "dependencies": ["A"]},
            {"title": "D"},
        ]
        with self.assertRaises(CycleError) as ctx:
            compute_order(records)
        self.assertEqual(ctx.exception.blocked, ("C", "A", "B"))
        self.assertEqual(ctx.exception.cycle, ("A", "B", "A"))

    def test_diagnose_uses_residual_in_degree(self):
        tasks = normalize_tasks([{"title": "A", "dependencies": ["B"]}, {"title": "B", "dependencies": ["A"]}])
        graph = build_dependency_graph(tasks)
        topological_order(tasks, graph)
        error = diagnose_cycle(tasks, graph.in_degree)
        self.assertIsInstance(error, CycleError)
        self.assertEqual(error.blocked, ("A", "B"))


class ScheduleResultTests(SimpleTestCase):
    def test_success(self):
        result = schedule(DIAMOND)
        self.assertTrue(result.ok)
        self.assertEqual(result.to_dict(), {"recommendedOrder": ["A", "B", "C", "D"]})

    def test_validation_failure_is_returned_not_raised(self):
        result = schedule([{"title": "X", "dependencies": ["Y"]}])
        self.assertFalse(result.ok)
        self.assertEqual(result.order, ())
        self.assertEqual(result.to_dict(),
                         {"error": 'task "X" depends on unknown task "Y"', "code": "unknown_dependency"})

    def test_cycle_failure_carries_no_partial_order(self):
        result = schedule([{"title": "A", "dependencies": ["B"]}, {"title": "B", "dependencies": ["A"]},
                           {"title": "C"}])
        self.assertEqual(result.order, ())
        self.assertEqual(result.to_dict(), {
            "error": "cycle detected among tasks: A, B",
            "code": "cycle",
            "blockedTasks": ["A", "B"],
            "cycle": ["A", "B", "A"],
        })

    def test_same_input_same_error(self):
        records = [{"title": "A"}, {"title": "A"}]
        self.assertEqual(schedule(records).to_dict(), schedule(records).to_dict())

    def test_rejection_is_logged(self):
        with self.assertLogs("scheduling.engine", level="INFO") as logs:
            schedule([{"title": "A"}, {"title": "A"}])
        self.assertIn("schedule rejected (duplicate_task): duplicate task title: A", logs.output[0])


class ScheduleApiTests(APISimpleTestCase):
    def setUp(self):
        self.url = reverse("schedule", kwargs={"project_id": "demo"})

    def test_returns_recommended_order(self):
        response = self.client.post(self.url, {"tasks": SAMPLE_TASKS}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["recommendedOrder"],
                         ["Design API", "Implement Backend", "Build Frontend", "End-to-End Test"])

    def test_empty_task_list(self):
        response = self.client.post(self.url, {"tasks": []}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {"recommendedOrder": []})

    def test_missing_or_malformed_tasks_field(self):
        for body in [{}, {"tasks": "A"}, {"tasks": {"title": "A"}}, [{"title": "A"}]]:
            with self.subTest(body=body):
                response = self.client.post(self.url, body, format="json")
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertEqual(response.data["error"], "request body must contain tasks array")
                self.assertEqual(response.data["code"], "invalid_input_shape")

    def test_engine_errors_map_to_400(self):
        cases = [
            ([{"title": "A"}, {"title": "A"}], "duplicate task title: A"),
            ([{"estimatedHours": 3}], "every task must have a string title"),
            ([{"title": "A", "dueDate": "31-12-2025"}], 'invalid dueDate for "A"'),
            ([{"title": "X", "dependencies": ["Y"]}], 'task "X" depends on unknown task "Y"'),
        ]
        for tasks, message in cases:
            with self.subTest(message=message):
                response = self.client.post(self.url, {"tasks": tasks}, format="json")
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertEqual(response.data["error"], message)

    def test_cycle_response(self):
        tasks = [{"title": "A", "dependencies": ["B"]}, {"title": "B", "dependencies": ["A"]}]
        response = self.client.post(self.url, {"tasks": tasks}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["blockedTasks"], ["A", "B"])
        self.assertNotIn("recommendedOrder", response.data)

    def test_invalid_json_is_rejected(self):
        response = self.client.post(self.url, data="{not json", content_type="application/json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_requests_are_logged(self):
        with self.assertLogs("scheduling.requests", level="INFO") as logs:
            self.client.post(self.url, {"tasks": []}, format="json")
        self.assertIn("POST /api/v1/projects/demo/schedule", logs.output[0])


class HealthApiTests(APISimpleTestCase):
    def test_healthz(self):
        response = self.client.get(reverse("healthz"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "ok")
        self.assertTrue(response.data["time"].endswith("Z"))
