from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from logic import DueFilters, DueQuery, build_due_report, format_currency

GRAPH_BOOK = {"id": "P1", "name": "Graph Book", "forCourse": "btech", "price": 50, "years": [1], "semesters": [], "branch": []}
LAB_RECORD = {"id": "P2", "name": "Lab Record", "forCourse": "btech", "price": 120, "years": [], "semesters": [], "branch": ["CSE", "ECE"]}


def scenario_inputs() -> list[dict[str, Any]]:
    return [
        {
            "name": "First year, nothing issued",
            "catalog": [GRAPH_BOOK],
            "students": [{"id": "S1", "name": "Asha", "studentId": "BT01", "course": "B.Tech", "year": 1, "items": {}}],
        },
        {
            "name": "Second year, year-restricted item",
            "catalog": [GRAPH_BOOK],
            "students": [{"id": "S2", "name": "Bala", "studentId": "BT02", "course": "btech", "year": 2, "items": {}}],
        },
        {
            "name": "Fully issued",
            "catalog": [GRAPH_BOOK],
            "students": [{"id": "S3", "name": "Chitra", "studentId": "BT03", "course": "btech", "year": 1, "items": {"graph_book": True}}],
        },
        {
            "name": "Course spelling variants",
            "catalog": [GRAPH_BOOK],
            "students": [
                {"id": "S4", "name": "Dev", "studentId": "BT04", "course": "B.TECH", "year": 1, "items": {}},
                {"id": "S5", "name": "Esha", "studentId": "BT05", "course": "b.tech ", "year": 1, "items": {}},
            ],
        },
        {
            "name": "Branch filter CSE",
            "catalog": [LAB_RECORD],
            "filters": {"branch": "CSE"},
            "students": [
                {"id": "S6", "name": "Farah", "studentId": "BT06", "course": "btech", "year": 2, "branch": "cse", "items": {}},
                {"id": "S7", "name": "Gopal", "studentId": "BT07", "course": "btech", "year": 2, "branch": "mech", "items": {}},
            ],
        },
    ]


def main() -> None:
    for scenario in scenario_inputs():
        query = DueQuery(filters=DueFilters.from_dict(scenario.get("filters")))
        report = build_due_report(scenario["students"], scenario["catalog"], query)

        print(f"\n=== {scenario['name']} ===")
        if not report.page.total:
            print("Outcome: NO DUE STUDENTS")
            continue
        stats = report.stats
        print(
            f"Outcome: {stats.total_students} due, {stats.total_pending_items} pending item(s), "
            f"{format_currency(stats.total_pending_amount)} pending, {stats.impacted_course_count} course(s)"
        )
        for idx, record in enumerate(report.records, start=1):
            pending = ", ".join(item.name for item in record.pending_items)
            print(f"{idx}. {record.student.name} ({record.student.student_id}) -> {pending} [{format_currency(record.pending_value)}]")


if __name__ == "__main__":
    main()
