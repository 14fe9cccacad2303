from logic import (
    DEFAULT_PAGE_SIZE,
    CatalogItem,
    DueFilters,
    DueQuery,
    Student,
    aggregate_due_stats,
    branch_options,
    build_course_index,
    build_due_report,
    build_export_report,
    completion_percent,
    course_options,
    filter_and_page,
    format_currency,
    item_key,
    match_due_students,
    normalize_value,
    page_window,
    paginate,
    pending_preview,
    semester_options,
    year_options,
)


def graph_book(**overrides) -> dict:
    item = {"id": "P1", "name": "Graph Book", "forCourse": "btech", "price": 50, "years": [1], "semesters": [], "branch": []}
    item.update(overrides)
    return item


def student(**overrides) -> dict:
    data = {"id": "S1", "name": "Asha Menon", "studentId": "BT001", "course": "B.Tech", "year": 1, "items": {}}
    data.update(overrides)
    return data


def run_match(students: list[dict], catalog: list[dict]):
    return match_due_students(students, build_course_index(catalog))


def test_normalize_value_strips_case_and_punctuation() -> None:
    assert normalize_value("B.Tech") == "btech"
    assert normalize_value(" b_tech ") == "btech"
    assert normalize_value("Graph Paper") == normalize_value("graph paper")
    assert normalize_value(None) == ""
    assert normalize_value("") == ""
    assert normalize_value(2) == "2"


def test_item_key_matches_roster_keys() -> None:
    assert item_key("Graph Book") == "graph_book"
    assert item_key("Lab  Record\tSet") == "lab_record_set"
    assert item_key("graph book") == item_key("Graph Book")


def test_build_course_index_buckets_by_normalized_course_and_drops_blank() -> None:
    catalog = [
        graph_book(),
        graph_book(id="P2", name="Drawing Kit", forCourse="B.TECH"),
        graph_book(id="P3", name="Orphan", forCourse=""),
        graph_book(id="P4", name="Orphan 2", forCourse=None),
        graph_book(id="P5", name="Field Book", forCourse="Diploma"),
    ]

    index = build_course_index(catalog)

    assert sorted(index) == ["btech", "diploma"]
    assert [item.id for item in index["btech"]] == ["P1", "P2"]


def test_first_year_student_with_nothing_issued_is_due() -> None:
    records = run_match([student()], [graph_book()])

    assert len(records) == 1
    record = records[0]
    assert [item.name for item in record.pending_items] == ["Graph Book"]
    assert record.pending_value == 50
    assert record.issued_count == 0
    assert record.issued_value == 0


def test_year_mismatch_excludes_student() -> None:
    assert run_match([student(course="btech", year=2)], [graph_book()]) == []


def test_fully_issued_student_is_excluded() -> None:
    assert run_match([student(course="btech", items={"graph_book": True})], [graph_book()]) == []


def test_falsy_issued_flag_counts_as_pending() -> None:
    records = run_match([student(items={"graph_book": False})], [graph_book()])

    assert len(records) == 1


def test_course_spelling_variants_share_one_course() -> None:
    students = [
        student(id="S1", name="Dev", course="B.TECH"),
        student(id="S2", name="Esha", course="b.tech "),
    ]

    records = run_match(students, [graph_book()])
    stats = aggregate_due_stats(records)

    assert [r.pending_value for r in records] == [50, 50]
    assert stats.impacted_course_count == 1
    assert stats.total_students == 2
    assert stats.total_pending_amount == 100


def test_branch_constraint_uses_normalized_equality() -> None:
    item = graph_book(years=[], branch=["CSE", "ECE"])
    students = [
        student(id="S1", name="Farah", branch="cse"),
        student(id="S2", name="Gopal", branch="mech"),
        student(id="S3", name="Hari", branch=None),
    ]

    records = run_match(students, [item])

    assert [r.student.name for r in records] == ["Farah"]

    page = filter_and_page(records, DueFilters(branch="CSE"), 1, 10)
    assert [r.student.name for r in page.records] == ["Farah"]


def test_semester_constraint_requires_numeric_semester() -> None:
    item = graph_book(years=[], semesters=[2])
    students = [
        student(id="S1", name="A", semester=2),
        student(id="S2", name="B", semester=1),
        student(id="S3", name="C", semester=None),
        student(id="S4", name="D", semester="second"),
    ]

    records = run_match(students, [item])

    assert [r.student.name for r in records] == ["A"]


def test_unconstrained_item_applies_to_every_student_of_course() -> None:
    item = graph_book(years=[], semesters=[], branch=[])
    students = [
        student(id="S1", name="A", year=1, semester=None, branch=None),
        student(id="S2", name="B", year=4, semester=2, branch="EEE"),
        student(id="S3", name="C", year="unknown"),
        student(id="S4", name="D", course="Diploma"),
    ]

    records = run_match(students, [item])

    assert [r.student.name for r in records] == ["A", "B", "C"]


def test_legacy_single_year_is_used_when_years_missing() -> None:
    item = graph_book(years=[], year=3)
    students = [student(id="S1", name="A", year=3), student(id="S2", name="B", year=1)]

    records = run_match(students, [item])

    assert [r.student.name for r in records] == ["A"]


def test_zero_legacy_year_means_unconstrained() -> None:
    item = CatalogItem.from_mapping(graph_book(years=[], year=0))

    assert item.eligible_years == ()


def test_non_numeric_year_fails_year_constraint_without_raising() -> None:
    records = run_match([student(year="first"), student(id="S2", year=None)], [graph_book()])

    assert records == []


def test_students_without_course_or_course_bucket_are_dropped() -> None:
    students = [student(course=""), student(id="S2", course=None), student(id="S3", course="MBA")]

    assert run_match(students, [graph_book()]) == []


def test_mixed_issued_record_values() -> None:
    catalog = [
        graph_book(),
        graph_book(id="P2", name="Drawing Kit", price=350),
        graph_book(id="P3", name="Lab Record", price=120.5),
    ]
    records = run_match([student(items={"drawing_kit": True})], catalog)

    record = records[0]
    assert [item.id for item in record.mapped_items] == ["P1", "P2", "P3"]
    assert [item.id for item in record.pending_items] == ["P1", "P3"]
    assert record.issued_count == 1
    assert record.mapped_value == 520.5
    assert record.pending_value == 170.5
    assert record.issued_value == 350
    assert completion_percent(record) == 33
    assert pending_preview(record, limit=1) == (["Graph Book"], 1)


def test_records_are_sorted_by_course_year_name() -> None:
    catalog = [graph_book(years=[]), graph_book(id="P9", forCourse="diploma")]
    students = [
        student(id="S1", name="zoe", course="diploma", year=1),
        student(id="S2", name="Bala", course="btech", year=2),
        student(id="S3", name="arun", course="btech", year=2),
        student(id="S4", name="Chitra", course="btech", year=1),
        student(id="S5", name="Émile", course="btech", year=2),
    ]

    records = run_match(students, catalog)

    assert [r.student.name for r in records] == ["Chitra", "arun", "Bala", "Émile", "zoe"]


def test_matching_is_deterministic() -> None:
    catalog = [graph_book(years=[]), graph_book(id="P2", name="Kit", price=10)]
    students = [student(id=f"S{i}", name=f"Student {i % 3}", studentId=f"BT{i:03d}", year=(i % 2) + 1) for i in range(12)]

    first = run_match(students, catalog)
    second = run_match(list(students), list(catalog))

    assert first == second
    assert [r.student.id for r in first] == [r.student.id for r in second]


def test_empty_inputs_produce_empty_report() -> None:
    report = build_due_report([], [graph_book()])

    assert report.page.total == 0
    assert report.page.page_count == 0
    assert report.page.page == 1
    assert report.stats.total_students == 0
    assert report.stats.total_pending_amount == 0

    assert build_due_report([student()], []).records == ()


def test_filters_are_and_combined() -> None:
    catalog = [graph_book(years=[])]
    students = [
        student(id="S1", name="Asha", studentId="BT001", year=1, branch="CSE", semester=1),
        student(id="S2", name="Ravi", studentId="BT002", year=2, branch="CSE", semester=2),
        student(id="S3", name="Asha K", studentId="XY003", year=2, branch="ECE", semester=2),
    ]
    records = run_match(students, catalog)

    def names(filters: DueFilters) -> list[str]:
        return [r.student.name for r in filter_and_page(records, filters, 1, 10).records]

    assert names(DueFilters(search="asha")) == ["Asha", "Asha K"]
    assert names(DueFilters(search="  bt00 ")) == ["Asha", "Ravi"]
    assert names(DueFilters(year=2)) == ["Asha K", "Ravi"]
    assert names(DueFilters(year=2, branch="c.s.e")) == ["Ravi"]
    assert names(DueFilters(semester=2, search="xy")) == ["Asha K"]
    assert names(DueFilters(course="B TECH")) == ["Asha", "Asha K", "Ravi"]
    assert names(DueFilters(year=5)) == []
    assert names(DueFilters(course="diploma")) == []


def test_stats_follow_filtered_records() -> None:
    catalog = [graph_book(years=[]), graph_book(id="P9", forCourse="diploma", years=[], price=80)]
    students = [
        student(id="S1", name="A", course="btech"),
        student(id="S2", name="B", course="diploma"),
    ]

    report = build_due_report(students, catalog, DueQuery(filters=DueFilters(course="Diploma")))

    assert report.stats.total_students == 1
    assert report.stats.total_pending_amount == 80
    assert report.stats.impacted_course_count == 1


def test_paginate_clamps_and_slices() -> None:
    records = run_match(
        [student(id=f"S{i}", name=f"Student {i:02d}", studentId=f"BT{i:02d}") for i in range(7)],
        [graph_book()],
    )

    page = paginate(records, 0, 3)
    assert page.page == 1
    assert page.page_count == 3
    assert [r.student.name for r in page.records] == ["Student 00", "Student 01", "Student 02"]

    assert paginate(records, -4, 3).page == 1

    last = paginate(records, 3, 3)
    assert [r.student.name for r in last.records] == ["Student 06"]
    assert (last.start_index, last.end_index) == (6, 7)

    beyond = paginate(records, 10, 3)
    assert beyond.page == 3
    assert len(beyond.records) == 1

    default = paginate(records, 1, 0)
    assert default.page_size == DEFAULT_PAGE_SIZE
    assert default.page_count == 1


def test_pages_cover_every_record_exactly_once() -> None:
    records = run_match(
        [student(id=f"S{i}", name=f"N{i:02d}", studentId=f"BT{i:02d}") for i in range(11)],
        [graph_book()],
    )

    seen = []
    for number in range(1, paginate(records, 1, 4).page_count + 1):
        seen.extend(r.student.id for r in paginate(records, number, 4).records)

    assert seen == [r.student.id for r in records]


def test_due_query_from_dict_and_report_payload() -> None:
    query = DueQuery.from_dict({"filters": {"search": "asha", "year": "1", "semester": ""}, "page": 0, "pageSize": "10"})

    assert query.filters == DueFilters(search="asha", year=1)
    assert query.page == 1
    assert query.page_size == 10

    payload = build_due_report([student()], [graph_book()], query).to_dict()

    assert payload["total"] == 1
    assert payload["pageCount"] == 1
    assert payload["stats"] == {
        "totalStudents": 1,
        "totalPendingItems": 1,
        "totalPendingAmount": 50,
        "impactedCourseCount": 1,
    }
    record = payload["records"][0]
    assert record["student"]["studentId"] == "BT001"
    assert record["pendingItems"][0]["name"] == "Graph Book"
    assert record["pendingValue"] == 50


def test_page_window_marks_gaps() -> None:
    assert page_window(1, 0) == []
    assert page_window(1, 3) == [1, 2, 3]
    assert page_window(5, 10) == [1, None, 4, 5, 6, None, 10]
    assert page_window(2, 10) == [1, 2, 3, None, 10]
    assert page_window(10, 10) == [1, None, 9, 10]


def test_filter_options_from_roster() -> None:
    students = [
        Student.from_mapping(student(id="S1", course="btech", year=2, branch="CSE ", semester=1)),
        Student.from_mapping(student(id="S2", course="B.Tech", year=1, branch="ECE", semester=2)),
        Student.from_mapping(student(id="S3", course="Diploma", year="x", branch="Civil", semester=None)),
        Student.from_mapping(student(id="S4", course="", year=0, branch="")),
    ]

    assert course_options(students) == ["B.Tech", "btech", "Diploma"]
    assert year_options(students) == [1, 2]
    assert branch_options(students) == ["Civil", "CSE", "ECE"]
    assert branch_options(students, "BTECH") == ["CSE", "ECE"]
    assert semester_options(students, "btech") == [1, 2]
    assert semester_options(students, "btech", 2) == [1]


def test_format_currency() -> None:
    assert format_currency(1234.5) == "₹1,234.50"
    assert format_currency(None, "Rs ") == "Rs 0.00"


def test_null_alias_falls_through_to_next_field() -> None:
    item = CatalogItem.from_mapping(graph_book(branches=None, branch=["CSE"]))

    assert item.branches == ("CSE",)
    assert run_match([student(branch="ECE")], [graph_book(branches=None, branch=["CSE"])]) == []
    assert Student.from_mapping(student(id=None)).id == "BT001"


def test_export_report_holds_every_filtered_record() -> None:
    roster = [student(id=f"S{idx}", studentId=f"BT{idx:03d}", name=f"Student {idx:02d}") for idx in range(30)]
    roster.append(student(id="D1", studentId="DP001", course="Diploma"))
    catalog = [graph_book(), graph_book(id="P2", forCourse="diploma")]
    filters = DueFilters(course="btech")

    paged = build_due_report(roster, catalog, DueQuery(filters=filters, page=2, page_size=10))
    export = build_export_report(roster, catalog, filters)

    assert len(paged.records) == 10
    assert len(export.records) == 30
    assert export.page.page_count == 1
    assert export.stats == paged.stats
    assert export.to_dict()["total"] == 30
    assert {r.student.course for r in export.records} == {"B.Tech"}


def test_export_report_with_no_matches() -> None:
    export = build_export_report([student(year=3)], [graph_book()])

    assert export.records == ()
    assert export.page.page == 1
