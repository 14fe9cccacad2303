from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Sequence


DEFAULT_PAGE_SIZE = 25
PAGE_SIZE_OPTIONS = (10, 25, 50, 100)
PREVIEW_LIMIT = 3

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_value(value: Any) -> str:
    if value is None:
        return ""
    return _NON_ALNUM.sub("", str(value).strip().lower())


def item_key(name: Any) -> str:
    return _WHITESPACE_RUN.sub("_", str(name if name is not None else "").lower())


def _field(record: Any, *names: str, default: Any = None) -> Any:
    for name in names:
        if isinstance(record, dict):
            value = record.get(name)
        else:
            value = getattr(record, name, None)
        if value is not None:
            return value
    return default


def _to_float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _to_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if not math.isfinite(number) or not number.is_integer():
        return None
    return int(number)


def _positive_int(value: Any) -> int | None:
    number = _to_int(value)
    return number if number is not None and number > 0 else None


def _as_list(value: Any) -> list[Any]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _positive_ints(values: Any) -> tuple[int, ...]:
    numbers = (_positive_int(item) for item in _as_list(values))
    return tuple(number for number in numbers if number is not None)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True)
class Student:
    id: str
    name: str
    student_id: str
    course: str
    year: int | None = None
    semester: int | None = None
    branch: str | None = None
    items: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_mapping(cls, data: Any) -> "Student":
        """Build a snapshot from an ORM row or a loosely-shaped dict.

        Accepts both ``student_id``/``studentId`` spellings. Year and semester
        are coerced to ints; anything non-numeric becomes ``None`` so the
        matcher treats it as failing year/semester constraints.
        """
        student_id = _text(_field(data, "student_id", "studentId"))
        items = _field(data, "items", default=None)
        branch = _field(data, "branch")
        return cls(
            id=_text(_field(data, "id", "_id", default=student_id)),
            name=_text(_field(data, "name")),
            student_id=student_id,
            course=_text(_field(data, "course")),
            year=_to_int(_field(data, "year")),
            semester=_to_int(_field(data, "semester")),
            branch=None if branch is None else str(branch),
            items=dict(items) if isinstance(items, dict) else {},
        )


@dataclass(frozen=True)
class CatalogItem:
    id: str
    name: str
    for_course: str
    price: float = 0.0
    years: tuple[int, ...] = ()
    year: int | None = None
    semesters: tuple[int, ...] = ()
    branches: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Any) -> "CatalogItem":
        name = _text(_field(data, "name"))
        return cls(
            id=_text(_field(data, "id", "_id", default=name)),
            name=name,
            for_course=_text(_field(data, "for_course", "forCourse")),
            price=_to_float(_field(data, "price")),
            years=_positive_ints(_field(data, "years")),
            year=_positive_int(_field(data, "year")),
            semesters=_positive_ints(_field(data, "semesters")),
            branches=tuple(_text(b) for b in _as_list(_field(data, "branches", "branch")) if _text(b).strip()),
        )

    @property
    def key(self) -> str:
        return item_key(self.name)

    @property
    def eligible_years(self) -> tuple[int, ...]:
        if self.years:
            return self.years
        if self.year:
            return (self.year,)
        return ()

    @property
    def normalized_branches(self) -> frozenset[str]:
        return frozenset(b for b in (normalize_value(v) for v in self.branches) if b)


@dataclass(frozen=True)
class MatchRecord:
    student: Student
    mapped_items: tuple[CatalogItem, ...]
    pending_items: tuple[CatalogItem, ...]
    issued_count: int
    mapped_value: float
    pending_value: float
    issued_value: float


@dataclass(frozen=True)
class DueStats:
    total_students: int = 0
    total_pending_items: int = 0
    total_pending_amount: float = 0.0
    impacted_course_count: int = 0


@dataclass(frozen=True)
class DueFilters:
    search: str = ""
    course: str = ""
    year: int | None = None
    branch: str = ""
    semester: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "DueFilters":
        data = data or {}
        return cls(
            search=_text(data.get("search")),
            course=_text(data.get("course")),
            year=_positive_int(data.get("year")),
            branch=_text(data.get("branch")),
            semester=_positive_int(data.get("semester")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "search": self.search,
            "course": self.course,
            "year": self.year,
            "branch": self.branch,
            "semester": self.semester,
        }


@dataclass(frozen=True)
class DueQuery:
    filters: DueFilters = field(default_factory=DueFilters)
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "DueQuery":
        data = data or {}
        return cls(
            filters=DueFilters.from_dict(data.get("filters")),
            page=_to_int(data.get("page")) or 1,
            page_size=_to_int(data.get("pageSize", data.get("page_size"))) or DEFAULT_PAGE_SIZE,
        )


@dataclass(frozen=True)
class DuePage:
    records: tuple[MatchRecord, ...]
    total: int
    page_count: int
    page: int
    page_size: int

    @property
    def start_index(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def end_index(self) -> int:
        return min(self.start_index + self.page_size, self.total)


@dataclass(frozen=True)
class DueReport:
    page: DuePage
    stats: DueStats
    filters: DueFilters = field(default_factory=DueFilters)

    @property
    def records(self) -> tuple[MatchRecord, ...]:
        return self.page.records

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [match_record_to_dict(record) for record in self.page.records],
            "stats": due_stats_to_dict(self.stats),
            "total": self.page.total,
            "pageCount": self.page.page_count,
            "page": self.page.page,
            "pageSize": self.page.page_size,
            "filters": self.filters.to_dict(),
        }


def build_course_index(catalog: Iterable[Any]) -> dict[str, list[CatalogItem]]:
    index: dict[str, list[CatalogItem]] = {}
    for raw in catalog:
        item = raw if isinstance(raw, CatalogItem) else CatalogItem.from_mapping(raw)
        course = normalize_value(item.for_course)
        if not course:
            continue
        index.setdefault(course, []).append(item)
    return index


def item_applies_to(item: CatalogItem, student: Student) -> bool:
    years = item.eligible_years
    if years and _to_int(student.year) not in years:
        return False

    if item.semesters and _to_int(student.semester) not in item.semesters:
        return False

    branches = item.normalized_branches
    if branches and normalize_value(student.branch) not in branches:
        return False

    return True


def is_issued(student: Student, item: CatalogItem) -> bool:
    return bool(student.items.get(item.key))


def _fold(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()


def due_sort_key(record: MatchRecord) -> tuple[Any, ...]:
    student = record.student
    year = _to_int(student.year)
    return (
        _fold(student.course),
        student.course,
        year is None,
        year or 0,
        _fold(student.name),
        student.name,
        student.student_id,
        student.id,
    )


def match_student(student: Student, index: dict[str, list[CatalogItem]]) -> MatchRecord | None:
    course = normalize_value(student.course)
    if not course:
        return None

    candidates = index.get(course) or []
    if not candidates:
        return None

    mapped = tuple(item for item in candidates if item_applies_to(item, student))
    if not mapped:
        return None

    pending = tuple(item for item in mapped if not is_issued(student, item))
    if not pending:
        return None

    mapped_value = sum(item.price for item in mapped)
    pending_value = sum(item.price for item in pending)
    return MatchRecord(
        student=student,
        mapped_items=mapped,
        pending_items=pending,
        issued_count=len(mapped) - len(pending),
        mapped_value=mapped_value,
        pending_value=pending_value,
        issued_value=max(mapped_value - pending_value, 0.0),
    )


def match_due_students(students: Iterable[Any], index: dict[str, list[CatalogItem]]) -> list[MatchRecord]:
    records: list[MatchRecord] = []
    if not index:
        return records

    for raw in students:
        student = raw if isinstance(raw, Student) else Student.from_mapping(raw)
        record = match_student(student, index)
        if record:
            records.append(record)

    records.sort(key=due_sort_key)
    return records


def aggregate_due_stats(records: Sequence[MatchRecord]) -> DueStats:
    return DueStats(
        total_students=len(records),
        total_pending_items=sum(len(record.pending_items) for record in records),
        total_pending_amount=sum(record.pending_value for record in records),
        impacted_course_count=len({(record.student.course or "").strip().upper() for record in records}),
    )


def record_matches_filters(record: MatchRecord, filters: DueFilters) -> bool:
    student = record.student

    selected_course = normalize_value(filters.course)
    if selected_course and normalize_value(student.course) != selected_course:
        return False

    selected_year = _positive_int(filters.year)
    if selected_year and _to_int(student.year) != selected_year:
        return False

    selected_branch = normalize_value(filters.branch)
    if selected_branch and normalize_value(student.branch) != selected_branch:
        return False

    selected_semester = _positive_int(filters.semester)
    if selected_semester and _to_int(student.semester) != selected_semester:
        return False

    search = (filters.search or "").strip().lower()
    if search:
        if search not in student.name.lower() and search not in student.student_id.lower():
            return False

    return True


def filter_due_records(records: Sequence[MatchRecord], filters: DueFilters | None) -> list[MatchRecord]:
    if filters is None:
        return list(records)
    return [record for record in records if record_matches_filters(record, filters)]


def paginate(records: Sequence[MatchRecord], page: Any = 1, page_size: Any = DEFAULT_PAGE_SIZE) -> DuePage:
    size = _to_int(page_size)
    if not size or size <= 0:
        size = DEFAULT_PAGE_SIZE

    total = len(records)
    page_count = math.ceil(total / size)

    current = _to_int(page) or 1
    current = max(1, current)
    if page_count:
        current = min(current, page_count)
    else:
        current = 1

    start = (current - 1) * size
    return DuePage(
        records=tuple(records[start : start + size]),
        total=total,
        page_count=page_count,
        page=current,
        page_size=size,
    )


def filter_and_page(
    records: Sequence[MatchRecord],
    filters: DueFilters | None,
    page: Any = 1,
    page_size: Any = DEFAULT_PAGE_SIZE,
) -> DuePage:
    return paginate(filter_due_records(records, filters), page, page_size)


def build_due_report(students: Iterable[Any], catalog: Iterable[Any], query: DueQuery | None = None) -> DueReport:
    query = query or DueQuery()
    index = build_course_index(catalog)
    records = match_due_students(students, index)
    filtered = filter_due_records(records, query.filters)
    return DueReport(
        page=paginate(filtered, query.page, query.page_size),
        stats=aggregate_due_stats(filtered),
        filters=query.filters,
    )


def build_export_report(students: Iterable[Any], catalog: Iterable[Any], filters: DueFilters | None = None) -> DueReport:
    """Single page holding every filtered record, for downloads."""
    filters = filters or DueFilters()
    index = build_course_index(catalog)
    filtered = filter_due_records(match_due_students(students, index), filters)
    return DueReport(
        page=paginate(filtered, 1, max(len(filtered), 1)),
        stats=aggregate_due_stats(filtered),
        filters=filters,
    )


def page_window(current: int, page_count: int) -> list[int | None]:
    # None marks an ellipsis between non-adjacent page numbers.
    if page_count <= 0:
        return []
    current = max(1, min(current, page_count))
    pages = sorted({1, page_count, current - 1, current, current + 1} & set(range(1, page_count + 1)))
    window: list[int | None] = []
    for number in pages:
        if window and number - (window[-1] or 0) > 1:
            window.append(None)
        window.append(number)
    return window


def completion_percent(record: MatchRecord) -> int:
    total = len(record.mapped_items)
    if not total:
        return 0
    return int(round(record.issued_count / total * 100))


def pending_preview(record: MatchRecord, limit: int = PREVIEW_LIMIT) -> tuple[list[str], int]:
    names = [item.name for item in record.pending_items]
    return names[:limit], max(len(names) - limit, 0)


def format_currency(amount: Any, symbol: str = "₹") -> str:
    return f"{symbol}{_to_float(amount):,.2f}"


def course_options(students: Iterable[Student]) -> list[str]:
    courses = {student.course for student in students if student.course}
    return sorted(courses, key=lambda value: (_fold(value), value))


def year_options(students: Iterable[Student]) -> list[int]:
    return sorted({year for year in (_positive_int(student.year) for student in students) if year})


def _students_in_course(students: Iterable[Student], course: str | None) -> list[Student]:
    selected = normalize_value(course)
    if not selected:
        return list(students)
    return [student for student in students if normalize_value(student.course) == selected]


def branch_options(students: Iterable[Student], course: str | None = None) -> list[str]:
    branches = {
        student.branch.strip()
        for student in _students_in_course(students, course)
        if student.branch and student.branch.strip()
    }
    return sorted(branches, key=lambda value: (_fold(value), value))


def semester_options(students: Iterable[Student], course: str | None = None, year: int | None = None) -> list[int]:
    selected_year = _positive_int(year)
    semesters: set[int] = set()
    for student in _students_in_course(students, course):
        if selected_year and _to_int(student.year) != selected_year:
            continue
        semester = _positive_int(student.semester)
        if semester:
            semesters.add(semester)
    return sorted(semesters)


def catalog_item_to_dict(item: CatalogItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "forCourse": item.for_course,
        "price": item.price,
        "years": list(item.eligible_years),
        "semesters": list(item.semesters),
        "branch": list(item.branches),
    }


def student_to_dict(student: Student) -> dict[str, Any]:
    return {
        "id": student.id,
        "name": student.name,
        "studentId": student.student_id,
        "course": student.course,
        "year": student.year,
        "semester": student.semester,
        "branch": student.branch,
    }


def match_record_to_dict(record: MatchRecord) -> dict[str, Any]:
    return {
        "student": student_to_dict(record.student),
        "mappedItems": [catalog_item_to_dict(item) for item in record.mapped_items],
        "pendingItems": [catalog_item_to_dict(item) for item in record.pending_items],
        "issuedCount": record.issued_count,
        "mappedValue": round(record.mapped_value, 2),
        "pendingValue": round(record.pending_value, 2),
        "issuedValue": round(record.issued_value, 2),
    }


def due_stats_to_dict(stats: DueStats) -> dict[str, Any]:
    return {
        "totalStudents": stats.total_students,
        "totalPendingItems": stats.total_pending_items,
        "totalPendingAmount": round(stats.total_pending_amount, 2),
        "impactedCourseCount": stats.impacted_course_count,
    }
