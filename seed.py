from __future__ import annotations

import csv
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from logic import item_key, normalize_value
from models import AuditLog, Product, RosterStudent

logger = logging.getLogger(__name__)


# Roster exports come from several student systems, each naming columns differently.
STUDENT_COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "student_id": ("student_id", "studentid", "roll_no", "rollno", "admission_no", "enrollment_no"),
    "name": ("name", "student_name", "full_name"),
    "course": ("course", "course_name", "program", "programme"),
    "year": ("year", "year_of_study", "yearofstudy", "current_year", "stud_year", "semester_year"),
    "semester": ("semester", "current_semester", "semester_no", "sem", "sem_no"),
    "branch": ("branch", "department", "dept", "department_name"),
    "issued_items": ("issued_items", "items", "received_items"),
}

REQUIRED_STUDENT_FIELDS = {"student_id", "name", "course"}

REQUIRED_PRODUCT_COLUMNS = {
    "name",
    "for_course",
    "price",
    "years",
    "semesters",
    "branch",
}

ALLOWED_SEMESTERS = {1, 2}
MAX_PRODUCT_YEAR = 10


def _parse_list(value: str) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split("|") if item.strip()]


def _parse_int(value: str) -> int | None:
    value = (value or "").strip()
    if not value:
        return None
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        return None


def _parse_positive_int(value: str) -> int | None:
    number = _parse_int(value)
    return number if number and number > 0 else None


def _parse_price(value: str) -> Decimal:
    raw = (value or "").strip() or "0"
    try:
        price = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"Invalid price: {raw}")
    if price < 0:
        raise ValueError(f"Price cannot be negative: {raw}")
    return price


def _parse_int_list(value: str, allowed: set[int] | None = None, column: str = "") -> list[int]:
    numbers: list[int] = []
    for token in _parse_list(value):
        number = _parse_int(token)
        if number is None or (allowed is not None and number not in allowed):
            raise ValueError(f"Invalid {column or 'number'} value: {token}")
        numbers.append(number)
    return numbers


def _header_key(column: str) -> str:
    return column.strip().lower().replace(" ", "_")


def resolve_student_columns(columns: list[str]) -> dict[str, str]:
    """Map canonical roster fields to the first matching header in ``columns``."""
    by_key = {_header_key(column): column for column in columns}
    resolved: dict[str, str] = {}
    for canonical, aliases in STUDENT_COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in by_key:
                resolved[canonical] = by_key[alias]
                break
    return resolved


def validate_student_columns(columns: list[str]) -> tuple[bool, list[str]]:
    missing = sorted(REQUIRED_STUDENT_FIELDS - set(resolve_student_columns(columns)))
    return len(missing) == 0, missing


def validate_product_columns(columns: list[str]) -> tuple[bool, list[str]]:
    missing = sorted(REQUIRED_PRODUCT_COLUMNS - {_header_key(column) for column in columns})
    return len(missing) == 0, missing


def student_row_from_record(record: dict[str, Any], columns: dict[str, str]) -> dict[str, Any]:
    def value(name: str) -> str:
        column = columns.get(name)
        return str(record.get(column) or "").strip() if column else ""

    branch = value("branch")
    return {
        "student_id": value("student_id"),
        "name": value("name"),
        "course": value("course"),
        "year": _parse_positive_int(value("year")),
        "semester": _parse_positive_int(value("semester")),
        "branch": branch if branch and branch.upper() != "N/A" else None,
        "items": {item_key(name): True for name in _parse_list(value("issued_items"))},
    }


def load_students_from_csv(csv_text: str) -> list[dict[str, Any]]:
    reader = csv.DictReader(csv_text.splitlines())
    headers = reader.fieldnames or []
    valid, missing = validate_student_columns(headers)
    if not valid:
        raise ValueError(f"Missing required columns: {missing}")

    columns = resolve_student_columns(headers)
    rows: list[dict[str, Any]] = []
    for line_no, record in enumerate(reader, start=2):
        row = student_row_from_record(record, columns)
        if not row["student_id"]:
            raise ValueError(f"Row {line_no}: student id is empty")
        rows.append(row)
    return rows


def load_products_from_csv(csv_text: str) -> list[dict[str, Any]]:
    reader = csv.DictReader(csv_text.splitlines())
    valid, missing = validate_product_columns(reader.fieldnames or [])
    if not valid:
        raise ValueError(f"Missing required columns: {missing}")

    rows: list[dict[str, Any]] = []
    for line_no, raw in enumerate(reader, start=2):
        record = {_header_key(key): (value or "") for key, value in raw.items() if key}
        name = record["name"].strip()
        if not name:
            raise ValueError(f"Row {line_no}: product name is empty")
        try:
            years = _parse_int_list(record["years"], set(range(0, MAX_PRODUCT_YEAR + 1)), "year")
            legacy_year = _parse_int(record.get("year", "")) or 0
            if not 0 <= legacy_year <= MAX_PRODUCT_YEAR:
                raise ValueError(f"Invalid year value: {legacy_year}")
            rows.append(
                {
                    "name": name,
                    "for_course": record["for_course"].strip(),
                    "price": _parse_price(record["price"]),
                    "years": years,
                    "year": legacy_year,
                    "semesters": _parse_int_list(record["semesters"], ALLOWED_SEMESTERS, "semester"),
                    "branch": _parse_list(record["branch"]),
                }
            )
        except ValueError as exc:
            raise ValueError(f"Row {line_no}: {exc}") from exc
    return rows


def _product_identity(for_course: str, name: str) -> tuple[str, str]:
    return normalize_value(for_course), item_key(name)


def preview_diff(db: Session, rows: list[dict[str, Any]], kind: str = "students") -> dict[str, int]:
    if kind == "students":
        ids = {r.student_id for r in db.scalars(select(RosterStudent)).all()}
        keys = [row["student_id"] for row in rows]
    else:
        ids = {_product_identity(p.for_course, p.name) for p in db.scalars(select(Product)).all()}
        keys = [_product_identity(row["for_course"], row["name"]) for row in rows]

    to_update = sum(1 for key in keys if key in ids)
    return {"insert": len(keys) - to_update, "update": to_update}


def upsert_students(db: Session, rows: list[dict[str, Any]], source: str = "csv") -> dict[str, int]:
    existing_map = {
        s.student_id: s
        for s in db.scalars(select(RosterStudent).where(RosterStudent.student_id.in_([row["student_id"] for row in rows]))).all()
    }

    inserted = 0
    updated = 0
    for row in rows:
        existing = existing_map.get(row["student_id"])
        if existing:
            for key, value in row.items():
                if key == "items":
                    # Imports only add receipts; an item issued earlier stays issued.
                    value = {**(existing.items or {}), **value}
                setattr(existing, key, value)
            updated += 1
        else:
            student = RosterStudent(**row)
            db.add(student)
            existing_map[row["student_id"]] = student
            inserted += 1

    db.add(
        AuditLog(
            action="students_upsert",
            details_json={
                "source": source,
                "inserted": inserted,
                "updated": updated,
                "student_ids": [r["student_id"] for r in rows],
            },
        )
    )
    logger.info("Roster upsert from %s: %d inserted, %d updated", source, inserted, updated)
    return {"inserted": inserted, "updated": updated}


def upsert_products(db: Session, rows: list[dict[str, Any]], source: str = "csv") -> dict[str, int]:
    existing_map = {_product_identity(p.for_course, p.name): p for p in db.scalars(select(Product)).all()}

    inserted = 0
    updated = 0
    for row in rows:
        identity = _product_identity(row["for_course"], row["name"])
        existing = existing_map.get(identity)
        if existing:
            for key, value in row.items():
                setattr(existing, key, value)
            updated += 1
        else:
            product = Product(**row)
            db.add(product)
            existing_map[identity] = product
            inserted += 1

    db.add(
        AuditLog(
            action="products_upsert",
            details_json={
                "source": source,
                "inserted": inserted,
                "updated": updated,
                "products": [f"{row['for_course']}::{row['name']}" for row in rows],
            },
        )
    )
    logger.info("Catalog upsert from %s: %d inserted, %d updated", source, inserted, updated)
    return {"inserted": inserted, "updated": updated}


def seed_if_empty(db: Session) -> dict[str, int]:
    counts = {"students": 0, "products": 0}
    if db.scalar(select(RosterStudent.id).limit(1)) is None:
        counts["students"] = upsert_students(db, load_students_from_csv(_default_students_csv()), source="seed")["inserted"]
    if db.scalar(select(Product.id).limit(1)) is None:
        counts["products"] = upsert_products(db, load_products_from_csv(_default_products_csv()), source="seed")["inserted"]
    return counts


def reset_and_seed(db: Session) -> None:
    db.execute(delete(RosterStudent))
    db.execute(delete(Product))
    upsert_students(db, load_students_from_csv(_default_students_csv()), source="reset")
    upsert_products(db, load_products_from_csv(_default_products_csv()), source="reset")


def _default_students_csv() -> str:
    return """roll_no,student_name,course,year_of_study,sem,department,issued_items
BT1001,Aarav Sharma,B.Tech,1,1,CSE,Graph Book|Drawing Kit
BT1002,Diya Patel,b.tech,1,2,ECE,
BT1003,Kabir Rao,B.TECH,2,1,MECH,Drawing Kit
BT1004,Meera Iyer,B.Tech,2,2,CSE,Drawing Kit|Lab Record
DP2001,Rohan Das,Diploma,1,1,N/A,
DP2002,Sara Khan,Diploma,3,,Civil,Survey Field Book
DG3001,Vivaan Gupta,Degree,1,1,,
"""


def _default_products_csv() -> str:
    return """name,for_course,price,years,year,semesters,branch
Graph Book,btech,50,1,,,
Drawing Kit,btech,350,1|2,,,
Lab Record,btech,120,2,,2,CSE|ECE
Survey Field Book,diploma,80,,3,,Civil
Diploma Starter Pack,diploma,400,1,,,
Rough Notebook Set,degree,90,,,,
"""
