from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from logic import CatalogItem, Student
from models import Product, RosterStudent

logger = logging.getLogger(__name__)

ROSTER = "roster"
CATALOG = "catalog"


class SourceUnavailableError(RuntimeError):
    """A snapshot source could not be read; ``source`` names which one."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(message)
        self.source = source


class RosterUnavailableError(SourceUnavailableError):
    def __init__(self, message: str = "Failed to load students") -> None:
        super().__init__(ROSTER, message)


class CatalogUnavailableError(SourceUnavailableError):
    def __init__(self, message: str = "Failed to load products") -> None:
        super().__init__(CATALOG, message)


class SnapshotUnavailableError(RuntimeError):
    """One or both snapshot sources failed; ``errors`` is keyed by source."""

    def __init__(self, errors: dict[str, SourceUnavailableError]) -> None:
        super().__init__("; ".join(str(error) for error in errors.values()))
        self.errors = errors

    @property
    def sources(self) -> list[str]:
        return sorted(self.errors)


def student_from_row(row: RosterStudent) -> Student:
    return Student(
        id=str(row.id),
        name=row.name or "",
        student_id=row.student_id or "",
        course=row.course or "",
        year=row.year,
        semester=row.semester,
        branch=row.branch,
        items=dict(row.items or {}),
    )


def catalog_item_from_row(row: Product) -> CatalogItem:
    return CatalogItem.from_mapping(
        {
            "id": str(row.id),
            "name": row.name,
            "for_course": row.for_course,
            "price": row.price,
            "years": row.years,
            "year": row.year,
            "semesters": row.semesters,
            "branch": row.branch,
        }
    )


def fetch_roster(db: Session) -> list[Student]:
    try:
        rows = db.scalars(select(RosterStudent).order_by(RosterStudent.student_id)).all()
    except SQLAlchemyError as exc:
        logger.warning("Roster snapshot failed", exc_info=True)
        raise RosterUnavailableError(f"Failed to load students: {exc.__class__.__name__}") from exc
    students = [student_from_row(row) for row in rows]
    logger.debug("Loaded roster snapshot with %d students", len(students))
    return students


def fetch_catalog(db: Session) -> list[CatalogItem]:
    try:
        rows = db.scalars(select(Product).order_by(Product.for_course, Product.name)).all()
    except SQLAlchemyError as exc:
        logger.warning("Catalog snapshot failed", exc_info=True)
        raise CatalogUnavailableError(f"Failed to load products: {exc.__class__.__name__}") from exc
    catalog = [catalog_item_from_row(row) for row in rows]
    logger.debug("Loaded catalog snapshot with %d items", len(catalog))
    return catalog


def load_snapshots(db: Session) -> tuple[list[Student], list[CatalogItem]]:
    # Both sources must succeed; matching never runs on a partial snapshot.
    errors: dict[str, SourceUnavailableError] = {}
    students: list[Student] = []
    catalog: list[CatalogItem] = []
    try:
        students = fetch_roster(db)
    except SourceUnavailableError as exc:
        errors[exc.source] = exc
        db.rollback()
    try:
        catalog = fetch_catalog(db)
    except SourceUnavailableError as exc:
        errors[exc.source] = exc
    if errors:
        raise SnapshotUnavailableError(errors)
    return students, catalog
