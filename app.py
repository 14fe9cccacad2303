from __future__ import annotations

import logging
from typing import Any, Callable

import streamlit as st

from config import configure_logging, load_settings
from db import db_session, init_schema
from export import build_due_csv, build_due_pdf_report, build_json_summary, due_records_frame
from logic import (
    PAGE_SIZE_OPTIONS,
    DueFilters,
    DueQuery,
    branch_options,
    build_due_report,
    build_export_report,
    course_options,
    semester_options,
    year_options,
)
from providers import CATALOG, ROSTER, SourceUnavailableError, fetch_catalog, fetch_roster
from seed import seed_if_empty
from ui import (
    inject_css,
    render_due_row,
    render_pagination,
    render_source_errors,
    render_stat_cards,
    select_with_all,
    t,
)

logger = logging.getLogger(__name__)

st.set_page_config(page_title="Student Due", layout="wide")

SNAPSHOT_KEY = "due_snapshots"
ERRORS_KEY = "due_errors"
PAGE_KEY = "due_page"
FILTERS_KEY = "due_last_filters"

FETCHERS: dict[str, Callable[[Any], list[Any]]] = {
    ROSTER: fetch_roster,
    CATALOG: fetch_catalog,
}


@st.cache_resource
def bootstrap() -> None:
    configure_logging()
    init_schema()
    with db_session() as db:
        seed_if_empty(db)


def load_source(source: str) -> None:
    snapshots = st.session_state.setdefault(SNAPSHOT_KEY, {})
    errors = st.session_state.setdefault(ERRORS_KEY, {})
    try:
        with db_session() as db:
            snapshots[source] = FETCHERS[source](db)
        errors.pop(source, None)
    except SourceUnavailableError as exc:
        snapshots.pop(source, None)
        errors[source] = str(exc)


def ensure_snapshots(language: str) -> None:
    snapshots = st.session_state.setdefault(SNAPSHOT_KEY, {})
    errors = st.session_state.setdefault(ERRORS_KEY, {})
    missing = [source for source in FETCHERS if source not in snapshots and source not in errors]
    if missing:
        with st.spinner(t(language, "loading")):
            for source in missing:
                load_source(source)


def retry_source(source: str) -> None:
    st.session_state.setdefault(ERRORS_KEY, {}).pop(source, None)
    st.session_state.setdefault(SNAPSHOT_KEY, {}).pop(source, None)
    st.rerun()


def refresh_all() -> None:
    st.session_state.pop(SNAPSHOT_KEY, None)
    st.session_state.pop(ERRORS_KEY, None)
    st.rerun()


def set_page(number: int) -> None:
    st.session_state[PAGE_KEY] = number
    st.rerun()


def clear_filters() -> None:
    for key in ("due_search", "due_course", "due_year", "due_branch", "due_semester"):
        st.session_state.pop(key, None)
    st.session_state[PAGE_KEY] = 1


def render_filters(students: list[Any], language: str) -> DueFilters:
    search_col, course_col, year_col, branch_col, semester_col, clear_col = st.columns([3, 2, 1, 2, 1, 1])
    search = search_col.text_input(t(language, "search"), key="due_search")
    with course_col:
        course = select_with_all(t(language, "course"), course_options(students), "due_course", language, lambda c: c.upper())
    with year_col:
        year = select_with_all(t(language, "year"), year_options(students), "due_year", language)
    with branch_col:
        branch = select_with_all(t(language, "branch"), branch_options(students, course), "due_branch", language)
    with semester_col:
        semester = select_with_all(t(language, "semester"), semester_options(students, course, year), "due_semester", language)
    clear_col.button(t(language, "clear_filters"), on_click=clear_filters)

    return DueFilters(search=search or "", course=course or "", year=year, branch=branch or "", semester=semester)


def render_due_page(language: str) -> None:
    settings = load_settings()
    inject_css()

    title_col, refresh_col = st.columns([5, 1])
    title_col.title(t(language, "app_title"))
    title_col.caption(t(language, "subtitle"))
    if refresh_col.button(t(language, "refresh")):
        refresh_all()

    ensure_snapshots(language)
    errors: dict[str, str] = st.session_state.get(ERRORS_KEY, {})
    if errors:
        render_source_errors(errors, language, retry_source)
        return

    snapshots = st.session_state[SNAPSHOT_KEY]
    students = snapshots[ROSTER]
    catalog = snapshots[CATALOG]

    filters = render_filters(students, language)
    if st.session_state.get(FILTERS_KEY) != filters:
        st.session_state[FILTERS_KEY] = filters
        st.session_state[PAGE_KEY] = 1

    default_size = settings.page_size if settings.page_size in PAGE_SIZE_OPTIONS else PAGE_SIZE_OPTIONS[1]
    page_size = st.selectbox(
        t(language, "per_page"),
        PAGE_SIZE_OPTIONS,
        index=PAGE_SIZE_OPTIONS.index(default_size),
        key="due_page_size",
    )

    query = DueQuery(filters=filters, page=st.session_state.get(PAGE_KEY, 1), page_size=page_size)
    report = build_due_report(students, catalog, query)
    logger.debug("Due page %d/%d with %d records", report.page.page, report.page.page_count, report.page.total)

    render_stat_cards(report.stats, language, settings.currency_symbol)
    st.divider()

    if not report.page.total:
        st.info(t(language, "no_due"))
        return

    for record in report.records:
        render_due_row(record, settings.currency_symbol)
    render_pagination(report.page, language, set_page)

    st.divider()
    full_report = build_export_report(students, catalog, filters)
    include_summary = st.checkbox(t(language, "include_summary"), value=True)
    pdf_col, csv_col, json_col = st.columns(3)
    pdf_col.download_button(
        t(language, "download_pdf"),
        data=build_due_pdf_report(
            full_report.records,
            full_report.stats if include_summary else None,
            filters=filters.to_dict(),
        ),
        file_name="student_due_report.pdf",
        mime="application/pdf",
    )
    csv_col.download_button(
        t(language, "download_csv"),
        data=build_due_csv(full_report.records),
        file_name="student_due.csv",
        mime="text/csv",
    )
    json_col.download_button(
        t(language, "download_json"),
        data=build_json_summary(full_report.to_dict()),
        file_name="student_due.json",
        mime="application/json",
    )
    with st.expander("Table view"):
        st.dataframe(due_records_frame(report.records), use_container_width=True)


def main() -> None:
    bootstrap()
    language = st.session_state.setdefault("language", "en")
    render_due_page(language)


if __name__ == "__main__":
    main()
