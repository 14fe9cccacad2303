from __future__ import annotations

from html import escape
from typing import Any, Callable

import streamlit as st

from logic import DuePage, DueStats, MatchRecord, completion_percent, format_currency, page_window, pending_preview


I18N = {
    "en": {
        "app_title": "Student Due",
        "subtitle": "Track students who still need their mapped stationery items.",
        "search": "Search by name or student ID",
        "course": "Course",
        "year": "Year",
        "branch": "Branch",
        "semester": "Semester",
        "all": "All",
        "clear_filters": "Clear filters",
        "refresh": "Refresh",
        "per_page": "Rows per page",
        "loading": "Loading students and products...",
        "no_due": "Every mapped item has been issued for the selected filters.",
        "students_due": "Students with dues",
        "pending_items": "Pending items",
        "pending_amount": "Pending amount",
        "impacted_courses": "Impacted courses",
        "retry_roster": "Retry students",
        "retry_catalog": "Retry products",
        "roster_error": "Students could not be loaded",
        "catalog_error": "Products could not be loaded",
        "both_error": "Students and products could not be loaded",
        "download_pdf": "Download PDF Report",
        "download_csv": "Download CSV",
        "download_json": "Download JSON",
        "include_summary": "Include summary in PDF",
        "showing": "Showing {start} to {end} of {total} students",
    },
}


@st.cache_data
def get_i18n(language: str) -> dict[str, str]:
    return I18N.get(language, I18N["en"])


def t(language: str, key: str) -> str:
    return get_i18n(language).get(key, key)


def inject_css() -> None:
    st.markdown(
        """
        <style>
            .due-card {border-radius: 14px; padding: 14px 16px; background: #F5F3FF; border: 1px solid #DDD6FE;}
            .due-card-label {font-size: 0.8rem; color: #6B7280;}
            .due-card-value {font-size: 1.5rem; font-weight: 700; color: #4C1D95;}
            .due-chip {display: inline-block; padding: 2px 8px; margin: 0 4px 4px 0; border-radius: 999px;
                       font-size: 0.75rem; background: #FFE4E6; color: #BE123C;}
            .due-chip.more {background: #F3F4F6; color: #4B5563;}
            .due-meter-head {display: flex; justify-content: space-between; font-size: 0.75rem; color: #6B7280;}
            .due-meter-track {height: 6px; border-radius: 999px; background: #F3F4F6; overflow: hidden;}
            .due-meter-fill {height: 100%; background: #3B82F6;}
        </style>
        """,
        unsafe_allow_html=True,
    )


def render_stat_cards(stats: DueStats, language: str, currency_symbol: str) -> None:
    cards = [
        (t(language, "students_due"), str(stats.total_students)),
        (t(language, "pending_items"), str(stats.total_pending_items)),
        (t(language, "pending_amount"), format_currency(stats.total_pending_amount, currency_symbol)),
        (t(language, "impacted_courses"), str(stats.impacted_course_count)),
    ]
    for column, (label, value) in zip(st.columns(len(cards)), cards):
        column.markdown(
            f"<div class='due-card'><div class='due-card-label'>{escape(label)}</div>"
            f"<div class='due-card-value'>{escape(value)}</div></div>",
            unsafe_allow_html=True,
        )


def render_meter(label: str, pct: float, value_text: str | None = None) -> None:
    pct = max(0.0, min(1.0, pct))
    pct_text = value_text or f"{int(round(pct * 100))}%"
    st.markdown(
        f"""
        <div class="due-meter">
            <div class="due-meter-head">
                <span>{escape(label)}</span>
                <span>{escape(pct_text)}</span>
            </div>
            <div class="due-meter-track">
                <div class="due-meter-fill" style="width: {pct * 100:.1f}%;"></div>
            </div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def render_pending_chips(record: MatchRecord) -> None:
    names, overflow = pending_preview(record)
    chips = [f"<span class='due-chip'>{escape(name)}</span>" for name in names]
    if overflow:
        chips.append(f"<span class='due-chip more'>+{overflow} more</span>")
    st.markdown("".join(chips), unsafe_allow_html=True)


def render_due_row(record: MatchRecord, currency_symbol: str) -> None:
    student = record.student
    name_col, course_col, items_col, progress_col, amount_col = st.columns([3, 2, 3, 3, 2])
    name_col.markdown(f"**{escape(student.name)}**  \n{escape(student.student_id)}")
    details = f"Year {student.year if student.year is not None else '-'}"
    if student.branch:
        details += f" • {student.branch}"
    course_col.markdown(f"{escape((student.course or 'N/A').upper())}  \n{escape(details)}")
    with items_col:
        render_pending_chips(record)
    with progress_col:
        pct = completion_percent(record)
        render_meter(
            f"{record.issued_count} issued / {len(record.pending_items)} pending",
            pct / 100,
            f"{pct}% complete",
        )
    amount_col.markdown(f"**{format_currency(record.pending_value, currency_symbol)}**")


def render_pagination(page: DuePage, language: str, on_change: Callable[[int], None]) -> None:
    if page.page_count <= 1:
        return
    st.caption(
        t(language, "showing").format(start=page.start_index + 1, end=page.end_index, total=page.total)
    )
    window = page_window(page.page, page.page_count)
    columns = st.columns(len(window) + 2)
    if columns[0].button("‹", key="due_page_prev", disabled=page.page <= 1):
        on_change(page.page - 1)
    for column, number in zip(columns[1:-1], window):
        if number is None:
            column.markdown("…")
            continue
        if column.button(str(number), key=f"due_page_{number}", type="primary" if number == page.page else "secondary"):
            on_change(number)
    if columns[-1].button("›", key="due_page_next", disabled=page.page >= page.page_count):
        on_change(page.page + 1)


def render_source_errors(errors: dict[str, str], language: str, on_retry: Callable[[str], None]) -> None:
    if "roster" in errors and "catalog" in errors:
        st.error(t(language, "both_error"))
    elif "roster" in errors:
        st.error(t(language, "roster_error"))
    else:
        st.error(t(language, "catalog_error"))

    for source, message in sorted(errors.items()):
        st.caption(message)
        if st.button(t(language, f"retry_{source}"), key=f"retry_{source}"):
            on_retry(source)


def select_with_all(label: str, options: list[Any], key: str, language: str, format_func: Callable[[Any], str] = str) -> Any:
    choices: list[Any] = [None, *options]
    return st.selectbox(
        label,
        choices,
        key=key,
        format_func=lambda value: t(language, "all") if value is None else format_func(value),
    )
