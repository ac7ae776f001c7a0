#!/usr/bin/env python3
# streamlit_app.py
"""
Cohort-facing front-end for daily study reports.

Students report whether they met today's study plan and how long they
studied; parents and group administrators see the resulting weekly
analytics. All grading happens in the backend, reached through the relay
configured by ``STUDY_REPORT_API_BASE``.

Run locally:
    python3 -m venv .venv
    source .venv/bin/activate
    pip install -e .
    STUDY_REPORT_API_BASE=https://example.pages.dev/api/gas streamlit run streamlit_app.py

Surfaces (``?view=`` query parameter or the sidebar):
- login: first login on a new device; the device token is kept for auto-login.
- student: week calendar, the report form and the analytics card.
- parent: weekly summary for a child looked up by group and name.
- admin: group table, requires ``?admin_token=...``.
"""

import os
from typing import Optional

import streamlit as st

from analytics import AnalyticsSummary, present_summary
from cohort_views import AdminDashboard, ParentLookup
from device_session import EmailHintLookup, FileSessionStore, SessionResolver, SessionState, first_login
from formatting import DEFAULT_TIMEZONE, escape_html, group_options, has_any_space, minute_options
from report_api import ReportApiClient, ReportApiError, ValidationError
from report_draft import (
    REASONS,
    PlanStatus,
    SetImprovementChoice,
    SetImprovementOther,
    SetPlanStatus,
    SetReason,
    SetReasonOther,
    SetStudyMinutes,
)
from submission import ReportSubmitter
from week_view import WeekViewController

# --- Page Configuration ---
st.set_page_config(page_title="Study Reports", layout="centered")

PAGES = {"login": "Student login", "student": "My report", "parent": "Parent", "admin": "Admin"}
PLAN_LABELS = {PlanStatus.ACHIEVED: "Achieved", PlanStatus.NOT_ACHIEVED: "Not achieved"}


# --- CSS Styling ---
def apply_custom_css():
    """Injects custom CSS for the cards, calendar and pie chart."""
    st.markdown(
        """
        <style>
            .support { border-left: 4px solid #4c9a2a; padding: 8px 12px; background: #f6fbf3; }
            .muted { color: #666; }
            .positive {
                border: 1px solid #e6e6e6; border-radius: 10px; padding: 10px 14px;
                margin: 10px 0; background: #fffdf5;
            }
            .pie-chart {
                width: 160px; height: 160px; border-radius: 50%; margin: 8px auto;
                display: flex; align-items: center; justify-content: center;
            }
            .pie-center {
                width: 96px; height: 96px; border-radius: 50%; background: #fff;
                display: flex; flex-direction: column; align-items: center; justify-content: center;
            }
            .pie-center-pct { font-size: 1.4rem; font-weight: 700; }
        </style>
        """,
        unsafe_allow_html=True,
    )


# --- Session State Management ---
def initialize_session_state():
    """Initializes session state with default values."""
    if st.session_state.get("initialized"):
        return

    view = st.query_params.get("view", "student")
    st.session_state.page = view if view in PAGES else "student"
    st.session_state.client = None
    st.session_state.store = FileSessionStore.from_env()
    st.session_state.resolver = None
    st.session_state.week = None
    st.session_state.show_average = False
    st.session_state.hints = {}
    st.session_state.parent = None
    st.session_state.admin = None

    st.session_state.initialized = True


def get_client() -> ReportApiClient:
    if st.session_state.client is None:
        try:
            st.session_state.client = ReportApiClient.from_env()
        except ReportApiError as exc:
            st.error(f"Backend is not configured: {exc}")
            st.stop()
    return st.session_state.client


def go_to(page: str):
    st.session_state.page = page
    st.query_params["view"] = page
    st.rerun()


# --- UI Components ---
def render_summary(summary: AnalyticsSummary):
    """Renders the analytics card shared by the student and parent surfaces."""
    first, second = summary.pie.boundaries()
    rate = escape_html(summary.week_achieved_rate_pct, "0")
    st.markdown(
        f"""
        <div class="pie-chart" style="background: conic-gradient(
            #4c9a2a 0deg {first}deg, #e0a030 {first}deg {second}deg, #d0d0d0 {second}deg 360deg);">
          <div class="pie-center" aria-label="{rate}% achieved this week">
            <div class="muted">This week</div>
            <div class="pie-center-pct">{rate}%</div>
            <div class="muted">achieved</div>
          </div>
        </div>
        """,
        unsafe_allow_html=True,
    )

    show_average = st.toggle("Show study time per day", value=st.session_state.show_average)
    st.session_state.show_average = show_average

    for row in present_summary(summary, show_average=show_average):
        if row.key in ("grade_message", "team_grade_message"):
            st.markdown(f'<div class="positive">{escape_html(row.value)}</div>', unsafe_allow_html=True)
            continue
        left, right = st.columns([2, 3])
        left.markdown(f"**{row.label}**")
        right.write(row.value)


def login_page():
    """First login on a new device."""
    st.header("Student first login")
    groups = group_options()
    group = st.selectbox("Group", groups)
    name = st.text_input("Full name", placeholder="e.g. YamadaTaro")
    if has_any_space(name):
        st.caption("Please enter your name without spaces.")

    hint = ""
    if name.strip() and not has_any_space(name):
        # text_input commits on enter or blur, so a rerun already sees a settled name.
        key = (group, name)
        if key not in st.session_state.hints:
            st.session_state.hints[key] = EmailHintLookup(get_client()).lookup(group, name)
        hint = st.session_state.hints[key]
    email = st.text_input("E-mail", placeholder="e.g. abc123@example.com")
    if hint:
        st.caption(hint)

    can_submit = bool(group and name.strip() and email.strip() and not has_any_space(name))
    if st.button("Log in", type="primary", disabled=not can_submit):
        try:
            first_login(get_client(), st.session_state.store, group, name, email)
        except ValidationError as exc:
            st.warning(str(exc))
            return
        except ReportApiError as exc:
            st.error(str(exc))
            return
        st.session_state.resolver = None
        st.session_state.week = None
        go_to("student")

    st.caption("This device will log you in automatically next time.")


def resolve_student() -> Optional[WeekViewController]:
    """Auto-login with the stored device token, or send the student to login."""
    resolver = st.session_state.resolver
    if resolver is None:
        resolver = SessionResolver(get_client(), st.session_state.store)
        st.session_state.resolver = resolver

    if resolver.resolve() is SessionState.REJECTED:
        st.session_state.resolver = None
        go_to("login")

    session = resolver.session
    controller = st.session_state.week
    if controller is None or controller.student_key != session.student_key:
        timezone = os.environ.get("STUDY_REPORT_TIMEZONE", DEFAULT_TIMEZONE)
        controller = WeekViewController(get_client(), session.student_key, timezone=timezone)
        controller.load()
        st.session_state.week = controller
    return controller


def calendar_strip(controller: WeekViewController):
    week = controller.week
    if week is None or not week.calendar:
        return
    st.subheader("This week")
    columns = st.columns(len(week.calendar))
    for column, day in zip(columns, week.calendar):
        selected = day.date == controller.selected_date
        label = f"{day.short_date}\n\n{day.mark.value or ' '}"
        if column.button(label, key=f"day-{day.date}", type="primary" if selected else "secondary", disabled=controller.busy):
            controller.select_date(day.date)
            st.rerun()
    st.caption("◎ achieved and reported / ○ reported / blank: not reported")


def report_form(controller: WeekViewController):
    """The cascading form: plan status, minutes, reason, improvement."""
    st.subheader(f"Report for {controller.selected_date}")
    draft = controller.draft

    statuses = list(PlanStatus)
    status = st.selectbox(
        "Today's study plan (required)",
        statuses,
        index=statuses.index(draft.plan_status),
        format_func=PLAN_LABELS.get,
    )
    st.caption("If you finished the minimum amount in your study plan, choose Achieved.")
    draft = controller.update(SetPlanStatus(status))

    options = minute_options(current=draft.study_minutes)
    values = [minutes for minutes, _ in options]
    labels = dict(options)
    current = draft.study_minutes if draft.study_minutes in labels else 0
    minutes = st.selectbox("Study time today (required)", values, index=values.index(current), format_func=labels.get)
    if minutes != draft.study_minutes:
        draft = controller.update(SetStudyMinutes(minutes))

    if draft.shows_reason:
        reasons = [""] + list(REASONS)
        reason = st.selectbox(
            "Why wasn't it achieved?",
            reasons,
            index=reasons.index(draft.plan.reason) if draft.plan.reason in reasons else 0,
            format_func=lambda r: r or "Choose one",
        )
        draft = controller.update(SetReason(reason))
        if draft.shows_reason_other:
            other = st.text_input("Other reason (optional)", value=draft.plan.reason_other)
            draft = controller.update(SetReasonOther(other))

    if draft.shows_improvement:
        choices = draft.improvement_options
        if choices:
            offered = [""] + list(choices)
            choice = st.selectbox(
                "What will you try from tomorrow?",
                offered,
                index=offered.index(draft.plan.improvement_choice) if draft.plan.improvement_choice in offered else 0,
                format_func=lambda c: c or "Choose one",
            )
            draft = controller.update(SetImprovementChoice(choice))
            other = st.text_input("Something else (optional)", value=draft.plan.improvement_other)
        else:
            other = st.text_input("What will you try from tomorrow? (optional)", value=draft.plan.improvement_other)
        controller.update(SetImprovementOther(other))

    submitter = ReportSubmitter(get_client(), controller)
    if st.button("Submit", type="primary", disabled=not submitter.can_submit()):
        if submitter.submit() is not None:
            st.session_state.show_average = False
        st.rerun()

    if controller.week is not None and controller.week.has_existing_report:
        st.info("This day has already been reported. Submitting again overwrites it.")


def student_page():
    controller = resolve_student()
    session = st.session_state.resolver.session
    st.header("Report & results")
    st.caption(f"{session.display_name} ({session.group_name})")
    if controller.message:
        st.warning(controller.message)

    st.subheader("Today's idea (from yesterday)")
    support = controller.week.improvement_support_text if controller.week else None
    st.markdown(f'<div class="support">{escape_html(support, "&nbsp;")}</div>', unsafe_allow_html=True)

    calendar_strip(controller)
    report_form(controller)

    if controller.analytics is not None:
        st.subheader("Results")
        render_summary(controller.analytics)

    if st.sidebar.button("Log out of this device"):
        st.session_state.store.clear()
        st.session_state.resolver = None
        st.session_state.week = None
        go_to("login")


def parent_page():
    st.header("Your child's progress")
    lookup = st.session_state.parent
    if lookup is None:
        lookup = st.session_state.parent = ParentLookup(get_client())

    group = st.selectbox("Child's group", group_options())
    name = st.text_input("Child's full name")
    if has_any_space(name):
        st.caption("Please enter the name without spaces.")
    if st.button("Show", type="primary", disabled=not name.strip() or has_any_space(name)):
        st.session_state.show_average = False
        lookup.show(group, name)

    if lookup.message:
        st.warning(lookup.message)
    if lookup.summary is not None:
        st.subheader("Today's idea (from yesterday)")
        st.markdown(f'<div class="support">{escape_html(lookup.summary.improvement_support_text, "&nbsp;")}</div>', unsafe_allow_html=True)
        render_summary(lookup.summary.results)


def admin_page():
    st.header("Admin")
    token = st.query_params.get("admin_token", "")
    dashboard = st.session_state.admin
    if dashboard is None or dashboard.admin_token != token:
        dashboard = st.session_state.admin = AdminDashboard(get_client(), token)

    if not dashboard.permitted:
        st.error(dashboard.message)
        return

    group = st.selectbox("Group", group_options())
    if st.button("Show", type="primary", disabled=dashboard.busy):
        dashboard.load(group)

    if dashboard.message:
        st.warning(dashboard.message)
    table = dashboard.table
    if table is not None:
        st.caption(f"Period: {table.cycle_start} to {table.cycle_end}")
        st.dataframe(table.to_frame(), hide_index=True, use_container_width=True)
        flagged = table.flagged_cells()
        if flagged:
            st.caption(f"{len(flagged)} weekly grade(s) of C need attention.")


# --- Main Application ---
def main():
    """Main function to run the Streamlit application."""
    initialize_session_state()
    apply_custom_css()

    page = st.sidebar.radio(
        "View",
        list(PAGES),
        index=list(PAGES).index(st.session_state.page),
        format_func=PAGES.get,
    )
    if page != st.session_state.page:
        go_to(page)

    if page == "login":
        login_page()
    elif page == "student":
        student_page()
    elif page == "parent":
        parent_page()
    else:
        admin_page()


if __name__ == "__main__":
    main()
