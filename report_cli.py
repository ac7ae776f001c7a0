"""Command-line access to the study report backend.

Typical usage:
    report-cli login --group グループ3 --name YamadaTaro --email abc@example.com
    report-cli week --date 2025-12-03
    report-cli submit --date 2025-12-03 --status not_achieved --minutes 40 \\
        --reason 疲れていた --improvement "立ったまま5分だけ勉強する"
    report-cli admin --group グループ3 --admin-token ...

The device token is kept in ``STUDY_REPORT_TOKEN_PATH`` so later commands
log in automatically.
"""
from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
from typing import Iterable, Optional

from analytics import AnalyticsSummary, present_summary
from cohort_views import AdminDashboard, ParentLookup
from device_session import FileSessionStore, SessionResolver, SessionState, first_login
from formatting import DEFAULT_TIMEZONE, minutes_label
from report_api import ReportApiClient, ReportApiError, ValidationError
from report_draft import (
    OTHER_REASON,
    REASONS,
    PlanStatus,
    ReportDraft,
    SetImprovementChoice,
    SetImprovementOther,
    SetPlanStatus,
    SetReason,
    SetReasonOther,
    SetStudyMinutes,
)
from submission import ReportSubmitter
from week_view import WeekViewController

LOGGER = logging.getLogger(__name__)


def _env(key: str) -> str:
    try:
        return os.environ[key]
    except KeyError as exc:
        raise SystemExit(f"Missing required environment variable: {key}") from exc


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _print_summary(summary: AnalyticsSummary, as_json: bool) -> None:
    if as_json:
        _print_json(dataclasses.asdict(summary))
        return
    for row in present_summary(summary, show_average=True):
        print(f"  {row.label}: {row.value}")


def _controller(client, store, args) -> WeekViewController:
    resolver = SessionResolver(client, store)
    if resolver.resolve() is not SessionState.AUTHENTICATED:
        reason = f" ({resolver.message})" if resolver.message else ""
        raise ValidationError(f"Not logged in on this device{reason}. Run 'login' first.")
    timezone = os.environ.get("STUDY_REPORT_TIMEZONE", DEFAULT_TIMEZONE)
    return WeekViewController(client, resolver.session.student_key, args.date, timezone=timezone)


def cmd_login(client, store, args) -> int:
    session = first_login(client, store, args.group, args.name, args.email)
    if args.json:
        _print_json(dataclasses.asdict(session))
    else:
        print(f"Logged in as {session.display_name or args.name} ({session.group_name or args.group})")
    return 0


def cmd_whoami(client, store, args) -> int:
    resolver = SessionResolver(client, store)
    if resolver.resolve() is not SessionState.AUTHENTICATED:
        print("Not logged in on this device.")
        return 1
    session = resolver.session
    if args.json:
        _print_json(dataclasses.asdict(session))
    else:
        print(f"{session.display_name} ({session.group_name})")
    return 0


def cmd_logout(client, store, args) -> int:
    store.clear()
    print("Device token removed.")
    return 0


def cmd_week(client, store, args) -> int:
    controller = _controller(client, store, args)
    if not controller.load():
        print(controller.message or "Week could not be loaded.", file=sys.stderr)
        return 1
    week = controller.week
    if args.json:
        _print_json(dataclasses.asdict(week))
        return 0
    for day in week.calendar:
        cursor = ">" if day.date == week.selected_date else " "
        print(f"{cursor} {day.date} {day.mark.value or '-'}")
    if week.improvement_support_text:
        print(f"Today's idea: {week.improvement_support_text}")
    record = week.existing_report
    if record is None:
        print(f"No report for {week.selected_date} yet.")
    else:
        print(f"Reported {record.plan_status.value}, {minutes_label(record.study_minutes)}")
        if record.not_achieved_reason:
            print(f"  reason: {record.not_achieved_reason}")
        if record.improvement_choice:
            print(f"  improvement: {record.improvement_choice}")
    return 0


def cmd_submit(client, store, args) -> int:
    controller = _controller(client, store, args)
    if not controller.load():
        print(controller.message or "Week could not be loaded.", file=sys.stderr)
        return 1

    # Fields left off the command line are cleared, not carried over.
    controller.draft = ReportDraft.default()
    controller.update(SetPlanStatus(PlanStatus(args.status)))
    controller.update(SetStudyMinutes(args.minutes))
    if args.reason:
        if args.reason in REASONS:
            controller.update(SetReason(args.reason))
        else:
            controller.update(SetReason(OTHER_REASON))
            controller.update(SetReasonOther(args.reason))
    if args.improvement:
        if args.improvement in controller.draft.improvement_options:
            controller.update(SetImprovementChoice(args.improvement))
        else:
            controller.update(SetImprovementOther(args.improvement))

    problems = controller.draft.problems(controller.student_key, controller.selected_date)
    if problems:
        raise ValidationError("; ".join(problems))

    summary = ReportSubmitter(client, controller).submit()
    if summary is None:
        print(controller.message or "Submission failed.", file=sys.stderr)
        return 1
    if not args.json:
        print(f"Report for {controller.selected_date} saved.")
    _print_summary(summary, args.json)
    return 0


def cmd_parent(client, store, args) -> int:
    lookup = ParentLookup(client)
    summary = lookup.show(args.group, args.name)
    if summary is None:
        print(lookup.message, file=sys.stderr)
        return 1
    if not args.json and summary.improvement_support_text:
        print(f"Today's idea: {summary.improvement_support_text}")
    _print_summary(summary.results, args.json)
    return 0


def cmd_admin(client, store, args) -> int:
    dashboard = AdminDashboard(client, args.admin_token or os.environ.get("STUDY_REPORT_ADMIN_TOKEN", ""))
    table = dashboard.load(args.group)
    if table is None:
        print(dashboard.message, file=sys.stderr)
        return 1
    if args.json:
        _print_json(dataclasses.asdict(table))
        return 0
    print(f"{table.group_name}: {table.cycle_start} to {table.cycle_end}")
    print(table.to_frame().to_string(index=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Daily study report client")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, ...)")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Register this device for a student")
    login.add_argument("--group", required=True)
    login.add_argument("--name", required=True, help="Full name without spaces")
    login.add_argument("--email", required=True)
    login.set_defaults(handler=cmd_login)

    sub.add_parser("whoami", help="Show the student this device is logged in as").set_defaults(handler=cmd_whoami)
    sub.add_parser("logout", help="Forget this device's token").set_defaults(handler=cmd_logout)

    week = sub.add_parser("week", help="Show the week around a date")
    week.add_argument("--date", default=None, help="YYYY-MM-DD (defaults to today)")
    week.set_defaults(handler=cmd_week)

    submit = sub.add_parser("submit", help="Submit or overwrite the report for a date")
    submit.add_argument("--date", default=None, help="YYYY-MM-DD (defaults to today)")
    submit.add_argument("--status", required=True, choices=[s.value for s in PlanStatus])
    submit.add_argument("--minutes", required=True, type=int, help="Study minutes, 0 to 720")
    submit.add_argument("--reason", default="", help="Why the plan was not achieved")
    submit.add_argument("--improvement", default="", help="What to try from tomorrow")
    submit.set_defaults(handler=cmd_submit)

    parent = sub.add_parser("parent", help="Weekly summary for a child")
    parent.add_argument("--group", required=True)
    parent.add_argument("--name", required=True)
    parent.set_defaults(handler=cmd_parent)

    admin = sub.add_parser("admin", help="Group table for administrators")
    admin.add_argument("--group", required=True)
    admin.add_argument("--admin-token", default="", help="Defaults to STUDY_REPORT_ADMIN_TOKEN")
    admin.set_defaults(handler=cmd_admin)
    return parser


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING))

    client = ReportApiClient(_env("STUDY_REPORT_API_BASE"), timeout=float(os.environ.get("STUDY_REPORT_TIMEOUT", "30")))
    store = FileSessionStore.from_env()
    with client:
        try:
            return args.handler(client, store, args)
        except ValidationError as exc:
            print(f"Invalid input: {exc}", file=sys.stderr)
            return 1
        except ReportApiError as exc:
            LOGGER.debug("Command %s failed", args.command, exc_info=exc)
            print(str(exc), file=sys.stderr)
            return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main(sys.argv[1:]))
