"""Pytest fixtures for the study report client tests."""

from __future__ import annotations

import os
import sys
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from device_session import MemorySessionStore  # noqa: E402

TODAY = "2025-12-03"
ADMIN_TOKEN = "secret"


class FakeBackend:
    """In-memory stand-in for the relay + backend, speaking the same envelopes."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Dict[str, Any], Dict[str, Any]]] = []
        self.responses: Dict[str, Dict[str, Any]] = {}
        self.students = {
            ("グループ3", "山田太郎"): {
                "student_key": "S001",
                "email": "taro@example.com",
                "display_name": "山田太郎",
                "group_name": "グループ3",
            },
        }
        self.tokens: Dict[str, Dict[str, Any]] = {}
        self.reports: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.team_grade: Optional[str] = None
        self.closed = False

    # --- context manager, like ReportApiClient ---------------------------------
    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeBackend":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def paths(self) -> List[str]:
        return [path for path, _, _ in self.calls]

    def issue_token(self, student_key: str = "S001") -> str:
        student = next(s for s in self.students.values() if s["student_key"] == student_key)
        token = f"tok-{len(self.tokens) + 1}"
        self.tokens[token] = student
        return token

    def call(self, path: str, body=None, query=None) -> Dict[str, Any]:
        body = dict(body or {})
        query = dict(query or {})
        self.calls.append((path, body, query))
        if path in self.responses:
            return self.responses[path]
        handler = {
            "/auth/first-login": self._first_login,
            "/auth/auto-login": self._auto_login,
            "/auth/email-hint": self._email_hint,
            "/student/get-week": self._get_week,
            "/student/submit": self._submit,
            "/parent/resolve-student": self._resolve_student,
            "/parent/get-week-summary": self._week_summary,
            "/admin/group-table": self._group_table,
        }.get(path)
        if handler is None:
            return {"ok": False, "message": f"unknown path {path}"}
        return handler(body, query)

    # --- endpoints ---------------------------------------------------------------
    def _first_login(self, body, query):
        student = self.students.get((body.get("group_name"), body.get("name_raw")))
        if not student or student["email"] != body.get("email_raw"):
            return {"ok": False, "message": "not found"}
        token = self.issue_token(student["student_key"])
        return {"ok": True, "device_token": token, **{k: v for k, v in student.items() if k != "email"}}

    def _auto_login(self, body, query):
        student = self.tokens.get(body.get("device_token"))
        if not student:
            return {"ok": False, "message": "unknown device"}
        return {"ok": True, **{k: v for k, v in student.items() if k != "email"}}

    def _email_hint(self, body, query):
        student = self.students.get((body.get("group_name"), body.get("name_raw")))
        if not student:
            return {"ok": False, "message": "not found"}
        return {"ok": True, "email_hint": "t***@example.com"}

    @staticmethod
    def _week_dates(selected: str) -> List[str]:
        day = date.fromisoformat(selected)
        monday = day - timedelta(days=day.weekday())
        return [(monday + timedelta(days=i)).isoformat() for i in range(7)]

    def _get_week(self, body, query):
        key = body.get("student_key")
        if key not in {s["student_key"] for s in self.students.values()}:
            return {"ok": False, "message": "unknown student"}
        selected = body.get("selected_date")
        calendar = []
        for day in self._week_dates(selected):
            report = self.reports.get((key, day))
            mark = ""
            if report:
                mark = "◎" if report["plan_status"] == "achieved" else "○"
            calendar.append({"date": day, "mark": mark})
        previous = (date.fromisoformat(selected) - timedelta(days=1)).isoformat()
        earlier = self.reports.get((key, previous))
        support = None
        if earlier and earlier.get("improvement_choice"):
            support = {"raw": earlier["improvement_choice"], "text": f"Try: {earlier['improvement_choice']}"}
        return {
            "ok": True,
            "calendar": calendar,
            "selected_date": selected,
            "existing_report": self.reports.get((key, selected)),
            "improvement_support": support,
        }

    def _results(self, key: str, anchor: str) -> Dict[str, Any]:
        week = self._week_dates(anchor)
        reports = [self.reports[(key, d)] for d in week if (key, d) in self.reports]
        achieved = sum(1 for r in reports if r["plan_status"] == "achieved")
        not_achieved = len(reports) - achieved
        total_minutes = sum(r["study_minutes"] for r in reports)
        results = {
            "streak_days": len(reports),
            "week_achieved_rate_pct": round(achieved / 7 * 100),
            "pie": {"achieved": achieved, "not_achieved": not_achieved, "unreported": 7 - len(reports)},
            "week_total_hours": round(total_minutes / 60, 1),
            "avg_daily_hours": round(total_minutes / 60 / 7, 2),
            "grade": "S" if achieved >= 5 else "A" if achieved >= 3 else "B" if achieved else "C",
            "grade_message": "Nice work this week!",
        }
        if self.team_grade:
            results["team_grade"] = self.team_grade
            results["team_grade_message"] = "The team is on track."
        return results

    def _submit(self, body, query):
        key = body["student_key"]
        record = {
            "report_date": body["report_date"],
            "plan_status": body["plan_status"],
            "study_minutes": body["study_minutes"],
            "not_achieved_reason": body["not_achieved_reason"] or None,
            "improvement_choice": body["improvement_choice"] or None,
        }
        self.reports[(key, body["report_date"])] = record
        return {"ok": True, "results": self._results(key, body["report_date"])}

    def _resolve_student(self, body, query):
        student = self.students.get((body.get("group_name"), body.get("name_raw")))
        if not student:
            return {"ok": False, "message": ""}
        return {"ok": True, "student_key": student["student_key"]}

    def _week_summary(self, body, query):
        return {
            "ok": True,
            "improvement_support": {"raw": "x", "text": "Study for 5 minutes at lunch"},
            "results": self._results(body["student_key"], TODAY),
        }

    def _group_table(self, body, query):
        if query.get("admin_token") != ADMIN_TOKEN:
            return {"ok": False, "message": "no permission"}
        return {
            "ok": True,
            "group_name": query.get("group_name"),
            "cycle": {"start": "2025-12-01", "end": "2025-12-28"},
            "weeks": ["2025-W49", "2025-W50"],
            "rows": [
                {
                    "name": "山田太郎",
                    "student_key": "S001",
                    "latest_grade": "A",
                    "period_reports_days": 9,
                    "period_total_hours": 11.5,
                    "latest_streak_days": 4,
                    "weeks": {
                        "2025-W49": {"grade": "A", "reports": "5", "rate": "71%", "hours": "6.5h"},
                        "2025-W50": {"grade": "C", "reports": "4", "rate": "14%", "hours": "5h"},
                    },
                }
            ],
        }


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def logged_in_store(backend) -> MemorySessionStore:
    return MemorySessionStore(backend.issue_token("S001"))
