"""Read-only views for parents and group administrators."""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd

from analytics import AnalyticsSummary
from device_session import validate_name
from formatting import week_label
from report_api import ProtocolError, ReportApiError, ValidationError, require_ok

LOGGER = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "No matching student was found. Please check the group and name."
UNAVAILABLE_MESSAGE = "This service is not available right now."
NO_PERMISSION_MESSAGE = "No permission."
FLAGGED_GRADE = "C"


# --- Parent view ---------------------------------------------------------------
@dataclasses.dataclass(frozen=True)
class ParentSummary:
    student_key: str
    results: AnalyticsSummary
    improvement_support_text: Optional[str] = None


class ParentLookup:
    """Find a child by group and name, then fetch the week's summary."""

    def __init__(self, client) -> None:
        self.client = client
        self.summary: Optional[ParentSummary] = None
        self.message = ""
        self.busy = False

    def show(self, group_name: str, name: str) -> Optional[ParentSummary]:
        if self.busy:
            return None
        self.summary = None
        self.message = ""
        try:
            validate_name(group_name, name)
        except ValidationError as exc:
            self.message = str(exc)
            return None

        self.busy = True
        try:
            resolved = require_ok(
                self.client.call("/parent/resolve-student", {"group_name": group_name, "name_raw": name}),
                NOT_FOUND_MESSAGE,
            )
            student_key = str(resolved.get("student_key") or "")
            payload = require_ok(
                self.client.call("/parent/get-week-summary", {"student_key": student_key}),
                UNAVAILABLE_MESSAGE,
            )
            support = payload.get("improvement_support") or {}
            summary = ParentSummary(
                student_key=student_key,
                results=AnalyticsSummary.from_payload(payload.get("results") or {}),
                improvement_support_text=(support.get("text") if isinstance(support, Mapping) else None) or None,
            )
        except ReportApiError as exc:
            self.message = str(exc)
            return None
        finally:
            self.busy = False

        self.summary = summary
        return summary


# --- Admin view ----------------------------------------------------------------
@dataclasses.dataclass(frozen=True)
class WeekCell:
    grade: str = ""
    reports: str = ""
    rate: str = ""
    hours: str = ""

    @property
    def flagged(self) -> bool:
        return self.grade == FLAGGED_GRADE

    def as_text(self) -> str:
        return " / ".join(part for part in (self.grade, self.reports, self.rate, self.hours) if part)


@dataclasses.dataclass(frozen=True)
class GroupRow:
    name: str
    student_key: str
    latest_grade: str
    period_reports_days: int
    period_total_hours: float
    latest_streak_days: int
    weeks: Dict[str, WeekCell]

    def cell(self, week_id: str) -> WeekCell:
        return self.weeks.get(week_id) or WeekCell()


@dataclasses.dataclass(frozen=True)
class GroupTable:
    group_name: str
    cycle_start: str
    cycle_end: str
    weeks: Tuple[str, ...]
    rows: Tuple[GroupRow, ...]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GroupTable":
        try:
            cycle = payload.get("cycle") or {}
            rows = tuple(
                GroupRow(
                    name=str(row.get("name") or ""),
                    student_key=str(row.get("student_key") or ""),
                    latest_grade=str(row.get("latest_grade") or ""),
                    period_reports_days=int(row.get("period_reports_days") or 0),
                    period_total_hours=float(row.get("period_total_hours") or 0),
                    latest_streak_days=int(row.get("latest_streak_days") or 0),
                    weeks={
                        str(week_id): WeekCell(**{k: str(cell.get(k) or "") for k in ("grade", "reports", "rate", "hours")})
                        for week_id, cell in (row.get("weeks") or {}).items()
                    },
                )
                for row in payload.get("rows") or []
            )
            return cls(
                group_name=str(payload.get("group_name") or ""),
                cycle_start=str(cycle.get("start") or ""),
                cycle_end=str(cycle.get("end") or ""),
                weeks=tuple(str(w) for w in payload.get("weeks") or []),
                rows=rows,
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise ProtocolError(f"Malformed group table: {exc}") from exc

    def to_frame(self) -> pd.DataFrame:
        """One row per student; week columns are labelled by their Monday."""

        records: List[Dict[str, Any]] = []
        for row in self.rows:
            record: Dict[str, Any] = {
                "Name": row.name,
                "Latest grade": row.latest_grade,
                "Days reported": row.period_reports_days,
                "Total hours": f"{row.period_total_hours}h",
                "Streak": row.latest_streak_days,
            }
            for week_id in self.weeks:
                record[week_label(week_id)] = row.cell(week_id).as_text()
            records.append(record)
        columns = ["Name", "Latest grade", "Days reported", "Total hours", "Streak"]
        columns += [week_label(week_id) for week_id in self.weeks]
        return pd.DataFrame(records, columns=columns)

    def flagged_cells(self) -> List[Tuple[str, str]]:
        """(student_key, week_id) pairs whose weekly grade needs attention."""

        return [
            (row.student_key, week_id)
            for row in self.rows
            for week_id in self.weeks
            if row.cell(week_id).flagged
        ]


class AdminDashboard:
    def __init__(self, client, admin_token: str) -> None:
        self.client = client
        self.admin_token = admin_token or ""
        self.table: Optional[GroupTable] = None
        self.message = "" if self.admin_token else NO_PERMISSION_MESSAGE
        self.busy = False

    @property
    def permitted(self) -> bool:
        return bool(self.admin_token)

    def load(self, group_name: str) -> Optional[GroupTable]:
        if not self.permitted:
            self.message = NO_PERMISSION_MESSAGE
            return None
        if self.busy:
            return None

        self.busy = True
        self.message = ""
        self.table = None
        try:
            payload = self.client.call(
                "/admin/group-table",
                {},
                {"group_name": group_name, "admin_token": self.admin_token},
            )
            table = GroupTable.from_payload(require_ok(payload, NO_PERMISSION_MESSAGE))
        except ReportApiError as exc:
            LOGGER.info("Group table for %s unavailable: %s", group_name, exc)
            self.message = str(exc)
            return None
        finally:
            self.busy = False

        self.table = table
        return table
