"""Weekly analytics returned by the backend and their display rows."""
from __future__ import annotations

import dataclasses
from typing import Any, List, Mapping, Optional, Tuple

from formatting import hours_label, pie_boundaries
from report_api import ProtocolError


@dataclasses.dataclass(frozen=True)
class PieCounts:
    achieved: int = 0
    not_achieved: int = 0
    unreported: int = 0

    def boundaries(self) -> Tuple[float, float]:
        return pie_boundaries(self.achieved, self.not_achieved, self.unreported)


@dataclasses.dataclass(frozen=True)
class AnalyticsSummary:
    """Snapshot of a student's week. Replaced wholesale, never edited."""

    streak_days: int
    week_achieved_rate_pct: float
    pie: PieCounts
    week_total_hours: float
    avg_daily_hours: float
    grade: str
    grade_message: str
    team_grade: Optional[str] = None
    team_grade_message: Optional[str] = None

    @classmethod
    def from_payload(cls, results: Mapping[str, Any]) -> "AnalyticsSummary":
        if not isinstance(results, Mapping):
            raise ProtocolError(f"Expected an analytics object, got {type(results).__name__}")
        pie = results.get("pie") or {}
        try:
            return cls(
                streak_days=int(results.get("streak_days") or 0),
                week_achieved_rate_pct=results.get("week_achieved_rate_pct") or 0,
                pie=PieCounts(
                    achieved=int(pie.get("achieved") or 0),
                    not_achieved=int(pie.get("not_achieved") or 0),
                    unreported=int(pie.get("unreported") or 0),
                ),
                week_total_hours=float(results.get("week_total_hours") or 0),
                avg_daily_hours=float(results.get("avg_daily_hours") or 0),
                grade=str(results.get("grade") or ""),
                grade_message=str(results.get("grade_message") or ""),
                team_grade=results.get("team_grade") or None,
                team_grade_message=results.get("team_grade_message") or None,
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise ProtocolError(f"Malformed analytics: {exc}") from exc

    @property
    def has_team_grade(self) -> bool:
        return bool(self.team_grade)


@dataclasses.dataclass(frozen=True)
class SummaryRow:
    key: str
    label: str
    value: str


def format_rate(pct: Any) -> str:
    # Shown exactly as the backend computed it.
    return f"{pct}%"


def present_summary(summary: AnalyticsSummary, *, show_average: bool = False) -> List[SummaryRow]:
    """Ordered display rows for *summary*; team rows only when a team grade exists."""

    pie = summary.pie
    rows = [
        SummaryRow("streak", "Reporting streak", f"{summary.streak_days} days in a row"),
        SummaryRow("rate", "Plan achievement this week", f"{format_rate(summary.week_achieved_rate_pct)} achieved"),
        SummaryRow("pie_achieved", "Achieved", f"{pie.achieved} days"),
        SummaryRow("pie_not_achieved", "Not achieved", f"{pie.not_achieved} days"),
        SummaryRow("pie_unreported", "Not reported", f"{pie.unreported} days"),
        SummaryRow("total_hours", "Study time this week", hours_label(summary.week_total_hours)),
    ]
    if show_average:
        rows.append(SummaryRow("avg_hours", "Study time per day", hours_label(summary.avg_daily_hours)))
    rows.append(SummaryRow("grade", "Grade", summary.grade))
    rows.append(SummaryRow("grade_message", "Comment", summary.grade_message))
    if summary.has_team_grade:
        rows.append(SummaryRow("team_grade", "Team grade", str(summary.team_grade)))
        if summary.team_grade_message:
            rows.append(SummaryRow("team_grade_message", "Team comment", summary.team_grade_message))
    return rows
