"""Week calendar for one student and the report form bound to a selected day."""
from __future__ import annotations

import dataclasses
import enum
import logging
from typing import Any, Mapping, Optional, Tuple

from analytics import AnalyticsSummary
from formatting import DEFAULT_TIMEZONE, today_in
from report_api import ProtocolError, ReportApiError
from report_draft import DraftEvent, ReportDraft, ReportRecord, transition

LOGGER = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "This service is not available right now."


class Mark(str, enum.Enum):
    NONE = ""
    SUBMITTED = "○"
    ACHIEVED = "◎"

    @classmethod
    def parse(cls, value: Any) -> "Mark":
        try:
            return cls(value or "")
        except ValueError:
            LOGGER.warning("Unknown calendar mark %r", value)
            return cls.NONE


@dataclasses.dataclass(frozen=True)
class CalendarDay:
    date: str
    mark: Mark = Mark.NONE

    @property
    def short_date(self) -> str:
        return self.date[5:]


@dataclasses.dataclass(frozen=True)
class WeekView:
    calendar: Tuple[CalendarDay, ...]
    selected_date: str
    existing_report: Optional[ReportRecord] = None
    improvement_support_text: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], requested_date: str) -> "WeekView":
        try:
            calendar = tuple(
                CalendarDay(date=str(day["date"]), mark=Mark.parse(day.get("mark")))
                for day in payload.get("calendar") or []
            )
            existing = payload.get("existing_report")
            record = ReportRecord.from_payload(existing) if existing else None
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ProtocolError(f"Malformed week payload: {exc}") from exc

        selected = str(payload.get("selected_date") or requested_date)
        # An empty calendar (no roster week yet) still carries a usable selection.
        if calendar and selected not in {day.date for day in calendar}:
            raise ProtocolError(f"Selected date {selected} is not part of the returned week")

        support = payload.get("improvement_support") or {}
        text = support.get("text") if isinstance(support, Mapping) else None
        return cls(
            calendar=calendar,
            selected_date=selected,
            existing_report=record,
            improvement_support_text=text or None,
        )

    @property
    def has_existing_report(self) -> bool:
        return self.existing_report is not None


@dataclasses.dataclass(frozen=True)
class Selection:
    student_key: str
    selected_date: str


class WeekViewController:
    """Keeps the week view, the draft and the analytics card consistent with the selection.

    Every fetch is tagged with the selection it was issued for; a response
    whose tag no longer matches the current selection is dropped.
    """

    def __init__(
        self,
        client,
        student_key: str,
        selected_date: Optional[str] = None,
        *,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        self.client = client
        self.selection = Selection(student_key, selected_date or today_in(timezone))
        self.week: Optional[WeekView] = None
        self.draft = ReportDraft.default()
        self.analytics: Optional[AnalyticsSummary] = None
        self.analytics_date: Optional[str] = None
        self.message = ""
        self.busy = False

    @property
    def student_key(self) -> str:
        return self.selection.student_key

    @property
    def selected_date(self) -> str:
        return self.selection.selected_date

    def select_date(self, selected_date: str) -> bool:
        if self.busy:
            LOGGER.debug("Ignoring date selection %s while busy", selected_date)
            return False
        self.selection = dataclasses.replace(self.selection, selected_date=selected_date)
        return self.load()

    def load(self) -> bool:
        """Fetch the week for the current selection. Returns True when applied."""

        ticket = self.selection
        self.busy = True
        self.message = ""
        try:
            payload = self.client.call(
                "/student/get-week",
                {"student_key": ticket.student_key, "selected_date": ticket.selected_date},
            )
        except ReportApiError as exc:
            if ticket == self.selection:
                self.message = str(exc)
            return False
        finally:
            self.busy = False
        return self.apply(ticket, payload)

    def apply(self, ticket: Selection, payload: Mapping[str, Any]) -> bool:
        if ticket != self.selection:
            LOGGER.info("Discarding week for %s; selection is now %s", ticket.selected_date, self.selected_date)
            return False

        if not payload.get("ok"):
            self.message = str(payload.get("message") or UNAVAILABLE_MESSAGE)
            return False

        try:
            week = WeekView.from_payload(payload, ticket.selected_date)
        except ProtocolError as exc:
            self.message = str(exc)
            return False

        self.week = week
        if week.selected_date != ticket.selected_date:
            self.selection = dataclasses.replace(ticket, selected_date=week.selected_date)

        if week.existing_report is not None:
            self.draft = ReportDraft.from_record(week.existing_report)
            if self.analytics_date != week.selected_date:
                self.clear_analytics()
        else:
            # An unsubmitted day never shows analytics.
            self.draft = ReportDraft.default()
            self.clear_analytics()
        return True

    def update(self, event: DraftEvent) -> ReportDraft:
        if self.busy:
            return self.draft
        self.draft = transition(self.draft, event)
        return self.draft

    def show_analytics(self, summary: AnalyticsSummary) -> None:
        self.analytics = summary
        self.analytics_date = self.selected_date

    def clear_analytics(self) -> None:
        self.analytics = None
        self.analytics_date = None
