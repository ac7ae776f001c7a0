"""Submit the current draft, then re-read the week from the backend."""
from __future__ import annotations

import logging
from typing import Optional

from analytics import AnalyticsSummary
from report_api import ReportApiError
from report_draft import is_submittable
from week_view import WeekViewController

LOGGER = logging.getLogger(__name__)

SUBMIT_FAILED_MESSAGE = "Submission failed."


class ReportSubmitter:
    """Write-then-read cycle for the report form.

    The backend's analytics replace the controller's card wholesale and the
    week is fetched again so the calendar mark and the "already submitted"
    note reflect the stored record.
    """

    def __init__(self, client, controller: WeekViewController) -> None:
        self.client = client
        self.controller = controller

    def can_submit(self) -> bool:
        controller = self.controller
        return not controller.busy and is_submittable(
            controller.draft, controller.student_key, controller.selected_date
        )

    def submit(self) -> Optional[AnalyticsSummary]:
        if not self.can_submit():
            LOGGER.debug("Submit ignored: draft not submittable or screen busy")
            return None

        controller = self.controller
        payload = controller.draft.to_payload(controller.student_key, controller.selected_date)
        controller.busy = True
        controller.message = ""
        try:
            response = self.client.call("/student/submit", payload)
            if not response.get("ok"):
                controller.message = str(response.get("message") or SUBMIT_FAILED_MESSAGE)
                return None
            summary = AnalyticsSummary.from_payload(response.get("results") or {})
        except ReportApiError as exc:
            controller.message = str(exc)
            return None
        finally:
            controller.busy = False

        LOGGER.info("Report for %s submitted", payload["report_date"])
        controller.show_analytics(summary)
        controller.load()
        return summary
