"""Daily report form as a small state machine.

A draft is either ``Achieved`` or ``NotAchieved``. Only the latter carries a
reason and an improvement for tomorrow, so the two can never disagree with
the plan status. Every edit goes through :func:`transition`, which returns a
new draft.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from formatting import MAX_STUDY_MINUTES
from report_api import ValidationError

LOGGER = logging.getLogger(__name__)


class PlanStatus(str, enum.Enum):
    ACHIEVED = "achieved"
    NOT_ACHIEVED = "not_achieved"


# Catalog values are stored by the backend verbatim; do not translate them.
OTHER_REASON = "その他"

REASONS: Tuple[str, ...] = (
    "時間がなかった",
    "疲れていた",
    "スマホ・ゲーム",
    "難しくて止まった",
    OTHER_REASON,
)

IMPROVEMENTS: Dict[str, Tuple[str, ...]] = {
    "時間がなかった": (
        "昼休みに5分だけ勉強する",
        "通学中に5分だけ勉強する",
        "帰宅してすぐ5分だけ勉強する",
        "お風呂前に5分だけ勉強する",
    ),
    "疲れていた": (
        "明日10分早く起きて5分だけ勉強する",
        "立ったまま5分だけ勉強する",
        "ストレッチしてから5分だけ勉強する",
        "いつもと場所を変えて勉強する",
        "チームメンバーと自習室で勉強する",
    ),
    "スマホ・ゲーム": (
        "別の部屋に置いてから勉強する",
        "スマホ・ゲームの時間帯を決めておく",
        "先に勉強を終わらせる",
        "いつもと場所を変えて勉強する",
    ),
    "難しくて止まった": (
        "一旦飛ばして後で考えてみる",
        "不明点を付箋に書いて次へ進む",
        "すぐに飛ばして明日考えてみる",
        "その日の勉強後にまとめて質問する",
    ),
    OTHER_REASON: (),
}


def improvement_options(reason: str) -> Tuple[str, ...]:
    return IMPROVEMENTS.get(reason, ())


@dataclasses.dataclass(frozen=True)
class ReportRecord:
    """A report as stored by the backend (one per student and date)."""

    report_date: str
    plan_status: PlanStatus
    study_minutes: int
    not_achieved_reason: Optional[str] = None
    improvement_choice: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ReportRecord":
        return cls(
            report_date=str(payload.get("report_date") or ""),
            plan_status=PlanStatus(payload.get("plan_status") or PlanStatus.ACHIEVED.value),
            study_minutes=int(payload.get("study_minutes") or 0),
            not_achieved_reason=payload.get("not_achieved_reason") or None,
            improvement_choice=payload.get("improvement_choice") or None,
        )


# --- Plan states -------------------------------------------------------------
@dataclasses.dataclass(frozen=True)
class Achieved:
    pass


@dataclasses.dataclass(frozen=True)
class NotAchieved:
    reason: str = ""
    reason_other: str = ""
    improvement_choice: str = ""
    improvement_other: str = ""


Plan = Union[Achieved, NotAchieved]


# --- Events ------------------------------------------------------------------
@dataclasses.dataclass(frozen=True)
class SetPlanStatus:
    status: PlanStatus


@dataclasses.dataclass(frozen=True)
class SetStudyMinutes:
    minutes: Any


@dataclasses.dataclass(frozen=True)
class SetReason:
    reason: str


@dataclasses.dataclass(frozen=True)
class SetReasonOther:
    text: str


@dataclasses.dataclass(frozen=True)
class SetImprovementChoice:
    choice: str


@dataclasses.dataclass(frozen=True)
class SetImprovementOther:
    text: str


DraftEvent = Union[
    SetPlanStatus,
    SetStudyMinutes,
    SetReason,
    SetReasonOther,
    SetImprovementChoice,
    SetImprovementOther,
]


@dataclasses.dataclass(frozen=True)
class ReportDraft:
    plan: Plan = dataclasses.field(default_factory=Achieved)
    study_minutes: Any = 0

    @classmethod
    def default(cls) -> "ReportDraft":
        return cls()

    @classmethod
    def from_record(cls, record: ReportRecord) -> "ReportDraft":
        """Seed an edit of *record*, mapping free-text values back to their fields."""

        if record.plan_status is PlanStatus.ACHIEVED:
            return cls(plan=Achieved(), study_minutes=record.study_minutes)

        stored_reason = record.not_achieved_reason or ""
        if stored_reason in REASONS or not stored_reason:
            reason, reason_other = stored_reason, ""
        else:
            reason, reason_other = OTHER_REASON, stored_reason

        stored_improvement = record.improvement_choice or ""
        if stored_improvement in improvement_options(reason):
            choice, other = stored_improvement, ""
        else:
            choice, other = "", stored_improvement

        plan = NotAchieved(
            reason=reason,
            reason_other=reason_other,
            improvement_choice=choice,
            improvement_other=other,
        )
        return cls(plan=plan, study_minutes=record.study_minutes)

    # --- derived view ------------------------------------------------------
    @property
    def plan_status(self) -> PlanStatus:
        if isinstance(self.plan, NotAchieved):
            return PlanStatus.NOT_ACHIEVED
        return PlanStatus.ACHIEVED

    @property
    def shows_reason(self) -> bool:
        return isinstance(self.plan, NotAchieved)

    @property
    def shows_reason_other(self) -> bool:
        return isinstance(self.plan, NotAchieved) and self.plan.reason == OTHER_REASON

    @property
    def shows_improvement(self) -> bool:
        return isinstance(self.plan, NotAchieved) and bool(self.plan.reason)

    @property
    def improvement_options(self) -> Tuple[str, ...]:
        if not self.shows_improvement:
            return ()
        return improvement_options(self.plan.reason)

    def minutes_in_range(self) -> bool:
        value = self.study_minutes
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not math.isfinite(value) or not float(value).is_integer():
            return False
        return 0 <= value <= MAX_STUDY_MINUTES

    def effective_reason(self) -> str:
        if not isinstance(self.plan, NotAchieved):
            return ""
        if self.plan.reason == OTHER_REASON:
            return self.plan.reason_other.strip() or OTHER_REASON
        return self.plan.reason

    def effective_improvement(self) -> str:
        if not isinstance(self.plan, NotAchieved):
            return ""
        return self.plan.improvement_choice or self.plan.improvement_other.strip()

    def problems(self, student_key: str, selected_date: str) -> List[str]:
        found: List[str] = []
        if not student_key:
            found.append("not signed in")
        if not selected_date:
            found.append("no date selected")
        if not self.minutes_in_range():
            found.append(f"study minutes must be a whole number between 0 and {MAX_STUDY_MINUTES}")
        if isinstance(self.plan, NotAchieved) and not self.plan.reason:
            found.append("a reason is required when the plan was not achieved")
        return found

    def to_payload(self, student_key: str, selected_date: str) -> Dict[str, Any]:
        problems = self.problems(student_key, selected_date)
        if problems:
            raise ValidationError("; ".join(problems))
        return {
            "student_key": student_key,
            "report_date": selected_date,
            "plan_status": self.plan_status.value,
            "study_minutes": int(self.study_minutes),
            "not_achieved_reason": self.effective_reason(),
            "improvement_choice": self.effective_improvement(),
        }


def is_submittable(draft: ReportDraft, student_key: str, selected_date: str) -> bool:
    return not draft.problems(student_key, selected_date)


def transition(draft: ReportDraft, event: DraftEvent) -> ReportDraft:
    """Apply *event* to *draft* and return the resulting draft."""

    plan = draft.plan

    if isinstance(event, SetPlanStatus):
        status = PlanStatus(event.status)
        if status is PlanStatus.ACHIEVED:
            return dataclasses.replace(draft, plan=Achieved())
        if isinstance(plan, NotAchieved):
            return draft
        return dataclasses.replace(draft, plan=NotAchieved())

    if isinstance(event, SetStudyMinutes):
        return dataclasses.replace(draft, study_minutes=event.minutes)

    if not isinstance(plan, NotAchieved):
        LOGGER.debug("Ignoring %s while the plan is achieved", type(event).__name__)
        return draft

    if isinstance(event, SetReason):
        if event.reason == plan.reason:
            return draft
        # Offered improvements depend on the reason; start them over.
        return dataclasses.replace(draft, plan=NotAchieved(reason=event.reason))

    if isinstance(event, SetReasonOther):
        return dataclasses.replace(draft, plan=dataclasses.replace(plan, reason_other=event.text))

    if isinstance(event, SetImprovementChoice):
        if event.choice and event.choice not in improvement_options(plan.reason):
            LOGGER.debug("Ignoring improvement %r for reason %r", event.choice, plan.reason)
            return draft
        return dataclasses.replace(draft, plan=dataclasses.replace(plan, improvement_choice=event.choice))

    if isinstance(event, SetImprovementOther):
        if not plan.reason:
            return draft
        return dataclasses.replace(draft, plan=dataclasses.replace(plan, improvement_other=event.text))

    raise TypeError(f"Unknown draft event: {event!r}")
