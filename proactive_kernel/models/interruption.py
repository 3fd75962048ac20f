"""Interruption — the engine's decision to speak, and the signals it is chosen from."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from proactive_kernel.models.business import BusinessEvent, Debt, Job, Reminder


class TriggerKind(str, Enum):
    UNSAFE_ACTION = "UNSAFE_ACTION"
    OVERDUE_COMMITMENT = "OVERDUE_COMMITMENT"
    AGING_DEBT = "AGING_DEBT"
    BLOCKING_TASK = "BLOCKING_TASK"
    CUSTOMER_DELAY = "CUSTOMER_DELAY"
    INVALIDATED_PLAN = "INVALIDATED_PLAN"
    END_OF_DAY = "END_OF_DAY"
    COSTLY_PATTERN = "COSTLY_PATTERN"
    ACTIONABLE_SUMMARY = "ACTIONABLE_SUMMARY"
    QUIET_DAY = "QUIET_DAY"


class InterruptionPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    IMMEDIATE = "immediate"     # On-demand answers


class InterruptionAction(str, Enum):
    """Follow-up side effects the Delivery Controller knows how to perform."""
    MARK_REMINDER_FIRED = "mark_reminder_fired"


class SummaryType(str, Enum):
    TIPS = "tips"
    DEBTS = "debts"
    OPEN_REPAIRS = "open_repairs"
    TASKS = "tasks"


class UnsafeReason(str, Enum):
    UNRESOLVED_REFERENCE = "unresolved_reference"
    LARGE_AMOUNT = "large_amount"
    MISSING_RECIPIENT = "missing_recipient"


# --- Payloads (one variant per trigger kind) ---

class UnsafeActionPayload(BaseModel):
    kind: Literal["unsafe_action"] = "unsafe_action"
    action: str
    reason: UnsafeReason
    amount: Optional[float] = None


class ReminderPayload(BaseModel):
    kind: Literal["reminder"] = "reminder"
    reminder: Reminder
    overdue: bool


class AgingDebtPayload(BaseModel):
    kind: Literal["aging_debt"] = "aging_debt"
    debt: Debt
    days_outstanding: int


class BlockingJobsPayload(BaseModel):
    kind: Literal["blocking_jobs"] = "blocking_jobs"
    count: int


class UncollectedJobPayload(BaseModel):
    kind: Literal["uncollected_job"] = "uncollected_job"
    job: Job
    days_waiting: int


class MissedContactPayload(BaseModel):
    kind: Literal["missed_contact"] = "missed_contact"
    event: BusinessEvent
    debt: Debt


class CloseoutPayload(BaseModel):
    kind: Literal["closeout"] = "closeout"
    income_total: float
    open_jobs: int


class CostlyPatternPayload(BaseModel):
    kind: Literal["costly_pattern"] = "costly_pattern"
    counterparty: str
    issue_count: int


class SummaryPayload(BaseModel):
    kind: Literal["summary"] = "summary"
    summary_type: SummaryType
    command: str


class QuietDayPayload(BaseModel):
    kind: Literal["quiet_day"] = "quiet_day"


InterruptionPayload = Annotated[
    Union[
        UnsafeActionPayload,
        ReminderPayload,
        AgingDebtPayload,
        BlockingJobsPayload,
        UncollectedJobPayload,
        MissedContactPayload,
        CloseoutPayload,
        CostlyPatternPayload,
        SummaryPayload,
        QuietDayPayload,
    ],
    Field(discriminator="kind"),
]


class Signal(BaseModel):
    """
    A candidate interruption returned by one trigger.

    Carries everything but the evaluation timestamp. Either a rendered
    message or a summary type is required.
    """

    id: str                                 # Deterministic per logical occurrence
    trigger: TriggerKind
    priority: InterruptionPriority
    message: Optional[str] = None
    expects_response: bool = False
    data: Optional[InterruptionPayload] = None
    action: Optional[InterruptionAction] = None
    summary_type: Optional[SummaryType] = None
    synchronous: bool = False
    blocking: bool = False

    @model_validator(mode="after")
    def _require_message_or_summary(self) -> "Signal":
        if not self.message and self.summary_type is None:
            raise ValueError("signal needs either a message or a summary_type")
        return self


class Interruption(BaseModel):
    """The engine's output unit. At most one per evaluation."""

    id: str
    trigger: TriggerKind
    message: str = ""
    priority: InterruptionPriority
    expects_response: bool = False
    data: Optional[InterruptionPayload] = None
    action: Optional[InterruptionAction] = None
    summary_type: Optional[SummaryType] = None
    synchronous: bool = False
    blocking: bool = False
    timestamp: datetime                     # Evaluation time, not event time

    @classmethod
    def from_signal(cls, signal: Signal, timestamp: datetime) -> "Interruption":
        return cls(
            id=signal.id,
            trigger=signal.trigger,
            message=signal.message or "",
            priority=signal.priority,
            expects_response=signal.expects_response,
            data=signal.data,
            action=signal.action,
            summary_type=signal.summary_type,
            synchronous=signal.synchronous,
            blocking=signal.blocking,
            timestamp=timestamp,
        )
