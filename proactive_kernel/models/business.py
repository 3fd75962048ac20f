"""Business records — the rows the State Reader serves to triggers."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field


def to_local_naive(value: datetime) -> datetime:
    """Timestamps are naive local time throughout; aware inputs are converted."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


LocalDateTime = Annotated[datetime, AfterValidator(to_local_naive)]


class DebtDirection(str, Enum):
    OWED_TO_ME = "owed_to_me"
    I_OWE = "i_owe"


class JobStatus(str, Enum):
    INTAKE = "intake"
    DIAGNOSING = "diagnosing"
    WAITING_PARTS = "waiting_parts"     # Blocked on an external dependency
    IN_PROGRESS = "in_progress"
    DONE = "done"                       # Completed, not yet claimed
    PICKED_UP = "picked_up"


OPEN_JOB_STATUSES = (
    JobStatus.INTAKE,
    JobStatus.DIAGNOSING,
    JobStatus.WAITING_PARTS,
    JobStatus.IN_PROGRESS,
)


class Reminder(BaseModel):
    """A commitment the user asked to be reminded about."""

    id: str
    message: str
    remind_at: LocalDateTime
    fired: bool = False
    fired_at: Optional[LocalDateTime] = None


class Debt(BaseModel):
    """Money owed to or by the business."""

    id: str
    person: str
    amount: float = Field(ge=0)
    direction: DebtDirection = DebtDirection.OWED_TO_ME
    created_at: LocalDateTime
    resolved: bool = False


class Job(BaseModel):
    """A repair job moving through the shop."""

    id: str
    device_type: str
    status: JobStatus
    created_at: LocalDateTime
    completed_at: Optional[LocalDateTime] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None


class BusinessEvent(BaseModel):
    """
    A logged domain event: tips, missed calls, supplier issues, ...

    Only the fields relevant to the event type are populated.
    """

    id: str
    event_type: str                         # e.g., "tip", "missed_call", "supplier_issue"
    created_at: LocalDateTime
    amount: Optional[float] = None
    caller: Optional[str] = None            # missed_call
    supplier: Optional[str] = None          # supplier_issue
    note: Optional[str] = None
