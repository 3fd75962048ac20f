"""Proactive Kernel data models."""

from proactive_kernel.models.audit import AuditEventType, AuditRecord
from proactive_kernel.models.business import (
    OPEN_JOB_STATUSES,
    BusinessEvent,
    Debt,
    DebtDirection,
    Job,
    JobStatus,
    Reminder,
)
from proactive_kernel.models.config import ControllerConfig, EngineConfig
from proactive_kernel.models.context import (
    EvaluationContext,
    PendingAction,
    PendingActionEntities,
)
from proactive_kernel.models.interruption import (
    AgingDebtPayload,
    BlockingJobsPayload,
    CloseoutPayload,
    CostlyPatternPayload,
    Interruption,
    InterruptionAction,
    InterruptionPriority,
    MissedContactPayload,
    QuietDayPayload,
    ReminderPayload,
    Signal,
    SummaryPayload,
    SummaryType,
    TriggerKind,
    UncollectedJobPayload,
    UnsafeActionPayload,
    UnsafeReason,
)

__all__ = [
    "AgingDebtPayload",
    "AuditEventType",
    "AuditRecord",
    "BlockingJobsPayload",
    "BusinessEvent",
    "CloseoutPayload",
    "ControllerConfig",
    "CostlyPatternPayload",
    "Debt",
    "DebtDirection",
    "EngineConfig",
    "EvaluationContext",
    "Interruption",
    "InterruptionAction",
    "InterruptionPriority",
    "Job",
    "JobStatus",
    "MissedContactPayload",
    "OPEN_JOB_STATUSES",
    "PendingAction",
    "PendingActionEntities",
    "QuietDayPayload",
    "Reminder",
    "ReminderPayload",
    "Signal",
    "SummaryPayload",
    "SummaryType",
    "TriggerKind",
    "UncollectedJobPayload",
    "UnsafeActionPayload",
    "UnsafeReason",
]
