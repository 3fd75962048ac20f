"""Audit Record — one append-only entry per delivered interruption or user response."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from proactive_kernel.models.interruption import InterruptionPriority, TriggerKind


class AuditEventType(str, Enum):
    INTERRUPTION = "assistant_interruption"
    RESPONSE = "interruption_response"


class AuditRecord(BaseModel):
    """
    The external event log entry. Every delivered interruption produces one;
    every user reply to an interruption produces another.
    """

    id: str
    subject_id: str
    event_type: AuditEventType
    interruption_id: str
    trigger: Optional[TriggerKind] = None
    message: str = ""
    priority: Optional[InterruptionPriority] = None
    response: Optional[str] = None
    recorded_at: datetime

    # INTEGRITY
    signature: str = ""
    prior_record_hash: Optional[str] = None
