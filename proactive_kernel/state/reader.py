"""
State Reader — read-only query surface over one subject's business records.

Queried by: Trigger Set (per trigger), Delivery Controller (context, summaries)
Mutated by: Delivery Controller (mark_reminder_fired only)

Behavioral Contract:
- Every query returns an empty/zero result when no rows exist, never an error
- A reader that cannot reach its backing store raises StateReaderUnavailable
  from the affected query; the engine turns that into "no signal"
- `available` is False when the reader is unconfigured as a whole
"""

from datetime import datetime
from typing import Dict, List, Optional, Protocol

from proactive_kernel.models.business import (
    OPEN_JOB_STATUSES,
    BusinessEvent,
    Debt,
    DebtDirection,
    Job,
    JobStatus,
    Reminder,
)

INCOME_EVENT_TYPE = "tip"


class StateReaderUnavailable(Exception):
    """Raised when the backing store cannot serve a query."""
    pass


class StateReader(Protocol):
    """Protocol for the business-state query surface — pluggable backend."""

    available: bool

    async def oldest_unfired_reminder_due(self, now: datetime) -> Optional[Reminder]: ...

    async def pending_reminders(self, now: datetime, limit: int = 5) -> List[Reminder]: ...

    async def has_pending_reminder(self, now: datetime) -> bool: ...

    async def mark_reminder_fired(self, reminder_id: str, fired_at: datetime) -> None: ...

    async def oldest_unresolved_debt_before(self, cutoff: datetime) -> Optional[Debt]: ...

    async def outstanding_debt_for(self, person: str) -> Optional[Debt]: ...

    async def open_debts(self) -> List[Debt]: ...

    async def count_jobs_in_status(self, status: JobStatus) -> int: ...

    async def oldest_completed_job_before(self, cutoff: datetime) -> Optional[Job]: ...

    async def open_jobs(self) -> List[Job]: ...

    async def has_active_job(self) -> bool: ...

    async def recent_events(self, limit: int = 10) -> List[BusinessEvent]: ...

    async def income_since(self, start: datetime) -> List[BusinessEvent]: ...

    async def events_since(self, event_type: str, cutoff: datetime) -> List[BusinessEvent]: ...


class InMemoryStateReader:
    """
    In-memory business state for one subject.
    Production would back this with the hosted relational store.
    """

    def __init__(self, subject_id: str):
        self.subject_id = subject_id
        self.available = True
        self._reminders: Dict[str, Reminder] = {}
        self._debts: Dict[str, Debt] = {}
        self._jobs: Dict[str, Job] = {}
        self._events: Dict[str, BusinessEvent] = {}

    # --- Ingestion ---

    def upsert_reminder(self, reminder: Reminder) -> None:
        self._reminders[reminder.id] = reminder

    def upsert_debt(self, debt: Debt) -> None:
        self._debts[debt.id] = debt

    def upsert_job(self, job: Job) -> None:
        self._jobs[job.id] = job

    def record_event(self, event: BusinessEvent) -> None:
        self._events[event.id] = event

    def get_reminder(self, reminder_id: str) -> Optional[Reminder]:
        return self._reminders.get(reminder_id)

    def _check_available(self) -> None:
        if not self.available:
            raise StateReaderUnavailable(f"state for subject {self.subject_id} is offline")

    # --- Reminders ---

    async def oldest_unfired_reminder_due(self, now: datetime) -> Optional[Reminder]:
        self._check_available()
        due = [r for r in self._reminders.values() if not r.fired and r.remind_at <= now]
        return min(due, key=lambda r: r.remind_at, default=None)

    async def pending_reminders(self, now: datetime, limit: int = 5) -> List[Reminder]:
        self._check_available()
        pending = [r for r in self._reminders.values() if not r.fired and r.remind_at >= now]
        return sorted(pending, key=lambda r: r.remind_at)[:limit]

    async def has_pending_reminder(self, now: datetime) -> bool:
        return bool(await self.pending_reminders(now, limit=1))

    async def mark_reminder_fired(self, reminder_id: str, fired_at: datetime) -> None:
        self._check_available()
        reminder = self._reminders.get(reminder_id)
        if reminder:
            reminder.fired = True
            reminder.fired_at = fired_at

    # --- Debts ---

    def _unresolved_owed_to_me(self) -> List[Debt]:
        return sorted(
            (
                d for d in self._debts.values()
                if d.direction == DebtDirection.OWED_TO_ME and not d.resolved
            ),
            key=lambda d: d.created_at,
        )

    async def oldest_unresolved_debt_before(self, cutoff: datetime) -> Optional[Debt]:
        self._check_available()
        return next((d for d in self._unresolved_owed_to_me() if d.created_at < cutoff), None)

    async def outstanding_debt_for(self, person: str) -> Optional[Debt]:
        self._check_available()
        return next((d for d in self._unresolved_owed_to_me() if d.person == person), None)

    async def open_debts(self) -> List[Debt]:
        self._check_available()
        return self._unresolved_owed_to_me()

    # --- Jobs ---

    async def count_jobs_in_status(self, status: JobStatus) -> int:
        self._check_available()
        return sum(1 for j in self._jobs.values() if j.status == status)

    async def oldest_completed_job_before(self, cutoff: datetime) -> Optional[Job]:
        self._check_available()
        done = [
            j for j in self._jobs.values()
            if j.status == JobStatus.DONE and j.completed_at and j.completed_at < cutoff
        ]
        return min(done, key=lambda j: j.completed_at, default=None)

    async def open_jobs(self) -> List[Job]:
        self._check_available()
        return sorted(
            (j for j in self._jobs.values() if j.status in OPEN_JOB_STATUSES),
            key=lambda j: j.created_at,
        )

    async def has_active_job(self) -> bool:
        self._check_available()
        return any(
            j.status in (JobStatus.INTAKE, JobStatus.IN_PROGRESS)
            for j in self._jobs.values()
        )

    # --- Events ---

    async def recent_events(self, limit: int = 10) -> List[BusinessEvent]:
        self._check_available()
        newest_first = sorted(self._events.values(), key=lambda e: e.created_at, reverse=True)
        return newest_first[:limit]

    async def income_since(self, start: datetime) -> List[BusinessEvent]:
        return await self.events_since(INCOME_EVENT_TYPE, start)

    async def events_since(self, event_type: str, cutoff: datetime) -> List[BusinessEvent]:
        self._check_available()
        return sorted(
            (
                e for e in self._events.values()
                if e.event_type == event_type and e.created_at >= cutoff
            ),
            key=lambda e: e.created_at,
            reverse=True,
        )
