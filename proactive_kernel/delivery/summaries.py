"""Live answers for on-demand summary requests ("who owes me money", ...)."""

from collections import Counter
from datetime import datetime
from typing import Awaitable, Callable, Dict

from proactive_kernel.models.business import JobStatus
from proactive_kernel.models.interruption import SummaryType
from proactive_kernel.state.reader import StateReader
from proactive_kernel.triggers.rules import format_money

_STATUS_PHRASES = [
    (JobStatus.IN_PROGRESS, "in progress"),
    (JobStatus.WAITING_PARTS, "waiting for parts"),
    (JobStatus.DIAGNOSING, "diagnosing"),
    (JobStatus.INTAKE, "at intake"),
]


class SummaryBuilder:
    """Computes summary text from the State Reader at the moment it is asked."""

    def __init__(self, reader: StateReader):
        self.reader = reader
        self._builders: Dict[SummaryType, Callable[[datetime], Awaitable[str]]] = {
            SummaryType.TIPS: self._tips,
            SummaryType.DEBTS: self._debts,
            SummaryType.OPEN_REPAIRS: self._open_repairs,
            SummaryType.TASKS: self._tasks,
        }

    async def build(self, summary_type: SummaryType, now: datetime) -> str:
        builder = self._builders.get(summary_type)
        if builder is None:
            return "I'm not sure what you're asking about."
        return await builder(now)

    async def _tips(self, now: datetime) -> str:
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        tips = await self.reader.income_since(day_start)
        total = sum(t.amount or 0 for t in tips)
        return f"{format_money(total)} in tips today. {len(tips)} total."

    async def _debts(self, now: datetime) -> str:
        debts = await self.reader.open_debts()
        if not debts:
            return "Nobody owes you money right now."

        total = format_money(sum(d.amount for d in debts))
        if len(debts) == 1:
            return f"{debts[0].person} owes you {total}."
        people = ", ".join(d.person for d in debts[:3])
        if len(debts) <= 3:
            return f"{people} owe you {total} total."
        return f"{people} and {len(debts) - 3} others owe you {total}."

    async def _open_repairs(self, now: datetime) -> str:
        jobs = await self.reader.open_jobs()
        if not jobs:
            return "No open repairs right now."

        by_status = Counter(j.status for j in jobs)
        parts = [
            f"{by_status[status]} {phrase}"
            for status, phrase in _STATUS_PHRASES
            if by_status[status]
        ]
        return f"{len(jobs)} open repairs: {', '.join(parts)}."

    async def _tasks(self, now: datetime) -> str:
        reminders = await self.reader.pending_reminders(now, limit=3)
        if not reminders:
            return "Nothing on your list right now."

        items = "; ".join(
            f"{r.message} at {r.remind_at.strftime('%H:%M')}" for r in reminders
        )
        return f"Coming up: {items}."
