"""
Trigger Set — the ten conditions under which the assistant may speak.

Each trigger is a plain function of a TriggerEnv returning a Signal or None.
None means "this condition does not currently hold". Triggers never mutate
state; the only reads they make go through the State Reader.

DEFAULT_TRIGGERS lists them in priority order. The order IS the priority
system: the engine walks it front to back and the first unsuppressed signal
wins. Triggers 1 and 9 are synchronous (no store read) so they can run
inline during command processing.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Protocol, Union

from croniter import croniter

from proactive_kernel.models.business import JobStatus
from proactive_kernel.models.config import EngineConfig
from proactive_kernel.models.context import EvaluationContext
from proactive_kernel.models.interruption import (
    AgingDebtPayload,
    BlockingJobsPayload,
    CloseoutPayload,
    CostlyPatternPayload,
    InterruptionAction,
    InterruptionPriority,
    MissedContactPayload,
    QuietDayPayload,
    ReminderPayload,
    Signal,
    SummaryPayload,
    TriggerKind,
    UncollectedJobPayload,
    UnsafeActionPayload,
    UnsafeReason,
)
from proactive_kernel.state.reader import StateReader

MISSED_CALL_EVENT_TYPE = "missed_call"


class RandomSource(Protocol):
    def random(self) -> float: ...


class TriggerEnv:
    """Everything one trigger may look at during one evaluation."""

    def __init__(
        self,
        reader: StateReader,
        context: EvaluationContext,
        now: datetime,
        config: EngineConfig,
        rng: RandomSource,
    ):
        self.reader = reader
        self.context = context
        self.now = now
        self.config = config
        self.rng = rng


Trigger = Callable[[TriggerEnv], Union[Optional[Signal], Awaitable[Optional[Signal]]]]


def format_money(amount: float) -> str:
    """$150 for whole amounts, $12.50 otherwise."""
    if float(amount).is_integer():
        return f"${int(amount)}"
    return f"${amount:.2f}"


def _ordinal(n: int) -> str:
    words = {1: "first", 2: "second", 3: "third", 4: "fourth", 5: "fifth"}
    if n in words:
        return words[n]
    if 10 <= n % 100 <= 20:
        return f"{n}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def in_schedule_window(schedule: str, now: datetime) -> bool:
    """True if `now` falls in a minute matched by the cron expression."""
    return croniter.match(schedule, now)


# --- 1. Unsafe pending action (synchronous) ---

def check_unsafe_action(env: TriggerEnv) -> Optional[Signal]:
    pending = env.context.pending_action
    if pending is None:
        return None

    entities = pending.entities
    occurrence = pending.request_id or env.now.isoformat()

    def _blocking(reason: UnsafeReason, message: str) -> Signal:
        return Signal(
            id=f"unsafe_{reason.value}_{occurrence}",
            trigger=TriggerKind.UNSAFE_ACTION,
            priority=InterruptionPriority.CRITICAL,
            message=message,
            data=UnsafeActionPayload(
                action=pending.action, reason=reason, amount=entities.amount
            ),
            synchronous=True,
            blocking=True,
        )

    if entities.needs_reference and not entities.resolved:
        return _blocking(
            UnsafeReason.UNRESOLVED_REFERENCE,
            "I want to be careful. I'm not sure which customer you mean.",
        )

    if (
        entities.amount is not None
        and entities.amount > env.config.large_amount_threshold
        and not entities.confirmed
    ):
        return _blocking(
            UnsafeReason.LARGE_AMOUNT,
            f"That's a large amount, {format_money(entities.amount)}. "
            f"Let me confirm that's correct.",
        )

    if (
        pending.action in env.config.messaging_actions
        and not entities.person
        and not entities.person_resolved
    ):
        return _blocking(
            UnsafeReason.MISSING_RECIPIENT,
            "I need to know which customer to message first.",
        )

    return None


# --- 2. Overdue commitment ---

async def check_overdue_commitment(env: TriggerEnv) -> Optional[Signal]:
    reminder = await env.reader.oldest_unfired_reminder_due(env.now)
    if reminder is None:
        return None

    overdue = reminder.remind_at < env.now
    return Signal(
        id=f"commitment_{reminder.id}",
        trigger=TriggerKind.OVERDUE_COMMITMENT,
        priority=InterruptionPriority.HIGH if overdue else InterruptionPriority.MEDIUM,
        message=(
            f"You asked me to remind you to {reminder.message}. "
            f"{'That is overdue.' if overdue else 'That is due now.'}"
        ),
        data=ReminderPayload(reminder=reminder, overdue=overdue),
        action=InterruptionAction.MARK_REMINDER_FIRED,
    )


# --- 3. Aging money owed to the business ---

async def check_aging_debt(env: TriggerEnv) -> Optional[Signal]:
    cutoff = env.now - timedelta(days=env.config.aging_debt_days)
    debt = await env.reader.oldest_unresolved_debt_before(cutoff)
    if debt is None:
        return None

    days = (env.now - debt.created_at).days
    return Signal(
        id=f"aging_debt_{debt.id}",
        trigger=TriggerKind.AGING_DEBT,
        priority=InterruptionPriority.MEDIUM,
        message=(
            f"{debt.person} still owes you {format_money(debt.amount)}. "
            f"It's been {days} days. Want to follow up?"
        ),
        data=AgingDebtPayload(debt=debt, days_outstanding=days),
        expects_response=True,
    )


# --- 4. Blocking operational tasks ---

async def check_blocking_tasks(env: TriggerEnv) -> Optional[Signal]:
    count = await env.reader.count_jobs_in_status(JobStatus.WAITING_PARTS)
    if count < env.config.blocking_job_threshold:
        return None

    return Signal(
        id=f"blocking_parts_{count}",
        trigger=TriggerKind.BLOCKING_TASK,
        priority=InterruptionPriority.HIGH,
        message=f"{count} repairs are waiting for parts. Check if anything needs ordering.",
        data=BlockingJobsPayload(count=count),
    )


# --- 5. Customer-facing delay ---

async def check_customer_delay(env: TriggerEnv) -> Optional[Signal]:
    cutoff = env.now - timedelta(days=env.config.uncollected_job_days)
    job = await env.reader.oldest_completed_job_before(cutoff)
    if job is None:
        return None

    days = (env.now - job.completed_at).days
    return Signal(
        id=f"uncollected_{job.id}",
        trigger=TriggerKind.CUSTOMER_DELAY,
        priority=InterruptionPriority.HIGH,
        message=(
            f"A {job.device_type} repair has been done for {days} days "
            f"and not picked up. Want to text the customer?"
        ),
        data=UncollectedJobPayload(job=job, days_waiting=days),
        expects_response=True,
    )


# --- 6. Plan invalidated by a new event ---

async def check_invalidated_plan(env: TriggerEnv) -> Optional[Signal]:
    events = env.context.recent_events[: env.config.recent_event_scan]

    for event in events:
        if event.event_type != MISSED_CALL_EVENT_TYPE or not event.caller:
            continue

        debt = await env.reader.outstanding_debt_for(event.caller)
        if debt is None or debt.amount <= 0:
            continue

        return Signal(
            id=f"missed_call_debt_{event.caller}_{event.id}",
            trigger=TriggerKind.INVALIDATED_PLAN,
            priority=InterruptionPriority.MEDIUM,
            message=(
                f"You missed a call from {event.caller}. They still owe "
                f"{format_money(debt.amount)}. Want to call back?"
            ),
            data=MissedContactPayload(event=event, debt=debt),
            expects_response=True,
        )

    return None


# --- 7. End-of-day closeout ---

async def check_end_of_day(env: TriggerEnv) -> Optional[Signal]:
    command = (env.context.command or "").strip().lower()
    requested = command in env.config.closeout_commands
    if not requested and not in_schedule_window(env.config.closeout_schedule, env.now):
        return None

    day_start = env.now.replace(hour=0, minute=0, second=0, microsecond=0)
    income = await env.reader.income_since(day_start)
    total = sum(e.amount or 0 for e in income)
    open_count = len(await env.reader.open_jobs())

    message = f"Today: {format_money(total)} in tips."
    if open_count == 1:
        message += " One repair is still open."
    elif open_count > 1:
        message += f" {open_count} repairs are still open."

    return Signal(
        # Date-derived: at most once per day through the cooldown ledger
        id=f"closeout_{env.now.date().isoformat()}",
        trigger=TriggerKind.END_OF_DAY,
        priority=InterruptionPriority.MEDIUM,
        message=message,
        data=CloseoutPayload(income_total=total, open_jobs=open_count),
    )


# --- 8. Recurring costly pattern ---

async def check_costly_pattern(env: TriggerEnv) -> Optional[Signal]:
    cutoff = env.now - timedelta(days=env.config.pattern_window_days)
    issues = await env.reader.events_since(env.config.issue_event_type, cutoff)
    if len(issues) < env.config.pattern_threshold:
        return None

    by_supplier = Counter(e.supplier for e in issues if e.supplier)
    for supplier, count in by_supplier.items():
        if count >= env.config.pattern_threshold:
            return Signal(
                id=f"pattern_supplier_{supplier}",
                trigger=TriggerKind.COSTLY_PATTERN,
                priority=InterruptionPriority.MEDIUM,
                message=f"This is the {_ordinal(count)} time {supplier} sent the wrong part.",
                data=CostlyPatternPayload(counterparty=supplier, issue_count=count),
            )

    return None


# --- 9. On-demand actionable summary (synchronous) ---

def check_actionable_summary(env: TriggerEnv) -> Optional[Signal]:
    if not env.context.command:
        return None

    command = env.context.command.strip().lower()
    summary_type = env.config.summary_commands.get(command)
    if summary_type is None:
        return None

    return Signal(
        id=f"summary_{summary_type.value}_{env.now.isoformat()}",
        trigger=TriggerKind.ACTIONABLE_SUMMARY,
        priority=InterruptionPriority.IMMEDIATE,
        summary_type=summary_type,
        data=SummaryPayload(summary_type=summary_type, command=command),
        synchronous=True,
    )


# --- 10. Quiet-day check ---

async def check_quiet_day(env: TriggerEnv) -> Optional[Signal]:
    if not in_schedule_window(env.config.quiet_window_schedule, env.now):
        return None

    if await env.reader.has_pending_reminder(env.now):
        return None
    if await env.reader.has_active_job():
        return None

    if env.rng.random() >= env.config.quiet_day_probability:
        return None

    return Signal(
        id=f"quiet_{env.now.isoformat()}",
        trigger=TriggerKind.QUIET_DAY,
        priority=InterruptionPriority.LOW,
        message="Nothing urgent right now. Anything you want me to remember?",
        data=QuietDayPayload(),
        expects_response=True,
    )


DEFAULT_TRIGGERS: List[Trigger] = [
    check_unsafe_action,
    check_overdue_commitment,
    check_aging_debt,
    check_blocking_tasks,
    check_customer_delay,
    check_invalidated_plan,
    check_end_of_day,
    check_costly_pattern,
    check_actionable_summary,
    check_quiet_day,
]
