"""
Delivery Controller — turns the engine's decisions into speech.

Evaluates the Rule Engine on every scheduler tick (and on demand), then for a
non-null result: skips it if it repeats the previous delivery, writes the
audit record, renders it on the output channel with a tone derived from its
priority, and performs its follow-up action.

States:
  IDLE → (tick) → EVALUATING → (None) → IDLE
  EVALUATING → (new interruption) → DELIVERING → IDLE

Output dispatch is fire-and-forget: a slow or failing channel never holds up
the next tick, and never rolls back the cooldown ledger or the audit log.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set, Union

from proactive_kernel.audit.store import AuditLogStore
from proactive_kernel.delivery.channels import LoggingChannel, OutputChannel, tone_for_priority
from proactive_kernel.delivery.summaries import SummaryBuilder
from proactive_kernel.engine.rule_engine import RuleEngine
from proactive_kernel.models.config import ControllerConfig
from proactive_kernel.models.context import EvaluationContext, PendingAction
from proactive_kernel.models.interruption import (
    Interruption,
    InterruptionAction,
    ReminderPayload,
    TriggerKind,
)
from proactive_kernel.scheduler.clock import Clock, Scheduler, SystemClock

logger = logging.getLogger(__name__)

ActionHandler = Callable[[Interruption], Awaitable[None]]


class UnknownActionError(Exception):
    """Raised when an interruption names an action with no registered handler."""
    pass


class ControllerState(str, Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    DELIVERING = "delivering"


class DeliveryController:
    """One controller per subject, wrapping that subject's engine."""

    def __init__(
        self,
        subject_id: str,
        engine: RuleEngine,
        audit_store: AuditLogStore,
        channel: Optional[OutputChannel] = None,
        config: Optional[ControllerConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.subject_id = subject_id
        self.engine = engine
        self.reader = engine.reader
        self.audit_store = audit_store
        self.channel = channel or LoggingChannel()
        self.config = config or ControllerConfig()
        self.clock = clock or engine.clock or SystemClock()

        self._state = ControllerState.IDLE
        self._enabled = True
        self._last_interruption: Optional[Interruption] = None
        self._scheduler = Scheduler(self.config.evaluation_interval_seconds)
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._dispatches: Set[asyncio.Future] = set()
        self._actions: Dict[InterruptionAction, ActionHandler] = {}
        self._register_default_actions()

    def _register_default_actions(self) -> None:
        self._actions[InterruptionAction.MARK_REMINDER_FIRED] = self._mark_reminder_fired

    def register_action(self, action: InterruptionAction, handler: ActionHandler) -> None:
        """Register (or replace) the handler for a follow-up action."""
        self._actions[action] = handler

    # --- Status ---

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def monitoring(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_interruption(self) -> Optional[Interruption]:
        return self._last_interruption

    @property
    def tick_count(self) -> int:
        return self._scheduler.tick_count

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    # --- Scheduler lifecycle ---

    async def start(self) -> None:
        """Begin periodic evaluation. A second start is a no-op."""
        if self.monitoring:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(
            self._scheduler.run(self._tick, self._stop_event)
        )
        logger.info(
            "Subject %s: monitoring every %ss",
            self.subject_id,
            self.config.evaluation_interval_seconds,
        )

    async def stop(self) -> None:
        """Stop periodic evaluation and wait for the current tick to finish."""
        if self._task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        await self._task
        self._task = None
        self._stop_event = None
        logger.info("Subject %s: monitoring stopped", self.subject_id)

    async def _tick(self) -> None:
        if not self._enabled:
            return
        await self.evaluate_interruptions()

    # --- Evaluation entry points ---

    async def evaluate_interruptions(
        self, context: Union[EvaluationContext, Mapping[str, Any], None] = None
    ) -> Optional[Interruption]:
        """Full cycle: gather context, evaluate, deliver."""
        self._state = ControllerState.EVALUATING
        try:
            full_context = await self._gather_context(context)
            interruption = await self.engine.evaluate(full_context)
            if interruption is None:
                return None
            return await self._deliver(interruption)
        finally:
            self._state = ControllerState.IDLE

    async def check_real_time_event(
        self, pending_action: Union[PendingAction, Mapping[str, Any]]
    ) -> Optional[Interruption]:
        """
        Inline safety gate for an action about to run.
        Only an UNSAFE_ACTION result is delivered; anything else is ignored.
        """
        if not self._enabled:
            return None

        context = EvaluationContext.coerce({"pending_action": pending_action})
        if context.pending_action is None:
            return None

        interruption = await self.engine.evaluate(context)
        if interruption is not None and interruption.trigger == TriggerKind.UNSAFE_ACTION:
            return await self._deliver(interruption)
        return None

    async def handle_user_command(self, command: str) -> Optional[Interruption]:
        """
        Answer a canonical summary request with live numbers.

        A higher-priority signal that wins the evaluation instead is
        delivered like any other, so its cooldown never starts unspoken.
        """
        interruption = await self.engine.evaluate(EvaluationContext(command=command))
        if interruption is None:
            return None
        if (
            interruption.trigger != TriggerKind.ACTIONABLE_SUMMARY
            or interruption.summary_type is None
        ):
            return await self._deliver(interruption)

        summary = await SummaryBuilder(self.reader).build(
            interruption.summary_type, self.clock.now()
        )
        self._dispatch(self.channel.speak(summary), interruption.id)
        return interruption.model_copy(update={"message": summary})

    async def handle_interruption_response(self, interruption_id: str, response: str) -> None:
        """The user answered: close the interruption and log the reply."""
        self.engine.mark_handled(interruption_id)
        self.audit_store.record_response(
            self.subject_id, interruption_id, response, self.clock.now()
        )

    async def _gather_context(
        self, additional: Union[EvaluationContext, Mapping[str, Any], None]
    ) -> EvaluationContext:
        context = EvaluationContext.coerce(additional)
        if context.recent_events or self.reader is None:
            return context

        try:
            recent = await self.reader.recent_events(limit=self.config.recent_event_limit)
        except Exception:
            logger.warning(
                "Subject %s: could not load recent events", self.subject_id, exc_info=True
            )
            return context
        return context.model_copy(update={"recent_events": recent})

    # --- Delivery ---

    async def _deliver(self, interruption: Interruption) -> Optional[Interruption]:
        if (
            self._last_interruption is not None
            and self._last_interruption.id == interruption.id
        ):
            logger.debug(
                "Subject %s: %s same as previous delivery, skipped",
                self.subject_id,
                interruption.id,
            )
            return None

        self._state = ControllerState.DELIVERING
        self._last_interruption = interruption

        self.audit_store.record_interruption(self.subject_id, interruption, self.clock.now())
        self._dispatch(
            self.channel.interrupt(interruption.message, tone_for_priority(interruption.priority)),
            interruption.id,
        )

        if interruption.action is not None:
            try:
                await self.perform_action(interruption)
            except Exception:
                logger.exception(
                    "Subject %s: action %s for %s failed",
                    self.subject_id,
                    interruption.action.value,
                    interruption.id,
                )

        return interruption

    def _dispatch(self, output: Awaitable[None], interruption_id: str) -> None:
        """Fire-and-forget an output call, bounded by the dispatch timeout."""
        future = asyncio.ensure_future(
            asyncio.wait_for(output, timeout=self.config.dispatch_timeout_seconds)
        )
        self._dispatches.add(future)

        def _on_done(done: asyncio.Future) -> None:
            self._dispatches.discard(done)
            if done.cancelled():
                return
            exc = done.exception()
            if exc is not None:
                logger.error(
                    "Subject %s: delivery of %s failed: %r",
                    self.subject_id,
                    interruption_id,
                    exc,
                )

        future.add_done_callback(_on_done)

    async def wait_for_dispatches(self) -> None:
        """Wait until every in-flight output call has settled."""
        if self._dispatches:
            await asyncio.gather(*list(self._dispatches), return_exceptions=True)

    async def perform_action(self, interruption: Interruption) -> None:
        handler = self._actions.get(interruption.action)
        if handler is None:
            raise UnknownActionError(f"No handler for action {interruption.action!r}")
        await handler(interruption)

    async def _mark_reminder_fired(self, interruption: Interruption) -> None:
        payload = interruption.data
        if isinstance(payload, ReminderPayload) and self.reader is not None:
            await self.reader.mark_reminder_fired(payload.reminder.id, self.clock.now())
