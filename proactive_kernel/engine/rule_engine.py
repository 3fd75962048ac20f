"""
Rule Engine — decides whether the assistant speaks, and what it says.

Behavioral Contract:
- Walks the Trigger Set in its fixed order; the first signal that is not in
  cooldown becomes the one Interruption of this evaluation
- A signal in cooldown is skipped, never blocks a later trigger
- Only the selected signal starts a cooldown window
- No trigger firing means None. Silence is the default, always
- A failing or slow trigger counts as "no signal"; evaluate() never raises
  because of a trigger
- One engine per subject; evaluations on the same engine are serialized
"""

import asyncio
import inspect
import logging
import random
from datetime import datetime, timedelta
from typing import Any, List, Mapping, Optional, Set, Union

from proactive_kernel.engine.cooldown import CooldownLedger
from proactive_kernel.models.config import EngineConfig
from proactive_kernel.models.context import EvaluationContext
from proactive_kernel.models.interruption import Interruption, Signal
from proactive_kernel.scheduler.clock import Clock, SystemClock
from proactive_kernel.state.reader import StateReader
from proactive_kernel.triggers.rules import (
    DEFAULT_TRIGGERS,
    RandomSource,
    Trigger,
    TriggerEnv,
)

logger = logging.getLogger(__name__)


class RuleEngine:
    """Owns the cooldown ledger and active set for one subject."""

    def __init__(
        self,
        subject_id: str,
        reader: Optional[StateReader],
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
        rng: Optional[RandomSource] = None,
        triggers: Optional[List[Trigger]] = None,
    ):
        self.subject_id = subject_id
        self.reader = reader
        self.config = config or EngineConfig()
        self.clock = clock or SystemClock()
        self.rng = rng or random.Random()
        self.triggers = list(triggers) if triggers is not None else list(DEFAULT_TRIGGERS)

        self.ledger = CooldownLedger(self.config.cooldown_seconds)
        self._active: Set[str] = set()
        self._lock = asyncio.Lock()

    @property
    def active_interruptions(self) -> Set[str]:
        """Ids delivered but not yet marked handled."""
        return set(self._active)

    def update_config(self, config: EngineConfig) -> None:
        self.config = config
        self.ledger.window = timedelta(seconds=config.cooldown_seconds)

    async def evaluate(
        self,
        context: Union[EvaluationContext, Mapping[str, Any], None] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Interruption]:
        """
        Run one evaluation cycle. Returns at most one Interruption.

        Callers doing inline safety gating should act only on an
        UNSAFE_ACTION result; the engine does not know why it was called.
        """
        if self.reader is None or not getattr(self.reader, "available", True):
            return None  # No data source → silent

        ctx = EvaluationContext.coerce(context)

        async with self._lock:
            if now is None:
                now = self.clock.now()
            env = TriggerEnv(
                reader=self.reader,
                context=ctx,
                now=now,
                config=self.config,
                rng=self.rng,
            )

            for trigger in self.triggers:
                signal = await self._run_trigger(trigger, env)
                if signal is None:
                    continue

                if self.ledger.is_suppressed(signal.id, now):
                    logger.debug(
                        "Subject %s: %s suppressed by cooldown", self.subject_id, signal.id
                    )
                    continue

                self.ledger.record_fired(signal.id, now)
                self._active.add(signal.id)
                logger.info(
                    "Subject %s: %s fired (%s, %s)",
                    self.subject_id,
                    signal.id,
                    signal.trigger.value,
                    signal.priority.value,
                )
                return Interruption.from_signal(signal, timestamp=now)

        return None  # SILENCE: no triggers fired

    async def _run_trigger(self, trigger: Trigger, env: TriggerEnv) -> Optional[Signal]:
        """Invoke one trigger; any failure or timeout is "no signal"."""
        name = getattr(trigger, "__name__", repr(trigger))
        try:
            result = trigger(env)
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(
                    result, timeout=self.config.trigger_timeout_seconds
                )
        except asyncio.TimeoutError:
            logger.warning(
                "Subject %s: trigger %s timed out after %.1fs",
                self.subject_id,
                name,
                self.config.trigger_timeout_seconds,
            )
            return None
        except Exception:
            logger.warning(
                "Subject %s: trigger %s failed, treating as no signal",
                self.subject_id,
                name,
                exc_info=True,
            )
            return None

        if result is not None and not isinstance(result, Signal):
            logger.warning("Subject %s: trigger %s returned %r", self.subject_id, name, result)
            return None
        return result

    def mark_handled(self, interruption_id: str) -> None:
        """Drop from the active set. Cooldown is untouched."""
        self._active.discard(interruption_id)
