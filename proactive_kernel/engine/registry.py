"""
Subject Registry — one engine and one controller per subject.

Owned by the application's composition root and passed by reference. Asking
twice for the same subject returns the same instances, so a subject never
ends up with two competing cooldown ledgers.
"""

import random
from typing import Callable, Dict, List, Optional

from proactive_kernel.audit.store import AuditLogStore
from proactive_kernel.delivery.channels import LoggingChannel, OutputChannel
from proactive_kernel.delivery.controller import DeliveryController
from proactive_kernel.engine.rule_engine import RuleEngine
from proactive_kernel.models.config import ControllerConfig, EngineConfig
from proactive_kernel.scheduler.clock import Clock, SystemClock
from proactive_kernel.state.reader import InMemoryStateReader, StateReader
from proactive_kernel.triggers.rules import RandomSource


class SubjectRegistry:
    """Lazily builds and caches per-subject engines and controllers."""

    def __init__(
        self,
        audit_store: Optional[AuditLogStore] = None,
        reader_factory: Optional[Callable[[str], StateReader]] = None,
        channel_factory: Optional[Callable[[str], OutputChannel]] = None,
        engine_config: Optional[EngineConfig] = None,
        controller_config: Optional[ControllerConfig] = None,
        clock: Optional[Clock] = None,
        rng_factory: Optional[Callable[[str], RandomSource]] = None,
    ):
        self.audit_store = audit_store or AuditLogStore()
        self.reader_factory = reader_factory or InMemoryStateReader
        self.channel_factory = channel_factory or (lambda subject_id: LoggingChannel())
        self.engine_config = engine_config or EngineConfig()
        self.controller_config = controller_config or ControllerConfig()
        self.clock = clock or SystemClock()
        self.rng_factory = rng_factory or (lambda subject_id: random.Random())

        self._engines: Dict[str, RuleEngine] = {}
        self._controllers: Dict[str, DeliveryController] = {}

    def engine_for(self, subject_id: str) -> RuleEngine:
        engine = self._engines.get(subject_id)
        if engine is None:
            engine = RuleEngine(
                subject_id=subject_id,
                reader=self.reader_factory(subject_id),
                config=self.engine_config,
                clock=self.clock,
                rng=self.rng_factory(subject_id),
            )
            self._engines[subject_id] = engine
        return engine

    def controller_for(self, subject_id: str) -> DeliveryController:
        controller = self._controllers.get(subject_id)
        if controller is None:
            controller = DeliveryController(
                subject_id=subject_id,
                engine=self.engine_for(subject_id),
                audit_store=self.audit_store,
                channel=self.channel_factory(subject_id),
                config=self.controller_config,
                clock=self.clock,
            )
            self._controllers[subject_id] = controller
        return controller

    def has_subject(self, subject_id: str) -> bool:
        return subject_id in self._engines

    def subjects(self) -> List[str]:
        return list(self._engines)

    def update_engine_config(self, config: EngineConfig) -> None:
        """Apply a new engine config to future and existing engines."""
        self.engine_config = config
        for engine in self._engines.values():
            engine.update_config(config)

    async def stop_all(self) -> None:
        """Stop every running scheduler (end of all subject sessions)."""
        for controller in self._controllers.values():
            await controller.stop()
