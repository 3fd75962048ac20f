"""Tests for the Delivery Controller: delivery, duplicates, actions, scheduling."""

import asyncio
from datetime import datetime, timedelta

import pytest

from proactive_kernel.audit.store import AuditLogStore
from proactive_kernel.delivery.channels import SpeechTone, tone_for_priority
from proactive_kernel.delivery.controller import (
    ControllerState,
    DeliveryController,
    UnknownActionError,
)
from proactive_kernel.engine.rule_engine import RuleEngine
from proactive_kernel.models.audit import AuditEventType
from proactive_kernel.models.business import (
    BusinessEvent,
    Debt,
    Job,
    JobStatus,
    Reminder,
)
from proactive_kernel.models.config import ControllerConfig
from proactive_kernel.models.interruption import (
    Interruption,
    InterruptionAction,
    InterruptionPriority,
    SummaryType,
    TriggerKind,
)
from proactive_kernel.scheduler.clock import ManualClock
from proactive_kernel.state.reader import InMemoryStateReader

MORNING = datetime(2026, 3, 10, 8, 30)


class FixedRandom:
    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


class RecordingChannel:
    def __init__(self):
        self.interrupts = []
        self.speeches = []

    async def interrupt(self, message: str, tone: SpeechTone) -> None:
        self.interrupts.append((message, tone))

    async def speak(self, message: str) -> None:
        self.speeches.append(message)


class FailingChannel:
    async def interrupt(self, message: str, tone: SpeechTone) -> None:
        raise ConnectionError("speaker unplugged")

    async def speak(self, message: str) -> None:
        raise ConnectionError("speaker unplugged")


def _make_controller(reader=None, channel=None, config=None, now=MORNING):
    reader = reader if reader is not None else InMemoryStateReader("shop_1")
    engine = RuleEngine(
        subject_id="shop_1",
        reader=reader,
        clock=ManualClock(now),
        rng=FixedRandom(0.99),
    )
    return DeliveryController(
        subject_id="shop_1",
        engine=engine,
        audit_store=AuditLogStore(),
        channel=channel if channel is not None else RecordingChannel(),
        config=config,
    )


def _run(controller: DeliveryController, coro):
    async def _go():
        result = await coro
        await controller.wait_for_dispatches()
        return result
    return asyncio.run(_go())


def _overdue_reminder(reader: InMemoryStateReader) -> None:
    reader.upsert_reminder(Reminder(
        id="r1", message="order screens", remind_at=MORNING - timedelta(minutes=10)
    ))


def _uncollected_job(reader: InMemoryStateReader) -> None:
    reader.upsert_job(Job(
        id="j1", device_type="laptop", status=JobStatus.DONE,
        created_at=MORNING - timedelta(days=8),
        completed_at=MORNING - timedelta(days=5),
    ))


class TestDelivery:
    def test_silence_delivers_nothing(self):
        controller = _make_controller()
        assert _run(controller, controller.evaluate_interruptions()) is None
        assert controller.channel.interrupts == []
        assert controller.audit_store.count() == 0

    def test_delivers_and_audits(self):
        reader = InMemoryStateReader("shop_1")
        _uncollected_job(reader)
        controller = _make_controller(reader)

        result = _run(controller, controller.evaluate_interruptions())
        assert result.trigger == TriggerKind.CUSTOMER_DELAY
        assert controller.last_interruption.id == result.id

        [(message, tone)] = controller.channel.interrupts
        assert message == result.message
        assert tone.earcon == "thinking"

        [record] = controller.audit_store.query_by_subject("shop_1")
        assert record.event_type == AuditEventType.INTERRUPTION
        assert record.interruption_id == result.id
        assert record.trigger == TriggerKind.CUSTOMER_DELAY
        assert record.priority == InterruptionPriority.HIGH
        assert record.message == result.message

    def test_state_returns_to_idle(self):
        reader = InMemoryStateReader("shop_1")
        _uncollected_job(reader)
        controller = _make_controller(reader)

        _run(controller, controller.evaluate_interruptions())
        assert controller.state == ControllerState.IDLE

    def test_recent_events_gathered_from_reader(self):
        """A missed call in stored history is seen without the caller passing it."""
        reader = InMemoryStateReader("shop_1")
        reader.upsert_debt(Debt(id="d1", person="Marta", amount=80, created_at=MORNING))
        reader.record_event(BusinessEvent(
            id="e1", event_type="missed_call", caller="Marta",
            created_at=MORNING - timedelta(minutes=5),
        ))
        controller = _make_controller(reader)

        result = _run(controller, controller.evaluate_interruptions())
        assert result.trigger == TriggerKind.INVALIDATED_PLAN
        assert "Marta" in result.message


class TestDuplicateGuard:
    def test_immediate_repeat_is_not_redelivered(self):
        reader = InMemoryStateReader("shop_1")
        _uncollected_job(reader)
        controller = _make_controller(reader)

        first = _run(controller, controller.evaluate_interruptions())
        controller.engine.clock.advance(hours=2)
        second = _run(controller, controller.evaluate_interruptions())

        assert first is not None
        assert second is None
        assert len(controller.channel.interrupts) == 1
        assert controller.audit_store.count() == 1

    def test_same_id_after_different_delivery_is_spoken(self):
        reader = InMemoryStateReader("shop_1")
        _overdue_reminder(reader)
        _uncollected_job(reader)
        controller = _make_controller(reader)
        controller.register_action(InterruptionAction.MARK_REMINDER_FIRED, _noop_action)

        ids = []
        for minutes in (0, 1, 62):
            controller.engine.clock.advance(minutes=minutes)
            ids.append(_run(controller, controller.evaluate_interruptions()).id)

        assert ids == ["commitment_r1", "uncollected_j1", "commitment_r1"]


async def _noop_action(interruption: Interruption) -> None:
    return None


class TestTone:
    @pytest.mark.parametrize("priority,rate,volume,earcon", [
        (InterruptionPriority.CRITICAL, 0.9, 0.9, "error"),
        (InterruptionPriority.HIGH, 1.0, 0.9, "thinking"),
        (InterruptionPriority.MEDIUM, 1.0, 0.9, None),
        (InterruptionPriority.LOW, 1.0, 0.7, None),
    ])
    def test_priority_mapping(self, priority, rate, volume, earcon):
        tone = tone_for_priority(priority)
        assert tone.rate == rate
        assert tone.volume == volume
        assert tone.earcon == earcon
        assert tone.cancel_in_flight is True

    def test_critical_is_lower_pitch(self):
        assert tone_for_priority(InterruptionPriority.CRITICAL).pitch == 0.95


class TestActions:
    def test_overdue_reminder_marked_fired(self):
        reader = InMemoryStateReader("shop_1")
        _overdue_reminder(reader)
        controller = _make_controller(reader)

        result = _run(controller, controller.evaluate_interruptions())
        assert result.action == InterruptionAction.MARK_REMINDER_FIRED

        reminder = reader.get_reminder("r1")
        assert reminder.fired is True
        assert reminder.fired_at == MORNING

    def test_fired_reminder_not_raised_again(self):
        reader = InMemoryStateReader("shop_1")
        _overdue_reminder(reader)
        controller = _make_controller(reader)

        _run(controller, controller.evaluate_interruptions())
        controller.engine.clock.advance(hours=3)
        assert _run(controller, controller.evaluate_interruptions()) is None

    def test_missing_handler_raises(self):
        controller = _make_controller()
        interruption = Interruption(
            id="x", trigger=TriggerKind.OVERDUE_COMMITMENT,
            priority=InterruptionPriority.HIGH, message="m",
            action=InterruptionAction.MARK_REMINDER_FIRED, timestamp=MORNING,
        )
        controller._actions.clear()
        with pytest.raises(UnknownActionError):
            asyncio.run(controller.perform_action(interruption))

    def test_failing_action_still_delivers(self):
        reader = InMemoryStateReader("shop_1")
        _overdue_reminder(reader)
        controller = _make_controller(reader)

        async def broken(interruption):
            raise RuntimeError("write failed")

        controller.register_action(InterruptionAction.MARK_REMINDER_FIRED, broken)
        result = _run(controller, controller.evaluate_interruptions())
        assert result.id == "commitment_r1"
        assert controller.audit_store.count() == 1


class TestChannelFailure:
    def test_failed_output_keeps_cooldown_and_audit(self):
        reader = InMemoryStateReader("shop_1")
        _uncollected_job(reader)
        controller = _make_controller(reader, channel=FailingChannel())

        result = _run(controller, controller.evaluate_interruptions())
        assert result.id == "uncollected_j1"
        assert controller.audit_store.count() == 1
        assert "uncollected_j1" in controller.engine.ledger

    def test_slow_output_does_not_block(self):
        class SlowChannel(RecordingChannel):
            async def interrupt(self, message, tone):
                await asyncio.sleep(5)

        reader = InMemoryStateReader("shop_1")
        _uncollected_job(reader)
        controller = _make_controller(
            reader,
            channel=SlowChannel(),
            config=ControllerConfig(dispatch_timeout_seconds=0.01),
        )
        result = _run(controller, controller.evaluate_interruptions())
        assert result is not None


class TestRealTimeEvents:
    def test_unsafe_action_delivered(self):
        controller = _make_controller()
        result = _run(controller, controller.check_real_time_event({
            "action": "LOG_TIP",
            "request_id": "req_9",
            "entities": {"amount": 750},
        }))
        assert result.trigger == TriggerKind.UNSAFE_ACTION
        assert result.blocking is True
        assert controller.channel.interrupts[0][1].earcon == "error"

    def test_other_triggers_ignored(self):
        reader = InMemoryStateReader("shop_1")
        _uncollected_job(reader)
        controller = _make_controller(reader)

        result = _run(controller, controller.check_real_time_event({
            "action": "LOG_TIP",
            "entities": {"amount": 20},
        }))
        assert result is None
        assert controller.channel.interrupts == []
        assert controller.audit_store.count() == 0

    def test_malformed_pending_action(self):
        controller = _make_controller()
        assert _run(controller, controller.check_real_time_event({"entities": 5})) is None

    def test_disabled_controller_skips_check(self):
        controller = _make_controller()
        controller.set_enabled(False)
        result = _run(controller, controller.check_real_time_event({
            "action": "LOG_TIP", "entities": {"amount": 900},
        }))
        assert result is None


class TestCommands:
    def test_debts_summary_spoken(self):
        reader = InMemoryStateReader("shop_1")
        reader.upsert_debt(Debt(id="d1", person="Carlos", amount=150, created_at=MORNING))
        reader.upsert_debt(Debt(id="d2", person="Ana", amount=40, created_at=MORNING))
        controller = _make_controller(reader)

        result = _run(controller, controller.handle_user_command("Who owes me money"))
        assert result.summary_type == SummaryType.DEBTS
        assert result.message == "Carlos, Ana owe you $190 total."
        assert controller.channel.speeches == [result.message]
        assert controller.channel.interrupts == []

    def test_outranking_signal_delivered_instead(self):
        reader = InMemoryStateReader("shop_1")
        _overdue_reminder(reader)
        controller = _make_controller(reader)

        result = _run(controller, controller.handle_user_command("how much did i make"))
        assert result.trigger == TriggerKind.OVERDUE_COMMITMENT
        assert [m for m, _ in controller.channel.interrupts] == [result.message]
        assert controller.channel.speeches == []
        assert reader.get_reminder("r1").fired is True
        assert controller.audit_store.count() == 1

        controller.engine.clock.advance(seconds=1)
        answer = _run(controller, controller.handle_user_command("how much did i make"))
        assert answer.summary_type == SummaryType.TIPS

    def test_unknown_command_is_silent(self):
        controller = _make_controller()
        assert _run(controller, controller.handle_user_command("play some music")) is None

    def test_repeated_command_answers_each_time(self):
        controller = _make_controller()
        first = _run(controller, controller.handle_user_command("what's still open"))
        controller.engine.clock.advance(seconds=1)
        second = _run(controller, controller.handle_user_command("what's still open"))
        assert first.message == second.message == "No open repairs right now."


class TestResponses:
    def test_response_closes_interruption_and_is_audited(self):
        reader = InMemoryStateReader("shop_1")
        _uncollected_job(reader)
        controller = _make_controller(reader)

        result = _run(controller, controller.evaluate_interruptions())
        _run(controller, controller.handle_interruption_response(result.id, "yes, text them"))

        assert result.id not in controller.engine.active_interruptions
        records = controller.audit_store.query_by_subject("shop_1")
        assert [r.event_type for r in records] == [
            AuditEventType.INTERRUPTION,
            AuditEventType.RESPONSE,
        ]
        assert records[1].response == "yes, text them"


class TestMonitoring:
    def test_start_and_stop(self):
        reader = InMemoryStateReader("shop_1")
        _uncollected_job(reader)
        controller = _make_controller(
            reader, config=ControllerConfig(evaluation_interval_seconds=0.01)
        )

        async def session():
            await controller.start()
            await controller.start()
            assert controller.monitoring is True
            await asyncio.sleep(0.05)
            await controller.stop()
            await controller.wait_for_dispatches()

        asyncio.run(session())
        assert controller.monitoring is False
        assert controller.tick_count >= 2
        assert len(controller.channel.interrupts) == 1
        assert controller.state == ControllerState.IDLE

    def test_disabled_ticks_do_nothing(self):
        reader = InMemoryStateReader("shop_1")
        _uncollected_job(reader)
        controller = _make_controller(
            reader, config=ControllerConfig(evaluation_interval_seconds=0.01)
        )
        controller.set_enabled(False)

        async def session():
            await controller.start()
            await asyncio.sleep(0.03)
            await controller.stop()

        asyncio.run(session())
        assert controller.tick_count >= 1
        assert controller.channel.interrupts == []

    def test_stop_without_start(self):
        controller = _make_controller()
        asyncio.run(controller.stop())
        assert controller.monitoring is False
